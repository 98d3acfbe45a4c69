"""
Interfaces of the external collaborators the orchestrator depends on.

The orchestrator's logic (submitting jobs, reacting to notifications) never talks
HTTP itself. It depends on three narrow capability surfaces:

- `RemoteJobClient`: create, read and delete assets and jobs on the remote
  encoding service, register callback endpoints and manage reserved capacity.
- `BlobStore`: move bytes into and out of the storage behind the remote service.
- `PresetResolver`: turn a preset name into the configuration string sent with a job.

Concrete implementations live in `encode_orchestrator.clients` (REST, blob storage,
local filesystem) and `encode_orchestrator.services.preset_service` (YAML presets).
Tests use in-memory fakes.

Implementations signal failed remote calls with `RemoteError` and missing named
resources with `NotFoundError`.
"""
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import List, Optional

from ..domain.models import (
    AssetHandle,
    AssetLocation,
    AssetRef,
    JobSnapshot,
    NotificationSubscription,
    OutputAssetTarget,
    ReservedCapacity,
    TaskRef,
)


class RemoteJobClient(ABC):
    """Capability surface of the remote encoding service."""

    @abstractmethod
    def create_input_asset(self, name: str, account_name: Optional[str]) -> AssetHandle:
        """
        Creates an empty asset in the given storage account (the service's default
        account when `account_name` is None).
        """

    @abstractmethod
    def create_file_infos(self, asset_id: str) -> None:
        """
        Asks the remote service to enumerate the files in the asset's container and
        register them as the asset's files. Safe to call once after all files are in.
        """

    @abstractmethod
    def resolve_engine_id(self, engine_name: str) -> str:
        """
        Returns the id of the latest media processor called `engine_name`.

        Raises:
            NotFoundError: If no processor has that name.
        """

    @abstractmethod
    def submit_job(
        self,
        name: str,
        engine_id: str,
        input_asset_id: str,
        configuration: str,
        output_asset: OutputAssetTarget,
        task_name: str,
        subscription: Optional[NotificationSubscription] = None,
    ) -> str:
        """
        Creates a job with a single task and returns the job id.

        `task_name` is stored verbatim as the task's name; it carries the encoded
        correlation data.
        """

    @abstractmethod
    def get_job(self, job_id: str) -> JobSnapshot:
        """Reads the current state of a job."""

    @abstractmethod
    def get_first_task(self, job_id: str) -> TaskRef:
        """Returns the id and name of the job's first task."""

    @abstractmethod
    def get_first_input_asset(self, job_id: str) -> AssetRef:
        """Returns the id and name of the job's first input asset."""

    @abstractmethod
    def get_first_output_asset(self, job_id: str) -> AssetRef:
        """Returns the id and name of the job's first output asset."""

    @abstractmethod
    def get_asset_location(self, asset_id: str) -> AssetLocation:
        """Returns the asset's name and the URI of its storage container."""

    @abstractmethod
    def list_asset_file_names(self, asset_id: str) -> List[str]:
        """Returns the names of the files registered in the asset."""

    @abstractmethod
    def delete_asset(self, asset_id: str) -> None:
        """Deletes the asset and its files."""

    @abstractmethod
    def get_or_create_callback_registration(self, name: str, endpoint_uri: str) -> str:
        """
        Returns the id of the notification endpoint registered under `name` for
        `endpoint_uri`, registering it first if needed. Name and address are matched
        case-insensitively.
        """

    @abstractmethod
    def get_reserved_capacity(self) -> ReservedCapacity:
        """Reads the reserved encoding capacity of the account."""

    @abstractmethod
    def update_reserved_capacity(self, capacity: ReservedCapacity) -> None:
        """Changes the reserved encoding capacity of the account."""


class CopyOperation(ABC):
    """A started blob copy. `wait_for_completion()` blocks until it has finished."""

    @abstractmethod
    def wait_for_completion(self) -> str:
        """
        Waits for the copy to complete and returns the destination URI.

        Raises:
            RemoteError: If the copy failed or was aborted.
        """


class BlobStore(ABC):
    """Capability surface of the blob storage behind the remote service."""

    @abstractmethod
    def exists(self, uri: str) -> bool:
        """Returns True if a blob exists at `uri`."""

    @abstractmethod
    def copy(self, source_uri: str, dest_uri: str) -> CopyOperation:
        """
        Starts a copy of the blob at `source_uri` to `dest_uri`. The storage service
        reads the source through a URL from `get_sas_url`.
        """

    @abstractmethod
    def upload_file(self, file_path: str, dest_uri: str) -> str:
        """Uploads a local file to `dest_uri` and returns the destination URI."""

    @abstractmethod
    def get_sas_url(self, uri: str, ttl: timedelta) -> str:
        """
        Returns `uri` with a read-only shared access signature that expires after `ttl`.

        Raises:
            RemoteError: If the storage service refused to issue the signature.
        """


class PresetResolver(ABC):
    """Resolves encoding presets."""

    @abstractmethod
    def resolve(self, preset_name: str) -> str:
        """
        Returns the configuration string for `preset_name`. A value that already is
        a structured configuration (JSON or XML text) is returned unchanged.

        Raises:
            NotFoundError: If the preset is unknown.
        """
