"""
Wires the orchestrator's services to their collaborators.

`EncodingPipeline.from_settings` builds every client exactly once from the loaded
settings; the pipeline then owns them and closes them on `close()`. Tests and
embedding applications can instead pass their own collaborators to the constructor.
"""
from typing import Any, List, Optional, Sequence

from loguru import logger

from ..clients import HttpBlobStore, LocalBlobStore, RestJobClient
from ..config.settings import Settings
from ..domain.models import JobSnapshot, NotificationOutcome, ReservedCapacity, ReservedUnitType
from ..domain.notifications import NotificationMessage
from ..services.capacity_manager import ReservedCapacityManager
from ..services.interfaces import BlobStore, PresetResolver, RemoteJobClient
from ..services.job_monitor import JobMonitor
from ..services.job_submitter import JobSubmitter
from ..services.notification_processor import NotificationProcessor
from ..services.preset_service import YamlPresetResolver


class EncodingPipeline:
    """
    The orchestrator's entry point for applications: submit jobs, handle
    notifications, watch jobs and manage reserved capacity.
    """

    def __init__(
        self,
        remote_client: RemoteJobClient,
        blob_store: BlobStore,
        preset_resolver: PresetResolver,
        default_callback_endpoint: Optional[str] = None,
        default_output_container: Optional[str] = None,
    ):
        self.remote_client = remote_client
        self.blob_store = blob_store
        self.submitter = JobSubmitter(
            remote_client,
            blob_store,
            preset_resolver,
            default_callback_endpoint=default_callback_endpoint,
            default_output_container=default_output_container,
        )
        self.notification_processor = NotificationProcessor(remote_client, blob_store)
        self.capacity_manager = ReservedCapacityManager(remote_client)
        self.monitor = JobMonitor(remote_client)

    @classmethod
    def from_settings(cls, settings: Settings) -> "EncodingPipeline":
        """
        Builds the REST client, the blob store and the preset resolver described by
        `settings`.

        Raises:
            ValidationError: If the REST endpoint or token is missing, or the preset
                             catalogue cannot be loaded.
        """
        settings.require_rest_api()
        remote_client = RestJobClient(
            settings.rest_api_endpoint,
            settings.access_token,
            timeout=settings.request_timeout_seconds,
        )

        if settings.local_blob_root is not None:
            logger.info(f"Using local blob storage at {settings.local_blob_root}")
            blob_store = LocalBlobStore(settings.local_blob_root)
        else:
            blob_store = HttpBlobStore(
                settings.storage_access_token,
                timeout=settings.request_timeout_seconds,
            )

        if settings.preset_file is not None:
            preset_resolver = YamlPresetResolver.from_file(settings.preset_file)
        else:
            preset_resolver = YamlPresetResolver()

        return cls(
            remote_client,
            blob_store,
            preset_resolver,
            default_callback_endpoint=settings.callback_endpoint,
            default_output_container=settings.output_container,
        )

    def close(self):
        for resource in (self.remote_client, self.blob_store):
            close = getattr(resource, "close", None)
            if close is not None:
                close()

    def __enter__(self) -> "EncodingPipeline":
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    # --- Operations ---
    def submit(
        self,
        input_locations: Sequence[str],
        preset_name: str,
        output_account_name: Optional[str] = None,
        callback_endpoint: Optional[str] = None,
        operation_context: Any = None,
        output_container: Optional[str] = None,
    ) -> str:
        return self.submitter.submit(
            input_locations,
            preset_name,
            output_account_name=output_account_name,
            callback_endpoint=callback_endpoint,
            operation_context=operation_context,
            output_container=output_container,
        )

    def handle_notification(self, message: NotificationMessage) -> NotificationOutcome:
        return self.notification_processor.handle_notification(message)

    def wait_for_job(self, job_id: str, **kwargs) -> JobSnapshot:
        return self.monitor.wait_for_terminal_state(job_id, **kwargs)

    def finish_job(self, job_id: str) -> List[str]:
        """
        Copies the output of a finished job and deletes its assets, like the
        Finished notification would. Used after waiting for a job without a callback.
        """
        copied = self.notification_processor.copy_output_assets(job_id)
        self.notification_processor.delete_assets_for_job(job_id)
        return copied

    def get_capacity(self) -> ReservedCapacity:
        return self.capacity_manager.get_current_capacity()

    def set_capacity(self, unit_type: ReservedUnitType, units: int) -> ReservedCapacity:
        return self.capacity_manager.set_capacity(unit_type, units)
