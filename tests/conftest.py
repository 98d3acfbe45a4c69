from typing import Dict, List, Optional

import pytest

from encode_orchestrator.domain.exceptions import NotFoundError, RemoteError
from encode_orchestrator.domain.models import (
    AssetHandle,
    AssetLocation,
    AssetRef,
    JobSnapshot,
    JobState,
    NotificationSubscription,
    OutputAssetTarget,
    ReservedCapacity,
    ReservedUnitType,
    TaskRef,
)
from encode_orchestrator.services.interfaces import (
    BlobStore,
    CopyOperation,
    PresetResolver,
    RemoteJobClient,
)
from encode_orchestrator.services.preset_service import is_structured_configuration
from encode_orchestrator.utils import correlation_codec

ENGINE_ID = "nb:mpid:UUID:ff4df607-d419-42f0-bc17-a481b1331e56"
MEDIA_STORAGE = "https://mediastore.blob.core.windows.net"


# FAKES ------------------------------------------------------------------------------------------------------
class FakeRemoteJobClient(RemoteJobClient):
    """In-memory remote encoding service. Records every call in `calls`."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.assets: Dict[str, dict] = {}
        self.jobs: Dict[str, dict] = {}
        self.callbacks: Dict[str, tuple] = {}
        self.engines = {"Media Encoder Standard": ENGINE_ID}
        self.capacity = ReservedCapacity(
            unit_type=ReservedUnitType.S1, max_units=10, current_units=0, account_id="acc-guid"
        )
        self.capacity_updates: List[ReservedCapacity] = []
        self.fail_on: Dict[str, Exception] = {}
        self._counter = 0

    def _record(self, name, *args):
        self.calls.append((name,) + args)
        if name in self.fail_on:
            raise self.fail_on[name]

    def _next_id(self, kind: str) -> str:
        self._counter += 1
        return f"nb:{kind}:UUID:{self._counter}"

    def call_names(self) -> List[str]:
        return [call[0] for call in self.calls]

    # helpers for tests
    def add_asset(self, name: str, files: Optional[List[str]] = None) -> str:
        asset_id = self._next_id("cid")
        self.assets[asset_id] = {
            "name": name,
            "uri": f"{MEDIA_STORAGE}/asset-{asset_id.rsplit(':', 1)[-1]}",
            "files": list(files or []),
        }
        return asset_id

    def add_job(self, correlation_data, output_files=None, state=JobState.PROCESSING) -> str:
        input_id = self.add_asset("V2-inbox-videos-Input", ["clip.mp4"])
        output_id = self.add_asset("V2-out-videos-Output", output_files or [])
        job_id = self._next_id("jid")
        self.jobs[job_id] = {
            "name": "job",
            "state": state,
            "task": TaskRef(self._next_id("tid"), correlation_codec.encode(correlation_data)),
            "input": input_id,
            "output": output_id,
        }
        return job_id

    # RemoteJobClient
    def create_input_asset(self, name, account_name):
        self._record("create_input_asset", name, account_name)
        asset_id = self.add_asset(name)
        return AssetHandle(asset_id, self.assets[asset_id]["uri"])

    def create_file_infos(self, asset_id):
        self._record("create_file_infos", asset_id)

    def resolve_engine_id(self, engine_name):
        self._record("resolve_engine_id", engine_name)
        if engine_name not in self.engines:
            raise NotFoundError(f"Media processor '{engine_name}' not found.")
        return self.engines[engine_name]

    def submit_job(
        self,
        name,
        engine_id,
        input_asset_id,
        configuration,
        output_asset: OutputAssetTarget,
        task_name,
        subscription: Optional[NotificationSubscription] = None,
    ):
        self._record("submit_job", name, engine_id, input_asset_id, configuration, output_asset, task_name, subscription)
        output_id = self.add_asset(output_asset.name)
        job_id = self._next_id("jid")
        self.jobs[job_id] = {
            "name": name,
            "state": JobState.QUEUED,
            "task": TaskRef(self._next_id("tid"), task_name),
            "input": input_asset_id,
            "output": output_id,
        }
        return job_id

    def _job(self, job_id):
        if job_id not in self.jobs:
            raise RemoteError(f"Job {job_id} not found.", method="GET", target=f"Jobs('{job_id}')", status_code=404)
        return self.jobs[job_id]

    def _asset(self, asset_id):
        if asset_id not in self.assets:
            raise RemoteError(
                f"Asset {asset_id} not found.", method="GET", target=f"Assets('{asset_id}')", status_code=404
            )
        return self.assets[asset_id]

    def get_job(self, job_id):
        self._record("get_job", job_id)
        job = self._job(job_id)
        return JobSnapshot(job_id, job["name"], job["state"])

    def get_first_task(self, job_id):
        self._record("get_first_task", job_id)
        return self._job(job_id)["task"]

    def get_first_input_asset(self, job_id):
        self._record("get_first_input_asset", job_id)
        asset_id = self._job(job_id)["input"]
        return AssetRef(asset_id, self._asset(asset_id)["name"])

    def get_first_output_asset(self, job_id):
        self._record("get_first_output_asset", job_id)
        asset_id = self._job(job_id)["output"]
        return AssetRef(asset_id, self._asset(asset_id)["name"])

    def get_asset_location(self, asset_id):
        self._record("get_asset_location", asset_id)
        asset = self._asset(asset_id)
        return AssetLocation(asset["name"], asset["uri"])

    def list_asset_file_names(self, asset_id):
        self._record("list_asset_file_names", asset_id)
        return list(self._asset(asset_id)["files"])

    def delete_asset(self, asset_id):
        self._record("delete_asset", asset_id)
        self._asset(asset_id)
        del self.assets[asset_id]

    def get_or_create_callback_registration(self, name, endpoint_uri):
        self._record("get_or_create_callback_registration", name, endpoint_uri)
        for endpoint_id, (existing_name, existing_uri) in self.callbacks.items():
            if existing_name.upper() == name.upper() and existing_uri.upper() == endpoint_uri.upper():
                return endpoint_id
        endpoint_id = self._next_id("nepid")
        self.callbacks[endpoint_id] = (name, endpoint_uri)
        return endpoint_id

    def get_reserved_capacity(self):
        self._record("get_reserved_capacity")
        return self.capacity

    def update_reserved_capacity(self, capacity):
        self._record("update_reserved_capacity", capacity)
        self.capacity_updates.append(capacity)
        self.capacity = capacity


class FakeCopy(CopyOperation):
    def __init__(self, dest_uri):
        self.dest_uri = dest_uri

    def wait_for_completion(self):
        return self.dest_uri


class FakeBlobStore(BlobStore):
    """In-memory blob storage. `blobs` holds the URIs that exist."""

    def __init__(self, blobs=None):
        self.blobs = set(blobs or [])
        self.copies: List[tuple] = []
        self.uploads: List[tuple] = []
        self.failing_uris = set()
        self.signed: List[tuple] = []

    def exists(self, uri):
        return uri in self.blobs

    def copy(self, source_uri, dest_uri):
        if source_uri in self.failing_uris or source_uri not in self.blobs:
            raise RemoteError(f"Copy of {source_uri} failed.", method="PUT", target=dest_uri, status_code=404)
        self.copies.append((source_uri, dest_uri))
        self.blobs.add(dest_uri)
        return FakeCopy(dest_uri)

    def get_sas_url(self, uri, ttl):
        self.signed.append((uri, ttl))
        return uri

    def upload_file(self, file_path, dest_uri):
        if file_path in self.failing_uris:
            raise RemoteError(f"Upload of {file_path} failed.", method="PUT", target=dest_uri, status_code=500)
        self.uploads.append((file_path, dest_uri))
        self.blobs.add(dest_uri)
        return dest_uri


class FakePresetResolver(PresetResolver):
    def __init__(self, presets=None):
        self.presets = presets if presets is not None else {"Adaptive Streaming": "Adaptive Streaming"}
        self.resolved: List[str] = []

    def resolve(self, preset_name):
        self.resolved.append(preset_name)
        if is_structured_configuration(preset_name):
            return preset_name
        if preset_name not in self.presets:
            raise NotFoundError(f"Unknown preset '{preset_name}'.")
        return self.presets[preset_name]


# FIXTURES ---------------------------------------------------------------------------------------------------
@pytest.fixture
def remote_client():
    """A fresh in-memory remote encoding service."""
    return FakeRemoteJobClient()


@pytest.fixture
def blob_store():
    return FakeBlobStore()


@pytest.fixture
def preset_resolver():
    return FakePresetResolver()
