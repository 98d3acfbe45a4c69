import json

import pytest

from encode_orchestrator.domain.exceptions import NotFoundError, RemoteError, ValidationError
from encode_orchestrator.domain.models import JobState, OutputAssetTarget
from encode_orchestrator.services.job_submitter import JobSubmitter
from encode_orchestrator.utils import correlation_codec

from .conftest import ENGINE_ID, MEDIA_STORAGE

SOURCE = "https://inbox.blob.core.windows.net/videos/clip.mp4"
SECOND_SOURCE = "https://inbox.blob.core.windows.net/videos/subtitles.vtt"
OUTPUT_CONTAINER = "https://outaccount.blob.core.windows.net/encoded"
CALLBACK = "https://example.org/api/notifications"


@pytest.fixture
def submitter(remote_client, blob_store, preset_resolver):
    blob_store.blobs.update({SOURCE, SECOND_SOURCE})
    return JobSubmitter(remote_client, blob_store, preset_resolver)


def submitted_job(remote_client):
    (submit_call,) = [call for call in remote_client.calls if call[0] == "submit_job"]
    keys = ["name", "engine_id", "input_asset_id", "configuration", "output_asset", "task_name", "subscription"]
    return dict(zip(keys, submit_call[1:]))


class TestSubmit:
    def test_happy_path(self, submitter, remote_client, blob_store):
        job_id = submitter.submit(
            [SOURCE, SECOND_SOURCE],
            "Adaptive Streaming",
            output_account_name="outaccount",
            callback_endpoint=CALLBACK,
            operation_context={"requestId": "r-1"},
            output_container=OUTPUT_CONTAINER,
        )

        assert job_id in remote_client.jobs
        assert remote_client.call_names() == [
            "create_input_asset",
            "create_file_infos",
            "resolve_engine_id",
            "get_or_create_callback_registration",
            "submit_job",
        ]
        assert remote_client.calls[0] == ("create_input_asset", "V2-inbox-videos-Input", "inbox")

        input_asset_id = remote_client.calls[1][1]
        asset_uri = remote_client.assets[input_asset_id]["uri"]
        assert blob_store.copies == [
            (SOURCE, f"{asset_uri}/clip.mp4"),
            (SECOND_SOURCE, f"{asset_uri}/subtitles.vtt"),
        ]

        job = submitted_job(remote_client)
        assert job["name"].startswith("V2-outaccount-videos-Output-")
        assert job["engine_id"] == ENGINE_ID
        assert job["input_asset_id"] == input_asset_id
        assert job["configuration"] == "Adaptive Streaming"
        assert job["output_asset"] == OutputAssetTarget("V2-outaccount-videos-Output", "outaccount")
        assert job["subscription"].target_state is JobState.FINISHED
        assert job["subscription"].include_progress is True
        assert remote_client.callbacks[job["subscription"].endpoint_id] == ("EncodeJobCallback", CALLBACK)

        correlation_data = correlation_codec.decode(job["task_name"])
        assert json.loads(correlation_data["operationContext"]) == {"requestId": "r-1"}
        assert correlation_data["outputAssetContainer"] == OUTPUT_CONTAINER

    def test_local_files_are_uploaded(self, submitter, remote_client, blob_store, tmp_path):
        media = tmp_path / "Clip.MOV"
        media.write_bytes(b"0" * 2048)

        submitter.submit(
            [str(media)], "Adaptive Streaming", output_account_name="out", output_container=OUTPUT_CONTAINER
        )

        assert remote_client.calls[0] == ("create_input_asset", "Clip.MOV", None)
        assert blob_store.uploads == [(str(media), f"{MEDIA_STORAGE}/asset-1/Clip.MOV")]
        assert submitted_job(remote_client)["output_asset"].name == "V2-out-clip.mov-Output"

    def test_without_callback_or_context(self, submitter, remote_client):
        submitter.submit([SOURCE], "Adaptive Streaming")

        job = submitted_job(remote_client)
        assert job["subscription"] is None
        assert "get_or_create_callback_registration" not in remote_client.call_names()
        assert correlation_codec.decode(job["task_name"]) == {
            "outputAssetContainer": "https://inbox.blob.core.windows.net/videos"
        }

    def test_output_container_defaults_to_input_container_on_output_account(
        self, submitter, remote_client, blob_store
    ):
        source_with_sas = SOURCE + "?sv=2021&sig=secret"
        blob_store.blobs.add(source_with_sas)

        submitter.submit([source_with_sas], "Adaptive Streaming", output_account_name="outaccount")

        correlation_data = correlation_codec.decode(submitted_job(remote_client)["task_name"])
        assert correlation_data["outputAssetContainer"] == "https://outaccount.blob.core.windows.net/videos"

    def test_existing_callback_registration_is_reused(self, submitter, remote_client):
        remote_client.callbacks["nb:nepid:UUID:existing"] = ("encodejobcallback", CALLBACK.upper())

        submitter.submit([SOURCE], "Adaptive Streaming", callback_endpoint=CALLBACK)

        assert submitted_job(remote_client)["subscription"].endpoint_id == "nb:nepid:UUID:existing"

    def test_configured_defaults(self, remote_client, blob_store, preset_resolver):
        blob_store.blobs.add(SOURCE)
        submitter = JobSubmitter(
            remote_client,
            blob_store,
            preset_resolver,
            default_callback_endpoint=CALLBACK,
            default_output_container=OUTPUT_CONTAINER,
        )

        submitter.submit([SOURCE], "Adaptive Streaming")

        job = submitted_job(remote_client)
        assert job["subscription"] is not None
        assert correlation_codec.decode(job["task_name"]) == {"outputAssetContainer": OUTPUT_CONTAINER}

    def test_invalid_default_callback_is_ignored(self, remote_client, blob_store, preset_resolver):
        blob_store.blobs.add(SOURCE)
        submitter = JobSubmitter(remote_client, blob_store, preset_resolver, default_callback_endpoint="not-a-uri")

        submitter.submit([SOURCE], "Adaptive Streaming")

        assert submitted_job(remote_client)["subscription"] is None

    def test_structured_preset_passes_through(self, submitter, remote_client):
        configuration = '{"Version": 1.0, "Codecs": []}'
        submitter.submit([SOURCE], configuration)
        assert submitted_job(remote_client)["configuration"] == configuration


class TestValidationBeforeRemoteCalls:
    @pytest.mark.parametrize(
        "inputs, preset, kwargs",
        [
            ([], "Adaptive Streaming", {}),
            ([SOURCE], "", {}),
            ([SOURCE], "   ", {}),
            (["https://inbox.blob.core.windows.net/Videos/clip.mp4"], "Adaptive Streaming", {}),
            ([SOURCE], "Adaptive Streaming", {"operation_context": {"blob": "x" * 4000}}),
            ([SOURCE], "Adaptive Streaming", {"callback_endpoint": "relative/path"}),
            ([SOURCE], "Adaptive Streaming", {"output_container": "encoded"}),
            ([SOURCE], "Adaptive Streaming", {"operation_context": {"not", "json"}}),
            (["clip.mp4"], "Adaptive Streaming", {}),
        ],
    )
    def test_invalid_input(self, submitter, remote_client, blob_store, inputs, preset, kwargs):
        with pytest.raises(ValidationError):
            submitter.submit(inputs, preset, **kwargs)
        assert remote_client.calls == []
        assert blob_store.copies == []


class TestStageFailures:
    def test_asset_creation_failure(self, submitter, remote_client):
        remote_client.fail_on["create_input_asset"] = RemoteError(
            "boom", method="POST", target="Assets", status_code=500, body="oops"
        )

        with pytest.raises(RemoteError) as exc_info:
            submitter.submit([SOURCE], "Adaptive Streaming")

        assert SOURCE in exc_info.value.message
        assert exc_info.value.status_code == 500
        assert exc_info.value.method == "POST"

    def test_copy_failure_names_the_file_and_stops(self, submitter, remote_client, blob_store):
        blob_store.failing_uris.add(SECOND_SOURCE)

        with pytest.raises(RemoteError) as exc_info:
            submitter.submit([SOURCE, SECOND_SOURCE], "Adaptive Streaming")

        assert SECOND_SOURCE in str(exc_info.value)
        assert remote_client.call_names() == ["create_input_asset"]
        # The input asset is left behind.
        assert len(remote_client.assets) == 1

    def test_missing_source_is_logged_then_fails(self, submitter, remote_client):
        missing = "https://inbox.blob.core.windows.net/videos/missing.mp4"
        with pytest.raises(RemoteError, match="missing.mp4"):
            submitter.submit([missing], "Adaptive Streaming")

    def test_unknown_preset(self, submitter, remote_client):
        with pytest.raises(NotFoundError):
            submitter.submit([SOURCE], "No Such Preset")
        assert "submit_job" not in remote_client.call_names()

    def test_missing_engine(self, submitter, remote_client):
        remote_client.engines.clear()
        with pytest.raises(NotFoundError, match="Media Encoder Standard"):
            submitter.submit([SOURCE], "Adaptive Streaming")

    def test_callback_registration_failure(self, submitter, remote_client):
        remote_client.fail_on["get_or_create_callback_registration"] = RemoteError("denied", status_code=403)
        with pytest.raises(RemoteError, match="callback endpoint"):
            submitter.submit([SOURCE], "Adaptive Streaming", callback_endpoint=CALLBACK)

    def test_submit_failure_is_wrapped(self, submitter, remote_client):
        remote_client.fail_on["submit_job"] = ValueError("unexpected")
        with pytest.raises(RemoteError) as exc_info:
            submitter.submit([SOURCE], "Adaptive Streaming")
        assert "ValueError: unexpected" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, ValueError)
