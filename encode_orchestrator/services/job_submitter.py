"""
Submits encode jobs to the remote encoding service.

A submission creates one input asset, fills it with the source media, and submits a
single-task job against the "Media Encoder Standard" processor. The caller's context
travels with the job inside the task name (see `encode_orchestrator.utils.correlation_codec`),
since the remote service offers no other field that survives until the job's
notifications arrive. So does the container the finished output is copied into;
every job carries one, so its Finished notification can always copy and clean up.

Everything that can be checked locally (inputs, preset name, output asset name,
output container, correlation data length) is checked before the first remote
call. After that, a failure aborts the submission; the input asset created so far
is left behind.
"""
import json
from typing import Any, Dict, Optional, Sequence
from urllib.parse import urlsplit

from loguru import logger

from ..config.common import (
    CALLBACK_ENDPOINT_NAME,
    ENCODER_PROCESSOR_NAME,
    OPERATION_CONTEXT_KEY,
    OUTPUT_ASSET_CONTAINER_KEY,
)
from ..domain.exceptions import (
    NotFoundError,
    RemoteError,
    ValidationError,
)
from ..domain.models import JobState, NotificationSubscription, OutputAssetTarget
from ..utils import correlation_codec
from ..utils.asset_naming import job_name, output_asset_name, output_container_for
from .asset_operations import AssetOperations
from .interfaces import BlobStore, PresetResolver, RemoteJobClient


def _is_absolute_uri(value: str) -> bool:
    parts = urlsplit(value)
    return bool(parts.scheme) and bool(parts.netloc)


class JobSubmitter:
    """
    Creates encode jobs on the remote service.

    Attributes:
        remote_client: The remote encoding service.
        preset_resolver: Turns preset names into job configurations.
        asset_operations: Fills the input asset of a job.
        default_callback_endpoint: Callback used when `submit` is given none.
        default_output_container: Output container used when `submit` is given none.
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
        self.preset_resolver = preset_resolver
        self.asset_operations = AssetOperations(remote_client, blob_store)
        self.default_callback_endpoint = default_callback_endpoint
        self.default_output_container = default_output_container

    def submit(
        self,
        input_locations: Sequence[str],
        preset_name: str,
        output_account_name: Optional[str] = None,
        callback_endpoint: Optional[str] = None,
        operation_context: Any = None,
        output_container: Optional[str] = None,
    ) -> str:
        """
        Submits one encode job over the given inputs.

        Args:
            input_locations: Blob URIs to copy or local file paths to upload. The first
                             one names the input and output assets.
            preset_name: A preset name known to the preset resolver, or a complete
                         JSON/XML encoder configuration.
            output_account_name: Storage account of the output asset. The service's
                                 default account is used when omitted.
            callback_endpoint: Absolute URI the service notifies about task state
                               changes. Falls back to the configured default.
            operation_context: Any JSON-serialisable value. It is handed back by
                               `NotificationProcessor.get_operation_context`.
            output_container: Container URI the finished output is copied into.
                              Falls back to the configured default, then to the
                              container of the first input on the output account.

        Returns:
            The id of the submitted job.

        Raises:
            ValidationError: If the inputs are unusable, no output container can be
                             determined, or the correlation data does not fit into
                             the task name.
            NotFoundError: If the preset or the encoder processor does not exist.
            RemoteError: If any remote step failed.
        """
        # --- 1. Local checks ---
        if not input_locations:
            raise ValidationError("At least one input location is required.")
        if not preset_name or not str(preset_name).strip():
            raise ValidationError("A preset name is required.")

        input_locations = [str(location) for location in input_locations]
        output_asset = output_asset_name(input_locations[0], output_account_name)
        destination = self._select_output_container(input_locations[0], output_account_name, output_container)
        encoded_correlation_data = correlation_codec.encode(
            self._build_correlation_data(operation_context, destination)
        )
        callback_uri = self._select_callback_endpoint(callback_endpoint)

        logger.info(
            f"Submitting encode of {len(input_locations)} input(s) starting with "
            f"{input_locations[0]} using preset '{preset_name}'"
        )

        # --- 2. Input asset ---
        input_asset_id = self.asset_operations.copy_files_into_new_asset(input_locations)

        # --- 3. Job ---
        try:
            configuration = self.preset_resolver.resolve(preset_name)
            engine_id = self.remote_client.resolve_engine_id(ENCODER_PROCESSOR_NAME)
        except (ValidationError, NotFoundError) as e:
            logger.error(f"Could not prepare the job for {input_locations[0]}: {e}")
            raise
        except Exception as e:
            logger.error(f"Could not prepare the job for {input_locations[0]}: {e}")
            raise RemoteError.wrap(f"Could not prepare the job for {input_locations[0]}", e) from e

        subscription = None
        if callback_uri:
            try:
                endpoint_id = self.remote_client.get_or_create_callback_registration(
                    CALLBACK_ENDPOINT_NAME, callback_uri
                )
            except Exception as e:
                logger.error(f"Could not register callback endpoint {callback_uri}: {e}")
                raise RemoteError.wrap(f"Could not register callback endpoint {callback_uri}", e) from e
            subscription = NotificationSubscription(
                endpoint_id=endpoint_id,
                target_state=JobState.FINISHED,
                include_progress=True,
            )

        new_job_name = job_name(output_asset)
        try:
            job_id = self.remote_client.submit_job(
                name=new_job_name,
                engine_id=engine_id,
                input_asset_id=input_asset_id,
                configuration=configuration,
                output_asset=OutputAssetTarget(output_asset, output_account_name),
                task_name=encoded_correlation_data,
                subscription=subscription,
            )
        except Exception as e:
            logger.error(f"Could not submit job {new_job_name}: {e}")
            raise RemoteError.wrap(f"Could not submit job {new_job_name}", e) from e

        logger.success(f"Submitted job {job_id} ({new_job_name}) writing to {output_asset}")
        return job_id

    def _build_correlation_data(self, operation_context: Any, output_container: str) -> Dict[str, str]:
        correlation_data: Dict[str, str] = {}
        if operation_context is not None:
            try:
                correlation_data[OPERATION_CONTEXT_KEY] = json.dumps(operation_context)
            except (TypeError, ValueError) as e:
                raise ValidationError(f"Operation context is not JSON serialisable: {e}") from e

        correlation_data[OUTPUT_ASSET_CONTAINER_KEY] = output_container
        return correlation_data

    def _select_output_container(
        self, first_location: str, output_account_name: Optional[str], output_container: Optional[str]
    ) -> str:
        container = output_container or self.default_output_container
        if container:
            if not _is_absolute_uri(container):
                raise ValidationError(f"Output container must be an absolute URI: {container}")
            return container

        derived = output_container_for(first_location, output_account_name)
        if derived is None:
            raise ValidationError(f"An output container is required for {first_location}.")
        logger.debug(f"No output container given, the output of {first_location} goes to {derived}")
        return derived

    def _select_callback_endpoint(self, callback_endpoint: Optional[str]) -> Optional[str]:
        if callback_endpoint:
            if not _is_absolute_uri(callback_endpoint):
                raise ValidationError(f"Callback endpoint must be an absolute URI: {callback_endpoint}")
            return callback_endpoint

        if self.default_callback_endpoint:
            if _is_absolute_uri(self.default_callback_endpoint):
                return self.default_callback_endpoint
            # A bad default must not block submissions without notifications.
            logger.warning(
                f"Ignoring configured callback endpoint {self.default_callback_endpoint}: not an absolute URI"
            )
        return None
