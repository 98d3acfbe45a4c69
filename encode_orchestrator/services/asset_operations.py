"""
Remote asset operations shared by job submission and notification handling.

These are the multi-call sequences against the remote service and blob storage that
both sides of a job's life need: filling a new input asset with the source media,
reading back the correlation data embedded in a job, copying a finished job's output
to the caller's container, and deleting a job's assets.

Every step logs its failure once, with the file or job it concerned, and raises a
`RemoteError` carrying the request details of the underlying failure. Nothing here
retries.
"""
import time
from datetime import timedelta
from pathlib import Path
from typing import Dict, List, Sequence

from loguru import logger

from ..config.common import OUTPUT_ASSET_CONTAINER_KEY
from ..domain.exceptions import ProtocolError, RemoteError, ValidationError
from ..utils import correlation_codec
from ..utils.asset_naming import input_asset_name_for_location
from ..utils.blob_uri import BlobLocation, is_blob_uri
from ..utils.format_utils import format_timedelta, format_transfer
from .interfaces import BlobStore, RemoteJobClient


class AssetOperations:
    """
    Performs the asset-level work of the orchestrator.

    Attributes:
        remote_client: The remote encoding service.
        blob_store: The blob storage behind the remote service.
    """

    def __init__(self, remote_client: RemoteJobClient, blob_store: BlobStore):
        self.remote_client = remote_client
        self.blob_store = blob_store

    # --- Submission side ---
    def copy_files_into_new_asset(self, input_locations: Sequence[str]) -> str:
        """
        Creates one input asset and copies (blob URIs) or uploads (local paths)
        every input into it.

        The asset is named after the first input. A source that does not exist is
        logged; the copy or upload that follows then fails and aborts the whole
        operation. An asset that was created before a failure is not deleted.

        Args:
            input_locations: Blob URIs or local file paths, in order. Must not be empty.

        Returns:
            The id of the new input asset, with its file listing finalized.

        Raises:
            ValidationError: If `input_locations` is empty.
            RemoteError: If creating the asset, transferring any file, or finalizing
                         the file listing failed.
        """
        if not input_locations:
            raise ValidationError("At least one input location is required.")

        first_location = str(input_locations[0])
        asset_name = input_asset_name_for_location(first_location)
        account_name = BlobLocation.parse(first_location).account_name if is_blob_uri(first_location) else None

        try:
            asset = self.remote_client.create_input_asset(asset_name, account_name)
        except Exception as e:
            logger.error(f"Error creating asset {asset_name} for {first_location}: {e}")
            raise RemoteError.wrap(f"Failed to create asset for {first_location}", e) from e

        logger.info(f"Created input asset {asset.id} ({asset_name})")

        asset_container = BlobLocation.parse(asset.uri)
        for location in input_locations:
            location = str(location)
            try:
                if is_blob_uri(location):
                    self._copy_blob_into(location, asset_container)
                else:
                    self._upload_file_into(location, asset_container)
            except Exception as e:
                logger.error(f"Failed to transfer {location} into asset {asset.id}: {e}")
                raise RemoteError.wrap(f"Failed to copy {location} into {asset_name} ({asset.id})", e) from e

        try:
            self.remote_client.create_file_infos(asset.id)
        except Exception as e:
            logger.error(f"Failed to register the files of asset {asset.id}: {e}")
            raise RemoteError.wrap(f"Failed to register the files of {asset_name} ({asset.id})", e) from e

        logger.info(f"Filled input asset {asset_name} ({asset.uri}) with {len(input_locations)} file(s)")
        return asset.id

    def _copy_blob_into(self, source_uri: str, asset_container: BlobLocation):
        source = BlobLocation.parse(source_uri)
        destination = asset_container.with_blob(source.blob_name).to_uri()
        if not self.blob_store.exists(source_uri):
            logger.error(f"Attempted to use nonexistent blob {source_uri} as input to encoding.")

        started = time.monotonic()
        self.blob_store.copy(source_uri, destination).wait_for_completion()
        elapsed = timedelta(seconds=time.monotonic() - started)
        logger.info(f"Copied {source.blob_name} into the input asset in {format_timedelta(elapsed)}")

    def _upload_file_into(self, file_path: str, asset_container: BlobLocation):
        path = Path(file_path)
        if not path.is_file():
            logger.error(f"Attempted to use nonexistent file {file_path} as input to encoding.")
            size = 0
        else:
            size = path.stat().st_size
        destination = asset_container.with_blob(path.name).to_uri()

        started = time.monotonic()
        self.blob_store.upload_file(str(path), destination)
        elapsed = timedelta(seconds=time.monotonic() - started)
        logger.info(f"Uploaded {path.name}: {format_transfer(size, elapsed)}")

    # --- Notification side ---
    def get_correlation_data(self, job_id: str) -> Dict[str, str]:
        """
        Reads the correlation data embedded in the name of the job's first task.

        Raises:
            RemoteError: If the task could not be read or its name could not be decoded.
        """
        try:
            first_task = self.remote_client.get_first_task(job_id)
            return correlation_codec.decode(first_task.name)
        except Exception as e:
            logger.error(f"Could not get correlation data from job {job_id}: {e}")
            raise RemoteError.wrap(f"Could not get correlation data from {job_id}", e) from e

    def copy_output_assets(self, job_id: str) -> List[str]:
        """
        Copies every file of the job's first output asset into the container named by
        the `outputAssetContainer` entry of the job's correlation data.

        Returns:
            The URIs of the copied files.

        Raises:
            ProtocolError: If the correlation data names no output container.
            RemoteError: If reading the job or asset, or copying any file failed.
        """
        correlation_data = self.get_correlation_data(job_id)
        output_container = correlation_data.get(OUTPUT_ASSET_CONTAINER_KEY)
        if not output_container:
            logger.error(f"Expected {OUTPUT_ASSET_CONTAINER_KEY} in the correlation data of {job_id}.")
            raise ProtocolError(f"Expected {OUTPUT_ASSET_CONTAINER_KEY} in the correlation data of {job_id}.")

        try:
            destination_container = BlobLocation.parse(output_container)
        except ValidationError as e:
            logger.error(f"Invalid {OUTPUT_ASSET_CONTAINER_KEY} in the correlation data of {job_id}: {e}")
            raise ProtocolError(f"Invalid {OUTPUT_ASSET_CONTAINER_KEY} for {job_id}: {output_container}") from e

        try:
            output_asset = self.remote_client.get_first_output_asset(job_id)
            asset_location = self.remote_client.get_asset_location(output_asset.id)
            file_names = self.remote_client.list_asset_file_names(output_asset.id)
        except Exception as e:
            logger.error(f"Could not read the output asset of {job_id}: {e}")
            raise RemoteError.wrap(f"Could not read the output asset of {job_id}", e) from e

        source_container = BlobLocation.parse(asset_location.uri)
        copied: List[str] = []
        for file_name in file_names:
            source = source_container.with_blob(file_name).to_uri()
            destination = destination_container.with_blob(file_name).to_uri()
            started = time.monotonic()
            try:
                self.blob_store.copy(source, destination).wait_for_completion()
            except Exception as e:
                logger.error(f"Failed to copy {file_name} to {output_container} for {job_id}: {e}")
                raise RemoteError.wrap(f"Failed to copy {file_name} to {output_container} for {job_id}", e) from e
            elapsed = timedelta(seconds=time.monotonic() - started)
            logger.info(f"Copied {file_name} to {output_container} for {job_id} in {format_timedelta(elapsed)}")
            copied.append(destination)

        logger.info(f"Copied {len(copied)} output file(s) of {job_id} to {output_container}")
        return copied

    def delete_assets_for_job(self, job_id: str) -> None:
        """
        Deletes the first input and the first output asset of a job.

        Calling this again for a job whose assets are already gone fails like any
        other remote failure.

        Raises:
            RemoteError: If reading or deleting either asset failed.
        """
        try:
            input_asset = self.remote_client.get_first_input_asset(job_id)
            self.remote_client.delete_asset(input_asset.id)

            output_asset = self.remote_client.get_first_output_asset(job_id)
            self.remote_client.delete_asset(output_asset.id)
        except Exception as e:
            logger.error(f"Could not delete the assets of {job_id}: {e}")
            raise RemoteError.wrap(f"Could not delete the assets of {job_id}", e) from e

        logger.info(f"Deleted input asset {input_asset.id} and output asset {output_asset.id} of {job_id}")
