"""
Deterministic names for the assets and jobs created on the remote service.

Asset names are derived from where the media comes from (storage account and
container, or file name) so an operator can tell from the remote asset list which
source an asset belongs to. They are not unique: submitting twice from the same
container produces two assets with the same name. Job names get a random suffix,
purely for uniqueness; nothing ever parses them.
"""
import uuid
from pathlib import PurePath
from typing import Optional

from ..config.common import (
    ASSET_NAME_PREFIX,
    INPUT_ASSET_SUFFIX,
    JOB_NAME_SUFFIX_LENGTH,
    OUTPUT_ASSET_SUFFIX,
)
from ..domain.exceptions import ValidationError
from .blob_uri import BlobLocation, is_blob_uri


def _compose(*parts: Optional[str]) -> str:
    return "-".join("" if part is None else str(part) for part in parts)


def input_asset_name(account_name: Optional[str], container_name: str) -> str:
    """
    Returns the name of the input asset for media copied from a blob container.

    Example:
        >>> input_asset_name("inbox", "videos")
        'V2-inbox-videos-Input'
    """
    return _compose(ASSET_NAME_PREFIX, account_name, container_name, INPUT_ASSET_SUFFIX)


def input_asset_name_for_file(file_path: str) -> str:
    """Returns the name of the input asset for local files: the first file's name."""
    return PurePath(str(file_path)).name


def input_asset_name_for_location(location: str) -> str:
    """Returns the input asset name for a blob URI or a local file path."""
    if is_blob_uri(location):
        blob = BlobLocation.parse(location)
        return input_asset_name(blob.account_name, blob.container_name)
    return input_asset_name_for_file(location)


def output_asset_name(source_location: str, output_account_name: Optional[str]) -> str:
    """
    Returns the name of the output asset the remote service creates for a job.

    For a blob URI the name is derived from its container, which must already be
    lowercase: the remote service rejects other container names, and it would only
    do so after the input asset has been created and filled. For a local file the
    lowercased file name is used instead.

    Args:
        source_location: The first input of the job (blob URI or local path).
        output_account_name: The storage account the output asset is created in.
                             `None` leaves the account segment empty.

    Raises:
        ValidationError: If the container name of a blob URI is not lowercase.
    """
    if is_blob_uri(source_location):
        container_name = BlobLocation.parse(source_location).container_name
        if container_name != container_name.lower():
            raise ValidationError(f"ContainerName {container_name} must be lowercase.")
        return _compose(ASSET_NAME_PREFIX, output_account_name, container_name, OUTPUT_ASSET_SUFFIX)

    file_name = PurePath(str(source_location)).name.lower()
    return _compose(ASSET_NAME_PREFIX, output_account_name, file_name, OUTPUT_ASSET_SUFFIX)


def output_container_for(source_location: str, output_account_name: Optional[str]) -> Optional[str]:
    """
    Returns the container a job's output is copied into when the caller names none.

    This is the container of the first input, moved to `output_account_name` when one
    is given. The SAS query of the input, if any, is dropped.

    Example:
        >>> output_container_for("https://inbox.blob.core.windows.net/videos/clip.mp4", "out")
        'https://out.blob.core.windows.net/videos'

    Returns:
        The container URI, or None for a local file path or a URI without a container.
    """
    if not is_blob_uri(source_location):
        return None
    container = BlobLocation.parse(source_location).container().with_query(None)
    if not container.container_name:
        return None
    if output_account_name:
        container = container.with_account(output_account_name)
    return container.to_uri()


def job_name(output_asset: str) -> str:
    """Returns `{output_asset}-{random suffix}` for a new job."""
    return f"{output_asset}-{uuid.uuid4().hex[:JOB_NAME_SUFFIX_LENGTH]}"
