"""
A `BlobStore` that keeps blobs in a local directory.

Blob URIs are mapped onto `{root}/{account}/{container}/{blob name}`; the host and
port of a URI are ignored. SAS URLs are not signed, but their expiry (`se`) is
honoured when a copy reads its source. Copies are synchronous, so the returned
`CopyOperation` is already complete. Meant for local development against an
emulated remote service, and for tests.
"""
import shutil
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Union
from urllib.parse import parse_qs, urlencode

from loguru import logger

from ..config.common import SAS_TIME_FORMAT
from ..domain.exceptions import RemoteError
from ..services.interfaces import BlobStore, CopyOperation
from ..utils.blob_uri import BlobLocation


class CompletedCopy(CopyOperation):
    """A copy that finished before it was returned."""

    def __init__(self, dest_uri: str):
        self.dest_uri = dest_uri

    def wait_for_completion(self) -> str:
        return self.dest_uri


class LocalBlobStore(BlobStore):
    """Stores blobs below `root_dir`."""

    def __init__(self, root_dir: Union[str, Path]):
        self.root_dir = Path(root_dir).resolve()
        self.root_dir.mkdir(parents=True, exist_ok=True)

    def get_file_path(self, uri: str) -> Path:
        """
        Returns the local path that backs the blob at `uri`.

        Raises:
            ValidationError: If `uri` is not a blob URI.
            RemoteError: If the URI names no blob, or escapes the root directory.
        """
        location = BlobLocation.parse(uri)
        if not location.container_name or not location.blob_name:
            raise RemoteError(f"{uri} does not name a blob.", target=uri)

        path = (self.root_dir / location.account_name / location.container_name / location.blob_name).resolve()
        if self.root_dir not in path.parents:
            raise RemoteError(f"{uri} points outside of {self.root_dir}.", target=uri)
        return path

    def exists(self, uri: str) -> bool:
        return self.get_file_path(uri).is_file()

    def get_sas_url(self, uri: str, ttl: timedelta) -> str:
        expiry = (datetime.now(timezone.utc) + ttl).strftime(SAS_TIME_FORMAT)
        return BlobLocation.parse(uri).with_query(urlencode({"sp": "r", "se": expiry})).to_uri()

    def _check_sas_expiry(self, uri: str):
        expiry = parse_qs(BlobLocation.parse(uri).query).get("se")
        if not expiry:
            return
        try:
            expires_at = datetime.strptime(expiry[0], SAS_TIME_FORMAT).replace(tzinfo=timezone.utc)
        except ValueError as e:
            raise RemoteError(f"Malformed SAS expiry in {uri}: {e}", method="COPY", target=uri, status_code=403) from e
        if expires_at < datetime.now(timezone.utc):
            raise RemoteError(f"The SAS of {uri} expired at {expiry[0]}.", method="COPY", target=uri, status_code=403)

    def copy(self, source_uri: str, dest_uri: str) -> CopyOperation:
        self._check_sas_expiry(source_uri)
        source = self.get_file_path(source_uri)
        destination = self.get_file_path(dest_uri)
        if not source.is_file():
            raise RemoteError(f"Blob {source_uri} does not exist.", method="COPY", target=source_uri, status_code=404)
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, destination)
        logger.debug(f"Copied {source} to {destination}")
        return CompletedCopy(dest_uri)

    def upload_file(self, file_path: str, dest_uri: str) -> str:
        destination = self.get_file_path(dest_uri)
        destination.parent.mkdir(parents=True, exist_ok=True)
        try:
            shutil.copy2(file_path, destination)
        except OSError as e:
            raise RemoteError(f"Could not upload {file_path}: {e}", method="UPLOAD", target=dest_uri) from e
        logger.debug(f"Uploaded {file_path} to {destination}")
        return dest_uri
