"""
`BlobStore` implementation for the blob storage REST API.

- `exists` is a HEAD request on the blob.
- `copy` starts a server-side Copy Blob (a PUT carrying `x-ms-copy-source`). The
  source is handed over as a read-only SAS URL from `get_sas_url`. The storage
  service copies asynchronously; `HttpCopyOperation.wait_for_completion` polls the
  destination's `x-ms-copy-status` until it is no longer "pending".
- `upload_file` streams a local file with a single Put Blob.
- `get_sas_url` signs a user delegation SAS: it asks the storage service for a
  user delegation key (authorized by the bearer token) and signs the read
  permission for one blob with it.

Requests are authorized with a bearer token when one is configured. Without a token,
the blob URIs themselves must carry SAS tokens.
"""
import base64
import binascii
import hashlib
import hmac
import time
import xml.etree.ElementTree as ET
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, NamedTuple, Optional
from urllib.parse import urlencode, urlunsplit

import httpx
from loguru import logger

from ..config.common import (
    BLOB_API_VERSION,
    BLOB_COPY_MAX_WAIT_SECONDS,
    BLOB_COPY_POLL_INTERVAL_SECONDS,
    BLOB_COPY_SAS_TTL_SECONDS,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    SAS_CLOCK_SKEW_SECONDS,
    SAS_TIME_FORMAT,
)
from ..domain.exceptions import RemoteError
from ..services.interfaces import BlobStore, CopyOperation
from ..utils.blob_uri import BlobLocation

COPY_STATUS_HEADER = "x-ms-copy-status"
COPY_STATUS_DESCRIPTION_HEADER = "x-ms-copy-status-description"
COPY_ID_HEADER = "x-ms-copy-id"


class UserDelegationKey(NamedTuple):
    """A key the storage service hands out for signing SAS tokens on behalf of a principal."""

    signed_oid: str
    signed_tid: str
    signed_start: str
    signed_expiry: str
    signed_service: str
    signed_version: str
    value: str


def _format_sas_time(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime(SAS_TIME_FORMAT)


class HttpCopyOperation(CopyOperation):
    """A Copy Blob started on the storage service."""

    def __init__(
        self,
        store: "HttpBlobStore",
        dest_uri: str,
        status: str,
        copy_id: Optional[str] = None,
        poll_interval: float = BLOB_COPY_POLL_INTERVAL_SECONDS,
        max_wait: float = BLOB_COPY_MAX_WAIT_SECONDS,
    ):
        self.store = store
        self.dest_uri = dest_uri
        self.status = status
        self.copy_id = copy_id
        self.poll_interval = poll_interval
        self.max_wait = max_wait

    def wait_for_completion(self) -> str:
        waited = 0.0
        while self.status == "pending":
            if waited >= self.max_wait:
                raise RemoteError(
                    f"Copy {self.copy_id} to {self.dest_uri} did not complete within {self.max_wait} seconds.",
                    method="HEAD",
                    target=self.dest_uri,
                )
            self.store.sleep(self.poll_interval)
            waited += self.poll_interval
            response = self.store._send("HEAD", self.dest_uri)
            self.status = response.headers.get(COPY_STATUS_HEADER, "success").lower()
            description = response.headers.get(COPY_STATUS_DESCRIPTION_HEADER)
            if self.status in ("failed", "aborted"):
                raise RemoteError(
                    f"Copy {self.copy_id} to {self.dest_uri} {self.status}: {description}",
                    method="HEAD",
                    target=self.dest_uri,
                    status_code=response.status_code,
                )

        if self.status != "success":
            raise RemoteError(f"Copy to {self.dest_uri} ended with status {self.status}.", target=self.dest_uri)
        return self.dest_uri


class HttpBlobStore(BlobStore):
    """
    Talks to blob storage over its REST API.

    Args:
        access_token: Bearer token for the storage accounts involved, or None to rely
                      on SAS tokens in the URIs.
        timeout: Timeout of a single request, in seconds.
        transport: Optional httpx transport (tests use `httpx.MockTransport`).
        sleep: Called between two polls of a pending copy.
    """

    def __init__(
        self,
        access_token: Optional[str] = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.access_token = access_token
        self.sleep = sleep
        headers = {"x-ms-version": BLOB_API_VERSION}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        self._client = httpx.Client(headers=headers, timeout=timeout, transport=transport)

    def close(self):
        self._client.close()

    def __enter__(self) -> "HttpBlobStore":
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    def _send(self, method: str, uri: str, headers: Optional[Dict[str, str]] = None, content=None, allow_404=False):
        try:
            response = self._client.request(method, uri, headers=headers, content=content)
        except httpx.HTTPError as e:
            raise RemoteError(f"Blob request failed: {type(e).__name__}: {e}", method=method, target=uri) from e

        if response.is_success or (allow_404 and response.status_code == 404):
            return response
        raise RemoteError(
            f"Blob request failed with status {response.status_code}.",
            method=method,
            target=uri,
            status_code=response.status_code,
            body=response.text,
        )

    def exists(self, uri: str) -> bool:
        return self._send("HEAD", uri, allow_404=True).status_code != 404

    def copy(self, source_uri: str, dest_uri: str) -> CopyOperation:
        source_url = self.get_sas_url(source_uri, timedelta(seconds=BLOB_COPY_SAS_TTL_SECONDS))
        response = self._send("PUT", dest_uri, headers={"x-ms-copy-source": source_url})
        status = response.headers.get(COPY_STATUS_HEADER, "pending").lower()
        copy_id = response.headers.get(COPY_ID_HEADER)
        logger.debug(f"Started copy {copy_id} of {source_uri} to {dest_uri} ({status})")
        return HttpCopyOperation(self, dest_uri, status, copy_id)

    def upload_file(self, file_path: str, dest_uri: str) -> str:
        path = Path(file_path)
        with path.open("rb") as f:
            self._send("PUT", dest_uri, headers={"x-ms-blob-type": "BlockBlob"}, content=f)
        logger.debug(f"Uploaded {path} to {dest_uri}")
        return dest_uri

    def get_sas_url(self, uri: str, ttl: timedelta) -> str:
        """
        Returns `uri` with a read-only user delegation SAS valid for `ttl`.

        A URI that already carries a query is assumed to be signed and is returned
        unchanged, as is every URI when no bearer token is configured.

        Raises:
            RemoteError: If the user delegation key could not be obtained.
        """
        location = BlobLocation.parse(uri)
        if location.query:
            return uri
        if not self.access_token:
            logger.debug(f"No access token configured, using {uri} without a SAS")
            return uri

        now = datetime.now(timezone.utc)
        start = _format_sas_time(now - timedelta(seconds=SAS_CLOCK_SKEW_SECONDS))
        expiry = _format_sas_time(now + ttl)
        key = self._get_user_delegation_key(location, start, expiry)

        fields = {
            "sp": "r",
            "st": start,
            "se": expiry,
            "skoid": key.signed_oid,
            "sktid": key.signed_tid,
            "skt": key.signed_start,
            "ske": key.signed_expiry,
            "sks": key.signed_service,
            "skv": key.signed_version,
            "spr": "https" if location.scheme == "https" else "https,http",
            "sv": BLOB_API_VERSION,
            "sr": "b",
        }
        canonical_resource = f"/blob/{location.account_name}/{location.container_name}/{location.blob_name}"
        string_to_sign = "\n".join(
            [
                fields["sp"],
                fields["st"],
                fields["se"],
                canonical_resource,
                fields["skoid"],
                fields["sktid"],
                fields["skt"],
                fields["ske"],
                fields["sks"],
                fields["skv"],
                "",  # authorized user object id
                "",  # unauthorized user object id
                "",  # correlation id
                "",  # ip range
                fields["spr"],
                fields["sv"],
                fields["sr"],
                "",  # snapshot time
                "",  # encryption scope
                "",  # cache-control
                "",  # content-disposition
                "",  # content-encoding
                "",  # content-language
                "",  # content-type
            ]
        )
        digest = hmac.new(base64.b64decode(key.value), string_to_sign.encode("utf-8"), hashlib.sha256).digest()
        fields["sig"] = base64.b64encode(digest).decode("ascii")

        logger.debug(f"Issued a read SAS for {uri} expiring {expiry}")
        return location.with_query(urlencode(fields)).to_uri()

    def _get_user_delegation_key(self, location: BlobLocation, start: str, expiry: str) -> UserDelegationKey:
        path = f"/{location.account_name}/" if location.path_style else "/"
        service_uri = urlunsplit((location.scheme, location.netloc, path, "restype=service&comp=userdelegationkey", ""))
        body = (
            '<?xml version="1.0" encoding="utf-8"?>'
            f"<KeyInfo><Start>{start}</Start><Expiry>{expiry}</Expiry></KeyInfo>"
        )
        response = self._send("POST", service_uri, headers={"Content-Type": "application/xml"}, content=body)

        try:
            root = ET.fromstring(response.content)
            key = UserDelegationKey(
                signed_oid=root.findtext("SignedOid", ""),
                signed_tid=root.findtext("SignedTid", ""),
                signed_start=root.findtext("SignedStart", ""),
                signed_expiry=root.findtext("SignedExpiry", ""),
                signed_service=root.findtext("SignedService", ""),
                signed_version=root.findtext("SignedVersion", ""),
                value=root.findtext("Value") or "",
            )
        except ET.ParseError as e:
            raise RemoteError(
                f"Unreadable user delegation key: {e}", method="POST", target=service_uri, body=response.text
            ) from e

        if not key.value:
            raise RemoteError("The user delegation key carries no value.", method="POST", target=service_uri)
        try:
            base64.b64decode(key.value, validate=True)
        except binascii.Error as e:
            raise RemoteError(f"The user delegation key is not base64: {e}", method="POST", target=service_uri) from e
        return key
