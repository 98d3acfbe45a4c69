"""
Helpers to take blob URIs apart and put them back together.

Blob URIs come in two shapes:

- virtual-host style: `https://{account}.blob.core.windows.net/{container}/{blob}`,
  where the account is the first label of the host name;
- path style, used by local emulators and IP endpoints:
  `http://127.0.0.1:10000/{account}/{container}/{blob}`.

Only the parts the orchestrator needs are modeled: the account, the container and
the blob name (which may contain '/').
"""
import ipaddress
from dataclasses import dataclass, replace
from typing import Optional
from urllib.parse import quote, unquote, urlsplit, urlunsplit

from ..domain.exceptions import ValidationError

_PATH_STYLE_HOSTS = {"localhost"}


def is_blob_uri(location: str) -> bool:
    """Returns True if `location` is an http(s) URI rather than a local file path."""
    return urlsplit(str(location)).scheme.lower() in ("http", "https")


def _is_path_style(host: str) -> bool:
    if host in _PATH_STYLE_HOSTS:
        return True
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return False
    return True


@dataclass(frozen=True)
class BlobLocation:
    """
    A parsed blob (or container) URI.

    Attributes:
        scheme: "http" or "https".
        netloc: Host and optional port.
        account_name: The storage account.
        container_name: The container, or "" for an account-level URI.
        blob_name: The blob path inside the container, or "" for a container URI.
        query: The query string (e.g. a SAS token), without the leading '?'.
        path_style: True if the account is the first path segment.
    """

    scheme: str
    netloc: str
    account_name: str
    container_name: str = ""
    blob_name: str = ""
    query: str = ""
    path_style: bool = False

    @classmethod
    def parse(cls, uri: str) -> "BlobLocation":
        """
        Parses a blob or container URI.

        Raises:
            ValidationError: If the text is not an http(s) URI with a host.
        """
        parts = urlsplit(str(uri))
        if parts.scheme.lower() not in ("http", "https") or not parts.hostname:
            raise ValidationError(f"Not a blob URI: {uri}")

        host = parts.hostname
        segments = [unquote(s) for s in parts.path.lstrip("/").split("/")] if parts.path.strip("/") else []
        path_style = _is_path_style(host)

        if path_style:
            account_name = segments.pop(0) if segments else ""
        else:
            account_name = host.split(".")[0]

        container_name = segments[0] if segments else ""
        blob_name = "/".join(segments[1:]) if len(segments) > 1 else ""
        return cls(
            scheme=parts.scheme.lower(),
            netloc=parts.netloc,
            account_name=account_name,
            container_name=container_name,
            blob_name=blob_name,
            query=parts.query,
            path_style=path_style,
        )

    def with_blob(self, blob_name: str) -> "BlobLocation":
        """Returns the location of `blob_name` in the same container."""
        return replace(self, blob_name=blob_name)

    def with_query(self, query: Optional[str]) -> "BlobLocation":
        return replace(self, query=query or "")

    def with_account(self, account_name: str) -> "BlobLocation":
        """Returns the same container and blob in another storage account of the same service."""
        if self.path_style:
            return replace(self, account_name=account_name)
        _, dot, domain = self.netloc.partition(".")
        return replace(self, account_name=account_name, netloc=f"{account_name}{dot}{domain}")

    def container(self) -> "BlobLocation":
        """Returns the location of the container itself."""
        return replace(self, blob_name="")

    def to_uri(self) -> str:
        segments = []
        if self.path_style:
            segments.append(self.account_name)
        if self.container_name:
            segments.append(self.container_name)
        if self.blob_name:
            segments.append(self.blob_name)
        path = "/" + "/".join(quote(s, safe="/") for s in segments) if segments else ""
        return urlunsplit((self.scheme, self.netloc, path, self.query, ""))

    def __str__(self) -> str:
        return self.to_uri()
