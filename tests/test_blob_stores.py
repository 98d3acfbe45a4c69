import base64
import hashlib
import hmac
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from encode_orchestrator.clients.http_blob_store import HttpBlobStore
from encode_orchestrator.clients.local_blob_store import LocalBlobStore
from encode_orchestrator.config.common import BLOB_API_VERSION
from encode_orchestrator.domain.exceptions import RemoteError

SOURCE = "https://inbox.blob.core.windows.net/videos/clip.mp4"
DEST = "https://media.blob.core.windows.net/asset-1/clip.mp4"
KEY_VALUE = base64.b64encode(b"delegation-secret").decode()
DELEGATION_KEY_XML = f"""<?xml version="1.0" encoding="utf-8"?>
<UserDelegationKey>
  <SignedOid>oid-1</SignedOid>
  <SignedTid>tid-1</SignedTid>
  <SignedStart>2024-01-01T00:00:00Z</SignedStart>
  <SignedExpiry>2024-01-02T00:00:00Z</SignedExpiry>
  <SignedService>b</SignedService>
  <SignedVersion>{BLOB_API_VERSION}</SignedVersion>
  <Value>{KEY_VALUE}</Value>
</UserDelegationKey>"""


def key_handler(requests, body=DELEGATION_KEY_XML, status_code=200):
    def handler(request):
        requests.append(request)
        return httpx.Response(status_code, content=body)

    return handler


class TestHttpBlobStore:
    def test_exists(self):
        def handler(request):
            assert request.method == "HEAD"
            return httpx.Response(200 if request.url.path.endswith("clip.mp4") else 404)

        store = HttpBlobStore(transport=httpx.MockTransport(handler))
        assert store.exists(SOURCE)
        assert not store.exists("https://inbox.blob.core.windows.net/videos/other.mp4")

    def test_exists_propagates_other_failures(self):
        store = HttpBlobStore(transport=httpx.MockTransport(lambda request: httpx.Response(403)))
        with pytest.raises(RemoteError) as exc_info:
            store.exists(SOURCE)
        assert exc_info.value.status_code == 403

    def test_copy_polls_until_success(self):
        requests = []
        head_statuses = iter(["pending", "success"])

        def handler(request):
            requests.append(request)
            if request.method == "POST":
                return httpx.Response(200, content=DELEGATION_KEY_XML)
            if request.method == "PUT":
                return httpx.Response(202, headers={"x-ms-copy-status": "pending", "x-ms-copy-id": "c1"})
            return httpx.Response(200, headers={"x-ms-copy-status": next(head_statuses)})

        sleeps = []
        store = HttpBlobStore("token", transport=httpx.MockTransport(handler), sleep=sleeps.append)

        assert store.copy(SOURCE, DEST).wait_for_completion() == DEST

        key_request, put = requests[0], requests[1]
        assert key_request.url.host == "inbox.blob.core.windows.net"
        assert put.headers["x-ms-copy-source"].startswith(SOURCE + "?")
        assert "sp=r" in put.headers["x-ms-copy-source"]
        assert "sig=" in put.headers["x-ms-copy-source"]
        assert "x-ms-copy-source-authorization" not in put.headers
        assert put.headers["Authorization"] == "Bearer token"
        assert "x-ms-version" in put.headers
        assert [r.method for r in requests] == ["POST", "PUT", "HEAD", "HEAD"]
        assert len(sleeps) == 2

    def test_synchronous_copy_needs_no_polling(self):
        store = HttpBlobStore(
            transport=httpx.MockTransport(lambda request: httpx.Response(202, headers={"x-ms-copy-status": "success"}))
        )
        copy = store.copy(SOURCE, DEST)
        assert "Authorization" not in store._client.headers
        assert copy.wait_for_completion() == DEST

    def test_failed_copy(self):
        def handler(request):
            if request.method == "PUT":
                return httpx.Response(202, headers={"x-ms-copy-status": "pending", "x-ms-copy-id": "c1"})
            return httpx.Response(
                200, headers={"x-ms-copy-status": "failed", "x-ms-copy-status-description": "500 InternalError"}
            )

        store = HttpBlobStore(transport=httpx.MockTransport(handler), sleep=lambda seconds: None)
        with pytest.raises(RemoteError, match="InternalError"):
            store.copy(SOURCE, DEST).wait_for_completion()

    def test_rejected_copy(self):
        store = HttpBlobStore(transport=httpx.MockTransport(lambda request: httpx.Response(404, text="BlobNotFound")))
        with pytest.raises(RemoteError) as exc_info:
            store.copy(SOURCE, DEST)
        assert exc_info.value.body == "BlobNotFound"
        assert exc_info.value.method == "PUT"

    def test_upload_file(self, tmp_path):
        media = tmp_path / "clip.mp4"
        media.write_bytes(b"frames")
        seen = {}

        def handler(request):
            seen["blob_type"] = request.headers["x-ms-blob-type"]
            seen["body"] = request.read()
            return httpx.Response(201)

        store = HttpBlobStore(transport=httpx.MockTransport(handler))
        assert store.upload_file(str(media), DEST) == DEST
        assert seen == {"blob_type": "BlockBlob", "body": b"frames"}


class TestHttpSasUrl:
    def test_signs_a_read_sas_with_the_delegation_key(self):
        requests = []
        store = HttpBlobStore("token", transport=httpx.MockTransport(key_handler(requests)))

        before = datetime.now(timezone.utc).replace(microsecond=0)
        url = store.get_sas_url(SOURCE, timedelta(hours=4))

        key_request = requests[0]
        assert key_request.method == "POST"
        assert key_request.url.path == "/"
        assert key_request.url.params["restype"] == "service"
        assert key_request.url.params["comp"] == "userdelegationkey"
        assert b"<KeyInfo><Start>" in key_request.read()

        assert url.startswith(SOURCE + "?")
        query = {name: values[0] for name, values in parse_qs(urlsplit(url).query).items()}
        assert query["sp"] == "r"
        assert query["sr"] == "b"
        assert query["spr"] == "https"
        assert query["skoid"] == "oid-1"
        assert query["sv"] == BLOB_API_VERSION

        expiry = datetime.strptime(query["se"], "%Y-%m-%dT%H:%M:%SZ").replace(tzinfo=timezone.utc)
        start = datetime.strptime(query["st"], "%Y-%m-%dT%H:%M:%SZ").replace(tzinfo=timezone.utc)
        assert timedelta(hours=4) <= expiry - before <= timedelta(hours=4, minutes=1)
        assert start < before

        string_to_sign = "\n".join(
            [query["sp"], query["st"], query["se"], "/blob/inbox/videos/clip.mp4"]
            + [query[name] for name in ("skoid", "sktid", "skt", "ske", "sks", "skv")]
            + ["", "", "", "", query["spr"], query["sv"], query["sr"]]
            + [""] * 7
        )
        expected = hmac.new(base64.b64decode(KEY_VALUE), string_to_sign.encode(), hashlib.sha256).digest()
        assert query["sig"] == base64.b64encode(expected).decode()

    def test_path_style_key_request_goes_to_the_account(self):
        requests = []
        store = HttpBlobStore("token", transport=httpx.MockTransport(key_handler(requests)))

        url = store.get_sas_url("http://127.0.0.1:10000/devstoreaccount1/videos/clip.mp4", timedelta(minutes=5))

        assert requests[0].url.path == "/devstoreaccount1/"
        assert "spr=https%2Chttp" in url

    @pytest.mark.parametrize(
        "access_token, uri",
        [
            (None, SOURCE),
            ("token", SOURCE + "?sv=2020-12-06&sig=abc"),
        ],
    )
    def test_returns_uri_unchanged(self, access_token, uri):
        requests = []
        store = HttpBlobStore(access_token, transport=httpx.MockTransport(key_handler(requests)))
        assert store.get_sas_url(uri, timedelta(hours=1)) == uri
        assert requests == []

    @pytest.mark.parametrize(
        "body, status_code",
        [
            ("AuthorizationPermissionMismatch", 403),
            ("<UserDelegationKey", 200),
            ("<UserDelegationKey><SignedOid>oid-1</SignedOid></UserDelegationKey>", 200),
            ("<UserDelegationKey><Value>not base64!</Value></UserDelegationKey>", 200),
        ],
    )
    def test_unusable_delegation_key(self, body, status_code):
        store = HttpBlobStore("token", transport=httpx.MockTransport(key_handler([], body, status_code)))
        with pytest.raises(RemoteError) as exc_info:
            store.get_sas_url(SOURCE, timedelta(hours=1))
        assert exc_info.value.method == "POST"

    def test_copy_is_not_started_without_a_key(self):
        requests = []
        store = HttpBlobStore("token", transport=httpx.MockTransport(key_handler(requests, "denied", 403)))
        with pytest.raises(RemoteError):
            store.copy(SOURCE, DEST)
        assert [r.method for r in requests] == ["POST"]


class TestLocalBlobStore:
    def test_upload_copy_and_exists(self, tmp_path):
        store = LocalBlobStore(tmp_path / "blobs")
        media = tmp_path / "clip.mp4"
        media.write_bytes(b"frames")

        store.upload_file(str(media), SOURCE)
        assert store.exists(SOURCE)
        assert (tmp_path / "blobs" / "inbox" / "videos" / "clip.mp4").read_bytes() == b"frames"

        assert store.copy(SOURCE, DEST).wait_for_completion() == DEST
        assert store.get_file_path(DEST).read_bytes() == b"frames"

    def test_path_style_uris(self, tmp_path):
        store = LocalBlobStore(tmp_path)
        path = store.get_file_path("http://127.0.0.1:10000/devstoreaccount1/videos/a/b.mp4")
        assert path == tmp_path.resolve() / "devstoreaccount1" / "videos" / "a" / "b.mp4"

    def test_copy_of_missing_blob(self, tmp_path):
        store = LocalBlobStore(tmp_path)
        assert not store.exists(SOURCE)
        with pytest.raises(RemoteError):
            store.copy(SOURCE, DEST)

    @pytest.mark.parametrize(
        "uri", ["https://inbox.blob.core.windows.net/videos", "https://inbox.blob.core.windows.net/videos/../../../x"]
    )
    def test_rejects_uris_without_blob_or_outside_root(self, tmp_path, uri):
        with pytest.raises(RemoteError):
            LocalBlobStore(tmp_path / "root").get_file_path(uri)

    def test_get_sas_url(self, tmp_path):
        store = LocalBlobStore(tmp_path)
        url = store.get_sas_url(SOURCE, timedelta(hours=4))

        query = parse_qs(urlsplit(url).query)
        assert url.startswith(SOURCE + "?")
        assert query["sp"] == ["r"]
        expiry = datetime.strptime(query["se"][0], "%Y-%m-%dT%H:%M:%SZ").replace(tzinfo=timezone.utc)
        assert expiry > datetime.now(timezone.utc) + timedelta(hours=3)

    def test_copy_from_a_sas_url(self, tmp_path):
        store = LocalBlobStore(tmp_path)
        media = tmp_path / "clip.mp4"
        media.write_bytes(b"frames")
        store.upload_file(str(media), SOURCE)

        source_url = store.get_sas_url(SOURCE, timedelta(minutes=5))
        assert store.copy(source_url, DEST).wait_for_completion() == DEST
        assert store.get_file_path(DEST).read_bytes() == b"frames"

    def test_copy_from_an_expired_sas_url(self, tmp_path):
        store = LocalBlobStore(tmp_path)
        media = tmp_path / "clip.mp4"
        media.write_bytes(b"frames")
        store.upload_file(str(media), SOURCE)

        with pytest.raises(RemoteError) as exc_info:
            store.copy(store.get_sas_url(SOURCE, timedelta(hours=-1)), DEST)
        assert exc_info.value.status_code == 403
        assert not store.exists(DEST)
