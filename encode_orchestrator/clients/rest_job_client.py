"""
`RemoteJobClient` implementation for the media services v2 REST API.

The v2 API is an OData service: entities are addressed as `Assets('{id}')`, single
entities come back as `{"d": {...}}` and collections as `{"d": {"results": [...]}}`
when the `odata=verbose` JSON format is requested.

One `httpx.Client` is created when the `RestJobClient` is created and carries the
base URL, the bearer token, the OData headers and the request timeout. Nothing is
configured lazily. Close the client with `close()` or use it as a context manager.
"""
import json
from typing import Any, Dict, List, Optional, Tuple
from xml.sax.saxutils import escape

import httpx
from loguru import logger

from ..config.common import (
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    NOTIFICATION_CREDENTIAL_TYPE_NONE,
    NOTIFICATION_ENDPOINT_TYPE_WEBHOOK,
    NOTIFICATION_PROTECTION_KEY_TYPE,
    NOTIFICATION_TARGET_TASK_STATE,
    PLAIN_JSON,
    REST_DEFAULT_HEADERS,
)
from ..domain.exceptions import NotFoundError, RemoteError
from ..domain.models import (
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
from ..services.interfaces import RemoteJobClient

_ATTRIBUTE_ENTITIES = {'"': "&quot;"}


def _odata_key(value: str) -> str:
    # Single quotes inside an OData string key are doubled.
    return "'" + str(value).replace("'", "''") + "'"


def _version_key(version: Any) -> Tuple[int, ...]:
    # "1.10" sorts after "1.9"; unparsable versions sort first.
    try:
        return tuple(int(part) for part in str(version).split("."))
    except ValueError:
        return ()


class RestJobClient(RemoteJobClient):
    """
    Talks to the v2 REST API of a media account.

    Args:
        api_endpoint: The account's REST endpoint, e.g.
                      "https://myaccount.restv2.westeurope.media.azure.net/api/".
        access_token: Bearer token sent with every request.
        timeout: Timeout of a single request, in seconds.
        transport: Optional httpx transport (tests use `httpx.MockTransport`).
    """

    def __init__(
        self,
        api_endpoint: str,
        access_token: str,
        timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = api_endpoint if api_endpoint.endswith("/") else api_endpoint + "/"
        headers = dict(REST_DEFAULT_HEADERS)
        headers["Authorization"] = f"Bearer {access_token}"
        self._client = httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def close(self):
        self._client.close()

    def __enter__(self) -> "RestJobClient":
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    # --- Request helpers ---
    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
        body: Any = None,
        content_type: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        headers = {"Content-Type": content_type} if content_type else None
        content = None if body is None else json.dumps(body)
        try:
            response = self._client.request(method, path, params=params, content=content, headers=headers)
        except httpx.HTTPError as e:
            raise RemoteError(
                f"Request to the media service failed: {type(e).__name__}: {e}",
                method=method,
                target=self.base_url + path,
                body=content,
            ) from e

        if not response.is_success:
            raise RemoteError(
                self._describe_failure(response, content),
                method=method,
                target=str(response.request.url),
                status_code=response.status_code,
                body=response.text,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise RemoteError(
                f"The media service returned a body that is not JSON: {e}",
                method=method,
                target=str(response.request.url),
                status_code=response.status_code,
                body=response.text,
            ) from e

    def _describe_failure(self, response: httpx.Response, request_body: Optional[str]) -> str:
        request = response.request
        details = {
            "method": request.method,
            "host": request.url.host,
            "path": request.url.raw_path.decode("ascii", errors="replace"),
            "requestBody": request_body,
            "responseUri": str(response.url),
            "headers": {k: v for k, v in response.headers.items()},
            "status": response.status_code,
            "body": response.text,
        }
        return json.dumps(details)

    @staticmethod
    def _entity(data: Optional[Dict[str, Any]], path: str) -> Dict[str, Any]:
        entity = (data or {}).get("d")
        if not isinstance(entity, dict):
            raise RemoteError(f"Response of {path} has no 'd' entity.", target=path, body=data)
        return entity

    @classmethod
    def _results(cls, data: Optional[Dict[str, Any]], path: str) -> List[Dict[str, Any]]:
        results = cls._entity(data, path).get("results")
        if not isinstance(results, list):
            raise RemoteError(f"Response of {path} has no 'd.results' collection.", target=path, body=data)
        return results

    @staticmethod
    def _field(entity: Dict[str, Any], name: str, path: str) -> Any:
        if name not in entity or entity[name] is None:
            raise RemoteError(f"Response of {path} has no '{name}'.", target=path, body=entity)
        return entity[name]

    def _first_result(self, path: str) -> Dict[str, Any]:
        results = self._results(self._request("GET", path), path)
        if not results:
            raise RemoteError(f"Response of {path} is an empty collection.", method="GET", target=path)
        return results[0]

    # --- Assets ---
    def create_input_asset(self, name: str, account_name: Optional[str]) -> AssetHandle:
        body = {"Name": name}
        if account_name:
            body["StorageAccountName"] = account_name
        entity = self._entity(self._request("POST", "Assets", body=body), "Assets")
        return AssetHandle(
            id=self._field(entity, "Id", "Assets"),
            uri=self._field(entity, "Uri", "Assets"),
        )

    def create_file_infos(self, asset_id: str) -> None:
        self._request("GET", "CreateFileInfos", params={"assetid": _odata_key(asset_id)})

    def get_asset_location(self, asset_id: str) -> AssetLocation:
        path = f"Assets({_odata_key(asset_id)})"
        entity = self._entity(self._request("GET", path), path)
        return AssetLocation(name=self._field(entity, "Name", path), uri=self._field(entity, "Uri", path))

    def list_asset_file_names(self, asset_id: str) -> List[str]:
        path = f"Assets({_odata_key(asset_id)})/Files"
        return [self._field(f, "Name", path) for f in self._results(self._request("GET", path), path)]

    def delete_asset(self, asset_id: str) -> None:
        self._request("DELETE", f"Assets({_odata_key(asset_id)})")
        logger.debug(f"Deleted asset {asset_id}")

    # --- Processors ---
    def resolve_engine_id(self, engine_name: str) -> str:
        path = "MediaProcessors"
        data = self._request("GET", path, params={"$filter": f"Name eq {_odata_key(engine_name)}"})
        results = self._results(data, path)
        if not results:
            raise NotFoundError(f"Media processor '{engine_name}' not found.")
        latest = max(results, key=lambda processor: _version_key(processor.get("Version")))
        return self._field(latest, "Id", path)

    # --- Jobs ---
    def submit_job(
        self,
        name: str,
        engine_id: str,
        input_asset_id: str,
        configuration: str,
        output_asset: OutputAssetTarget,
        task_name: str,
        subscription: Optional[NotificationSubscription] = None,
    ) -> str:
        task = {
            "Name": task_name,
            "Configuration": configuration,
            "MediaProcessorId": engine_id,
            "TaskBody": self._task_body(output_asset),
        }
        if subscription is not None:
            task["TaskNotificationSubscriptions"] = [
                {
                    "IncludeTaskProgress": subscription.include_progress,
                    "NotificationEndPointId": subscription.endpoint_id,
                    "TargetTaskState": NOTIFICATION_TARGET_TASK_STATE,
                }
            ]
        body = {
            "Name": name,
            # '@odata.bind' only works with plain JSON, not with odata=verbose.
            "InputMediaAssets@odata.bind": [f"{self.base_url}Assets({_odata_key(input_asset_id)})"],
            "Tasks": [task],
        }
        entity = self._entity(self._request("POST", "Jobs", body=body, content_type=PLAIN_JSON), "Jobs")
        return self._field(entity, "Id", "Jobs")

    @staticmethod
    def _task_body(output_asset: OutputAssetTarget) -> str:
        asset_name = escape(output_asset.name, _ATTRIBUTE_ENTITIES)
        account_name = escape(output_asset.account_name or "", _ATTRIBUTE_ENTITIES)
        return (
            '<?xml version="1.0" encoding="utf-8"?><taskBody>'
            "<inputAsset>JobInputAsset(0)</inputAsset>"
            f'<outputAsset assetName="{asset_name}" storageAccountName="{account_name}" '
            'assetCreationOptions="0" assetFormatOption="0" >JobOutputAsset(0)</outputAsset>'
            "</taskBody>"
        )

    def get_job(self, job_id: str) -> JobSnapshot:
        path = f"Jobs({_odata_key(job_id)})"
        entity = self._entity(self._request("GET", path), path)
        try:
            state = JobState.from_wire(self._field(entity, "State", path))
        except ValueError as e:
            raise RemoteError(f"Job {job_id} reports an unknown state: {e}", target=path, body=entity) from e
        return JobSnapshot(id=self._field(entity, "Id", path), name=entity.get("Name") or "", state=state)

    def get_first_task(self, job_id: str) -> TaskRef:
        path = f"Jobs({_odata_key(job_id)})/Tasks"
        first = self._first_result(path)
        return TaskRef(id=self._field(first, "Id", path), name=self._field(first, "Name", path))

    def get_first_input_asset(self, job_id: str) -> AssetRef:
        path = f"Jobs({_odata_key(job_id)})/InputMediaAssets"
        first = self._first_result(path)
        return AssetRef(id=self._field(first, "Id", path), name=self._field(first, "Name", path))

    def get_first_output_asset(self, job_id: str) -> AssetRef:
        path = f"Jobs({_odata_key(job_id)})/OutputMediaAssets"
        first = self._first_result(path)
        return AssetRef(id=self._field(first, "Id", path), name=self._field(first, "Name", path))

    # --- Notification endpoints ---
    def get_or_create_callback_registration(self, name: str, endpoint_uri: str) -> str:
        path = "NotificationEndPoints"
        for endpoint in self._results(self._request("GET", path), path):
            if (
                str(endpoint.get("Name") or "").upper() == name.upper()
                and str(endpoint.get("EndPointAddress") or "").upper() == endpoint_uri.upper()
            ):
                return self._field(endpoint, "Id", path)

        body = {
            "Name": name,
            "EndPointAddress": endpoint_uri,
            "EndPointType": NOTIFICATION_ENDPOINT_TYPE_WEBHOOK,
            "CredentialType": NOTIFICATION_CREDENTIAL_TYPE_NONE,
            "ProtectionKeyType": NOTIFICATION_PROTECTION_KEY_TYPE,
        }
        entity = self._entity(self._request("POST", path, body=body), path)
        endpoint_id = self._field(entity, "Id", path)
        logger.info(f"Registered callback endpoint {name} for {endpoint_uri} as {endpoint_id}")
        return endpoint_id

    # --- Reserved capacity ---
    def get_reserved_capacity(self) -> ReservedCapacity:
        record = self._first_result("EncodingReservedUnitTypes")
        unit_type = record.get("ReservedUnitType")
        return ReservedCapacity(
            unit_type=None if unit_type is None else ReservedUnitType.from_wire(unit_type),
            max_units=record.get("MaxReservableUnits"),
            current_units=record.get("CurrentReservedUnits"),
            account_id=record.get("AccountId"),
        )

    def update_reserved_capacity(self, capacity: ReservedCapacity) -> None:
        body = {
            "AccountId": capacity.account_id,
            "ReservedUnitType": None if capacity.unit_type is None else capacity.unit_type.wire_value,
            "CurrentReservedUnits": capacity.current_units,
        }
        self._request(
            "PUT",
            f"EncodingReservedUnitTypes(guid'{capacity.account_id}')",
            body=body,
            content_type=PLAIN_JSON,
        )
