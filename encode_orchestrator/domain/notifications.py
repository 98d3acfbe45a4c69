"""
Notification messages delivered by the remote encoding service.

The remote service posts a JSON payload to the registered callback endpoint for every
task state change and progress update. The webhook front door (which authenticates
the request) turns the payload into a `NotificationMessage` with `from_payload()` and
hands it to the `NotificationProcessor`. A message is consumed once and never stored.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from .exceptions import ProtocolError

JOB_ID_PROPERTY = "jobId"
NEW_STATE_PROPERTY = "newState"
LAST_COMPUTED_PROGRESS_PROPERTY = "lastComputedProgress"


class NotificationEventType(str, Enum):
    """The event types the orchestrator understands."""

    TASK_STATE_CHANGE = "TaskStateChange"
    TASK_PROGRESS = "TaskProgress"


def _get_any_case(payload: Mapping[str, Any], key: str) -> Any:
    # The remote service sends PascalCase envelopes, test tools usually camelCase.
    if key in payload:
        return payload[key]
    pascal_key = key[0].upper() + key[1:]
    return payload.get(pascal_key)


@dataclass(frozen=True)
class NotificationMessage:
    """
    One decoded notification.

    Attributes:
        event_type: The event type as sent, e.g. "TaskStateChange". Unknown types are
                    kept verbatim so the processor can reject them explicitly.
        properties: The event's property bag. Recognised keys depend on the event
                    type: `jobId` always, `newState` for state changes and
                    `lastComputedProgress` for progress events.
        message_version: Envelope version, if sent.
        etag: Envelope ETag, if sent.
        timestamp: Envelope timestamp, if sent.
    """

    event_type: str
    properties: Dict[str, str] = field(default_factory=dict)
    message_version: Optional[str] = None
    etag: Optional[str] = None
    timestamp: Optional[str] = None

    @property
    def job_id(self) -> Optional[str]:
        return self.properties.get(JOB_ID_PROPERTY)

    @classmethod
    def from_payload(cls, payload: Any) -> "NotificationMessage":
        """
        Builds a message from a decoded webhook JSON body.

        Both `eventType`/`properties` and `EventType`/`Properties` spellings are
        accepted. Property values are converted to strings; a null value drops the
        property.

        Raises:
            ProtocolError: If the payload is not an object, has no event type, or
                           its properties are not an object.
        """
        if not isinstance(payload, Mapping):
            raise ProtocolError(
                f"Notification payload must be a JSON object, got {type(payload).__name__}."
            )

        event_type = _get_any_case(payload, "eventType")
        if event_type is None or not str(event_type).strip():
            raise ProtocolError("Notification payload has no eventType.")

        raw_properties = _get_any_case(payload, "properties") or {}
        if not isinstance(raw_properties, Mapping):
            raise ProtocolError("Notification payload properties must be a JSON object.")

        properties = {
            str(key): str(value)
            for key, value in raw_properties.items()
            if value is not None
        }

        def optional_text(key: str) -> Optional[str]:
            value = _get_any_case(payload, key)
            return None if value is None else str(value)

        return cls(
            event_type=str(event_type),
            properties=properties,
            message_version=optional_text("messageVersion"),
            etag=optional_text("eTag"),
            timestamp=optional_text("timeStamp"),
        )
