"""
Domain models describing jobs, assets and capacity on the remote encoding service.

None of these objects are persisted locally. The remote service is the single
source of truth for every job; these records only carry what a single call
returned, so they are small and immutable. Results that the remote API hands back
as pairs of values get a named record each, which keeps call sites readable
(`asset.id` instead of `result[0]`).
"""
from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple, Optional


class JobState(str, Enum):
    """
    The closed set of states a remote job (and its task) can be in.

    The remote API reports states as integers (0..6) in job snapshots and by name in
    notifications; `from_wire` accepts both.
    """

    QUEUED = "Queued"
    SCHEDULED = "Scheduled"
    PROCESSING = "Processing"
    FINISHED = "Finished"
    ERROR = "Error"
    CANCELED = "Canceled"
    CANCELING = "Canceling"

    @property
    def wire_value(self) -> int:
        return list(JobState).index(self)

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.FINISHED, JobState.ERROR, JobState.CANCELED)

    @classmethod
    def from_wire(cls, value) -> "JobState":
        """
        Converts a state as sent by the remote service into a `JobState`.

        Args:
            value: Either the integer code (e.g. 3) or the state name in any case
                   (e.g. "finished").

        Raises:
            ValueError: If the value does not name a known state.
        """
        if isinstance(value, int) and not isinstance(value, bool):
            states = list(cls)
            if 0 <= value < len(states):
                return states[value]
            raise ValueError(f"Unknown job state code: {value}")
        text = str(value).strip()
        if text.isdigit():
            return cls.from_wire(int(text))
        for state in cls:
            if state.value.lower() == text.lower():
                return state
        raise ValueError(f"Unknown job state: {value}")


class ReservedUnitType(str, Enum):
    """Speed tier of reserved encoding units (wire integers 0..2)."""

    S1 = "S1"
    S2 = "S2"
    S3 = "S3"

    @property
    def wire_value(self) -> int:
        return list(ReservedUnitType).index(self)

    @classmethod
    def from_wire(cls, value) -> "ReservedUnitType":
        if isinstance(value, int) and not isinstance(value, bool):
            return list(cls)[value]
        return cls(str(value).upper())


# --- Named results of remote calls ---
class AssetHandle(NamedTuple):
    """A freshly created asset: its id and the URI of its storage container."""

    id: str
    uri: str


class AssetRef(NamedTuple):
    """The id and name of an asset attached to a job."""

    id: str
    name: str


class TaskRef(NamedTuple):
    """The id and name of a job's task. The name carries the correlation data."""

    id: str
    name: str


class AssetLocation(NamedTuple):
    """The name of an asset and the URI of the container holding its files."""

    name: str
    uri: str


class OutputAssetTarget(NamedTuple):
    """Where the remote service should create the output asset of a job."""

    name: str
    account_name: Optional[str] = None


class NotificationSubscription(NamedTuple):
    """Request to be notified on a callback endpoint when a task reaches a state."""

    endpoint_id: str
    target_state: JobState = JobState.FINISHED
    include_progress: bool = True


class NotificationOutcome(NamedTuple):
    """What handling one notification resulted in, reported to the webhook handler."""

    job_id: str
    status: str


@dataclass(frozen=True)
class JobSnapshot:
    """A read of a remote job at one point in time."""

    id: str
    name: str
    state: JobState


@dataclass(frozen=True)
class ReservedCapacity:
    """
    The reserved encoding capacity of the media account.

    Attributes:
        unit_type: The speed tier of the reserved units, if the remote reported one.
        max_units: The maximum number of units the account may reserve.
        current_units: The number of units currently reserved.
        account_id: The media account id; required to update the capacity.
    """

    unit_type: Optional[ReservedUnitType]
    max_units: Optional[int]
    current_units: Optional[int]
    account_id: Optional[str]
