"""
Reacts to the notifications the remote encoding service sends for a job.

The processor is a small state machine driven entirely by the notification and by
what the remote service still knows about the job. It keeps no state of its own:

- progress events are reported as "Progress:{percent}";
- a job that is scheduled or processing needs nothing;
- a finished job has its output copied to the container recorded in its
  correlation data, and its assets deleted;
- a failed or canceled job has its assets deleted.

Notifications for the same job are expected one at a time. A repeated terminal
notification finds the assets already gone and fails with a `RemoteError`.
"""
import json
from typing import Any, List, Optional

from loguru import logger

from ..config.common import OPERATION_CONTEXT_KEY
from ..domain.exceptions import (
    JobFailedError,
    ProtocolError,
    RemoteError,
    UnsupportedEventError,
    UnsupportedStateError,
    ValidationError,
)
from ..domain.models import JobState, NotificationOutcome
from ..domain.notifications import (
    LAST_COMPUTED_PROGRESS_PROPERTY,
    NEW_STATE_PROPERTY,
    NotificationEventType,
    NotificationMessage,
)
from .asset_operations import AssetOperations
from .interfaces import BlobStore, RemoteJobClient


class NotificationProcessor:
    """
    Handles one notification at a time.

    Attributes:
        asset_operations: Copies output and deletes the assets of finished jobs.
    """

    def __init__(self, remote_client: RemoteJobClient, blob_store: BlobStore):
        self.asset_operations = AssetOperations(remote_client, blob_store)

    def handle_notification(self, message: Optional[NotificationMessage]) -> NotificationOutcome:
        """
        Handles a single notification.

        Args:
            message: The decoded notification.

        Returns:
            The job id and a status string: "Progress:{n}" for progress events,
            otherwise the job's new state.

        Raises:
            ValidationError: If the message is missing or carries no job id.
            ProtocolError: If a property the event requires is missing or malformed,
                           or a finished job has no output container recorded.
            UnsupportedEventError: For event types other than TaskStateChange and TaskProgress.
            UnsupportedStateError: For states with no transition (Queued, Canceling, unknown).
            JobFailedError: If the job ended in the Error state.
            RemoteError: If copying output or deleting assets failed.
        """
        if message is None:
            raise ValidationError("A notification message is required.")

        job_id = message.job_id
        if not job_id or not job_id.strip():
            raise ValidationError("The notification carries no jobId.")

        event_type = message.event_type.strip()
        if event_type.lower() == NotificationEventType.TASK_STATE_CHANGE.value.lower():
            status = self._handle_state_change(job_id, message)
        elif event_type.lower() == NotificationEventType.TASK_PROGRESS.value.lower():
            status = f"Progress:{self._get_progress(message)}"
            logger.debug(f"Job {job_id}: {status}")
        else:
            logger.error(f"Unsupported notification event type {message.event_type} for job {job_id}")
            raise UnsupportedEventError(f"Unsupported event type {message.event_type}")

        return NotificationOutcome(job_id=job_id, status=status)

    @staticmethod
    def _get_progress(message: NotificationMessage) -> int:
        progress_text = message.properties.get(LAST_COMPUTED_PROGRESS_PROPERTY)
        if progress_text is None:
            raise ProtocolError(f"Could not find {LAST_COMPUTED_PROGRESS_PROPERTY} in the notification.")
        try:
            return int(progress_text.strip())
        except ValueError as e:
            raise ProtocolError(f"Could not parse progress from '{progress_text}'.") from e

    def _handle_state_change(self, job_id: str, message: NotificationMessage) -> str:
        new_state = message.properties.get(NEW_STATE_PROPERTY)
        if new_state is None or not new_state.strip():
            raise ProtocolError(f"Could not find {NEW_STATE_PROPERTY} in the notification for {job_id}.")

        try:
            state = JobState.from_wire(new_state)
        except ValueError:
            logger.error(f"Unknown state {new_state} for job {job_id}")
            raise UnsupportedStateError(f"Unknown newState: {new_state}") from None

        logger.info(f"Job {job_id} changed to {state.value}")

        if state in (JobState.SCHEDULED, JobState.PROCESSING):
            return new_state

        if state == JobState.FINISHED:
            self.asset_operations.copy_output_assets(job_id)
            self.asset_operations.delete_assets_for_job(job_id)
            logger.success(f"Job {job_id} finished and its assets were released")
            return state.value

        if state == JobState.ERROR:
            try:
                self.asset_operations.delete_assets_for_job(job_id)
            except RemoteError as cleanup_error:
                logger.error(f"Job {job_id} failed and its assets could not be deleted: {cleanup_error}")
                raise JobFailedError(job_id, cleanup_error=cleanup_error) from cleanup_error
            logger.error(f"Job {job_id} failed")
            raise JobFailedError(job_id)

        if state == JobState.CANCELED:
            self.asset_operations.delete_assets_for_job(job_id)
            logger.warning(f"Job {job_id} was canceled and its assets were released")
            return state.value

        logger.error(f"No transition for state {new_state} of job {job_id}")
        raise UnsupportedStateError(f"Unsupported newState: {new_state}")

    def get_operation_context(self, job_id: str) -> Any:
        """
        Returns the operation context given to `JobSubmitter.submit` for this job.

        Raises:
            ProtocolError: If the job carries no operation context, or it is not JSON.
            RemoteError: If the correlation data could not be read.
        """
        correlation_data = self.asset_operations.get_correlation_data(job_id)
        raw_context = correlation_data.get(OPERATION_CONTEXT_KEY)
        if raw_context is None:
            raise ProtocolError(f"Job {job_id} carries no {OPERATION_CONTEXT_KEY}.")
        try:
            return json.loads(raw_context)
        except ValueError as e:
            raise ProtocolError(f"The {OPERATION_CONTEXT_KEY} of job {job_id} is not JSON: {e}") from e

    def copy_output_assets(self, job_id: str) -> List[str]:
        """Copies the job's output to its recorded output container. See `AssetOperations`."""
        return self.asset_operations.copy_output_assets(job_id)

    def delete_assets_for_job(self, job_id: str) -> None:
        """Deletes the job's input and output assets. See `AssetOperations`."""
        self.asset_operations.delete_assets_for_job(job_id)
