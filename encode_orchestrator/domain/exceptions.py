"""
Defines custom exception types for the encode orchestrator.

These exceptions allow callers to tell apart the different ways a submission or a
notification can fail. A webhook handler, for example, can answer a `ValidationError`
with a "bad request" while answering a `RemoteError` with a retryable status, and
treat a `JobFailedError` as a legitimate (if unhappy) end of a job.

All custom exceptions inherit from the base `EncodeOrchestratorException`.
"""
from typing import Any, Optional


class EncodeOrchestratorException(Exception):
    """Base class for all custom exceptions in the encode orchestrator."""

    pass


# --- Caller Input ---
class ValidationError(EncodeOrchestratorException):
    """
    Raised when the caller supplied input that can never succeed.

    Examples are an empty list of inputs, a blank preset name, a container name that
    is not lowercase, or correlation data that does not fit into the task name
    field. These errors are raised before any remote call is made and are never
    worth retrying.
    """

    pass


class ProtocolError(EncodeOrchestratorException):
    """
    Raised when a notification (or the data embedded in a job) lacks a required
    property, or carries a value that cannot be parsed.
    """

    pass


# --- Remote Service ---
class RemoteError(EncodeOrchestratorException):
    """
    Raised when a call to the remote encoding service or to blob storage failed.

    The failing request is described by `method`, `target`, `status_code` and `body`
    so the error can be diagnosed from a single log line. When a `RemoteError` is
    wrapped with more context, the diagnostic fields of the wrapped error are kept.
    """

    def __init__(
        self,
        message: str,
        method: Optional[str] = None,
        target: Optional[str] = None,
        status_code: Optional[int] = None,
        body: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.method = method
        self.target = target
        self.status_code = status_code
        self.body = body

    @classmethod
    def wrap(cls, message: str, cause: BaseException) -> "RemoteError":
        """
        Builds a `RemoteError` carrying `message` and, if `cause` is itself a
        `RemoteError`, the request details of `cause`.
        """
        if isinstance(cause, RemoteError):
            return cls(
                message,
                method=cause.method,
                target=cause.target,
                status_code=cause.status_code,
                body=cause.body,
            )
        return cls(f"{message} ({type(cause).__name__}: {cause})")

    def __str__(self) -> str:
        details = []
        if self.method:
            details.append(f"method={self.method}")
        if self.target:
            details.append(f"target={self.target}")
        if self.status_code is not None:
            details.append(f"status={self.status_code}")
        if self.body:
            details.append(f"body={self.body}")
        if not details:
            return self.message
        return f"{self.message} [{', '.join(details)}]"


class NotFoundError(EncodeOrchestratorException):
    """
    Raised when a named resource the orchestrator depends on does not exist on the
    remote service, e.g. the encoder processor or a preset.
    """

    pass


# --- Notification State Machine ---
class UnsupportedEventError(EncodeOrchestratorException):
    """Raised for a notification event type outside {TaskStateChange, TaskProgress}."""

    pass


class UnsupportedStateError(EncodeOrchestratorException):
    """Raised for a task state the notification processor has no transition for."""

    pass


class JobFailedError(EncodeOrchestratorException):
    """
    Raised when the remote service reports that a job ended in the Error state.

    This is a terminal outcome, not a bug. The job's assets are deleted before the
    error is raised; if that cleanup failed too, the cleanup error is kept in
    `cleanup_error` so neither failure hides the other.
    """

    def __init__(self, job_id: str, cleanup_error: Optional[BaseException] = None):
        message = f"Encode job {job_id} failed."
        if cleanup_error is not None:
            message += f" Cleanup of its assets failed as well: {cleanup_error}"
        super().__init__(message)
        self.job_id = job_id
        self.cleanup_error = cleanup_error


class JobMonitorTimeout(EncodeOrchestratorException):
    """Raised when a job did not reach a terminal state within the allowed polls."""

    pass
