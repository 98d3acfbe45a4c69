"""
Polls a job until it reaches a terminal state.

Used by callers that submit without a callback endpoint (e.g. `submit --wait` on the
command line) and so receive no notifications.
"""
import time
from typing import Callable, Optional

from loguru import logger

from ..config.common import JOB_POLL_INTERVAL_SECONDS
from ..domain.exceptions import JobMonitorTimeout, RemoteError
from ..domain.models import JobSnapshot
from .interfaces import RemoteJobClient


class JobMonitor:
    """
    Waits for remote jobs to end.

    Attributes:
        remote_client: The remote encoding service.
        sleep: Called with the poll interval between two reads. Tests replace it.
    """

    def __init__(self, remote_client: RemoteJobClient, sleep: Callable[[float], None] = time.sleep):
        self.remote_client = remote_client
        self.sleep = sleep

    def wait_for_terminal_state(
        self,
        job_id: str,
        poll_interval: float = JOB_POLL_INTERVAL_SECONDS,
        max_polls: Optional[int] = None,
    ) -> JobSnapshot:
        """
        Reads the job every `poll_interval` seconds until it is Finished, Error or Canceled.

        Args:
            job_id: The job to watch.
            poll_interval: Seconds between two reads.
            max_polls: Maximum number of reads. `None` waits forever.

        Returns:
            The first snapshot with a terminal state.

        Raises:
            JobMonitorTimeout: If the job is still running after `max_polls` reads.
            RemoteError: If a read failed.
        """
        polls = 0
        last_state = None
        while True:
            try:
                snapshot = self.remote_client.get_job(job_id)
            except Exception as e:
                logger.error(f"Could not read job {job_id}: {e}")
                raise RemoteError.wrap(f"Could not read job {job_id}", e) from e
            polls += 1

            if snapshot.state != last_state:
                logger.info(f"Job {job_id} is {snapshot.state.value}")
                last_state = snapshot.state

            if snapshot.state.is_terminal:
                return snapshot

            if max_polls is not None and polls >= max_polls:
                raise JobMonitorTimeout(
                    f"Job {job_id} is still {snapshot.state.value} after {polls} polls."
                )
            self.sleep(poll_interval)
