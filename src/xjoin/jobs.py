"""
External job client: submit, poll, fetch.

Long-running remote computations (sequence searches) follow the same cycle:
1. Submit the job and get an id back
2. Poll its status on a fixed interval until it is terminal
3. On DONE, fetch the result payload

JobClient subclasses speak a particular service's protocol and normalise its
status strings; run_job() owns the state machine.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional

from xjoin.errors import JobInterrupted, RemoteJobFailure, TransportError, UnexpectedState
from xjoin.models import ExternalJob, JobStatus, StatusReport

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 3.0


class JobClient(ABC):
    """Protocol adapter for one remote job service."""

    @abstractmethod
    async def submit(self, parameters: Mapping[str, Any]) -> str:
        """Send the job, return the id assigned by the remote service."""

    @abstractmethod
    async def poll(self, job_id: str) -> StatusReport:
        """Ask for the current status of a job."""

    @abstractmethod
    async def fetch_result(self, job_id: str) -> Any:
        """Retrieve the raw result of a finished job."""

    async def close(self):
        pass


class StaticJobClient(JobClient):
    """Returns a canned payload straight away. Used for debugging and tests."""

    def __init__(self, payload: Any, job_id: str = "static"):
        self.payload = payload
        self.job_id = job_id

    async def submit(self, parameters: Mapping[str, Any]) -> str:
        return self.job_id

    async def poll(self, job_id: str) -> StatusReport:
        return StatusReport(status=JobStatus.DONE, raw="DONE")

    async def fetch_result(self, job_id: str) -> Any:
        return self.payload


async def _wait(interval: float, cancel: Optional[asyncio.Event]) -> bool:
    """Sleep for interval seconds. Returns True if cancel was set meanwhile."""
    if cancel is None:
        await asyncio.sleep(interval)
        return False
    try:
        await asyncio.wait_for(cancel.wait(), timeout=interval)
    except asyncio.TimeoutError:
        return False
    return True


def _interrupt(job: ExternalJob, reason: str) -> JobInterrupted:
    job.status = JobStatus.INTERRUPTED
    job.error = reason
    logger.warning(f"Job {job.job_id} {reason} after {job.polls} polls")
    return JobInterrupted(job.job_id, reason)


async def run_job(
    client: JobClient,
    parameters: Mapping[str, Any],
    interval: float = DEFAULT_POLL_INTERVAL,
    timeout: Optional[float] = None,
    cancel: Optional[asyncio.Event] = None,
) -> ExternalJob:
    """
    Submit a job and wait for it to finish.

    Returns the job in state DONE with its payload fetched. Any other
    terminal state raises:
    - FAILED -> RemoteJobFailure with the remote message
    - INTERRUPTED (cancel set, or timeout elapsed) -> JobInterrupted
    - unknown remote status -> UnexpectedState
    Transport failures raise TransportError; on poll or fetch they also fail
    the job.
    Cancelling the calling task marks the job INTERRUPTED and re-raises.
    """
    job = ExternalJob(job_id=await client.submit(parameters))
    logger.info(f"Submitted job {job.job_id}")

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout if timeout is not None else None

    try:
        while True:
            if cancel is not None and cancel.is_set():
                raise _interrupt(job, "cancelled")

            try:
                report = await client.poll(job.job_id)
            except TransportError as e:
                job.status = JobStatus.FAILED
                job.error = str(e)
                raise
            job.polls += 1

            if report.status is None or report.status is JobStatus.SUBMITTED:
                job.status = JobStatus.FAILED
                job.error = f"unexpected status {report.raw!r}"
                raise UnexpectedState(report.raw, job.job_id)

            if report.status is JobStatus.INTERRUPTED:
                raise _interrupt(job, "interrupted")

            job.status = report.status

            if report.status is JobStatus.FAILED:
                job.error = report.message or report.raw
                logger.error(f"Job failed: {job.job_id}: {job.error}")
                raise RemoteJobFailure(f"Job failed: {job.error}", job.job_id)

            if report.status is JobStatus.DONE:
                logger.info(f"Job {job.job_id} done after {job.polls} polls")
                try:
                    job.payload = await client.fetch_result(job.job_id)
                except TransportError as e:
                    job.status = JobStatus.FAILED
                    job.error = str(e)
                    raise
                return job

            # still RUNNING
            wait = interval
            if deadline is not None:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise _interrupt(job, "timed out")
                wait = min(interval, remaining)
            logger.debug(f"Job {job.job_id} status is {report.raw}; waiting {wait:.1f}s ...")
            if await _wait(wait, cancel):
                raise _interrupt(job, "cancelled")
    except asyncio.CancelledError:
        _interrupt(job, "cancelled")
        raise
