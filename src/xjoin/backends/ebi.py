"""
EBI JDispatcher client for the FASTA sequence search service.

REST endpoints used:
- POST /run                   - submit a job, returns the job id as text
- GET  /status/{id}           - QUEUED, RUNNING, FINISHED, ERROR, FAILURE, NOT_FOUND
- GET  /result/{id}/out       - plain text FASTA report
- GET  /result/{id}/error     - error output of a failed job
"""

import logging
from typing import Any, Mapping, Optional

import httpx

from xjoin.errors import TransportError
from xjoin.jobs import JobClient
from xjoin.models import JobStatus, StatusReport

logger = logging.getLogger(__name__)

# JDispatcher status strings
STATUS_MAP = {
    "QUEUED": JobStatus.RUNNING,
    "RUNNING": JobStatus.RUNNING,
    "FINISHED": JobStatus.DONE,
    "ERROR": JobStatus.FAILED,
    "FAILURE": JobStatus.FAILED,
}


class FastaClient(JobClient):
    """Client for the EBI FASTA REST service."""

    BASE_URL = "https://www.ebi.ac.uk/Tools/services/rest/fasta"

    def __init__(self, email: str, base_url: Optional[str] = None, timeout: float = 30.0):
        self.email = email
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.client = httpx.AsyncClient(timeout=timeout)

    async def _get_text(self, path: str) -> str:
        url = f"{self.base_url}{path}"
        logger.debug(f"GET {url}")
        try:
            resp = await self.client.get(url, headers={"Accept": "text/plain"})
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise TransportError(f"FASTA request to {url} failed: {e}") from e
        return resp.text

    async def submit(self, parameters: Mapping[str, Any]) -> str:
        """
        Submit a FASTA job. parameters holds the JDispatcher form fields
        (program, database, stype, sequence, explowlim, ...); the contact
        email is added here.
        """
        url = f"{self.base_url}/run"
        data = {"email": self.email}
        data.update({k: str(v) for k, v in parameters.items()})
        logger.debug(f"POST {url} program={data.get('program')} database={data.get('database')}")
        try:
            resp = await self.client.post(url, data=data, headers={"Accept": "text/plain"})
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise TransportError(f"FASTA job submission failed: {e}") from e
        job_id = resp.text.strip()
        if not job_id:
            raise TransportError("FASTA job submission returned no job id")
        return job_id

    async def poll(self, job_id: str) -> StatusReport:
        raw = (await self._get_text(f"/status/{job_id}")).strip()
        status = STATUS_MAP.get(raw)
        message = None
        if status is JobStatus.FAILED:
            message = await self._error_message(job_id, raw)
        return StatusReport(status=status, raw=raw, message=message)

    async def _error_message(self, job_id: str, raw: str) -> str:
        """Best effort: the service's error output, else the bare status."""
        try:
            text = (await self._get_text(f"/result/{job_id}/error")).strip()
        except TransportError as e:
            logger.warning(f"Could not read error output for FASTA job {job_id}: {e}")
            text = ""
        return text or f"FASTA job {job_id} finished with status {raw}"

    async def fetch_result(self, job_id: str) -> str:
        return await self._get_text(f"/result/{job_id}/out")

    async def close(self):
        await self.client.aclose()
