"""
HMMER web API client for phmmer searches.

Endpoints used:
- POST /search/phmmer                    - {"database", "input"} -> {"id"}
- GET  /result/{id}?with_domains=true    - {"status", "message"?, "result": {"hits": [...]}}

The result endpoint doubles as the status endpoint: it reports SUCCESS once
the hits are available.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

import httpx
from pydantic import BaseModel, Field, ValidationError

from xjoin.errors import PayloadError, TransportError
from xjoin.jobs import JobClient
from xjoin.models import JobStatus, StatusReport

logger = logging.getLogger(__name__)

# Domains with an independent E value at or above this are not significant
SIGNIFICANCE_THRESHOLD = 1.0

STATUS_MAP = {
    "PEND": JobStatus.RUNNING,
    "RUN": JobStatus.RUNNING,
    "SUCCESS": JobStatus.DONE,
    "failure": JobStatus.FAILED,
    "FAILURE": JobStatus.FAILED,
    "ERROR": JobStatus.FAILED,
}


# --- Remote payload (HMMER JSON) ---

class AlignmentDisplay(BaseModel):
    model: str  # query (HMM) line
    hmmfrom: int
    hmmto: int
    mline: str
    aseq: str
    sqfrom: int
    sqto: int
    ppline: str
    identity: Tuple[float, int]  # (fraction, count)
    similarity: Tuple[float, int]


class Domain(BaseModel):
    ievalue: float  # may arrive as a string
    cevalue: float
    ienv: int
    jenv: int
    oasc: float
    bitscore: float
    alignment_display: AlignmentDisplay


class HitMetadata(BaseModel):
    accession: str
    species: Optional[str] = None
    description: Optional[str] = None


class Hit(BaseModel):
    metadata: HitMetadata
    score: float
    bias: float
    evalue: float
    domains: List[Domain] = Field(default_factory=list)


# --- Parsed record ---

@dataclass(frozen=True)
class Alignment:
    """A phmmer hit, with its first significant domain alignment (if any)."""
    target: str
    species: Optional[str]
    description: Optional[str]
    score: float
    bias: float
    e_value: float
    e_value_ind: Optional[float] = None
    e_value_cond: Optional[float] = None
    query_sequence: Optional[str] = None
    query_sequence_start: Optional[int] = None
    query_sequence_end: Optional[int] = None
    match: Optional[str] = None
    target_sequence: Optional[str] = None
    target_sequence_start: Optional[int] = None
    target_sequence_end: Optional[int] = None
    target_envelope_start: Optional[int] = None
    target_envelope_end: Optional[int] = None
    posterior_probability: Optional[str] = None
    accuracy: Optional[float] = None
    bit_score: Optional[float] = None
    identity_percent: Optional[float] = None
    identity_count: Optional[int] = None
    similarity_percent: Optional[float] = None
    similarity_count: Optional[int] = None

    @classmethod
    def from_hit(cls, hit: Hit) -> "Alignment":
        fields: Dict[str, Any] = dict(
            target=hit.metadata.accession,
            species=hit.metadata.species,
            description=hit.metadata.description,
            score=hit.score,
            bias=hit.bias,
            e_value=hit.evalue,
        )
        # we consider only the first significant domain
        for domain in hit.domains:
            if domain.ievalue >= SIGNIFICANCE_THRESHOLD:
                continue
            display = domain.alignment_display
            fields.update(
                e_value_ind=domain.ievalue,
                e_value_cond=domain.cevalue,
                query_sequence=display.model,
                query_sequence_start=display.hmmfrom,
                query_sequence_end=display.hmmto,
                match=display.mline,
                target_sequence=display.aseq,
                target_sequence_start=display.sqfrom,
                target_sequence_end=display.sqto,
                target_envelope_start=domain.ienv,
                target_envelope_end=domain.jenv,
                posterior_probability=display.ppline,
                accuracy=domain.oasc,
                bit_score=domain.bitscore,
                identity_percent=100 * display.identity[0],
                identity_count=display.identity[1],
                similarity_percent=100 * display.similarity[0],
                similarity_count=display.similarity[1],
            )
            break
        return cls(**fields)


def parse_hits(payload: Mapping[str, Any]) -> List[Alignment]:
    """Convert a SUCCESS result payload into alignments."""
    result = payload.get("result") or payload.get("results") or {}
    try:
        hits = [Hit.model_validate(item) for item in result.get("hits", [])]
    except ValidationError as e:
        raise PayloadError(f"Unreadable phmmer hit: {e}") from e
    return [Alignment.from_hit(hit) for hit in hits]


class PhmmerClient(JobClient):
    """Client for the HMMER phmmer service."""

    def __init__(self, url: str, timeout: float = 30.0):
        self.url = url.rstrip("/")
        self.client = httpx.AsyncClient(timeout=timeout)

    def _result_url(self, job_id: str) -> str:
        return f"{self.url}/result/{job_id}?with_domains=true"

    async def _get_json(self, url: str) -> Dict[str, Any]:
        logger.debug(f"GET {url}")
        try:
            resp = await self.client.get(url, headers={"Accept": "application/json"})
            resp.raise_for_status()
            return resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise TransportError(f"phmmer request to {url} failed: {e}") from e

    async def submit(self, parameters: Mapping[str, Any]) -> str:
        url = f"{self.url}/search/phmmer"
        body = {
            "database": parameters["database"],
            "input": f">Seq\n{parameters['sequence']}",
        }
        logger.debug(f"POST {url} database={body['database']}")
        try:
            resp = await self.client.post(url, json=body, headers={"Accept": "application/json"})
            resp.raise_for_status()
            job_id = resp.json().get("id")
        except (httpx.HTTPError, ValueError) as e:
            raise TransportError(f"phmmer job submission failed: {e}") from e
        if not job_id:
            raise TransportError("phmmer job submission returned no job id")
        return job_id

    async def poll(self, job_id: str) -> StatusReport:
        data = await self._get_json(self._result_url(job_id))
        raw = str(data.get("status", ""))
        return StatusReport(status=STATUS_MAP.get(raw), raw=raw, message=data.get("message"))

    async def fetch_result(self, job_id: str) -> Dict[str, Any]:
        return await self._get_json(self._result_url(job_id))

    async def close(self):
        await self.client.aclose()
