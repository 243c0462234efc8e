"""Shared fixtures: a canned FASTA report and scriptable job clients/providers."""

from typing import Any, List, Mapping, Optional

import pytest

from xjoin.jobs import JobClient
from xjoin.models import ExternalResultSet, JobStatus, Many, Single, StatusReport
from xjoin.providers.base import ExternalResultsProvider

FASTA_REPORT = """\
FASTA searches a protein or DNA sequence data bank
 version 36.3.8g Dec, 2017
Query: EMBOSS_001
  1>>>EMBOSS_001 - 30 aa
Library: PDB

The best scores are:                                      opt bits E(188018)
PDB:1ABC_A mol:protein length:154  MYOGLOBIN           ( 154)  150 40.1 1.2e-05
PDB:2XYZ_B mol:protein length:153  HEMOGLOBIN          ( 153)  120 33.5 0.0021
PDB:3DEF_C mol:protein length:99  LYSOZYME             (  99)   60 20.0    2.5

>>PDB:1ABC_A mol:protein length:154  MYOGLOBIN            (154 aa)
 initn: 150 init1: 150 opt: 150  Z-score: 200.1  bits: 40.1 E(188018): 1.2e-05
Smith-Waterman score: 150; 96.7% identity (100.0% similar) in 30 aa overlap (1-30:5-34)

               10        20        30
EMBOSS MKTAYIAKQRQISFVKSHFSRQLEERLGLI
       ::::::::::::::::::::::::::.:::
PDB:1A MKTAYIAKQRQISFVKSHFSRQLEERLGMI
           10        20        30

>>PDB:2XYZ_B mol:protein length:153  HEMOGLOBIN           (153 aa)
 initn: 120 init1: 120 opt: 120  Z-score: 160.3  bits: 33.5 E(188018): 0.0021
Smith-Waterman score: 120; 80.0% identity (90.0% similar) in 20 aa overlap (3-22:10-29)

               10
EMBOSS TAYIAKQRQI
       :::::..:::
PDB:2X TAYIAKKRQI
               20
EMBOSS SFVKSHFSRQ
       ::::::::::
PDB:2X SFVKSHFSRQ

30 residues in 1 query   sequences
47012837 residues in 188018 library sequences
"""

FASTA_CONFIG = {
    "email": "search@example.org",
    "program": "ssearch",
    "database": "pdb",
    "stype": "protein",
    "poll.interval": "0",
}

FASTA_PARAMS = {
    "sequence": "MKTAYIAKQRQISFVKSHFSRQLEERLGLI",
    "explowlim": "0",
    "expupperlim": "1.0",
    "scores": "5",
    "alignments": "5",
}


def report(status: JobStatus, raw: Optional[str] = None, message: Optional[str] = None) -> StatusReport:
    return StatusReport(status=status, raw=raw or status.value, message=message)


class ScriptedJobClient(JobClient):
    """Answers polls from a script; the last answer repeats."""

    def __init__(self, statuses: List[StatusReport], payload: Any = None, job_id: str = "job-1"):
        self.statuses = list(statuses)
        self.payload = payload
        self.job_id = job_id
        self.submitted: List[dict] = []
        self.polls = 0
        self.fetches = 0
        self.closed = False

    async def submit(self, parameters: Mapping[str, Any]) -> str:
        self.submitted.append(dict(parameters))
        return self.job_id

    async def poll(self, job_id: str) -> StatusReport:
        self.polls += 1
        if len(self.statuses) > 1:
            return self.statuses.pop(0)
        return self.statuses[0]

    async def fetch_result(self, job_id: str) -> Any:
        self.fetches += 1
        return self.payload

    async def close(self):
        self.closed = True


class StubProvider(ExternalResultsProvider):
    """Provider returning a fixed result set and counting calls."""

    def __init__(self, results: Optional[ExternalResultSet] = None, error: Optional[Exception] = None):
        self.results = results
        self.error = error
        super().__init__({})

    def initialize(self, config):
        self.calls: List[dict] = []

    async def compute_results(self, params):
        self.calls.append(dict(params))
        if self.error is not None:
            raise self.error
        return self.results


@pytest.fixture
def fasta_report():
    return FASTA_REPORT


@pytest.fixture
def fasta_config():
    return dict(FASTA_CONFIG)


@pytest.fixture
def fasta_params():
    return dict(FASTA_PARAMS)


@pytest.fixture
def status():
    return report


@pytest.fixture
def scripted_client():
    return ScriptedJobClient


@pytest.fixture
def stub_provider():
    return StubProvider


@pytest.fixture
def sample_results():
    """Two join ids: one with a single record, one with two."""
    return ExternalResultSet(
        {
            "a": Single({"name": "alpha", "score": 1.0}),
            "b": Many(({"name": "beta-1", "score": 2.0}, {"name": "beta-2", "score": 3.0})),
        },
        {"total": 3},
    )
