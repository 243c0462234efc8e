"""
phmmer provider: protein sequence search with HMMER.

Hits are keyed by the entry part of the target accession ("1abc" for
"1abc_A"), lower-cased for both lookups and the published id list, so several
chains of one entry land under the same join id.
"""

import logging
from typing import Dict, List, Mapping, Optional

from xjoin.backends.hmmer import Alignment, PhmmerClient, parse_hits
from xjoin.jobs import JobClient, run_job
from xjoin.models import ExternalResultSet, Many
from xjoin.providers.base import ExternalResultsProvider, poll_settings, require_config, require_param

logger = logging.getLogger(__name__)

INIT_URL = "url"
INIT_DATABASE = "database"

PHMMER_SEQUENCE = "sequence"


def entry_key(accession: str) -> str:
    return accession.split("_", 1)[0].lower()


class PhmmerResultSet(ExternalResultSet):
    """phmmer alignments by entry id, in hit order."""

    def __init__(self, alignments: List[Alignment]):
        grouped: Dict[str, List[Alignment]] = {}
        for alignment in alignments:
            grouped.setdefault(entry_key(alignment.target), []).append(alignment)
        super().__init__(
            {key: Many(tuple(items)) for key, items in grouped.items()},
            {"num_hits": len(alignments)},
        )

    def lookup_key(self, join_id: str) -> str:
        return join_id.lower()


class PhmmerProvider(ExternalResultsProvider):
    """Job-backed provider for the HMMER phmmer service."""

    def __init__(self, config: Mapping[str, str], client: Optional[JobClient] = None):
        self.client = client
        super().__init__(config)

    def initialize(self, config: Mapping[str, str]) -> None:
        logger.info("initialising PhmmerProvider")
        url = require_config(config, INIT_URL)
        self.database = require_config(config, INIT_DATABASE)
        self.interval, self.timeout = poll_settings(config)
        logger.info(f"url={url} database={self.database}")
        if self.client is None:
            self.client = PhmmerClient(url)

    async def compute_results(self, params: Mapping[str, str]) -> PhmmerResultSet:
        job_input = {
            "database": self.database,
            "sequence": require_param(params, PHMMER_SEQUENCE),
        }
        job = await run_job(self.client, job_input, interval=self.interval, timeout=self.timeout)
        results = PhmmerResultSet(parse_hits(job.payload))
        logger.info(f"phmmer job {job.job_id}: {len(results)} entries")
        return results

    async def close(self):
        await self.client.close()
