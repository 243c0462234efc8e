"""
FASTA provider: sequence similarity search against PDB.

Submits the query sequence to the EBI FASTA service, waits for the job, and
returns the aligned PDB chains keyed by PDB id.

Join id case: the report's PDB ids are upper case. Lookups upper-case the
document's join id; the published id list is lower case and sorted.
"""

import logging
from pathlib import Path
from typing import Mapping, Optional

from xjoin.backends.ebi import FastaClient
from xjoin.backends.fasta import FastaJobResults, parse_fasta_report
from xjoin.errors import ConfigurationError
from xjoin.jobs import JobClient, StaticJobClient, run_job
from xjoin.models import ExternalResultSet, Many
from xjoin.providers.base import (
    ExternalResultsProvider,
    float_param,
    int_param,
    poll_settings,
    require_config,
    require_param,
)

logger = logging.getLogger(__name__)

# initialisation parameters
INIT_EMAIL = "email"
INIT_PROGRAM = "program"
INIT_DATABASE = "database"
INIT_STYPE = "stype"
INIT_URL = "url"
INIT_DEBUG_FILE = "debug.file"

# request parameters
FASTA_SEQUENCE = "sequence"
FASTA_EXPLOWLIM = "explowlim"
FASTA_EXPUPPERLIM = "expupperlim"
FASTA_SCORES = "scores"
FASTA_ALIGNMENTS = "alignments"


class FastaResultSet(ExternalResultSet):
    """FASTA alignments by PDB id."""

    def __init__(self, results: FastaJobResults):
        entries = {
            pdb_id: Many(tuple(chains.values()))
            for pdb_id, chains in results.alignments.items()
        }
        super().__init__(entries, {
            "num_chains": results.num_chains,
            "num_entries": results.num_entries,
        })

    def lookup_key(self, join_id: str) -> str:
        return join_id.upper()

    def published_id(self, key: str) -> str:
        return key.lower()

    def join_ids(self):
        return sorted(super().join_ids())


class FastaProvider(ExternalResultsProvider):
    """Job-backed provider for the EBI FASTA service."""

    def __init__(self, config: Mapping[str, str], client: Optional[JobClient] = None):
        self.client = client
        super().__init__(config)

    def initialize(self, config: Mapping[str, str]) -> None:
        logger.info("initialising FastaProvider")

        self.email = require_config(config, INIT_EMAIL)
        self.program = require_config(config, INIT_PROGRAM)
        self.database = require_config(config, INIT_DATABASE)
        self.stype = require_config(config, INIT_STYPE)
        self.interval, self.timeout = poll_settings(config)
        logger.info(f"program={self.program} database={self.database} stype={self.stype}")

        if self.client is not None:
            return
        debug_file = config.get(INIT_DEBUG_FILE)
        if debug_file:
            path = Path(debug_file)
            if not path.is_file():
                raise ConfigurationError(f"No such debug file: {debug_file}")
            logger.info(f"Using canned FASTA report from {debug_file}")
            self.client = StaticJobClient(path.read_text(encoding="utf-8"))
        else:
            self.client = FastaClient(self.email, config.get(INIT_URL))

    async def compute_results(self, params: Mapping[str, str]) -> FastaResultSet:
        """Run a FASTA search for the query sequence."""
        job_input = {
            "program": self.program,
            "database": self.database,
            "stype": self.stype,
            "sequence": require_param(params, FASTA_SEQUENCE),
            "explowlim": float_param(params, FASTA_EXPLOWLIM),
            "expupperlim": float_param(params, FASTA_EXPUPPERLIM),
            "scores": int_param(params, FASTA_SCORES),
            "alignments": int_param(params, FASTA_ALIGNMENTS),
        }

        job = await run_job(self.client, job_input, interval=self.interval, timeout=self.timeout)
        results = FastaResultSet(parse_fasta_report(job.payload))
        logger.info(f"FASTA job {job.job_id}: {len(results)} PDB entries")
        return results

    async def close(self):
        await self.client.close()
