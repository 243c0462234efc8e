"""
FASTA report parsing.

Turns the plain text report of an EBI FASTA search against PDB into Alignment
records. The report lists hits twice:
1. The summary table ("The best scores are:") - one line per chain with its E value
2. One ">>PDB:..." block per aligned chain - scores, identity, overlap and the
   aligned sequences, which wrap over several lines

A hit starts life from either and is only exposed once its alignment block
has been read completely. The summary may list more hits ("scores") than the
report aligns ("alignments"); those never complete and are dropped.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from xjoin.errors import PayloadError

logger = logging.getLogger(__name__)

SUMMARY_START = re.compile(r"^The best scores are:")
SUMMARY_HIT = re.compile(r"^PDB:([0-9A-Za-z]+)_(\S+)\s.*\s(\S+)\s*$")
ALIGNMENT_HEADER = re.compile(r"^>>PDB:([0-9A-Za-z]+)_(\S+)")
SCORE_LINE = re.compile(r"bits:\s*([\d.]+)\s+E\(\d*\):\s*(\S+)")
IDENTITY_LINE = re.compile(
    r"^Smith-Waterman score:.*?;\s*([\d.]+)% identity.*?\((\d+)-(\d+):(\d+)-(\d+)\)"
)
TARGET_SEQUENCE = re.compile(r"^PDB:\S*\s+([A-Za-z*\-]+)\s*$")
QUERY_SEQUENCE = re.compile(r"^\S+\s+([A-Za-z*\-]+)\s*$")
REPORT_END = re.compile(r"^\d+ residues in ")


@dataclass(frozen=True)
class Alignment:
    """One aligned PDB chain."""
    pdb_id: str  # upper case, as in the report
    chain: str
    e_value: float
    bit_score: Optional[float]
    percent_identity: float
    query_overlap_start: int
    query_overlap_end: int
    db_overlap_start: int
    db_overlap_end: int
    query_sequence: str
    return_sequence: str

    @property
    def pdb_id_chain(self) -> str:
        return f"{self.pdb_id}_{self.chain}"


class _AlignmentBuilder:
    """An alignment still being read from the report."""

    def __init__(self, pdb_id: str, chain: str, e_value: Optional[float] = None):
        self.pdb_id = pdb_id
        self.chain = chain
        self.e_value = e_value
        self.bit_score: Optional[float] = None
        self.percent_identity: Optional[float] = None
        self.overlap: Optional[tuple] = None
        self.query_seq: List[str] = []
        self.return_seq: List[str] = []

    def is_complete(self) -> bool:
        return (
            self.e_value is not None
            and self.percent_identity is not None
            and self.overlap is not None
            and bool(self.query_seq)
            and bool(self.return_seq)
        )

    def build(self) -> Alignment:
        q_start, q_end, db_start, db_end = self.overlap
        return Alignment(
            pdb_id=self.pdb_id,
            chain=self.chain,
            e_value=self.e_value,
            bit_score=self.bit_score,
            percent_identity=self.percent_identity,
            query_overlap_start=q_start,
            query_overlap_end=q_end,
            db_overlap_start=db_start,
            db_overlap_end=db_end,
            query_sequence="".join(self.query_seq),
            return_sequence="".join(self.return_seq),
        )


class FastaJobResults:
    """Parsed alignments, by upper-case PDB id then chain."""

    def __init__(self, alignments: Dict[str, Dict[str, Alignment]]):
        self.alignments = alignments

    @property
    def num_chains(self) -> int:
        return sum(len(chains) for chains in self.alignments.values())

    @property
    def num_entries(self) -> int:
        return len(self.alignments)


def _to_float(value: str, line: str) -> float:
    try:
        return float(value)
    except ValueError:
        raise PayloadError(f"Bad number {value!r} in FASTA report line: {line!r}")


def parse_fasta_report(text: str) -> FastaJobResults:
    """Parse a FASTA text report into complete alignments."""
    pending: Dict[tuple, _AlignmentBuilder] = {}
    current: Optional[_AlignmentBuilder] = None
    in_summary = False

    for line in text.splitlines():
        if SUMMARY_START.match(line):
            in_summary = True
            continue

        if in_summary:
            if not line.strip():
                in_summary = False
                continue
            m = SUMMARY_HIT.match(line)
            if m:
                pdb_id, chain = m.group(1).upper(), m.group(2)
                pending[(pdb_id, chain)] = _AlignmentBuilder(pdb_id, chain, _to_float(m.group(3), line))
            continue

        m = ALIGNMENT_HEADER.match(line)
        if m:
            key = (m.group(1).upper(), m.group(2))
            current = pending.get(key)
            if current is None:
                current = pending[key] = _AlignmentBuilder(*key)
            continue

        if current is None:
            continue

        if REPORT_END.match(line):
            current = None
            continue

        m = SCORE_LINE.search(line)
        if m:
            current.bit_score = _to_float(m.group(1), line)
            if current.e_value is None:
                current.e_value = _to_float(m.group(2), line)
            continue

        m = IDENTITY_LINE.match(line)
        if m:
            current.percent_identity = _to_float(m.group(1), line)
            current.overlap = tuple(int(g) for g in m.groups()[1:])
            continue

        # sequence lines only follow the identity line
        if current.percent_identity is None:
            continue
        m = TARGET_SEQUENCE.match(line)
        if m:
            current.return_seq.append(m.group(1))
            continue
        m = QUERY_SEQUENCE.match(line)
        if m:
            current.query_seq.append(m.group(1))

    alignments: Dict[str, Dict[str, Alignment]] = {}
    for (pdb_id, chain), builder in pending.items():
        if not builder.is_complete():
            logger.debug(f"Dropping incomplete alignment PDB:{pdb_id}_{chain}")
            continue
        alignments.setdefault(pdb_id, {})[chain] = builder.build()

    logger.info(f"Parsed {sum(len(c) for c in alignments.values())} alignments for {len(alignments)} PDB entries")
    return FastaJobResults(alignments)
