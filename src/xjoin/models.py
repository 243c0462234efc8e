"""
Data models for external joins.

The data structures shared by the job client, the providers, the join
coordinator and the merge resolver. Types at the bottom of the module describe
what the host search engine hands us (results, shard responses); we never
build those ourselves.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional, Protocol, Sequence, Set, Tuple, Union


# --- External jobs ---

class JobStatus(str, Enum):
    SUBMITTED = "SUBMITTED"
    RUNNING = "RUNNING"
    DONE = "DONE"
    FAILED = "FAILED"
    INTERRUPTED = "INTERRUPTED"  # local wait cancelled, never reported by a remote service

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.DONE, JobStatus.FAILED, JobStatus.INTERRUPTED)


@dataclass(frozen=True)
class StatusReport:
    """One answer from a status poll, normalised by the job client."""
    status: Optional[JobStatus]  # None when the remote status is unknown
    raw: str
    message: Optional[str] = None


@dataclass
class ExternalJob:
    """An in-flight remote computation. Only the job runner changes it."""
    job_id: str
    status: JobStatus = JobStatus.SUBMITTED
    payload: Any = None  # raw result, parsed by the provider
    error: Optional[str] = None
    polls: int = 0


# --- External results ---

@dataclass(frozen=True)
class Single:
    """Exactly one external record for a join id."""
    record: Any

    @property
    def records(self) -> Tuple[Any, ...]:
        return (self.record,)


@dataclass(frozen=True)
class Many:
    """Zero or more external records for a join id, in provider order."""
    records: Tuple[Any, ...]


JoinResult = Union[Single, Many]


class ExternalResultSet:
    """
    Output of one provider invocation for one query.

    Maps join keys to Single/Many results and carries named aggregates
    (e.g. hit counts). Subclasses override lookup_key() and published_id()
    when a provider normalises case differently for lookups and listings.
    """

    def __init__(self, entries: Mapping[str, JoinResult], aggregates: Optional[Mapping[str, Any]] = None):
        self._entries: Dict[str, JoinResult] = dict(entries)
        self._aggregates: Dict[str, Any] = dict(aggregates or {})

    def lookup_key(self, join_id: str) -> str:
        return join_id

    def published_id(self, key: str) -> str:
        return key

    def get(self, join_id: str) -> Optional[JoinResult]:
        """Result for a join id, or None if there is none."""
        result = self._entries.get(self.lookup_key(join_id))
        if result is None or not result.records:
            return None
        return result

    def join_ids(self) -> List[str]:
        return [self.published_id(key) for key in self._entries]

    @property
    def aggregates(self) -> Dict[str, Any]:
        return dict(self._aggregates)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)


# --- Per-request state ---

@dataclass
class QueryContext:
    """
    Request-scoped join state. Created at query start, dropped at query end,
    never shared between requests.
    """
    results: Dict[str, ExternalResultSet] = field(default_factory=dict)
    merged: Set[str] = field(default_factory=set)  # joins whose section has been written
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def get_results(self, name: str) -> Optional[ExternalResultSet]:
        return self.results.get(name)

    def set_results(self, name: str, results: ExternalResultSet) -> None:
        if name in self.results:
            raise RuntimeError(f"External results for {name!r} are already set")
        self.results[name] = results

    def is_merged(self, name: str) -> bool:
        return name in self.merged

    def mark_merged(self, name: str) -> None:
        self.merged.add(name)


@dataclass(frozen=True)
class SearchResponse:
    """
    Ordered, immutable response values. Each change returns a new response
    with the version bumped.
    """
    values: Tuple[Tuple[str, Any], ...] = ()
    version: int = 0

    def get(self, name: str, default: Any = None) -> Any:
        for key, value in self.values:
            if key == name:
                return value
        return default

    def __contains__(self, name: object) -> bool:
        return any(key == name for key, _ in self.values)

    def with_value(self, name: str, value: Any) -> "SearchResponse":
        """Add a value, replacing any existing value with the same name."""
        values = tuple((k, v) for k, v in self.values if k != name) + ((name, value),)
        return SearchResponse(values=values, version=self.version + 1)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.values)


# --- Host search engine boundary ---

Document = Mapping[str, Any]


class GroupFormat(str, Enum):
    GROUPED = "grouped"  # groups: [{groupValue, doclist}, ...]
    SIMPLE = "simple"  # one merged doclist per field


@dataclass(frozen=True)
class GroupingSpec:
    fields: Tuple[str, ...]
    format: GroupFormat = GroupFormat.GROUPED


@dataclass
class SearchResult:
    """
    Locally matched documents. Items are either documents (mappings) or
    doc ids the host's Searcher can load.
    """
    docs: Sequence[Any] = ()
    grouped: Optional[Mapping[str, Any]] = None
    grouping: Optional[GroupingSpec] = None


@dataclass
class ShardResponse:
    """One shard's reply in a distributed query. response is None if the shard sent nothing."""
    shard_address: str
    response: Optional[Mapping[str, Any]]


class Searcher(Protocol):
    def doc(self, doc_id: Any, fields: Set[str]) -> Document:
        ...
