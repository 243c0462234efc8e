"""
Join id extraction from search results.

Works on every result shape the host can hand us:
1. A flat ranked document list
2. Grouped results, per grouping field either
   - "grouped" format: {"groups": [{"groupValue": ..., "doclist": ...}, ...]}
   - "simple" format: {"doclist": ...}

Locally the documents may be bare doc ids, loaded through the host's
Searcher with only the join field. In a distributed query the documents come
already materialised in each shard's response, usually carrying nothing but
the join field.

Join ids come back in first-encounter order with duplicates removed, across
groups and across shards. Documents without the join field are skipped.
"""

import logging
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence

from xjoin.models import GroupFormat, GroupingSpec, SearchResult, Searcher, ShardResponse

logger = logging.getLogger(__name__)


def field_values(doc: Mapping[str, Any], field: str) -> List[str]:
    """All values of a (possibly multi-valued) field as strings."""
    value = doc.get(field)
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return [str(v) for v in value if v is not None]
    return [str(value)]


def _docs(doclist: Any) -> Sequence[Any]:
    """Documents of a doclist, either a plain list or {"numFound", "docs"}."""
    if doclist is None:
        return []
    if isinstance(doclist, Mapping):
        return doclist.get("docs") or []
    return doclist


def iter_doclists(grouped: Optional[Mapping[str, Any]], grouping: GroupingSpec) -> Iterator[Sequence[Any]]:
    """Every document list inside a grouped response section."""
    if not grouped:
        return
    for field in grouping.fields:
        field_results = grouped.get(field)
        if not field_results:
            continue
        if grouping.format is GroupFormat.GROUPED:
            for group in field_results.get("groups") or []:
                yield _docs(group.get("doclist"))
        else:
            yield _docs(field_results.get("doclist"))


class JoinIdCollector:
    """Ordered, duplicate-free set of join ids."""

    def __init__(self, join_field: str):
        self.join_field = join_field
        self._ids: Dict[str, None] = {}

    def add(self, doc: Mapping[str, Any]) -> None:
        values = field_values(doc, self.join_field)
        if not values:
            logger.debug(f"No {self.join_field} in document {doc}")
        for join_id in values:
            self._ids.setdefault(join_id, None)

    def add_all(self, docs: Iterable[Mapping[str, Any]]) -> None:
        for doc in docs:
            self.add(doc)

    @property
    def ids(self) -> List[str]:
        return list(self._ids)


def local_join_ids(result: SearchResult, join_field: str, searcher: Optional[Searcher] = None) -> List[str]:
    """Join ids of the documents matched on this node."""
    if result.grouping is not None:
        doclists = iter_doclists(result.grouped, result.grouping)
    else:
        doclists = iter([_docs(result.docs)])

    fields = {join_field}
    collector = JoinIdCollector(join_field)
    for doclist in doclists:
        for item in doclist:
            if isinstance(item, Mapping):
                collector.add(item)
            elif searcher is None:
                raise ValueError(f"Document id {item!r} given without a searcher to load it")
            else:
                collector.add(searcher.doc(item, fields))
    return collector.ids


def shard_join_ids(
    shard_responses: Iterable[ShardResponse],
    join_field: str,
    grouping: Optional[GroupingSpec] = None,
) -> List[str]:
    """Join ids across all shard responses of a distributed query."""
    collector = JoinIdCollector(join_field)
    for shard in shard_responses:
        logger.info(f"Dealing with response from shard {shard.shard_address}")
        if shard.response is None:
            logger.warning(f"Response is null for shard {shard.shard_address}")
            continue

        if grouping is not None:
            doclists = iter_doclists(shard.response.get("grouped"), grouping)
        else:
            doclists = iter([_docs(shard.response.get("response"))])
        for doclist in doclists:
            collector.add_all(doc for doc in doclist if isinstance(doc, Mapping))

    logger.info(f"Found {len(collector.ids)} join ids across shards")
    return collector.ids
