"""
Join Coordinator

Joins external results onto search results, per query:
1. prepare()  - before the search: compute external results once, cache them in the QueryContext
2. process()  - after a local search: join on the matched documents
3. finalize() - distributed coordinator only, after all shards replied: join on the gathered documents

Request parameters, for a join named <name>:
- <name>=true                     enables the join for this query
- <name>.external.<key>=<value>   forwarded to the provider as <key>=<value>
- <name>.fl=<fields>              fields of the provider-level section (default *)
- <name>.doc.fl=<fields>          fields of each joined record (default *)

Output: one section per join, named <name>:
    {"joinIds": [...], <aggregates>..., "external": [{"joinId": id, "doc": record or [records]}, ...]}
Join ids without external results are left out.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from xjoin.fields import FieldList
from xjoin.models import (
    ExternalResultSet,
    GroupingSpec,
    QueryContext,
    SearchResponse,
    SearchResult,
    Searcher,
    ShardResponse,
    Single,
)
from xjoin.providers.base import ExternalResultsProvider
from xjoin.resolver import local_join_ids, shard_join_ids

logger = logging.getLogger(__name__)

EXTERNAL_PREFIX = "external"
RESULTS_FIELD_LIST = "fl"
DOC_FIELD_LIST = "doc.fl"

TRUE_VALUES = {"true", "on", "yes", "1"}


class JoinCoordinator:
    """Runs one named external join through the query phases."""

    def __init__(self, name: str, provider: ExternalResultsProvider, join_field: str):
        self.name = name
        self.provider = provider
        self.join_field = join_field

    def enabled(self, params: Mapping[str, str]) -> bool:
        return str(params.get(self.name, "false")).strip().lower() in TRUE_VALUES

    def external_params(self, params: Mapping[str, str]) -> Dict[str, str]:
        """Parameters under <name>.external., with the prefix stripped."""
        prefix = f"{self.name}.{EXTERNAL_PREFIX}."
        return {k[len(prefix):]: v for k, v in params.items() if k.startswith(prefix)}

    async def prepare(self, params: Mapping[str, str], context: QueryContext) -> None:
        """
        Generate external results, if they have not already been generated
        for this query. Provider errors propagate and fail the query.
        """
        if not self.enabled(params):
            return
        if context.get_results(self.name) is not None:
            return

        async with context.lock:
            # another prepare may have filled the cache while we waited
            if context.get_results(self.name) is not None:
                return
            external = self.external_params(params)
            logger.info(f"[{self.name}] computing external results with {sorted(external)}")
            results = await self.provider.compute_results(external)
            context.set_results(self.name, results)
            logger.info(f"[{self.name}] cached {len(results)} external results")

    def process(
        self,
        params: Mapping[str, str],
        context: QueryContext,
        response: SearchResponse,
        result: Optional[SearchResult],
        searcher: Optional[Searcher] = None,
    ) -> SearchResponse:
        """Join external results onto locally matched documents."""
        if not self.enabled(params):
            return response
        results = context.get_results(self.name)
        if results is None or result is None:
            return response
        if context.is_merged(self.name):
            return response

        join_ids = local_join_ids(result, self.join_field, searcher)
        logger.info(f"[{self.name}] process(): found {len(join_ids)} join ids")
        return self._merge(params, context, response, results, join_ids)

    def finalize(
        self,
        params: Mapping[str, str],
        context: QueryContext,
        response: SearchResponse,
        shard_responses: Iterable[ShardResponse],
        grouping: Optional[GroupingSpec] = None,
    ) -> SearchResponse:
        """
        Join external results onto documents gathered from the shards.
        Only ever adds the section once per response.
        """
        if not self.enabled(params):
            return response
        results = context.get_results(self.name)
        if results is None:
            logger.warning(f"[{self.name}] no external results to finalize")
            return response
        if context.is_merged(self.name) or self.name in response:
            return response

        join_ids = shard_join_ids(shard_responses, self.join_field, grouping)
        return self._merge(params, context, response, results, join_ids)

    def _merge(
        self,
        params: Mapping[str, str],
        context: QueryContext,
        response: SearchResponse,
        results: ExternalResultSet,
        join_ids: List[str],
    ) -> SearchResponse:
        general_fields = FieldList(params.get(f"{self.name}.{RESULTS_FIELD_LIST}", "*"))
        doc_fields = FieldList(params.get(f"{self.name}.{DOC_FIELD_LIST}", "*"))

        general = {"joinIds": results.join_ids()}
        general.update(results.aggregates)
        section = general_fields.project(general)
        section["external"] = self.external_results(join_ids, results, doc_fields)

        context.mark_merged(self.name)
        logger.info(f"[{self.name}] joined {len(section['external'])} of {len(join_ids)} join ids")
        return response.with_value(self.name, section)

    @staticmethod
    def external_results(
        join_ids: Iterable[str],
        results: ExternalResultSet,
        doc_fields: FieldList,
    ) -> List[Dict[str, Any]]:
        external = []
        for join_id in join_ids:
            result = results.get(join_id)
            if result is None:
                continue
            if isinstance(result, Single):
                doc = doc_fields.project(result.record)
            else:
                doc = [doc_fields.project(record) for record in result.records]
            external.append({"joinId": join_id, "doc": doc})
        return external
