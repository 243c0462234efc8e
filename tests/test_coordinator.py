"""Tests for the join coordinator phases and its request-scoped state."""

import asyncio
from dataclasses import FrozenInstanceError

import pytest

from xjoin.coordinator import JoinCoordinator
from xjoin.errors import ConfigurationError, RemoteJobFailure
from xjoin.models import (
    ExternalResultSet,
    GroupingSpec,
    QueryContext,
    SearchResponse,
    SearchResult,
    ShardResponse,
    Single,
)
from xjoin.providers import registry
from xjoin.providers.registry import available_providers, create_provider, register_provider

DOCS = [{"id": "1", "key": "a"}, {"id": "2", "key": "x"}, {"id": "3", "key": "b"}, {"id": "4", "key": "a"}]


def _params(**extra):
    params = {"xjoin": "true"}
    params.update(extra)
    return params


@pytest.fixture
def provider(stub_provider, sample_results):
    return stub_provider(sample_results)


@pytest.fixture
def coordinator(provider):
    return JoinCoordinator("xjoin", provider, "key")


@pytest.fixture
def context():
    return QueryContext()


# ============================================================================
# prepare
# ============================================================================


@pytest.mark.asyncio
@pytest.mark.parametrize("flag", [None, "false", "no", ""])
async def test_disabled_join_is_noop(coordinator, provider, context, flag):
    params = {} if flag is None else {"xjoin": flag}

    await coordinator.prepare(params, context)
    response = coordinator.process(params, context, SearchResponse(), SearchResult(docs=DOCS))

    assert provider.calls == []
    assert context.get_results("xjoin") is None
    assert "xjoin" not in response


@pytest.mark.asyncio
async def test_prepare_strips_prefix(coordinator, provider, context):
    params = _params(**{"xjoin.external.sequence": "MKT", "xjoin.external.scores": "5", "xjoin.fl": "*", "other": "1"})

    await coordinator.prepare(params, context)

    assert provider.calls == [{"sequence": "MKT", "scores": "5"}]


@pytest.mark.asyncio
async def test_repeated_prepare_computes_once(coordinator, provider, context, sample_results):
    await coordinator.prepare(_params(), context)
    await coordinator.prepare(_params(), context)

    assert len(provider.calls) == 1
    assert context.get_results("xjoin") is sample_results


@pytest.mark.asyncio
async def test_concurrent_prepare_computes_once(stub_provider, sample_results, context):
    class SlowProvider(stub_provider):
        async def compute_results(self, params):
            await asyncio.sleep(0.01)
            return await super().compute_results(params)

    provider = SlowProvider(sample_results)
    coordinator = JoinCoordinator("xjoin", provider, "key")

    await asyncio.gather(*(coordinator.prepare(_params(), context) for _ in range(5)))

    assert len(provider.calls) == 1


@pytest.mark.asyncio
async def test_provider_error_fails_prepare(stub_provider, context):
    coordinator = JoinCoordinator("xjoin", stub_provider(error=RemoteJobFailure("Job failed: no hits")), "key")

    with pytest.raises(RemoteJobFailure):
        await coordinator.prepare(_params(), context)

    assert context.get_results("xjoin") is None


@pytest.mark.asyncio
async def test_independent_joins_share_a_context(stub_provider, sample_results, context):
    first = JoinCoordinator("seq", stub_provider(sample_results), "key")
    other = ExternalResultSet({"x": Single({"name": "ex"})})
    second = JoinCoordinator("onto", stub_provider(other), "key")
    params = {"seq": "true", "onto": "true"}

    await first.prepare(params, context)
    await second.prepare(params, context)
    response = first.process(params, context, SearchResponse(), SearchResult(docs=DOCS))
    response = second.process(params, context, response, SearchResult(docs=DOCS))

    assert [e["joinId"] for e in response.get("seq")["external"]] == ["a", "b"]
    assert [e["joinId"] for e in response.get("onto")["external"]] == ["x"]


# ============================================================================
# process
# ============================================================================


@pytest.mark.asyncio
async def test_process_joins_matched_documents(coordinator, context):
    await coordinator.prepare(_params(), context)

    response = coordinator.process(_params(), context, SearchResponse(), SearchResult(docs=DOCS))

    section = response.get("xjoin")
    assert section["joinIds"] == ["a", "b"]
    assert section["total"] == 3
    # unmatched "x" left out, repeated "a" joined once
    assert section["external"] == [
        {"joinId": "a", "doc": {"name": "alpha", "score": 1.0}},
        {"joinId": "b", "doc": [{"name": "beta-1", "score": 2.0}, {"name": "beta-2", "score": 3.0}]},
    ]
    assert response.version == 1


@pytest.mark.asyncio
async def test_process_without_matches_adds_empty_section(coordinator, context):
    await coordinator.prepare(_params(), context)

    response = coordinator.process(_params(), context, SearchResponse(), SearchResult(docs=[{"key": "zzz"}]))

    assert response.get("xjoin")["external"] == []


def test_process_without_cached_results_is_noop(coordinator, context):
    response = coordinator.process(_params(), context, SearchResponse(), SearchResult(docs=DOCS))

    assert "xjoin" not in response


@pytest.mark.asyncio
async def test_process_projects_fields(coordinator, context):
    params = _params(**{"xjoin.fl": "total", "xjoin.doc.fl": "name"})
    await coordinator.prepare(params, context)

    section = coordinator.process(params, context, SearchResponse(), SearchResult(docs=DOCS)).get("xjoin")

    assert set(section) == {"total", "external"}
    assert section["external"][0]["doc"] == {"name": "alpha"}
    assert section["external"][1]["doc"] == [{"name": "beta-1"}, {"name": "beta-2"}]


@pytest.mark.asyncio
async def test_process_grouped_results(coordinator, context):
    grouped = {"organism": {"groups": [{"groupValue": "h", "doclist": {"docs": DOCS[2:]}},
                                       {"groupValue": "m", "doclist": {"docs": DOCS[:2]}}]}}
    await coordinator.prepare(_params(), context)

    result = SearchResult(grouped=grouped, grouping=GroupingSpec(("organism",)))
    section = coordinator.process(_params(), context, SearchResponse(), result).get("xjoin")

    assert [e["joinId"] for e in section["external"]] == ["b", "a"]


# ============================================================================
# finalize
# ============================================================================


SHARDS = [
    ShardResponse("shard1", {"response": {"docs": [{"key": "b"}, {"key": "x"}]}}),
    ShardResponse("shard2", None),
    ShardResponse("shard3", {"response": {"docs": [{"key": "a"}, {"key": "b"}]}}),
]


@pytest.mark.asyncio
async def test_finalize_joins_shard_documents(coordinator, context):
    await coordinator.prepare(_params(), context)

    response = coordinator.finalize(_params(), context, SearchResponse(), SHARDS)

    assert [e["joinId"] for e in response.get("xjoin")["external"]] == ["b", "a"]


@pytest.mark.asyncio
async def test_finalize_runs_once(coordinator, context):
    await coordinator.prepare(_params(), context)

    first = coordinator.finalize(_params(), context, SearchResponse(), SHARDS)
    second = coordinator.finalize(_params(), context, first, SHARDS)

    assert second is first
    assert len(second.get("xjoin")["external"]) == 2


@pytest.mark.asyncio
async def test_finalize_skips_existing_section(coordinator, context):
    await coordinator.prepare(_params(), context)
    response = SearchResponse().with_value("xjoin", {"external": []})

    assert coordinator.finalize(_params(), context, response, SHARDS) is response
    assert not context.is_merged("xjoin")


@pytest.mark.asyncio
async def test_process_then_finalize_merges_once(coordinator, context):
    await coordinator.prepare(_params(), context)

    response = coordinator.process(_params(), context, SearchResponse(), SearchResult(docs=DOCS))
    final = coordinator.finalize(_params(), context, response, SHARDS)

    assert final is response
    assert [k for k, _ in final.values] == ["xjoin"]


def test_finalize_without_results_is_noop(coordinator, context):
    response = SearchResponse()

    assert coordinator.finalize(_params(), context, response, SHARDS) is response


# ============================================================================
# Request-scoped state
# ============================================================================


def test_search_response_is_immutable():
    response = SearchResponse()
    updated = response.with_value("a", 1).with_value("b", 2).with_value("a", 3)

    assert "a" not in response
    assert updated.to_dict() == {"b": 2, "a": 3}
    assert updated.version == 3
    with pytest.raises(FrozenInstanceError):
        updated.version = 0


def test_context_results_set_once(sample_results):
    context = QueryContext()
    context.set_results("xjoin", sample_results)

    with pytest.raises(RuntimeError):
        context.set_results("xjoin", sample_results)


def test_unknown_key_is_no_result(sample_results):
    assert sample_results.get("nope") is None
    assert sample_results.join_ids() == ["a", "b"]


# ============================================================================
# Registry
# ============================================================================


def test_unknown_provider():
    with pytest.raises(ConfigurationError, match="nope"):
        create_provider("nope", {})


def test_registered_provider(stub_provider, monkeypatch):
    monkeypatch.setattr(registry, "_PROVIDERS", dict(registry._PROVIDERS))
    register_provider("stub", lambda config: stub_provider())

    assert "stub" in available_providers()
    assert isinstance(create_provider("stub", {}), stub_provider)
