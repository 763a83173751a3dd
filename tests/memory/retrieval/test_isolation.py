# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Tests for the isolation layer: thresholds, shared pool, provenance and fail-open."""

from unittest.mock import AsyncMock, Mock

import pytest

from review_recall.memory.providers.local import LocalMemoryStore
from review_recall.memory.retrieval.isolation import IsolationLayer
from review_recall.memory.schemas import RetrievalCandidate


@pytest.fixture
def store():
    return LocalMemoryStore(embedding_dim=8)


@pytest.fixture
def layer(store):
    return IsolationLayer(store)


async def _retrieve(layer, vector, **overrides):
    params = dict(
        query_embedding=vector,
        repo="acme/api",
        owner="acme",
        sharing_enabled=False,
        top_k=5,
        distance_threshold=0.3,
    )
    params.update(overrides)
    return await layer.retrieve_with_isolation(**params)


class TestPrimaryRetrieval:
    """Tests for primary-partition retrieval."""

    @pytest.mark.asyncio
    async def test_threshold_filters_distant_hits(
        self, store, layer, record_factory, vector_factory
    ):
        """Hits beyond the distance threshold should be dropped."""
        near = await store.write_memory(record_factory(finding_id=1), vector_factory(1.0))
        await store.write_memory(record_factory(finding_id=2), vector_factory(0.0, 1.0))

        retrieval = await _retrieve(layer, vector_factory(1.0))

        assert [r.memory_id for r in retrieval.results] == [near]

    @pytest.mark.asyncio
    async def test_results_carry_records(self, store, layer, record_factory, vector_factory):
        """Results should be resolved into full records with a source repo."""
        await store.write_memory(record_factory(), vector_factory(1.0))

        retrieval = await _retrieve(layer, vector_factory(1.0))

        result = retrieval.results[0]
        assert result.record.finding_text == "Missing null check on session token"
        assert result.source_repo == "acme/api"

    @pytest.mark.asyncio
    async def test_provenance_for_primary_only(
        self, store, layer, record_factory, vector_factory
    ):
        """Provenance should describe the query and sources."""
        await store.write_memory(record_factory(), vector_factory(1.0))

        retrieval = await _retrieve(layer, vector_factory(1.0))
        provenance = retrieval.provenance

        assert provenance.repo_sources == ("acme/api",)
        assert provenance.shared_pool_used is False
        assert provenance.total_candidates == 1
        assert provenance.query.repo == "acme/api"
        assert provenance.query.top_k == 5
        assert provenance.query.threshold == 0.3
        assert provenance.query.adaptive is False

    @pytest.mark.asyncio
    async def test_empty_store(self, layer, vector_factory):
        """An empty store yields no results and no sources."""
        retrieval = await _retrieve(layer, vector_factory(1.0))

        assert retrieval.results == []
        assert retrieval.provenance.total_candidates == 0


class TestSharedPool:
    """Tests for the owner-wide shared pool."""

    @pytest.mark.asyncio
    async def test_sharing_disabled_never_queries_owner_pool(self, vector_factory):
        """With sharing off the owner pool should not be touched."""
        store = Mock()
        store.retrieve = AsyncMock(return_value=[])
        store.retrieve_for_owner = AsyncMock(return_value=[])

        await _retrieve(IsolationLayer(store), vector_factory(1.0))

        store.retrieve_for_owner.assert_not_called()

    @pytest.mark.asyncio
    async def test_shared_hits_included(self, store, layer, record_factory, vector_factory):
        """Sibling repositories contribute when sharing is on."""
        own = await store.write_memory(record_factory(repo="acme/api"), vector_factory(1.0, 0.1))
        sibling = await store.write_memory(record_factory(repo="acme/web"), vector_factory(1.0))

        retrieval = await _retrieve(layer, vector_factory(1.0), sharing_enabled=True)

        assert [r.memory_id for r in retrieval.results] == [sibling, own]
        assert retrieval.provenance.repo_sources == ("acme/web", "acme/api")
        assert retrieval.provenance.shared_pool_used is True
        assert retrieval.results[0].source_repo == "acme/web"

    @pytest.mark.asyncio
    async def test_shared_pool_unused_when_no_shared_hits(
        self, store, layer, record_factory, vector_factory
    ):
        """shared_pool_used reflects whether the pool returned anything."""
        await store.write_memory(record_factory(repo="acme/api"), vector_factory(1.0))

        retrieval = await _retrieve(layer, vector_factory(1.0), sharing_enabled=True)

        assert retrieval.provenance.shared_pool_used is False

    @pytest.mark.asyncio
    async def test_primary_wins_ties(self, record_factory, vector_factory):
        """At equal distance the primary hit should come first."""
        records = {
            1: record_factory(repo="acme/web", finding_id=1).model_copy(update={"id": 1}),
            2: record_factory(repo="acme/api", finding_id=2).model_copy(update={"id": 2}),
        }
        store = Mock()
        store.retrieve = AsyncMock(return_value=[RetrievalCandidate(memory_id=2, distance=0.1)])
        store.retrieve_for_owner = AsyncMock(
            return_value=[RetrievalCandidate(memory_id=1, distance=0.1)]
        )
        store.get_memory_record = AsyncMock(side_effect=lambda mid: records[mid])

        retrieval = await _retrieve(IsolationLayer(store), vector_factory(1.0), sharing_enabled=True)

        assert [r.memory_id for r in retrieval.results] == [2, 1]

    @pytest.mark.asyncio
    async def test_truncates_combined_pool(self, store, layer, record_factory, vector_factory):
        """The combined pool should be cut to top_k."""
        for i in range(3):
            await store.write_memory(record_factory(repo="acme/api", finding_id=i), vector_factory(1.0))
            await store.write_memory(record_factory(repo="acme/web", finding_id=i), vector_factory(1.0))

        retrieval = await _retrieve(layer, vector_factory(1.0), sharing_enabled=True, top_k=4)

        assert len(retrieval.results) == 4
        assert retrieval.provenance.total_candidates == 6


class TestAdaptiveMode:
    """Tests for adaptive over-fetching."""

    @pytest.mark.asyncio
    async def test_adaptive_overfetches_and_skips_threshold(
        self, store, layer, record_factory, vector_factory
    ):
        """Adaptive mode fetches max(20, 4*top_k) and leaves thresholding to the caller."""
        await store.write_memory(record_factory(finding_id=1), vector_factory(0.0, 1.0))

        retrieval = await _retrieve(layer, vector_factory(1.0), adaptive=True, top_k=2)

        assert len(retrieval.results) == 1
        assert retrieval.provenance.query.adaptive is True
        assert retrieval.provenance.query.internal_top_k == 20

    @pytest.mark.asyncio
    async def test_adaptive_internal_top_k_scales(self, vector_factory):
        """Large top_k values scale the over-fetch by four."""
        store = Mock()
        store.retrieve = AsyncMock(return_value=[])
        store.retrieve_for_owner = AsyncMock(return_value=[])

        retrieval = await _retrieve(IsolationLayer(store), vector_factory(1.0), adaptive=True, top_k=10)

        assert retrieval.provenance.query.internal_top_k == 40
        assert store.retrieve.await_args.args[2] == 40


class TestFailOpen:
    """Store failures should degrade to fewer results, never raise."""

    @pytest.mark.asyncio
    async def test_shared_pool_failure_keeps_primary(
        self, record_factory, vector_factory
    ):
        """A failing owner pool should not hide primary results."""
        record = record_factory(repo="acme/api", finding_id=1).model_copy(update={"id": 1})
        store = Mock()
        store.retrieve = AsyncMock(return_value=[RetrievalCandidate(memory_id=1, distance=0.1)])
        store.retrieve_for_owner = AsyncMock(side_effect=RuntimeError("pool offline"))
        store.get_memory_record = AsyncMock(return_value=record)

        retrieval = await _retrieve(IsolationLayer(store), vector_factory(1.0), sharing_enabled=True)

        assert [r.memory_id for r in retrieval.results] == [1]
        assert retrieval.provenance.shared_pool_used is False

    @pytest.mark.asyncio
    async def test_primary_failure_returns_empty(self, vector_factory):
        """A failing primary query should yield an empty result."""
        store = Mock()
        store.retrieve = AsyncMock(side_effect=RuntimeError("store offline"))
        store.retrieve_for_owner = AsyncMock(return_value=[])

        retrieval = await _retrieve(IsolationLayer(store), vector_factory(1.0))

        assert retrieval.results == []

    @pytest.mark.asyncio
    async def test_unresolvable_ids_dropped(self, record_factory, vector_factory):
        """Ids that no longer resolve should be silently skipped."""
        record = record_factory(repo="acme/api", finding_id=2).model_copy(update={"id": 2})
        store = Mock()
        store.retrieve = AsyncMock(
            return_value=[
                RetrievalCandidate(memory_id=1, distance=0.05),
                RetrievalCandidate(memory_id=2, distance=0.1),
            ]
        )
        store.retrieve_for_owner = AsyncMock(return_value=[])
        store.get_memory_record = AsyncMock(side_effect=lambda mid: record if mid == 2 else None)

        retrieval = await _retrieve(IsolationLayer(store), vector_factory(1.0))

        assert [r.memory_id for r in retrieval.results] == [2]
