# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Security tests for repository isolation.

Verifies zero cross-repository leakage: a repository only ever sees its
own findings, plus its owner's other repositories when sharing is on.
"""

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


@pytest.mark.critical
class TestCrossRepositoryIsolation:
    """A repository must never see another repository's findings."""

    @pytest.mark.asyncio
    async def test_identical_vector_in_other_repo_never_returned(
        self, store, layer, record_factory, vector_factory
    ):
        """An exact-match vector stored under another repo stays invisible."""
        vector = vector_factory(0.3, 0.9, 0.1)
        await store.write_memory(record_factory(repo="acme/b", finding_id=1), vector)

        retrieval = await layer.retrieve_with_isolation(
            query_embedding=vector,
            repo="acme/a",
            owner="acme",
            sharing_enabled=False,
            top_k=10,
            distance_threshold=2.0,
        )

        assert retrieval.results == []
        assert retrieval.provenance.repo_sources == ()

    @pytest.mark.asyncio
    async def test_other_owner_invisible_even_with_sharing(
        self, store, layer, record_factory, vector_factory
    ):
        """Sharing never crosses owner boundaries."""
        vector = vector_factory(1.0)
        await store.write_memory(
            record_factory(repo="globex/api", owner="globex", finding_id=1), vector
        )

        retrieval = await layer.retrieve_with_isolation(
            query_embedding=vector,
            repo="acme/api",
            owner="acme",
            sharing_enabled=True,
            top_k=10,
            distance_threshold=2.0,
        )

        assert retrieval.results == []
        assert retrieval.provenance.shared_pool_used is False

    @pytest.mark.asyncio
    async def test_every_result_belongs_to_scope(
        self, store, layer, record_factory, vector_factory
    ):
        """With sharing on, every result is the repo itself or an owner sibling."""
        vector = vector_factory(1.0)
        for i, (repo, owner) in enumerate(
            [("acme/api", "acme"), ("acme/web", "acme"), ("globex/api", "globex")]
        ):
            await store.write_memory(record_factory(repo=repo, owner=owner, finding_id=i), vector)

        retrieval = await layer.retrieve_with_isolation(
            query_embedding=vector,
            repo="acme/api",
            owner="acme",
            sharing_enabled=True,
            top_k=10,
            distance_threshold=2.0,
        )

        assert {r.record.repo for r in retrieval.results} == {"acme/api", "acme/web"}
        assert all(r.record.owner == "acme" for r in retrieval.results)

    @pytest.mark.asyncio
    async def test_misbehaving_store_cannot_leak(self, record_factory, vector_factory):
        """Records from the wrong partition are dropped even if the store returns them."""
        leaked = record_factory(repo="acme/b", finding_id=1).model_copy(update={"id": 1})
        store = Mock()
        store.retrieve = AsyncMock(return_value=[RetrievalCandidate(memory_id=1, distance=0.0)])
        store.retrieve_for_owner = AsyncMock(return_value=[])
        store.get_memory_record = AsyncMock(return_value=leaked)

        retrieval = await IsolationLayer(store).retrieve_with_isolation(
            query_embedding=vector_factory(1.0),
            repo="acme/a",
            owner="acme",
            sharing_enabled=False,
            top_k=5,
            distance_threshold=0.3,
        )

        assert retrieval.results == []

    @pytest.mark.asyncio
    async def test_shared_pool_cannot_return_own_repo_as_shared(
        self, record_factory, vector_factory
    ):
        """A shared-pool hit from the querying repo itself is dropped."""
        own = record_factory(repo="acme/a", finding_id=1).model_copy(update={"id": 1})
        store = Mock()
        store.retrieve = AsyncMock(return_value=[])
        store.retrieve_for_owner = AsyncMock(
            return_value=[RetrievalCandidate(memory_id=1, distance=0.1)]
        )
        store.get_memory_record = AsyncMock(return_value=own)

        retrieval = await IsolationLayer(store).retrieve_with_isolation(
            query_embedding=vector_factory(1.0),
            repo="acme/a",
            owner="acme",
            sharing_enabled=True,
            top_k=5,
            distance_threshold=0.3,
        )

        assert retrieval.results == []
