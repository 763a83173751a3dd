# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Repository-isolated retrieval with an optional owner-wide shared pool.

This is the only component allowed to query the memory store, so
repository scoping is enforced in exactly one place:

1. Query the primary partition (the querying repository).
2. Filter by the distance threshold.
3. If sharing is enabled, query the owner's other repositories the same way.
4. Concatenate primary then shared, dedupe by id (first wins), sort, truncate.
5. Resolve full records, silently dropping ids that no longer resolve
   and re-checking each record against the partition it was queried from.
"""

import logging
from typing import Awaitable, Callable, Optional

import numpy as np
from numpy.typing import NDArray

from review_recall.memory.protocols import MemoryStore
from review_recall.memory.schemas import (
    Provenance,
    ProvenanceQuery,
    RetrievalCandidate,
    RetrievalResult,
    RetrievalWithProvenance,
)

logger = logging.getLogger(__name__)


class IsolationLayer:
    """Tenant-isolated retrieval over a MemoryStore.

    Example:
        >>> layer = IsolationLayer(store)
        >>> retrieval = await layer.retrieve_with_isolation(
        ...     query_embedding=vector,
        ...     repo="acme/widget",
        ...     owner="acme",
        ...     sharing_enabled=True,
        ...     top_k=5,
        ...     distance_threshold=0.3,
        ... )
        >>> print(retrieval.provenance.repo_sources)

    Attributes:
        store: The memory store being isolated.
    """

    # Adaptive mode over-fetches so the gap detector has enough candidates
    ADAPTIVE_MIN_INTERNAL_TOP_K = 20
    ADAPTIVE_TOP_K_MULTIPLIER = 4

    def __init__(self, store: MemoryStore):
        """Initialize the isolation layer.

        Args:
            store: Memory store implementation.
        """
        self.store = store

    async def _query_pool(
        self, pool: str, query: Callable[[], Awaitable[list[RetrievalCandidate]]]
    ) -> list[RetrievalCandidate]:
        try:
            return await query()
        except Exception as e:
            logger.warning(f"Memory store {pool} query failed (fail-open): {e}")
            return []

    async def _resolve(self, candidate: RetrievalCandidate) -> Optional[RetrievalResult]:
        try:
            record = await self.store.get_memory_record(candidate.memory_id)
        except Exception as e:
            logger.warning(f"Failed to resolve memory {candidate.memory_id} (fail-open): {e}")
            return None
        if record is None:
            return None
        return RetrievalResult(
            memory_id=candidate.memory_id,
            distance=candidate.distance,
            record=record,
            source_repo=record.source_repo or record.repo,
        )

    @staticmethod
    def _in_scope(result: RetrievalResult, repo: str, owner: str, is_primary: bool) -> bool:
        """Re-check the partition of a resolved record against the query."""
        if is_primary:
            return result.record.repo == repo
        return result.record.owner == owner and result.record.repo != repo

    async def retrieve_with_isolation(
        self,
        query_embedding: NDArray[np.float32],
        repo: str,
        owner: str,
        sharing_enabled: bool,
        top_k: int,
        distance_threshold: float,
        adaptive: bool = False,
    ) -> RetrievalWithProvenance:
        """Retrieve findings scoped to a repository.

        Args:
            query_embedding: Query vector.
            repo: The querying repository (primary partition).
            owner: Owner of the repository, used for the shared pool.
            sharing_enabled: Whether to include the owner's other repositories.
            top_k: Maximum number of results.
            distance_threshold: Maximum distance kept (ignored in adaptive mode).
            adaptive: Over-fetch and leave thresholding to the caller.

        Returns:
            Results ascending by distance, with provenance.
        """
        internal_top_k = (
            max(self.ADAPTIVE_MIN_INTERNAL_TOP_K, top_k * self.ADAPTIVE_TOP_K_MULTIPLIER)
            if adaptive
            else top_k
        )

        def within_threshold(hits: list[RetrievalCandidate]) -> list[RetrievalCandidate]:
            if adaptive:
                return hits
            return [hit for hit in hits if hit.distance <= distance_threshold]

        primary = within_threshold(
            await self._query_pool(
                "primary",
                lambda: self.store.retrieve(query_embedding, repo, internal_top_k),
            )
        )

        shared: list[RetrievalCandidate] = []
        if sharing_enabled:
            shared = within_threshold(
                await self._query_pool(
                    "shared",
                    lambda: self.store.retrieve_for_owner(
                        query_embedding, owner, repo, internal_top_k
                    ),
                )
            )

        # Primary first so ties favor the tenant's own data
        all_candidates = [(c, True) for c in primary] + [(c, False) for c in shared]
        seen: set[int] = set()
        deduped: list[tuple[RetrievalCandidate, bool]] = []
        for candidate, is_primary in all_candidates:
            if candidate.memory_id in seen:
                continue
            seen.add(candidate.memory_id)
            deduped.append((candidate, is_primary))

        # sort() is stable, so equal distances keep primary-first order
        deduped.sort(key=lambda item: item[0].distance)
        top_candidates = deduped[:internal_top_k]

        results: list[RetrievalResult] = []
        repo_sources: list[str] = []
        for candidate, is_primary in top_candidates:
            result = await self._resolve(candidate)
            if result is None:
                continue
            if not self._in_scope(result, repo, owner, is_primary):
                logger.warning(
                    f"Dropped out-of-scope memory {result.memory_id} "
                    f"(repo={result.record.repo}) for query repo={repo}"
                )
                continue
            results.append(result)
            if result.source_repo not in repo_sources:
                repo_sources.append(result.source_repo)

        provenance = Provenance(
            repo_sources=tuple(repo_sources),
            shared_pool_used=sharing_enabled and len(shared) > 0,
            total_candidates=len(all_candidates),
            query=ProvenanceQuery(
                repo=repo,
                top_k=top_k,
                threshold=distance_threshold,
                adaptive=adaptive,
                internal_top_k=internal_top_k,
            ),
        )

        logger.debug(
            f"Memory retrieval completed with provenance: repo={repo}, owner={owner}, "
            f"sharing_enabled={sharing_enabled}, primary={len(primary)}, "
            f"shared={len(shared)}, results={len(results)}, "
            f"repo_sources={list(provenance.repo_sources)}, "
            f"shared_pool_used={provenance.shared_pool_used}"
        )

        return RetrievalWithProvenance(results=results, provenance=provenance)
