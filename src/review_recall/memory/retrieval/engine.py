# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Knowledge retrieval orchestrator.

Pipeline for one change under review:

1. Build intent, file-path and code-shape query variants
2. Embed and retrieve each variant through the isolation layer, with
   bounded concurrency and per-variant failure isolation
3. Merge variant results into one deduplicated list
4. Optionally cut at an adaptive distance threshold
5. Rerank by language affinity, then by recency
6. Anchor results to lines in a local checkout, when one is given

Retrieval is fail-open: an unexpected error yields an empty result, never
an exception.

Example:
    >>> retriever = KnowledgeRetriever(provider, IsolationLayer(store), RetrievalConfig())
    >>> result = await retriever.retrieve(
    ...     RetrievalRequest(repo="acme/api", owner="acme", change=VariantInput(title="Fix auth"))
    ... )
    >>> for r in result.results:
    ...     print(r.memory_id, r.adjusted_distance)
"""

import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from review_recall.config import RetrievalConfig
from review_recall.errors import EmbeddingUnavailableError
from review_recall.memory.protocols import EmbeddingProvider, EmbeddingResult
from review_recall.memory.retrieval.adaptive_threshold import compute_adaptive_threshold
from review_recall.memory.retrieval.cache import SearchCache, build_search_cache_key
from review_recall.memory.retrieval.executor import execute_retrieval_variants
from review_recall.memory.retrieval.isolation import IsolationLayer
from review_recall.memory.retrieval.language_rerank import rerank_by_language
from review_recall.memory.retrieval.merger import merge_variant_results
from review_recall.memory.retrieval.recency import apply_recency_weighting
from review_recall.memory.retrieval.snippets import (
    SnippetAnchor,
    build_snippet_anchors,
    trim_snippet_anchors_to_budget,
)
from review_recall.memory.retrieval.variants import VariantInput, build_retrieval_variants
from review_recall.memory.schemas import (
    MergedResult,
    Provenance,
    ProvenanceQuery,
    RetrievalResult,
    RetrievalVariant,
    VariantFailure,
    VariantType,
)

logger = logging.getLogger(__name__)

VARIANT_COUNT = len(VariantType)


@dataclass
class RetrievalRequest:
    """A retrieval request for one change.

    Attributes:
        repo: Querying repository (owner/name).
        owner: Repository owner, for the shared pool.
        change: Change summary the variants are built from.
        sharing_enabled: Overrides the configured sharing switch.
        top_k: Overrides the configured result count.
        now: Reference time for recency weighting.
        workspace_dir: Checkout root for snippet anchors (none if not set).
    """

    repo: str
    owner: str
    change: VariantInput
    sharing_enabled: Optional[bool] = None
    top_k: Optional[int] = None
    now: Optional[datetime] = None
    workspace_dir: Optional[str] = None


@dataclass
class RetrievalMetrics:
    """Metrics for a retrieval operation.

    Attributes:
        total_time_ms: Total retrieval time in milliseconds.
        variant_time_ms: Time spent embedding and querying variants.
        rerank_time_ms: Time spent merging, thresholding and reranking.
        variants_executed: Number of variants run.
        variants_failed: Number of variants that failed.
        merged_candidates: Candidates after cross-variant merge.
        final_results: Number of final results.
        threshold: Distance threshold in effect.
        threshold_method: How the threshold was chosen.
    """

    total_time_ms: float = 0.0
    variant_time_ms: float = 0.0
    rerank_time_ms: float = 0.0
    variants_executed: int = 0
    variants_failed: int = 0
    merged_candidates: int = 0
    final_results: int = 0
    threshold: float = 0.0
    threshold_method: str = "configured"


@dataclass
class RetrieveResult:
    """Result from knowledge retrieval."""

    results: list[MergedResult]
    provenance: Provenance
    variant_failures: list[VariantFailure] = field(default_factory=list)
    metrics: RetrievalMetrics = field(default_factory=RetrievalMetrics)
    snippet_anchors: list[SnippetAnchor] = field(default_factory=list)


def variant_top_k(top_k: int) -> int:
    """Per-variant result count so the variants together cover top_k."""
    return max(1, math.ceil(top_k / VARIANT_COUNT))


class KnowledgeRetriever:
    """Multi-query retrieval over past review findings.

    Attributes:
        embedding_provider: Generates query embeddings.
        isolation: Repository-scoped retrieval boundary.
        config: Retrieval configuration.
        embedding_cache: Optional cache for query embeddings.
    """

    def __init__(
        self,
        embedding_provider: EmbeddingProvider,
        isolation_layer: IsolationLayer,
        config: Optional[RetrievalConfig] = None,
        embedding_cache: Optional[SearchCache] = None,
    ):
        self.embedding_provider = embedding_provider
        self.isolation = isolation_layer
        self.config = config or RetrievalConfig()
        self.embedding_cache = embedding_cache

    async def _embed(self, repo: str, variant: RetrievalVariant) -> EmbeddingResult:
        async def load() -> EmbeddingResult:
            result = await self.embedding_provider.generate(variant.query, "query")
            if result is None:
                raise EmbeddingUnavailableError(variant.type.value)
            return result

        if self.embedding_cache is None:
            return await load()

        key = build_search_cache_key(
            repo,
            "embedding",
            variant.query,
            {"model": self.embedding_provider.model},
        )
        return await self.embedding_cache.get_or_load(key, load)

    def _empty_provenance(self, repo: str, top_k: int) -> Provenance:
        return Provenance(
            repo_sources=(),
            shared_pool_used=False,
            total_candidates=0,
            query=ProvenanceQuery(
                repo=repo,
                top_k=top_k,
                threshold=self.config.distance_threshold,
                adaptive=self.config.adaptive,
            ),
        )

    async def retrieve(self, request: RetrievalRequest) -> Optional[RetrieveResult]:
        """Retrieve past findings relevant to a change.

        Args:
            request: The change and its repository scope.

        Returns:
            Reranked results with provenance, or None when retrieval is
            disabled.
        """
        if not self.config.enabled:
            return None

        start_time = time.perf_counter()
        top_k = request.top_k if request.top_k is not None else self.config.top_k
        sharing_enabled = (
            request.sharing_enabled
            if request.sharing_enabled is not None
            else self.config.sharing.enabled
        )
        metrics = RetrievalMetrics(threshold=self.config.distance_threshold)

        try:
            variants = build_retrieval_variants(request.change)
            per_variant_k = variant_top_k(top_k)
            provenances: dict[VariantType, Provenance] = {}

            async def execute(variant: RetrievalVariant) -> list[RetrievalResult]:
                embedding = await self._embed(request.repo, variant)
                retrieved = await self.isolation.retrieve_with_isolation(
                    query_embedding=embedding.embedding,
                    repo=request.repo,
                    owner=request.owner,
                    sharing_enabled=sharing_enabled,
                    top_k=per_variant_k,
                    distance_threshold=self.config.distance_threshold,
                    adaptive=self.config.adaptive,
                )
                provenances[variant.type] = retrieved.provenance
                return retrieved.results

            # Variants
            variant_start = time.perf_counter()
            outcomes = await execute_retrieval_variants(
                variants, execute, max_concurrency=self.config.max_variant_concurrency
            )
            metrics.variant_time_ms = (time.perf_counter() - variant_start) * 1000
            failures = [o for o in outcomes if isinstance(o, VariantFailure)]
            metrics.variants_executed = len(outcomes)
            metrics.variants_failed = len(failures)

            provenance = self._combine_provenance(request.repo, top_k, variants, provenances)

            # Merge and rerank
            rerank_start = time.perf_counter()
            if self.config.adaptive:
                candidates = merge_variant_results(outcomes, top_k=provenance.total_candidates)
                decision = compute_adaptive_threshold(
                    [c.distance for c in candidates],
                    configured_threshold=self.config.distance_threshold,
                )
                metrics.threshold = decision.threshold
                metrics.threshold_method = decision.method
                merged = [c for c in candidates if c.distance <= decision.threshold][:top_k]
            else:
                candidates = merge_variant_results(outcomes, top_k=top_k)
                merged = candidates
            metrics.merged_candidates = len(candidates)

            if self.config.language_rerank and request.change.languages:
                merged = rerank_by_language(merged, request.change.languages)
            results = apply_recency_weighting(merged, now=request.now, config=self.config.recency)
            metrics.rerank_time_ms = (time.perf_counter() - rerank_start) * 1000

            # Snippet anchors
            anchors: list[SnippetAnchor] = []
            if request.workspace_dir and results:
                anchors = trim_snippet_anchors_to_budget(
                    await build_snippet_anchors(request.workspace_dir, results),
                    max_chars=self.config.max_context_chars,
                    max_items=top_k,
                )

        except Exception as e:
            logger.warning(f"Knowledge retrieval failed for {request.repo} (fail-open): {e}")
            metrics.total_time_ms = (time.perf_counter() - start_time) * 1000
            return RetrieveResult(
                results=[],
                provenance=self._empty_provenance(request.repo, top_k),
                metrics=metrics,
            )

        metrics.final_results = len(results)
        metrics.total_time_ms = (time.perf_counter() - start_time) * 1000

        logger.debug(
            f"Knowledge retrieval for {request.repo}: {metrics.final_results} results, "
            f"{metrics.variants_failed}/{metrics.variants_executed} variants failed, "
            f"threshold={metrics.threshold:.3f} ({metrics.threshold_method}), "
            f"{metrics.total_time_ms:.1f}ms"
        )

        return RetrieveResult(
            results=results,
            provenance=provenance,
            variant_failures=failures,
            metrics=metrics,
            snippet_anchors=anchors,
        )

    def _combine_provenance(
        self,
        repo: str,
        top_k: int,
        variants: list[RetrievalVariant],
        provenances: dict[VariantType, Provenance],
    ) -> Provenance:
        """Union per-variant provenance in variant order."""
        repo_sources: list[str] = []
        shared_pool_used = False
        total_candidates = 0
        internal_top_k: Optional[int] = None

        for variant in variants:
            variant_provenance = provenances.get(variant.type)
            if variant_provenance is None:
                continue
            for source in variant_provenance.repo_sources:
                if source not in repo_sources:
                    repo_sources.append(source)
            shared_pool_used = shared_pool_used or variant_provenance.shared_pool_used
            total_candidates += variant_provenance.total_candidates
            internal_top_k = variant_provenance.query.internal_top_k

        return Provenance(
            repo_sources=tuple(repo_sources),
            shared_pool_used=shared_pool_used,
            total_candidates=total_candidates,
            query=ProvenanceQuery(
                repo=repo,
                top_k=top_k,
                threshold=self.config.distance_threshold,
                adaptive=self.config.adaptive,
                internal_top_k=internal_top_k,
            ),
        )
