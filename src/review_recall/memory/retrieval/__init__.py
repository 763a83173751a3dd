# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Knowledge retrieval over past review findings.

This module provides repository-scoped retrieval with:
- Hard repository isolation with an optional owner-wide shared pool
- Multi-query variants (intent, file-path, code-shape)
- Bounded-concurrency variant execution with failure isolation
- Deterministic cross-variant merging
- Adaptive thresholding, language and recency reranking
- A fail-open search cache with load coalescing
"""

from review_recall.memory.retrieval.adaptive_threshold import (
    AdaptiveThresholdConfig,
    AdaptiveThresholdResult,
    compute_adaptive_threshold,
)
from review_recall.memory.retrieval.cache import (
    DictStore,
    KeyValueStore,
    SearchCache,
    build_search_cache_key,
)
from review_recall.memory.retrieval.engine import (
    KnowledgeRetriever,
    RetrievalMetrics,
    RetrievalRequest,
    RetrieveResult,
)
from review_recall.memory.retrieval.executor import execute_retrieval_variants
from review_recall.memory.retrieval.isolation import IsolationLayer
from review_recall.memory.retrieval.language_rerank import (
    LanguageRerankConfig,
    classify_file_language,
    rerank_by_language,
)
from review_recall.memory.retrieval.merger import merge_variant_results
from review_recall.memory.retrieval.recency import apply_recency_weighting
from review_recall.memory.retrieval.snippets import (
    SnippetAnchor,
    build_snippet_anchors,
    trim_results_to_budget,
    trim_snippet_anchors_to_budget,
)
from review_recall.memory.retrieval.variants import VariantInput, build_retrieval_variants

__all__ = [
    # Isolation
    "IsolationLayer",
    # Variants
    "VariantInput",
    "build_retrieval_variants",
    "execute_retrieval_variants",
    "merge_variant_results",
    # Reranking
    "AdaptiveThresholdConfig",
    "AdaptiveThresholdResult",
    "compute_adaptive_threshold",
    "LanguageRerankConfig",
    "classify_file_language",
    "rerank_by_language",
    "apply_recency_weighting",
    # Snippets
    "SnippetAnchor",
    "build_snippet_anchors",
    "trim_results_to_budget",
    "trim_snippet_anchors_to_budget",
    # Cache
    "DictStore",
    "KeyValueStore",
    "SearchCache",
    "build_search_cache_key",
    # Engine
    "KnowledgeRetriever",
    "RetrievalMetrics",
    "RetrievalRequest",
    "RetrieveResult",
]
