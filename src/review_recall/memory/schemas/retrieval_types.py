# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Retrieval result types.

These are constructed once per retrieval call and never persisted.
All are frozen dataclasses; rerankers derive new instances with
dataclasses.replace instead of mutating.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from review_recall.memory.schemas.finding_types import FindingRecord


@dataclass(frozen=True)
class RetrievalCandidate:
    """A raw nearest-neighbor hit from the memory store.

    Attributes:
        memory_id: Store id of the finding record.
        distance: Cosine distance to the query (lower is better).
    """

    memory_id: int
    distance: float


@dataclass(frozen=True)
class RetrievalResult:
    """A candidate resolved to its full finding record.

    Attributes:
        memory_id: Store id of the finding record.
        distance: Cosine distance to the query (lower is better).
        record: The resolved finding record.
        source_repo: Repository the hit came from, also for shared-pool hits.
    """

    memory_id: int
    distance: float
    record: FindingRecord
    source_repo: str


@dataclass(frozen=True)
class ProvenanceQuery:
    """Query parameters that produced a retrieval."""

    repo: str
    top_k: int
    threshold: float
    adaptive: bool = False
    internal_top_k: Optional[int] = None


@dataclass(frozen=True)
class Provenance:
    """Audit metadata for one isolation-layer call.

    Telemetry only; never used for further filtering.

    Attributes:
        repo_sources: Distinct source repositories of resolved results.
        shared_pool_used: True if the shared pool contributed candidates.
        total_candidates: Candidate count before dedup and truncation.
        query: Parameters of the call.
    """

    repo_sources: tuple[str, ...]
    shared_pool_used: bool
    total_candidates: int
    query: ProvenanceQuery


@dataclass(frozen=True)
class RetrievalWithProvenance:
    """Isolation-layer output."""

    results: list[RetrievalResult]
    provenance: Provenance


class VariantType(str, Enum):
    """The three complementary query formulations."""

    INTENT = "intent"
    FILE_PATH = "file-path"
    CODE_SHAPE = "code-shape"

    @property
    def priority(self) -> int:
        """Fixed ordinal used only for deterministic tie-breaking."""
        return _VARIANT_PRIORITY[self]

    @property
    def weight(self) -> float:
        """Contribution weight of this variant to the explainability score."""
        return _VARIANT_WEIGHT[self]


_VARIANT_PRIORITY = {
    VariantType.INTENT: 0,
    VariantType.FILE_PATH: 1,
    VariantType.CODE_SHAPE: 2,
}

_VARIANT_WEIGHT = {
    VariantType.INTENT: 1.0,
    VariantType.FILE_PATH: 0.95,
    VariantType.CODE_SHAPE: 0.9,
}


@dataclass(frozen=True)
class RetrievalVariant:
    """One independently embedded query formulation."""

    type: VariantType
    query: str
    priority: int


@dataclass(frozen=True)
class VariantSuccess:
    """Outcome of a variant retrieval that completed."""

    variant: RetrievalVariant
    results: list[RetrievalResult] = field(default_factory=list)


@dataclass(frozen=True)
class VariantFailure:
    """Outcome of a variant retrieval that raised."""

    variant: RetrievalVariant
    error: BaseException


VariantOutcome = Union[VariantSuccess, VariantFailure]


@dataclass(frozen=True)
class MergedResult(RetrievalResult):
    """A retrieval result after cross-variant merging and reranking.

    Attributes:
        score: Weighted similarity score, for explainability only.
        adjusted_distance: Distance after reranking penalties (lower is better).
        matched_variants: Variant types that returned this finding,
            in priority order.
        best_variant_priority: Priority of the best-matching variant.
        language_match: Set by the language reranker, None if not applied.
    """

    score: float = 0.0
    adjusted_distance: float = 0.0
    matched_variants: tuple[VariantType, ...] = ()
    best_variant_priority: int = 0
    language_match: Optional[bool] = None
