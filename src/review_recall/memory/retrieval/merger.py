# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Cross-variant result merging.

Deduplicates findings returned by several query variants into one
ranked list. A finding matched by more than one variant keeps its
lowest distance and remembers every variant that matched it.

Ordering: ascending best distance, then best-matching variant priority,
then memory id. The output is identical for any permutation of the
input variants.
"""

from dataclasses import dataclass, field
from typing import Sequence

from review_recall.memory.schemas import (
    MergedResult,
    RetrievalResult,
    VariantOutcome,
    VariantSuccess,
    VariantType,
)

SCORE_PRECISION = 8


@dataclass
class _MergeEntry:
    """Accumulator for one finding across variants."""

    representative: RetrievalResult
    best_priority: int
    scores: dict[VariantType, float] = field(default_factory=dict)


def _identity(result: RetrievalResult) -> int:
    return result.record.id if result.record.id is not None else result.memory_id


def _variant_score(distance: float, variant_type: VariantType) -> float:
    return (1.0 / (1.0 + max(0.0, distance))) * variant_type.weight


def merge_variant_results(
    results_by_variant: Sequence[VariantOutcome],
    top_k: int,
) -> list[MergedResult]:
    """Merge per-variant outcomes into one deduplicated ranked list.

    Failed variants contribute nothing; the merge itself never fails.

    Args:
        results_by_variant: One outcome per executed variant, any order.
        top_k: Maximum number of merged results.

    Returns:
        Merged results, best first.

    Example:
        >>> merged = merge_variant_results(outcomes, top_k=3)
        >>> [(m.memory_id, m.distance) for m in merged]
        [(2, 0.2), (3, 0.25), (1, 0.3)]
    """
    if top_k <= 0 or not results_by_variant:
        return []

    entries: dict[int, _MergeEntry] = {}

    for outcome in results_by_variant:
        if not isinstance(outcome, VariantSuccess):
            continue

        variant_type = outcome.variant.type
        priority = variant_type.priority

        for result in outcome.results:
            key = _identity(result)
            score = _variant_score(result.distance, variant_type)
            entry = entries.get(key)

            if entry is None:
                entries[key] = _MergeEntry(
                    representative=result,
                    best_priority=priority,
                    scores={variant_type: score},
                )
                continue

            entry.scores[variant_type] = max(entry.scores.get(variant_type, 0.0), score)
            best = entry.representative
            if (result.distance, priority) < (best.distance, entry.best_priority):
                entry.representative = result
                entry.best_priority = priority

    merged: list[MergedResult] = []
    for entry in entries.values():
        best = entry.representative
        matched = tuple(sorted(entry.scores, key=lambda t: t.priority))
        score = sum(entry.scores[t] for t in matched)
        merged.append(
            MergedResult(
                memory_id=best.memory_id,
                distance=best.distance,
                record=best.record,
                source_repo=best.source_repo,
                score=round(score, SCORE_PRECISION),
                adjusted_distance=best.distance,
                matched_variants=matched,
                best_variant_priority=entry.best_priority,
            )
        )

    merged.sort(key=lambda m: (m.distance, m.best_variant_priority, m.memory_id))
    return merged[:top_k]
