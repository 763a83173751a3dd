# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Adaptive distance threshold selection.

Looks for a natural break in the candidate distance distribution and cuts
there instead of at a fixed threshold. Small candidate sets fall back to
a percentile; flat distributions fall back to the configured threshold.
"""

from dataclasses import dataclass
from typing import Literal, Optional, Sequence

ThresholdMethod = Literal["adaptive", "percentile", "configured"]


@dataclass(frozen=True)
class AdaptiveThresholdConfig:
    """Tuning for adaptive threshold selection.

    Attributes:
        min_candidates_for_gap: Candidates required before gap detection.
        fallback_percentile: Percentile used for small candidate sets.
        min_gap_size: Smallest gap treated as a natural break.
        floor: Lower clamp for any returned threshold.
        ceiling: Upper clamp for any returned threshold.
    """

    min_candidates_for_gap: int = 8
    fallback_percentile: float = 0.75
    min_gap_size: float = 0.05
    floor: float = 0.15
    ceiling: float = 0.65


DEFAULT_ADAPTIVE_CONFIG = AdaptiveThresholdConfig()


@dataclass(frozen=True)
class AdaptiveThresholdResult:
    threshold: float
    method: ThresholdMethod
    candidate_count: int
    gap_size: Optional[float] = None
    gap_index: Optional[int] = None


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def compute_adaptive_threshold(
    distances: Sequence[float],
    configured_threshold: float,
    config: AdaptiveThresholdConfig = DEFAULT_ADAPTIVE_CONFIG,
) -> AdaptiveThresholdResult:
    """Pick a distance threshold from the candidate distribution.

    Args:
        distances: Candidate distances in any order.
        configured_threshold: Threshold used when no break is found.
        config: Tuning parameters.

    Returns:
        The clamped threshold and the method that produced it.
    """
    if not distances:
        return AdaptiveThresholdResult(
            threshold=_clamp(configured_threshold, config.floor, config.ceiling),
            method="configured",
            candidate_count=0,
        )

    ordered = sorted(distances)

    if len(ordered) < config.min_candidates_for_gap:
        index = min(int(len(ordered) * config.fallback_percentile), len(ordered) - 1)
        return AdaptiveThresholdResult(
            threshold=_clamp(ordered[index], config.floor, config.ceiling),
            method="percentile",
            candidate_count=len(ordered),
        )

    max_gap = 0.0
    max_gap_index = 0
    for i in range(1, len(ordered)):
        gap = ordered[i] - ordered[i - 1]
        if gap > max_gap:
            max_gap = gap
            max_gap_index = i

    if max_gap < config.min_gap_size:
        return AdaptiveThresholdResult(
            threshold=_clamp(configured_threshold, config.floor, config.ceiling),
            method="configured",
            candidate_count=len(ordered),
            gap_size=max_gap,
        )

    # Cut at the last distance before the break
    return AdaptiveThresholdResult(
        threshold=_clamp(ordered[max_gap_index - 1], config.floor, config.ceiling),
        method="adaptive",
        candidate_count=len(ordered),
        gap_size=max_gap,
        gap_index=max_gap_index,
    )
