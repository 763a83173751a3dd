# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Recency weighting for retrieved findings.

Implements exponential time decay on finding age, converted into a
distance-space penalty so older findings rank lower.

Decay: multiplier = exp(-ln(2) / half_life * age_days)
Floor: floor severities (critical, major) never drop below the floor
multiplier; every other severity never drops below half of it.
Penalty: adjusted_distance *= (2 - multiplier)
"""

import math
from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional, Sequence

from review_recall.config import RecencyConfig
from review_recall.memory.schemas import MergedResult

SECONDS_PER_DAY = 24 * 60 * 60


def _age_days(created_at: Optional[datetime], now: datetime) -> float:
    # Undated findings are treated as recent
    if created_at is None:
        return 0.0
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return max(0.0, (now - created_at).total_seconds() / SECONDS_PER_DAY)


def severity_floor(severity: str, config: RecencyConfig) -> float:
    """Minimum decay multiplier for a severity.

    Args:
        severity: Finding severity (any case).
        config: Recency settings.

    Returns:
        The floor multiplier.
    """
    floor_severities = {s.lower() for s in config.floor_severities}
    if severity.lower() in floor_severities:
        return config.floor_multiplier
    return config.floor_multiplier * 0.5


def decay_multiplier(
    created_at: Optional[datetime],
    severity: str,
    now: datetime,
    config: RecencyConfig,
) -> float:
    """Floored exponential decay multiplier for one finding.

    Args:
        created_at: Creation time of the finding (None means recent).
        severity: Finding severity.
        now: Reference time.
        config: Recency settings.

    Returns:
        Multiplier in [floor, 1.0].

    Example:
        >>> decay_multiplier(now - timedelta(days=90), "minor", now, RecencyConfig())
        0.5
    """
    rate = math.log(2) / config.half_life_days
    multiplier = math.exp(-rate * _age_days(created_at, now))
    return max(multiplier, severity_floor(severity, config))


def apply_recency_weighting(
    results: Sequence[MergedResult],
    now: Optional[datetime] = None,
    config: Optional[RecencyConfig] = None,
) -> list[MergedResult]:
    """Penalize older findings in distance space.

    Args:
        results: Reranked results; neither the sequence nor its elements
            are mutated.
        now: Reference time (defaults to current UTC time).
        config: Recency settings (defaults if not provided).

    Returns:
        New results re-sorted ascending by adjusted distance.
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    config = config or RecencyConfig()

    weighted: list[MergedResult] = []
    for result in results:
        severity = result.record.severity
        severity_name = severity.value if hasattr(severity, "value") else str(severity)
        multiplier = decay_multiplier(result.record.created_at, severity_name, now, config)

        # multiplier=1.0 -> factor 1.0, multiplier=0.3 -> factor 1.7
        factor = 2.0 - multiplier
        weighted.append(replace(result, adjusted_distance=result.adjusted_distance * factor))

    weighted.sort(key=lambda r: r.adjusted_distance)
    return weighted
