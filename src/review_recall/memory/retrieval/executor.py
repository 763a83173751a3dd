# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Bounded-concurrency execution of retrieval variants.

Each variant runs behind a shared semaphore so at most `max_concurrency`
embedding/store round trips are in flight. Results are written into a
slot per input position, so output order never depends on completion
order. A failing variant is recorded as a VariantFailure and never
affects its siblings; nothing is retried here.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence

from review_recall.memory.schemas import (
    RetrievalResult,
    RetrievalVariant,
    VariantFailure,
    VariantOutcome,
    VariantSuccess,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 2

VariantExecuteFn = Callable[[RetrievalVariant], Awaitable[list[RetrievalResult]]]


async def execute_retrieval_variants(
    variants: Sequence[RetrievalVariant],
    execute: VariantExecuteFn,
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
) -> list[VariantOutcome]:
    """Run every variant with a concurrency ceiling.

    Args:
        variants: Variants to run, in output order.
        execute: Coroutine function performing one variant's retrieval.
        max_concurrency: Maximum variants in flight at once.

    Returns:
        One outcome per variant, in input order.

    Raises:
        ValueError: If max_concurrency is less than 1.
    """
    if max_concurrency < 1:
        raise ValueError("max_concurrency must be at least 1")

    if not variants:
        return []

    semaphore = asyncio.Semaphore(max_concurrency)
    outcomes: list[Optional[VariantOutcome]] = [None] * len(variants)

    async def run(index: int, variant: RetrievalVariant) -> None:
        async with semaphore:
            try:
                results = await execute(variant)
            except Exception as e:
                logger.warning(f"Retrieval variant {variant.type.value} failed (fail-open): {e}")
                outcomes[index] = VariantFailure(variant=variant, error=e)
                return
        outcomes[index] = VariantSuccess(variant=variant, results=list(results or []))

    await asyncio.gather(*(run(index, variant) for index, variant in enumerate(variants)))

    return [outcome for outcome in outcomes if outcome is not None]
