# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Staleness maintenance for stored embeddings.

When the embedding model changes, vectors produced by the previous model
are no longer comparable with new query vectors. The janitor marks them
stale (excluding them from retrieval immediately) and then purges them.
"""

import logging
import time
from typing import Any, Dict

from review_recall.memory.protocols import MemoryStore

logger = logging.getLogger(__name__)


class StalenessJanitor:
    """Marks and purges embeddings from superseded models.

    Attributes:
        store: Memory store to maintain.

    Example:
        >>> janitor = StalenessJanitor(store)
        >>> result = await janitor.run("all-MiniLM-L6-v2")
        >>> print(f"Purged {result['purged']} stale embeddings")
    """

    def __init__(self, store: MemoryStore):
        self.store = store

    async def run(self, model_name: str) -> Dict[str, Any]:
        """Mark rows from other models stale, then purge stale rows.

        Args:
            model_name: The current embedding model.

        Returns:
            Counts of marked and purged rows and the run duration.
        """
        start_time = time.perf_counter()

        marked = await self.store.mark_stale(model_name)
        purged = await self.store.purge_stale_embeddings()

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            f"Staleness janitor: marked={marked}, purged={purged}, "
            f"model={model_name}, duration={duration_ms:.1f}ms"
        )

        return {
            "marked": marked,
            "purged": purged,
            "duration_ms": duration_ms,
        }
