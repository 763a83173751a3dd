# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Collaborator protocols for the retrieval engine.

Defines the MemoryStore protocol for finding storage and the
EmbeddingProvider protocol for the remote text-to-vector call.
"""

from dataclasses import dataclass
from typing import Literal, Optional, Protocol, List, runtime_checkable

import numpy as np
from numpy.typing import NDArray

from review_recall.memory.schemas import FindingRecord, RetrievalCandidate


# Protocol version for compatibility tracking
MEMORY_STORE_VERSION = "1.0.0"

InputType = Literal["document", "query"]


@dataclass(frozen=True)
class EmbeddingResult:
    """A generated embedding.

    Attributes:
        embedding: 1D float32 vector.
        model: Model that produced it.
        dimensions: Width of the vector.
    """

    embedding: NDArray[np.float32]
    model: str
    dimensions: int


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Protocol for embedding providers.

    Implementations must fail open: any error yields None, never an
    exception into the retrieval path.
    """

    @property
    def model(self) -> str: ...

    @property
    def dimensions(self) -> int: ...

    async def generate(self, text: str, input_type: InputType) -> Optional[EmbeddingResult]:
        """Embed text.

        Args:
            text: Text to embed.
            input_type: "document" for stored findings, "query" for lookups.

        Returns:
            The embedding, or None when unavailable.
        """
        ...


@runtime_checkable
class MemoryStore(Protocol):
    """Protocol for finding memory stores.

    Every read is scoped by an exact-match repository partition and
    excludes stale records. Only the isolation layer may call the
    retrieval methods.
    """

    async def write_memory(
        self, record: FindingRecord, embedding: NDArray[np.float32]
    ) -> Optional[int]:
        """Insert a record, ignoring `(repo, finding_id, outcome)` conflicts.

        Returns:
            The new record id, or None if the record already existed.
        """
        ...

    async def retrieve(
        self, query_embedding: NDArray[np.float32], repo: str, top_k: int
    ) -> List[RetrievalCandidate]:
        """Nearest neighbors within one repository, ascending by distance."""
        ...

    async def retrieve_for_owner(
        self,
        query_embedding: NDArray[np.float32],
        owner: str,
        exclude_repo: str,
        top_k: int,
    ) -> List[RetrievalCandidate]:
        """Nearest neighbors across the owner's other repositories."""
        ...

    async def get_memory_record(self, memory_id: int) -> Optional[FindingRecord]:
        """Resolve a record by id, None if it no longer exists."""
        ...

    async def mark_stale(self, embedding_model: str) -> int:
        """Flag records produced by any other model. Returns count flagged."""
        ...

    async def purge_stale_embeddings(self) -> int:
        """Delete stale records. Returns count removed."""
        ...

    def close(self) -> None:
        """Release resources."""
        ...
