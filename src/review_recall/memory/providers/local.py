# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Local in-memory implementation of MemoryStore.

Stores finding records with L2-normalized numpy embeddings and answers
top-K cosine-distance queries partitioned by repository. Suitable for
development, tests and single-process deployments; data is lost on
restart.
"""

import logging
import math
import threading
from collections import defaultdict
from typing import Optional

import numpy as np
from numpy.typing import NDArray

from review_recall.memory.schemas import FindingRecord, RetrievalCandidate

logger = logging.getLogger(__name__)


class LocalMemoryStore:
    """In-memory implementation of the MemoryStore protocol.

    Every query is scoped to one repository partition and skips stale
    records. Owner-wide queries fan out over at most MAX_OWNER_REPOS
    sibling partitions; a failing partition is logged and treated as
    empty.

    Thread-safe: all state access is guarded by an RLock.

    Example:
        >>> store = LocalMemoryStore(embedding_dim=384)
        >>> memory_id = await store.write_memory(record, embedding)
        >>> hits = await store.retrieve(query_embedding, "acme/widget", top_k=5)
        >>> for hit in hits:
        ...     print(f"{hit.memory_id}: {hit.distance:.4f}")

    Attributes:
        embedding_dim: Width of every stored and queried vector.
    """

    DEFAULT_EMBEDDING_DIM = 384
    MAX_OWNER_REPOS = 5

    def __init__(self, embedding_dim: int = DEFAULT_EMBEDDING_DIM):
        """Initialize the store.

        Args:
            embedding_dim: Expected embedding dimension.
        """
        if embedding_dim <= 0:
            raise ValueError("embedding_dim must be positive")
        self.embedding_dim = embedding_dim
        self._records: dict[int, FindingRecord] = {}
        self._vectors: dict[int, NDArray[np.float32]] = {}
        self._ids_by_repo: dict[str, list[int]] = defaultdict(list)
        self._ids_by_key: dict[tuple[str, int, str], int] = {}
        self._next_id = 1
        self._lock = threading.RLock()

    def _normalize(self, vector: NDArray[np.float32]) -> Optional[NDArray[np.float32]]:
        """Validate width and L2-normalize, None for zero vectors."""
        array = np.asarray(vector, dtype=np.float32).reshape(-1)
        if array.shape[0] != self.embedding_dim:
            raise ValueError(
                f"Vector dimension {array.shape[0]} does not match "
                f"expected dimension {self.embedding_dim}"
            )
        norm = float(np.linalg.norm(array))
        if norm == 0.0:
            return None
        return array / norm

    async def write_memory(
        self, record: FindingRecord, embedding: NDArray[np.float32]
    ) -> Optional[int]:
        """Store a finding record with its embedding.

        Writing the same `(repo, finding_id, outcome)` twice is a no-op.

        Args:
            record: The finding record to store.
            embedding: Its embedding vector.

        Returns:
            The new record id, or None for a duplicate write.

        Raises:
            ValueError: If the embedding has the wrong width or zero norm.
        """
        normalized = self._normalize(embedding)
        if normalized is None:
            raise ValueError("Cannot store a zero-norm embedding")

        with self._lock:
            key = record.unique_key
            if key in self._ids_by_key:
                logger.debug(
                    f"Duplicate memory write skipped: repo={record.repo}, "
                    f"finding_id={record.finding_id}, outcome={record.outcome.value}"
                )
                return None

            memory_id = self._next_id
            self._next_id += 1

            # Store a copy to prevent external mutation
            self._records[memory_id] = record.model_copy(update={"id": memory_id})
            self._vectors[memory_id] = normalized
            self._ids_by_repo[record.repo].append(memory_id)
            self._ids_by_key[key] = memory_id

        return memory_id

    def _query_partition(
        self, query_embedding: NDArray[np.float32], repo: str, top_k: int
    ) -> list[RetrievalCandidate]:
        """Top-K cosine-distance search over one repository partition."""
        if top_k <= 0:
            return []

        query = self._normalize(query_embedding)
        if query is None:
            return []

        with self._lock:
            ids = [
                memory_id
                for memory_id in self._ids_by_repo.get(repo, [])
                if not self._records[memory_id].stale
            ]
            if not ids:
                return []
            matrix = np.stack([self._vectors[memory_id] for memory_id in ids])

        distances = 1.0 - matrix @ query
        # Ascending distance, ties by id
        order = np.lexsort((np.asarray(ids), distances))[:top_k]

        return [
            RetrievalCandidate(memory_id=ids[i], distance=float(distances[i]))
            for i in order
        ]

    async def retrieve(
        self, query_embedding: NDArray[np.float32], repo: str, top_k: int
    ) -> list[RetrievalCandidate]:
        """Retrieve nearest neighbors within one repository.

        Args:
            query_embedding: Query vector.
            repo: Exact-match repository partition.
            top_k: Maximum number of candidates.

        Returns:
            Candidates ascending by distance.
        """
        return self._query_partition(query_embedding, repo, top_k)

    def _owner_repos(self, owner: str, exclude_repo: str) -> list[str]:
        """Most active sibling repositories of an owner.

        Ranked by non-stale record count descending, ties by repo name.
        """
        counts: dict[str, int] = defaultdict(int)
        with self._lock:
            for record in self._records.values():
                if record.owner == owner and record.repo != exclude_repo and not record.stale:
                    counts[record.repo] += 1

        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        return [repo for repo, _ in ranked[: self.MAX_OWNER_REPOS]]

    async def retrieve_for_owner(
        self,
        query_embedding: NDArray[np.float32],
        owner: str,
        exclude_repo: str,
        top_k: int,
    ) -> list[RetrievalCandidate]:
        """Retrieve nearest neighbors across an owner's other repositories.

        Args:
            query_embedding: Query vector.
            owner: Owner whose repositories form the shared pool.
            exclude_repo: Repository to leave out (the querying one).
            top_k: Maximum number of candidates.

        Returns:
            Deduplicated candidates ascending by distance.
        """
        repos = self._owner_repos(owner, exclude_repo)
        if not repos or top_k <= 0:
            return []

        per_repo_k = max(1, math.ceil(top_k / len(repos)))
        hits: list[RetrievalCandidate] = []

        for repo in repos:
            try:
                hits.extend(self._query_partition(query_embedding, repo, per_repo_k))
            except Exception as e:
                logger.warning(
                    f"Failed to retrieve memories from shared repo partition {repo} "
                    f"(fail-open): {e}"
                )

        seen: set[int] = set()
        deduped: list[RetrievalCandidate] = []
        for hit in hits:
            if hit.memory_id in seen:
                continue
            seen.add(hit.memory_id)
            deduped.append(hit)

        deduped.sort(key=lambda hit: (hit.distance, hit.memory_id))
        return deduped[:top_k]

    async def get_memory_record(self, memory_id: int) -> Optional[FindingRecord]:
        """Get a finding record by id.

        Args:
            memory_id: The record id.

        Returns:
            A copy of the record if found, None otherwise.
        """
        with self._lock:
            record = self._records.get(memory_id)
            return record.model_copy() if record is not None else None

    async def mark_stale(self, embedding_model: str) -> int:
        """Flag every record whose embedding model differs from the given one.

        Args:
            embedding_model: The current embedding model name.

        Returns:
            Number of records newly flagged.
        """
        flagged = 0
        with self._lock:
            for memory_id, record in self._records.items():
                if record.embedding_model != embedding_model and not record.stale:
                    self._records[memory_id] = record.model_copy(update={"stale": True})
                    flagged += 1
        return flagged

    def _remove(self, memory_id: int) -> None:
        record = self._records.pop(memory_id)
        self._vectors.pop(memory_id, None)
        self._ids_by_key.pop(record.unique_key, None)
        repo_ids = self._ids_by_repo.get(record.repo)
        if repo_ids is not None:
            repo_ids.remove(memory_id)
            if not repo_ids:
                del self._ids_by_repo[record.repo]

    async def purge_stale_embeddings(self) -> int:
        """Delete all stale records.

        Returns:
            Number of records removed.
        """
        with self._lock:
            stale_ids = [mid for mid, record in self._records.items() if record.stale]
            for memory_id in stale_ids:
                self._remove(memory_id)
        return len(stale_ids)

    async def delete_memory(self, memory_id: int) -> bool:
        """Delete a record.

        Args:
            memory_id: The record id to delete.

        Returns:
            True if deleted, False if not found.
        """
        with self._lock:
            if memory_id not in self._records:
                return False
            self._remove(memory_id)
            return True

    async def delete_for_finding(self, repo: str, finding_id: int) -> int:
        """Delete every record of a source finding, whatever its outcome.

        Args:
            repo: Repository of the finding.
            finding_id: Id of the deleted source finding.

        Returns:
            Number of records removed.
        """
        with self._lock:
            ids = [
                memory_id
                for memory_id in self._ids_by_repo.get(repo, [])
                if self._records[memory_id].finding_id == finding_id
            ]
            for memory_id in ids:
                self._remove(memory_id)
        return len(ids)

    def size(self) -> int:
        """Number of stored records, stale included."""
        with self._lock:
            return len(self._records)

    def close(self) -> None:
        """No-op: the store holds no external resources."""


class NoOpMemoryStore:
    """Fail-open MemoryStore used when no vector backend is available.

    Writes are ignored, reads are empty and maintenance reports zero.
    """

    def __init__(self) -> None:
        logger.warning("Memory store running in no-op mode -- all operations are disabled")

    async def write_memory(
        self, record: FindingRecord, embedding: NDArray[np.float32]
    ) -> Optional[int]:
        return None

    async def retrieve(
        self, query_embedding: NDArray[np.float32], repo: str, top_k: int
    ) -> list[RetrievalCandidate]:
        return []

    async def retrieve_for_owner(
        self,
        query_embedding: NDArray[np.float32],
        owner: str,
        exclude_repo: str,
        top_k: int,
    ) -> list[RetrievalCandidate]:
        return []

    async def get_memory_record(self, memory_id: int) -> Optional[FindingRecord]:
        return None

    async def mark_stale(self, embedding_model: str) -> int:
        return 0

    async def purge_stale_embeddings(self) -> int:
        return 0

    def close(self) -> None:
        pass
