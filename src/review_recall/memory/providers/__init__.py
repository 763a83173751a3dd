# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Memory store and embedding provider implementations."""

from review_recall.memory.providers.embeddings import (
    NoOpEmbeddingProvider,
    SentenceTransformerEmbeddingProvider,
    create_embedding_provider,
)
from review_recall.memory.providers.local import LocalMemoryStore, NoOpMemoryStore

__all__ = [
    "LocalMemoryStore",
    "NoOpMemoryStore",
    "NoOpEmbeddingProvider",
    "SentenceTransformerEmbeddingProvider",
    "create_embedding_provider",
]
