# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Embedding providers with fail-open semantics.

Wraps a sentence-transformers model behind the EmbeddingProvider
protocol. Any failure (model load, encode error, bad output) is logged
and returned as None so a missing vector never aborts a review.

Model: all-MiniLM-L6-v2 (384-dim, fast, good quality)
"""

import asyncio
import logging
from typing import Optional, Protocol, cast

import numpy as np
from numpy.typing import NDArray

from review_recall.config import EmbeddingConfig
from review_recall.memory.protocols import EmbeddingProvider, EmbeddingResult, InputType

logger = logging.getLogger(__name__)


class EmbeddingModel(Protocol):
    """Protocol for embedding models."""

    def encode(
        self,
        sentences: list[str] | str,
        batch_size: int = 32,
        show_progress_bar: bool = False,
        normalize_embeddings: bool = True,
    ) -> NDArray[np.float32]: ...


class NoOpEmbeddingProvider:
    """Provider used when embeddings are disabled; always returns None."""

    def __init__(self) -> None:
        logger.info(
            "Embedding provider disabled -- using no-op provider "
            "(all generate calls return None)"
        )

    @property
    def model(self) -> str:
        return "none"

    @property
    def dimensions(self) -> int:
        return 0

    async def generate(self, text: str, input_type: InputType) -> Optional[EmbeddingResult]:
        return None


class SentenceTransformerEmbeddingProvider:
    """Embedding provider backed by sentence-transformers.

    The model is loaded on first use. Encoding runs in a worker thread
    so the event loop is never blocked.

    Example:
        >>> provider = SentenceTransformerEmbeddingProvider()
        >>> result = await provider.generate("unchecked null return", "query")
        >>> if result is not None:
        ...     print(result.dimensions)

    Attributes:
        model_name: Name of the sentence-transformers model.
        embedding_dim: Expected dimension of embeddings.
    """

    DEFAULT_MODEL = "all-MiniLM-L6-v2"
    DEFAULT_EMBEDDING_DIM = 384

    def __init__(
        self,
        model_name: str = DEFAULT_MODEL,
        embedding_dim: int = DEFAULT_EMBEDDING_DIM,
        lazy_load: bool = True,
    ):
        """Initialize the provider.

        Args:
            model_name: Sentence-transformers model name.
            embedding_dim: Expected embedding dimension.
            lazy_load: If True, load model on first use.
        """
        self.model_name = model_name
        self.embedding_dim = embedding_dim
        self._model: Optional[EmbeddingModel] = None

        if not lazy_load:
            self._load_model()

    @property
    def model(self) -> str:
        return self.model_name

    @property
    def dimensions(self) -> int:
        return self.embedding_dim

    def _load_model(self) -> EmbeddingModel:
        """Load the sentence-transformers model.

        Returns:
            Loaded embedding model.
        """
        if self._model is not None:
            return self._model

        try:
            from sentence_transformers import SentenceTransformer
        except ImportError as e:
            raise ImportError(
                "sentence-transformers is required for "
                "SentenceTransformerEmbeddingProvider. "
                "Install with: pip install review-recall[embeddings]"
            ) from e

        logger.info(f"Loading embedding model: {self.model_name}")
        self._model = cast(EmbeddingModel, SentenceTransformer(self.model_name))
        logger.info("Embedding model loaded successfully")
        return self._model

    def _encode(self, text: str) -> NDArray[np.float32]:
        embeddings = self._load_model().encode(
            [text],
            batch_size=1,
            show_progress_bar=False,
            normalize_embeddings=True,
        )
        vector = np.asarray(embeddings, dtype=np.float32)
        return vector[0] if vector.ndim == 2 else vector

    async def generate(self, text: str, input_type: InputType) -> Optional[EmbeddingResult]:
        """Embed text, returning None on any failure.

        Args:
            text: Text to embed.
            input_type: "document" or "query". Symmetric models embed both
                the same way.

        Returns:
            EmbeddingResult, or None when unavailable.
        """
        if not text or not text.strip():
            return None

        try:
            vector = await asyncio.to_thread(self._encode, text)
        except Exception as e:
            logger.warning(f"Embedding generation failed (fail-open): {e}")
            return None

        if vector.shape[0] != self.embedding_dim:
            logger.warning(
                f"Embedding dimension {vector.shape[0]} does not match "
                f"expected {self.embedding_dim} (fail-open)"
            )
            return None

        return EmbeddingResult(
            embedding=vector,
            model=self.model_name,
            dimensions=self.embedding_dim,
        )


def create_embedding_provider(config: EmbeddingConfig) -> EmbeddingProvider:
    """Create an embedding provider from configuration.

    Args:
        config: Embedding settings.

    Returns:
        A sentence-transformers provider, or a no-op provider when disabled.
    """
    if not config.enabled:
        return NoOpEmbeddingProvider()
    return SentenceTransformerEmbeddingProvider(
        model_name=config.model,
        embedding_dim=config.dimensions,
        lazy_load=True,
    )
