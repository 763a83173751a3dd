# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""
Retrieval configuration parsing.

This module provides:
- RetrievalConfig and its nested dataclasses for engine settings
- load_config() to parse the `retrieval` section of .agent/config.yaml

Values are validated when the dataclasses are constructed, so a malformed
configuration fails at startup rather than during a review.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List

import yaml

from review_recall.errors import ConfigurationError

DEFAULT_TOP_K = 5
DEFAULT_DISTANCE_THRESHOLD = 0.3
DEFAULT_MAX_VARIANT_CONCURRENCY = 2
DEFAULT_MAX_CONTEXT_CHARS = 2000

# Hard ceiling so an untrusted repo config cannot fan out unbounded queries
MAX_TOP_K_HARD_LIMIT = 100


@dataclass
class RecencyConfig:
    """Time-decay settings for the recency reranker.

    Attributes:
        half_life_days: Days until the decay multiplier reaches 0.5
        floor_multiplier: Minimum multiplier for floor severities
        floor_severities: Severities that get the full floor; all others
            get half of it
    """

    half_life_days: float = 90.0
    floor_multiplier: float = 0.3
    floor_severities: List[str] = field(default_factory=lambda: ["critical", "major"])

    def __post_init__(self) -> None:
        if self.half_life_days <= 0:
            raise ConfigurationError("half_life_days", "must be positive")
        if not 0.0 <= self.floor_multiplier <= 1.0:
            raise ConfigurationError("floor_multiplier", "must be between 0.0 and 1.0")


@dataclass
class SharingConfig:
    """Owner-wide shared pool settings."""

    enabled: bool = False


@dataclass
class EmbeddingConfig:
    """Embedding provider settings.

    Attributes:
        enabled: If False, a no-op provider is used
        model: Sentence-transformers model name
        dimensions: Expected embedding width
    """

    enabled: bool = True
    model: str = "all-MiniLM-L6-v2"
    dimensions: int = 384

    def __post_init__(self) -> None:
        if self.dimensions <= 0:
            raise ConfigurationError("dimensions", "must be positive")


@dataclass
class RetrievalConfig:
    """Configuration for the knowledge retrieval engine.

    Attributes:
        enabled: Master switch; a disabled engine returns None
        top_k: Number of merged results returned to the caller
        distance_threshold: Maximum cosine distance kept by the isolation layer
        adaptive: Use gap-based adaptive thresholding instead of the static one
        max_variant_concurrency: Concurrent variant retrievals
        max_context_chars: Character budget for snippet anchors
        language_rerank: Apply same-language boost before recency weighting
        recency: Recency reranker settings
        sharing: Shared pool settings
        embedding: Embedding provider settings
    """

    enabled: bool = True
    top_k: int = DEFAULT_TOP_K
    distance_threshold: float = DEFAULT_DISTANCE_THRESHOLD
    adaptive: bool = False
    max_variant_concurrency: int = DEFAULT_MAX_VARIANT_CONCURRENCY
    max_context_chars: int = DEFAULT_MAX_CONTEXT_CHARS
    language_rerank: bool = True
    recency: RecencyConfig = field(default_factory=RecencyConfig)
    sharing: SharingConfig = field(default_factory=SharingConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)

    def __post_init__(self) -> None:
        if not 1 <= self.top_k <= MAX_TOP_K_HARD_LIMIT:
            raise ConfigurationError("top_k", f"must be between 1 and {MAX_TOP_K_HARD_LIMIT}")
        if not 0.0 <= self.distance_threshold <= 2.0:
            raise ConfigurationError("distance_threshold", "must be between 0.0 and 2.0")
        if self.max_variant_concurrency < 1:
            raise ConfigurationError("max_variant_concurrency", "must be at least 1")
        if self.max_context_chars < 0:
            raise ConfigurationError("max_context_chars", "must not be negative")


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name, {})
    return value if isinstance(value, dict) else {}


def load_config(project_root: Path) -> RetrievalConfig:
    """Load retrieval configuration from .agent/config.yaml.

    Args:
        project_root: Path to the project root directory

    Returns:
        RetrievalConfig with settings from the config file or defaults

    Raises:
        ConfigurationError: If a value is present but out of range
    """
    config_path = Path(project_root) / ".agent" / "config.yaml"

    if not config_path.exists():
        return RetrievalConfig()

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f) or {}
    except (yaml.YAMLError, IOError):
        return RetrievalConfig()

    if not isinstance(data, dict):
        return RetrievalConfig()

    retrieval = _section(data, "retrieval")
    recency = _section(retrieval, "recency")
    sharing = _section(retrieval, "sharing")
    embedding = _section(retrieval, "embedding")

    floor_severities = recency.get("floor_severities", ["critical", "major"])
    if not isinstance(floor_severities, list):
        floor_severities = ["critical", "major"]

    return RetrievalConfig(
        enabled=bool(retrieval.get("enabled", True)),
        top_k=int(retrieval.get("top_k", DEFAULT_TOP_K)),
        distance_threshold=float(
            retrieval.get("distance_threshold", DEFAULT_DISTANCE_THRESHOLD)
        ),
        adaptive=bool(retrieval.get("adaptive", False)),
        max_variant_concurrency=int(
            retrieval.get("max_variant_concurrency", DEFAULT_MAX_VARIANT_CONCURRENCY)
        ),
        max_context_chars=int(retrieval.get("max_context_chars", DEFAULT_MAX_CONTEXT_CHARS)),
        language_rerank=bool(retrieval.get("language_rerank", True)),
        recency=RecencyConfig(
            half_life_days=float(recency.get("half_life_days", 90.0)),
            floor_multiplier=float(recency.get("floor_multiplier", 0.3)),
            floor_severities=[str(s).lower() for s in floor_severities if isinstance(s, str)],
        ),
        sharing=SharingConfig(enabled=bool(sharing.get("enabled", False))),
        embedding=EmbeddingConfig(
            enabled=bool(embedding.get("enabled", True)),
            model=str(embedding.get("model", "all-MiniLM-L6-v2")),
            dimensions=int(embedding.get("dimensions", 384)),
        ),
    )
