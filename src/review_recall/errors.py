# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Exception types for the retrieval engine.

Only construction-time contract violations are raised to callers.
Call-time failures are recovered inside the engine.
"""


class RecallError(Exception):
    """Base class for review_recall errors."""


class ConfigurationError(RecallError, ValueError):
    """Raised when configuration values are out of range or malformed."""

    def __init__(self, field_name: str, message: str):
        self.field_name = field_name
        super().__init__(f"Invalid configuration for '{field_name}': {message}")


class EmbeddingUnavailableError(RecallError):
    """Raised when no embedding could be produced for a query variant."""

    def __init__(self, variant_type: str):
        self.variant_type = variant_type
        super().__init__(f"Embedding unavailable for {variant_type} retrieval variant")
