# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Finding and retrieval schemas."""

from review_recall.memory.schemas.finding_types import (
    FindingCategory,
    FindingOutcome,
    FindingRecord,
    FindingSeverity,
)
from review_recall.memory.schemas.retrieval_types import (
    MergedResult,
    Provenance,
    ProvenanceQuery,
    RetrievalCandidate,
    RetrievalResult,
    RetrievalVariant,
    RetrievalWithProvenance,
    VariantFailure,
    VariantOutcome,
    VariantSuccess,
    VariantType,
)

__all__ = [
    "FindingCategory",
    "FindingOutcome",
    "FindingRecord",
    "FindingSeverity",
    "MergedResult",
    "Provenance",
    "ProvenanceQuery",
    "RetrievalCandidate",
    "RetrievalResult",
    "RetrievalVariant",
    "RetrievalWithProvenance",
    "VariantFailure",
    "VariantOutcome",
    "VariantSuccess",
    "VariantType",
]
