# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""
Root pytest configuration with shared fixtures and markers.

This file is automatically loaded by pytest and provides:
- Custom markers for test categories
- Shared factories for finding records and embeddings
- Test collection customization
"""

from datetime import datetime, timezone

import numpy as np
import pytest

from review_recall.memory.schemas import (
    FindingCategory,
    FindingOutcome,
    FindingRecord,
    FindingSeverity,
    RetrievalResult,
)

TEST_DIM = 8


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "critical: Mark test as critical priority (isolation, determinism)",
    )
    config.addinivalue_line(
        "markers",
        "integration: Mark test as integration test (full retrieval pipeline)",
    )
    config.addinivalue_line(
        "markers",
        "security: Mark test as security-related",
    )
    config.addinivalue_line(
        "markers",
        "slow: Mark test as slow-running (may be skipped in quick runs)",
    )


# ============================================================================
# Shared Fixtures
# ============================================================================


def unit_vector(*components: float, dim: int = TEST_DIM) -> np.ndarray:
    """Build a float32 vector from leading components, zero-padded to dim."""
    vector = np.zeros(dim, dtype=np.float32)
    vector[: len(components)] = components
    return vector


def make_record(
    repo: str = "acme/api",
    finding_id: int = 1,
    owner: str = "acme",
    outcome: FindingOutcome = FindingOutcome.ACCEPTED,
    severity: FindingSeverity = FindingSeverity.MAJOR,
    file_path: str = "src/auth/login.ts",
    finding_text: str = "Missing null check on session token",
    embedding_model: str = "test-model",
    created_at: datetime = None,
    **overrides,
) -> FindingRecord:
    """Build a FindingRecord with sensible defaults."""
    return FindingRecord(
        repo=repo,
        owner=owner,
        finding_id=finding_id,
        finding_text=finding_text,
        severity=severity,
        category=FindingCategory.CORRECTNESS,
        file_path=file_path,
        outcome=outcome,
        embedding_model=embedding_model,
        embedding_dim=TEST_DIM,
        created_at=created_at or datetime.now(timezone.utc),
        **overrides,
    )


def make_result(memory_id: int, distance: float, **record_fields) -> RetrievalResult:
    """Build a resolved RetrievalResult around a fresh record."""
    record = make_record(finding_id=memory_id, **record_fields).model_copy(
        update={"id": memory_id}
    )
    return RetrievalResult(
        memory_id=memory_id,
        distance=distance,
        record=record,
        source_repo=record.repo,
    )


@pytest.fixture
def record_factory():
    """Factory fixture for FindingRecord instances."""
    return make_record


@pytest.fixture
def result_factory():
    """Factory fixture for RetrievalResult instances."""
    return make_result


@pytest.fixture
def vector_factory():
    """Factory fixture for zero-padded float32 vectors."""
    return unit_vector


# ============================================================================
# Test Collection Hooks
# ============================================================================


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add automatic markers based on paths."""
    for item in items:
        if "security" in str(item.fspath):
            item.add_marker(pytest.mark.security)
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
