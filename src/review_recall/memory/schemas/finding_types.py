# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""
Finding record schema.

A finding record is the unit of knowledge recalled during review: a
prior review finding together with the outcome it received and the
embedding model that produced its vector.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class FindingSeverity(str, Enum):
    """Severity assigned to a review finding."""

    CRITICAL = "critical"
    MAJOR = "major"
    MEDIUM = "medium"
    MINOR = "minor"


class FindingCategory(str, Enum):
    """Category assigned to a review finding."""

    SECURITY = "security"
    CORRECTNESS = "correctness"
    PERFORMANCE = "performance"
    STYLE = "style"
    DOCUMENTATION = "documentation"


class FindingOutcome(str, Enum):
    """How the author or reviewers reacted to a finding.

    - ACCEPTED: The finding was applied
    - SUPPRESSED: The finding was dismissed or suppressed
    - THUMBS_UP: Positive reaction
    - THUMBS_DOWN: Negative reaction
    """

    ACCEPTED = "accepted"
    SUPPRESSED = "suppressed"
    THUMBS_UP = "thumbs_up"
    THUMBS_DOWN = "thumbs_down"


class FindingRecord(BaseModel):
    """A stored review finding.

    `(repo, finding_id, outcome)` is unique within a store. Only the
    `stale` flag is ever mutated after creation.
    """

    id: Optional[int] = Field(default=None, description="Synthetic store id")
    repo: str = Field(..., min_length=1, description="Owning repository (partition key)")
    owner: str = Field(..., min_length=1, description="Owner grouping, e.g. an organization")
    finding_id: int = Field(..., description="Id of the source review finding")
    review_id: int = Field(default=0, description="Id of the review that produced it")
    source_repo: str = Field(default="", description="Repository the finding came from")
    finding_text: str = Field(..., description="Free-text finding description")
    severity: FindingSeverity
    category: FindingCategory
    file_path: str = Field(default="", description="Path the finding was attached to")
    outcome: FindingOutcome
    embedding_model: str = Field(..., description="Model that produced the vector")
    embedding_dim: int = Field(..., gt=0, description="Width of the vector")
    stale: bool = False
    created_at: Optional[datetime] = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation time, used for recency weighting",
    )

    @model_validator(mode="after")
    def default_source_repo(self) -> "FindingRecord":
        """Fall back to the owning repo when no source repo is given."""
        if not self.source_repo:
            self.source_repo = self.repo
        return self

    @property
    def unique_key(self) -> tuple[str, int, str]:
        """The `(repo, finding_id, outcome)` uniqueness key."""
        return (self.repo, self.finding_id, self.outcome.value)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "repo": "acme/widget",
                    "owner": "acme",
                    "finding_id": 42,
                    "finding_text": "SQL query built from unsanitized input",
                    "severity": "critical",
                    "category": "security",
                    "file_path": "src/db/query.py",
                    "outcome": "accepted",
                    "embedding_model": "all-MiniLM-L6-v2",
                    "embedding_dim": 384,
                }
            ]
        },
    }
