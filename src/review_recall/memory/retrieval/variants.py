# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Multi-query variant building.

Derives three complementary natural-language queries from one change:

- intent: what the change is trying to do (title, body, type, author tier)
- file-path: where it happens (changed paths, code before docs)
- code-shape: what it touches (languages, risk signals, type)

Inputs are normalized (trimmed, whitespace-collapsed, case-folded) so that
semantically equal changes produce byte-identical variants, which keeps
cache keys stable.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from review_recall.memory.schemas import RetrievalVariant, VariantType

MAX_QUERY_LENGTH = 800
MAX_BODY_LENGTH = 200
MAX_LANGUAGES = 5
MAX_RISK_SIGNALS = 5
MAX_FILE_PATHS = 8

DOC_EXTENSIONS = (".md", ".mdx", ".rst", ".txt", ".adoc")


@dataclass
class VariantInput:
    """Change summary used to build retrieval variants.

    Attributes:
        title: Change title.
        body: Change description.
        conventional_type: Conventional-commit type (feat, fix, ...).
        languages: Detected languages of the change.
        risk_signals: Risk tokens from diff analysis.
        file_paths: Changed file paths.
        author_tier: Author experience tier.
    """

    title: str
    body: Optional[str] = None
    conventional_type: Optional[str] = None
    languages: List[str] = field(default_factory=list)
    risk_signals: List[str] = field(default_factory=list)
    file_paths: List[str] = field(default_factory=list)
    author_tier: Optional[str] = None


def normalize_text(value: Optional[str]) -> str:
    """Trim, collapse whitespace and case-fold."""
    return " ".join((value or "").split()).casefold()


def _normalize_list(values: List[str], limit: int) -> List[str]:
    normalized = {normalize_text(value) for value in values}
    normalized.discard("")
    return sorted(normalized)[:limit]


def _is_documentation(path: str) -> bool:
    return path.endswith(DOC_EXTENSIONS) or path.startswith("docs/") or "/docs/" in path


def _rank_file_paths(values: List[str], limit: int) -> List[str]:
    """Dedupe preserving order, code paths before documentation, then cap."""
    seen: set[str] = set()
    paths: List[str] = []
    for value in values:
        path = normalize_text(value)
        if not path or path in seen:
            continue
        seen.add(path)
        paths.append(path)

    code = [path for path in paths if not _is_documentation(path)]
    docs = [path for path in paths if _is_documentation(path)]
    return (code + docs)[:limit]


def _bounded_join(parts: List[str]) -> str:
    query = "\n".join(part for part in parts if part).strip()
    return query[:MAX_QUERY_LENGTH]


def build_retrieval_variants(change: VariantInput) -> List[RetrievalVariant]:
    """Build the intent, file-path and code-shape variants for a change.

    Args:
        change: The change summary.

    Returns:
        Exactly three variants in fixed order [intent, file-path, code-shape].

    Example:
        >>> variants = build_retrieval_variants(VariantInput(title="Fix auth"))
        >>> [v.type.value for v in variants]
        ['intent', 'file-path', 'code-shape']
    """
    title = normalize_text(change.title)
    body = normalize_text(change.body)[:MAX_BODY_LENGTH]
    conventional_type = normalize_text(change.conventional_type)
    author_tier = normalize_text(change.author_tier)
    languages = _normalize_list(change.languages, MAX_LANGUAGES)
    risk_signals = _normalize_list(change.risk_signals, MAX_RISK_SIGNALS)
    file_paths = _rank_file_paths(change.file_paths, MAX_FILE_PATHS)

    intent = _bounded_join([
        title,
        body,
        f"[{conventional_type}]" if conventional_type else "",
        f"author: {author_tier}" if author_tier else "",
    ])

    file_path = _bounded_join([title, "files:", *file_paths])

    code_shape = _bounded_join([
        title,
        f"languages: {' '.join(languages)}" if languages else "",
        f"risk: {' '.join(risk_signals)}" if risk_signals else "",
        f"type: {conventional_type}" if conventional_type else "",
    ])

    return [
        RetrievalVariant(VariantType.INTENT, intent, VariantType.INTENT.priority),
        RetrievalVariant(VariantType.FILE_PATH, file_path, VariantType.FILE_PATH.priority),
        RetrievalVariant(VariantType.CODE_SHAPE, code_shape, VariantType.CODE_SHAPE.priority),
    ]
