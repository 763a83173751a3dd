# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Snippet anchors and context budgeting for retrieved findings.

Turns retrieved findings into `path:line` anchors pointing at the line of
the current workspace that best matches each finding's text, and trims
anchors or results to a character budget before they are rendered into a
prompt.
"""

import asyncio
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Optional, Sequence, Union

from review_recall.memory.schemas import MergedResult, RetrievalResult

logger = logging.getLogger(__name__)

MAX_SNIPPET_CHARS = 180
MIN_TOKEN_LENGTH = 3

ReadFileFn = Callable[[str], Awaitable[str]]

_NON_WORD = re.compile(r"[^a-z0-9_]+")
_WHITESPACE = re.compile(r"\s+")
_LINE_BREAK = re.compile(r"\r?\n")


@dataclass(frozen=True)
class SnippetAnchor:
    """A location in the workspace related to a past finding.

    Attributes:
        path: Repository-relative file path.
        anchor: `path:line`, or just `path` when no line matched.
        distance: Distance of the originating finding.
        line: 1-based line number, if a line matched.
        snippet: Sanitized text of the matched line.
    """

    path: str
    anchor: str
    distance: float
    line: Optional[int] = None
    snippet: Optional[str] = None

    @property
    def char_weight(self) -> int:
        """Characters this anchor contributes to a rendered prompt."""
        return len(self.anchor) + (len(self.snippet) + 3 if self.snippet else 0)


def _normalize_for_search(value: str) -> str:
    return _WHITESPACE.sub(" ", _NON_WORD.sub(" ", value.lower())).strip()


def _tokenize(value: str) -> list[str]:
    seen: set[str] = set()
    tokens: list[str] = []
    for token in _normalize_for_search(value).split(" "):
        if len(token) < MIN_TOKEN_LENGTH or token in seen:
            continue
        seen.add(token)
        tokens.append(token)
    return tokens


def _sanitize_snippet(line: str) -> str:
    normalized = _WHITESPACE.sub(" ", line.replace("`", "'")).strip()
    if len(normalized) <= MAX_SNIPPET_CHARS:
        return normalized
    return f"{normalized[:MAX_SNIPPET_CHARS].rstrip()}..."


def find_best_line(lines: Sequence[str], finding_text: str) -> Optional[int]:
    """Best matching 1-based line number for a finding, or None.

    A line qualifies with at least two token hits or one bigram hit.
    Score is token hits plus twice the bigram hits; the first line with
    the highest score wins.
    """
    tokens = _tokenize(finding_text)
    if not tokens:
        return None

    phrases = [f"{a} {b}" for a, b in zip(tokens, tokens[1:])]

    best_score = 0
    best_line: Optional[int] = None

    for index, raw_line in enumerate(lines):
        if not raw_line.strip():
            continue
        line = _normalize_for_search(raw_line)
        if not line:
            continue

        token_hits = sum(1 for token in tokens if token in line)
        phrase_hits = sum(1 for phrase in phrases if phrase in line)
        if token_hits < 2 and phrase_hits == 0:
            continue

        score = token_hits + phrase_hits * 2
        if score > best_score:
            best_score = score
            best_line = index + 1

    return best_line


def _path_only(finding: Union[RetrievalResult, MergedResult]) -> SnippetAnchor:
    path = finding.record.file_path
    return SnippetAnchor(path=path, anchor=path, distance=finding.distance)


def _inside_workspace(workspace_dir: str, repo_path: str) -> bool:
    root = os.path.abspath(workspace_dir)
    absolute = os.path.normpath(os.path.join(root, repo_path))
    relative = os.path.relpath(absolute, root)
    return not (relative.startswith("..") or os.path.isabs(relative))


async def _read_text(file_path: str) -> str:
    return await asyncio.to_thread(Path(file_path).read_text, encoding="utf-8")


async def build_snippet_anchors(
    workspace_dir: str,
    findings: Sequence[Union[RetrievalResult, MergedResult]],
    read_file: Optional[ReadFileFn] = None,
) -> list[SnippetAnchor]:
    """Build one anchor per finding.

    Anchors degrade to path-only when the path leaves the workspace, the
    file cannot be read, or no line matches. Each file is read at most
    once per call.

    Args:
        workspace_dir: Checkout root the paths are relative to.
        findings: Retrieved findings, in output order.
        read_file: Async file reader (defaults to UTF-8 disk read).

    Returns:
        Anchors in the same order as the findings.
    """
    if not findings:
        return []

    read_file = read_file or _read_text
    file_cache: dict[str, Optional[str]] = {}
    anchors: list[SnippetAnchor] = []

    for finding in findings:
        repo_path = finding.record.file_path
        if not repo_path or not _inside_workspace(workspace_dir, repo_path):
            anchors.append(_path_only(finding))
            continue

        if repo_path not in file_cache:
            absolute = os.path.normpath(os.path.join(os.path.abspath(workspace_dir), repo_path))
            try:
                file_cache[repo_path] = await read_file(absolute)
            except Exception as e:
                logger.debug(f"Could not read {repo_path} for snippet anchor: {e}")
                file_cache[repo_path] = None

        content = file_cache[repo_path]
        if not content:
            anchors.append(_path_only(finding))
            continue

        lines = _LINE_BREAK.split(content)
        line_number = find_best_line(lines, finding.record.finding_text)
        if line_number is None:
            anchors.append(_path_only(finding))
            continue

        snippet = _sanitize_snippet(lines[line_number - 1])
        anchors.append(
            SnippetAnchor(
                path=repo_path,
                anchor=f"{repo_path}:{line_number}",
                distance=finding.distance,
                line=line_number,
                snippet=snippet or None,
            )
        )

    return anchors


def _relevance_key(anchor: SnippetAnchor) -> tuple[float, str, float]:
    line = anchor.line if anchor.line is not None else float("inf")
    return (anchor.distance, anchor.path, line)


def trim_snippet_anchors_to_budget(
    anchors: Sequence[SnippetAnchor],
    max_chars: int,
    max_items: int,
) -> list[SnippetAnchor]:
    """Keep the most relevant anchors that fit the budget.

    Args:
        anchors: Anchors in any order.
        max_chars: Character budget across all kept anchors.
        max_items: Maximum number of anchors.

    Returns:
        Anchors sorted by distance, path, then line.
    """
    if not anchors or max_items <= 0 or max_chars <= 0:
        return []

    trimmed = sorted(anchors, key=_relevance_key)[:max_items]
    total = sum(anchor.char_weight for anchor in trimmed)
    while trimmed and total > max_chars:
        total -= trimmed.pop().char_weight

    return trimmed


def trim_results_to_budget(
    results: Sequence[MergedResult],
    max_chars: int,
) -> list[MergedResult]:
    """Keep the closest results whose finding texts fit in max_chars."""
    if not results or max_chars <= 0:
        return []

    trimmed = sorted(
        results,
        key=lambda r: (r.adjusted_distance, r.record.file_path, r.memory_id),
    )
    total = sum(len(r.record.finding_text) for r in trimmed)
    while trimmed and total > max_chars:
        total -= len(trimmed.pop().record.finding_text)

    return trimmed
