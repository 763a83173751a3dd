# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Language-aware reranking.

Findings written against files in the same language as the change are
boosted; findings in another known language are penalized. Files whose
language is unknown (config, docs) are left untouched so they are never
demoted.
"""

from dataclasses import dataclass, replace
from typing import Optional, Sequence

from review_recall.memory.schemas import MergedResult

EXTENSION_LANGUAGE_MAP: dict[str, str] = {
    "ts": "typescript",
    "tsx": "typescript",
    "mts": "typescript",
    "cts": "typescript",
    "js": "javascript",
    "jsx": "javascript",
    "mjs": "javascript",
    "cjs": "javascript",
    "py": "python",
    "pyw": "python",
    "go": "go",
    "rs": "rust",
    "java": "java",
    "kt": "kotlin",
    "kts": "kotlin",
    "swift": "swift",
    "cs": "csharp",
    "cpp": "cpp",
    "cc": "cpp",
    "cxx": "cpp",
    "hpp": "cpp",
    "hxx": "cpp",
    "c": "c",
    "h": "c",
    "rb": "ruby",
    "php": "php",
    "scala": "scala",
    "sh": "shell",
    "bash": "shell",
    "zsh": "shell",
    "sql": "sql",
    "dart": "dart",
    "lua": "lua",
    "ex": "elixir",
    "exs": "elixir",
    "zig": "zig",
    "r": "r",
    "m": "objectivec",
    "mm": "objectivecpp",
    "pl": "perl",
    "pm": "perl",
    "clj": "clojure",
    "cljs": "clojure",
    "cljc": "clojure",
    "erl": "erlang",
    "hrl": "erlang",
    "hs": "haskell",
    "ml": "ocaml",
    "mli": "ocaml",
    "fs": "fsharp",
    "fsx": "fsharp",
    "fsi": "fsharp",
    "jl": "julia",
    "groovy": "groovy",
    "gvy": "groovy",
    "v": "verilog",
    "sv": "verilog",
    "vhd": "vhdl",
    "vhdl": "vhdl",
    "cmake": "cmake",
}


@dataclass
class LanguageRerankConfig:
    """Distance multipliers for the language reranker."""

    same_language_boost: float = 0.85
    cross_language_penalty: float = 1.15


def classify_file_language(file_path: str) -> Optional[str]:
    """Lower-case language name for a path, None if unknown."""
    name = file_path.rsplit("/", 1)[-1]
    if "." not in name:
        return None
    extension = name.rsplit(".", 1)[-1].lower()
    return EXTENSION_LANGUAGE_MAP.get(extension)


def rerank_by_language(
    results: Sequence[MergedResult],
    pr_languages: Sequence[str],
    config: Optional[LanguageRerankConfig] = None,
) -> list[MergedResult]:
    """Adjust distances by language affinity with the change.

    Args:
        results: Merged results; not mutated.
        pr_languages: Languages of the change (any case).
        config: Multipliers (defaults if not provided).

    Returns:
        New results ascending by adjusted distance.
    """
    config = config or LanguageRerankConfig()
    languages = {language.lower() for language in pr_languages}

    reranked: list[MergedResult] = []
    for result in results:
        language = classify_file_language(result.record.file_path)

        if language is None:
            multiplier, match = 1.0, False
        elif language in languages:
            multiplier, match = config.same_language_boost, True
        else:
            multiplier, match = config.cross_language_penalty, False

        reranked.append(
            replace(
                result,
                adjusted_distance=result.adjusted_distance * multiplier,
                language_match=match,
            )
        )

    reranked.sort(key=lambda r: r.adjusted_distance)
    return reranked
