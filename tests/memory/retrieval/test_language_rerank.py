# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Tests for language-aware reranking."""

import pytest

from review_recall.memory.retrieval.language_rerank import (
    LanguageRerankConfig,
    classify_file_language,
    rerank_by_language,
)
from review_recall.memory.schemas import MergedResult


@pytest.fixture
def merged_factory(result_factory):
    def _make(memory_id, distance, file_path):
        base = result_factory(memory_id, distance, file_path=file_path)
        return MergedResult(
            memory_id=memory_id,
            distance=distance,
            record=base.record,
            source_repo=base.source_repo,
            adjusted_distance=distance,
        )

    return _make


class TestClassifyFileLanguage:
    @pytest.mark.parametrize(
        "path,language",
        [
            ("src/app.ts", "typescript"),
            ("src/App.TSX", "typescript"),
            ("lib/util.mjs", "javascript"),
            ("service/main.py", "python"),
            ("cmd/server.go", "go"),
            ("core/lib.rs", "rust"),
            ("include/vec.hpp", "cpp"),
            ("scripts/deploy.sh", "shell"),
        ],
    )
    def test_known_extensions(self, path, language):
        assert classify_file_language(path) == language

    @pytest.mark.parametrize("path", ["README.md", "Makefile", "config/app.yaml", ""])
    def test_unknown_extensions(self, path):
        assert classify_file_language(path) is None


class TestRerankByLanguage:
    def test_same_language_boosted(self, merged_factory):
        reranked = rerank_by_language([merged_factory(1, 0.2, "src/a.py")], ["Python"])

        assert reranked[0].adjusted_distance == pytest.approx(0.2 * 0.85)
        assert reranked[0].language_match is True

    def test_other_language_penalized(self, merged_factory):
        reranked = rerank_by_language([merged_factory(1, 0.2, "src/a.go")], ["python"])

        assert reranked[0].adjusted_distance == pytest.approx(0.2 * 1.15)
        assert reranked[0].language_match is False

    def test_unknown_language_unchanged(self, merged_factory):
        reranked = rerank_by_language([merged_factory(1, 0.2, "docs/guide.md")], ["python"])

        assert reranked[0].adjusted_distance == pytest.approx(0.2)

    def test_reorders_by_adjusted_distance(self, merged_factory):
        """A same-language hit can overtake a slightly closer cross-language one."""
        go = merged_factory(1, 0.20, "svc/a.go")
        py = merged_factory(2, 0.22, "svc/b.py")

        reranked = rerank_by_language([go, py], ["python"])

        assert [r.memory_id for r in reranked] == [2, 1]

    def test_custom_config(self, merged_factory):
        config = LanguageRerankConfig(same_language_boost=0.5, cross_language_penalty=2.0)

        reranked = rerank_by_language([merged_factory(1, 0.2, "a.py")], ["python"], config)

        assert reranked[0].adjusted_distance == pytest.approx(0.1)

    def test_does_not_mutate_input(self, merged_factory):
        results = [merged_factory(1, 0.2, "a.py")]

        rerank_by_language(results, ["python"])

        assert results[0].adjusted_distance == 0.2
        assert results[0].language_match is None
