# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Tests for adaptive threshold selection."""

import pytest

from review_recall.memory.retrieval.adaptive_threshold import (
    AdaptiveThresholdConfig,
    compute_adaptive_threshold,
)


class TestConfiguredFallback:
    def test_no_candidates_uses_configured(self):
        result = compute_adaptive_threshold([], configured_threshold=0.3)

        assert result.method == "configured"
        assert result.threshold == 0.3
        assert result.candidate_count == 0

    def test_configured_is_clamped(self):
        assert compute_adaptive_threshold([], configured_threshold=0.9).threshold == 0.65
        assert compute_adaptive_threshold([], configured_threshold=0.01).threshold == 0.15

    def test_flat_distribution_uses_configured(self):
        """No gap of at least 0.05 means no natural break."""
        distances = [0.20 + i * 0.01 for i in range(10)]

        result = compute_adaptive_threshold(distances, configured_threshold=0.3)

        assert result.method == "configured"
        assert result.threshold == 0.3
        assert result.gap_size == pytest.approx(0.01)


class TestPercentile:
    def test_small_sets_use_75th_percentile(self):
        result = compute_adaptive_threshold([0.4, 0.1, 0.3, 0.2], configured_threshold=0.3)

        assert result.method == "percentile"
        # index floor(4 * 0.75) = 3 of the sorted list
        assert result.threshold == pytest.approx(0.4)
        assert result.candidate_count == 4

    def test_percentile_clamped(self):
        result = compute_adaptive_threshold([0.9, 0.95], configured_threshold=0.3)

        assert result.threshold == 0.65


class TestGapDetection:
    def test_cuts_before_largest_gap(self):
        distances = [0.18, 0.19, 0.20, 0.21, 0.22, 0.45, 0.46, 0.47]

        result = compute_adaptive_threshold(distances, configured_threshold=0.3)

        assert result.method == "adaptive"
        assert result.threshold == pytest.approx(0.22)
        assert result.gap_index == 5
        assert result.gap_size == pytest.approx(0.23)

    def test_input_order_irrelevant(self):
        distances = [0.47, 0.18, 0.45, 0.22, 0.19, 0.46, 0.21, 0.20]

        assert compute_adaptive_threshold(distances, 0.3).threshold == pytest.approx(0.22)

    def test_adaptive_threshold_clamped_to_floor(self):
        distances = [0.01, 0.02, 0.03, 0.5, 0.51, 0.52, 0.53, 0.54]

        result = compute_adaptive_threshold(distances, configured_threshold=0.3)

        assert result.method == "adaptive"
        assert result.threshold == 0.15

    def test_custom_config(self):
        config = AdaptiveThresholdConfig(min_candidates_for_gap=3)

        result = compute_adaptive_threshold([0.2, 0.21, 0.5], 0.3, config)

        assert result.method == "adaptive"
        assert result.threshold == pytest.approx(0.21)
