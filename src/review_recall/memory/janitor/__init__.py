# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Maintenance tasks for the memory store."""

from review_recall.memory.janitor.staleness import StalenessJanitor

__all__ = ["StalenessJanitor"]
