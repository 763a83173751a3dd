# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Review Recall - retrieval of prior review findings for code review.

Turns a change description into a ranked, deduplicated set of prior
findings under strict per-repository isolation.
"""

__version__ = "0.1.0"
