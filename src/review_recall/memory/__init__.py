# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Finding memory: storage, isolation and retrieval."""
