#!/usr/bin/env python3
# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Common shared enums/types that must be used by both:
- `common.py` (config/cache layer)
- `common_bitbucket/*` (API client, cached resources, fetcher)

This module MUST NOT import `common.py` or any common_bitbucket modules to avoid cycles.
"""

from __future__ import annotations

from enum import Enum


class ResourceKind(str, Enum):
    """Resource kinds fetched per tracked repository (also the cache key suffix)."""

    FILE = "file"
    TAGS = "tags"
    CHANGELOG = "changelog"
    README = "readme"
    META = "meta"
    BRANCHES = "branches"
    LANGUAGES = "languages"


class RepoType(str, Enum):
    """What kind of package a tracked repository ships."""

    PLUGIN = "plugin"
    THEME = "theme"


class FetchErrorKind(str, Enum):
    """Failure classes for FetchResult.FetchError."""

    TRANSPORT = "transport"
    VALIDATION = "validation"
