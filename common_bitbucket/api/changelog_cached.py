# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Changelog (e.g. CHANGES.md) cached raw-file API.

Resource:
  GET {enterprise}/projects/{owner}/repos/{repo}/browse/{urlencoded file}?at={branch}&raw

The REST API cannot stream raw file bytes, so the web "raw" view is used. When no
update is available the installed copy is read instead of the network.

TTL:
  - configured (default 12h)
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from common_types import ResourceKind

from ..models import RepositoryDescriptor
from ..parsers import NO_CHANGELOG_MESSAGE, parse_changelog_response
from ..urls import RAW_FILE_FORMAT, raw_file_url
from .base_cached import CachedResourceBase

CACHE_NAME = ResourceKind.CHANGELOG.value
API_CALL_FORMAT = f"GET {RAW_FILE_FORMAT}"
CACHE_KEY_FORMAT = "changelog"


class ChangelogCached(CachedResourceBase):
    not_found_message = NO_CHANGELOG_MESSAGE

    @property
    def cache_name(self) -> str:
        return CACHE_NAME

    def api_call_format(self) -> str:
        return API_CALL_FORMAT

    def precondition(self, descriptor: RepositoryDescriptor, *, file: str = "", **kwargs: Any) -> Optional[str]:
        return None if file else "No changelog file name given"

    def local_fallback_file(self, *, file: str = "", **kwargs: Any) -> Optional[str]:
        return file or None

    def fetch(self, descriptor: RepositoryDescriptor, *, file: str = "", **kwargs: Any) -> Any:
        text = self.api.get_raw(
            raw_file_url(descriptor, file),
            timeout=self.env.config.timeout_s,
            label=CACHE_NAME,
        )
        return text or None

    def parse(self, raw: Any, descriptor: RepositoryDescriptor, **kwargs: Any) -> Any:
        return parse_changelog_response(raw)

    def is_valid(self, payload: Any) -> bool:
        return isinstance(payload, dict) and isinstance(payload.get("changes"), str)

    def project(self, descriptor: RepositoryDescriptor, payload: Dict[str, str], **kwargs: Any) -> None:
        descriptor.set_changelog(self.env.host.render_markdown(payload["changes"]))
