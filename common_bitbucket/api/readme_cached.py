# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""readme.txt cached raw-file API.

Resource:
  GET {enterprise}/projects/{owner}/repos/{repo}/browse/readme.txt?at={branch}&raw

Only fetched for repositories whose installed copy ships a readme.txt. When no
update is available the installed copy is parsed instead of the network.

TTL:
  - configured (default 12h)
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from common_types import ResourceKind

from ..models import RepositoryDescriptor
from ..parsers import NO_README_MESSAGE, parse_readme
from ..urls import RAW_FILE_FORMAT, raw_file_url
from .base_cached import CachedResourceBase

CACHE_NAME = ResourceKind.README.value
API_CALL_FORMAT = f"GET {RAW_FILE_FORMAT}".replace("{file}", "readme.txt")
CACHE_KEY_FORMAT = "readme"
README_FILE = "readme.txt"


class ReadmeCached(CachedResourceBase):
    not_found_message = NO_README_MESSAGE

    @property
    def cache_name(self) -> str:
        return CACHE_NAME

    def api_call_format(self) -> str:
        return API_CALL_FORMAT

    def precondition(self, descriptor: RepositoryDescriptor, **kwargs: Any) -> Optional[str]:
        if self.env.host.local_file_exists(descriptor, README_FILE):
            return None
        return f"No local {README_FILE}"

    def local_fallback_file(self, **kwargs: Any) -> Optional[str]:
        return README_FILE

    def fetch(self, descriptor: RepositoryDescriptor, **kwargs: Any) -> Any:
        text = self.api.get_raw(
            raw_file_url(descriptor, README_FILE),
            timeout=self.env.config.timeout_s,
            label=CACHE_NAME,
        )
        return text or None

    def parse(self, raw: Any, descriptor: RepositoryDescriptor, **kwargs: Any) -> Any:
        return parse_readme(raw)

    def is_valid(self, payload: Any) -> bool:
        return isinstance(payload, dict) and isinstance(payload.get("sections"), dict)

    def project(self, descriptor: RepositoryDescriptor, payload: Dict[str, Any], **kwargs: Any) -> None:
        descriptor.set_readme_info(payload, render=self.env.host.render_markdown)
