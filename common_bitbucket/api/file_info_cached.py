# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Plugin/theme file headers cached API.

Resource:
  GET /1.0/projects/{owner}/repos/{repo}/browse/{file}?at={branch}

The browse API returns the file as `lines[].text`; the lines are recombined and the
WordPress-style header block (Version, Requires WP, ...) is extracted.

TTL:
  - configured (default 12h)
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from common_types import ResourceKind

from ..models import RepositoryDescriptor
from ..parsers import get_file_headers, recombine_lines
from ..results import make_sentinel
from ..urls import API_FILE_FORMAT, browse_endpoint
from .base_cached import CachedResourceBase

CACHE_NAME = ResourceKind.FILE.value
API_CALL_FORMAT = f"GET {API_FILE_FORMAT}"
CACHE_KEY_FORMAT = "file:<filename>"


class FileInfoCached(CachedResourceBase):
    not_found_message = "No file headers found"

    @property
    def cache_name(self) -> str:
        return CACHE_NAME

    def api_call_format(self) -> str:
        return API_CALL_FORMAT

    def cache_key(self, *, file: str = "", **kwargs: Any) -> str:
        return f"{CACHE_NAME}:{file}"

    def precondition(self, descriptor: RepositoryDescriptor, *, file: str = "", **kwargs: Any) -> Optional[str]:
        return None if file else "No file name given"

    def fetch(self, descriptor: RepositoryDescriptor, *, file: str = "", **kwargs: Any) -> Any:
        branch = descriptor.ensure_branch()
        return self.api.get(
            browse_endpoint(descriptor, file),
            params={"at": branch},
            timeout=self.env.config.timeout_s,
            label=CACHE_NAME,
        )

    def parse(self, raw: Any, descriptor: RepositoryDescriptor, **kwargs: Any) -> Any:
        headers = get_file_headers(recombine_lines(raw), descriptor.type)
        return headers if headers else make_sentinel(self.not_found_message)

    def is_valid(self, payload: Any) -> bool:
        return isinstance(payload, dict) and bool(payload.get("Version"))

    def project(self, descriptor: RepositoryDescriptor, payload: Dict[str, str], **kwargs: Any) -> None:
        descriptor.set_file_info(payload)
