# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Repository metadata cached API.

Resource:
  GET /1.0/projects/{owner}/repos/{repo}

`project.public` is inverted into the descriptor's `private` flag.

TTL:
  - configured (default 12h); skipped entirely when nothing is cached and the
    host reports no update available
"""

from __future__ import annotations

from typing import Any, Dict

from common_types import ResourceKind

from ..models import RepositoryDescriptor
from ..parsers import NO_META_MESSAGE, parse_meta_response
from ..urls import API_META_FORMAT, repo_endpoint
from .base_cached import CachedResourceBase

CACHE_NAME = ResourceKind.META.value
API_CALL_FORMAT = f"GET {API_META_FORMAT}"
CACHE_KEY_FORMAT = "meta"


class RepoMetaCached(CachedResourceBase):
    skip_without_update = True
    not_found_message = NO_META_MESSAGE

    @property
    def cache_name(self) -> str:
        return CACHE_NAME

    def api_call_format(self) -> str:
        return API_CALL_FORMAT

    def fetch(self, descriptor: RepositoryDescriptor, **kwargs: Any) -> Any:
        return self.api.get(repo_endpoint(descriptor), timeout=self.env.config.timeout_s, label=CACHE_NAME)

    def parse(self, raw: Any, descriptor: RepositoryDescriptor, **kwargs: Any) -> Any:
        return parse_meta_response(raw)

    def is_valid(self, payload: Any) -> bool:
        return isinstance(payload, dict) and isinstance(payload.get("private"), bool)

    def project(self, descriptor: RepositoryDescriptor, payload: Dict[str, Any], **kwargs: Any) -> None:
        descriptor.set_repo_meta(payload)
