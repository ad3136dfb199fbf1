# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Repository tags cached API.

Resource:
  GET /1.0/projects/{owner}/repos/{repo}/tags?limit={list_limit}

Zero tags, a missing `values` list or an `errors` payload all normalize to the
"No tags found" sentinel; `newest_tag` is then left alone.

TTL:
  - configured (default 12h); skipped entirely when nothing is cached and the
    host reports no update available
"""

from __future__ import annotations

from typing import Any, List

from common_types import ResourceKind

from ..models import RepositoryDescriptor
from ..parsers import NO_TAGS_MESSAGE, parse_tag_response
from ..urls import API_TAGS_FORMAT, construct_download_link, repo_endpoint
from .base_cached import CachedResourceBase

CACHE_NAME = ResourceKind.TAGS.value
API_CALL_FORMAT = f"GET {API_TAGS_FORMAT}"
CACHE_KEY_FORMAT = "tags"


class TagsCached(CachedResourceBase):
    skip_without_update = True
    not_found_message = NO_TAGS_MESSAGE

    @property
    def cache_name(self) -> str:
        return CACHE_NAME

    def api_call_format(self) -> str:
        return API_CALL_FORMAT

    def fetch(self, descriptor: RepositoryDescriptor, **kwargs: Any) -> Any:
        return self.api.get(
            repo_endpoint(descriptor, "/tags"),
            params={"limit": self.env.config.list_limit},
            timeout=self.env.config.timeout_s,
            label=CACHE_NAME,
        )

    def parse(self, raw: Any, descriptor: RepositoryDescriptor, **kwargs: Any) -> Any:
        return parse_tag_response(raw)

    def is_valid(self, payload: Any) -> bool:
        return isinstance(payload, list) and bool(payload) and all(isinstance(t, str) for t in payload)

    def project(self, descriptor: RepositoryDescriptor, payload: List[str], **kwargs: Any) -> None:
        rollback = {tag: construct_download_link(descriptor, rollback=tag) for tag in payload}
        descriptor.set_tags(payload, rollback)
