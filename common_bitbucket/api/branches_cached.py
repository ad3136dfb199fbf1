# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Repository branches cached API (branch -> archive download URL).

Resource:
  GET /1.0/projects/{owner}/repos/{repo}/branches?limit={list_limit}

Only fetched when branch switching is enabled in the configuration.

TTL:
  - configured (default 12h)
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from common_types import ResourceKind

from ..models import RepositoryDescriptor
from ..parsers import NO_BRANCHES_MESSAGE, parse_branches_response
from ..urls import API_BRANCHES_FORMAT, construct_download_link, repo_endpoint
from .base_cached import CachedResourceBase

CACHE_NAME = ResourceKind.BRANCHES.value
API_CALL_FORMAT = f"GET {API_BRANCHES_FORMAT}"
CACHE_KEY_FORMAT = "branches"


class BranchesCached(CachedResourceBase):
    not_found_message = NO_BRANCHES_MESSAGE

    @property
    def cache_name(self) -> str:
        return CACHE_NAME

    def api_call_format(self) -> str:
        return API_CALL_FORMAT

    def precondition(self, descriptor: RepositoryDescriptor, **kwargs: Any) -> Optional[str]:
        return None if self.env.config.branch_switch else "Branch switching disabled"

    def fetch(self, descriptor: RepositoryDescriptor, **kwargs: Any) -> Any:
        return self.api.get(
            repo_endpoint(descriptor, "/branches"),
            params={"limit": self.env.config.list_limit},
            timeout=self.env.config.timeout_s,
            label=CACHE_NAME,
        )

    def parse(self, raw: Any, descriptor: RepositoryDescriptor, **kwargs: Any) -> Any:
        names = parse_branches_response(raw)
        if not isinstance(names, list):
            return names
        return {name: construct_download_link(descriptor, branch_switch=name) for name in names}

    def is_valid(self, payload: Any) -> bool:
        return isinstance(payload, dict) and bool(payload)

    def project(self, descriptor: RepositoryDescriptor, payload: Dict[str, str], **kwargs: Any) -> None:
        descriptor.set_branches(payload)
