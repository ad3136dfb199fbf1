# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Per-repository state record enriched by the fetch operations.

The host constructs one RepositoryDescriptor per tracked repository and passes it
by reference into the fetcher; each successful fetch projects its payload onto it
through the `set_*` methods below (the descriptor-mutation contract the host's
rendering/update layer consumes).
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from common import DEFAULT_PRIMARY_BRANCH
from common_types import RepoType


def _identity(text: str) -> str:
    return text


# Readme sections the host never displays from the remote copy.
_DROPPED_README_SECTIONS = ("screenshots", "installation")


@dataclass
class RepositoryDescriptor:
    owner: str
    repo: str
    enterprise: str
    type: str = RepoType.PLUGIN.value
    slug: str = ""
    file: str = ""
    branch: str = ""
    primary_branch: str = DEFAULT_PRIMARY_BRANCH
    enterprise_api: str = ""
    local_path: str = ""
    local_version: Optional[str] = None

    # Enriched by fetches
    remote_version: Optional[str] = None
    requires_wp_version: Optional[str] = None
    requires_php_version: Optional[str] = None
    file_headers: Dict[str, str] = field(default_factory=dict)
    tags: List[str] = field(default_factory=list)
    newest_tag: Optional[str] = None
    rollback: Dict[str, str] = field(default_factory=dict)
    private: bool = False
    repo_meta: Dict[str, Any] = field(default_factory=dict)
    last_updated: Optional[str] = None
    watchers: int = 0
    forks: int = 0
    open_issues: int = 0
    score: int = 0
    sections: Dict[str, str] = field(default_factory=dict)
    requires: Optional[str] = None
    tested: Optional[str] = None
    donate_link: Optional[str] = None
    contributors: Optional[List[str]] = None
    branches: Dict[str, str] = field(default_factory=dict)
    language_packs: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    download_link: Optional[str] = None

    def __post_init__(self) -> None:
        self.enterprise = str(self.enterprise or "").rstrip("/")
        if not self.enterprise_api and self.enterprise:
            self.enterprise_api = f"{self.enterprise}/rest/api"
        self.enterprise_api = str(self.enterprise_api or "").rstrip("/")
        if not self.slug:
            self.slug = self.repo

    @property
    def repo_id(self) -> str:
        """Cache key prefix for this repository."""
        return self.slug or self.repo

    def ensure_branch(self) -> str:
        """Active branch; an unset branch falls back to "master"."""
        if not self.branch:
            self.branch = DEFAULT_PRIMARY_BRANCH
        return self.branch

    # ------------------------------------------------------------------
    # Mutation contract
    # ------------------------------------------------------------------

    def set_file_info(self, headers: Dict[str, str]) -> None:
        self.file_headers = dict(headers)
        self.remote_version = str(headers.get("Version") or "").lower() or None
        self.requires_wp_version = headers.get("Requires WP") or self.requires_wp_version
        self.requires_php_version = headers.get("Requires PHP") or self.requires_php_version

    def set_tags(self, tags: List[str], rollback: Dict[str, str]) -> None:
        self.tags = list(tags)
        self.rollback = dict(rollback)
        self.newest_tag = self.tags[0] if self.tags else None

    def set_changelog(self, html: str) -> None:
        self.sections["changelog"] = html

    def set_readme_info(self, readme: Dict[str, Any], render: Callable[[str], str] = _identity) -> None:
        """Merge readme sections; sections already set (e.g. changelog) win, except description."""
        sections = {k: render(v) for k, v in dict(readme.get("sections") or {}).items() if v}
        for name, value in self.sections.items():
            if name == "description":
                continue
            sections[name] = value

        remaining = readme.get("remaining_content") or ""
        if sections.get("other_notes"):
            sections["other_notes"] += render(remaining) if remaining else ""
        else:
            sections.pop("other_notes", None)
        for name in _DROPPED_README_SECTIONS:
            sections.pop(name, None)

        self.sections = {**self.sections, **sections}
        self.tested = readme.get("tested") or None
        self.requires = readme.get("requires") or None
        self.donate_link = readme.get("donate_link") or None
        self.contributors = list(readme.get("contributors") or []) or None
        if readme.get("requires_php"):
            self.requires_php_version = readme["requires_php"]

    def set_repo_meta(self, meta: Dict[str, Any]) -> None:
        self.repo_meta = copy.deepcopy(meta)
        self.private = bool(meta.get("private", False))
        self.last_updated = meta.get("last_updated")
        self.watchers = int(meta.get("watchers") or 0)
        self.forks = int(meta.get("forks") or 0)
        self.open_issues = int(meta.get("open_issues") or 0)
        self.score = int(meta.get("score") or 0)

    def set_branches(self, branches: Dict[str, str]) -> None:
        self.branches = dict(branches)

    def set_language_packs(self, packs: Dict[str, Dict[str, Any]]) -> None:
        self.language_packs = copy.deepcopy(packs)
