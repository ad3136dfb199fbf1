# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""URL/endpoint builders for Bitbucket Server.

REST endpoints are relative to the descriptor's `enterprise_api` root; raw-file and
archive URLs are relative to the `enterprise` web root (the REST API cannot stream
raw file bytes, and archives are served by the archive servlet plugin).
"""

from __future__ import annotations

import urllib.parse
from typing import Dict, Optional, Union

from .models import RepositoryDescriptor

API_FILE_FORMAT = "/1.0/projects/{owner}/repos/{repo}/browse/{file}?at={branch}"
API_TAGS_FORMAT = "/1.0/projects/{owner}/repos/{repo}/tags"
API_META_FORMAT = "/1.0/projects/{owner}/repos/{repo}"
API_BRANCHES_FORMAT = "/1.0/projects/{owner}/repos/{repo}/branches"
RAW_FILE_FORMAT = "{enterprise}/projects/{owner}/repos/{repo}/browse/{file}?at={branch}&raw"
ARCHIVE_FORMAT = "{enterprise}/plugins/servlet/archive/projects/{owner}/repos/{repo}"


def _seg(value: str) -> str:
    return urllib.parse.quote(str(value or ""), safe="")


def repo_endpoint(d: RepositoryDescriptor, suffix: str = "") -> str:
    """`/1.0/projects/{owner}/repos/{repo}{suffix}`"""
    return f"/1.0/projects/{_seg(d.owner)}/repos/{_seg(d.repo)}{suffix}"


def browse_endpoint(d: RepositoryDescriptor, file: str) -> str:
    path = urllib.parse.quote(str(file or "").lstrip("/"), safe="/")
    return repo_endpoint(d, f"/browse/{path}")


def raw_file_url_for(
    enterprise: str,
    owner: str,
    repo: str,
    file: str,
    *,
    branch: str,
    keep_slashes: bool = False,
) -> str:
    """`{enterprise}/projects/{owner}/repos/{repo}/browse/{file}?at={branch}&raw`

    The filename is form-encoded (spaces become "+"); `keep_slashes` keeps "/" for
    nested paths such as language-pack packages.
    """
    name = str(file or "")
    if keep_slashes:
        encoded = urllib.parse.quote_plus(name.lstrip("/"), safe="/")
    else:
        encoded = urllib.parse.quote_plus(name)
    return RAW_FILE_FORMAT.format(
        enterprise=str(enterprise or "").rstrip("/"),
        owner=_seg(owner),
        repo=_seg(repo),
        file=encoded,
        branch=urllib.parse.quote_plus(str(branch or "")),
    )


def raw_file_url(d: RepositoryDescriptor, file: str, *, branch: Optional[str] = None) -> str:
    at = branch if branch is not None else d.ensure_branch()
    return raw_file_url_for(d.enterprise, d.owner, d.repo, file, branch=at)


def parse_repo_url(url: str) -> Optional[Dict[str, str]]:
    """`.../projects/{owner}/repos/{repo}[/...]` -> {"owner": ..., "repo": ...}"""
    try:
        path = urllib.parse.urlsplit(str(url or "")).path
    except ValueError:
        return None
    parts = [urllib.parse.unquote(p) for p in path.split("/") if p]
    for i in range(len(parts) - 3):
        if parts[i] == "projects" and parts[i + 2] == "repos":
            return {"owner": parts[i + 1], "repo": parts[i + 3]}
    return None


def construct_download_link(
    d: RepositoryDescriptor,
    rollback: Union[bool, str] = False,
    branch_switch: Union[bool, str] = False,
) -> str:
    """Archive URL for the descriptor.

    - active branch (unset means primary) is the primary branch and tags exist -> at=<newest tag>
    - otherwise -> at=<branch>
    - `rollback` (a tag) overrides both; `branch_switch` overrides everything.
    """
    base = ARCHIVE_FORMAT.format(enterprise=d.enterprise, owner=_seg(d.owner), repo=_seg(d.repo))

    # An unset branch is the primary branch.
    branch = d.branch or d.primary_branch
    at: Optional[str]
    if branch != d.primary_branch or not d.tags:
        at = branch or None
    else:
        at = d.newest_tag or branch or None

    if rollback:
        at = str(rollback)
    if branch_switch:
        at = str(branch_switch)

    if not at:
        return base
    return f"{base}?{urllib.parse.urlencode({'at': at})}"
