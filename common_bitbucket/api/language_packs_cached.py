# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Language packs (language-pack.json) cached raw-file API.

Resource:
  GET {enterprise}/projects/{owner}/repos/{repo}/browse/language-pack.json?at={primary_branch}&raw

The language packs may live in a separate repository (owner/repo kwargs). Each
locale's relative `package` path is rewritten to an absolute raw download URL on
that repository and stamped with the package type; the remote version is stamped
when the packs are applied to the descriptor.

TTL:
  - configured (default 12h)
"""

from __future__ import annotations

from typing import Any, Dict

from common_types import ResourceKind

from ..models import RepositoryDescriptor
from ..parsers import NO_LANGUAGE_PACK_MESSAGE, parse_language_pack
from ..urls import RAW_FILE_FORMAT, raw_file_url_for
from .base_cached import CachedResourceBase

CACHE_NAME = ResourceKind.LANGUAGES.value
LANGUAGE_PACK_FILE = "language-pack.json"
API_CALL_FORMAT = f"GET {RAW_FILE_FORMAT}".replace("{file}", LANGUAGE_PACK_FILE)
CACHE_KEY_FORMAT = "languages:<owner>/<repo>"


class LanguagePacksCached(CachedResourceBase):
    not_found_message = NO_LANGUAGE_PACK_MESSAGE

    @property
    def cache_name(self) -> str:
        return CACHE_NAME

    def api_call_format(self) -> str:
        return API_CALL_FORMAT

    def cache_key(self, **kwargs: Any) -> str:
        owner, repo = kwargs.get("owner"), kwargs.get("repo")
        return f"{CACHE_NAME}:{owner}/{repo}" if owner and repo else CACHE_NAME

    @staticmethod
    def _source(descriptor: RepositoryDescriptor, kwargs: Dict[str, Any]) -> Dict[str, str]:
        return {
            "owner": str(kwargs.get("owner") or descriptor.owner),
            "repo": str(kwargs.get("repo") or descriptor.repo),
        }

    def fetch(self, descriptor: RepositoryDescriptor, **kwargs: Any) -> Any:
        src = self._source(descriptor, kwargs)
        url = raw_file_url_for(
            descriptor.enterprise, src["owner"], src["repo"], LANGUAGE_PACK_FILE, branch=descriptor.primary_branch
        )
        text = self.api.get_raw(url, timeout=self.env.config.timeout_s, label=CACHE_NAME)
        return text or None

    def parse(self, raw: Any, descriptor: RepositoryDescriptor, **kwargs: Any) -> Any:
        src = self._source(descriptor, kwargs)

        def package_url(path: str) -> str:
            return raw_file_url_for(
                descriptor.enterprise,
                src["owner"],
                src["repo"],
                path,
                branch=descriptor.primary_branch,
                keep_slashes=True,
            )

        return parse_language_pack(raw, package_url=package_url, repo_type=descriptor.type, version=None)

    def is_valid(self, payload: Any) -> bool:
        return isinstance(payload, dict) and bool(payload) and all(isinstance(v, dict) for v in payload.values())

    def project(self, descriptor: RepositoryDescriptor, payload: Dict[str, Dict[str, Any]], **kwargs: Any) -> None:
        # Stamped here so a cached pack follows the current remote version.
        packs = {lang: {**entry, "version": descriptor.remote_version} for lang, entry in payload.items()}
        descriptor.set_language_packs(packs)
