# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""RemoteResourceFetcher: one repository, every cached resource kind.

Usage:
    fetcher = RemoteResourceFetcher(descriptor, config=load_updater_config())
    fetcher.get_remote_info("widget.php")
    fetcher.get_remote_tag()
    fetcher.get_remote_changes("CHANGES.md")
    descriptor.download_link = fetcher.construct_download_link()

Every get_* method returns a FetchResult and never raises for provider failures.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional, Union

from cache.cache_transients import TransientCache, default_transient_cache
from common import UpdaterConfig
from common_types import ResourceKind

from . import BitbucketServerAPIClient
from . import urls
from .api.base_cached import CachedResourceBase, ResourceEnv
from .api.branches_cached import BranchesCached
from .api.changelog_cached import ChangelogCached
from .api.file_info_cached import FileInfoCached
from .api.language_packs_cached import LanguagePacksCached
from .api.readme_cached import ReadmeCached
from .api.repo_meta_cached import RepoMetaCached
from .api.tags_cached import TagsCached
from .auth import AuthenticationInjector
from .host import LocalUpdaterHost, RequestContext, UpdaterHost
from .models import RepositoryDescriptor
from .results import FetchResult, NotFound

_logger = logging.getLogger(__name__)

DEFAULT_CHANGELOG_FILE = "CHANGES.md"
LANGUAGES_HEADER = "Bitbucket Languages"

_RESOURCE_CLASSES = {
    ResourceKind.FILE: FileInfoCached,
    ResourceKind.TAGS: TagsCached,
    ResourceKind.CHANGELOG: ChangelogCached,
    ResourceKind.README: ReadmeCached,
    ResourceKind.META: RepoMetaCached,
    ResourceKind.BRANCHES: BranchesCached,
    ResourceKind.LANGUAGES: LanguagePacksCached,
}


class RemoteResourceFetcher:
    """Fetch/cache/project remote resources for one RepositoryDescriptor."""

    def __init__(
        self,
        descriptor: RepositoryDescriptor,
        *,
        config: UpdaterConfig,
        api: Optional[BitbucketServerAPIClient] = None,
        cache: Optional[TransientCache] = None,
        host: Optional[UpdaterHost] = None,
        context: Optional[RequestContext] = None,
    ):
        self.descriptor = descriptor
        self.config = config
        self.context = context or RequestContext()
        self.api = api or BitbucketServerAPIClient(descriptor.enterprise_api, timeout_s=config.timeout_s)
        self.cache = cache if cache is not None else default_transient_cache()
        self.host: UpdaterHost = host or LocalUpdaterHost()

        self.auth = AuthenticationInjector(config, descriptor=descriptor, context=self.context)
        self.auth.load_hooks(self.api)

        env = ResourceEnv(api=self.api, cache=self.cache, host=self.host, config=config, context=self.context)
        self._resources: Dict[ResourceKind, CachedResourceBase] = {
            kind: cls(env) for kind, cls in _RESOURCE_CLASSES.items()
        }

    def close(self) -> None:
        """Remove this fetcher's auth transforms from the client."""
        self.auth.remove_hooks(self.api)

    def __enter__(self) -> "RemoteResourceFetcher":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # ------------------------------------------------------------------

    def fetch(self, kind: Union[ResourceKind, str], **kwargs: Any) -> FetchResult:
        """Run the cached fetch for one resource kind."""
        res = self._resources[ResourceKind(kind)]
        result = res.get(self.descriptor, **kwargs)
        _logger.debug("%s %s -> %s", self.descriptor.repo_id, res.cache_name, type(result).__name__)
        return result

    def get_remote_info(self, file: Optional[str] = None) -> FetchResult:
        return self.fetch(ResourceKind.FILE, file=file or self.descriptor.file)

    def get_remote_tag(self) -> FetchResult:
        return self.fetch(ResourceKind.TAGS)

    def get_remote_changes(self, file: str = DEFAULT_CHANGELOG_FILE) -> FetchResult:
        return self.fetch(ResourceKind.CHANGELOG, file=file)

    def get_remote_readme(self) -> FetchResult:
        return self.fetch(ResourceKind.README)

    def get_repo_meta(self) -> FetchResult:
        return self.fetch(ResourceKind.META)

    def get_remote_branches(self) -> FetchResult:
        return self.fetch(ResourceKind.BRANCHES)

    def get_language_pack(self, owner: Optional[str] = None, repo: Optional[str] = None) -> FetchResult:
        """Language packs from `owner/repo`, else the repo named by the languages header, else this repo."""
        if not (owner and repo):
            header = self.descriptor.file_headers.get(LANGUAGES_HEADER)
            parsed = urls.parse_repo_url(header) if header else None
            if header and parsed is None:
                return NotFound(f"Unrecognized {LANGUAGES_HEADER} header: {header}")
            if parsed:
                owner, repo = parsed["owner"], parsed["repo"]
        return self.fetch(ResourceKind.LANGUAGES, owner=owner, repo=repo)

    def construct_download_link(
        self, rollback: Union[bool, str] = False, branch_switch: Union[bool, str] = False
    ) -> str:
        return urls.construct_download_link(self.descriptor, rollback=rollback, branch_switch=branch_switch)

    def refresh(self) -> int:
        """Drop every cached resource for this repository."""
        removed = self.cache.delete_repo(self.descriptor.repo_id)
        _logger.info("Dropped %d cached entries for %s", removed, self.descriptor.repo_id)
        return removed

    def _declared_language_pack(self) -> FetchResult:
        if not self.descriptor.file_headers.get(LANGUAGES_HEADER):
            return NotFound(f"No {LANGUAGES_HEADER} header")
        return self.get_language_pack()

    def get_all(self, *, changelog_file: str = DEFAULT_CHANGELOG_FILE) -> Dict[str, FetchResult]:
        """Run every fetch in dependency order and set the download link."""
        steps: Dict[str, Callable[[], FetchResult]] = {
            ResourceKind.FILE.value: self.get_remote_info,
            ResourceKind.META.value: self.get_repo_meta,
            ResourceKind.TAGS.value: self.get_remote_tag,
            ResourceKind.CHANGELOG.value: lambda: self.get_remote_changes(changelog_file),
            ResourceKind.README.value: self.get_remote_readme,
            ResourceKind.BRANCHES.value: self.get_remote_branches,
            ResourceKind.LANGUAGES.value: self._declared_language_pack,
        }
        results = {name: step() for name, step in steps.items()}
        self.descriptor.download_link = self.construct_download_link()
        return results
