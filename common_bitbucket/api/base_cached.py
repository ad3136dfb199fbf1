# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Base class for cached Bitbucket Server resources.

Every resource kind follows the same get() flow:

  precondition -> cache lookup (TTL) -> [local copy | one API call] -> parse
  -> cache write -> validate -> project onto the RepositoryDescriptor

Subclasses only describe the kind-specific parts (endpoint, parser, shape check,
projection). Transport failures become FetchError(transport) and are never
cached; empty/404 responses become a cached sentinel (NotFound).
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional, TYPE_CHECKING

from common import UpdaterConfig
from common_types import FetchErrorKind

from ..exceptions import BitbucketServerAPIError, BitbucketServerNotFoundError
from ..host import RequestContext, UpdaterHost
from ..models import RepositoryDescriptor
from ..results import FetchError, FetchResult, NotFound, Ok, make_sentinel, sentinel_message

if TYPE_CHECKING:  # pragma: no cover
    from cache.cache_transients import TransientCache

    from .. import BitbucketServerAPIClient

_logger = logging.getLogger(__name__)

NO_UPDATE_MESSAGE = "No update available"


@dataclass
class ResourceEnv:
    """Collaborators shared by all cached resources of one fetcher."""

    api: "BitbucketServerAPIClient"
    cache: "TransientCache"
    host: UpdaterHost
    config: UpdaterConfig
    context: RequestContext = field(default_factory=RequestContext)


class CachedResourceBase(ABC):
    """One resource kind (tags, changelog, ...) of one repository."""

    #: Skip the network when nothing is cached and the host reports no update.
    skip_without_update: bool = False
    #: Sentinel message when the provider has nothing for this resource.
    not_found_message: str = "Not found"

    def __init__(self, env: ResourceEnv):
        self.env = env

    @property
    def api(self) -> "BitbucketServerAPIClient":
        return self.env.api

    @property
    @abstractmethod
    def cache_name(self) -> str:
        """Short name used for stats keys and cache keys (e.g. 'tags')."""

    @abstractmethod
    def api_call_format(self) -> str:
        """Human-readable description of the API call this resource performs."""

    def cache_key(self, **kwargs: Any) -> str:
        return self.cache_name

    def precondition(self, descriptor: RepositoryDescriptor, **kwargs: Any) -> Optional[str]:
        """Return a message to skip this fetch entirely (no I/O, no mutation)."""
        return None

    def local_fallback_file(self, **kwargs: Any) -> Optional[str]:
        """Installed file to read instead of the network when no update is available."""
        return None

    @abstractmethod
    def fetch(self, descriptor: RepositoryDescriptor, **kwargs: Any) -> Any:
        """Issue exactly one request; return the raw payload (None for an empty body)."""

    @abstractmethod
    def parse(self, raw: Any, descriptor: RepositoryDescriptor, **kwargs: Any) -> Any:
        """Raw payload (possibly None) -> normalized payload or sentinel."""

    @abstractmethod
    def is_valid(self, payload: Any) -> bool:
        """Shape check for a non-sentinel payload."""

    @abstractmethod
    def project(self, descriptor: RepositoryDescriptor, payload: Any, **kwargs: Any) -> None:
        """Apply a validated payload to the descriptor."""

    # ------------------------------------------------------------------

    def cache_read(self, descriptor: RepositoryDescriptor, *, key: str) -> Optional[Any]:
        if self.env.context.refresh_cache:
            return None
        return self.env.cache.get(descriptor.repo_id, key)

    def cache_write(self, descriptor: RepositoryDescriptor, *, key: str, value: Any) -> None:
        self.env.cache.set(descriptor.repo_id, key, value, self.env.config.cache_ttl_s)
        self.api._cache_write(self.cache_name)

    def exit_no_update(self, descriptor: RepositoryDescriptor) -> bool:
        return (
            self.skip_without_update
            and not self.env.context.refresh_cache
            and not self.env.host.can_update(descriptor)
        )

    def _read_local(self, descriptor: RepositoryDescriptor, **kwargs: Any) -> Optional[Any]:
        name = self.local_fallback_file(**kwargs)
        if not name or self.env.host.can_update(descriptor):
            return None
        content = self.env.host.get_local_info(descriptor, name)
        if not content:
            return None
        _logger.debug("%s: using local %s for %s", self.cache_name, name, descriptor.repo_id)
        return self.parse(content, descriptor, **kwargs)

    def get(self, descriptor: RepositoryDescriptor, **kwargs: Any) -> FetchResult:
        skip = self.precondition(descriptor, **kwargs)
        if skip:
            return NotFound(skip)

        key = self.cache_key(**kwargs)
        payload = self.cache_read(descriptor, key=key)

        if payload is not None:
            self.api._cache_hit(self.cache_name)
        else:
            self.api._cache_miss(self.cache_name)
            _logger.debug("%s cache miss for %s (%s)", self.cache_name, descriptor.repo_id, self.api_call_format())
            if self.exit_no_update(descriptor):
                return NotFound(NO_UPDATE_MESSAGE)

            payload = self._read_local(descriptor, **kwargs)
            if payload is None:
                try:
                    raw = self.fetch(descriptor, **kwargs)
                except BitbucketServerNotFoundError:
                    raw = None
                except BitbucketServerAPIError as e:
                    _logger.warning("%s fetch failed for %s: %s", self.cache_name, descriptor.repo_id, e)
                    return FetchError(FetchErrorKind.TRANSPORT, str(e))
                payload = self.parse(raw, descriptor, **kwargs) if raw is not None else None
                if payload is None:
                    payload = make_sentinel(self.not_found_message)

            self.cache_write(descriptor, key=key, value=payload)

        message = sentinel_message(payload)
        if message is not None:
            return NotFound(message)
        if not self.is_valid(payload):
            return FetchError(FetchErrorKind.VALIDATION, f"Unexpected {self.cache_name} payload")

        self.project(descriptor, payload, **kwargs)
        return Ok(payload)
