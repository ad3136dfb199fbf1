# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""HTTP Basic auth injection for private Bitbucket Server repositories.

Each rule is a request transform (`OutgoingRequest -> OutgoingRequest`) installed
on the API client's middleware chain. Order matters: credentials are attached
first and `release_asset_auth` runs last, so a request to the asset-storage host
never leaves with an Authorization header.
"""

from __future__ import annotations

import base64
import logging
import urllib.parse
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, TYPE_CHECKING

from common import UpdaterConfig

from .host import RequestContext
from .models import RepositoryDescriptor

if TYPE_CHECKING:  # pragma: no cover
    from . import BitbucketServerAPIClient

_logger = logging.getLogger(__name__)

# Object storage with its own query-string signing; Basic auth breaks it.
RELEASE_ASSET_HOST = "bbuseruploads.s3.amazonaws.com"


@dataclass
class OutgoingRequest:
    url: str
    headers: Dict[str, str] = field(default_factory=dict)


Middleware = Callable[[OutgoingRequest], OutgoingRequest]


def basic_auth_header(username: Optional[str], password: Optional[str]) -> str:
    token = base64.b64encode(f"{username or ''}:{password or ''}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


def _host_of(url: str) -> str:
    try:
        return (urllib.parse.urlsplit(str(url or "")).hostname or "").lower()
    except ValueError:
        return ""


class AuthenticationInjector:
    """Decides whether an outgoing request carries the stored Basic credentials."""

    def __init__(
        self,
        config: UpdaterConfig,
        *,
        descriptor: Optional[RepositoryDescriptor] = None,
        context: Optional[RequestContext] = None,
    ):
        self.config = config
        self.descriptor = descriptor
        self.context = context or RequestContext()

    def _matches_provider(self, url: str) -> bool:
        u = str(url or "").lower()
        pattern = str(self.config.host_pattern or "").lower()
        if pattern and pattern in u:
            return True
        if self.descriptor is not None and self.descriptor.enterprise:
            enterprise_host = _host_of(self.descriptor.enterprise)
            return bool(enterprise_host) and _host_of(url) == enterprise_host
        return False

    def _attach(self, req: OutgoingRequest) -> OutgoingRequest:
        headers = dict(req.headers)
        headers["Authorization"] = basic_auth_header(self.config.username, self.config.password)
        return OutgoingRequest(url=req.url, headers=headers)

    def maybe_authenticate_http(self, req: OutgoingRequest) -> OutgoingRequest:
        d = self.descriptor
        if d is None or not d.enterprise_api or not self._matches_provider(req.url):
            return req

        # Updating a private repo: flagged in the stored private set (and named in
        # the URL), or marked private by its metadata.
        private_update = (
            bool(d.repo) and self.config.is_private_repo(d.repo) and d.repo in req.url
        ) or bool(d.private)

        # Installing a private repo; pointless without stored credentials.
        private_install = self.context.is_private_install() and self.config.has_credentials()

        if private_update or private_install:
            _logger.debug("Attaching Basic auth for %s", d.repo)
            return self._attach(req)
        return req

    def ajax_maybe_authenticate_http(self, req: OutgoingRequest) -> OutgoingRequest:
        ctx = self.context
        if (
            ctx.doing_ajax
            and not ctx.heartbeat
            and ctx.slug
            and self.config.is_private_repo(ctx.slug)
            and ctx.slug.lower() in str(req.url).lower()
        ):
            return self._attach(req)
        return req

    @staticmethod
    def release_asset_auth(req: OutgoingRequest) -> OutgoingRequest:
        if _host_of(req.url) != RELEASE_ASSET_HOST:
            return req
        # Header names are case-insensitive.
        headers = {k: v for k, v in req.headers.items() if str(k).lower() != "authorization"}
        if len(headers) == len(req.headers):
            return req
        return OutgoingRequest(url=req.url, headers=headers)

    def load_hooks(self, client: "BitbucketServerAPIClient") -> None:
        client.add_middleware(self.maybe_authenticate_http)
        if self.context.doing_ajax:
            client.add_middleware(self.ajax_maybe_authenticate_http)
        client.add_middleware(self.release_asset_auth)

    def remove_hooks(self, client: "BitbucketServerAPIClient") -> None:
        client.remove_middleware(self.maybe_authenticate_http)
        client.remove_middleware(self.ajax_maybe_authenticate_http)
        client.remove_middleware(self.release_asset_auth)
