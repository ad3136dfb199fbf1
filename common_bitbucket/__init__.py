# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Bitbucket Server API client and cached API resources.

Layout:
- `common_bitbucket/` defines the API client + shared stats helpers
- `common_bitbucket/api/*_cached.py` contains per-resource caching + fetch logic
- `common_bitbucket/fetcher.py` ties the resources to one RepositoryDescriptor
"""

from __future__ import annotations

import logging
import time
import urllib.parse
from typing import Any, Dict, List, Optional

import requests

from common import DEFAULT_TIMEOUT_S

from .auth import Middleware, OutgoingRequest
from .exceptions import (
    BitbucketServerAPIError,
    BitbucketServerAuthError,
    BitbucketServerForbiddenError,
    BitbucketServerNotFoundError,
    BitbucketServerRequestError,
)

_logger = logging.getLogger(__name__)


# ======================================================================================
# GLOBAL API + CACHE STATISTICS
# ======================================================================================
# Key conventions: rest.by_label.* for REST calls, cache.* for cached resources.


class _BitbucketAPIStats:
    """Global singleton for tracking Bitbucket Server REST + cache statistics."""

    def __init__(self):
        self.reset()

    def reset(self) -> None:
        self.rest_calls_total = 0
        self.rest_calls_by_label: Dict[str, int] = {}
        self.rest_success_total = 0
        self.rest_time_total_s = 0.0

        self.rest_errors_total = 0
        self.rest_errors_by_status: Dict[int, int] = {}
        self.rest_last_error: Dict[str, Any] = {}
        self.rest_last_error_label = ""

        self.cache_hits: Dict[str, int] = {}
        self.cache_misses: Dict[str, int] = {}
        self.cache_writes_ops: Dict[str, int] = {}


BITBUCKET_API_STATS = _BitbucketAPIStats()


def _bump(d: Dict[Any, int], key: Any, n: int = 1) -> None:
    d[key] = int(d.get(key, 0) or 0) + int(n)


class BitbucketServerAPIClient:
    """Bitbucket Server REST client (lightweight; caching lives in `common_bitbucket/api/`).

    Every request is passed through `middleware` (an ordered list of request
    transforms) right before dispatch; auth injection is installed there.
    """

    def __init__(self, base_url: str, *, timeout_s: int = DEFAULT_TIMEOUT_S):
        self.base_url = str(base_url or "").rstrip("/")
        self.timeout_s = int(timeout_s)
        self.headers: Dict[str, str] = {"Accept": "application/json"}
        self.middleware: List[Middleware] = []

        # Per-run REST stats (instance-local; global totals live in BITBUCKET_API_STATS).
        self._rest_calls_total: int = 0
        self._rest_calls_by_label: Dict[str, int] = {}
        self._rest_success_total: int = 0
        self._rest_errors_total: int = 0
        self._rest_time_total_s: float = 0.0
        self._rest_errors_by_status: Dict[int, int] = {}

    # -----------------------------------------------------------------------------
    # Middleware chain
    # -----------------------------------------------------------------------------

    def add_middleware(self, fn: Middleware) -> None:
        if fn not in self.middleware:
            self.middleware.append(fn)

    def remove_middleware(self, fn: Middleware) -> None:
        if fn in self.middleware:
            self.middleware.remove(fn)

    def _prepare(self, url: str) -> OutgoingRequest:
        req = OutgoingRequest(url=url, headers=dict(self.headers))
        for fn in list(self.middleware):
            req = fn(req)
        return req

    # -----------------------------------------------------------------------------
    # REST
    # -----------------------------------------------------------------------------

    def _rest_record(self, *, label: str, endpoint: str, status_code: Optional[int], dt_s: float) -> None:
        lbl = str(label or "").strip() or "unknown"
        dt = max(0.0, float(dt_s or 0.0))

        self._rest_calls_total += 1
        _bump(self._rest_calls_by_label, lbl)
        self._rest_time_total_s += dt
        BITBUCKET_API_STATS.rest_calls_total += 1
        _bump(BITBUCKET_API_STATS.rest_calls_by_label, lbl)
        BITBUCKET_API_STATS.rest_time_total_s += dt

        if status_code is None:
            return
        sc = int(status_code)
        if 200 <= sc < 300:
            self._rest_success_total += 1
            BITBUCKET_API_STATS.rest_success_total += 1
        elif sc >= 400:
            self._rest_errors_total += 1
            _bump(self._rest_errors_by_status, sc)
            BITBUCKET_API_STATS.rest_errors_total += 1
            _bump(BITBUCKET_API_STATS.rest_errors_by_status, sc)
            BITBUCKET_API_STATS.rest_last_error = {"status": sc, "endpoint": str(endpoint or "")}
            BITBUCKET_API_STATS.rest_last_error_label = lbl

    def api_url(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> str:
        ep = str(endpoint or "")
        url = f"{self.base_url}{ep}" if ep.startswith("/") else f"{self.base_url}/{ep}"
        if params:
            q = urllib.parse.urlencode(params, doseq=True)
            if q:
                url = f"{url}{'&' if '?' in url else '?'}{q}"
        return url

    def _request(self, url: str, *, label: str, timeout: Optional[int]) -> requests.Response:
        """GET `url` through the middleware chain; raise typed errors for non-2xx."""
        t0 = time.monotonic()
        status_code: Optional[int] = None
        lbl = str(label or "").strip() or "unknown"
        req = self._prepare(url)
        _logger.debug("BB REST GET [%s] %s", lbl, req.url)

        try:
            response = requests.get(req.url, headers=req.headers, timeout=timeout or self.timeout_s)
            status_code = int(response.status_code)

            if status_code == 401:
                raise BitbucketServerAuthError(
                    status_code=401, endpoint=url, message="Bitbucket Server returned 401 Unauthorized. Check your credentials."
                )
            if status_code == 403:
                raise BitbucketServerForbiddenError(
                    status_code=403, endpoint=url, message="Bitbucket Server returned 403 Forbidden. Account may lack permissions."
                )
            if status_code == 404:
                raise BitbucketServerNotFoundError(
                    status_code=404, endpoint=url, message=f"Bitbucket Server returned 404 Not Found for {url}"
                )

            response.raise_for_status()
            return response
        except requests.exceptions.RequestException as e:
            raise BitbucketServerRequestError(
                status_code=int(status_code or 0), endpoint=url, message=f"Bitbucket Server request failed for {url}: {e}"
            ) from e
        finally:
            self._rest_record(label=lbl, endpoint=url, status_code=status_code, dt_s=time.monotonic() - t0)

    def get(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[int] = None,
        *,
        label: Optional[str] = None,
    ) -> Optional[Any]:
        """GET a REST endpoint (relative to base_url) and return decoded JSON, or None on empty body."""
        url = self.api_url(endpoint, params)
        response = self._request(url, label=str(label or "rest"), timeout=timeout)
        if not (response.content or b"").strip():
            return None
        try:
            return response.json()
        except ValueError as e:
            raise BitbucketServerRequestError(
                status_code=int(response.status_code), endpoint=url, message=f"Invalid JSON from {url}: {e}"
            ) from e

    def get_raw(self, url: str, *, timeout: Optional[int] = None, label: Optional[str] = None) -> str:
        """GET an absolute URL (raw file download) and return the body text."""
        response = self._request(str(url), label=str(label or "raw"), timeout=timeout)
        return response.text or ""

    def get_rest_call_stats(self) -> Dict[str, Any]:
        """Return REST call stats for the current process/run."""
        return {
            "total": int(self._rest_calls_total),
            "success_total": int(self._rest_success_total),
            "error_total": int(self._rest_errors_total),
            "time_total_s": float(self._rest_time_total_s),
            "by_label": dict(sorted(self._rest_calls_by_label.items(), key=lambda kv: (-int(kv[1]), kv[0]))),
            "errors_by_status": dict(sorted(self._rest_errors_by_status.items())),
        }

    # -----------------------------------------------------------------------------
    # Cache stats (recorded by cached resources)
    # -----------------------------------------------------------------------------

    def _cache_hit(self, name: str) -> None:
        _bump(BITBUCKET_API_STATS.cache_hits, str(name or "").strip() or "unknown")

    def _cache_miss(self, name: str) -> None:
        _bump(BITBUCKET_API_STATS.cache_misses, str(name or "").strip() or "unknown")

    def _cache_write(self, name: str) -> None:
        _bump(BITBUCKET_API_STATS.cache_writes_ops, str(name or "").strip() or "unknown")

    def get_cache_stats(self) -> Dict[str, Any]:
        hits_by = dict(BITBUCKET_API_STATS.cache_hits)
        misses_by = dict(BITBUCKET_API_STATS.cache_misses)
        writes_by = dict(BITBUCKET_API_STATS.cache_writes_ops)
        return {
            "hits_total": int(sum(hits_by.values())),
            "misses_total": int(sum(misses_by.values())),
            "writes_ops_total": int(sum(writes_by.values())),
            "hits_by": hits_by,
            "misses_by": misses_by,
            "writes_ops_by": writes_by,
        }


__all__ = [
    "BITBUCKET_API_STATS",
    "BitbucketServerAPIClient",
    "BitbucketServerAPIError",
    "BitbucketServerAuthError",
    "BitbucketServerForbiddenError",
    "BitbucketServerNotFoundError",
    "BitbucketServerRequestError",
]
