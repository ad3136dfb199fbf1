"""Cache for per-repository remote resources (tags, changelog, readme, meta, ...).

Caching strategy:
  - Key: <repo_id>::<kind>   (e.g. "widget::tags", "widget::file:widget.php")
  - Value: {"v": <parsed payload>, "meta": {"fetched_at": <epoch_s>, "ttl_s": <seconds>}}
  - TTL is chosen by the writer (configured in hours, default 12h); an entry is only
    returned while `now - fetched_at < ttl_s`.
"""
from __future__ import annotations

import copy
import time
from pathlib import Path
from typing import Any, Dict, Optional

from cache.cache_base import BaseDiskCache
from common import resolve_cache_path

CACHE_ENTRY_VALUE_KEY = "v"
CACHE_ENTRY_META_KEY = "meta"
CACHE_ENTRY_FETCHED_AT_KEY = "fetched_at"
CACHE_ENTRY_TTL_S_KEY = "ttl_s"

CACHE_FILE_DEFAULT = "transients/bitbucket_server.json"


def make_cache_entry(*, value: Any, fetched_at: float, ttl_s: float) -> Dict[str, Any]:
    """Standard on-disk cache entry schema.

    Format:
      {"v": <value>, "meta": {"fetched_at": <epoch_seconds>, "ttl_s": <seconds>}}
    """
    return {
        CACHE_ENTRY_VALUE_KEY: value,
        CACHE_ENTRY_META_KEY: {
            CACHE_ENTRY_FETCHED_AT_KEY: float(fetched_at),
            CACHE_ENTRY_TTL_S_KEY: float(ttl_s),
        },
    }


def is_cache_entry(obj: Any) -> bool:
    return (
        isinstance(obj, dict)
        and CACHE_ENTRY_VALUE_KEY in obj
        and isinstance(obj.get(CACHE_ENTRY_META_KEY), dict)
    )


def is_cache_entry_fresh(entry: Dict[str, Any], *, now: float) -> bool:
    meta = entry.get(CACHE_ENTRY_META_KEY) or {}
    try:
        fetched_at = float(meta.get(CACHE_ENTRY_FETCHED_AT_KEY))
        ttl_s = float(meta.get(CACHE_ENTRY_TTL_S_KEY))
    except (ValueError, TypeError):
        return False
    return max(0.0, float(now) - fetched_at) < ttl_s


def transient_key(repo_id: str, kind: str) -> str:
    return f"{repo_id}::{kind}"


class TransientCache(BaseDiskCache):
    """Key -> value store with expiry, keyed by (repository id, resource kind).

    Stats (hit/miss/write) are tracked automatically by BaseDiskCache. Expired
    entries count as misses and are left on disk until overwritten.
    """

    _SCHEMA_VERSION = 1

    def __init__(self, *, cache_file: Path):
        super().__init__(cache_file=cache_file, schema_version=self._SCHEMA_VERSION)

    def get(self, repo_id: str, kind: str) -> Optional[Any]:
        """Return a copy of the cached payload if present and unexpired, else None."""
        key = transient_key(repo_id, kind)
        with self._mu:
            self._load_once()
            ent = self._get_items().get(key)
            if is_cache_entry(ent) and is_cache_entry_fresh(ent, now=time.time()):
                self.stats.hit += 1
                return copy.deepcopy(ent[CACHE_ENTRY_VALUE_KEY])
            self.stats.miss += 1
            return None

    def set(self, repo_id: str, kind: str, value: Any, ttl_s: float) -> None:
        """Store a payload with a TTL (seconds) and persist immediately."""
        key = transient_key(repo_id, kind)
        entry = make_cache_entry(value=copy.deepcopy(value), fetched_at=time.time(), ttl_s=ttl_s)
        with self._mu:
            self._load_once()
            self._set_item(key, entry)
            self._persist()

    def delete_repo(self, repo_id: str) -> int:
        """Drop every cached resource for one repository; returns the number removed."""
        prefix = transient_key(repo_id, "")
        removed = 0
        with self._mu:
            self._load_once()
            for key in [k for k in self._get_items() if k.startswith(prefix)]:
                if self._delete_item(key):
                    removed += 1
            self._persist()
        return removed


def default_transient_cache() -> TransientCache:
    """TransientCache at the default location under the updater cache dir."""
    return TransientCache(cache_file=resolve_cache_path(CACHE_FILE_DEFAULT))
