#!/usr/bin/env python3
# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Base class for disk-backed caches with locking and persistence.

Used by:
- cache_transients.py (per-repository remote resources)
"""

from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional

try:
    import fcntl  # type: ignore
except ImportError:  # pragma: no cover - best-effort on non-POSIX
    fcntl = None  # type: ignore

_logger = logging.getLogger(__name__)


@dataclass
class BaseCacheStats:
    """Basic cache statistics tracked automatically by BaseDiskCache."""
    hit: int = 0
    miss: int = 0
    write: int = 0
    delete: int = 0


class BaseDiskCache:
    """Base class for thread-safe disk-backed caches with inter-process locking.

    Provides:
    - Thread-safe in-memory view guarded by a Lock
    - Disk persistence with inter-process locking (fcntl)
    - Lazy loading (load on first access)
    - Merge on write (handle concurrent writers; this process wins conflicts)

    On-disk schema: {"version": <int>, "items": {<key>: <value>, ...}}
    """

    def __init__(self, *, cache_file: Path, schema_version: int = 1):
        self._mu = Lock()
        self._cache_file = Path(cache_file)
        self._schema_version = schema_version
        self._data: Dict[str, Any] = {}
        self._loaded = False
        self._dirty = False
        self._deleted: List[str] = []
        self.stats = BaseCacheStats()

    def _lock_file_path(self) -> Path:
        """Path to lock file (next to cache file)."""
        return self._cache_file.with_name(f".{self._cache_file.name}.lock")

    def _acquire_disk_lock(self, *, timeout_s: float = 10.0) -> Optional[Any]:
        """Best-effort inter-process lock for the cache file.

        Returns file handle on success, None on failure/timeout.
        """
        if fcntl is None:
            return None

        lock_path = self._lock_file_path()
        try:
            lock_path.parent.mkdir(parents=True, exist_ok=True)
            fh = open(lock_path, "w")
        except OSError as e:
            _logger.debug("Cannot open lock file %s: %s", lock_path, e)
            return None

        start = time.monotonic()
        while time.monotonic() - start < float(timeout_s):
            try:
                fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                return fh
            except OSError:
                time.sleep(0.1)

        _logger.warning("Timed out waiting for cache lock %s", lock_path)
        fh.close()
        return None

    def _release_disk_lock(self, lock_fh: Optional[Any]) -> None:
        if lock_fh is None:
            return
        try:
            if fcntl is not None:
                fcntl.flock(lock_fh.fileno(), fcntl.LOCK_UN)
        except OSError:
            pass
        finally:
            lock_fh.close()

    def _read_disk_items(self) -> Dict[str, Any]:
        """Read items from disk; corrupt/missing files read as empty."""
        if not self._cache_file.exists():
            return {}
        try:
            raw = json.loads(self._cache_file.read_text() or "{}")
        except (OSError, json.JSONDecodeError) as e:
            _logger.warning("Ignoring unreadable cache file %s: %s", self._cache_file, e)
            return {}
        if not isinstance(raw, dict):
            return {}
        items = raw.get("items")
        return dict(items) if isinstance(items, dict) else {}

    def _load_once(self) -> None:
        """Load cache from disk (once per instance)."""
        if self._loaded:
            return
        self._loaded = True
        items = self._read_disk_items()
        self._data = {"version": self._schema_version, "items": items}

    def _persist(self) -> None:
        """Persist cache to disk with inter-process merge (best-effort)."""
        if not self._dirty:
            return

        mem_items: Dict[str, Any] = dict(self._get_items())

        lock_fh = self._acquire_disk_lock(timeout_s=10.0)
        try:
            disk_items = self._read_disk_items()
            # Merge: disk first, then memory wins for conflicts; honor local deletes.
            merged_items = {**disk_items, **mem_items}
            for k in self._deleted:
                if k not in mem_items:
                    merged_items.pop(k, None)
            merged = {"version": self._schema_version, "items": merged_items}

            # Atomic write (tmp file + rename)
            self._cache_file.parent.mkdir(parents=True, exist_ok=True)
            tmp = Path(f"{self._cache_file}.tmp.{os.getpid()}")
            tmp.write_text(json.dumps(merged, separators=(",", ":")))
            os.replace(str(tmp), str(self._cache_file))

            self._data = merged
            self._dirty = False
            self._deleted = []
        except OSError as e:
            _logger.warning("Failed to persist cache %s: %s", self._cache_file, e)
        finally:
            self._release_disk_lock(lock_fh)

    def _get_items(self) -> Dict[str, Any]:
        items = self._data.get("items") if isinstance(self._data, dict) else None
        if not isinstance(items, dict):
            items = {}
            self._data = {"version": self._schema_version, "items": items}
        return items

    def _set_item(self, key: str, value: Any) -> None:
        self._get_items()[key] = value
        self._dirty = True
        self.stats.write += 1

    def _delete_item(self, key: str) -> bool:
        items = self._get_items()
        if key not in items:
            return False
        del items[key]
        self._deleted.append(key)
        self._dirty = True
        self.stats.delete += 1
        return True
