# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Disk-backed cache of organization listings (pages of repositories) with a TTL.

File format:
    {"version": 1, "items": {"<request url>": {"ts": <epoch>, "pages": [[<repo>, ...], ...]}}}

- Thread-safe in-memory view behind a Lock, loaded lazily on first access
- Inter-process lock (fcntl) around writes; merge with what is on disk, then atomic replace
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

from .types import Repository

try:
    import fcntl  # type: ignore
except ImportError:  # pragma: no cover - non-POSIX
    fcntl = None  # type: ignore

_logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


@dataclass
class CacheStats:
    hit: int = 0
    miss: int = 0
    write: int = 0


class ListingCache:
    def __init__(self, cache_file: Path):
        self._mu = Lock()
        self._cache_file = Path(cache_file)
        self._items: Dict[str, Any] = {}
        self._loaded = False
        self.stats = CacheStats()

    @property
    def cache_file(self) -> Path:
        return self._cache_file

    def _lock_file_path(self) -> Path:
        return self._cache_file.with_name(f".{self._cache_file.name}.lock")

    def _acquire_disk_lock(self, *, timeout_s: float = 10.0) -> Optional[Any]:
        """Best-effort inter-process lock; returns the lock file handle or None."""
        if fcntl is None:
            return None

        lock_path = self._lock_file_path()
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        fh = open(lock_path, "w")
        start = time.monotonic()
        while time.monotonic() - start < float(timeout_s):
            try:
                fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                return fh
            except OSError:
                time.sleep(0.1)
        fh.close()
        _logger.warning("Timed out waiting for listing cache lock %s", lock_path)
        return None

    def _release_disk_lock(self, lock_fh: Optional[Any]) -> None:
        if lock_fh is None:
            return
        try:
            if fcntl is not None:
                fcntl.flock(lock_fh.fileno(), fcntl.LOCK_UN)
        finally:
            lock_fh.close()

    def _read_disk_items(self) -> Dict[str, Any]:
        if not self._cache_file.exists():
            return {}
        try:
            raw = json.loads(self._cache_file.read_text() or "{}")
        except (OSError, ValueError) as e:
            _logger.warning("Ignoring unreadable listing cache %s: %s", self._cache_file, e)
            return {}
        if not isinstance(raw, dict) or raw.get("version") != SCHEMA_VERSION:
            return {}
        items = raw.get("items")
        return dict(items) if isinstance(items, dict) else {}

    def _load_once(self) -> None:
        if self._loaded:
            return
        self._loaded = True
        self._items = self._read_disk_items()

    def get(self, key: str, *, ttl_s: int, now: Optional[float] = None) -> Optional[List[List[Repository]]]:
        """Return cached pages for key if younger than ttl_s, else None."""
        now = time.time() if now is None else now
        with self._mu:
            self._load_once()
            entry = self._items.get(key)
            if not isinstance(entry, dict) or now - float(entry.get("ts", 0)) > ttl_s:
                self.stats.miss += 1
                return None
            self.stats.hit += 1
            pages = entry.get("pages") or []
        return [[Repository.from_api(r) for r in page] for page in pages]

    def put(self, key: str, pages: List[List[Repository]], *, now: Optional[float] = None) -> None:
        entry = {
            "ts": int(time.time() if now is None else now),
            "pages": [[r.to_api() for r in page] for page in pages],
        }
        with self._mu:
            self._load_once()
            self._items[key] = entry
            self.stats.write += 1
            self._persist()

    def _persist(self) -> None:
        self._cache_file.parent.mkdir(parents=True, exist_ok=True)
        lock_fh = self._acquire_disk_lock()
        try:
            # Merge: disk first, then memory wins for conflicts.
            merged = {**self._read_disk_items(), **self._items}
            tmp = Path(f"{self._cache_file}.tmp.{os.getpid()}")
            tmp.write_text(json.dumps({"version": SCHEMA_VERSION, "items": merged}, separators=(",", ":")))
            os.replace(str(tmp), str(self._cache_file))
            self._items = merged
        finally:
            self._release_disk_lock(lock_fh)
