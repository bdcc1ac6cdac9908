# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Clone/cache manager: turns a Repository into a private local working directory.

Layout (one CacheRoot per run unless the caller passes its own):

    <cache root>/<org>/<repo>-<cache key>[-<subset hash>]             canonical clone
    <cache root>/<org>/<repo>-<cache key>[-<subset hash>]_<random>    private copy

Two ways to get a directory:
- acquire_exclusive(): clone into a directory nobody else will ever use (unique key),
  and hand that directory over directly.
- acquire_shared(): clone once per cache key (canonical entry), then hand over a
  private copy so callers sharing a key never work in the same tree.

release() removes what was handed over; canonical entries live until the CacheRoot is
removed. Creation of a canonical entry is serialized per path, so concurrent first
callers of the same key clone once and the others copy the result.
"""

from __future__ import annotations

import hashlib
import logging
import shutil
import tempfile
import threading
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Optional, Sequence, Set, Union

from .cancel import CancelToken
from .config import clone_cache_base_dir
from .exceptions import CloneError, CommandError, NoDefaultBranch, ValidationError
from .execer import Execer
from .log import AnyLogger, with_fields
from .types import Options, Repository

_logger = logging.getLogger(__name__)


def hash_cloning_subset(subset: Sequence[str]) -> str:
    """Stable short hash of an ordered sparse-checkout subset."""
    return hashlib.md5("|".join(subset).encode("utf-8")).hexdigest()[:16]


def clone_dir_name(repository_name: str, cache_key: str, subset: Sequence[str] = ()) -> str:
    # The key ends up in a path below the cache root; it must stay one path component.
    if "/" in cache_key or "\\" in cache_key or ".." in cache_key:
        raise ValidationError(f"invalid clone cache key {cache_key!r}: path separators and \"..\" are not allowed")
    name = f"{repository_name}-{cache_key}"
    if subset:
        name += "-" + hash_cloning_subset(subset)
    return name


def _remove_dir(path: Path, logger: AnyLogger = _logger) -> None:
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Failed to remove directory %s: %s", path, e)


def write_lines(path: Path, lines: Sequence[str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        for line in lines:
            f.write(f"{line}\n")


class CacheRoot:
    """Directory holding the clones of one run (or of several runs, when caller-owned)."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.path.mkdir(parents=True, exist_ok=True)
        self._mu = threading.Lock()
        self._creation_locks: Dict[Path, threading.Lock] = {}
        self._canonical: Set[Path] = set()

    @classmethod
    def create(cls, base_dir: Optional[Union[str, Path]] = None) -> "CacheRoot":
        """Create a fresh, uniquely named cache root under base_dir."""
        base = Path(base_dir) if base_dir is not None else clone_cache_base_dir()
        base.mkdir(parents=True, exist_ok=True)
        return cls(tempfile.mkdtemp(prefix="gh-iterator-", dir=str(base)))

    def creation_lock(self, path: Path) -> threading.Lock:
        """Per-canonical-path lock (dedupes concurrent first clones of a cache key)."""
        with self._mu:
            lk = self._creation_locks.get(path)
            if lk is None:
                lk = threading.Lock()
                self._creation_locks[path] = lk
            return lk

    def mark_canonical(self, path: Path) -> None:
        with self._mu:
            self._canonical.add(path)

    def is_canonical(self, path: Path) -> bool:
        with self._mu:
            return Path(path) in self._canonical

    def remove(self) -> None:
        _logger.debug("Removing cache root %s", self.path)
        _remove_dir(self.path)
        with self._mu:
            self._canonical.clear()
            self._creation_locks.clear()

    def __enter__(self) -> "CacheRoot":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.remove()
        return False


class CloneCacheManager:
    """Acquire/release working directories for repositories (see module docstring)."""

    def __init__(
        self,
        cache_root: CacheRoot,
        options: Optional[Options] = None,
        *,
        token: Optional[CancelToken] = None,
        logger: Optional[AnyLogger] = None,
    ):
        self.cache_root = cache_root
        self.options = options or Options()
        self.token = token
        self.logger: AnyLogger = logger if logger is not None else _logger

    def _clone_dir(self, repository: Repository, cache_key: str) -> Path:
        clone_dir = self.cache_root.path / clone_dir_name(
            repository.name, cache_key, self.options.cloning_subset
        )
        root = self.cache_root.path.resolve()
        if root not in clone_dir.resolve().parents:
            raise ValidationError(f"clone directory for {repository.name} falls outside the cache root")
        return clone_dir

    def acquire(self, repository: Repository) -> Path:
        """Shared when the options carry a cache key for this repository, exclusive otherwise."""
        cache_key = ""
        if self.options.clone_cache_key is not None:
            cache_key = self.options.clone_cache_key(repository) or ""
        if cache_key:
            return self.acquire_shared(repository, cache_key)
        return self.acquire_exclusive(repository)

    def acquire_exclusive(self, repository: Repository) -> Path:
        """Clone into a uniquely named directory owned by this call alone."""
        clone_dir = self._clone_dir(repository, uuid.uuid4().hex)
        self._ensure_clone(repository, clone_dir)
        return clone_dir

    def acquire_shared(self, repository: Repository, cache_key: str) -> Path:
        """Clone once per cache key and return a private copy of the cached clone."""
        if not cache_key:
            raise ValueError("acquire_shared requires a non-empty cache key")
        canonical = self._clone_dir(repository, cache_key)
        with self.cache_root.creation_lock(canonical):
            self._ensure_clone(repository, canonical)
            self.cache_root.mark_canonical(canonical)
        return self._copy(repository, canonical)

    def release(self, path: Union[str, Path]) -> None:
        """Remove a directory returned by acquire*(). Canonical entries are left alone."""
        path = Path(path)
        if self.cache_root.is_canonical(path):
            self.logger.warning("Refusing to remove cached clone %s", path)
            return
        _remove_dir(path, self.logger)

    @contextmanager
    def checkout(self, repository: Repository) -> Iterator[Path]:
        """acquire() + release() on every exit path."""
        path = self.acquire(repository)
        try:
            yield path
        finally:
            self.release(path)

    def _ensure_clone(self, repository: Repository, clone_dir: Path) -> None:
        logger = with_fields(self.logger, repository=repository.name)
        if clone_dir.exists():
            if not clone_dir.is_dir():
                raise CloneError(repository.name, f"unexpected file in cloning directory {clone_dir}")
            logger.debug("Reusing cached clone %s", clone_dir)
            return

        clone_dir.mkdir(parents=True)
        try:
            self._clone(repository, clone_dir, logger)
        except BaseException:
            _remove_dir(clone_dir, logger)
            raise

    def _clone(self, repository: Repository, clone_dir: Path, logger: AnyLogger) -> None:
        if not repository.default_branch:
            raise NoDefaultBranch(repository.name)

        logger.debug("Cloning into %s", clone_dir)
        x = Execer(clone_dir, logger=logger, token=self.token).with_env(GIT_TERMINAL_PROMPT="0")

        self._git(x, repository, "initializing repository", "init")

        url = repository.url if self.options.use_https else repository.ssh_url
        self._git(x, repository, "adding origin", "remote", "add", "origin", url)

        if self.options.cloning_subset:
            self._git(x, repository, "enabling sparse checkout", "config", "core.sparseCheckout", "true")
            try:
                write_lines(clone_dir / ".git" / "info" / "sparse-checkout", self.options.cloning_subset)
            except OSError as e:
                raise CloneError(repository.name, "setting cloning subset", stderr=str(e)) from e

        branch = repository.default_branch
        self._git(x, repository, "fetching default branch", "fetch", "origin", branch)
        self._git(x, repository, "checking out default branch", "checkout", branch)

    @staticmethod
    def _git(x: Execer, repository: Repository, step: str, *args: str) -> None:
        try:
            x.run_x("git", *args)
        except CommandError as e:
            raise CloneError(repository.name, step, command=["git", *args], stderr=e.stderr or str(e)) from e

    def _copy(self, repository: Repository, canonical: Path) -> Path:
        copy_dir = Path(tempfile.mkdtemp(prefix=canonical.name + "_", dir=str(canonical.parent)))
        try:
            shutil.copytree(canonical, copy_dir, symlinks=True, dirs_exist_ok=True)
        except (OSError, shutil.Error) as e:
            _remove_dir(copy_dir, self.logger)
            raise CloneError(repository.name, "copying cached clone", stderr=str(e)) from e
        return copy_dir
