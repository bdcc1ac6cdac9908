# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Shared data definitions for gh-iterator.

- `Repository`: one record returned by the organization listing
- `SearchOptions`: what to list and which repositories to keep
- `Options`: how each kept repository is cloned and processed
- `Result`: counters reported by `run_for_organization`

This module imports no other gh_iterator module at runtime, so anything can import it
without cycles. `clone_cache` and `execer` are only imported for type checking.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

if TYPE_CHECKING:  # pragma: no cover
    from .clone_cache import CacheRoot
    from .execer import Execer


DEFAULT_PER_PAGE = 100
MAX_PER_PAGE = 1000
DEFAULT_NUMBER_OF_WORKERS = 10

# Page sentinel values.
FIRST_PAGE = 0
ALL_PAGES = -1


class ArchiveCondition(str, Enum):
    """What to do with archived repositories."""

    INCLUDE = "include"
    ONLY = "only"
    OMIT = "omit"


class Source(str, Enum):
    """Which repositories to keep depending on whether they are forks."""

    ALL = "all"
    ONLY_FORKS = "forks"
    ONLY_NON_FORKS = "non-forks"


class Visibility(str, Enum):
    """Repository visibility as reported by the GitHub API (NONE = no filtering)."""

    NONE = ""
    PUBLIC = "public"
    PRIVATE = "private"
    INTERNAL = "internal"


class SizeCondition(str, Enum):
    """Which repositories to keep depending on whether they have any content."""

    ALL = "all"
    NOT_EMPTY = "non-empty"
    ONLY_EMPTY = "empty"


def _parse_pushed_at(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    # GitHub returns RFC3339 with a trailing "Z"; fromisoformat() only learned "Z" in 3.11.
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@dataclass(frozen=True)
class Repository:
    """A GitHub repository record (read-only for the whole run)."""

    name: str
    url: str = ""
    ssh_url: str = ""
    default_branch: str = ""
    archived: bool = False
    language: str = ""
    visibility: str = ""
    fork: bool = False
    size: int = 0
    pushed_at: Optional[datetime] = None

    @property
    def is_empty(self) -> bool:
        """True when the repository has no commits (GitHub reports size 0)."""
        return self.size == 0

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Repository":
        """Build a Repository from a GitHub REST API repository object."""
        return cls(
            name=str(data.get("full_name") or ""),
            url=str(data.get("clone_url") or ""),
            ssh_url=str(data.get("ssh_url") or ""),
            default_branch=str(data.get("default_branch") or ""),
            archived=bool(data.get("archived") or False),
            language=str(data.get("language") or ""),
            visibility=str(data.get("visibility") or ""),
            fork=bool(data.get("fork") or False),
            size=int(data.get("size") or 0),
            pushed_at=_parse_pushed_at(data.get("pushed_at")),
        )

    def to_api(self) -> Dict[str, Any]:
        """Inverse of from_api() (used by the listing cache)."""
        return {
            "full_name": self.name,
            "clone_url": self.url,
            "ssh_url": self.ssh_url,
            "default_branch": self.default_branch,
            "archived": self.archived,
            "language": self.language,
            "visibility": self.visibility,
            "fork": self.fork,
            "size": self.size,
            "pushed_at": self.pushed_at.isoformat() if self.pushed_at else None,
        }


# (token, repository_name, is_empty, execer) -> None; raise to fail the run.
Processor = Callable[..., None]

# Returns the cache key under which a clone can be shared ("" = no sharing).
CloneCacheKey = Callable[[Repository], str]


def clone_cache_key_from_string(key: str) -> CloneCacheKey:
    """Use the same cache key for every repository."""
    return lambda _repository: key


@dataclass
class SearchOptions:
    """What to list from the organization and which repositories go in.

    Structural filters are only applied when set to a non-default value. When nothing is
    set at all, archived, forked and empty repositories are left out.
    """

    languages: List[str] = field(default_factory=list)
    archive_condition: ArchiveCondition = ArchiveCondition.INCLUDE
    source: Source = Source.ALL
    visibility: Visibility = Visibility.NONE
    size_condition: SizeCondition = SizeCondition.ALL
    # Custom predicate deciding what goes in (e.g. a compiled CEL expression).
    filter_in: Optional[Callable[[Repository], bool]] = None
    per_page: int = 0
    page: int = FIRST_PAGE
    # Cache the listing response on disk for this many seconds (None/0 = no cache).
    cache_ttl_s: Optional[int] = None

    def has_filters(self) -> bool:
        return bool(
            self.languages
            or self.archive_condition != ArchiveCondition.INCLUDE
            or self.source != Source.ALL
            or self.visibility != Visibility.NONE
            or self.size_condition != SizeCondition.ALL
            or self.filter_in is not None
        )


@dataclass
class Options:
    """How repositories are cloned and processed."""

    # Clone over HTTPS instead of SSH.
    use_https: bool = False
    # Key identifying a cached clone that can be shared (copied) by later callers,
    # beneficial when the same repository is cloned many times with the same cache root.
    clone_cache_key: Optional[CloneCacheKey] = None
    # Files or directories to check out (sparse checkout) instead of the whole tree.
    cloning_subset: List[str] = field(default_factory=list)
    # Only used by run_for_organization.
    number_of_workers: int = DEFAULT_NUMBER_OF_WORKERS
    # Caller-owned cache root; when None each run creates and removes its own.
    cache_root: Optional["CacheRoot"] = None
    # Called with (repository, execer) before the processor runs, empty repositories
    # included; the execer it returns is the one the processor gets (e.g. with_env()).
    execer_enricher: Optional[Callable[[Repository, "Execer"], "Execer"]] = None
    github_token: Optional[str] = None
    api_url: Optional[str] = None

    def workers(self) -> int:
        n = int(self.number_of_workers or 0)
        return n if n > 0 else DEFAULT_NUMBER_OF_WORKERS


@dataclass(frozen=True)
class Result:
    """Counters from running the iterator for an organization.

    - found: repositories returned by the API, before any filtering
    - inspected: repositories looked at by the filter
    - processed: repositories that passed the filter and were handed to a worker
    """

    found: int = 0
    inspected: int = 0
    processed: int = 0
