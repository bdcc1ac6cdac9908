"""
gh-iterator: run a processor against the repositories of a GitHub organization.

This package contains:
- the filter chain (structural options + optional CEL expression)
- the clone/cache manager (private working directory per repository)
- the bounded worker pool that ties them together

Public API is re-exported from:
- `gh_iterator.iterator` for the entry points
- `gh_iterator.types` for options and records
- `gh_iterator.exceptions` for the error taxonomy
"""

from .cancel import CancelToken  # noqa: F401
from .clone_cache import CacheRoot, CloneCacheManager  # noqa: F401
from .exceptions import (  # noqa: F401
    CancellationError,
    CloneError,
    GitHubAPIError,
    IteratorError,
    ListingError,
    NoDefaultBranch,
    ProcessorError,
    ValidationError,
)
from .execer import CommandResult, Execer  # noqa: F401
from .filters import FilterChain, compile_filters  # noqa: F401
from .iterator import run_for_organization, run_for_repository  # noqa: F401
from .types import (  # noqa: F401
    ALL_PAGES,
    ArchiveCondition,
    Options,
    Repository,
    Result,
    SearchOptions,
    SizeCondition,
    Source,
    Visibility,
    clone_cache_key_from_string,
)

__all__ = [
    "ALL_PAGES",
    "ArchiveCondition",
    "CacheRoot",
    "CancelToken",
    "CancellationError",
    "CloneCacheManager",
    "CloneError",
    "CommandResult",
    "Execer",
    "FilterChain",
    "GitHubAPIError",
    "IteratorError",
    "ListingError",
    "NoDefaultBranch",
    "Options",
    "ProcessorError",
    "Repository",
    "Result",
    "SearchOptions",
    "SizeCondition",
    "Source",
    "ValidationError",
    "Visibility",
    "clone_cache_key_from_string",
    "compile_filters",
    "run_for_organization",
    "run_for_repository",
]
