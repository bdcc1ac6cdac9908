# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Repository filter chain.

`compile_filters(search_options)` turns SearchOptions into one `FilterChain`, an ordered
list of filters that must all say yes. Structural filters are only added for non-default
option values; a custom predicate (`filter_in`) is one more filter in the list.

With no options at all the chain is not "accept everything": it leaves out archived,
forked and empty repositories (`DEFAULT_FILTERS`).
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Callable, Iterable, List, Sequence

from .types import (
    ArchiveCondition,
    Repository,
    SearchOptions,
    SizeCondition,
    Source,
    Visibility,
)

_logger = logging.getLogger(__name__)


class RepositoryFilter(ABC):
    @abstractmethod
    def evaluate(self, repository: Repository) -> bool:
        """True when the repository goes in."""

    def __call__(self, repository: Repository) -> bool:
        return self.evaluate(repository)


class LanguageFilter(RepositoryFilter):
    """Case-insensitive exact match against any language of the allow-list."""

    def __init__(self, languages: Iterable[str]):
        self.languages = [str(lang).casefold() for lang in languages]

    def evaluate(self, repository: Repository) -> bool:
        return (repository.language or "").casefold() in self.languages


class ArchiveFilter(RepositoryFilter):
    def __init__(self, condition: ArchiveCondition):
        self.condition = ArchiveCondition(condition)

    def evaluate(self, repository: Repository) -> bool:
        if self.condition == ArchiveCondition.ONLY:
            return repository.archived
        if self.condition == ArchiveCondition.OMIT:
            return not repository.archived
        return True


class SourceFilter(RepositoryFilter):
    def __init__(self, source: Source):
        self.source = Source(source)

    def evaluate(self, repository: Repository) -> bool:
        if self.source == Source.ONLY_FORKS:
            return repository.fork
        if self.source == Source.ONLY_NON_FORKS:
            return not repository.fork
        return True


class VisibilityFilter(RepositoryFilter):
    def __init__(self, visibility: Visibility):
        self.visibility = Visibility(visibility)

    def evaluate(self, repository: Repository) -> bool:
        if self.visibility == Visibility.NONE:
            return True
        return repository.visibility == self.visibility.value


class SizeFilter(RepositoryFilter):
    def __init__(self, condition: SizeCondition):
        self.condition = SizeCondition(condition)

    def evaluate(self, repository: Repository) -> bool:
        if self.condition == SizeCondition.NOT_EMPTY:
            return repository.size > 0
        if self.condition == SizeCondition.ONLY_EMPTY:
            return repository.size == 0
        return True


class PredicateFilter(RepositoryFilter):
    """Wraps an opaque predicate. Failures count as "no" and are logged, never raised."""

    def __init__(self, predicate: Callable[[Repository], bool]):
        self.predicate = predicate

    def evaluate(self, repository: Repository) -> bool:
        try:
            result = self.predicate(repository)
        except Exception as e:
            _logger.error("Failed to evaluate filter for %s: %s", repository.name, e)
            return False
        if not isinstance(result, bool):
            _logger.error(
                "Filter for %s returned %s instead of a boolean",
                repository.name,
                type(result).__name__,
            )
            return False
        return result


class FilterChain(RepositoryFilter):
    """ANDs an ordered list of filters (an empty chain accepts everything)."""

    def __init__(self, filters: Sequence[RepositoryFilter] = ()):
        self.filters: List[RepositoryFilter] = list(filters)

    def evaluate(self, repository: Repository) -> bool:
        return all(f.evaluate(repository) for f in self.filters)

    def __len__(self) -> int:
        return len(self.filters)


def default_filters() -> List[RepositoryFilter]:
    """Filters used when nothing is configured: no archived, no forks, no empty repos."""
    return [
        ArchiveFilter(ArchiveCondition.OMIT),
        SourceFilter(Source.ONLY_NON_FORKS),
        SizeFilter(SizeCondition.NOT_EMPTY),
    ]


DEFAULT_FILTERS = FilterChain(default_filters())


def compile_filters(search_options: SearchOptions) -> FilterChain:
    """Build the filter chain for a run (see module docstring)."""
    if not search_options.has_filters():
        return FilterChain(default_filters())

    filters: List[RepositoryFilter] = []
    if search_options.languages:
        filters.append(LanguageFilter(search_options.languages))
    if search_options.archive_condition != ArchiveCondition.INCLUDE:
        filters.append(ArchiveFilter(search_options.archive_condition))
    if search_options.source != Source.ALL:
        filters.append(SourceFilter(search_options.source))
    if search_options.visibility != Visibility.NONE:
        filters.append(VisibilityFilter(search_options.visibility))
    if search_options.size_condition != SizeCondition.ALL:
        filters.append(SizeFilter(search_options.size_condition))
    if search_options.filter_in is not None:
        filters.append(PredicateFilter(search_options.filter_in))
    return FilterChain(filters)
