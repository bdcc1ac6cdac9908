# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Entry points: run a processor for every repository of an organization, or for one repository.

A processor is called as:

    processor(token, repository_name, is_empty, execer)

- token: the caller's CancelToken; long processors should check `token.cancelled`
- repository_name: full name, e.g. "my-org/my-repo"
- is_empty: True for repositories without commits (nothing is cloned for them)
- execer: Execer rooted at the private working directory of the clone

Raising from the processor fails the run (wrapped in ProcessorError).
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from .cancel import CancelToken
from .clone_cache import CacheRoot, CloneCacheManager
from .dispatcher import Dispatcher
from .exceptions import CancellationError, IteratorError, ProcessorError, ValidationError
from .execer import EmptyExecer, Execer
from .filters import compile_filters
from .github import GitHubClient, RepositoryLister, org_repos_params
from .log import AnyLogger, with_fields
from .types import Options, Processor, Repository, Result, SearchOptions

_logger = logging.getLogger(__name__)


@contextmanager
def _cache_root(options: Options) -> Iterator[CacheRoot]:
    """The caller's cache root if given (left in place), else a fresh one removed at the end."""
    if options.cache_root is not None:
        yield options.cache_root
        return
    root = CacheRoot.create()
    try:
        yield root
    finally:
        root.remove()


def _call_processor(
    processor: Processor,
    token: CancelToken,
    repository: Repository,
    is_empty: bool,
    execer: Execer,
) -> None:
    try:
        processor(token, repository.name, is_empty, execer)
    except Exception as e:
        msg = f"processing empty repository: {e}" if is_empty else str(e)
        raise ProcessorError(repository.name, msg) from e


def process_repository(
    repository: Repository,
    processor: Processor,
    clone_manager: CloneCacheManager,
    token: CancelToken,
    logger: Optional[AnyLogger] = None,
) -> None:
    """Clone (or reuse) the repository, run the processor in it, then clean up."""
    repo_logger = with_fields(logger if logger is not None else _logger, repository=repository.name)
    enrich = clone_manager.options.execer_enricher

    if repository.size == 0:
        # Nothing to clone for an empty repository.
        repo_logger.debug("Empty repository")
        execer: Execer = EmptyExecer(logger=repo_logger, token=token)
        if enrich is not None:
            execer = enrich(repository, execer)
        _call_processor(processor, token, repository, True, execer)
        return

    with clone_manager.checkout(repository) as repo_dir:
        repo_logger.debug("Processing in %s", repo_dir)
        execer = Execer(repo_dir, logger=repo_logger, token=token)
        if enrich is not None:
            execer = enrich(repository, execer)
        _call_processor(processor, token, repository, False, execer)


def run_for_organization(
    org: str,
    search_options: SearchOptions,
    processor: Processor,
    options: Optional[Options] = None,
    *,
    token: Optional[CancelToken] = None,
    lister: Optional[RepositoryLister] = None,
) -> Result:
    """Run the processor for every repository of org that passes the filters.

    Raises the first fatal error (ValidationError, ListingError, CloneError,
    ProcessorError, ...) or CancellationError; returns the Result only on success.
    """
    options = options or Options()
    token = token if token is not None else CancelToken()

    # Validate before any network call.
    org_repos_params(search_options)
    filter_in = compile_filters(search_options)

    if token.cancelled:
        raise CancellationError(token.cause)

    lister = lister if lister is not None else GitHubClient(options.github_token, api_url=options.api_url)
    try:
        pages = lister.list_org_repository_pages(org, search_options)
    except IteratorError as e:
        if token.cancelled:
            raise CancellationError(token.cause) from e
        raise

    with _cache_root(options) as cache_root:
        clone_manager = CloneCacheManager(cache_root, options, token=token)
        dispatcher = Dispatcher(
            lambda repository: process_repository(repository, processor, clone_manager, token),
            number_of_workers=options.workers(),
        )
        result = dispatcher.run(pages, filter_in, token)

    _logger.info(
        "Finished %s: found=%d inspected=%d processed=%d",
        org, result.found, result.inspected, result.processed,
    )
    return result


def validate_repository_name(repository_name: str) -> None:
    """Accept "owner/name" (or a bare name); reject deeper paths and empty names."""
    name = (repository_name or "").strip()
    if not name or name.count("/") > 1 or name.startswith("/") or name.endswith("/"):
        raise ValidationError(f"incorrect repository name {repository_name!r}")


def run_for_repository(
    repository_name: str,
    processor: Processor,
    options: Optional[Options] = None,
    *,
    token: Optional[CancelToken] = None,
    lister: Optional[RepositoryLister] = None,
) -> None:
    """Run the processor for a single repository (no filters, no worker pool)."""
    validate_repository_name(repository_name)
    options = options or Options()
    token = token if token is not None else CancelToken()

    if token.cancelled:
        raise CancellationError(token.cause)

    lister = lister if lister is not None else GitHubClient(options.github_token, api_url=options.api_url)
    try:
        repository = lister.get_repository(repository_name)
        with _cache_root(options) as cache_root:
            clone_manager = CloneCacheManager(cache_root, options, token=token)
            process_repository(repository, processor, clone_manager, token)
    except IteratorError as e:
        if token.cancelled:
            raise CancellationError(token.cause) from e
        raise

    if token.cancelled:
        raise CancellationError(token.cause)
