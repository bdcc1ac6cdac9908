# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Bounded worker pool that runs one unit of work per accepted repository.

    pages -> producer (filter, count) -> Queue(maxsize=N) -> N workers -> work(repository)

- The producer walks pages in order and enqueues the repositories that pass the filter.
  While the queue is full it keeps checking the run token, so it never blocks forever.
- Workers take one repository at a time. `NoDefaultBranch` is logged and skipped; any
  other error is fatal: it becomes the run's error, cancels the run token and stops the
  worker. In-flight units are never interrupted; they finish before the run returns.
- The run returns exactly once: the Result on completion, otherwise it raises the first
  fatal error, or CancellationError when the caller's token was cancelled first.
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import Callable, Optional, Sequence

from .cancel import CancelToken, TaskGroup
from .exceptions import CancellationError, NoDefaultBranch, RepositoryError
from .log import AnyLogger, with_fields
from .types import DEFAULT_NUMBER_OF_WORKERS, Repository, Result

_logger = logging.getLogger(__name__)

# Queue wait granularity; bounds how long producer/workers take to notice cancellation.
_POLL_INTERVAL_S = 0.05

UnitOfWork = Callable[[Repository], None]


class ResultAggregator:
    """found/inspected/processed counters behind one lock."""

    def __init__(self) -> None:
        self._mu = threading.Lock()
        self._found = 0
        self._inspected = 0
        self._processed = 0

    def add_found(self, n: int) -> None:
        with self._mu:
            self._found += int(n)

    def inspect(self, repository: Repository, filter_in: Callable[[Repository], bool]) -> bool:
        """Count one inspected repository; count it as processed too if the filter accepts it."""
        with self._mu:
            self._inspected += 1
            if not filter_in(repository):
                return False
            self._processed += 1
            return True

    def result(self) -> Result:
        with self._mu:
            return Result(found=self._found, inspected=self._inspected, processed=self._processed)


class Dispatcher:
    """Runs `work(repository)` for every accepted repository on N workers."""

    def __init__(
        self,
        work: UnitOfWork,
        *,
        number_of_workers: int = DEFAULT_NUMBER_OF_WORKERS,
        logger: Optional[AnyLogger] = None,
    ):
        self.work = work
        self.number_of_workers = number_of_workers if number_of_workers > 0 else DEFAULT_NUMBER_OF_WORKERS
        self.logger: AnyLogger = logger if logger is not None else _logger

    def run(
        self,
        pages: Sequence[Sequence[Repository]],
        filter_in: Callable[[Repository], bool],
        token: Optional[CancelToken] = None,
    ) -> Result:
        n = self.number_of_workers
        external = token if token is not None else CancelToken()
        run_token = external.child()

        aggregator = ResultAggregator()
        aggregator.add_found(sum(len(page) for page in pages))

        repo_q: "queue.Queue[Repository]" = queue.Queue(maxsize=n)
        producer_done = threading.Event()

        self.logger.debug("Dispatching %d pages to %d workers", len(pages), n)
        try:
            with TaskGroup(run_token, max_workers=n + 1, name="gh-iterator-worker") as group:
                group.spawn(self._produce, pages, filter_in, aggregator, repo_q, run_token, producer_done)
                for _ in range(n):
                    group.spawn(self._consume, repo_q, run_token, producer_done)
        finally:
            run_token.detach()

        if group.error is not None:
            raise group.error
        if run_token.cancelled:
            raise CancellationError(run_token.cause)
        return aggregator.result()

    def _produce(
        self,
        pages: Sequence[Sequence[Repository]],
        filter_in: Callable[[Repository], bool],
        aggregator: ResultAggregator,
        repo_q: "queue.Queue[Repository]",
        token: CancelToken,
        producer_done: threading.Event,
    ) -> None:
        try:
            for page in pages:
                for repository in page:
                    if not aggregator.inspect(repository, filter_in):
                        self.logger.debug("Filtered out %s", repository.name)
                        continue
                    if not self._enqueue(repo_q, repository, token):
                        return
        finally:
            producer_done.set()

    @staticmethod
    def _enqueue(repo_q: "queue.Queue[Repository]", repository: Repository, token: CancelToken) -> bool:
        while not token.cancelled:
            try:
                repo_q.put(repository, timeout=_POLL_INTERVAL_S)
                return True
            except queue.Full:
                continue
        return False

    def _consume(
        self,
        repo_q: "queue.Queue[Repository]",
        token: CancelToken,
        producer_done: threading.Event,
    ) -> None:
        while not token.cancelled:
            # Read before get(): if the producer was already done, an empty queue stays empty.
            done = producer_done.is_set()
            try:
                repository = repo_q.get(timeout=_POLL_INTERVAL_S)
            except queue.Empty:
                if done:
                    return
                continue

            if token.cancelled:
                return
            self._process(repository)

    def _process(self, repository: Repository) -> None:
        try:
            self.work(repository)
        except NoDefaultBranch:
            with_fields(self.logger, repository=repository.name).warning("Repository with no default branch")
        except RepositoryError:
            raise
        except Exception as e:
            raise RepositoryError(repository.name, str(e)) from e
        except BaseException as e:
            # sys.exit() in a processor ends the run like any other error.
            raise RepositoryError(repository.name, f"{type(e).__name__}: {e}") from e
