# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Cooperative cancellation for gh-iterator.

- `CancelToken`: flipped at most once, with a cause; child tokens follow their parent.
- `TaskGroup`: runs callables on a ThreadPoolExecutor; the first failure cancels the
  group's token and is kept as the group's error.

Nothing here interrupts running code. Tasks are expected to check `token.cancelled`
(or `token.wait()`) between units of work.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, List, Optional

_logger = logging.getLogger(__name__)


class CancelToken:
    """Thread-safe, one-shot cancellation signal."""

    def __init__(self, parent: Optional["CancelToken"] = None):
        self._mu = threading.Lock()
        self._event = threading.Event()
        self._cause: Optional[BaseException] = None
        self._callbacks: List[Callable[[Optional[BaseException]], None]] = []
        self._parent = parent
        if parent is not None:
            parent.add_callback(self._on_parent_cancel)

    def _on_parent_cancel(self, cause: Optional[BaseException]) -> None:
        self.cancel(cause)

    def child(self) -> "CancelToken":
        return CancelToken(parent=self)

    def detach(self) -> None:
        """Stop following the parent (call when a child token is no longer needed)."""
        if self._parent is not None:
            self._parent.remove_callback(self._on_parent_cancel)
            self._parent = None

    def cancel(self, cause: Optional[BaseException] = None) -> bool:
        """Cancel the token. Returns True only for the call that actually flipped it."""
        with self._mu:
            if self._event.is_set():
                return False
            self._cause = cause
            self._event.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()
        for cb in callbacks:
            cb(cause)
        return True

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def cause(self) -> Optional[BaseException]:
        return self._cause

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancelled or timeout; returns whether the token is cancelled."""
        return self._event.wait(timeout)

    def add_callback(self, fn: Callable[[Optional[BaseException]], None]) -> None:
        """Call fn(cause) once on cancellation (immediately if already cancelled)."""
        with self._mu:
            if not self._event.is_set():
                self._callbacks.append(fn)
                return
            cause = self._cause
        fn(cause)

    def remove_callback(self, fn: Callable[[Optional[BaseException]], None]) -> None:
        with self._mu:
            try:
                self._callbacks.remove(fn)
            except ValueError:
                pass


class TaskGroup:
    """A fixed set of tasks sharing one cancellation token.

    Usage:
        with TaskGroup(token, max_workers=4) as group:
            group.spawn(producer)
            group.spawn(worker)
        # leaving the block joins every task
        if group.error is not None:
            raise group.error
    """

    def __init__(self, token: CancelToken, *, max_workers: int, name: str = "gh-iterator"):
        self.token = token
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=name)
        self._futures: List[Future] = []
        self._mu = threading.Lock()
        self._error: Optional[BaseException] = None

    @property
    def error(self) -> Optional[BaseException]:
        with self._mu:
            return self._error

    def spawn(self, fn: Callable[..., Any], *args: Any) -> None:
        self._futures.append(self._executor.submit(self._run, fn, *args))

    def _run(self, fn: Callable[..., Any], *args: Any) -> None:
        try:
            fn(*args)
        except Exception as e:
            self.fail(e)
        except BaseException as e:
            # SystemExit and friends still end the group; the future keeps the exception.
            self.fail(e)
            raise

    def fail(self, exc: BaseException) -> bool:
        """Record exc as the group's error if it is the first thing to cancel the token."""
        if not self.token.cancel(exc):
            _logger.debug("Ignoring error after cancellation: %s", exc)
            return False
        with self._mu:
            self._error = exc
        return True

    def join(self) -> None:
        wait(self._futures)
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "TaskGroup":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_val is not None:
            self.token.cancel(exc_val)
        self.join()
        return False
