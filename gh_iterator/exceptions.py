# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""gh-iterator error types.

Only `NoDefaultBranch` is recoverable (the dispatcher logs it and skips the repository);
every other error ends the run and is raised from the entry point.
"""

from __future__ import annotations

from typing import Optional, Sequence


class IteratorError(Exception):
    pass


class ValidationError(IteratorError):
    """Malformed options (pagination, repository name, filter expression)."""


class FilterExpressionError(ValidationError):
    pass


class GitHubAPIError(IteratorError):
    """A GitHub API call failed (transport error, HTTP error or unexpected body)."""

    def __init__(self, message: str, *, status_code: int = 0, endpoint: str = ""):
        super().__init__(message)
        self.status_code = int(status_code or 0)
        self.endpoint = str(endpoint or "")


class ListingError(GitHubAPIError):
    """Listing repositories (or fetching one) failed."""


class CommandError(IteratorError):
    """A command exited with a non-zero exit code."""

    def __init__(self, message: str, *, stderr: str = "", exit_code: int = 0):
        super().__init__(message)
        self.stderr = stderr or ""
        self.exit_code = int(exit_code)


class CommandLaunchError(CommandError):
    """The command could not be started at all (missing binary, bad cwd)."""


class RepositoryError(IteratorError):
    """An error tied to one repository; str() names the repository."""

    def __init__(self, repository: str, message: str):
        super().__init__(f"processing {repository!r}: {message}")
        self.repository = repository


class NoDefaultBranch(RepositoryError):
    def __init__(self, repository: str):
        super().__init__(repository, "no default branch")


class CloneError(RepositoryError):
    def __init__(self, repository: str, step: str, *, command: Sequence[str] = (), stderr: str = ""):
        msg = step
        if stderr.strip():
            msg = f"{step}: {stderr.strip()}"
        super().__init__(repository, msg)
        self.step = step
        self.command = list(command)
        self.stderr = stderr


class ProcessorError(RepositoryError):
    """Wraps whatever the processor raised; the original exception is __cause__."""


class CancellationError(IteratorError):
    def __init__(self, cause: Optional[BaseException] = None):
        super().__init__(f"run cancelled: {cause}" if cause is not None else "run cancelled")
        self.cause = cause


class GitHelperError(IteratorError):
    """A git helper (branch, commit, push, ...) failed inside a working directory."""
