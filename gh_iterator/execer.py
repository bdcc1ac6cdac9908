# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Command runner used for cloning and handed to processors.

An `Execer` runs commands with a fixed working directory, optional extra environment
variables and a logger. When it carries a `CancelToken`, a running command is killed once
the token is cancelled and the result is marked `cancelled`.

Example:
    x = Execer(repo_dir, token=token)
    branch = x.run_x("git", "rev-parse", "--abbrev-ref", "HEAD").strip()
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .cancel import CancelToken
from .exceptions import CommandError, CommandLaunchError
from .log import AnyLogger, with_fields

_logger = logging.getLogger(__name__)

# How often a running command checks its cancel token.
_CANCEL_POLL_INTERVAL_S = 0.1


@dataclass
class CommandResult:
    stdout: str
    stderr: str
    exit_code: int
    cancelled: bool = False

    def trim_stdout(self) -> str:
        return self.stdout.strip()


def cmd_string(command: str, *args: str) -> str:
    return " ".join(shlex.quote(str(a)) for a in (command, *args))


class Execer:
    """Runs commands in a directory (see module docstring)."""

    def __init__(
        self,
        directory: Union[str, Path],
        *,
        logger: Optional[AnyLogger] = None,
        env: Optional[Dict[str, str]] = None,
        token: Optional[CancelToken] = None,
    ):
        self._dir = Path(directory)
        self.logger: AnyLogger = logger if logger is not None else _logger
        self._env: Dict[str, str] = dict(env or {})
        self._token = token

    @property
    def dir(self) -> Path:
        return self._dir

    def _derive(self, **changes: Any) -> "Execer":
        kwargs: Dict[str, Any] = {"logger": self.logger, "env": self._env, "token": self._token}
        kwargs.update(changes)
        directory = kwargs.pop("directory", self._dir)
        return type(self)(directory, **kwargs)

    def with_env(self, **env: str) -> "Execer":
        """Child execer with extra environment variables."""
        merged = dict(self._env)
        merged.update({k: str(v) for k, v in env.items()})
        return self._derive(env=merged)

    def with_log_fields(self, **fields: Any) -> "Execer":
        """Child execer whose log lines carry extra key=value fields."""
        return self._derive(logger=with_fields(self.logger, **fields))

    def with_token(self, token: Optional[CancelToken]) -> "Execer":
        return self._derive(token=token)

    def sub(self, subpath: str) -> "Execer":
        """Child execer rooted at an existing subdirectory."""
        subdir = self._dir / subpath
        if not subdir.exists():
            raise FileNotFoundError(f"subpath {subdir} does not exist")
        if not subdir.is_dir():
            raise NotADirectoryError(f"subpath {subdir} is not a directory")
        return self._derive(directory=subdir)

    def log(self, level: int, msg: str, *args: Any) -> None:
        self.logger.log(level, msg, *args)

    def run(self, command: str, *args: str) -> CommandResult:
        """Run a command; a non-zero exit code is reported in the result, not raised."""
        return self.run_with_stdin(None, command, *args)

    def run_x(self, command: str, *args: str) -> str:
        """Run a command and return stdout; raise CommandError on a non-zero exit code."""
        return self.run_with_stdin_x(None, command, *args)

    def run_with_stdin_x(self, stdin: Optional[str], command: str, *args: str) -> str:
        res = self.run_with_stdin(stdin, command, *args)
        if res.exit_code != 0:
            raise CommandError(
                f"{cmd_string(command, *args)}: exit code {res.exit_code}",
                stderr=res.stderr,
                exit_code=res.exit_code,
            )
        return res.stdout

    def run_with_stdin(self, stdin: Optional[str], command: str, *args: str) -> CommandResult:
        cmd = [str(command), *[str(a) for a in args]]
        cmd_s = cmd_string(*cmd)
        self.logger.debug("Executing command: %s", cmd_s)

        env = None
        if self._env:
            env = dict(os.environ)
            env.update(self._env)

        try:
            proc = subprocess.Popen(
                cmd,
                cwd=str(self._dir),
                env=env,
                stdin=subprocess.PIPE if stdin is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except OSError as e:
            raise CommandLaunchError(f"{cmd_s}: {e}") from e

        cancelled = False
        pending_input = stdin
        timeout = _CANCEL_POLL_INTERVAL_S if self._token is not None else None
        while True:
            try:
                stdout, stderr = proc.communicate(input=pending_input, timeout=timeout)
                break
            except subprocess.TimeoutExpired:
                # communicate() refuses input once it has started; it keeps buffering it.
                pending_input = None
                if self._token is not None and self._token.cancelled:
                    self.logger.debug("Killing cancelled command: %s", cmd_s)
                    proc.kill()
                    stdout, stderr = proc.communicate()
                    cancelled = True
                    break

        return CommandResult(
            stdout=stdout or "",
            stderr=stderr or "",
            exit_code=int(proc.returncode),
            cancelled=cancelled,
        )


class EmptyExecer(Execer):
    """Execer handed to processors of empty repositories: there is no directory to run in."""

    def __init__(self, directory: Union[str, Path] = "", **kwargs: Any):
        super().__init__(directory, **kwargs)

    def sub(self, subpath: str) -> "Execer":
        raise FileNotFoundError("empty repository has no working directory")

    def run_with_stdin(self, stdin: Optional[str], command: str, *args: str) -> CommandResult:
        raise CommandLaunchError(
            f"{cmd_string(command, *args)}: empty repository has no working directory"
        )
