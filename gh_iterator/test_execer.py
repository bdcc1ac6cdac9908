"""
Pytest tests for the command runner (execer.py).

These spawn small POSIX commands (`sh`, `cat`, `sleep`).

Run from the repository root:
    pytest gh_iterator/test_execer.py -v
"""

from __future__ import annotations

import threading
import time
from pathlib import Path

import pytest

from gh_iterator.cancel import CancelToken
from gh_iterator.exceptions import CommandError, CommandLaunchError
from gh_iterator.execer import EmptyExecer, Execer, cmd_string


def test_run_captures_output_and_exit_code(tmp_path: Path):
    x = Execer(tmp_path)
    res = x.run("sh", "-c", "echo out; echo err >&2; exit 3")

    assert res.stdout == "out\n"
    assert res.stderr == "err\n"
    assert res.exit_code == 3
    assert res.cancelled is False
    assert res.trim_stdout() == "out"


def test_run_uses_the_working_directory(tmp_path: Path):
    (tmp_path / "marker.txt").write_text("here\n")
    assert Execer(tmp_path).run_x("cat", "marker.txt") == "here\n"


def test_run_x_raises_with_stderr_and_exit_code(tmp_path: Path):
    with pytest.raises(CommandError) as ei:
        Execer(tmp_path).run_x("sh", "-c", "echo nope >&2; exit 2")

    assert ei.value.exit_code == 2
    assert "nope" in ei.value.stderr


def test_run_with_stdin(tmp_path: Path):
    assert Execer(tmp_path).run_with_stdin_x("hello\n", "cat") == "hello\n"


def test_missing_binary_is_a_launch_error(tmp_path: Path):
    with pytest.raises(CommandLaunchError):
        Execer(tmp_path).run("gh-iterator-no-such-binary-xyz")


def test_with_env_adds_variables_without_touching_parent(tmp_path: Path):
    parent = Execer(tmp_path)
    child = parent.with_env(GH_ITER_TEST_VAR="child")

    assert child.run_x("sh", "-c", "printf %s \"$GH_ITER_TEST_VAR\"") == "child"
    assert parent.run_x("sh", "-c", "printf %s \"${GH_ITER_TEST_VAR:-unset}\"") == "unset"


def test_sub_requires_existing_directory(tmp_path: Path):
    (tmp_path / "pkg").mkdir()
    (tmp_path / "file.txt").write_text("x")
    x = Execer(tmp_path)

    assert x.sub("pkg").dir == tmp_path / "pkg"
    with pytest.raises(FileNotFoundError):
        x.sub("missing")
    with pytest.raises(NotADirectoryError):
        x.sub("file.txt")


def test_cancellation_kills_running_command(tmp_path: Path):
    token = CancelToken()
    x = Execer(tmp_path, token=token)
    threading.Timer(0.2, token.cancel).start()

    started = time.monotonic()
    res = x.run("sleep", "30")

    assert res.cancelled is True
    assert res.exit_code != 0
    assert time.monotonic() - started < 10


def test_with_token_children_share_the_token(tmp_path: Path):
    token = CancelToken()
    token.cancel()
    res = Execer(tmp_path).with_token(token).run("sleep", "30")
    assert res.cancelled is True


def test_empty_execer_refuses_to_run():
    x = EmptyExecer()
    with pytest.raises(CommandLaunchError):
        x.run("ls")
    with pytest.raises(FileNotFoundError):
        x.sub("src")


def test_cmd_string_quotes_arguments():
    assert cmd_string("git", "commit", "-m", "two words") == "git commit -m 'two words'"
