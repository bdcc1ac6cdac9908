# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Shared pytest fixtures: local upstream git repositories standing in for GitHub remotes,
and fake `requests` functions standing in for the GitHub API."""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest
import requests

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git binary not available")


def make_upstream(path: Path, files: Dict[str, str], branch: str = "main") -> Path:
    """Create a non-bare repository with one commit on `branch`; returns its path."""
    import git  # GitPython

    path.mkdir(parents=True, exist_ok=True)
    repo = git.Repo.init(str(path))
    with repo.config_writer() as cw:
        cw.set_value("user", "name", "gh-iterator tests")
        cw.set_value("user", "email", "tests@example.com")
    repo.git.symbolic_ref("HEAD", f"refs/heads/{branch}")
    for rel, content in files.items():
        f = path / rel
        f.parent.mkdir(parents=True, exist_ok=True)
        f.write_text(content)
    repo.git.add("--all")
    repo.git.commit("-m", "initial commit")
    return path


@pytest.fixture
def upstream(tmp_path: Path) -> Path:
    return make_upstream(
        tmp_path / "upstream" / "widgets",
        {
            "README.md": "# widgets\n",
            "go.mod": "module example.com/widgets\n\ngo 1.22\n",
            "docs/guide.md": "guide\n",
        },
    )


@pytest.fixture
def upstream_factory(tmp_path: Path) -> Callable[..., Path]:
    def factory(name: str, files: Dict[str, str], branch: str = "main") -> Path:
        return make_upstream(tmp_path / "upstream" / name, files, branch=branch)

    return factory


class FakeResponse:
    def __init__(self, payload: Any, *, status_code: int = 200, next_url: Optional[str] = None, url: str = ""):
        self._payload = payload
        self.status_code = status_code
        self.links = {"next": {"url": next_url, "rel": "next"}} if next_url else {}
        self.url = url

    def json(self) -> Any:
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeGitHub:
    """Stands in for requests.get: serves responses by url and records every call."""

    def __init__(self, responses: Dict[str, FakeResponse]):
        self.responses = responses
        self.calls: List[Dict[str, Any]] = []

    def __call__(self, url, headers=None, params=None, timeout=None):
        self.calls.append({"url": url, "headers": headers, "params": params})
        if url not in self.responses:
            raise requests.ConnectionError(f"no route to {url}")
        return self.responses[url]


class FakeSender:
    """Stands in for requests.post / requests.patch: serves responses by url, records payloads."""

    def __init__(self, responses: Dict[str, FakeResponse]):
        self.responses = responses
        self.calls: List[Dict[str, Any]] = []

    def __call__(self, url, headers=None, json=None, timeout=None):
        self.calls.append({"url": url, "headers": headers, "json": json})
        if url not in self.responses:
            raise requests.ConnectionError(f"no route to {url}")
        return self.responses[url]

    def payloads(self, url: str) -> List[Any]:
        return [c["json"] for c in self.calls if c["url"] == url]
