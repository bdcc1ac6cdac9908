"""
Pytest tests for the GitPython-based git helpers (git_helpers.py).

The pull request and fork helpers run against a real local clone, with the GitHub API
replaced by fake `requests` functions (see conftest.py).

Run from the repository root:
    pytest gh_iterator/test_git_helpers.py -v
"""

from __future__ import annotations

from pathlib import Path

import git  # GitPython
import pytest

from gh_iterator import github as github_mod
from gh_iterator.conftest import FakeGitHub, FakeResponse, FakeSender, make_upstream, requires_git
from gh_iterator.exceptions import GitHelperError
from gh_iterator.execer import Execer
from gh_iterator.github import GitHubClient
from gh_iterator.git_helpers import (
    PR_BODY_MAX_LEN,
    PROptions,
    add_files,
    checkout_new_branch,
    commit,
    create_pr_if_not_exist,
    current_branch,
    fork_and_add_remote,
    has_changes,
    list_changes,
    push,
)

pytestmark = requires_git


@pytest.fixture
def work_tree(tmp_path: Path) -> Path:
    upstream = make_upstream(tmp_path / "origin", {"README.md": "hello\n"})
    clone = git.Repo.clone_from(str(upstream), str(tmp_path / "clone"))
    with clone.config_writer() as cw:
        cw.set_value("user", "name", "gh-iterator tests")
        cw.set_value("user", "email", "tests@example.com")
    return tmp_path / "clone"


def test_branch_commit_and_push(work_tree: Path, tmp_path: Path):
    x = Execer(work_tree)
    assert current_branch(x) == "main"
    assert has_changes(x) is False

    checkout_new_branch(x, "chore/update")
    (work_tree / "README.md").write_text("changed\n")
    (work_tree / "NEW.md").write_text("new\n")

    assert has_changes(x) is True
    assert sorted(list_changes(x)) == [("??", "NEW.md"), ("M", "README.md")]

    add_files(x, "README.md", "NEW.md")
    commit(x, "Update readme")
    assert has_changes(x) is False

    push(x, "chore/update")
    origin = git.Repo(str(tmp_path / "origin"))
    assert "chore/update" in [h.name for h in origin.heads]


def test_errors_are_wrapped(work_tree: Path):
    x = Execer(work_tree)
    with pytest.raises(GitHelperError):
        add_files(x, "does-not-exist.txt")
    with pytest.raises(GitHelperError):
        commit(x, "nothing to commit")


def test_not_a_repository(tmp_path: Path):
    with pytest.raises(GitHelperError):
        current_branch(Execer(tmp_path))


# ============================================================================
# Pull requests and forks (GitHub API faked)
# ============================================================================

API = "https://api.example.test"
PULLS = f"{API}/repos/acme/widgets/pulls"
GRAPHQL = f"{API}/graphql"


def _pr(number: int, *, draft: bool = False) -> dict:
    return {
        "number": number,
        "node_id": f"PR_node{number}",
        "html_url": f"https://github.com/acme/widgets/pull/{number}",
        "draft": draft,
    }


@pytest.fixture
def client() -> GitHubClient:
    return GitHubClient("test-token", api_url=API)


@pytest.fixture
def fake_api(monkeypatch):
    """(get, post, patch) fakes; tests fill in the routes they need."""
    get, post, patch = FakeGitHub({}), FakeSender({}), FakeSender({})
    monkeypatch.setattr(github_mod.requests, "get", get)
    monkeypatch.setattr(github_mod.requests, "post", post)
    monkeypatch.setattr(github_mod.requests, "patch", patch)
    return get, post, patch


def _commit_on_branch(x: Execer, work_tree: Path, branch: str, message: str) -> None:
    checkout_new_branch(x, branch)
    (work_tree / "README.md").write_text("bumped\n")
    add_files(x, "README.md")
    commit(x, message)


def test_create_pr_fills_title_and_body_from_last_commit(work_tree: Path, client, fake_api):
    get, post, patch = fake_api
    get.responses[PULLS] = FakeResponse([])
    get.responses[f"{API}/repos/acme/widgets"] = FakeResponse({"full_name": "acme/widgets", "default_branch": "main"})
    post.responses[PULLS] = FakeResponse(_pr(12), status_code=201)

    x = Execer(work_tree)
    _commit_on_branch(x, work_tree, "chore/bump", "Bump deps\n\nUpdates every dependency.")

    url, created = create_pr_if_not_exist(x, client, "acme/widgets")

    assert (url, created) == ("https://github.com/acme/widgets/pull/12", True)
    assert get.calls[0]["params"] == {"head": "acme:chore/bump", "state": "open"}
    assert post.payloads(PULLS) == [
        {"title": "Bump deps", "body": "Updates every dependency.", "head": "chore/bump", "base": "main", "draft": False}
    ]
    assert patch.calls == []


def test_existing_pr_is_updated_and_draft_state_switched(work_tree: Path, client, fake_api):
    get, post, patch = fake_api
    get.responses[PULLS] = FakeResponse([_pr(7, draft=True)])
    patch.responses[f"{PULLS}/7"] = FakeResponse(_pr(7, draft=True))
    post.responses[GRAPHQL] = FakeResponse({"data": {}})

    x = Execer(work_tree)
    _commit_on_branch(x, work_tree, "chore/bump", "Bump deps")
    long_body = "x" * (PR_BODY_MAX_LEN + 100)

    url, created = create_pr_if_not_exist(
        x, client, "acme/widgets", PROptions(title="Bump all the things", body=long_body, base="develop")
    )

    assert (url, created) == ("https://github.com/acme/widgets/pull/7", False)
    (payload,) = patch.payloads(f"{PULLS}/7")
    assert payload["title"] == "Bump all the things"
    assert len(payload["body"]) == PR_BODY_MAX_LEN
    (mutation,) = post.payloads(GRAPHQL)
    assert "markPullRequestReadyForReview" in mutation["query"]
    assert mutation["variables"] == {"id": "PR_node7"}
    assert post.payloads(PULLS) == []


def test_existing_pr_with_matching_draft_state_is_not_toggled(work_tree: Path, client, fake_api):
    get, post, patch = fake_api
    get.responses[PULLS] = FakeResponse([_pr(7, draft=True)])
    patch.responses[f"{PULLS}/7"] = FakeResponse(_pr(7, draft=True))

    x = Execer(work_tree)
    _commit_on_branch(x, work_tree, "chore/bump", "Bump deps")

    _, created = create_pr_if_not_exist(x, client, "acme/widgets", PROptions(draft=True, head="octocat:chore/bump"))

    assert created is False
    assert get.calls[0]["params"]["head"] == "octocat:chore/bump"
    assert post.calls == []


def test_pr_api_errors_are_git_helper_errors(work_tree: Path, client, fake_api):
    get, _, _ = fake_api
    get.responses[PULLS] = FakeResponse({"message": "Server Error"}, status_code=500, url=PULLS)

    x = Execer(work_tree)
    _commit_on_branch(x, work_tree, "chore/bump", "Bump deps")

    with pytest.raises(GitHelperError) as ei:
        create_pr_if_not_exist(x, client, "acme/widgets", PROptions(title="t", body="b"))
    assert "server error with status 500" in str(ei.value)


def test_fork_and_add_remote(work_tree: Path, client, fake_api):
    get, post, _ = fake_api
    get.responses[f"{API}/user"] = FakeResponse({"login": "octocat"})
    post.responses[f"{API}/repos/acme/widgets/forks"] = FakeResponse(
        {
            "full_name": "octocat/widgets",
            "clone_url": "https://github.com/octocat/widgets.git",
            "ssh_url": "git@github.com:octocat/widgets.git",
            "fork": True,
        },
        status_code=202,
    )
    x = Execer(work_tree)

    head_for = fork_and_add_remote(x, client, "acme/widgets", "fork")

    assert head_for("chore/bump") == "octocat:chore/bump"
    assert git.Repo(str(work_tree)).remote("fork").url == "git@github.com:octocat/widgets.git"

    # Running it again repoints the existing remote.
    fork_and_add_remote(x, client, "acme/widgets", "fork", use_https=True)
    assert git.Repo(str(work_tree)).remote("fork").url == "https://github.com/octocat/widgets.git"


def test_fork_api_error_is_a_git_helper_error(work_tree: Path, client, fake_api):
    with pytest.raises(GitHelperError):
        fork_and_add_remote(Execer(work_tree), client, "acme/widgets", "fork")
    assert [r.name for r in git.Repo(str(work_tree)).remotes] == ["origin"]
