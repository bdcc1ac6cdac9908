# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Git helpers for processors, using the GitPython API on the execer's working directory.

Example (inside a processor):
    def processor(token, repository, is_empty, execer):
        if is_empty:
            return
        checkout_new_branch(execer, "chore/update-license")
        ...
        if has_changes(execer):
            add_files(execer, "LICENSE")
            commit(execer, "Update license")
            push(execer, "chore/update-license", force=True)
            url, created = create_pr_if_not_exist(execer, client, repository, PROptions(draft=True))

The pull request and fork helpers talk to the GitHub API through a GitHubClient.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Tuple

import git  # GitPython

from .exceptions import GitHelperError, IteratorError
from .execer import Execer
from .github import GitHubClient

# Pull request bodies are cut to this many characters.
PR_BODY_MAX_LEN = 5000


@contextmanager
def _git_errors(action: str) -> Iterator[None]:
    try:
        yield
    except git.exc.GitCommandError as e:
        stderr = (e.stderr or "").strip()
        raise GitHelperError(f"{action}: {stderr or e}") from e


def _repo(execer: Execer) -> git.Repo:
    try:
        return git.Repo(str(execer.dir))
    except (git.exc.InvalidGitRepositoryError, git.exc.NoSuchPathError) as e:
        raise GitHelperError(f"not a git repository: {execer.dir}") from e


def current_branch(execer: Execer) -> str:
    """Current branch name ("HEAD" when detached)."""
    with _git_errors("getting current branch"):
        return _repo(execer).git.rev_parse("--abbrev-ref", "HEAD").strip()


def checkout_new_branch(execer: Execer, name: str) -> None:
    with _git_errors("creating branch"):
        _repo(execer).git.checkout("-b", name)


def add_files(execer: Execer, *paths: str) -> None:
    """Stage paths; stops at the first failing path."""
    repo = _repo(execer)
    for path in paths:
        with _git_errors(f"adding {path}"):
            repo.git.add(path)


def has_changes(execer: Execer) -> bool:
    """True when the working tree has staged, unstaged or untracked changes."""
    with _git_errors("checking changes"):
        return _repo(execer).is_dirty(untracked_files=True)


def list_changes(execer: Execer) -> List[Tuple[str, str]]:
    """(status, path) pairs from `git status --porcelain`, e.g. ("M", "README.md")."""
    with _git_errors("listing changes"):
        out = _repo(execer).git.status("--porcelain")
    changes: List[Tuple[str, str]] = []
    for line in out.splitlines():
        if len(line) > 3:
            changes.append((line[:2].strip(), line[3:]))
    return changes


def commit(execer: Execer, message: str, *flags: str) -> None:
    with _git_errors("committing changes"):
        _repo(execer).git.commit("-m", message, *flags)


def push(execer: Execer, branch_name: str, *, force: bool = False) -> None:
    push_to_remote(execer, "origin", branch_name, force=force)


def push_to_remote(execer: Execer, remote_name: str, branch_name: str, *, force: bool = False) -> None:
    args: List[str] = []
    if force:
        args.append("--force")
    if branch_name:
        args.extend([remote_name, branch_name])
    with _git_errors("pushing changes"):
        _repo(execer).git.push(*args)


@dataclass
class PROptions:
    """What to open (or update) a pull request with.

    Empty title/body are filled from the last commit. head defaults to the current
    branch; use "user:branch" for a branch pushed to a fork (see fork_and_add_remote).
    base defaults to the repository's default branch.
    """

    title: str = ""
    body: str = ""
    draft: bool = False
    head: str = ""
    base: str = ""


def _last_commit_message(execer: Execer) -> Tuple[str, str]:
    """(summary, rest of the message) of HEAD."""
    try:
        message = str(_repo(execer).head.commit.message)
    except ValueError as e:
        # No commits yet.
        raise GitHelperError(f"reading last commit: {e}") from e
    summary, _, rest = message.strip().partition("\n")
    return summary.strip(), rest.strip()


def create_pr_if_not_exist(
    execer: Execer,
    client: GitHubClient,
    repository_name: str,
    opts: Optional[PROptions] = None,
) -> Tuple[str, bool]:
    """Open a pull request for the branch, or update the open one.

    Returns (url, created). An existing open PR gets the new title and body, and its
    draft state is switched to match opts.draft. Closed or merged PRs do not count.
    """
    opts = opts or PROptions()
    head = opts.head or current_branch(execer)
    if head == "HEAD":
        raise GitHelperError("creating pull request: HEAD is detached")
    owner = repository_name.split("/", 1)[0]
    head_ref = head if ":" in head else f"{owner}:{head}"

    title, body = opts.title, opts.body
    if not title or not body:
        summary, rest = _last_commit_message(execer)
        title = title or summary
        body = body or rest
    body = body[:PR_BODY_MAX_LEN]

    log = execer.logger
    try:
        existing = client.find_open_pull_request(repository_name, head_ref)
        if existing is None:
            base = opts.base or client.get_repository(repository_name).default_branch
            log.info("Creating PR")
            pr = client.create_pull_request(
                repository_name, title=title, body=body, head=head, base=base, draft=opts.draft
            )
            return str(pr["html_url"]), True

        url = str(existing["html_url"])
        log.debug("PR already exists: %s", url)
        client.update_pull_request(repository_name, existing["number"], title=title, body=body)
        if bool(existing.get("draft")) != opts.draft:
            log.info("Marking PR as draft" if opts.draft else "Marking PR as ready for review")
            client.set_pull_request_draft(existing["node_id"], opts.draft)
        return url, False
    except (IteratorError, KeyError) as e:
        raise GitHelperError(f"creating pull request: {e}") from e


def fork_and_add_remote(
    execer: Execer,
    client: GitHubClient,
    repository_name: str,
    remote_name: str,
    *,
    use_https: bool = False,
) -> Callable[[str], str]:
    """Fork the repository into the token's account and point remote_name at the fork.

    Returns a function turning a branch name into the PR head for the fork
    ("user:branch"). An existing remote with that name is repointed.
    """
    try:
        username = client.get_user_login()
        fork = client.fork_repository(repository_name)
    except IteratorError as e:
        raise GitHelperError(f"forking repository: {e}") from e

    url = fork.url if use_https else fork.ssh_url
    repo = _repo(execer)
    with _git_errors("adding fork remote"):
        if remote_name in [r.name for r in repo.remotes]:
            repo.remote(remote_name).set_url(url)
        else:
            repo.create_remote(remote_name, url)
    execer.logger.debug("Remote %s now points at %s", remote_name, url)

    return lambda branch_name: f"{username}:{branch_name}"
