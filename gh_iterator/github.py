# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""GitHub REST client: organization listings plus the pull request and fork calls
used by the git helpers.

Example:
    client = GitHubClient()
    pages = client.list_org_repository_pages("my-org", SearchOptions(page=ALL_PAGES))
    repo = client.get_repository("my-org/my-repo")
    pr = client.find_open_pull_request("my-org/my-repo", "my-org:chore/bump")

Pagination follows the `Link: <...>; rel="next"` response header. Listings can be cached
on disk for `SearchOptions.cache_ttl_s` seconds (see listing_cache.py).
"""

from __future__ import annotations

import logging
import urllib.parse
from typing import Any, Dict, List, Optional, Protocol, Tuple, Type

import requests

from .config import (
    DEFAULT_HTTP_TIMEOUT_S,
    GITHUB_API_URL,
    GITHUB_API_VERSION,
    listing_cache_dir,
    resolve_github_token,
)
from .exceptions import GitHubAPIError, ListingError, ValidationError
from .listing_cache import ListingCache
from .types import ALL_PAGES, DEFAULT_PER_PAGE, FIRST_PAGE, MAX_PER_PAGE, Repository, SearchOptions


class RepositoryLister(Protocol):
    """What the entry points need from a repository source."""

    def list_org_repository_pages(self, org: str, search_options: SearchOptions) -> List[List[Repository]]:
        ...

    def get_repository(self, full_name: str) -> Repository:
        ...


def org_repos_params(search_options: SearchOptions) -> Tuple[Dict[str, Any], bool]:
    """Validate pagination options; return (query params, paginate through all pages)."""
    per_page = int(search_options.per_page or 0)
    if per_page < 0:
        raise ValidationError("invalid negative SearchOptions.per_page")
    if per_page == 0 or per_page > MAX_PER_PAGE:
        per_page = DEFAULT_PER_PAGE

    params: Dict[str, Any] = {"per_page": per_page}
    page = int(search_options.page)
    if page == ALL_PAGES:
        return params, True
    if page > 0:
        params["page"] = page
    elif page != FIRST_PAGE:
        raise ValidationError("invalid negative SearchOptions.page")
    return params, False


def _api_error_message(resp: requests.Response) -> str:
    """Prefer the API's own `message`; fall back to the HTTP status."""
    try:
        data = resp.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and data.get("message"):
        return f"{str(data['message']).lower()} with status {resp.status_code}"
    return f"HTTP {resp.status_code} for {resp.url}"


class GitHubClient:
    """Minimal GitHub REST client for listings, pull requests and forks (see module docstring)."""

    def __init__(
        self,
        token: Optional[str] = None,
        *,
        api_url: Optional[str] = None,
        timeout: int = DEFAULT_HTTP_TIMEOUT_S,
        listing_cache: Optional[ListingCache] = None,
    ):
        self.token = resolve_github_token(token)
        self.base_url = (api_url or GITHUB_API_URL).rstrip("/")
        self.timeout = timeout
        self.headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }
        if self.token:
            self.headers["Authorization"] = f"token {self.token}"
        self.logger = logging.getLogger(self.__class__.__name__)
        self._listing_cache = listing_cache

    @property
    def listing_cache(self) -> ListingCache:
        if self._listing_cache is None:
            self._listing_cache = ListingCache(listing_cache_dir() / "org_repos.json")
        return self._listing_cache

    def _get(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        error_cls: Type[GitHubAPIError] = ListingError,
    ) -> requests.Response:
        self.logger.debug("GH REST GET %s params=%s", url, params)
        try:
            resp = requests.get(url, headers=self.headers, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise error_cls(f"GET {url}: {e}", endpoint=url) from e
        if resp.status_code >= 400:
            raise error_cls(_api_error_message(resp), status_code=resp.status_code, endpoint=url)
        return resp

    def _send(self, method: str, url: str, payload: Dict[str, Any]) -> Any:
        """POST/PATCH a JSON payload and return the decoded response body."""
        self.logger.debug("GH REST %s %s", method, url)
        send = requests.post if method == "POST" else requests.patch
        try:
            resp = send(url, headers=self.headers, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise GitHubAPIError(f"{method} {url}: {e}", endpoint=url) from e
        if resp.status_code >= 400:
            raise GitHubAPIError(_api_error_message(resp), status_code=resp.status_code, endpoint=url)
        return self._decode(resp, url, GitHubAPIError)

    @staticmethod
    def _decode(resp: requests.Response, url: str, error_cls: Type[GitHubAPIError] = ListingError) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            raise error_cls(f"decoding response from {url}: {e}", endpoint=url) from e

    def _decode_page(self, resp: requests.Response, url: str) -> List[Repository]:
        data = self._decode(resp, url)
        if not isinstance(data, list):
            raise ListingError(f"unexpected response from {url}: expected a list", endpoint=url)
        try:
            return [Repository.from_api(item) for item in data]
        except (AttributeError, TypeError, ValueError) as e:
            raise ListingError(f"decoding repositories from {url}: {e}", endpoint=url) from e

    def list_org_repository_pages(self, org: str, search_options: SearchOptions) -> List[List[Repository]]:
        """Fetch the organization's repositories as a list of pages (in API order)."""
        params, paginate = org_repos_params(search_options)
        url = f"{self.base_url}/orgs/{urllib.parse.quote(org)}/repos"

        ttl_s = int(search_options.cache_ttl_s or 0)
        cache_key = f"{url}?{urllib.parse.urlencode(sorted(params.items()))}&paginate={int(paginate)}"
        if ttl_s > 0:
            cached = self.listing_cache.get(cache_key, ttl_s=ttl_s)
            if cached is not None:
                self.logger.debug("Using cached listing for %s", org)
                return cached

        pages: List[List[Repository]] = []
        next_url: Optional[str] = url
        next_params: Optional[Dict[str, Any]] = params
        while next_url:
            resp = self._get(next_url, next_params)
            page = self._decode_page(resp, next_url)
            if not page:
                break
            pages.append(page)
            if not paginate:
                break
            # The next link already carries the query string.
            next_url = (resp.links or {}).get("next", {}).get("url")
            next_params = None

        self.logger.debug("Listed %d repositories in %d pages for %s", sum(len(p) for p in pages), len(pages), org)
        if ttl_s > 0:
            self.listing_cache.put(cache_key, pages)
        return pages

    def get_repository(self, full_name: str) -> Repository:
        url = f"{self.base_url}/repos/{full_name}"
        data = self._decode(self._get(url), url)
        if not isinstance(data, dict):
            raise ListingError(f"unexpected response from {url}: expected an object", endpoint=url)
        return Repository.from_api(data)

    # ------------------------------------------------------------------
    # Users, pull requests and forks
    # ------------------------------------------------------------------

    @property
    def graphql_url(self) -> str:
        # https://api.github.com -> /graphql; GHES https://host/api/v3 -> https://host/api/graphql
        if self.base_url.endswith("/v3"):
            return self.base_url[: -len("/v3")] + "/graphql"
        return self.base_url + "/graphql"

    def get_user_login(self) -> str:
        """Login of the user the token belongs to."""
        url = f"{self.base_url}/user"
        data = self._decode(self._get(url, error_cls=GitHubAPIError), url, GitHubAPIError)
        if not isinstance(data, dict) or not data.get("login"):
            raise GitHubAPIError(f"unexpected response from {url}: no login", endpoint=url)
        return str(data["login"])

    def find_open_pull_request(self, full_name: str, head: str) -> Optional[Dict[str, Any]]:
        """The open PR for head ("owner:branch"), or None. Closed and merged PRs are ignored."""
        url = f"{self.base_url}/repos/{full_name}/pulls"
        resp = self._get(url, {"head": head, "state": "open"}, error_cls=GitHubAPIError)
        data = self._decode(resp, url, GitHubAPIError)
        if not isinstance(data, list):
            raise GitHubAPIError(f"unexpected response from {url}: expected a list", endpoint=url)
        return data[0] if data else None

    def create_pull_request(
        self, full_name: str, *, title: str, body: str, head: str, base: str, draft: bool = False
    ) -> Dict[str, Any]:
        url = f"{self.base_url}/repos/{full_name}/pulls"
        payload = {"title": title, "body": body, "head": head, "base": base, "draft": draft}
        return self._send("POST", url, payload)

    def update_pull_request(
        self, full_name: str, number: int, *, title: Optional[str] = None, body: Optional[str] = None
    ) -> Dict[str, Any]:
        url = f"{self.base_url}/repos/{full_name}/pulls/{int(number)}"
        payload: Dict[str, Any] = {}
        if title is not None:
            payload["title"] = title
        if body is not None:
            payload["body"] = body
        return self._send("PATCH", url, payload)

    def set_pull_request_draft(self, node_id: str, draft: bool) -> None:
        """Convert a PR to draft or mark it ready for review (REST has no endpoint for this)."""
        mutation = "convertPullRequestToDraft" if draft else "markPullRequestReadyForReview"
        query = f"mutation($id: ID!) {{ {mutation}(input: {{pullRequestId: $id}}) {{ clientMutationId }} }}"
        data = self._send("POST", self.graphql_url, {"query": query, "variables": {"id": node_id}})
        if isinstance(data, dict) and data.get("errors"):
            messages = "; ".join(str(err.get("message", err)) for err in data["errors"])
            raise GitHubAPIError(f"{mutation}: {messages}", endpoint=self.graphql_url)

    def fork_repository(self, full_name: str) -> Repository:
        """Fork into the token's account; an existing fork is returned as is."""
        url = f"{self.base_url}/repos/{full_name}/forks"
        data = self._send("POST", url, {})
        if not isinstance(data, dict):
            raise GitHubAPIError(f"unexpected response from {url}: expected an object", endpoint=url)
        return Repository.from_api(data)
