"""
Pytest tests for the on-disk listing cache (listing_cache.py).

Run from the repository root:
    pytest gh_iterator/test_listing_cache.py -v
"""

from __future__ import annotations

import json
from pathlib import Path

from gh_iterator.listing_cache import SCHEMA_VERSION, ListingCache
from gh_iterator.types import Repository


def _pages():
    return [
        [Repository(name="acme/a", default_branch="main", size=3, language="Go")],
        [Repository(name="acme/b", archived=True)],
    ]


def test_put_then_get_within_ttl(tmp_path: Path):
    cache = ListingCache(tmp_path / "org_repos.json")
    cache.put("k", _pages(), now=1000)

    pages = cache.get("k", ttl_s=60, now=1030)
    assert pages is not None
    assert [[r.name for r in p] for p in pages] == [["acme/a"], ["acme/b"]]
    assert pages[0][0].language == "Go"
    assert pages[1][0].archived is True


def test_expired_entry_is_a_miss(tmp_path: Path):
    cache = ListingCache(tmp_path / "org_repos.json")
    cache.put("k", _pages(), now=1000)

    assert cache.get("k", ttl_s=60, now=1061) is None
    assert cache.stats.miss == 1


def test_entries_survive_a_new_instance(tmp_path: Path):
    path = tmp_path / "org_repos.json"
    ListingCache(path).put("k", _pages(), now=1000)

    pages = ListingCache(path).get("k", ttl_s=60, now=1001)
    assert pages is not None and len(pages) == 2

    raw = json.loads(path.read_text())
    assert raw["version"] == SCHEMA_VERSION


def test_writers_merge_instead_of_overwriting(tmp_path: Path):
    path = tmp_path / "org_repos.json"
    a = ListingCache(path)
    b = ListingCache(path)
    a.get("nothing", ttl_s=1)  # load before b writes
    b.put("from-b", _pages(), now=1000)
    a.put("from-a", _pages(), now=1000)

    fresh = ListingCache(path)
    assert fresh.get("from-a", ttl_s=60, now=1001) is not None
    assert fresh.get("from-b", ttl_s=60, now=1001) is not None


def test_unreadable_or_old_files_are_ignored(tmp_path: Path):
    path = tmp_path / "org_repos.json"
    path.write_text("{not json")
    assert ListingCache(path).get("k", ttl_s=60) is None

    path.write_text(json.dumps({"version": SCHEMA_VERSION + 1, "items": {"k": {"ts": 0, "pages": []}}}))
    assert ListingCache(path).get("k", ttl_s=10**12) is None
