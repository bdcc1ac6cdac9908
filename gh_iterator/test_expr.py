"""
Pytest tests for CEL repository predicates (expr.py).

Run from the repository root:
    pytest gh_iterator/test_expr.py -v
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from gh_iterator.exceptions import FilterExpressionError, ValidationError
from gh_iterator.expr import UNSET_PUSHED_AT, compile_expression, repository_fields
from gh_iterator.filters import compile_filters
from gh_iterator.types import Repository, SearchOptions


def _repo(**kwargs) -> Repository:
    base = dict(name="acme/svc-api", language="Go", visibility="private", size=12)
    base.update(kwargs)
    return Repository(**base)


def test_boolean_fields():
    pred = compile_expression("!repo.archived && !repo.fork")

    assert pred(_repo()) is True
    assert pred(_repo(archived=True)) is False
    assert pred(_repo(fork=True)) is False


def test_string_fields():
    pred = compile_expression('repo.language == "Go" && repo.name.startsWith("acme/svc-")')

    assert pred(_repo()) is True
    assert pred(_repo(language="Rust")) is False
    assert pred(_repo(name="acme/lib-core")) is False


def test_is_empty_field():
    pred = compile_expression("repo.isEmpty")

    assert pred(_repo(size=0)) is True
    assert pred(_repo(size=1)) is False


def test_parse_error_is_a_validation_error():
    with pytest.raises(FilterExpressionError) as ei:
        compile_expression("repo.language ==")
    assert isinstance(ei.value, ValidationError)


def test_non_boolean_result_counts_as_false():
    pred = compile_expression("repo.name")
    assert pred(_repo()) is False


def test_compiled_expression_plugs_into_the_filter_chain():
    chain = compile_filters(SearchOptions(filter_in=compile_expression('repo.visibility == "private"')))

    # An expression replaces the default filters, so archived repositories are not left out.
    assert chain(_repo(archived=True)) is True
    assert chain(_repo(visibility="public")) is False


def test_repository_fields():
    fields = repository_fields(_repo(size=0))
    assert fields["isEmpty"] is True
    assert fields["name"] == "acme/svc-api"
    assert fields["pushedAt"] == UNSET_PUSHED_AT


def test_pushed_at_is_a_timestamp():
    pred = compile_expression('repo.pushedAt > timestamp("2024-01-01T00:00:00Z")')

    assert pred(_repo(pushed_at=datetime(2024, 5, 1, 12, tzinfo=timezone.utc))) is True
    assert pred(_repo(pushed_at=datetime(2023, 5, 1, 12, tzinfo=timezone.utc))) is False


def test_unset_pushed_at_is_the_epoch():
    """Never-pushed repositories still expose pushedAt, so comparisons do not error out."""
    assert compile_expression('repo.pushedAt == timestamp("1970-01-01T00:00:00Z")')(_repo()) is True
    assert compile_expression('repo.pushedAt < timestamp("2024-01-01T00:00:00Z")')(_repo()) is True
