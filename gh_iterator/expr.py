# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
CEL (Common Expression Language) repository predicates.

The expression sees one variable, `repo`, a map with:
    name, archived, language, visibility, fork, isEmpty, pushedAt

`pushedAt` is a timestamp; repositories never pushed to get 1970-01-01T00:00:00Z.

Examples:
    repo.language == "Go" && !repo.archived
    repo.name.startsWith("gh-") && !repo.isEmpty
    repo.pushedAt > timestamp("2024-01-01T00:00:00Z")
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict

import celpy
from celpy import celtypes

from .exceptions import FilterExpressionError
from .types import Repository

_logger = logging.getLogger(__name__)

# Stands in for a repository that was never pushed to, so `repo.pushedAt` always exists.
UNSET_PUSHED_AT = datetime(1970, 1, 1, tzinfo=timezone.utc)


def repository_fields(repository: Repository) -> Dict[str, Any]:
    """The field map an expression is evaluated against (pushedAt defaults to the epoch)."""
    return {
        "name": repository.name,
        "archived": repository.archived,
        "language": repository.language,
        "visibility": repository.visibility,
        "fork": repository.fork,
        "isEmpty": repository.size == 0,
        "pushedAt": repository.pushed_at or UNSET_PUSHED_AT,
    }


def _activation(repository: Repository) -> Dict[str, Any]:
    return {"repo": celpy.json_to_cel(repository_fields(repository))}


def compile_expression(source: str) -> Callable[[Repository], bool]:
    """Compile a CEL expression once into a reusable repository predicate.

    Compilation errors raise FilterExpressionError. Evaluation errors and non-boolean
    results are logged and count as False.
    """
    env = celpy.Environment()
    try:
        ast = env.compile(source)
        program = env.program(ast)
    except celpy.CELParseError as e:
        raise FilterExpressionError(f"invalid filter expression {source!r}: {e}") from e

    def predicate(repository: Repository) -> bool:
        try:
            out = program.evaluate(_activation(repository))
        except Exception as e:
            _logger.error("Failed to evaluate CEL expression for %s: %s", repository.name, e)
            return False
        if not isinstance(out, celtypes.BoolType):
            _logger.error(
                "CEL expression for %s returned %s instead of a boolean",
                repository.name,
                type(out).__name__,
            )
            return False
        return bool(out)

    return predicate
