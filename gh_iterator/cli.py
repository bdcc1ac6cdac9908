# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
CLI for gh-iterator: filter an organization's repositories and run a shell command in each.

We keep CLI glue in its own module so the library (`iterator.py`) stays importable
without argparse/signal side effects.
"""

from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
from typing import Optional, Sequence

from .cancel import CancelToken
from .exceptions import CancellationError, IteratorError
from .execer import Execer
from .expr import compile_expression
from .iterator import run_for_organization
from .log import LOG_LEVELS
from .types import (
    ALL_PAGES,
    ArchiveCondition,
    Options,
    SearchOptions,
    SizeCondition,
    Source,
    Visibility,
)

logger = logging.getLogger(__name__)

REPOSITORY_PLACEHOLDER = "{repository}"


def render_command(command: str, repository: str) -> str:
    return command.replace(REPOSITORY_PLACEHOLDER, repository)


def parse_page(value: str) -> int:
    """'all' -> ALL_PAGES, otherwise a page number."""
    if value.strip().lower() == "all":
        return ALL_PAGES
    try:
        return int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid page {value!r}: expected 'all' or a number")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gh-iterator",
        description="Iterate over GitHub organization repositories, filter them and run a command in each.",
        epilog="Examples:\n"
               "  %(prog)s my-org --language Go --command 'git log -1 --oneline'\n"
               "  %(prog)s my-org --search-filter 'repo.name.startsWith(\"svc-\") && !repo.archived'\n"
               "  %(prog)s my-org --cloning-subset go.mod --command 'grep ^go go.mod'",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("org", help="GitHub organization name")
    parser.add_argument(
        "-s", "--search-filter",
        default="",
        help="CEL condition over `repo` (name, archived, language, visibility, fork, isEmpty, pushedAt). "
             "By default archived, forked and empty repositories are left out.",
    )
    parser.add_argument(
        "-c", "--command",
        default="",
        help=f"Shell command to run in each repository; {REPOSITORY_PLACEHOLDER} is replaced by its name.",
    )
    parser.add_argument("--language", action="append", default=[], help="Keep repositories in this language (repeatable)")
    parser.add_argument("--archived", choices=[c.value for c in ArchiveCondition], default=ArchiveCondition.INCLUDE.value)
    parser.add_argument("--source", choices=[s.value for s in Source], default=Source.ALL.value)
    parser.add_argument("--visibility", choices=[v.value for v in Visibility if v.value], default="")
    parser.add_argument("--size", choices=[s.value for s in SizeCondition], default=SizeCondition.ALL.value)
    parser.add_argument("--page", type=parse_page, default=ALL_PAGES, help="Page number to fetch, or 'all' (default: all)")
    parser.add_argument("--per-page", type=int, default=100, help="Repositories per page (default: 100)")
    parser.add_argument(
        "--cloning-subset",
        action="append",
        default=[],
        help="Path to check out instead of the whole repository (repeatable)",
    )
    parser.add_argument("--workers", type=int, default=0, help="Number of concurrent workers (default: 10)")
    parser.add_argument("--https", action="store_true", help="Clone over HTTPS instead of SSH")
    parser.add_argument("--cache-ttl", type=int, default=0, help="Cache the organization listing for N seconds")
    parser.add_argument("--log-level", choices=list(LOG_LEVELS), default="info", type=str.lower)
    return parser


def search_options_from_args(args: argparse.Namespace) -> SearchOptions:
    search_options = SearchOptions(
        languages=list(args.language or []),
        archive_condition=ArchiveCondition(args.archived),
        source=Source(args.source),
        visibility=Visibility(args.visibility or ""),
        size_condition=SizeCondition(args.size),
        per_page=int(args.per_page),
        page=int(args.page),
        cache_ttl_s=int(args.cache_ttl) or None,
    )
    if args.search_filter:
        search_options.filter_in = compile_expression(args.search_filter)
    return search_options


def make_processor(command: str):
    """Processor running `command` through $SHELL in each repository's working directory."""
    shell = os.environ.get("SHELL") or "/bin/sh"

    def processor(token: CancelToken, repository: str, is_empty: bool, execer: Execer) -> None:
        if not command:
            return
        if is_empty:
            logger.info("Skipping command for empty repository %s", repository)
            return
        res = execer.run(shell, "-c", render_command(command, repository))
        sys.stdout.write(res.stdout)
        if res.exit_code != 0:
            sys.stderr.write(res.stderr)
            raise IteratorError(f"command exited with code {res.exit_code}")

    return processor


def _cli(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    logging.basicConfig(level=LOG_LEVELS[args.log_level], format="[%(levelname)s] %(message)s")

    token = CancelToken()
    signal.signal(signal.SIGINT, lambda _signum, _frame: token.cancel(KeyboardInterrupt("interrupted")))

    try:
        search_options = search_options_from_args(args)
        result = run_for_organization(
            args.org,
            search_options,
            make_processor(args.command),
            Options(
                use_https=bool(args.https),
                cloning_subset=list(args.cloning_subset or []),
                number_of_workers=int(args.workers),
            ),
            token=token,
        )
    except CancellationError as e:
        logger.error("%s", e)
        return 130
    except IteratorError as e:
        logger.error("%s", e)
        return 1

    print(f"Processed {result.processed} repositories")
    print(f"Inspected {result.inspected} repositories")
    return 0
