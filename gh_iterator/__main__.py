#!/usr/bin/env python3
"""Module entrypoint for `gh_iterator`.

Usage:
  - `python3 -m gh_iterator my-org --command 'git log -1 --oneline'`
"""

from __future__ import annotations

from .cli import _cli


if __name__ == "__main__":
    raise SystemExit(_cli())
