# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Configuration for gh-iterator: directories, GitHub endpoints and token lookup.

Environment overrides:
- GH_ITERATOR_CACHE_DIR: parent directory of per-run clone cache roots (default: system temp dir)
- GH_ITERATOR_LISTING_CACHE_DIR: listing response cache (default: ~/.cache/gh-iterator)
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

import yaml

_logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
GITHUB_API_VERSION = "2022-11-28"
DEFAULT_HTTP_TIMEOUT_S = 30


def clone_cache_base_dir() -> Path:
    """Return the directory under which per-run cache roots are created."""
    override = os.environ.get("GH_ITERATOR_CACHE_DIR")
    if override:
        return Path(override).expanduser()
    return Path(tempfile.gettempdir()).resolve()


def listing_cache_dir() -> Path:
    """Return the directory holding cached organization listings."""
    override = os.environ.get("GH_ITERATOR_LISTING_CACHE_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".cache" / "gh-iterator"


def github_token_from_file() -> Optional[str]:
    """Get a GitHub token from local config files (first match wins).

    - ~/.config/github-token   (single line token)
    - ~/.config/gh/hosts.yml   (GitHub CLI login; oauth_token)
    """
    try:
        token_file = Path.home() / ".config" / "github-token"
        if token_file.exists():
            tok = (token_file.read_text() or "").strip()
            if tok:
                return tok
    except OSError:
        pass
    return github_token_from_cli()


def github_token_from_cli() -> Optional[str]:
    """Read the GitHub CLI token from ~/.config/gh/hosts.yml, or None."""
    try:
        gh_config_path = Path.home() / ".config" / "gh" / "hosts.yml"
        if not gh_config_path.exists():
            return None
        with open(gh_config_path, "r") as f:
            config = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        _logger.debug("Failed to read GitHub CLI config: %s", e)
        return None

    if not isinstance(config, dict) or not isinstance(config.get("github.com"), dict):
        return None
    github_config = config["github.com"]
    if github_config.get("oauth_token"):
        return str(github_config["oauth_token"])
    for _user, user_config in (github_config.get("users") or {}).items():
        if isinstance(user_config, dict) and user_config.get("oauth_token"):
            return str(user_config["oauth_token"])
    return None


def resolve_github_token(token: Optional[str] = None) -> Optional[str]:
    """Explicit token > token file / gh CLI config > anonymous (None)."""
    return token or github_token_from_file()
