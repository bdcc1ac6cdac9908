# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Logging helpers: key=value fields attached to a logger, and CLI level names."""

from __future__ import annotations

import logging
from typing import Any, Dict, MutableMapping, Tuple, Union

LOG_LEVELS: Dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

AnyLogger = Union[logging.Logger, logging.LoggerAdapter]


class FieldsAdapter(logging.LoggerAdapter):
    """Appends `key=value` pairs to every message (e.g. `repository=org/repo`)."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        fields = self.extra or {}
        if not fields:
            return msg, kwargs
        suffix = " ".join(f"{k}={v}" for k, v in fields.items())
        return f"{msg} {suffix}", kwargs


def with_fields(logger: AnyLogger, **fields: Any) -> FieldsAdapter:
    """Return an adapter carrying fields; nesting merges fields (inner wins)."""
    if isinstance(logger, FieldsAdapter):
        merged = dict(logger.extra or {})
        merged.update(fields)
        return FieldsAdapter(logger.logger, merged)
    if isinstance(logger, logging.LoggerAdapter):
        logger = logger.logger
    return FieldsAdapter(logger, dict(fields))
