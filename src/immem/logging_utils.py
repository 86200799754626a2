from __future__ import annotations

import sys
from copy import copy, deepcopy
from typing import Any
from urllib.parse import unquote

from uvicorn.config import LOGGING_CONFIG
from uvicorn.logging import AccessFormatter as UvicornAccessFormatter

ACCESS_FORMATTER_PATH = "immem.logging_utils.LemmaPathAccessFormatter"

_DEBUG_LOG = False


def set_debug_logging(enabled: bool) -> None:
    global _DEBUG_LOG
    _DEBUG_LOG = enabled


def debug_enabled() -> bool:
    return _DEBUG_LOG


def debug_log(scope: str, message: str) -> None:
    if _DEBUG_LOG:
        print(f"[immem {scope} debug] {message}", file=sys.stderr)


def readable_request_path(target: object) -> object:
    """Percent-decode the path of a request target; the query string is left as sent."""
    if not isinstance(target, str):
        return target
    path, sep, query = target.partition("?")
    return unquote(path, encoding="utf-8", errors="replace") + sep + query


class LemmaPathAccessFormatter(UvicornAccessFormatter):
    """Access lines show ``GET /api/vocab/猫`` instead of the percent-encoded lemma."""

    def formatMessage(self, record):  # type: ignore[override]
        args = record.args
        if not isinstance(args, tuple) or len(args) != 5:
            return super().formatMessage(record)
        readable = copy(record)
        readable.args = args[:2] + (readable_request_path(args[2]),) + args[3:]
        return super().formatMessage(readable)


def build_uvicorn_log_config(*, debug: bool = False) -> dict[str, Any]:
    """Logging config for ``immem web``; ``debug`` lowers every uvicorn logger to DEBUG."""
    config = deepcopy(LOGGING_CONFIG)
    config["formatters"]["access"]["()"] = ACCESS_FORMATTER_PATH
    if debug:
        for logger in config["loggers"].values():
            logger["level"] = "DEBUG"
    return config
