"""Environment-driven settings and logging setup shared by the entry points."""
from __future__ import annotations

import logging
import os
import sys
from typing import Optional

LOG_LEVEL_ENV = "OXSH_LOG_LEVEL"
PY_TRACE_ENV = "OXSH_DEBUG_PY_TRACE"
SUBSHELL_ENV = "OXSH_SUBSHELL"

DEFAULT_SUBSHELL = "/bin/sh"

_TRUTHY = ("1", "true", "yes", "on")


def env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in _TRUTHY


def debug_py_trace_enabled() -> bool:
    """Print Python tracebacks alongside shell errors."""
    return env_flag(PY_TRACE_ENV)


def set_debug_py_trace(enabled: bool) -> None:
    if enabled:
        os.environ[PY_TRACE_ENV] = "1"
    else:
        os.environ.pop(PY_TRACE_ENV, None)


def subshell_path() -> str:
    return os.environ.get(SUBSHELL_ENV) or DEFAULT_SUBSHELL


def log_level(default: str = "WARNING") -> int:
    name = os.environ.get(LOG_LEVEL_ENV, default).strip().upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.WARNING


def configure_logging(level: Optional[int] = None) -> None:
    """Send oxsh log records to stderr; level comes from OXSH_LOG_LEVEL."""
    logger = logging.getLogger("oxsh")
    logger.setLevel(level if level is not None else log_level())

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        logger.addHandler(handler)
