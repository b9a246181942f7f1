from __future__ import annotations

from copy import deepcopy
from typing import Any

from uvicorn.config import LOGGING_CONFIG

_DEBUG_LOG = False


def set_debug_logging(enabled: bool) -> None:
    global _DEBUG_LOG
    _DEBUG_LOG = enabled


def debug_log(message: str) -> None:
    if _DEBUG_LOG:
        print(f"[vibedict debug] {message}")


def build_uvicorn_log_config(debug: bool = False) -> dict[str, Any]:
    """Return a uvicorn logging config; access logs are only kept in debug mode."""
    config = deepcopy(LOGGING_CONFIG)
    loggers = config.setdefault("loggers", {})
    level = "DEBUG" if debug else "INFO"
    for name in ("uvicorn", "uvicorn.error"):
        entry = loggers.get(name)
        if isinstance(entry, dict):
            entry["level"] = level
    access = loggers.get("uvicorn.access")
    if isinstance(access, dict):
        access["level"] = "INFO" if debug else "WARNING"
    formatters = config.get("formatters", {})
    default = formatters.get("default")
    if isinstance(default, dict):
        default["fmt"] = "%(levelprefix)s [vibedict] %(message)s"
    return config
