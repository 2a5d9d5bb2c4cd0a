from __future__ import annotations

import os
import sys
from threading import RLock
from typing import Any

from loguru import logger as _default_logger

_LEVELS = {"warning": "WARNING", "info": "INFO", "debug": "DEBUG"}
_DEFAULT_MODE = "warning"
_LOG_MODE_ENV = "PROPORTION_CURVES_LOG_MODE"
_LOG_DOMAIN = "proportion_curves"
_MODULE_NAME = "Proportion-Curves"

_CURRENT_MODE = _DEFAULT_MODE
_SINK_ID: int | None = None
_INITIALIZED = False
_LOCK = RLock()


def _normalize_mode(mode: str) -> str:
    normalized = mode.strip().lower()
    if normalized not in _LEVELS:
        raise ValueError(
            f"Invalid log mode '{mode}'. Expected one of: {', '.join(sorted(_LEVELS))}"
        )
    return normalized


def _mode_from_env() -> str:
    try:
        return _normalize_mode(os.getenv(_LOG_MODE_ENV, _DEFAULT_MODE))
    except ValueError:
        return _DEFAULT_MODE


def _custom_format(record: dict[str, Any]) -> str:
    extra = record["extra"]
    action = extra.get("action")
    module = extra.get("module", _MODULE_NAME)
    head = f"<green>{record['time']:MM-DD HH:mm:ss.SSS}</green> <cyan>{module}</cyan>"
    if action:
        head += f" <magenta>{action}</magenta>"
    level = f"[<level>{record['level']}</level>] " if _CURRENT_MODE == "debug" else ""
    return f"{head} - {level}<level>{{message}}</level>\n"


def _stream_filter(record: dict[str, Any]) -> bool:
    return record.get("extra", {}).get("_log_domain") == _LOG_DOMAIN


def _configure_default_logger(mode: str) -> None:
    normalized = _normalize_mode(mode)

    global _SINK_ID, _CURRENT_MODE, _INITIALIZED
    with _LOCK:
        if _SINK_ID is not None and _CURRENT_MODE == normalized:
            return

        # loguru's implicit handler 0 and our previous sink both go away.
        stale = [] if _INITIALIZED else [0]
        if _SINK_ID is not None:
            stale.append(_SINK_ID)
        for handler_id in stale:
            try:
                _default_logger.remove(handler_id)
            except ValueError:
                pass
        _INITIALIZED = True

        _SINK_ID = _default_logger.add(
            sys.stderr,
            format=_custom_format,
            colorize=False,
            level=_LEVELS[normalized],
            filter=_stream_filter,
        )
        _CURRENT_MODE = normalized


def set_log_mode(mode: str) -> None:
    """Switch the package's stderr sink to ``warning``, ``info`` or ``debug``."""

    _configure_default_logger(mode)


def get_log_mode() -> str:
    return _CURRENT_MODE


def get_logger(
    logger: Any | None = None,
    *,
    mode: str | None = None,
    **bind_kwargs: Any,
):
    """Bind ``module``, the package log domain and ``bind_kwargs`` onto a logger.

    Without an explicit ``logger`` the package sink is installed on first
    use, with the level taken from ``PROPORTION_CURVES_LOG_MODE``. A
    caller-supplied logger is bound but never reconfigured.
    """

    if logger is None:
        if mode is not None:
            _configure_default_logger(mode)
        elif not _INITIALIZED:
            _configure_default_logger(_mode_from_env())
        logger = _default_logger

    bind_kwargs.setdefault("module", _MODULE_NAME)
    bind_kwargs.setdefault("_log_domain", _LOG_DOMAIN)
    return logger.bind(**bind_kwargs)
