"""femtologging helpers shared by the dispatch core.

Most log calls come from the dispatch engine's event-loop thread, so
messages are interpolated before they reach femtologging; a record never
depends on arguments that may change after the call returns.

Example:
>>> from hooksync.logging import get_logger, log_info
>>> logger = get_logger(__name__)
>>> log_info(logger, "Delivered %s after %d attempt(s)", "evt-1", 1)

"""

from __future__ import annotations

import enum
import os
import typing as typ

from femtologging import basicConfig, get_logger

LOG_LEVEL_ENV = "HOOKSYNC_LOG_LEVEL"
DEFAULT_LOG_LEVEL = "INFO"


class LogLevel(enum.StrEnum):
    """Level names femtologging understands."""

    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def normalize_log_level(level: str | None) -> tuple[str, bool]:
    """Return ``(level, invalid)`` for a raw level name.

    Names are matched case-insensitively after trimming. Missing or unknown
    names resolve to ``DEFAULT_LOG_LEVEL`` with ``invalid`` set.
    """
    candidate = (level or "").strip().upper()
    if candidate in LogLevel.__members__:
        return (candidate, False)
    return (DEFAULT_LOG_LEVEL, True)


def configure_logging(level: str, *, force: bool = False) -> tuple[str, bool]:
    """Install femtologging's root configuration at ``level``.

    Parameters
    ----------
    level : str
        Raw level name; see :func:`normalize_log_level`.
    force : bool, optional
        Replace handlers installed by an earlier configuration.

    Returns
    -------
    tuple[str, bool]
        The level actually applied and whether the input was rejected.

    """
    applied, invalid = normalize_log_level(level)
    basicConfig(level=applied, force=force)
    return (applied, invalid)


def format_log_message(template: str, *args: object) -> str:
    """Interpolate ``args`` into a percent-style ``template``."""
    return template % args if args else template


class _SupportsLog(typ.Protocol):
    """Anything with femtologging's ``log`` signature."""

    def log(
        self,
        level: str,
        message: str,
        /,
        *,
        exc_info: object | None = None,
        stack_info: bool = False,
    ) -> str | None: ...


def _emit(
    logger: _SupportsLog,
    level: LogLevel,
    template: str,
    args: tuple[object, ...],
    exc_info: object | None,
) -> None:
    message = format_log_message(template, *args)
    logger.log(level.value, message, exc_info=exc_info, stack_info=False)


def log_debug(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Log at DEBUG."""
    _emit(logger, LogLevel.DEBUG, template, args, exc_info)


def log_info(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Log at INFO."""
    _emit(logger, LogLevel.INFO, template, args, exc_info)


def log_warning(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Log at WARNING; femtologging records it as ``WARN``."""
    _emit(logger, LogLevel.WARNING, template, args, exc_info)


def log_error(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Log at ERROR, attaching ``exc_info`` when the failure has a traceback.

    Parameters
    ----------
    logger : _SupportsLog
        Destination logger.
    template : str
        Percent-style message template.
    *args : object
        Values interpolated into ``template``.
    exc_info : object | None, optional
        Exception to attach to the record.

    """
    _emit(logger, LogLevel.ERROR, template, args, exc_info)


def configure_from_env(logger: _SupportsLog | None = None) -> str | None:
    """Apply ``HOOKSYNC_LOG_LEVEL`` when it is set.

    Returns the applied level, or ``None`` when the variable is unset and
    logging was left alone. An unusable value falls back to
    ``DEFAULT_LOG_LEVEL`` and is reported through ``logger`` when given.
    """
    raw_level = os.environ.get(LOG_LEVEL_ENV)
    if raw_level is None:
        return None
    applied, invalid = configure_logging(raw_level)
    if invalid and logger is not None:
        log_warning(
            logger,
            "Invalid %s %r, falling back to %s",
            LOG_LEVEL_ENV,
            raw_level,
            applied,
        )
    return applied


__all__ = [
    "DEFAULT_LOG_LEVEL",
    "LOG_LEVEL_ENV",
    "LogLevel",
    "configure_from_env",
    "configure_logging",
    "format_log_message",
    "get_logger",
    "log_debug",
    "log_error",
    "log_info",
    "log_warning",
    "normalize_log_level",
]
