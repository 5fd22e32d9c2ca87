"""Structured logging helpers backed by logfire."""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Any, Literal, Protocol

import logfire

LogLevel = Literal["debug", "info", "warning", "error"]


class StructuredLogger(Protocol):
    """Protocol for loggers supporting logfire-style structured methods."""

    def debug(self, message: str, /, *args: Any, **kwargs: Any) -> Any: ...

    def info(self, message: str, /, *args: Any, **kwargs: Any) -> Any: ...

    def warning(self, message: str, /, *args: Any, **kwargs: Any) -> Any: ...

    def error(self, message: str, /, *args: Any, **kwargs: Any) -> Any: ...


def get_structured_logger(preferred: StructuredLogger | None = None) -> StructuredLogger:
    """Return the injected logger, defaulting to the logfire module."""

    if preferred is not None:
        return preferred
    return logfire  # type: ignore[return-value]


def log_structured(
    logger: StructuredLogger,
    level: LogLevel,
    message: str,
    **data: Any,
) -> None:
    """Invoke ``logger.<level>`` passing structured kwargs when supported.

    Loggers that reject keyword arguments get the payload appended to the
    message as ``key=value`` pairs instead.
    """

    method = getattr(logger, level)
    try:
        method(message, **data)
    except TypeError:
        if data:
            formatted = ", ".join(f"{key}={value!r}" for key, value in data.items())
            message = f"{message} | {formatted}"
        method(message)


def evaluation_span(name: str, **attributes: Any) -> AbstractContextManager[Any]:
    """Open a logfire span around one bridge operation."""

    return logfire.span(name, **attributes)


__all__ = [
    "LogLevel",
    "StructuredLogger",
    "evaluation_span",
    "get_structured_logger",
    "log_structured",
]
