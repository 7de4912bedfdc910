"""
Structured logging with key=value and JSON output support.

Thin wrapper over the standard library ``logging`` module. Every call takes
an event-style message (``overlay_polled``, ``login_failed``) plus keyword
fields, rendered either as ``key=value`` pairs or as a single JSON object.

``StructuredFormatter`` is installed on the root handler by the CLI so that
records from [Logger][myceliumchat.core.logger.Logger] and from plain
``logging.getLogger()`` calls in the models layer share one format.

Examples:
    ```python
    from myceliumchat.core.logger import Logger

    logger = Logger("session")
    logger.info("login_succeeded", user_id="@alice:matrix.org", mode="enhanced")
    # Output: info session login_succeeded user_id=@alice:matrix.org mode=enhanced

    room_logger = logger.bind(room_id="!abc:matrix.org")
    room_logger.debug("timeline_loaded", count=12)
    ```
"""

from __future__ import annotations

import datetime
import json
import logging
from typing import Any, ClassVar


def format_kv_pairs(
    kwargs: dict[str, Any],
    max_value_length: int | None = 1000,
    prefix: str = " ",
) -> str:
    """Format a dictionary as space-separated key=value pairs.

    Values longer than ``max_value_length`` are truncated. Values that are
    empty or contain whitespace, ``=`` or quotes are escaped and wrapped in
    double quotes so the line stays machine-splittable.

    Returns:
        The formatted pairs with ``prefix`` prepended, or an empty string
        when ``kwargs`` is empty.
    """
    if not kwargs:
        return ""

    parts = []
    for key, value in kwargs.items():
        text = _truncate(str(value), max_value_length)
        if not text or any(ch in text for ch in (" ", "=", '"', "'")):
            escaped = text.replace("\\", "\\\\").replace('"', '\\"')
            parts.append(f'{key}="{escaped}"')
        else:
            parts.append(f"{key}={text}")
    return prefix + " ".join(parts)


def _truncate(text: str, max_length: int | None) -> str:
    if max_length and len(text) > max_length:
        return text[:max_length] + f"...<truncated {len(text) - max_length} chars>"
    return text


class StructuredFormatter(logging.Formatter):
    """Render every record as ``level name message key=value ...``.

    Structured fields are read from the ``structured_kv`` extra attached by
    [Logger][myceliumchat.core.logger.Logger]; records without it are
    emitted with the same prefix and no pairs.
    """

    def format(self, record: logging.LogRecord) -> str:
        line = f"{record.levelname.lower()} {record.name} {record.getMessage()}"
        fields: dict[str, Any] = getattr(record, "structured_kv", {})
        if fields:
            line += format_kv_pairs(fields)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class Logger:
    """Structured logger that turns keyword arguments into log fields.

    Fields passed to [bind()][myceliumchat.core.logger.Logger.bind] are
    attached to every subsequent record of the returned logger, which is how
    per-room and per-user context is carried without repeating it at each
    call site.
    """

    _DEFAULT_MAX_VALUE_LENGTH: ClassVar[int] = 1000

    def __init__(
        self,
        name: str,
        *,
        json_output: bool = False,
        max_value_length: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        self._logger = logging.getLogger(name)
        self._json_output = json_output
        self._max_value_length = (
            self._DEFAULT_MAX_VALUE_LENGTH if max_value_length is None else max_value_length
        )
        self._context: dict[str, Any] = dict(context or {})

    @property
    def name(self) -> str:
        return self._logger.name

    def bind(self, **context: Any) -> Logger:
        """Return a logger with ``context`` merged into every record."""
        return Logger(
            self._logger.name,
            json_output=self._json_output,
            max_value_length=self._max_value_length,
            context={**self._context, **context},
        )

    def _emit(self, level: int, msg: str, kwargs: dict[str, Any], *, exc_info: bool = False) -> None:
        if not self._logger.isEnabledFor(level):
            return
        fields = {**self._context, **kwargs}
        if self._json_output:
            record = {
                "timestamp": datetime.datetime.now(datetime.UTC).isoformat(),
                "level": logging.getLevelName(level).lower(),
                "service": self._logger.name,
                "message": msg,
                **fields,
            }
            self._logger.log(level, json.dumps(record, default=str), exc_info=exc_info)
            return
        extra = {
            "structured_kv": {
                k: _truncate(str(v), self._max_value_length) for k, v in fields.items()
            }
        } if fields else {}
        self._logger.log(level, msg, extra=extra, exc_info=exc_info)

    def debug(self, msg: str, **kwargs: Any) -> None:
        self._emit(logging.DEBUG, msg, kwargs)

    def info(self, msg: str, **kwargs: Any) -> None:
        self._emit(logging.INFO, msg, kwargs)

    def warning(self, msg: str, **kwargs: Any) -> None:
        self._emit(logging.WARNING, msg, kwargs)

    def error(self, msg: str, **kwargs: Any) -> None:
        self._emit(logging.ERROR, msg, kwargs)

    def critical(self, msg: str, **kwargs: Any) -> None:
        self._emit(logging.CRITICAL, msg, kwargs)

    def exception(self, msg: str, **kwargs: Any) -> None:
        """Log at ERROR level with the active exception's traceback."""
        self._emit(logging.ERROR, msg, kwargs, exc_info=True)
