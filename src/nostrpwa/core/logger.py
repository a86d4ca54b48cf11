"""
Structured key=value logging for the CLI.

Wraps the standard library ``logging`` module. Keyword arguments passed to
[Logger][nostrpwa.core.logger.Logger] methods travel on the record as the
``structured_kv`` extra and are rendered by
[StructuredFormatter][nostrpwa.core.logger.StructuredFormatter] as
``key=value`` pairs after the message. Plain ``logging.getLogger()`` calls
from the models and nips layers go through the same formatter, so all
console output shares one shape::

    info nostrpwa.publish upload_succeeded server=https://cdn.example.com size=5120

Examples:
    ```python
    from nostrpwa.core.logger import Logger

    logger = Logger("publish")
    logger.warning("upload_failed", server="https://s1", error="HTTP 500")
    ```
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar


def format_kv_pairs(
    kwargs: dict[str, Any],
    max_value_length: int | None = 1000,
    prefix: str = " ",
) -> str:
    """Render a mapping as space-separated ``key=value`` pairs.

    Values longer than ``max_value_length`` are truncated. Empty values and
    values containing whitespace, ``=`` or quotes are double-quoted with
    backslash escaping so the line stays machine-splittable.

    Returns:
        The rendered pairs preceded by ``prefix``, or ``""`` when
        ``kwargs`` is empty.
    """
    if not kwargs:
        return ""

    parts = []
    for key, value in kwargs.items():
        text = str(value)
        if max_value_length and len(text) > max_value_length:
            text = text[:max_value_length] + f"...<truncated {len(text) - max_value_length} chars>"
        if not text or any(c in text for c in ' ="\''):
            escaped = text.replace("\\", "\\\\").replace('"', '\\"')
            parts.append(f'{key}="{escaped}"')
        else:
            parts.append(f"{key}={text}")

    return prefix + " ".join(parts)


class StructuredFormatter(logging.Formatter):
    """Formats records as ``level name message key=value ...``."""

    def format(self, record: logging.LogRecord) -> str:
        line = f"{record.levelname.lower()} {record.name} {record.getMessage()}"
        extra: dict[str, Any] = getattr(record, "structured_kv", {})
        if extra:
            line += format_kv_pairs(extra)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class Logger:
    """Structured logger that attaches keyword arguments to each record.

    Loggers are namespaced under ``nostrpwa`` so that the CLI can raise or
    lower verbosity for the whole tool without touching third-party
    loggers.

    Examples:
        ```python
        logger = Logger("pairing")
        logger.info("auth_url_received", url="https://signer.example/auth")
        # info nostrpwa.pairing auth_url_received url=https://signer.example/auth
        ```
    """

    _NAMESPACE: ClassVar[str] = "nostrpwa"
    _DEFAULT_MAX_VALUE_LENGTH: ClassVar[int] = 1000

    def __init__(self, name: str, *, max_value_length: int | None = None) -> None:
        if not name.startswith(self._NAMESPACE):
            name = f"{self._NAMESPACE}.{name}"
        self._logger = logging.getLogger(name)
        self._max_value_length = (
            self._DEFAULT_MAX_VALUE_LENGTH if max_value_length is None else max_value_length
        )

    @property
    def name(self) -> str:
        return self._logger.name

    def _make_extra(self, kwargs: dict[str, Any]) -> dict[str, Any]:
        """Build the ``extra`` dict, truncating oversized values up front."""
        if not kwargs:
            return {}
        limit = self._max_value_length
        truncated: dict[str, Any] = {}
        for key, value in kwargs.items():
            text = str(value)
            if limit and len(text) > limit:
                truncated[key] = text[:limit] + f"...<truncated {len(text) - limit} chars>"
            else:
                truncated[key] = value
        return {"structured_kv": truncated}

    def _log(self, level: int, msg: str, kwargs: dict[str, Any], *, exc_info: bool = False) -> None:
        if self._logger.isEnabledFor(level):
            self._logger.log(level, msg, extra=self._make_extra(kwargs), exc_info=exc_info)

    def debug(self, msg: str, **kwargs: Any) -> None:
        """Log at DEBUG (shown only with ``--verbose``)."""
        self._log(logging.DEBUG, msg, kwargs)

    def info(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.INFO, msg, kwargs)

    def warning(self, msg: str, **kwargs: Any) -> None:
        """Log at WARNING. Used for per-endpoint failures that do not abort."""
        self._log(logging.WARNING, msg, kwargs)

    def error(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, msg, kwargs)

    def exception(self, msg: str, **kwargs: Any) -> None:
        """Log at ERROR with the active exception's traceback."""
        self._log(logging.ERROR, msg, kwargs, exc_info=True)


def setup_logging(*, verbose: bool = False) -> None:
    """Install a [StructuredFormatter][nostrpwa.core.logger.StructuredFormatter] on the root logger.

    ``verbose`` lowers the ``nostrpwa`` namespace to DEBUG; third-party
    loggers stay at WARNING either way.
    """
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())
    logging.root.handlers = [handler]
    logging.root.setLevel(logging.WARNING)
    logging.getLogger(Logger._NAMESPACE).setLevel(logging.DEBUG if verbose else logging.INFO)
