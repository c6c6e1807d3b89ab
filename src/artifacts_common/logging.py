"""Structured logging for the gateway.

Library modules log through :func:`get_logger`, which returns an adapter that stamps every
record with ``operation``, ``status`` and the active correlation ID. Nothing is emitted until the
application calls :func:`setup_logging`, which writes one JSON object per line to a log file
(falling back to stderr when the file cannot be opened).

Examples
--------
>>> from artifacts_common.logging import get_logger, with_fields
>>> logger = get_logger(__name__)
>>> with with_fields(logger, operation="validate", url="https://registry") as log:
...     log.info("validating registry")
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final, Self

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping
    from types import TracebackType

    from artifacts_common.types import JsonValue

__all__ = [
    "CorrelationContext",
    "JsonFormatter",
    "LoggerAdapter",
    "get_correlation_id",
    "get_logger",
    "set_correlation_id",
    "setup_logging",
    "with_fields",
]

_CORRELATION_ID: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "artifacts_correlation_id", default=None
)

PLAIN_FORMAT: Final[str] = "%(asctime)s %(levelname)s %(name)s:%(lineno)d %(message)s"

# Attributes every LogRecord has; anything else on a record came from ``extra``
_RECORD_ATTRS: Final[frozenset[str]] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys() | {"message", "asctime"}
)
_JSON_SCALARS = (str, int, float, bool)


def _jsonable(value: object) -> bool:
    if isinstance(value, _JSON_SCALARS):
        return True
    return isinstance(value, (list, dict))


class JsonFormatter(logging.Formatter):
    """Render records as single-line JSON objects.

    Each object has ``ts``, ``level``, ``name``, ``file`` (``basename:lineno`` of the caller) and
    ``message``, followed by the correlation ID and any JSON-friendly ``extra`` fields. Values
    that are not JSON scalars, lists or dicts are dropped.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Return ``record`` as one JSON line."""
        entry: dict[str, JsonValue] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname,
            "name": record.name,
            "file": f"{Path(record.pathname).name}:{record.lineno}",
            "message": record.getMessage(),
        }
        correlation_id = getattr(record, "correlation_id", None) or _CORRELATION_ID.get()
        if correlation_id is not None:
            entry["correlation_id"] = correlation_id
        for key, value in vars(record).items():
            if key in _RECORD_ATTRS or key in entry or key.startswith("_"):
                continue
            if value is not None and _jsonable(value):
                entry[key] = value
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _status_for(level: int) -> str:
    if level >= logging.ERROR:
        return "error"
    if level >= logging.WARNING:
        return "warning"
    return "success"


class LoggerAdapter(logging.LoggerAdapter):  # type: ignore[type-arg]
    """Adapter that merges bound fields into every record.

    Per-call ``extra`` wins over bound fields. ``operation`` defaults to ``"unknown"`` and
    ``status`` is derived from the level when absent.

    Parameters
    ----------
    logger : logging.Logger
        Logger receiving the records.
    extra : Mapping[str, object] | None, optional
        Fields bound to this adapter. Defaults to None.
    """

    logger: logging.Logger

    def __init__(self, logger: logging.Logger, extra: Mapping[str, object] | None = None) -> None:
        super().__init__(logger, dict(extra or {}))

    def process(self, msg: str, kwargs: Any) -> tuple[str, Any]:  # noqa: ANN401 - stdlib signature
        """Leave ``kwargs`` alone; :meth:`log` does the merging."""
        return msg, kwargs

    def log(self, level: int, msg: object, *args: object, **kwargs: Any) -> None:  # noqa: ANN401
        """Log ``msg`` at ``level`` with the bound and per-call fields."""
        fields: dict[str, Any] = {**(self.extra or {}), **(kwargs.get("extra") or {})}
        fields.setdefault("operation", "unknown")
        fields.setdefault("status", _status_for(level))
        correlation_id = _CORRELATION_ID.get()
        if correlation_id is not None:
            fields.setdefault("correlation_id", correlation_id)
        kwargs["extra"] = fields
        # Attribute the record to our caller rather than this method
        kwargs.setdefault("stacklevel", 2)
        super().log(level, msg, *args, **kwargs)


def get_logger(name: str) -> LoggerAdapter:
    """Return the structured adapter for logger ``name``.

    The underlying logger gets a :class:`logging.NullHandler` so that importing the library
    never prints anything on its own.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())
    return LoggerAdapter(logger)


def setup_logging(
    level: int | str = logging.INFO,
    *,
    log_file: str | Path | None = None,
    json_format: bool = True,
) -> None:
    """Install the gateway's single root handler.

    Stdout is never used because the CLI prints its results there.

    Parameters
    ----------
    level : int | str, optional
        Threshold as a number or a level name such as ``"DEBUG"``. Unknown names mean INFO.
        Defaults to ``logging.INFO``.
    log_file : str | Path | None, optional
        File to append to. When empty, None or not writable, logs go to stderr.
        Defaults to None.
    json_format : bool, optional
        Use :class:`JsonFormatter` when True, a plain text line otherwise. Defaults to True.
    """
    if isinstance(level, str):
        level = logging.getLevelNamesMapping().get(level.upper(), logging.INFO)

    handler: logging.Handler | None = None
    open_error: OSError | None = None
    if log_file:
        try:
            handler = logging.FileHandler(Path(log_file).expanduser(), encoding="utf-8")
        except OSError as exc:
            open_error = exc
    if handler is None:
        handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter() if json_format else logging.Formatter(PLAIN_FORMAT))
    logging.basicConfig(level=level, handlers=[handler], force=True)

    if open_error is not None:
        get_logger(__name__).info(
            "Failed to log to file, using default stderr: %s",
            open_error,
            extra={"operation": "setup_logging", "log_file": str(log_file)},
        )


def set_correlation_id(correlation_id: str | None) -> None:
    """Make ``correlation_id`` the active ID of the current context (None clears it)."""
    _CORRELATION_ID.set(correlation_id)


def get_correlation_id() -> str | None:
    """Return the active correlation ID, if any."""
    return _CORRELATION_ID.get()


class CorrelationContext:
    """Activate a correlation ID for the duration of a ``with`` block.

    The previous ID is restored on exit, which makes nesting safe.

    Examples
    --------
    >>> with CorrelationContext("req-123"):
    ...     assert get_correlation_id() == "req-123"
    """

    def __init__(self, correlation_id: str | None) -> None:
        self.correlation_id = correlation_id
        self._token: contextvars.Token[str | None] | None = None

    def __enter__(self) -> Self:
        self._token = _CORRELATION_ID.set(self.correlation_id)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._token is not None:
            _CORRELATION_ID.reset(self._token)
            self._token = None


@contextmanager
def with_fields(
    logger: logging.Logger | LoggerAdapter, **fields: object
) -> Iterator[LoggerAdapter]:
    """Yield an adapter bound to ``fields`` on top of ``logger``'s own bindings.

    A string ``correlation_id`` field also becomes the active correlation ID until the block
    exits.

    Examples
    --------
    >>> logger = get_logger(__name__)
    >>> with with_fields(logger, operation="validate") as log:
    ...     log.info("checking")
    """
    if isinstance(logger, LoggerAdapter):
        bound = LoggerAdapter(logger.logger, {**(logger.extra or {}), **fields})
    else:
        bound = LoggerAdapter(logger, fields)
    correlation_id = fields.get("correlation_id")
    if not isinstance(correlation_id, str):
        yield bound
        return
    with CorrelationContext(correlation_id):
        yield bound
