"""
Structured Logging for the WMS notification channel

Log lines from the channel, dispatcher and hub carry a bracketed component
prefix (``[Channel] Reconnecting in 1.2s``). The JSON formatter lifts that
prefix into a ``component`` field and attaches the trace id and the
per-connection-attempt correlation id, so one reconnect cycle can be
followed across components.
"""

from __future__ import annotations

import json
import logging
import re
import sys
import traceback
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

_trace_id: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)
_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

PLAIN_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
PLAIN_DATEFMT = "%Y-%m-%d %H:%M:%S"

_COMPONENT_PREFIX = re.compile(r"^\[(?P<component>[A-Za-z][\w.-]*)\]\s*")

# Attributes every LogRecord carries; anything else came in via ``extra``
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime"}


def get_trace_id() -> Optional[str]:
    return _trace_id.get()


def set_trace_id(trace_id: Optional[str]) -> None:
    _trace_id.set(trace_id)


def generate_trace_id() -> str:
    """Start a new trace in the current context and return its id."""
    trace_id = uuid.uuid4().hex[:8]
    set_trace_id(trace_id)
    return trace_id


def get_correlation_id() -> Optional[str]:
    return _correlation_id.get()


def split_component(message: str) -> Tuple[Optional[str], str]:
    """
    Split a ``[Component] text`` message.

    Returns:
        (component, text); component is None when there is no prefix
    """
    match = _COMPONENT_PREFIX.match(message)
    if match is None:
        return None, message
    return match.group("component"), message[match.end():]


class JSONFormatter(logging.Formatter):
    """
    One JSON object per log record.

    Fields: timestamp, level, logger, component, message, source,
    trace_id/correlation_id when set, exception, any ``extra`` values and
    the formatter's static ``extra_fields``.
    """

    def __init__(
        self,
        *,
        include_traceback: bool = True,
        extra_fields: Optional[Dict[str, Any]] = None,
    ):
        """
        Args:
            include_traceback: Add traceback frames for exceptions
            extra_fields: Static fields added to every line (e.g. service name)
        """
        super().__init__()
        self.include_traceback = include_traceback
        self.extra_fields = extra_fields or {}

    def format(self, record: logging.LogRecord) -> str:
        component, message = split_component(record.getMessage())

        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
        }
        if component:
            log_data["component"] = component
        log_data["message"] = message
        log_data["source"] = {
            "file": record.filename,
            "line": record.lineno,
            "function": record.funcName,
        }

        if trace_id := get_trace_id():
            log_data["trace_id"] = trace_id
        if correlation_id := get_correlation_id():
            log_data["correlation_id"] = correlation_id

        if record.exc_info:
            log_data["exception"] = self._exception(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key.startswith("_") or key in log_data:
                continue
            log_data[key] = _jsonable(value)

        log_data.update(self.extra_fields)
        return json.dumps(log_data, default=str)

    def _exception(self, exc_info) -> Dict[str, Any]:
        exc_type, exc_value, tb = exc_info
        data: Dict[str, Any] = {
            "type": exc_type.__name__ if exc_type else None,
            "message": str(exc_value) if exc_value else None,
        }
        # WMSError carries a machine-readable code and details
        if hasattr(exc_value, "to_dict"):
            data["error"] = exc_value.to_dict()
        if self.include_traceback and tb is not None:
            data["traceback"] = _frames(tb)
        return data


def _frames(tb) -> List[Dict[str, Any]]:
    return [
        {"file": f.filename, "line": f.lineno, "function": f.name, "code": f.line}
        for f in traceback.extract_tb(tb)
    ]


def _jsonable(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool, type(None))):
        return value
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return str(value)


def configure_logging(
    *,
    level: Union[str, int] = logging.INFO,
    json_format: bool = True,
    log_file: Optional[str] = None,
    extra_fields: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Configure the root logger for the listener or the hub server.

    Replaces existing root handlers with a stdout handler and, when
    ``log_file`` is given, a file handler using the same format.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper() if isinstance(level, str) else level)
    root_logger.handlers.clear()

    def _formatter() -> logging.Formatter:
        if json_format:
            return JSONFormatter(extra_fields=extra_fields)
        return logging.Formatter(PLAIN_FORMAT, datefmt=PLAIN_DATEFMT)

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    for handler in handlers:
        handler.setFormatter(_formatter())
        root_logger.addHandler(handler)


class LogContext:
    """
    Temporarily set trace/correlation ids for log lines.

    Example:
        with LogContext(correlation_id="conn-3"):
            logger.info("[Channel] Connecting")  # includes correlation_id

    Previous values are restored on exit.
    """

    _VARS = {"trace_id": _trace_id, "correlation_id": _correlation_id}

    def __init__(self, **context: Optional[str]):
        unknown = set(context) - set(self._VARS)
        if unknown:
            raise TypeError(f"Unsupported log context keys: {sorted(unknown)}")
        self.context = context
        self._tokens: list = []

    def __enter__(self) -> "LogContext":
        for key, value in self.context.items():
            var = self._VARS[key]
            self._tokens.append((var, var.set(value)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)
