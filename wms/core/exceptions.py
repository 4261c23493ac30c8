"""
Exception hierarchy for the WMS notification channel

Configuration problems, transport failures and malformed inbound frames
each have their own branch and a machine-readable ``error_code``. Context
is passed as keyword details (``url=...``, ``message_type=...``) so log
lines and ``to_dict()`` output stay uniform across branches.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

RAW_EXCERPT_LIMIT = 200


class WMSError(Exception):
    """
    Base exception for all WMS errors.

    Keyword arguments other than ``error_code`` and ``cause`` become
    ``details``; ``None`` values are dropped.
    """

    error_code: str = "WMS_ERROR"

    def __init__(
        self,
        message: str,
        *,
        error_code: Optional[str] = None,
        cause: Optional[BaseException] = None,
        **details: Any,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or type(self).error_code
        self.details: Dict[str, Any] = {k: v for k, v in details.items() if v is not None}
        self._cause = cause

    @property
    def cause(self) -> Optional[BaseException]:
        """Explicit cause, else the exception this one was raised ``from``."""
        return self._cause or self.__cause__

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form for structured logs."""
        cause = self.cause
        return {
            "error_type": type(self).__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": dict(self.details),
            "cause": str(cause) if cause else None,
        }

    def __str__(self) -> str:
        text = f"[{self.error_code}] {self.message}"
        if self.details:
            text += " (" + ", ".join(f"{k}={v!r}" for k, v in self.details.items()) + ")"
        if self.cause:
            text += f": {self.cause}"
        return text


# Configuration


class ConfigurationError(WMSError):
    error_code = "CONFIG_ERROR"


class InvalidConfigError(ConfigurationError):
    """A settings value, file or origin is unusable."""

    error_code = "CONFIG_INVALID"


# Channel


class ChannelError(WMSError):
    error_code = "CHANNEL_ERROR"


class TransportError(ChannelError):
    """The underlying transport failed to open, send or receive."""

    error_code = "CHANNEL_TRANSPORT"

    @property
    def url(self) -> Optional[str]:
        return self.details.get("url")


# Messages


class MessageError(WMSError):
    error_code = "MESSAGE_ERROR"


class MessageParseError(MessageError):
    """Inbound frame is not valid JSON or does not match its declared type."""

    error_code = "MESSAGE_PARSE"

    def __init__(self, message: str, *, raw: Optional[str] = None, **kwargs: Any):
        if raw is not None:
            kwargs["raw"] = raw[:RAW_EXCERPT_LIMIT]
        super().__init__(message, **kwargs)

    @property
    def message_type(self) -> Optional[str]:
        return self.details.get("message_type")
