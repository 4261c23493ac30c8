# Core library
from wms.core.config import ChannelSettings, load_settings
from wms.core.exceptions import (
    ChannelError,
    ConfigurationError,
    InvalidConfigError,
    MessageError,
    MessageParseError,
    TransportError,
    WMSError,
)
from wms.core.structured_logging import (
    JSONFormatter,
    LogContext,
    configure_logging,
    generate_trace_id,
    get_correlation_id,
    get_trace_id,
    split_component,
)

__all__ = [
    # Config
    "ChannelSettings",
    "load_settings",
    # Exceptions
    "WMSError",
    "ConfigurationError",
    "InvalidConfigError",
    "ChannelError",
    "TransportError",
    "MessageError",
    "MessageParseError",
    # Structured logging
    "configure_logging",
    "split_component",
    "JSONFormatter",
    "generate_trace_id",
    "get_trace_id",
    "get_correlation_id",
    "LogContext",
]
