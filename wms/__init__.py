"""WMS real-time notification channel."""

__version__ = "0.1.0"
