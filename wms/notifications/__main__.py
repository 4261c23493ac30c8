"""
Notification listener - Entry point.

Connects to a WMS server's /ws channel and prints every notification
until interrupted.

Usage:
    python -m wms.notifications
    python -m wms.notifications --origin https://wms.example.com
    python -m wms.notifications --settings settings.json --json-logs
"""

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Optional, Sequence

from wms.core.config import load_settings
from wms.core.exceptions import ConfigurationError
from wms.core.structured_logging import configure_logging
from wms.notifications.context import NotificationContext
from wms.notifications.models import Toast

logger = logging.getLogger("wms.listener")


def print_toast(toast: Toast) -> None:
    marker = "!!" if toast.variant == "destructive" else "--"
    print(f"{marker} {toast.title}: {toast.description}", flush=True)


async def listen(context: NotificationContext) -> None:
    async with context:
        await asyncio.Event().wait()


def main(argv: Optional[Sequence[str]] = None):
    parser = argparse.ArgumentParser(description="WMS real-time notification listener")
    parser.add_argument(
        "--origin",
        type=str,
        default=None,
        help="Origin of the WMS web app, e.g. https://wms.example.com",
    )
    parser.add_argument(
        "--url",
        type=str,
        default=None,
        help="Explicit WebSocket URL (overrides --origin)",
    )
    parser.add_argument(
        "--settings",
        type=Path,
        default=None,
        help="JSON settings file",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Log level (default: from settings)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit JSON log lines",
    )

    args = parser.parse_args(argv)

    overrides = {}
    if args.origin:
        overrides["origin"] = args.origin
    if args.url:
        overrides["ws_url"] = args.url
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.json_logs:
        overrides["log_json"] = True

    try:
        settings = load_settings(args.settings, overrides)
    except ConfigurationError as e:
        parser.error(str(e))

    configure_logging(level=settings.log_level, json_format=settings.log_json)

    context = NotificationContext.from_settings(settings, toast=print_toast)
    logger.info("Listening on %s", context.channel.config.endpoint)

    try:
        asyncio.run(listen(context))
    except KeyboardInterrupt:
        print(f"\n{context.unread_count} unread notification(s)")


if __name__ == "__main__":
    main()
