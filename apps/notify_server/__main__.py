"""
Notification Server - Entry point.

Usage:
    python -m apps.notify_server
    python -m apps.notify_server --port 5000 --json-logs
    python -m apps.notify_server --ssl-cert cert.pem --ssl-key key.pem
"""

import argparse
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

import uvicorn

from wms.core.structured_logging import configure_logging

logger = logging.getLogger("wms.notify_server")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="WMS Notification Server")
    parser.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=5000, help="Bind port (default: 5000)")
    parser.add_argument("--reload", action="store_true", help="Auto-reload for development")
    parser.add_argument(
        "--log-level",
        default=os.getenv("WMS_LOG_LEVEL", "INFO"),
        help="Log level (default: WMS_LOG_LEVEL or INFO)",
    )
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")
    parser.add_argument(
        "--ssl-cert",
        default=os.getenv("WMS_SSL_CERTFILE"),
        help="TLS certificate (.pem); clients then connect with wss://",
    )
    parser.add_argument(
        "--ssl-key",
        default=os.getenv("WMS_SSL_KEYFILE"),
        help="TLS private key (.pem)",
    )
    return parser


def uvicorn_options(args: argparse.Namespace) -> Dict[str, Any]:
    """Translate CLI arguments into ``uvicorn.run`` keyword arguments."""
    options: Dict[str, Any] = {
        "app": "apps.notify_server.main:app",
        "host": args.host,
        "port": args.port,
        "reload": args.reload,
        "log_config": None,  # Root handlers come from configure_logging
    }

    if args.ssl_cert and args.ssl_key:
        cert_path, key_path = Path(args.ssl_cert), Path(args.ssl_key)
        missing = [str(p) for p in (cert_path, key_path) if not p.exists()]
        if missing:
            logger.warning("TLS disabled, file(s) not found: %s", ", ".join(missing))
        else:
            options["ssl_certfile"] = str(cert_path.resolve())
            options["ssl_keyfile"] = str(key_path.resolve())
    return options


def main(argv: Optional[Sequence[str]] = None):
    args = build_parser().parse_args(argv)
    configure_logging(level=args.log_level, json_format=args.json_logs)

    options = uvicorn_options(args)
    scheme = "wss" if "ssl_certfile" in options else "ws"
    logger.info("Notification channel at %s://%s:%d/ws", scheme, args.host, args.port)

    uvicorn.run(**options)


if __name__ == "__main__":
    main()
