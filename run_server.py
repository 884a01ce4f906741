"""API server entry point.

Usage:
    python run_server.py

    # Custom host/port and a separate database file:
    python run_server.py --host 127.0.0.1 --port 9000 --db /tmp/jobs.db
"""
from __future__ import annotations

import argparse
import logging
import os
from typing import List, Optional

import uvicorn

from promptlab.api.config import ApiSettings
from promptlab.api.main import create_app
from promptlab.utils.logging import configure_logging

logger = logging.getLogger(__name__)

# CLI option -> ApiSettings field
_OVERRIDES = {
    "host": "host",
    "port": "port",
    "db": "job_db_path",
    "log_level": "log_level",
    "log_format": "log_format",
}


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="promptlab API server")
    parser.add_argument("--host", default=None, help="Bind address (default: PROMPTLAB_HOST or 0.0.0.0)")
    parser.add_argument("--port", type=int, default=None, help="Port (default: PROMPTLAB_PORT or 8000)")
    parser.add_argument("--db", default=None, help="SQLite job database path")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload for development")
    parser.add_argument("--log-level", default=None, choices=["debug", "info", "warning", "error"])
    parser.add_argument("--log-format", default=None, choices=["structured", "json"])
    args = parser.parse_args(argv)
    if args.log_level:
        args.log_level = args.log_level.upper()
    return args


def main(argv: Optional[List[str]] = None) -> None:
    args = _parse_args(argv)
    overrides = {
        field: getattr(args, option)
        for option, field in _OVERRIDES.items()
        if getattr(args, option) is not None
    }
    settings = ApiSettings(**overrides)
    configure_logging(settings.log_level, settings.log_format)

    if args.reload:
        # The reloaded worker builds its own settings through the app factory,
        # so the overrides travel as environment variables.
        for field, value in overrides.items():
            os.environ[f"PROMPTLAB_{field.upper()}"] = str(value)
        logger.info("Starting promptlab API with reload on %s:%s", settings.host, settings.port)
        uvicorn.run(
            "promptlab.api.main:create_app",
            factory=True,
            host=settings.host,
            port=settings.port,
            reload=True,
        )
        return

    app = create_app(settings)
    logger.info("Starting promptlab API on %s:%s", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
