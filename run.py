#!/usr/bin/env python3
"""
Survey Bot Application Entry Point
- Works under both Gunicorn (WSGI import, `gunicorn run:app`) and python CLI.
- Ensures smart logging is initialized exactly once per process.
- Aligns Flask app logger with root logger for consistent output.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Tuple

from dotenv import load_dotenv
from flask import request

# Load env before any other imports that might read it
load_dotenv()

from survey_bot import create_app  # noqa: E402
from survey_bot.utils.smart_logger import LogLevel, configure_logging  # noqa: E402

_LOGGING_INITIALIZED = False  # process-level guard


def _to_python_level(level: LogLevel) -> int:
    mapping = {
        "MINIMAL": logging.WARNING,
        "STANDARD": logging.INFO,
        "DETAILED": logging.DEBUG,
        "DEBUG": logging.DEBUG,
    }
    return mapping.get(getattr(level, "name", "STANDARD"), logging.INFO)


def setup_smart_logging() -> LogLevel:
    """Idempotent: won't add duplicate handlers if called multiple times."""
    global _LOGGING_INITIALIZED

    desired = os.getenv("BOT_LOG_LEVEL", "STANDARD").upper()
    valid = {lvl.name for lvl in LogLevel}
    if desired not in valid:
        print(f"Warning: Invalid BOT_LOG_LEVEL '{desired}'. Valid options: {', '.join(sorted(valid))}")
        log_level = LogLevel.STANDARD
    else:
        log_level = LogLevel[desired]

    if not _LOGGING_INITIALIZED:
        root = logging.getLogger()
        if not root.handlers:
            configure_logging(
                level=log_level,
                format_string="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                silence_external=True,
            )
        _LOGGING_INITIALIZED = True

    return log_level


def validate_environment(strict: bool) -> None:
    """
    - strict=True: exit on missing vars (CLI path).
    - strict=False: log a warning (WSGI path) so the service can still answer /health.
    """
    required = {
        "REDIS_HOST": "Treatment-group assignment",
        "DATABASE_URL": "Response storage",
    }
    missing = [f"{k} (required for {v})" for k, v in required.items() if not os.getenv(k)]
    if not (os.getenv("DIRECT_LINE_SECRET") or os.getenv("DIRECT_LINE_SECRETS")):
        missing.append("DIRECT_LINE_SECRET or DIRECT_LINE_SECRETS (required for the chat step)")

    if missing:
        msg = "Missing required environment variables: " + ", ".join(missing)
        if strict:
            print("Error:", msg)
            sys.exit(1)
        logging.getLogger(__name__).warning(msg)


def _wire_app_logger(app, log_level: LogLevel) -> None:
    if app.logger.handlers:
        app.logger.handlers.clear()
    app.logger.propagate = True
    app.logger.setLevel(_to_python_level(log_level))


def create_application(strict_env: bool = False):
    validate_environment(strict=strict_env)
    app = create_app()

    log_level = setup_smart_logging()
    _wire_app_logger(app, log_level)

    @app.before_request
    def _log_request():
        app.logger.info("→ %s %s", request.method, request.path)

    return app


def _resolve_server_config() -> Tuple[str, int, bool]:
    host = os.getenv("HOST", "127.0.0.1")
    port = int(os.getenv("PORT", "3000"))

    flask_debug = os.getenv("FLASK_DEBUG", "").lower()
    if flask_debug in ("1", "true", "yes", "on"):
        debug = True
    elif flask_debug in ("0", "false", "no", "off"):
        debug = False
    else:
        debug = os.getenv("APP_ENV", "development").lower() == "development"

    return host, port, debug


def _print_startup_info(host: str, port: int, debug: bool, log_level: LogLevel) -> None:
    print("Survey Bot Starting")
    print("=" * 60)
    print(f"Server:       http://{host}:{port}")
    print(f"Health check: http://{host}:{port}/health")
    print(f"Environment:  {os.getenv('APP_ENV', 'development')}")
    print(f"Debug mode:   {debug}")
    print(f"Log level:    {log_level.name}")
    print(f"Process ID:   {os.getpid()}")
    print("=" * 60)


def main() -> None:
    log_level = setup_smart_logging()
    application = create_application(strict_env=True)

    host, port, debug = _resolve_server_config()
    _print_startup_info(host, port, debug, log_level)

    try:
        application.run(host=host, port=port, debug=debug, use_reloader=False, threaded=True)
    except KeyboardInterrupt:
        print("\nShutting down gracefully...")


if __name__ == "__main__":
    main()
else:
    # WSGI entrypoint for Gunicorn: `gunicorn run:app`
    setup_smart_logging()
    app = create_application(strict_env=False)
