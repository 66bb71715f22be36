"""JSON logs for the scoring API: one line per record, tagged with service and env."""
from __future__ import annotations

import logging
import sys

from pythonjsonlogger.json import JsonFormatter

from gymkana.config import Settings, settings as default_settings

SERVICE_NAME = "gymkana-live"

# Held at WARNING regardless of APP_LOG_LEVEL.
NOISY_LOGGERS = ("uvicorn.access", "aiosqlite", "asyncio")


def build_formatter(cfg: Settings) -> JsonFormatter:
    return JsonFormatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
        rename_fields={"asctime": "timestamp", "levelname": "level", "name": "logger"},
        static_fields={"service": SERVICE_NAME, "env": cfg.APP_ENV},
    )


def setup_logging(cfg: Settings | None = None) -> None:
    """Route the root logger to stdout as JSON at `APP_LOG_LEVEL`."""
    cfg = cfg or default_settings
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(build_formatter(cfg))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(cfg.APP_LOG_LEVEL)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    redis_level = logging.INFO if cfg.NOTIFIER_BACKEND == "redis" and cfg.APP_ENV == "development" else logging.WARNING
    logging.getLogger("redis").setLevel(redis_level)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if cfg.APP_ENV == "development" else logging.WARNING
    )
