"""Logging configuration and the broker traffic log.

Library modules only create named loggers (``amqp_listener.<area>``);
handlers are installed once by :func:`configure_logging` from an entrypoint.
Traffic entries go to the ``amqp_listener.traffic`` logger as one JSON object
per line, so they can be routed to their own file.
"""

from __future__ import annotations

import json
import logging
import logging.config
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .envelope import MessageEnvelope

TRAFFIC_LOGGER = "amqp_listener.traffic"

traffic_logger = logging.getLogger(TRAFFIC_LOGGER)


def configure_logging(
    log_level: str = "INFO",
    file_path: str | Path | None = None,
    *,
    file_max_bytes: int = 10 * 1024 * 1024,
    file_backup_count: int = 5,
) -> None:
    """Configure logging with dictConfig.

    Args:
        log_level: Level of the ``amqp_listener`` loggers and the console handler.
        file_path: Traffic log file. None keeps traffic entries on the console.
        file_max_bytes: Maximum traffic log size before rotation.
        file_backup_count: Number of rotated traffic logs to keep.
    """
    handlers: dict[str, dict[str, Any]] = {
        "console": {
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stderr",
            "formatter": "standard",
            "level": log_level,
        },
    }
    traffic: dict[str, Any] = {"level": "INFO", "propagate": True}

    if file_path:
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers["traffic_file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": str(path),
            "maxBytes": file_max_bytes,
            "backupCount": file_backup_count,
            "encoding": "utf-8",
            "formatter": "traffic",
        }
        traffic = {"level": "INFO", "handlers": ["traffic_file"], "propagate": False}

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "standard": {
                    "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
                },
                "traffic": {"format": "%(asctime)s %(message)s"},
            },
            "handlers": handlers,
            "loggers": {
                "amqp_listener": {
                    "level": log_level,
                    "handlers": ["console"],
                    "propagate": False,
                },
                TRAFFIC_LOGGER: traffic,
            },
        }
    )


def log_traffic(
    exchange: str,
    routing_key: str,
    envelope: MessageEnvelope,
    method: str,
    extra: dict[str, Any] | None = None,
) -> None:
    """Record one broker operation in the traffic log."""
    entry: dict[str, Any] = {
        "exchange": exchange,
        "routing_key": routing_key,
        "message": envelope.body.decode("utf-8", errors="replace"),
        "message_properties": envelope.properties(),
        "method": method,
    }
    if extra:
        entry["extra"] = extra
    traffic_logger.info(json.dumps(entry, default=str))
