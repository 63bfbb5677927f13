"""Structured logging configuration for the Trackshare API server.

Events always go to stderr in human-readable form.  When a log directory is
configured, two ``RotatingFileHandler`` streams are added:

- ``server.log`` — human-readable, all log events
- ``backend.log`` — JSON-formatted, only ``trackshare.backend.*`` events

Both handlers rotate at 10 MB with 5 backup files.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import structlog

_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
_BACKUP_COUNT = 5

# Pre-processors applied to structlog events and to records from stdlib
# loggers (uvicorn, httpx).
_shared_processors: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.UnicodeDecoder(),
]


def setup_logging(
    log_level: str = "info",
    log_dir: Path | None = None,
    *,
    console: bool = True,
) -> None:
    """Configure structlog and stdlib logging for the server.

    Parameters
    ----------
    log_level:
        Python log-level name (``debug``, ``info``, ``warning``, etc.).
    log_dir:
        Directory for log files.  When *None* no file handlers are created.
    console:
        Whether to attach the stderr handler (disabled in tests).
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            *_shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    human_formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.dev.ConsoleRenderer(colors=False),
        foreign_pre_chain=_shared_processors,
    )
    # Tracebacks become a string field so every backend.log line stays one JSON object.
    json_formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        foreign_pre_chain=_shared_processors,
    )

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    if console:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(human_formatter)
        root.addHandler(stream_handler)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)

        server_handler = RotatingFileHandler(
            log_dir / "server.log",
            maxBytes=_MAX_BYTES,
            backupCount=_BACKUP_COUNT,
            encoding="utf-8",
        )
        server_handler.setFormatter(human_formatter)
        root.addHandler(server_handler)

        # backend.log — remote call events only, JSON
        backend_handler = RotatingFileHandler(
            log_dir / "backend.log",
            maxBytes=_MAX_BYTES,
            backupCount=_BACKUP_COUNT,
            encoding="utf-8",
        )
        backend_handler.setFormatter(json_formatter)
        backend_handler.addFilter(logging.Filter("trackshare.backend"))
        root.addHandler(backend_handler)

    # uvicorn.access is replaced by our own request_finished event.
    for name in ("uvicorn", "uvicorn.access", "uvicorn.error", "httpx", "httpcore"):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
