"""Runtime settings and structured logging for the order lifecycle core.

Values come from the environment (or a ``.env`` file) through
``python-decouple``.  Nothing here is read at import time except the
logging processors; call ``load_settings()`` to snapshot the configuration
and ``configure_logging()`` once at process start-up.
"""

from __future__ import annotations

import logging.config
import re
from dataclasses import dataclass
from decimal import Decimal

import structlog
from decouple import config


@dataclass(frozen=True)
class OrderSettings:
    poll_interval_ms: int = 30_000
    total_tolerance: Decimal = Decimal("0.01")
    store_lock_timeout_seconds: float = 5.0
    pickup_allows_delivering: bool = False
    order_id_max_retries: int = 5
    log_level: str = "INFO"
    log_format: str = "json"


def load_settings() -> OrderSettings:
    """Read ``OrderSettings`` from the environment."""
    return OrderSettings(
        poll_interval_ms=config("ORDER_POLL_INTERVAL_MS", default=30_000, cast=int),
        total_tolerance=config("ORDER_TOTAL_TOLERANCE", default="0.01", cast=Decimal),
        store_lock_timeout_seconds=config(
            "ORDER_STORE_LOCK_TIMEOUT_SECONDS", default=5.0, cast=float
        ),
        pickup_allows_delivering=config(
            "ORDER_PICKUP_ALLOWS_DELIVERING", default=False, cast=bool
        ),
        order_id_max_retries=config("ORDER_ID_MAX_RETRIES", default=5, cast=int),
        log_level=config("LOG_LEVEL", default="INFO"),
        log_format=config("LOG_FORMAT", default="json"),
    )


# ---------------------------------------------------------------------------
# Structured Logging (structlog + stdlib logging)
# ---------------------------------------------------------------------------
SENSITIVE_PATTERN = re.compile(
    r"((?<!\w)\d{3}\.?\d{3}\.?\d{3}-?\d{2}(?!\w))"  # CPF
    r"|((?<!\w)\(?\d{2}\)?\s?9?\d{4}-?\d{4}(?!\w))"  # phone
    r"|(password|passwd|secret|token|authorization)"
    r"""([=:]\s*["']?)([^\s,}"']+)""",
    re.IGNORECASE,
)


def mask_sensitive_data(_, __, event_dict):
    """Processor that masks CPF, phone numbers, passwords and tokens in log values."""
    for key, value in list(event_dict.items()):
        if isinstance(value, str):
            event_dict[key] = SENSITIVE_PATTERN.sub("***MASKED***", value)
    return event_dict


# Shared processors used by both structlog and stdlib logging
_shared_processors = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
    mask_sensitive_data,
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
]


def configure_logging(level: str = "INFO", fmt: str = "json") -> None:
    """Route structlog through stdlib ``logging`` with a single console handler.

    ``fmt`` is ``"json"`` for machine-readable lines or ``"console"`` for
    the coloured development renderer.
    """
    renderer = (
        structlog.dev.ConsoleRenderer()
        if fmt == "console"
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            *_shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structured": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "processors": [
                        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                        renderer,
                    ],
                    "foreign_pre_chain": _shared_processors,
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "structured",
                },
            },
            "root": {
                "handlers": ["console"],
                "level": level.upper(),
            },
        }
    )
