"""
Structured logging for the tracker.

One JSON object per line (LOG_FORMAT=console for a local terminal) with
timestamp, level, logger and event_type. Call sites pass full wallet
addresses, signatures and RPC URLs; processors shorten the ids and mask
API keys before rendering, so no log line carries a full key.

Only structlog and the stdlib here: every sol_tracker module imports this one.
"""

from __future__ import annotations

import logging
import os
import re
import sys
from typing import Any

import structlog

# Context keys holding base58 addresses or signatures
ID_KEYS = frozenset({"wallet_id", "wallet", "signature", "before", "cursor", "counterparty"})
# Context keys holding endpoint URLs
URL_KEYS = frozenset({"rpc_url", "url"})

_API_KEY = re.compile(r"(api[-_]key=)[^&\s]+", re.IGNORECASE)


def short_id(value: str | None, keep: int = 16) -> str:
    """Truncate an address or signature for display."""
    if not value:
        return ""
    return value[:keep] + "..." if len(value) > keep else value


def mask_api_key(url: str) -> str:
    return _API_KEY.sub(r"\1***", url)


def shorten_ids(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key in ID_KEYS.intersection(event_dict):
        value = event_dict[key]
        if isinstance(value, str):
            event_dict[key] = short_id(value)
        elif isinstance(value, (list, tuple)):
            event_dict[key] = [short_id(v) if isinstance(v, str) else v for v in value]
    return event_dict


def mask_urls(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key in URL_KEYS.intersection(event_dict):
        if isinstance(event_dict[key], str):
            event_dict[key] = mask_api_key(event_dict[key])
    return event_dict


def build_processors(fmt: str) -> list[Any]:
    """Processor chain ending in the renderer for `fmt` ("json" or "console")."""
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        shorten_ids,
        mask_urls,
    ]
    if fmt == "json":
        processors.append(structlog.processors.EventRenamer("event_type"))
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    return processors


def configure_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Configure structlog from arguments or LOG_LEVEL / LOG_FORMAT."""
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).strip().upper()
    fmt = (fmt or os.getenv("LOG_FORMAT", "json")).strip().lower()
    structlog.configure(
        processors=build_processors(fmt),
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level_name, logging.INFO)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


if not structlog.is_configured():
    configure_logging()


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Logger bound to the module name.

        logger = get_logger(__name__)
        logger.info("ingestion_batch_merged", wallet_id=address, added=3, total=120)
    """
    return structlog.get_logger(name).bind(logger=name)


def bind_wallet(wallet_id: str) -> structlog.BoundLogger:
    """Logger with the tracked wallet bound to every line."""
    return get_logger("sol_tracker").bind(wallet_id=wallet_id)
