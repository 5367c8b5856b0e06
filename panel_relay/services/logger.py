"""Centralized logging for the relay and its structured diagnostics."""
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from panel_relay.config import settings

APP_LOG_LEVEL = getattr(logging, settings.app_log_level.upper(), logging.INFO)
NOISY_LOG_LEVEL = getattr(logging, settings.noisy_log_level.upper(), logging.WARNING)

_handlers: list[logging.Handler] = [logging.StreamHandler()]
if settings.log_file:
    log_path = Path(settings.log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    _handlers.append(logging.FileHandler(log_path))

logging.basicConfig(
    level=APP_LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=_handlers,
)

# Reduce noise from framework/network libraries unless explicitly overridden.
for logger_name in (
    "uvicorn",
    "uvicorn.error",
    "uvicorn.access",
    "fastapi",
    "sse_starlette.sse",
    "httpx",
    "httpcore",
    "hpack",
    "asyncio",
):
    logging.getLogger(logger_name).setLevel(NOISY_LOG_LEVEL)

logger = logging.getLogger("panel_relay")


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def log_upstream_request(
    url: str,
    thread_id: str,
    status: str,
    status_code: Optional[int] = None,
    error: Optional[str] = None,
    **kwargs: Any,
) -> None:
    """Log an upstream connection attempt or its outcome."""
    request_data = {
        "timestamp": _timestamp(),
        "url": url,
        "thread_id": thread_id,
        "status": status,
        "status_code": status_code,
        "error": error,
        **kwargs,
    }
    logger.info(f"UPSTREAM_REQUEST: {json.dumps(request_data)}")


def log_stream_stall(
    idle_seconds: float,
    phase: str,
    counts: dict[str, int],
    buffered: str,
) -> None:
    """Log diagnostics for a stream that has gone quiet."""
    stall_data = {
        "timestamp": _timestamp(),
        "idle_seconds": round(idle_seconds, 1),
        "phase": phase,
        "counts": counts,
        "buffered": buffered[:100],
    }
    logger.warning(f"STREAM_STALL: {json.dumps(stall_data)}")


def log_event(
    event_type: str,
    message: str,
    **kwargs,
) -> None:
    """Log a generic event."""
    event_data = {
        "timestamp": _timestamp(),
        "event_type": event_type,
        "message": message,
        **kwargs,
    }
    logger.info(f"EVENT: {json.dumps(event_data, default=str)}")
