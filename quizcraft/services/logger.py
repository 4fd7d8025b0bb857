"""Centralized logging service using loguru."""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

from loguru import logger

from quizcraft.config import settings

# Configure loguru
LOG_DIR = Path(settings.log_dir)
LOG_DIR.mkdir(exist_ok=True)

# Remove default handler
logger.remove()

# Add console handler with color
logger.add(
    sys.stderr,
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    level=settings.app_log_level.upper(),
    colorize=True,
)

# Add file handler
logger.add(
    LOG_DIR / "quizcraft_{time:YYYY-MM-DD}.log",
    format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
    level="DEBUG",
    rotation="00:00",  # New file at midnight
    retention="7 days",  # Keep logs for 7 days
    compression="zip",
)

# Reduce noise from framework/network libraries
for logger_name in (
    "uvicorn",
    "uvicorn.error",
    "uvicorn.access",
    "fastapi",
    "sse_starlette.sse",
    "httpx",
    "httpcore",
    "asyncio",
):
    logging.getLogger(logger_name).setLevel(settings.noisy_log_level.upper())


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def log_job(key: str, status: str, **data) -> None:
    """Log a single generation job transition."""
    job_data = {
        "timestamp": _timestamp(),
        "key": key,
        "status": status,
        **data,
    }
    if status in ("failed", "error", "timeout", "aborted"):
        logger.warning(f"JOB: {json.dumps(job_data, ensure_ascii=False)}")
    else:
        logger.info(f"JOB: {json.dumps(job_data, ensure_ascii=False)}")


def log_batch(workflow: str, status: str, **data) -> None:
    """Log a batch (one fan-out invocation) lifecycle step."""
    batch_data = {
        "timestamp": _timestamp(),
        "workflow": workflow,
        "status": status,
        **data,
    }
    logger.info(f"BATCH: {json.dumps(batch_data, ensure_ascii=False)}")


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
    logger.info(f"EVENT: {json.dumps(event_data, ensure_ascii=False)}")
