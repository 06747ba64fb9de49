# -*- coding: utf-8 -*-
"""
Worker Error Logger - Dedicated logging for background worker failures.

Errors are written as single-line JSON to logs/worker_errors.log with
automatic rotation, separate from the root logger.

Usage:
    from outreach.utils.worker_error_logger import log_worker_error

    log_worker_error(
        error=e,
        context={
            "component": "follow_up_worker",
            "job_id": job.id,
            "lead_id": job.lead_id,
        }
    )
"""

import logging
import os
import json
import traceback
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional


# =============================================================================
# CONFIGURATION
# =============================================================================

LOG_DIR = os.getenv(
    'WORKER_ERROR_LOG_DIR',
    os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), 'logs'),
)
LOG_FILE = os.path.join(LOG_DIR, 'worker_errors.log')
MAX_BYTES = 10 * 1024 * 1024  # 10MB
BACKUP_COUNT = 5


# =============================================================================
# LOGGER SETUP
# =============================================================================

def setup_worker_error_logger() -> logging.Logger:
    """
    Set up the dedicated worker error logger with file rotation.

    Returns:
        Configured logger instance
    """
    os.makedirs(LOG_DIR, exist_ok=True)

    logger = logging.getLogger('worker_errors')
    logger.setLevel(logging.DEBUG)

    # Keep worker errors out of the root handlers
    logger.propagate = False

    if not logger.handlers:
        file_handler = RotatingFileHandler(
            LOG_FILE,
            maxBytes=MAX_BYTES,
            backupCount=BACKUP_COUNT,
            encoding='utf-8',
        )
        file_handler.setLevel(logging.DEBUG)

        formatter = logging.Formatter(
            '%(asctime)s | %(levelname)s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.WARNING)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger


worker_error_logger = setup_worker_error_logger()


# =============================================================================
# STRUCTURED LOGGING FUNCTIONS
# =============================================================================

def log_worker_error(
    error: Exception,
    context: Optional[Dict[str, Any]] = None,
    level: str = "error",
) -> None:
    """
    Log a worker error with structured context.

    Args:
        error: The exception that occurred
        context: Additional context (component, job_id, lead_id, ...)
        level: Log level ("error", "warning", "critical")
    """
    context = context or {}

    log_entry = {
        "error_type": type(error).__name__,
        "error_message": str(error),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "context": context,
        "traceback": traceback.format_exc() if level in ["error", "critical"] else None,
    }

    log_message = json.dumps(log_entry, default=str)

    if level == "critical":
        worker_error_logger.critical(log_message)
    elif level == "warning":
        worker_error_logger.warning(log_message)
    else:
        worker_error_logger.error(log_message)


def log_job_failure(
    error: Exception,
    job_id: str,
    lead_id: Optional[str] = None,
    retry_count: Optional[int] = None,
    permanent: bool = False,
) -> None:
    """
    Log a follow-up job delivery failure.

    Permanent failures are logged at error level, retryable ones as warnings.
    """
    log_worker_error(
        error=error,
        context={
            "component": "follow_up_worker",
            "job_id": job_id,
            "lead_id": lead_id,
            "retry_count": retry_count,
            "permanent": permanent,
        },
        level="error" if permanent else "warning",
    )
