"""Centralized logging configuration for the sales coach agent."""

import json
import logging
from typing import Any


# Configure logger
logger = logging.getLogger("salescoach")
handler = logging.StreamHandler()
formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
handler.setFormatter(formatter)
logger.addHandler(handler)
logger.setLevel(logging.INFO)


def log_event(
    request_id: str,
    stage: str,
    event: str,
    details: dict[str, Any] | None = None,
) -> None:
    """
    Log a structured pipeline event.

    Args:
        request_id (str): Identifier of the agent request.
        stage (str): Pipeline stage (dispatch, load, format, invoke, log).
        event (str): Event description.
        details (dict[str, Any] | None): Additional event details.
    """
    payload = {
        "request_id": request_id,
        "stage": stage,
        "event": event,
        "details": details or {},
    }
    logger.info(json.dumps(payload, default=str))


def log_error(
    request_id: str,
    stage: str,
    error: BaseException,
    context: dict[str, Any] | None = None,
) -> None:
    """
    Log an error with context.

    Args:
        request_id (str): Identifier of the agent request.
        stage (str): Pipeline stage where the error occurred.
        error (BaseException): The exception that was raised.
        context (dict[str, Any] | None): Additional context about the error.
    """
    payload = {
        "request_id": request_id,
        "stage": stage,
        "error_type": type(error).__name__,
        "error_message": str(error),
        "context": context or {},
    }
    logger.error(json.dumps(payload, default=str))


def set_log_level(level: str) -> None:
    """
    Set the logging level.

    Args:
        level (str): Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {level}")
    logger.setLevel(numeric_level)
