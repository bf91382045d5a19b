"""
Logging framework for the amenity heatmap service.

This module configures loguru for the application, providing a consistent
logging interface across all modules.
"""

import json
import os
import sys
from typing import Any

from loguru import logger

from amenity_heatmap.config import LogLevel


def get_logger(name: str):
    """
    Get a logger instance for the specified module.

    Args:
        name: Module name (typically __name__)

    Returns:
        Configured logger instance with the module name attached
    """
    return logger.bind(name=name)


def setup_logging(
    log_level: LogLevel | str = LogLevel.INFO, log_file: str | None = None
):
    """
    Set up the logging configuration for the application.

    Args:
        log_level: The logging level to use (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path to write logs to
    """
    if isinstance(log_level, str):
        log_level = LogLevel(log_level.upper())

    logger.remove()

    logger.add(
        sys.stderr,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        ),
        level=log_level.value,
        colorize=True,
    )

    if log_file:
        os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
        logger.add(
            log_file,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
                "{name}:{function}:{line} - {message}"
            ),
            level=log_level.value,
            rotation="10 MB",
            compression="zip",
        )

    logger.info(f"Logging initialized with level {log_level.value}")


class ServiceLogger:
    """
    Logger for calls to an external service, binding the service name
    to every record.
    """

    def __init__(self, service_name: str):
        self.service_name = service_name
        self.logger = logger.bind(service=service_name)

    def debug(self, message: str, **kwargs):
        self.logger.debug(message, **kwargs)

    def info(self, message: str, **kwargs):
        self.logger.info(message, **kwargs)

    def warning(self, message: str, **kwargs):
        self.logger.warning(message, **kwargs)

    def error(self, message: str, **kwargs):
        self.logger.error(message, **kwargs)

    def log_api_request(self, endpoint: str, params: dict[str, Any] | None = None):
        """
        Log an API request.

        Args:
            endpoint: API endpoint
            params: Request parameters (optional)
        """
        self.debug(
            f"API Request: {self.service_name} - {endpoint}",
            endpoint=endpoint,
            params=self._safe_json(params),
        )

    def log_api_response(
        self, endpoint: str, result_count: int, response_data: Any | None = None
    ):
        """
        Log an API response.

        Args:
            endpoint: API endpoint
            result_count: Number of results parsed from the response
            response_data: Response data (optional)
        """
        self.debug(
            f"API Response: {self.service_name} - {endpoint} - "
            f"{result_count} results",
            endpoint=endpoint,
            result_count=result_count,
            response=self._safe_json(response_data),
        )

    def _safe_json(self, obj: Any) -> str | None:
        """Safely convert an object to JSON, falling back to str()."""
        if obj is None:
            return None

        try:
            return json.dumps(obj, default=str)
        except (TypeError, ValueError) as e:
            self.warning(f"Failed to serialize object to JSON: {e!s}")
            return str(obj)
