"""
Common logging configuration for the ingestion client.

This module provides centralized logging configuration using loguru, ensuring
consistent logging behavior across the resource manager, uploader and
dispatcher. It configures console logging and, optionally, file-based logging
with rotation and retention policies.

Log Files (only when LOG_TO_FILE is enabled):
    - {service_name}.log: All logs at configured level (default: INFO)
    - {service_name}-error.log: Only ERROR level logs

Log Rotation:
    - Error logs: Rotate at 10 MB, retain 30 days, compress with zip
    - General logs: Rotate at 50 MB, retain 7 days, compress with zip

Example:
    ```python
    from common.logging import setup_logging

    setup_logging("ingest-client")

    from loguru import logger
    logger.info("Ingest client started")
    ```
"""

from pathlib import Path
import sys

from loguru import logger

from common.config import IngestClientSettings, get_settings


def setup_logging(
    service_name: str | None = None,
    settings: IngestClientSettings | None = None,
) -> None:
    """
    Configure logging for the application using loguru.

    Args:
        service_name: Optional name used for log file naming. Falls back to
            the SERVICE_NAME setting.
        settings: Optional settings instance. The process-wide settings are
            used when omitted.

    Side Effects:
        - Removes default loguru handlers
        - Adds a console handler and, if LOG_TO_FILE is set, file handlers
        - Creates 'logs' directory if file logging is enabled

    Note:
        - This function should be called once, early in the application
        - Library code never calls it; applications decide how to log
    """

    settings = settings or get_settings()
    service_name = service_name or settings.SERVICE_NAME

    # Remove default handler
    logger.remove()

    # Add console handler with custom format
    logger.add(
        sys.stdout,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
        "<level>{message}</level>",
        level=settings.LOG_LEVEL,
        colorize=True,
    )

    if not settings.LOG_TO_FILE:
        return

    logs_dir = Path("logs")
    logs_dir.mkdir(exist_ok=True)

    logger.add(
        f"logs/{service_name}-error.log",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}",
        level="ERROR",
        rotation="10 MB",
        retention="30 days",
        compression="zip",
    )

    logger.add(
        f"logs/{service_name}.log",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}",
        level=settings.LOG_LEVEL,
        rotation="50 MB",
        retention="7 days",
        compression="zip",
    )
