"""
Centralized configuration management for the ingestion client.

This module defines the Pydantic Settings class that carries every operational
tuning parameter of the ingestion pipeline: resource cache lifetimes, retry
bounds, upload fan-out and size limits.

Configuration Loading:
    Settings are loaded in the following priority order (highest to lowest):
    1. Environment variables
    2. .env file in the project root
    3. Default values defined in the class

Validation:
    All numeric settings are validated using Pydantic validators to ensure
    they are positive. Size limits are additionally checked for consistency
    (the compression threshold cannot exceed the upload ceiling).

Example:
    ```python
    from common.config.settings import IngestClientSettings

    settings = IngestClientSettings()
    print(settings.RESOURCE_REFRESH_INTERVAL_SECONDS)  # 3600
    print(settings.UPLOAD_MAX_ATTEMPTS)  # 3
    ```

Environment Variables:
    All settings can be overridden via environment variables. For example:
    - LOG_LEVEL=DEBUG
    - UPLOAD_MAX_CONCURRENCY=8
    - RESOURCE_REFRESH_INTERVAL_SECONDS=600
"""

from typing import Any

from pydantic import ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings

# Constants
GIB = 1024 * 1024 * 1024
MIB = 1024 * 1024
MAX_UPLOAD_CONCURRENCY_LIMIT = 64  # Upper bound for batch upload workers


class IngestClientSettings(BaseSettings):
    """
    Settings for the queued ingestion client.

    Attributes:
        SERVICE_NAME (str): Name used for log file naming. Default: "ingest-client"
        LOG_LEVEL (str): Logging level. Default: "INFO"
        LOG_TO_FILE (bool): Add rotating file sinks in addition to stdout. Default: False

        RESOURCE_REFRESH_INTERVAL_SECONDS (int): Lifetime of a discovered resource
            set before it is considered stale. Default: 3600
        RESOURCE_REFRESH_ON_FAILURE_SECONDS (int): Minimum wait before a warm cache
            retries a discovery call that failed. Default: 900
        DISCOVERY_MAX_ATTEMPTS (int): Attempts per discovery call. Default: 3

        UPLOAD_MAX_ATTEMPTS (int): Container attempts per uploaded source. Default: 3
        UPLOAD_RETRY_DELAY_SECONDS (float): Pause between container attempts. Default: 0.5
        UPLOAD_MAX_CONCURRENCY (int): Worker count for batch uploads. Default: 4
        UPLOAD_MAX_SIZE_BYTES (int): Largest accepted source. Default: 4 GiB
        COMPRESSION_MAX_SIZE_BYTES (int): Sources above this size are uploaded
            without automatic gzip compression. Default: 512 MiB

        QUEUE_POST_MAX_ATTEMPTS (int): Queue attempts per dispatch. Default: 3
        TOKEN_TIMEOUT_SECONDS (float): Bound on a single credential request. Default: 30

    Note:
        - Retry bounds and lifetimes are tuning parameters; none of them changes
          the pipeline's semantics
        - Byte sizes may be given as plain integers in environment variables
    """

    # Service Information (defaults)
    SERVICE_NAME: str = "ingest-client"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILE: bool = False

    # Resource discovery
    RESOURCE_REFRESH_INTERVAL_SECONDS: int = 3600
    RESOURCE_REFRESH_ON_FAILURE_SECONDS: int = 900
    DISCOVERY_MAX_ATTEMPTS: int = 3

    # Blob staging
    UPLOAD_MAX_ATTEMPTS: int = 3
    UPLOAD_RETRY_DELAY_SECONDS: float = 0.5
    UPLOAD_MAX_CONCURRENCY: int = 4
    UPLOAD_MAX_SIZE_BYTES: int = 4 * GIB
    COMPRESSION_MAX_SIZE_BYTES: int = 512 * MIB

    # Dispatch
    QUEUE_POST_MAX_ATTEMPTS: int = 3
    TOKEN_TIMEOUT_SECONDS: float = 30.0

    @field_validator(
        "RESOURCE_REFRESH_INTERVAL_SECONDS",
        "RESOURCE_REFRESH_ON_FAILURE_SECONDS",
        "DISCOVERY_MAX_ATTEMPTS",
        "UPLOAD_MAX_ATTEMPTS",
        "UPLOAD_MAX_SIZE_BYTES",
        "COMPRESSION_MAX_SIZE_BYTES",
        "QUEUE_POST_MAX_ATTEMPTS",
        mode="before",
    )
    @classmethod
    def validate_positive_int(cls, v: Any, info: ValidationInfo) -> int:
        """
        Validate that counters, lifetimes and sizes are positive integers.

        Handles type conversion from strings (common when loading from
        environment variables) and validates the value range.

        Raises:
            ValueError: If the value cannot be converted to an integer or is
                not greater than zero.
        """
        try:
            int_val = int(v)
        except (ValueError, TypeError) as e:
            msg = f"{info.field_name} must be a valid positive integer, got: {v}"
            raise ValueError(msg) from e
        if int_val < 1:
            msg = f"{info.field_name} must be a positive integer"
            raise ValueError(msg)
        return int_val

    @field_validator("UPLOAD_MAX_CONCURRENCY")
    @classmethod
    def validate_concurrency(cls, v: int, info: ValidationInfo) -> int:
        """Keep batch upload fan-out between 1 and MAX_UPLOAD_CONCURRENCY_LIMIT."""
        if v < 1:
            msg = f"{info.field_name} must be at least 1"
            raise ValueError(msg)
        if v > MAX_UPLOAD_CONCURRENCY_LIMIT:
            msg = f"{info.field_name} cannot exceed {MAX_UPLOAD_CONCURRENCY_LIMIT}"
            raise ValueError(msg)
        return v

    @field_validator("UPLOAD_RETRY_DELAY_SECONDS", "TOKEN_TIMEOUT_SECONDS")
    @classmethod
    def validate_non_negative_float(cls, v: float, info: ValidationInfo) -> float:
        if v < 0:
            msg = f"{info.field_name} cannot be negative"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def validate_size_limits(self) -> "IngestClientSettings":
        if self.COMPRESSION_MAX_SIZE_BYTES > self.UPLOAD_MAX_SIZE_BYTES:
            msg = "COMPRESSION_MAX_SIZE_BYTES cannot exceed UPLOAD_MAX_SIZE_BYTES"
            raise ValueError(msg)
        return self

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"
