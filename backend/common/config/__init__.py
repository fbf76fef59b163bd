"""
Centralized configuration access for the ingestion client.

The configuration system uses Pydantic Settings, which automatically loads values from:
    1. Environment variables (highest priority)
    2. .env file in the project root
    3. Default values defined in the settings class

Example:
    ```python
    from common.config import get_settings

    settings = get_settings()
    print(settings.UPLOAD_MAX_CONCURRENCY)  # 4
    ```
"""

from functools import lru_cache

from common.config.settings import IngestClientSettings


@lru_cache(maxsize=1)
def get_settings() -> IngestClientSettings:
    """
    Get the process-wide settings instance.

    Uses functools.lru_cache with maxsize=1 so the environment is read once and
    every caller shares the same object. Components take the settings as a
    constructor argument, so tests can pass their own instance instead.

    Returns:
        The cached IngestClientSettings instance.

    Note:
        - Call ``get_settings.cache_clear()`` to force a reload (tests only)
    """
    return IngestClientSettings()


__all__ = [
    "IngestClientSettings",
    "get_settings",
]
