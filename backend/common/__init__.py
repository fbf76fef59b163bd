"""
Common utilities shared by the ingestion client packages.

Modules:
    - config: Centralized configuration management with environment-based settings
    - exceptions: Error taxonomy and collaborator error translation
    - logging: Centralized logging configuration using loguru
    - retry: Exponential backoff for transient collaborator failures

Usage:
    Import specific modules as needed:

    ```python
    from common.config import get_settings
    from common.exceptions import UploadErrorCode
    from common.logging import setup_logging
    ```

Version:
    Current version: 0.1.0
"""

__version__ = "0.1.0"
