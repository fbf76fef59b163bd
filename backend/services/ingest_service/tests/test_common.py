"""
Tests for settings, error classification, retry and logging setup.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from azure.core.exceptions import (
    ClientAuthenticationError,
    HttpResponseError,
    ResourceNotFoundError,
    ServiceRequestError,
    ServiceResponseError,
)
from loguru import logger
from pydantic import ValidationError

from common.config import get_settings
from common.config.settings import GIB, MIB, IngestClientSettings
from common.exceptions import (
    AuthenticationError,
    IngestServiceError,
    UploadError,
    UploadErrorCode,
    classify_storage_error,
    handle_external_service_error,
    handle_storage_error,
)
from common.logging import setup_logging
from common.retry import RetryConfig, calculate_delay, retry_async


def _http_error(status: int) -> HttpResponseError:
    error = HttpResponseError(message=f"status {status}")
    error.status_code = status
    return error


class TestSettings:
    """Tests for configuration defaults and validation."""

    def test_defaults(self, monkeypatch):
        """Test the documented default values."""
        for name in ("UPLOAD_MAX_ATTEMPTS", "UPLOAD_MAX_CONCURRENCY", "RESOURCE_REFRESH_INTERVAL_SECONDS"):
            monkeypatch.delenv(name, raising=False)

        settings = IngestClientSettings(_env_file=None)

        assert settings.RESOURCE_REFRESH_INTERVAL_SECONDS == 3600
        assert settings.RESOURCE_REFRESH_ON_FAILURE_SECONDS == 900
        assert settings.UPLOAD_MAX_ATTEMPTS == 3
        assert settings.UPLOAD_MAX_CONCURRENCY == 4
        assert settings.UPLOAD_MAX_SIZE_BYTES == 4 * GIB
        assert settings.COMPRESSION_MAX_SIZE_BYTES == 512 * MIB

    def test_environment_overrides(self, monkeypatch):
        """Test that environment variables override defaults."""
        monkeypatch.setenv("UPLOAD_MAX_CONCURRENCY", "8")
        monkeypatch.setenv("RESOURCE_REFRESH_INTERVAL_SECONDS", "600")

        settings = IngestClientSettings(_env_file=None)

        assert settings.UPLOAD_MAX_CONCURRENCY == 8
        assert settings.RESOURCE_REFRESH_INTERVAL_SECONDS == 600

    @pytest.mark.parametrize("value", [0, -1, "abc"])
    def test_rejects_non_positive_attempts(self, value):
        """Test that attempt bounds must be positive integers."""
        with pytest.raises(ValidationError):
            IngestClientSettings(_env_file=None, UPLOAD_MAX_ATTEMPTS=value)

    def test_rejects_excessive_concurrency(self):
        """Test the upper bound on batch workers."""
        with pytest.raises(ValidationError, match="cannot exceed"):
            IngestClientSettings(_env_file=None, UPLOAD_MAX_CONCURRENCY=1000)

    def test_rejects_negative_delay(self):
        """Test that the retry delay cannot be negative."""
        with pytest.raises(ValidationError):
            IngestClientSettings(_env_file=None, UPLOAD_RETRY_DELAY_SECONDS=-0.1)

    def test_compression_threshold_cannot_exceed_upload_limit(self):
        """Test the cross-field size check."""
        with pytest.raises(ValidationError, match="COMPRESSION_MAX_SIZE_BYTES"):
            IngestClientSettings(_env_file=None, UPLOAD_MAX_SIZE_BYTES=MIB, COMPRESSION_MAX_SIZE_BYTES=2 * MIB)

    def test_get_settings_is_cached(self):
        """Test that the process-wide settings are created once."""
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()


class TestClassifyStorageError:
    """Tests for mapping Azure SDK errors to upload error codes."""

    @pytest.mark.parametrize(
        "error,code,permanent",
        [
            (ServiceRequestError("reset"), UploadErrorCode.NETWORK_ERROR, False),
            (ServiceResponseError("eof"), UploadErrorCode.NETWORK_ERROR, False),
            (ClientAuthenticationError("denied"), UploadErrorCode.AUTHENTICATION_FAILED, False),
            (AuthenticationError("token expired"), UploadErrorCode.AUTHENTICATION_FAILED, False),
            (ResourceNotFoundError("gone"), UploadErrorCode.CONTAINER_UNAVAILABLE, False),
            (asyncio.TimeoutError(), UploadErrorCode.NETWORK_ERROR, False),
            (ConnectionResetError(), UploadErrorCode.NETWORK_ERROR, False),
            (RuntimeError("boom"), UploadErrorCode.UNKNOWN, True),
        ],
    )
    def test_exception_types(self, error, code, permanent):
        """Test classification by exception type."""
        assert classify_storage_error(error) == (code, permanent)

    @pytest.mark.parametrize(
        "status,code,permanent",
        [
            (401, UploadErrorCode.AUTHENTICATION_FAILED, False),
            (403, UploadErrorCode.AUTHENTICATION_FAILED, False),
            (404, UploadErrorCode.CONTAINER_UNAVAILABLE, False),
            (408, UploadErrorCode.UPLOAD_FAILED, False),
            (429, UploadErrorCode.UPLOAD_FAILED, False),
            (400, UploadErrorCode.UPLOAD_FAILED, True),
            (413, UploadErrorCode.UPLOAD_FAILED, True),
            (503, UploadErrorCode.UPLOAD_FAILED, False),
        ],
    )
    def test_http_status_codes(self, status, code, permanent):
        """Test classification of HTTP responses."""
        assert classify_storage_error(_http_error(status)) == (code, permanent)

    def test_upload_error_keeps_its_code(self):
        """Test that an already classified error passes through."""
        error = UploadError(UploadErrorCode.SOURCE_IS_EMPTY, is_permanent=True)
        assert classify_storage_error(error) == (UploadErrorCode.SOURCE_IS_EMPTY, True)

    def test_handle_storage_error_wraps_cause(self):
        """Test that the wrapped error carries code, permanence and cause."""
        cause = ServiceRequestError("reset")

        error = handle_storage_error("uploading a.csv", cause)

        assert error.code == UploadErrorCode.NETWORK_ERROR
        assert error.internal_error is cause
        assert not error.is_permanent

    def test_retryable_codes(self):
        """Test which codes allow another container to be tried."""
        assert not UploadErrorCode.SOURCE_IS_EMPTY.is_retryable
        assert UploadErrorCode.NETWORK_ERROR.is_retryable
        assert not UploadErrorCode.UNKNOWN.is_retryable

    def test_handle_external_service_error(self):
        """Test that collaborator failures name the collaborator."""
        cause = RuntimeError("timeout")

        error = handle_external_service_error("reading status", "status table", cause)

        assert isinstance(error, IngestServiceError)
        assert "status table" in error.message
        assert error.internal_error is cause


class TestRetry:
    """Tests for exponential backoff retries."""

    def test_calculate_delay_grows_and_caps(self):
        """Test exponential growth bounded by the maximum delay."""
        config = RetryConfig(initial_delay_ms=100, max_delay_ms=300, jitter=False)

        assert calculate_delay(0, config) == pytest.approx(0.1)
        assert calculate_delay(1, config) == pytest.approx(0.2)
        assert calculate_delay(5, config) == pytest.approx(0.3)

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        """Test that a transient failure is retried."""
        operation = AsyncMock(side_effect=[RuntimeError("once"), "ok"])

        with patch("common.retry.calculate_delay", return_value=0):
            result = await retry_async(operation, RetryConfig(max_attempts=3))

        assert result == "ok"
        assert operation.await_count == 2

    @pytest.mark.asyncio
    async def test_reraises_last_error(self):
        """Test that the last error propagates after the final attempt."""
        operation = AsyncMock(side_effect=RuntimeError("always"))

        with patch("common.retry.calculate_delay", return_value=0):
            with pytest.raises(RuntimeError, match="always"):
                await retry_async(operation, RetryConfig(max_attempts=2))

        assert operation.await_count == 2

    @pytest.mark.asyncio
    async def test_non_matching_error_is_not_retried(self):
        """Test that errors outside retry_on propagate immediately."""
        operation = AsyncMock(side_effect=KeyError("nope"))

        with pytest.raises(KeyError):
            await retry_async(operation, RetryConfig(max_attempts=3), retry_on=(ValueError,))

        assert operation.await_count == 1


class TestLogging:
    """Tests for loguru setup."""

    def test_console_only_by_default(self, tmp_path, monkeypatch):
        """Test that no log files are created unless enabled."""
        monkeypatch.chdir(tmp_path)

        setup_logging("ingest-test", IngestClientSettings(_env_file=None, LOG_TO_FILE=False))
        logger.info("console only")

        assert not (tmp_path / "logs").exists()

    def test_file_sinks_when_enabled(self, tmp_path, monkeypatch):
        """Test that file sinks are added when LOG_TO_FILE is set."""
        monkeypatch.chdir(tmp_path)

        setup_logging("ingest-test", IngestClientSettings(_env_file=None, LOG_TO_FILE=True))
        logger.error("written to both files")
        logger.remove()

        assert (tmp_path / "logs" / "ingest-test.log").exists()
        assert (tmp_path / "logs" / "ingest-test-error.log").exists()
