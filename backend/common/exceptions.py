"""
Standardized error handling for the ingestion pipeline.

This module defines the exception hierarchy raised by the ingestion client and
the helpers that translate collaborator failures (Azure Storage, resource
discovery, credential providers) into it. Every failure carries enough
structure for a caller to decide whether to retry the whole logical operation:
an error code where one applies, a message, the underlying cause and a
permanence flag.

Architecture:
    The module uses a two-tier approach:
    1. Internal errors are logged with full details for debugging
    2. Raised errors carry a short message plus the original exception in
       ``internal_error`` so callers can inspect it without parsing strings

Error Taxonomy:
    - Validation errors: caller input is invalid; permanent, never retried
    - Resource exhaustion: nothing to try (NO_CONTAINERS_AVAILABLE)
    - Transient service errors: retried across rotated resources
    - Authentication errors: token acquisition or authorization failure
    - Unknown errors: logged, classified UNKNOWN, not retried

Example:
    ```python
    from common.exceptions import handle_external_service_error

    try:
        rows = await execute_command(".get ingestion resources")
    except Exception as e:
        raise handle_external_service_error(
            "refreshing ingestion resources", "resource discovery", e
        )
    ```
"""

import asyncio
from enum import Enum

from azure.core.exceptions import (
    ClientAuthenticationError,
    HttpResponseError,
    ResourceNotFoundError,
    ServiceRequestError,
    ServiceResponseError,
)
from loguru import logger

# HTTP Status Code Constants
HTTP_400_BAD_REQUEST = 400
HTTP_401_UNAUTHORIZED = 401
HTTP_403_FORBIDDEN = 403
HTTP_404_NOT_FOUND = 404
HTTP_408_REQUEST_TIMEOUT = 408
HTTP_429_TOO_MANY_REQUESTS = 429
HTTP_500_INTERNAL_SERVER_ERROR = 500


class UploadErrorCode(str, Enum):
    """Error codes reported for a failed upload."""

    # Source validation errors
    SOURCE_IS_NULL = "UploadError_SourceIsNull"
    SOURCE_NOT_FOUND = "UploadError_SourceNotFound"
    SOURCE_NOT_READABLE = "UploadError_SourceNotReadable"
    SOURCE_IS_EMPTY = "UploadError_SourceIsEmpty"
    SOURCE_SIZE_LIMIT_EXCEEDED = "UploadError_SourceSizeLimitExceeded"

    # Upload errors
    UPLOAD_FAILED = "UploadError_Failed"
    NO_CONTAINERS_AVAILABLE = "UploadError_NoContainersAvailable"
    CONTAINER_UNAVAILABLE = "UploadError_ContainerUnavailable"

    # Network/Azure errors
    NETWORK_ERROR = "UploadError_NetworkError"
    AUTHENTICATION_FAILED = "UploadError_AuthenticationFailed"

    UNKNOWN = "UploadError_Unknown"

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]

    @property
    def is_retryable(self) -> bool:
        """Whether another container may be tried after this error."""
        return self in RETRYABLE_ERROR_CODES


_DESCRIPTIONS = {
    UploadErrorCode.SOURCE_IS_NULL: "Upload source is null",
    UploadErrorCode.SOURCE_NOT_FOUND: "Upload source not found",
    UploadErrorCode.SOURCE_NOT_READABLE: "Upload source is not readable",
    UploadErrorCode.SOURCE_IS_EMPTY: "Upload source is empty",
    UploadErrorCode.SOURCE_SIZE_LIMIT_EXCEEDED: "Upload source exceeds maximum allowed size",
    UploadErrorCode.UPLOAD_FAILED: "Upload operation failed",
    UploadErrorCode.NO_CONTAINERS_AVAILABLE: "No upload containers available",
    UploadErrorCode.CONTAINER_UNAVAILABLE: "Upload container is unavailable",
    UploadErrorCode.NETWORK_ERROR: "Network error during upload",
    UploadErrorCode.AUTHENTICATION_FAILED: "Authentication failed for upload",
    UploadErrorCode.UNKNOWN: "Unknown upload error",
}

RETRYABLE_ERROR_CODES = frozenset(
    {
        UploadErrorCode.UPLOAD_FAILED,
        UploadErrorCode.NO_CONTAINERS_AVAILABLE,
        UploadErrorCode.CONTAINER_UNAVAILABLE,
        UploadErrorCode.NETWORK_ERROR,
        UploadErrorCode.AUTHENTICATION_FAILED,
    }
)


class IngestError(Exception):
    """
    Base exception for all ingestion client errors.

    Attributes:
        message (str): Short description of what failed.
        internal_error (Exception | None): The original exception, kept for
            logging and inspection.
        is_permanent (bool): True when retrying the same operation cannot
            succeed (invalid input, duplicate identifiers).
    """

    def __init__(
        self,
        message: str,
        internal_error: Exception | None = None,
        is_permanent: bool = False,
    ) -> None:
        self.message = message
        self.internal_error = internal_error
        self.is_permanent = is_permanent
        super().__init__(self.message)


class IngestClientError(IngestError):
    """Invalid caller input or a local failure. Permanent by default."""

    def __init__(
        self,
        message: str,
        internal_error: Exception | None = None,
        is_permanent: bool = True,
    ) -> None:
        super().__init__(message, internal_error, is_permanent)


class IngestServiceError(IngestError):
    """A collaborator (discovery, storage, queue, status table) failed."""


class ServiceUnavailableError(IngestServiceError):
    """Resource discovery failed and no previously fetched resources exist."""


class AuthenticationError(IngestError):
    """A credential request failed, timed out or was cancelled."""


class DuplicateSourceIdError(IngestClientError):
    """A source identifier was dispatched more than once."""

    def __init__(self, source_id: str) -> None:
        self.source_id = source_id
        super().__init__(f"Source id '{source_id}' was already dispatched")


class InvalidStatusTransitionError(IngestClientError):
    """A status update would move an ingestion backwards or out of a terminal state."""


class UploadError(IngestError):
    """
    Raised when a staged upload ends in failure.

    Attributes:
        code (UploadErrorCode): Classified reason of the failure.
        source_name (str | None): Name of the source that failed.
    """

    def __init__(
        self,
        code: UploadErrorCode,
        message: str | None = None,
        internal_error: Exception | None = None,
        is_permanent: bool = False,
        source_name: str | None = None,
    ) -> None:
        self.code = code
        self.source_name = source_name
        super().__init__(message or code.description, internal_error, is_permanent)


def classify_storage_error(error: BaseException) -> tuple[UploadErrorCode, bool]:
    """
    Map an exception raised by a storage call to an error code and permanence.

    Args:
        error: The exception raised by the Azure SDK (or the transport below it).

    Returns:
        Tuple of (error code, is_permanent). Retryable codes are transient;
        UNKNOWN is reported as permanent so unrecognized failures are not
        retried in a loop.

    Example:
        ```python
        code, permanent = classify_storage_error(ServiceRequestError("reset"))
        # (UploadErrorCode.NETWORK_ERROR, False)
        ```

    Note:
        - ResourceNotFoundError means the container itself is gone; another
          container may still accept the blob
        - 4xx responses other than 401/403/404/408/429 are caller errors and permanent
    """
    if isinstance(error, UploadError):
        return error.code, error.is_permanent
    if isinstance(error, AuthenticationError):
        return UploadErrorCode.AUTHENTICATION_FAILED, False
    if isinstance(error, ClientAuthenticationError):
        return UploadErrorCode.AUTHENTICATION_FAILED, False
    if isinstance(error, ResourceNotFoundError):
        return UploadErrorCode.CONTAINER_UNAVAILABLE, False
    if isinstance(error, (ServiceRequestError, ServiceResponseError)):
        return UploadErrorCode.NETWORK_ERROR, False
    if isinstance(error, HttpResponseError):
        status = error.status_code or HTTP_500_INTERNAL_SERVER_ERROR
        if status in (HTTP_401_UNAUTHORIZED, HTTP_403_FORBIDDEN):
            return UploadErrorCode.AUTHENTICATION_FAILED, False
        if status == HTTP_404_NOT_FOUND:
            return UploadErrorCode.CONTAINER_UNAVAILABLE, False
        if status in (HTTP_408_REQUEST_TIMEOUT, HTTP_429_TOO_MANY_REQUESTS):
            return UploadErrorCode.UPLOAD_FAILED, False
        if HTTP_400_BAD_REQUEST <= status < HTTP_500_INTERNAL_SERVER_ERROR:
            return UploadErrorCode.UPLOAD_FAILED, True
        return UploadErrorCode.UPLOAD_FAILED, False
    if isinstance(error, (asyncio.TimeoutError, ConnectionError)):
        return UploadErrorCode.NETWORK_ERROR, False
    return UploadErrorCode.UNKNOWN, True


def handle_storage_error(operation: str, error: Exception) -> UploadError:
    """
    Classify a storage failure, log it and wrap it as an UploadError.

    Args:
        operation: Description of the operation that failed (e.g.,
            "uploading sales.csv to container 2").
        error: The exception that occurred.

    Returns:
        UploadError carrying the classified code, permanence and original cause.

    Note:
        - UNKNOWN errors are logged with the full traceback
        - Classified errors are logged at WARNING; the caller decides whether
          another attempt follows
    """
    code, is_permanent = classify_storage_error(error)
    if code == UploadErrorCode.UNKNOWN:
        logger.opt(exception=error).error(f"Unrecognized error while {operation}: {error}")
    else:
        logger.warning(f"{code.description} while {operation}: {error}")
    return UploadError(
        code=code,
        message=f"{code.description}: {error}",
        internal_error=error,
        is_permanent=is_permanent,
    )


def handle_external_service_error(
    operation: str, service_name: str, error: Exception
) -> IngestServiceError:
    """
    Handle errors from external collaborators with a uniform error type.

    Args:
        operation: Description of the operation that failed (e.g.,
            "refreshing ingestion resources").
        service_name: Name of the collaborator that failed (e.g., "resource
            discovery", "status table").
        error: The exception raised by the collaborator.

    Returns:
        IngestServiceError whose message names the collaborator and whose
        ``internal_error`` holds the original exception.
    """
    logger.opt(exception=error).error(
        f"External service error in {operation} ({service_name}): {error}"
    )
    return IngestServiceError(
        message=f"{service_name} failed while {operation}: {error}",
        internal_error=error,
    )
