"""
Per-blob ingestion status models.

Status moves forward only: Queued -> InProgress -> one of the terminal states
(Succeeded, Failed, Canceled). Queued may also jump straight to a terminal
state. A terminal status never changes again.
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from common.exceptions import InvalidStatusTransitionError


class IngestionStatus(str, Enum):
    QUEUED = "Queued"
    IN_PROGRESS = "InProgress"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    CANCELED = "Canceled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def rank(self) -> int:
        if self == IngestionStatus.QUEUED:
            return 0
        if self == IngestionStatus.IN_PROGRESS:
            return 1
        return 2

    @classmethod
    def from_service_value(cls, value: str) -> "IngestionStatus":
        """
        Map a status value written by the backend ingestion service.

        The backend also reports Pending, Skipped and PartiallySucceeded;
        these fold into InProgress, Canceled and Failed respectively.

        Raises:
            ValueError: If the value is not a known status.
        """
        normalized = value.strip().lower()
        for status in cls:
            if status.value.lower() == normalized:
                return status
        if normalized in _SERVICE_ALIASES:
            return _SERVICE_ALIASES[normalized]
        raise ValueError(f"Unknown ingestion status: {value!r}")


TERMINAL_STATUSES = frozenset(
    {IngestionStatus.SUCCEEDED, IngestionStatus.FAILED, IngestionStatus.CANCELED}
)

_SERVICE_ALIASES = {
    "pending": IngestionStatus.IN_PROGRESS,
    "skipped": IngestionStatus.CANCELED,
    "partiallysucceeded": IngestionStatus.FAILED,
}


class BlobStatus(BaseModel):
    """
    Ingestion status of a single dispatched source.

    Attributes:
        source_id: Correlation identifier assigned at dispatch
        status: Current status
        details: Error detail or other message reported by the backend
        error_code: Backend error code when the ingestion failed
        database: Target database
        table: Target table
        source_path: Blob URL without secrets
        updated_at: Time of the last update
    """

    model_config = ConfigDict(frozen=True)

    source_id: str
    status: IngestionStatus = IngestionStatus.QUEUED
    details: str | None = None
    error_code: str | None = None
    database: str | None = None
    table: str | None = None
    source_path: str | None = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def advance(
        self,
        status: IngestionStatus,
        details: str | None = None,
        error_code: str | None = None,
    ) -> "BlobStatus":
        """
        Return a copy moved to a later status.

        Raises:
            InvalidStatusTransitionError: If the current status is terminal or
                the new status is earlier than the current one.
        """
        if self.status.is_terminal and status != self.status:
            raise InvalidStatusTransitionError(
                f"Source {self.source_id} is already {self.status.value}; cannot move to {status.value}"
            )
        if status.rank < self.status.rank:
            raise InvalidStatusTransitionError(
                f"Source {self.source_id} cannot move back from {self.status.value} to {status.value}"
            )
        return self.model_copy(
            update={
                "status": status,
                "details": details if details is not None else self.details,
                "error_code": error_code if error_code is not None else self.error_code,
                "updated_at": datetime.now(timezone.utc),
            }
        )
