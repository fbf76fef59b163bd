"""
Upload outcome and batch result models.

An upload either succeeds (UploadSuccess) or fails with a classified reason
(UploadFailure). Batch operations reduce their per-item outcomes into a
BatchOperationResult: every input item lands in exactly one of the two
sequences.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Generic, Iterable, Self, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from common.exceptions import UploadErrorCode
from services.ingest_service.models.sources import BlobSource, CompressionType, DataFormat

S = TypeVar("S")
F = TypeVar("F")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UploadSuccess(BaseModel):
    """
    A source staged to blob storage.

    Attributes:
        source_name: Name of the uploaded source
        blob_url: URL of the staged blob, including its SAS token
        size_bytes: Exact size of the stored blob (after compression)
        source_id: Correlation identifier of the source
        format: Data format of the source
        compression: Compression of the stored blob
    """

    model_config = ConfigDict(frozen=True)

    source_name: str
    blob_url: str
    size_bytes: int
    source_id: str
    format: DataFormat = DataFormat.CSV
    compression: CompressionType = CompressionType.NONE
    started_at: datetime = Field(default_factory=_utcnow)
    completed_at: datetime = Field(default_factory=_utcnow)

    def as_blob_source(self) -> BlobSource:
        return BlobSource(
            blob_url=self.blob_url,
            format=self.format,
            compression=self.compression,
            source_id=self.source_id,
            exact_size=self.size_bytes,
        )


class UploadFailure(BaseModel):
    """
    A source that could not be staged.

    Attributes:
        source_name: Name of the source (``"<null>"`` for a missing source)
        error_code: Classified reason
        message: Human-readable description
        exception: Underlying cause, if any
        is_permanent: True when retrying the same source cannot succeed
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    source_name: str
    error_code: UploadErrorCode
    message: str
    exception: BaseException | None = Field(default=None, exclude=True)
    is_permanent: bool = False
    started_at: datetime = Field(default_factory=_utcnow)
    completed_at: datetime = Field(default_factory=_utcnow)


UploadOutcome = UploadSuccess | UploadFailure


def _is_not_failure(outcome: object) -> bool:
    return not isinstance(outcome, UploadFailure)


class BatchOperationResult(BaseModel, Generic[S, F]):
    """Successes and failures of a batch operation, each in input order."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    successes: tuple[S, ...] = ()
    failures: tuple[F, ...] = ()

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)

    @property
    def all_succeeded(self) -> bool:
        return not self.failures

    @property
    def total_count(self) -> int:
        return len(self.successes) + len(self.failures)

    @classmethod
    def from_outcomes(
        cls,
        outcomes: Iterable[S | F],
        is_success: Callable[[S | F], bool] | None = None,
        **fields: Any,
    ) -> Self:
        """
        Reduce outcomes into a result without mutating the input.

        Args:
            outcomes: Per-item outcomes in input order
            is_success: Predicate deciding which sequence an outcome belongs to;
                by default everything but an UploadFailure is a success
            **fields: Extra fields of a subclass, such as ``cancelled``
        """
        if is_success is None:
            is_success = _is_not_failure
        items = tuple(outcomes)
        return cls(
            successes=tuple(item for item in items if is_success(item)),
            failures=tuple(item for item in items if not is_success(item)),
            **fields,
        )


class UploadResults(BatchOperationResult[UploadSuccess, UploadFailure]):
    """
    Result of a batch upload.

    Attributes:
        cancelled: Names of sources whose upload was abandoned because the
            batch was cancelled; they appear in neither successes nor failures.
    """

    cancelled: tuple[str, ...] = ()


class IngestResults(BatchOperationResult[str, UploadFailure]):
    """
    Result of a batch ingestion: dispatched source ids and failed sources.

    A source that was staged but could not be dispatched is reported as a
    failure with code UPLOAD_FAILED and the dispatch error attached.
    """

    cancelled: tuple[str, ...] = ()
