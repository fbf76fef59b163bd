"""
Data models of the ingestion pipeline.

All models are Pydantic models; results and statuses are frozen so they can be
shared between concurrent tasks without copying.
"""

from .ingestion import (
    ColumnMapping,
    IngestionMappingKind,
    IngestionMessage,
    IngestionProperties,
    ReportLevel,
    ReportMethod,
    StatusTableReference,
)
from .resources import ResourceEntry, ResourceSet, ResourceType
from .results import (
    BatchOperationResult,
    IngestResults,
    UploadFailure,
    UploadOutcome,
    UploadResults,
    UploadSuccess,
)
from .sources import (
    BlobSource,
    CompressionType,
    DataFormat,
    FileSource,
    LocalSource,
    StreamSource,
)
from .status import BlobStatus, IngestionStatus, TERMINAL_STATUSES

__all__ = [
    "BatchOperationResult",
    "BlobSource",
    "BlobStatus",
    "ColumnMapping",
    "CompressionType",
    "DataFormat",
    "FileSource",
    "IngestResults",
    "IngestionMappingKind",
    "IngestionMessage",
    "IngestionProperties",
    "IngestionStatus",
    "LocalSource",
    "ReportLevel",
    "ReportMethod",
    "ResourceEntry",
    "ResourceSet",
    "ResourceType",
    "StatusTableReference",
    "StreamSource",
    "TERMINAL_STATUSES",
    "UploadFailure",
    "UploadOutcome",
    "UploadResults",
    "UploadSuccess",
]
