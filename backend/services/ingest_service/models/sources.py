"""
Ingestion source models.

Local sources (files and streams) are staged to blob storage before they are
announced for ingestion; a BlobSource references data that is already in
blob storage, either staged by this client or uploaded by the caller.
"""

from enum import Enum
from pathlib import Path
import re
from typing import Any, ClassVar
from urllib.parse import urlsplit, urlunsplit
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

_UNSAFE_BLOB_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class DataFormat(str, Enum):
    """Data formats accepted by the ingestion service."""

    CSV = "csv"
    TSV = "tsv"
    SCSV = "scsv"
    SOHSV = "sohsv"
    PSV = "psv"
    TXT = "txt"
    TSVE = "tsve"
    JSON = "json"
    MULTIJSON = "multijson"
    SINGLEJSON = "singlejson"
    AVRO = "avro"
    APACHEAVRO = "apacheavro"
    PARQUET = "parquet"
    SSTREAM = "sstream"
    ORC = "orc"
    RAW = "raw"
    W3CLOGFILE = "w3clogfile"

    @property
    def is_binary(self) -> bool:
        """Binary formats are compressed internally and never gzipped again."""
        return self in _BINARY_FORMATS


_BINARY_FORMATS = frozenset(
    {
        DataFormat.AVRO,
        DataFormat.APACHEAVRO,
        DataFormat.PARQUET,
        DataFormat.SSTREAM,
        DataFormat.ORC,
    }
)


class CompressionType(str, Enum):
    NONE = "none"
    GZIP = "gzip"
    ZIP = "zip"

    @property
    def extension(self) -> str:
        return {CompressionType.NONE: "", CompressionType.GZIP: ".gz", CompressionType.ZIP: ".zip"}[self]

    @classmethod
    def from_path(cls, path: str | Path) -> "CompressionType":
        suffix = Path(path).suffix.lower()
        if suffix == ".gz":
            return cls.GZIP
        if suffix == ".zip":
            return cls.ZIP
        return cls.NONE


class LocalSource(BaseModel):
    """
    Base class for data that lives on the caller's side and must be staged.

    Attributes:
        format: Data format declared to the ingestion service
        compression: Compression already applied to the data
        source_id: Correlation identifier; generated when not supplied
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    format: DataFormat = DataFormat.CSV
    compression: CompressionType = CompressionType.NONE
    source_id: str = Field(default_factory=lambda: str(uuid4()))

    kind: ClassVar[str] = "local"

    @property
    def name(self) -> str:
        return self.source_id

    @property
    def should_compress(self) -> bool:
        """Whether the uploader may gzip the data while staging it."""
        return self.compression == CompressionType.NONE and not self.format.is_binary

    def blob_name(self, compression: CompressionType) -> str:
        """
        Blob name used when staging this source.

        Format: ``{kind}_{source_id}.{format}{compression extension}``
        """
        safe_id = _UNSAFE_BLOB_CHARS.sub("_", self.source_id)
        return f"{self.kind}_{safe_id}.{self.format.value}{compression.extension}"


class FileSource(LocalSource):
    """A local file to ingest. Compression is inferred from the file suffix when not given."""

    path: Path
    kind: ClassVar[str] = "file"

    def __init__(self, path: str | Path, **data: Any) -> None:
        if "compression" not in data:
            data["compression"] = CompressionType.from_path(path)
        super().__init__(path=Path(path), **data)

    @property
    def name(self) -> str:
        return self.path.name


class StreamSource(LocalSource):
    """
    An in-memory or file-like binary stream to ingest.

    Attributes:
        stream: Binary file-like object; read from its current position
        source_name: Optional display name used in logs and upload outcomes
        size: Declared size in bytes, used when the stream cannot report it
        leave_open: Keep the stream open after staging
    """

    stream: Any
    source_name: str | None = None
    size: int | None = None
    leave_open: bool = False
    kind: ClassVar[str] = "stream"

    @field_validator("size")
    @classmethod
    def validate_size(cls, v: int | None) -> int | None:
        if v is not None and v < 0:
            raise ValueError("size cannot be negative")
        return v

    @property
    def name(self) -> str:
        return self.source_name or self.source_id


class BlobSource(BaseModel):
    """
    A reference to data already in blob storage.

    Attributes:
        blob_url: Full blob URL, including a SAS token if one is needed to read it
        format: Data format of the blob content
        compression: Compression of the blob content
        source_id: Correlation identifier used for status lookups
        exact_size: Exact size of the stored blob in bytes, when known
    """

    model_config = ConfigDict(frozen=True)

    blob_url: str
    format: DataFormat = DataFormat.CSV
    compression: CompressionType = CompressionType.NONE
    source_id: str = Field(default_factory=lambda: str(uuid4()))
    exact_size: int | None = None

    @field_validator("blob_url")
    @classmethod
    def validate_blob_url(cls, v: str) -> str:
        parts = urlsplit(v)
        if not parts.scheme or not parts.netloc:
            raise ValueError(f"blob_url must be an absolute URL, got: {v!r}")
        return v

    @property
    def url_without_secrets(self) -> str:
        parts = urlsplit(self.blob_url)
        return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
