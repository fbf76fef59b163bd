"""
Validation and preparation of local sources for staging.

A source is validated before any network call. A valid source becomes a
StagedPayload: the exact bytes (or a re-openable handle to them) that every
upload attempt sends, together with their final size and compression.
"""

from contextlib import contextmanager
from dataclasses import dataclass
import io
import os
from pathlib import Path
from typing import IO, Any, Iterator

from loguru import logger

from common.config.settings import IngestClientSettings
from common.exceptions import UploadError, UploadErrorCode
from services.ingest_service.models.sources import CompressionType, FileSource, StreamSource
from services.ingest_service.uploader.compression import compress_file, compress_stream, read_stream

NULL_SOURCE_NAME = "<null>"


@dataclass
class StagedPayload:
    """
    Data of one source as it will be stored.

    Exactly one of ``data``, ``path`` or ``stream`` is set.

    Attributes:
        compression: Compression of the stored blob
        size: Exact number of bytes stored
        data: In-memory payload (compressed or buffered)
        path: File uploaded as is
        stream: Seekable stream uploaded as is, starting at ``stream_start``
    """

    compression: CompressionType
    size: int
    data: bytes | None = None
    path: Path | None = None
    stream: IO[bytes] | None = None
    stream_start: int = 0

    @contextmanager
    def open(self) -> Iterator[bytes | IO[bytes]]:
        """Yield the body for one upload attempt, rewound to its start."""
        if self.data is not None:
            yield self.data
        elif self.path is not None:
            with self.path.open("rb") as f:
                yield f
        else:
            self.stream.seek(self.stream_start)
            yield self.stream


def source_name(source: Any) -> str:
    """Name used in outcomes and logs; works for any object, not only sources."""
    if source is None:
        return NULL_SOURCE_NAME
    if isinstance(source, (str, Path)):
        return str(source)
    name = getattr(source, "name", None)
    return str(name) if name else type(source).__name__


def _validation_error(code: UploadErrorCode, source: Any, detail: str) -> UploadError:
    return UploadError(
        code=code,
        message=f"{code.description}: {detail}",
        is_permanent=True,
        source_name=source_name(source),
    )


def _check_size(source: Any, size: int, settings: IngestClientSettings) -> None:
    if size == 0:
        raise _validation_error(UploadErrorCode.SOURCE_IS_EMPTY, source, "0 bytes")
    if size > settings.UPLOAD_MAX_SIZE_BYTES:
        raise _validation_error(
            UploadErrorCode.SOURCE_SIZE_LIMIT_EXCEEDED,
            source,
            f"{size} bytes exceeds the limit of {settings.UPLOAD_MAX_SIZE_BYTES} bytes",
        )


def _may_compress(source: FileSource | StreamSource, size: int, settings: IngestClientSettings) -> bool:
    return source.should_compress and size <= settings.COMPRESSION_MAX_SIZE_BYTES


async def prepare_payload(source: Any, settings: IngestClientSettings) -> StagedPayload:
    """
    Validate a source and build the payload its upload attempts will send.

    Args:
        source: FileSource or StreamSource (None is reported as SOURCE_IS_NULL)
        settings: Size limits

    Returns:
        StagedPayload with the post-compression size.

    Raises:
        UploadError: With a permanent validation code when the source is null,
            missing, unreadable, empty or too large.
    """
    if source is None:
        raise _validation_error(UploadErrorCode.SOURCE_IS_NULL, source, "no source given")
    if isinstance(source, FileSource):
        return await _prepare_file(source, settings)
    if isinstance(source, StreamSource):
        return await _prepare_stream(source, settings)
    raise _validation_error(
        UploadErrorCode.SOURCE_NOT_READABLE, source, f"unsupported source type {type(source).__name__}"
    )


async def _prepare_file(source: FileSource, settings: IngestClientSettings) -> StagedPayload:
    path = source.path
    if not path.exists():
        raise _validation_error(UploadErrorCode.SOURCE_NOT_FOUND, source, str(path))
    if not path.is_file() or not os.access(path, os.R_OK):
        raise _validation_error(UploadErrorCode.SOURCE_NOT_READABLE, source, str(path))

    size = path.stat().st_size
    _check_size(source, size, settings)

    if _may_compress(source, size, settings):
        try:
            data = await compress_file(path)
        except OSError as e:
            raise UploadError(
                UploadErrorCode.SOURCE_NOT_READABLE,
                f"{UploadErrorCode.SOURCE_NOT_READABLE.description}: {e}",
                internal_error=e,
                is_permanent=True,
                source_name=source.name,
            ) from e
        logger.debug(f"Compressed {source.name} from {size} to {len(data)} bytes")
        return StagedPayload(compression=CompressionType.GZIP, size=len(data), data=data)

    return StagedPayload(compression=source.compression, size=size, path=path)


def _is_readable(stream: Any) -> bool:
    if not hasattr(stream, "read"):
        return False
    readable = getattr(stream, "readable", None)
    if readable is None:
        return True
    try:
        return bool(readable())
    except ValueError:
        # closed file objects raise ValueError
        return False


def _is_seekable(stream: Any) -> bool:
    seekable = getattr(stream, "seekable", None)
    try:
        return bool(seekable and seekable())
    except ValueError:
        return False


async def _prepare_stream(source: StreamSource, settings: IngestClientSettings) -> StagedPayload:
    stream = source.stream
    if stream is None:
        raise _validation_error(UploadErrorCode.SOURCE_IS_NULL, source, "stream is None")
    if not _is_readable(stream):
        raise _validation_error(UploadErrorCode.SOURCE_NOT_READABLE, source, "stream is not readable")

    try:
        if _is_seekable(stream):
            start = stream.tell()
            size = stream.seek(0, io.SEEK_END) - start
            stream.seek(start)
            _check_size(source, size, settings)
            if _may_compress(source, size, settings):
                data = await compress_stream(stream)
                return StagedPayload(compression=CompressionType.GZIP, size=len(data), data=data)
            return StagedPayload(
                compression=source.compression, size=size, stream=stream, stream_start=start
            )

        if source.size is not None:
            _check_size(source, source.size, settings)
        # Non-seekable streams are buffered so a retry can resend them; one
        # byte past the limit is enough to reject an oversize stream
        buffered = await read_stream(stream, settings.UPLOAD_MAX_SIZE_BYTES + 1)
    except OSError as e:
        raise UploadError(
            UploadErrorCode.SOURCE_NOT_READABLE,
            f"{UploadErrorCode.SOURCE_NOT_READABLE.description}: {e}",
            internal_error=e,
            is_permanent=True,
            source_name=source.name,
        ) from e

    _check_size(source, len(buffered), settings)
    if _may_compress(source, len(buffered), settings):
        data = await compress_stream(io.BytesIO(buffered))
        return StagedPayload(compression=CompressionType.GZIP, size=len(data), data=data)
    return StagedPayload(compression=source.compression, size=len(buffered), data=buffered)


def release_source(source: Any) -> None:
    """Close a stream source after staging unless the caller asked to keep it open."""
    if isinstance(source, StreamSource) and not source.leave_open and source.stream is not None:
        close = getattr(source.stream, "close", None)
        if close is not None:
            close()
