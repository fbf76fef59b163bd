"""
Gzip helpers for staging.

Compression is CPU bound, so the async entry points run it in the default
executor to keep the event loop free for other uploads.
"""

import asyncio
import gzip
from pathlib import Path
from typing import IO

READ_CHUNK_SIZE = 4 * 1024 * 1024


def gzip_file(path: Path) -> bytes:
    with path.open("rb") as f:
        return gzip.compress(f.read())


def gzip_stream(stream: IO[bytes]) -> bytes:
    """Compress everything from the stream's current position to its end."""
    return gzip.compress(stream.read())


async def compress_file(path: Path) -> bytes:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, gzip_file, path)


async def compress_stream(stream: IO[bytes]) -> bytes:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, gzip_stream, stream)


def read_up_to(stream: IO[bytes], max_bytes: int) -> bytes:
    """
    Read until end of stream or until max_bytes have arrived, whichever is first.

    Raw streams may return short reads, so reading continues until one
    returns nothing.
    """
    chunks = []
    remaining = max_bytes
    while remaining > 0:
        chunk = stream.read(min(remaining, READ_CHUNK_SIZE))
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


async def read_stream(stream: IO[bytes], max_bytes: int) -> bytes:
    """Read at most max_bytes from a stream without blocking the event loop."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, read_up_to, stream, max_bytes)
