"""
Status aggregation over dispatched sources.

Pure functions over a snapshot of BlobStatus values, meant to be called from a
caller-driven polling loop. None or an empty collection is treated as "no
statuses"; none of the functions mutates its input.

Example:
    ```python
    statuses = await client.get_statuses(source_ids)
    while is_in_progress(statuses):
        await asyncio.sleep(30)
        statuses = await client.get_statuses(source_ids)
    if has_failed_results(statuses):
        for failed in get_failed_results(statuses):
            logger.error(f"{failed.source_id}: {failed.details}")
    ```
"""

from typing import Iterable

from services.ingest_service.models.status import BlobStatus, IngestionStatus

_IN_PROGRESS = frozenset({IngestionStatus.QUEUED, IngestionStatus.IN_PROGRESS})


def _items(statuses: Iterable[BlobStatus] | None) -> list[BlobStatus]:
    return list(statuses) if statuses is not None else []


def is_completed(statuses: Iterable[BlobStatus] | None) -> bool:
    """True if there is at least one status and every status is terminal."""
    items = _items(statuses)
    return bool(items) and all(item.status.is_terminal for item in items)


def is_in_progress(statuses: Iterable[BlobStatus] | None) -> bool:
    return any(item.status in _IN_PROGRESS for item in _items(statuses))


def has_failed_results(statuses: Iterable[BlobStatus] | None) -> bool:
    return any(item.status == IngestionStatus.FAILED for item in _items(statuses))


def get_failed_results(statuses: Iterable[BlobStatus] | None) -> list[BlobStatus]:
    return [item for item in _items(statuses) if item.status == IngestionStatus.FAILED]


def get_succeeded_results(statuses: Iterable[BlobStatus] | None) -> list[BlobStatus]:
    return [item for item in _items(statuses) if item.status == IngestionStatus.SUCCEEDED]
