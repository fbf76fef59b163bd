"""
Ingestion status table client backed by azure-data-tables (aio).

One row per dispatched source, keyed by its source id (used as both partition
and row key). The dispatcher creates the row as Queued; the backend ingestion
service updates it afterwards.
"""

from datetime import datetime, timezone
from typing import Any

from azure.core.exceptions import ResourceExistsError, ResourceNotFoundError
from azure.data.tables import UpdateMode
from azure.data.tables.aio import TableClient
from loguru import logger

from common.exceptions import DuplicateSourceIdError, handle_external_service_error
from services.ingest_service.models.resources import ResourceEntry
from services.ingest_service.models.status import BlobStatus, IngestionStatus


def status_to_entity(status: BlobStatus) -> dict[str, Any]:
    entity: dict[str, Any] = {
        "PartitionKey": status.source_id,
        "RowKey": status.source_id,
        "IngestionSourceId": status.source_id,
        "Status": status.status.value,
        "UpdatedOn": status.updated_at,
    }
    optional = {
        "Database": status.database,
        "Table": status.table,
        "IngestionSourcePath": status.source_path,
        "Details": status.details,
        "ErrorCode": status.error_code,
    }
    entity.update({key: value for key, value in optional.items() if value is not None})
    return entity


def entity_to_status(entity: dict[str, Any]) -> BlobStatus:
    """
    Build a BlobStatus from a status row.

    Unknown backend status values are reported as InProgress, since the
    backend only ever adds non-terminal intermediate states.
    """
    raw_status = entity.get("Status") or IngestionStatus.QUEUED.value
    try:
        status = IngestionStatus.from_service_value(str(raw_status))
    except ValueError:
        logger.warning(f"Unknown ingestion status '{raw_status}' in status table")
        status = IngestionStatus.IN_PROGRESS

    updated_at = entity.get("UpdatedOn")
    if not isinstance(updated_at, datetime):
        updated_at = datetime.now(timezone.utc)

    return BlobStatus(
        source_id=str(entity.get("IngestionSourceId") or entity.get("RowKey")),
        status=status,
        details=entity.get("Details") or None,
        error_code=entity.get("ErrorCode") or None,
        database=entity.get("Database"),
        table=entity.get("Table"),
        source_path=entity.get("IngestionSourcePath"),
        updated_at=updated_at,
    )


class StatusTableClient:
    """Reads and writes ingestion status rows in discovered status tables."""

    def __init__(self, credential: Any = None) -> None:
        self._credential = credential

    def _table_client(self, table: ResourceEntry) -> TableClient:
        credential = None if table.sas else self._credential
        return TableClient.from_table_url(table.url, credential=credential)

    async def create_status(self, table: ResourceEntry, status: BlobStatus) -> None:
        """
        Insert the initial row for a source.

        Raises:
            DuplicateSourceIdError: If a row for this source id already exists.
            IngestServiceError: On any other table failure.
        """
        try:
            async with self._table_client(table) as table_client:
                await table_client.create_entity(entity=status_to_entity(status))
        except ResourceExistsError as e:
            raise DuplicateSourceIdError(status.source_id) from e
        except Exception as e:
            raise handle_external_service_error(
                f"creating status row for {status.source_id}", "status table", e
            )

    async def update_status(self, table: ResourceEntry, status: BlobStatus) -> None:
        try:
            async with self._table_client(table) as table_client:
                await table_client.update_entity(entity=status_to_entity(status), mode=UpdateMode.MERGE)
        except Exception as e:
            raise handle_external_service_error(
                f"updating status row for {status.source_id}", "status table", e
            )

    async def get_status(self, table: ResourceEntry, source_id: str) -> BlobStatus | None:
        """Return the status row of a source, or None if there is none."""
        try:
            async with self._table_client(table) as table_client:
                entity = await table_client.get_entity(partition_key=source_id, row_key=source_id)
        except ResourceNotFoundError:
            return None
        except Exception as e:
            raise handle_external_service_error(
                f"reading status row for {source_id}", "status table", e
            )
        return entity_to_status(dict(entity))
