"""
Ingestion dispatch.

Announces a staged blob to the ingestion service by posting an
IngestionMessage to one of the discovered ingestion queues. When the caller
asks for status reporting to a table, the Queued status row is written
before the message is posted, so a status poll issued right after dispatch
always finds it.
"""

import asyncio
from dataclasses import dataclass

from loguru import logger

from common.config.settings import IngestClientSettings
from common.exceptions import (
    DuplicateSourceIdError,
    IngestClientError,
    IngestError,
    IngestServiceError,
    InvalidStatusTransitionError,
    handle_external_service_error,
)
from common.retry import RetryConfig, calculate_delay
from services.ingest_service.clients.queue_client import QueueStorageClient
from services.ingest_service.clients.status_table import StatusTableClient
from services.ingest_service.models.ingestion import (
    IngestionMessage,
    IngestionProperties,
    StatusTableReference,
)
from services.ingest_service.models.resources import ResourceEntry, ResourceType
from services.ingest_service.models.results import UploadSuccess
from services.ingest_service.models.sources import BlobSource, CompressionType
from services.ingest_service.models.status import BlobStatus, IngestionStatus
from services.ingest_service.resources.manager import ResourceManager


@dataclass
class _DispatchRecord:
    status: BlobStatus
    table: ResourceEntry | None = None


class IngestionDispatcher:
    """
    Posts ingestion messages and tracks the status of what it dispatched.

    Args:
        resource_manager: Source of ingestion queues and status tables
        queue_client: Posts messages
        status_table: Writes and reads status rows
        settings: Queue post attempts

    Example:
        ```python
        source_id = await dispatcher.dispatch(upload_success, IngestionProperties(
            database="telemetry", table="Events", report_method=ReportMethod.TABLE,
        ))
        status = await dispatcher.get_status(source_id)  # Queued
        ```
    """

    def __init__(
        self,
        resource_manager: ResourceManager,
        queue_client: QueueStorageClient,
        status_table: StatusTableClient,
        settings: IngestClientSettings,
    ) -> None:
        self._resource_manager = resource_manager
        self._queue_client = queue_client
        self._status_table = status_table
        self._queue_retry = RetryConfig(max_attempts=settings.QUEUE_POST_MAX_ATTEMPTS)
        self._dispatched: dict[str, _DispatchRecord] = {}

    async def dispatch(
        self,
        staged: BlobSource | UploadSuccess,
        properties: IngestionProperties,
    ) -> str:
        """
        Announce a staged blob for ingestion.

        Args:
            staged: The blob to ingest, as a BlobSource or an upload outcome
            properties: Target table and ingestion options

        Returns:
            The source id, the correlation key for status lookups.

        Raises:
            DuplicateSourceIdError: If this source id was dispatched before.
            IngestServiceError: If no queue accepted the message or the
                status row could not be written.
        """
        blob = staged.as_blob_source() if isinstance(staged, UploadSuccess) else staged
        source_id = blob.source_id
        if source_id in self._dispatched:
            raise DuplicateSourceIdError(source_id)

        status = BlobStatus(
            source_id=source_id,
            database=properties.database,
            table=properties.table,
            source_path=blob.url_without_secrets,
        )
        # Reserve the id before the first await so concurrent duplicates are rejected
        record = _DispatchRecord(status=status)
        self._dispatched[source_id] = record
        row_written = False

        try:
            identity_token = await self._resource_manager.get_identity_token()

            table_reference = None
            if properties.reports_to_table:
                record.table = await self._resource_manager.get_resource(
                    ResourceType.INGESTIONS_STATUS_TABLE
                )
                await self._status_table.create_status(record.table, status)
                row_written = True
                table_reference = StatusTableReference(
                    table_connection_string=record.table.url,
                    partition_key=source_id,
                    row_key=source_id,
                )

            message = self._build_message(blob, properties, identity_token, table_reference)
            await self._post(message)
        except asyncio.CancelledError:
            if not row_written:
                del self._dispatched[source_id]
            raise
        except Exception as e:
            if not row_written:
                del self._dispatched[source_id]
            else:
                await self._mark_failed(record, e)
            raise

        logger.info(
            f"Dispatched {blob.url_without_secrets} as {source_id} "
            f"to {properties.database}.{properties.table}"
        )
        return source_id

    async def get_status(self, source_id: str) -> BlobStatus:
        """
        Return the latest known status of a dispatched source.

        Without table reporting the status stays Queued: the backend does not
        report it anywhere this client can read.

        Raises:
            IngestClientError: If the source id was not dispatched by this dispatcher.
            IngestServiceError: If the status table cannot be read.
        """
        record = self._dispatched.get(source_id)
        if record is None:
            raise IngestClientError(f"Source id '{source_id}' was not dispatched")
        if record.table is None:
            return record.status

        reported = await self._status_table.get_status(record.table, source_id)
        if reported is None:
            return record.status
        try:
            record.status = record.status.advance(
                reported.status, details=reported.details, error_code=reported.error_code
            )
        except InvalidStatusTransitionError as e:
            logger.debug(f"Ignoring out-of-order status for {source_id}: {e.message}")
        return record.status

    def forget(self, source_id: str) -> bool:
        """
        Stop tracking a dispatched source.

        Callers release ids once they have seen a terminal status. Afterwards
        get_status raises for the id and, without table reporting, the id may
        be dispatched again.

        Returns:
            True if the id was tracked.
        """
        return self._dispatched.pop(source_id, None) is not None

    @staticmethod
    def _build_message(
        blob: BlobSource,
        properties: IngestionProperties,
        identity_token: str | None,
        table_reference: StatusTableReference | None,
    ) -> IngestionMessage:
        additional_properties = properties.service_properties(
            blob.format, authorization_context=identity_token
        )
        if blob.compression != CompressionType.NONE:
            additional_properties["compressionType"] = blob.compression.value
        return IngestionMessage(
            id=blob.source_id,
            blob_path=blob.blob_url,
            raw_data_size=blob.exact_size,
            database_name=properties.database,
            table_name=properties.table,
            flush_immediately=properties.flush_immediately,
            report_level=properties.report_level,
            report_method=properties.report_method,
            additional_properties=additional_properties,
            ingestion_status_in_table=table_reference,
        )

    async def _post(self, message: IngestionMessage) -> None:
        queues = await self._resource_manager.get_resources(
            ResourceType.SECURED_READY_FOR_AGGREGATION_QUEUE
        )
        if not queues:
            raise IngestServiceError("No ingestion queues are available")

        content = message.to_json()
        last_error: Exception | None = None
        attempts = self._queue_retry.max_attempts
        for attempt in range(attempts):
            queue = queues[attempt % len(queues)]
            try:
                await self._queue_client.send_message(queue, content)
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                last_error = e
                logger.warning(
                    f"Posting message {message.id} to {queue} failed "
                    f"(attempt {attempt + 1}/{attempts}): {e}"
                )
                if attempt < attempts - 1:
                    await asyncio.sleep(calculate_delay(attempt, self._queue_retry))

        raise handle_external_service_error(
            f"posting ingestion message {message.id}", "ingestion queue", last_error
        )

    async def _mark_failed(self, record: _DispatchRecord, error: Exception) -> None:
        details = error.message if isinstance(error, IngestError) else str(error)
        failed = record.status.advance(IngestionStatus.FAILED, details=details)
        try:
            await self._status_table.update_status(record.table, failed)
        except IngestError as e:
            logger.error(f"Could not mark {record.status.source_id} as failed: {e.message}")
        record.status = failed
