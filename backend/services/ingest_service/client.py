"""
Queued ingestion client.

Ties the pipeline together for callers: local sources are staged by the
SourceUploader, announced by the IngestionDispatcher and polled through
``get_statuses``. The pieces share one ResourceManager so staging and
dispatch rotate through the same discovered resources.

Example:
    ```python
    client = create_queued_ingest_client(kusto_admin.execute, auth.get_storage_token)
    props = IngestionProperties(database="telemetry", table="Events",
                                report_method=ReportMethod.TABLE)
    async with client:
        source_id = await client.ingest_from_file("events.csv", props)
        statuses = await client.get_statuses([source_id])
    ```
"""

import asyncio
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable

from loguru import logger

from common.config import get_settings
from common.config.settings import IngestClientSettings
from common.exceptions import IngestError, UploadError, UploadErrorCode
from services.ingest_service.clients.blob_client import BlobStorageClient
from services.ingest_service.clients.credentials import ProviderTokenCredential, TokenProvider
from services.ingest_service.clients.discovery import CommandExecutor, CommandResourceDiscovery
from services.ingest_service.clients.queue_client import QueueStorageClient
from services.ingest_service.clients.status_table import StatusTableClient
from services.ingest_service.dispatcher import IngestionDispatcher
from services.ingest_service.models.ingestion import IngestionProperties
from services.ingest_service.models.results import IngestResults, UploadFailure, UploadSuccess
from services.ingest_service.models.sources import BlobSource, FileSource, StreamSource
from services.ingest_service.models.status import BlobStatus
from services.ingest_service.resources.manager import ResourceManager
from services.ingest_service.uploader.container_pool import UploadContainerPool
from services.ingest_service.uploader.source_uploader import SourceUploader


def _raise_for_failure(outcome: UploadFailure) -> None:
    raise UploadError(
        code=outcome.error_code,
        message=outcome.message,
        internal_error=outcome.exception,
        is_permanent=outcome.is_permanent,
        source_name=outcome.source_name,
    )


class QueuedIngestClient:
    """
    Stages and dispatches data for queued ingestion.

    Args:
        resource_manager: Shared resource cache
        uploader: Stages local sources
        dispatcher: Announces staged blobs and tracks their status
        credential: Token credential to close with the client, if any
    """

    def __init__(
        self,
        resource_manager: ResourceManager,
        uploader: SourceUploader,
        dispatcher: IngestionDispatcher,
        credential: ProviderTokenCredential | None = None,
    ) -> None:
        self.resource_manager = resource_manager
        self._uploader = uploader
        self._dispatcher = dispatcher
        self._credential = credential

    async def ingest_from_blob(self, blob: BlobSource, properties: IngestionProperties) -> str:
        """Dispatch data that is already in blob storage. Returns the source id."""
        return await self._dispatcher.dispatch(blob, properties)

    async def ingest_from_file(
        self,
        source: FileSource | str | Path,
        properties: IngestionProperties,
    ) -> str:
        """
        Stage a local file and dispatch it.

        A plain path is wrapped in a FileSource using ``properties.format``.

        Raises:
            UploadError: If staging failed; carries the upload error code.
            IngestServiceError: If dispatch failed.
        """
        if not isinstance(source, FileSource):
            source = FileSource(source, format=properties.format)
        return await self._stage_and_dispatch(source, properties)

    async def ingest_from_stream(self, source: StreamSource, properties: IngestionProperties) -> str:
        return await self._stage_and_dispatch(source, properties)

    async def _stage_and_dispatch(self, source: Any, properties: IngestionProperties) -> str:
        outcome = await self._uploader.upload(source)
        if isinstance(outcome, UploadFailure):
            _raise_for_failure(outcome)
        return await self._dispatcher.dispatch(outcome, properties)

    async def ingest_many(
        self,
        sources: Iterable[FileSource | StreamSource],
        properties: IngestionProperties,
        cancel_event: asyncio.Event | None = None,
    ) -> IngestResults:
        """
        Stage many sources concurrently, then dispatch every staged one.

        Sources that fail to stage or to dispatch are reported as failures;
        they never prevent the others from being ingested.
        """
        uploads = await self._uploader.upload_many(sources, cancel_event=cancel_event)
        dispatched = await asyncio.gather(
            *(self._dispatch_success(success, properties) for success in uploads.successes)
        )

        return IngestResults.from_outcomes([*uploads.failures, *dispatched], cancelled=uploads.cancelled)

    async def _dispatch_success(
        self,
        success: UploadSuccess,
        properties: IngestionProperties,
    ) -> str | UploadFailure:
        try:
            return await self._dispatcher.dispatch(success, properties)
        except IngestError as e:
            logger.error(f"Dispatching {success.source_name} failed: {e.message}")
            return UploadFailure(
                source_name=success.source_name,
                error_code=UploadErrorCode.UPLOAD_FAILED,
                message=f"Staged but not dispatched: {e.message}",
                exception=e,
                is_permanent=e.is_permanent,
                started_at=success.started_at,
            )

    async def get_statuses(self, source_ids: Iterable[str]) -> list[BlobStatus]:
        """Return the current status of each source id, in the order given."""
        return list(await asyncio.gather(*(self._dispatcher.get_status(sid) for sid in source_ids)))

    def release_completed(self, statuses: Iterable[BlobStatus]) -> list[str]:
        """
        Stop tracking every source whose status is terminal.

        Returns:
            The source ids that were released.
        """
        released = []
        for status in statuses:
            if status.status.is_terminal and self._dispatcher.forget(status.source_id):
                released.append(status.source_id)
        return released

    async def close(self) -> None:
        if self._credential is not None:
            await self._credential.close()

    async def __aenter__(self) -> "QueuedIngestClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()


def create_queued_ingest_client(
    execute_command: CommandExecutor,
    token_provider: Callable[[], Awaitable[str]],
    settings: IngestClientSettings | None = None,
) -> QueuedIngestClient:
    """
    Build a QueuedIngestClient with Azure Storage collaborators.

    Args:
        execute_command: Coroutine function running management commands
            against the ingestion endpoint (used for resource discovery)
        token_provider: Coroutine function returning a bearer token for
            storage resources discovered without a SAS token
        settings: Client settings; the process-wide settings when omitted

    Returns:
        A ready QueuedIngestClient. Resources are discovered on first use.
    """
    settings = settings or get_settings()
    credential = ProviderTokenCredential(
        TokenProvider(token_provider, timeout_seconds=settings.TOKEN_TIMEOUT_SECONDS)
    )
    resource_manager = ResourceManager(CommandResourceDiscovery(execute_command), settings)
    uploader = SourceUploader(
        UploadContainerPool(resource_manager, settings.UPLOAD_MAX_ATTEMPTS),
        BlobStorageClient(credential),
        settings,
    )
    dispatcher = IngestionDispatcher(
        resource_manager,
        QueueStorageClient(credential),
        StatusTableClient(credential),
        settings,
    )
    logger.info(f"Created queued ingest client ({settings.SERVICE_NAME})")
    return QueuedIngestClient(resource_manager, uploader, dispatcher, credential)
