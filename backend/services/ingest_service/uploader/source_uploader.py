"""
Staging of local sources into blob storage.

SourceUploader validates a source, prepares its payload (compressing it when
allowed), then uploads it through the containers of an UploadContainerPool.
Attempts for one source are strictly sequential; a recoverable failure moves
on to the next container, a permanent one ends the upload at once.

Batch uploads run a fixed number of worker tasks regardless of batch size.
Each source ends up in exactly one of successes, failures or (when the batch
is cancelled before it finished) cancelled.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Iterable

from loguru import logger

from common.config.settings import IngestClientSettings
from common.exceptions import IngestError, UploadError, UploadErrorCode, handle_storage_error
from services.ingest_service.clients.blob_client import BlobStorageClient
from services.ingest_service.models.results import (
    UploadFailure,
    UploadOutcome,
    UploadResults,
    UploadSuccess,
)
from services.ingest_service.uploader.container_pool import UploadContainerPool
from services.ingest_service.uploader.payload import (
    NULL_SOURCE_NAME,
    StagedPayload,
    prepare_payload,
    release_source,
    source_name,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _failure(
    name: str,
    code: UploadErrorCode,
    message: str,
    started_at: datetime,
    exception: BaseException | None = None,
    is_permanent: bool = False,
) -> UploadFailure:
    return UploadFailure(
        source_name=name,
        error_code=code,
        message=message,
        exception=exception,
        is_permanent=is_permanent,
        started_at=started_at,
        completed_at=_utcnow(),
    )


class SourceUploader:
    """
    Uploads FileSource and StreamSource objects to staging containers.

    Args:
        container_pool: Supplies the containers for each source's attempts
        blob_client: Performs the actual blob upload
        settings: Size limits, retry delay and batch concurrency

    Example:
        ```python
        uploader = SourceUploader(pool, BlobStorageClient(credential), settings)
        outcome = await uploader.upload(FileSource("events.csv"))
        if isinstance(outcome, UploadSuccess):
            print(outcome.blob_url, outcome.size_bytes)
        ```
    """

    def __init__(
        self,
        container_pool: UploadContainerPool,
        blob_client: BlobStorageClient,
        settings: IngestClientSettings,
    ) -> None:
        self._container_pool = container_pool
        self._blob_client = blob_client
        self._settings = settings

    async def upload(self, source: Any) -> UploadOutcome:
        """
        Stage a single source.

        Never raises for upload problems: every failure, including invalid
        input and unavailable resources, is returned as an UploadFailure.
        """
        started_at = _utcnow()
        name = NULL_SOURCE_NAME
        try:
            name = source_name(source)
            try:
                payload = await prepare_payload(source, self._settings)
            except UploadError as e:
                logger.warning(f"Rejected upload source {name}: {e.message}")
                return _failure(name, e.code, e.message, started_at, e.internal_error, e.is_permanent)
            return await self._upload_payload(source, name, payload, started_at)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.opt(exception=e).error(f"Unexpected error while uploading {name}: {e}")
            return _failure(
                name,
                UploadErrorCode.UNKNOWN,
                f"{UploadErrorCode.UNKNOWN.description}: {e}",
                started_at,
                e,
                is_permanent=True,
            )
        finally:
            release_source(source)

    async def _upload_payload(
        self,
        source: Any,
        name: str,
        payload: StagedPayload,
        started_at: datetime,
    ) -> UploadOutcome:
        try:
            plan = await self._container_pool.attempt_plan()
        except IngestError as e:
            logger.error(f"No staging containers for {name}: {e.message}")
            return _failure(
                name,
                UploadErrorCode.NO_CONTAINERS_AVAILABLE,
                f"{UploadErrorCode.NO_CONTAINERS_AVAILABLE.description}: {e.message}",
                started_at,
                e,
            )
        if not plan:
            return _failure(
                name,
                UploadErrorCode.NO_CONTAINERS_AVAILABLE,
                UploadErrorCode.NO_CONTAINERS_AVAILABLE.description,
                started_at,
            )

        blob_name = source.blob_name(payload.compression)
        auth_failed: set[str] = set()
        last_error: UploadError | None = None
        attempts = 0

        for attempt, container in enumerate(plan, start=1):
            # A credential problem is not fixed by trying the same container again
            if container.endpoint in auth_failed:
                break
            attempts = attempt
            try:
                with payload.open() as body:
                    blob_url = await self._blob_client.upload_blob(
                        container, blob_name, body, length=payload.size
                    )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                last_error = handle_storage_error(
                    f"uploading {name} to {container} (attempt {attempt}/{len(plan)})", e
                )
                if last_error.is_permanent or not last_error.code.is_retryable:
                    return _failure(
                        name,
                        last_error.code,
                        last_error.message,
                        started_at,
                        e,
                        is_permanent=True,
                    )
                if last_error.code == UploadErrorCode.AUTHENTICATION_FAILED:
                    auth_failed.add(container.endpoint)
                if attempt < len(plan) and self._settings.UPLOAD_RETRY_DELAY_SECONDS > 0:
                    await asyncio.sleep(self._settings.UPLOAD_RETRY_DELAY_SECONDS)
                continue

            logger.info(f"Uploaded {name} to {container} on attempt {attempt} ({payload.size} bytes)")
            return UploadSuccess(
                source_name=name,
                blob_url=blob_url,
                size_bytes=payload.size,
                source_id=source.source_id,
                format=source.format,
                compression=payload.compression,
                started_at=started_at,
                completed_at=_utcnow(),
            )

        if last_error is not None and last_error.code == UploadErrorCode.AUTHENTICATION_FAILED:
            code = UploadErrorCode.AUTHENTICATION_FAILED
        else:
            code = UploadErrorCode.UPLOAD_FAILED
        message = f"Upload of {name} failed after {attempts} attempt(s)"
        if last_error is not None:
            message = f"{message}: {last_error.message}"
        logger.error(message)
        return _failure(
            name,
            code,
            message,
            started_at,
            last_error.internal_error if last_error is not None else None,
        )

    async def upload_many(
        self,
        sources: Iterable[Any],
        cancel_event: asyncio.Event | None = None,
    ) -> UploadResults:
        """
        Stage many sources concurrently.

        Args:
            sources: Sources to upload; None entries fail with SOURCE_IS_NULL
            cancel_event: Setting this event abandons uploads still in flight

        Returns:
            UploadResults with successes and failures in input order. Sources
            abandoned by cancellation are listed by name in ``cancelled``.
        """
        items = list(sources)
        if not items:
            return UploadResults()

        outcomes: list[UploadOutcome | None] = [None] * len(items)
        pending: asyncio.Queue[int] = asyncio.Queue()
        for index in range(len(items)):
            pending.put_nowait(index)

        async def worker() -> None:
            while True:
                try:
                    index = pending.get_nowait()
                except asyncio.QueueEmpty:
                    return
                outcomes[index] = await self.upload(items[index])

        worker_count = min(self._settings.UPLOAD_MAX_CONCURRENCY, len(items))
        workers = [asyncio.create_task(worker()) for _ in range(worker_count)]
        logger.info(f"Uploading {len(items)} sources with {worker_count} workers")

        try:
            await self._wait_for_workers(workers, cancel_event)
        finally:
            for task in workers:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

        cancelled = [source_name(item) for item, outcome in zip(items, outcomes) if outcome is None]
        # Sources whose upload never started still own their streams
        for item, outcome in zip(items, outcomes):
            if outcome is None:
                release_source(item)

        results = UploadResults.from_outcomes(
            (outcome for outcome in outcomes if outcome is not None),
            cancelled=cancelled,
        )
        logger.info(
            f"Batch upload finished: {len(results.successes)} succeeded, "
            f"{len(results.failures)} failed, {len(results.cancelled)} cancelled"
        )
        return results

    @staticmethod
    async def _wait_for_workers(
        workers: list[asyncio.Task],
        cancel_event: asyncio.Event | None,
    ) -> None:
        if cancel_event is None:
            await asyncio.gather(*workers)
            return

        cancel_wait = asyncio.create_task(cancel_event.wait())
        try:
            all_done = asyncio.gather(*workers)
            done, _ = await asyncio.wait({all_done, cancel_wait}, return_when=asyncio.FIRST_COMPLETED)
            if all_done not in done:
                logger.warning("Batch upload cancelled; abandoning in-flight uploads")
                all_done.cancel()
        finally:
            cancel_wait.cancel()
