"""
Ingestion resource manager.

Discovers the queues, staging containers and status tables the service exposes
for queued ingestion, caches them as an immutable ResourceSet and hands them
out in round-robin order per resource type.

Refresh Policy:
    - A snapshot older than RESOURCE_REFRESH_INTERVAL_SECONDS is refreshed
      before it is served
    - Concurrent callers that find the cache stale share a single in-flight
      refresh task instead of each calling discovery
    - Cold cache: a discovery failure propagates as ServiceUnavailableError
    - Warm cache: a discovery failure is logged and the previous snapshot keeps
      being served; discovery is not retried until
      RESOURCE_REFRESH_ON_FAILURE_SECONDS have passed
"""

import asyncio
import time
from typing import Callable

from loguru import logger

from common.config.settings import IngestClientSettings
from common.exceptions import IngestServiceError, ServiceUnavailableError
from common.retry import RetryConfig, retry_async
from services.ingest_service.clients.discovery import ResourceDiscovery
from services.ingest_service.models.resources import ResourceEntry, ResourceSet, ResourceType
from services.ingest_service.resources.cache import ResourceCache


class ResourceManager:
    """
    Caches discovered ingestion resources and rotates through them.

    Args:
        discovery: Collaborator returning resource rows and the identity token
        settings: Client settings (refresh intervals, discovery attempts)
        clock: Monotonic clock, injectable for tests

    Example:
        ```python
        manager = ResourceManager(CommandResourceDiscovery(execute), settings)
        queue = await manager.get_resource(ResourceType.SECURED_READY_FOR_AGGREGATION_QUEUE)
        containers = await manager.get_resources(ResourceType.TEMP_STORAGE)
        ```
    """

    def __init__(
        self,
        discovery: ResourceDiscovery,
        settings: IngestClientSettings,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._discovery = discovery
        self._cache = ResourceCache(
            ttl_seconds=settings.RESOURCE_REFRESH_INTERVAL_SECONDS,
            failure_backoff_seconds=settings.RESOURCE_REFRESH_ON_FAILURE_SECONDS,
            clock=clock,
        )
        self._retry_config = RetryConfig(max_attempts=settings.DISCOVERY_MAX_ATTEMPTS)
        self._refresh_task: asyncio.Task | None = None

    async def get_snapshot(self) -> ResourceSet:
        """
        Return the current ResourceSet, refreshing it first if it is stale.

        Raises:
            ServiceUnavailableError: If the cache is cold and discovery failed.
        """
        if self._cache.is_stale():
            return await self._refresh_shared()
        return self._cache.snapshot

    async def refresh(self) -> ResourceSet:
        """Force a refresh, joining one that is already running."""
        return await self._refresh_shared()

    async def get_resource(self, resource_type: ResourceType) -> ResourceEntry:
        """
        Return the next entry of a resource type in round-robin order.

        Raises:
            ServiceUnavailableError: If the cache is cold and discovery failed.
            IngestServiceError: If the service exposes no resource of this type.
        """
        snapshot = await self.get_snapshot()
        entry = snapshot.next_entry(resource_type)
        if entry is None:
            raise IngestServiceError(f"No {resource_type.value} resources are available")
        return entry

    async def get_resources(self, resource_type: ResourceType) -> list[ResourceEntry]:
        """
        Return every entry of a type, starting at the next round-robin position.

        An empty list means the service exposes none; callers decide whether
        that is an error.
        """
        snapshot = await self.get_snapshot()
        return snapshot.rotation(resource_type)

    async def get_identity_token(self) -> str | None:
        snapshot = await self.get_snapshot()
        return snapshot.identity_token

    async def _refresh_shared(self) -> ResourceSet:
        task = self._refresh_task
        if task is None or task.done():
            task = asyncio.create_task(self._refresh())
            self._refresh_task = task
        # shield: one caller being cancelled must not cancel the others' refresh
        return await asyncio.shield(task)

    async def _refresh(self) -> ResourceSet:
        try:
            snapshot = await retry_async(
                self._discover,
                self._retry_config,
                operation_name="Ingestion resource discovery",
            )
        except Exception as e:
            self._cache.record_failure()
            previous = self._cache.snapshot
            if previous is None:
                raise ServiceUnavailableError(
                    "Ingestion resources could not be discovered", internal_error=e
                ) from e
            logger.warning(
                f"Refreshing ingestion resources failed, serving previous resources: {e}"
            )
            return previous

        self._cache.swap(snapshot)
        logger.info(f"Refreshed ingestion resources: {snapshot!r}")
        return snapshot

    async def _discover(self) -> ResourceSet:
        rows = await self._discovery.fetch_resources()
        identity_token = await self._discovery.fetch_identity_token()
        snapshot = ResourceSet.from_rows(rows, fetched_at=self._cache.now(), identity_token=identity_token)
        if not any(snapshot.has(resource_type) for resource_type in ResourceType):
            raise IngestServiceError("Resource discovery returned no usable resources")
        return snapshot
