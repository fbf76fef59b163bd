"""
Pytest configuration and fixtures for the ingestion pipeline tests.

All collaborators (discovery, blob storage, queues, status table) are faked;
no test touches the network.
"""

import asyncio
from typing import Any

import pytest

from common.config.settings import IngestClientSettings
from services.ingest_service.models.resources import ResourceEntry
from services.ingest_service.models.status import BlobStatus

CONTAINER_A = "https://acct1.blob.core.windows.net/staging-a?sv=2024&sig=aaa"
CONTAINER_B = "https://acct2.blob.core.windows.net/staging-b?sv=2024&sig=bbb"
QUEUE_1 = "https://acct1.queue.core.windows.net/readyforaggregation-secured-1?sv=2024&sig=q1"
QUEUE_2 = "https://acct2.queue.core.windows.net/readyforaggregation-secured-2?sv=2024&sig=q2"
STATUS_TABLE = "https://acct1.table.core.windows.net/ingestionsstatus20260101?sv=2024&sig=t1"
FAILED_QUEUE = "https://acct1.queue.core.windows.net/failedingestions?sv=2024&sig=f1"
SUCCESS_QUEUE = "https://acct1.queue.core.windows.net/successfulingestions?sv=2024&sig=s1"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeDiscovery:
    """Resource discovery returning fixed rows; can be made to fail or to block."""

    def __init__(self, rows: list[tuple[str, str]], token: str | None = "identity-token") -> None:
        self.rows = rows
        self.token = token
        self.calls = 0
        self.error: Exception | None = None
        self.gate: asyncio.Event | None = None

    async def fetch_resources(self) -> list[tuple[str, str]]:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return list(self.rows)

    async def fetch_identity_token(self) -> str | None:
        return self.token


class FakeBlobClient:
    """
    Blob client recording every attempt.

    ``failures`` maps a container name to the exception every upload to it raises.
    ``block`` makes every upload after the first ``block_after`` wait forever.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.uploaded: dict[str, bytes] = {}
        self.failures: dict[str, Exception] = {}
        self.delay = 0.0
        self.in_flight = 0
        self.max_in_flight = 0
        self.block_after: int | None = None

    async def upload_blob(self, container: ResourceEntry, blob_name: str, data: Any, length: int | None = None) -> str:
        self.calls.append((container.name, blob_name))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.block_after is not None and len(self.calls) > self.block_after:
                await asyncio.Event().wait()
            if self.delay:
                await asyncio.sleep(self.delay)
            error = self.failures.get(container.name)
            if error is not None:
                raise error
            self.uploaded[blob_name] = data if isinstance(data, bytes) else data.read()
        finally:
            self.in_flight -= 1
        return f"{container.endpoint}/{blob_name}?{container.sas}"


class FakeQueueClient:
    def __init__(self, events: list[str]) -> None:
        self.events = events
        self.messages: list[tuple[str, str]] = []
        self.failures: list[Exception] = []
        self.always_fail: Exception | None = None

    async def send_message(self, queue: ResourceEntry, content: str) -> None:
        self.events.append("send_message")
        if self.always_fail is not None:
            raise self.always_fail
        if self.failures:
            raise self.failures.pop(0)
        self.messages.append((queue.name, content))


class FakeStatusTable:
    def __init__(self, events: list[str]) -> None:
        self.events = events
        self.rows: dict[str, BlobStatus] = {}
        self.create_error: Exception | None = None

    async def create_status(self, table: ResourceEntry, status: BlobStatus) -> None:
        self.events.append("create_status")
        if self.create_error is not None:
            raise self.create_error
        self.rows[status.source_id] = status

    async def update_status(self, table: ResourceEntry, status: BlobStatus) -> None:
        self.events.append("update_status")
        self.rows[status.source_id] = status

    async def get_status(self, table: ResourceEntry, source_id: str) -> BlobStatus | None:
        self.events.append("get_status")
        return self.rows.get(source_id)


@pytest.fixture
def settings() -> IngestClientSettings:
    """Return settings with short lifetimes and no retry delays."""
    return IngestClientSettings(
        RESOURCE_REFRESH_INTERVAL_SECONDS=60,
        RESOURCE_REFRESH_ON_FAILURE_SECONDS=30,
        DISCOVERY_MAX_ATTEMPTS=1,
        UPLOAD_MAX_ATTEMPTS=3,
        UPLOAD_RETRY_DELAY_SECONDS=0,
        UPLOAD_MAX_CONCURRENCY=2,
        UPLOAD_MAX_SIZE_BYTES=64 * 1024 * 1024,
        COMPRESSION_MAX_SIZE_BYTES=32 * 1024 * 1024,
        QUEUE_POST_MAX_ATTEMPTS=2,
    )


@pytest.fixture
def resource_rows() -> list[tuple[str, str]]:
    """Return discovery rows for two containers, two queues and a status table."""
    return [
        ("TempStorage", CONTAINER_A),
        ("TempStorage", CONTAINER_B),
        ("SecuredReadyForAggregationQueue", QUEUE_1),
        ("SecuredReadyForAggregationQueue", QUEUE_2),
        ("IngestionsStatusTable", STATUS_TABLE),
        ("FailedIngestionsQueue", FAILED_QUEUE),
        ("SuccessfulIngestionsQueue", SUCCESS_QUEUE),
    ]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def discovery(resource_rows) -> FakeDiscovery:
    return FakeDiscovery(resource_rows)


@pytest.fixture
def resource_manager(discovery, settings, clock):
    from services.ingest_service.resources.manager import ResourceManager

    return ResourceManager(discovery, settings, clock=clock)


@pytest.fixture
def blob_client() -> FakeBlobClient:
    return FakeBlobClient()


@pytest.fixture
def uploader(resource_manager, blob_client, settings):
    from services.ingest_service.uploader.container_pool import UploadContainerPool
    from services.ingest_service.uploader.source_uploader import SourceUploader

    pool = UploadContainerPool(resource_manager, settings.UPLOAD_MAX_ATTEMPTS)
    return SourceUploader(pool, blob_client, settings)


@pytest.fixture
def events() -> list[str]:
    """Shared call log of the queue and status table fakes."""
    return []


@pytest.fixture
def queue_client(events) -> FakeQueueClient:
    return FakeQueueClient(events)


@pytest.fixture
def status_table(events) -> FakeStatusTable:
    return FakeStatusTable(events)


@pytest.fixture
def dispatcher(resource_manager, queue_client, status_table, settings):
    from services.ingest_service.dispatcher import IngestionDispatcher

    return IngestionDispatcher(resource_manager, queue_client, status_table, settings)


@pytest.fixture
def csv_file(tmp_path):
    """Return a small CSV file on disk."""
    path = tmp_path / "events.csv"
    path.write_text("id,name\n1,alpha\n2,beta\n")
    return path
