"""
Tests for the collaborator clients.

Azure SDK clients are replaced with mocks; only the translation between the
pipeline and the SDK is exercised.
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from azure.core.exceptions import ResourceExistsError, ResourceNotFoundError

from common.exceptions import AuthenticationError, DuplicateSourceIdError, IngestServiceError
from services.ingest_service.clients.blob_client import BlobStorageClient
from services.ingest_service.clients.credentials import ProviderTokenCredential, TokenProvider
from services.ingest_service.clients.discovery import (
    GET_IDENTITY_TOKEN_COMMAND,
    GET_INGESTION_RESOURCES_COMMAND,
    CommandResourceDiscovery,
)
from services.ingest_service.clients.queue_client import QueueStorageClient
from services.ingest_service.clients.status_table import (
    StatusTableClient,
    entity_to_status,
    status_to_entity,
)
from services.ingest_service.models.resources import ResourceEntry
from services.ingest_service.models.status import BlobStatus, IngestionStatus


def _async_context(client: MagicMock) -> MagicMock:
    """Make a MagicMock usable as ``async with client``."""
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=None)
    return client


class TestCommandResourceDiscovery:
    """Tests for discovery through management commands."""

    @pytest.mark.asyncio
    async def test_parses_positional_and_named_rows(self):
        """Test that both row shapes are accepted and malformed rows skipped."""
        execute = AsyncMock(
            return_value=[
                ["TempStorage", "https://a.blob.core.windows.net/c1?sig=1"],
                {"ResourceTypeName": "SecuredReadyForAggregationQueue", "StorageRoot": "https://a.queue.core.windows.net/q"},
                ["TempStorage"],
            ]
        )

        rows = await CommandResourceDiscovery(execute).fetch_resources()

        execute.assert_awaited_once_with(GET_INGESTION_RESOURCES_COMMAND)
        assert rows == [
            ("TempStorage", "https://a.blob.core.windows.net/c1?sig=1"),
            ("SecuredReadyForAggregationQueue", "https://a.queue.core.windows.net/q"),
        ]

    @pytest.mark.asyncio
    async def test_command_failure_is_wrapped(self):
        """Test that executor failures become IngestServiceError."""
        execute = AsyncMock(side_effect=RuntimeError("503 from endpoint"))

        with pytest.raises(IngestServiceError, match="resource discovery"):
            await CommandResourceDiscovery(execute).fetch_resources()

    @pytest.mark.asyncio
    async def test_identity_token(self):
        """Test reading the identity token row."""
        execute = AsyncMock(return_value=[{"AuthorizationContext": "ctx-token"}])

        token = await CommandResourceDiscovery(execute).fetch_identity_token()

        execute.assert_awaited_once_with(GET_IDENTITY_TOKEN_COMMAND)
        assert token == "ctx-token"

    @pytest.mark.asyncio
    async def test_missing_identity_token(self):
        """Test that no token row yields None."""
        execute = AsyncMock(return_value=[])
        assert await CommandResourceDiscovery(execute).fetch_identity_token() is None


class TestTokenProvider:
    """Tests for awaiting caller-supplied tokens."""

    @pytest.mark.asyncio
    async def test_returns_token(self):
        """Test a successful token request."""
        provider = TokenProvider(AsyncMock(return_value="bearer"), timeout_seconds=1)
        assert await provider.get_token() == "bearer"

    @pytest.mark.asyncio
    async def test_failure_becomes_authentication_error(self):
        """Test that provider exceptions are wrapped."""
        cause = RuntimeError("refresh token revoked")
        provider = TokenProvider(AsyncMock(side_effect=cause))

        with pytest.raises(AuthenticationError) as exc_info:
            await provider.get_token()

        assert exc_info.value.internal_error is cause

    @pytest.mark.asyncio
    async def test_timeout_becomes_authentication_error(self):
        """Test that a slow provider fails the request."""

        async def slow_token() -> str:
            await asyncio.sleep(10)
            return "late"

        provider = TokenProvider(slow_token, timeout_seconds=0.01)

        with pytest.raises(AuthenticationError, match="timed out"):
            await provider.get_token()

    @pytest.mark.asyncio
    async def test_provider_cancellation_becomes_authentication_error(self):
        """Test that a token request cancelled by the provider fails the operation."""

        async def cancelled_token() -> str:
            raise asyncio.CancelledError()

        provider = TokenProvider(cancelled_token)

        with pytest.raises(AuthenticationError, match="cancelled"):
            await provider.get_token()

    @pytest.mark.asyncio
    async def test_caller_cancellation_propagates(self):
        """Test that cancelling the waiting task is not turned into an error."""
        started = asyncio.Event()

        async def slow_token() -> str:
            started.set()
            await asyncio.sleep(10)
            return "late"

        task = asyncio.create_task(TokenProvider(slow_token).get_token())
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_empty_token_is_rejected(self):
        """Test that an empty token is an authentication failure."""
        provider = TokenProvider(AsyncMock(return_value=""))

        with pytest.raises(AuthenticationError, match="empty"):
            await provider.get_token()

    @pytest.mark.asyncio
    async def test_credential_adapter(self):
        """Test the AsyncTokenCredential adapter."""
        credential = ProviderTokenCredential(TokenProvider(AsyncMock(return_value="bearer")))

        async with credential:
            access_token = await credential.get_token("https://storage.azure.com/.default")

        assert access_token.token == "bearer"
        assert access_token.expires_on > datetime.now(timezone.utc).timestamp()


class TestStatusTableMapping:
    """Tests for translating status rows."""

    def test_round_trip_of_known_fields(self):
        """Test that a status written by the dispatcher reads back the same."""
        status = BlobStatus(
            source_id="s1",
            database="db",
            table="t",
            source_path="https://a.blob.core.windows.net/c/b.csv",
        )

        entity = status_to_entity(status)

        assert entity["PartitionKey"] == entity["RowKey"] == "s1"
        assert entity["Status"] == "Queued"
        assert "Details" not in entity
        assert entity_to_status(entity) == status

    def test_backend_values_are_mapped(self):
        """Test that backend-only states fold into client states."""
        entity = {"PartitionKey": "s1", "RowKey": "s1", "Status": "Pending"}
        assert entity_to_status(entity).status == IngestionStatus.IN_PROGRESS

    def test_unknown_backend_value_is_in_progress(self):
        """Test that unrecognized states are not treated as terminal."""
        entity = {"PartitionKey": "s1", "RowKey": "s1", "Status": "Rerouted"}
        assert entity_to_status(entity).status == IngestionStatus.IN_PROGRESS


class TestAzureClients:
    """Tests for the thin Azure SDK wrappers."""

    @pytest.fixture
    def container(self) -> ResourceEntry:
        return ResourceEntry.from_url("https://acct.blob.core.windows.net/staging?sig=abc")

    @pytest.mark.asyncio
    async def test_blob_upload_returns_url_with_sas(self, container):
        """Test that the stored blob URL carries the container SAS."""
        sdk_client = _async_context(MagicMock())
        sdk_client.upload_blob = AsyncMock()

        with patch(
            "services.ingest_service.clients.blob_client.ContainerClient.from_container_url",
            return_value=sdk_client,
        ) as from_url:
            url = await BlobStorageClient(credential="unused").upload_blob(container, "file_1.csv.gz", b"data", 4)

        assert url == "https://acct.blob.core.windows.net/staging/file_1.csv.gz?sig=abc"
        from_url.assert_called_once_with(container.url, credential=None)
        sdk_client.upload_blob.assert_awaited_once_with(
            name="file_1.csv.gz", data=b"data", length=4, overwrite=True
        )

    @pytest.mark.asyncio
    async def test_blob_upload_uses_credential_without_sas(self):
        """Test that token auth is used for containers without a SAS."""
        container = ResourceEntry.from_url("https://acct.blob.core.windows.net/staging")
        sdk_client = _async_context(MagicMock())
        sdk_client.upload_blob = AsyncMock()
        credential = object()

        with patch(
            "services.ingest_service.clients.blob_client.ContainerClient.from_container_url",
            return_value=sdk_client,
        ) as from_url:
            url = await BlobStorageClient(credential=credential).upload_blob(container, "b.csv", b"x")

        assert url == "https://acct.blob.core.windows.net/staging/b.csv"
        from_url.assert_called_once_with(container.url, credential=credential)

    @pytest.mark.asyncio
    async def test_queue_send_message(self):
        """Test that messages are posted through a base64 encoding queue client."""
        queue = ResourceEntry.from_url("https://acct.queue.core.windows.net/q?sig=q")
        sdk_client = _async_context(MagicMock())
        sdk_client.send_message = AsyncMock()

        with patch(
            "services.ingest_service.clients.queue_client.QueueClient.from_queue_url",
            return_value=sdk_client,
        ) as from_url:
            await QueueStorageClient().send_message(queue, '{"Id": "s1"}')

        sdk_client.send_message.assert_awaited_once_with('{"Id": "s1"}')
        assert from_url.call_args.args == (queue.url,)
        assert from_url.call_args.kwargs["message_encode_policy"] is not None

    @pytest.mark.asyncio
    async def test_status_table_create_conflict_is_duplicate(self):
        """Test that an existing row maps to DuplicateSourceIdError."""
        table = ResourceEntry.from_url("https://acct.table.core.windows.net/status?sig=t")
        sdk_client = _async_context(MagicMock())
        sdk_client.create_entity = AsyncMock(side_effect=ResourceExistsError("exists"))

        with patch(
            "services.ingest_service.clients.status_table.TableClient.from_table_url",
            return_value=sdk_client,
        ):
            with pytest.raises(DuplicateSourceIdError):
                await StatusTableClient().create_status(table, BlobStatus(source_id="s1"))

    @pytest.mark.asyncio
    async def test_status_table_missing_row_is_none(self):
        """Test that a missing row reads as None."""
        table = ResourceEntry.from_url("https://acct.table.core.windows.net/status?sig=t")
        sdk_client = _async_context(MagicMock())
        sdk_client.get_entity = AsyncMock(side_effect=ResourceNotFoundError("missing"))

        with patch(
            "services.ingest_service.clients.status_table.TableClient.from_table_url",
            return_value=sdk_client,
        ):
            assert await StatusTableClient().get_status(table, "s1") is None

    @pytest.mark.asyncio
    async def test_status_table_read(self):
        """Test that a row is read into a BlobStatus."""
        table = ResourceEntry.from_url("https://acct.table.core.windows.net/status?sig=t")
        sdk_client = _async_context(MagicMock())
        sdk_client.get_entity = AsyncMock(
            return_value={"PartitionKey": "s1", "RowKey": "s1", "Status": "Succeeded", "Details": "ok"}
        )

        with patch(
            "services.ingest_service.clients.status_table.TableClient.from_table_url",
            return_value=sdk_client,
        ):
            status = await StatusTableClient().get_status(table, "s1")

        assert status.status == IngestionStatus.SUCCEEDED
        assert status.details == "ok"
