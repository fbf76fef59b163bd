"""
Ingestion queue client backed by azure-storage-queue (aio).
"""

from typing import Any

from azure.storage.queue import TextBase64EncodePolicy
from azure.storage.queue.aio import QueueClient
from loguru import logger

from services.ingest_service.models.resources import ResourceEntry


class QueueStorageClient:
    """
    Posts ingestion messages to discovered queues.

    Messages are base64 encoded, which is what the ingestion service reads.
    """

    def __init__(self, credential: Any = None) -> None:
        self._credential = credential

    async def send_message(self, queue: ResourceEntry, content: str) -> None:
        """
        Post one message.

        Raises:
            azure.core.exceptions.AzureError: Any queue failure.
        """
        credential = None if queue.sas else self._credential
        queue_client = QueueClient.from_queue_url(
            queue.url,
            credential=credential,
            message_encode_policy=TextBase64EncodePolicy(),
        )
        async with queue_client:
            await queue_client.send_message(content)
        logger.debug(f"Posted ingestion message to {queue}")
