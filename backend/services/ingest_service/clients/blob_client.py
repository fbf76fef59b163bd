"""
Blob staging client backed by azure-storage-blob (aio).
"""

from typing import IO, Any

from azure.storage.blob.aio import ContainerClient
from loguru import logger

from services.ingest_service.models.resources import ResourceEntry


class BlobStorageClient:
    """
    Uploads blobs into discovered staging containers.

    Containers that come with a SAS token are accessed with it; containers
    without one are accessed with ``credential`` (an AsyncTokenCredential).
    """

    def __init__(self, credential: Any = None) -> None:
        self._credential = credential

    def _container_client(self, container: ResourceEntry) -> ContainerClient:
        credential = None if container.sas else self._credential
        return ContainerClient.from_container_url(container.url, credential=credential)

    async def upload_blob(
        self,
        container: ResourceEntry,
        blob_name: str,
        data: bytes | IO[bytes],
        length: int | None = None,
    ) -> str:
        """
        Upload data as a block blob, replacing any blob with the same name.

        Args:
            container: Target container
            blob_name: Name of the blob inside the container
            data: Bytes or a readable binary stream
            length: Number of bytes to read from a stream, if known

        Returns:
            URL of the stored blob, with the container's SAS token appended
            when the container has one.

        Raises:
            azure.core.exceptions.AzureError: Any storage failure; the caller
                classifies it.
        """
        async with self._container_client(container) as container_client:
            await container_client.upload_blob(
                name=blob_name,
                data=data,
                length=length,
                overwrite=True,
            )

        logger.debug(f"Uploaded blob {blob_name} to {container}")
        blob_endpoint = f"{container.endpoint}/{blob_name}"
        return f"{blob_endpoint}?{container.sas}" if container.sas else blob_endpoint
