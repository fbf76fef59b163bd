"""
Collaborator clients: resource discovery, credentials and the Azure Storage
services (blobs, queues, tables) used by the ingestion pipeline.
"""

from .blob_client import BlobStorageClient
from .credentials import ProviderTokenCredential, TokenProvider
from .discovery import CommandResourceDiscovery, ResourceDiscovery
from .queue_client import QueueStorageClient
from .status_table import StatusTableClient

__all__ = [
    "BlobStorageClient",
    "CommandResourceDiscovery",
    "ProviderTokenCredential",
    "QueueStorageClient",
    "ResourceDiscovery",
    "StatusTableClient",
    "TokenProvider",
]
