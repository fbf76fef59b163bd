"""
Queued Ingestion Service Package

Client-side pipeline for queued ingestion into a hosted analytics data store:
discovering ingestion resources, staging local data to blob storage,
announcing it on ingestion queues and tracking per-source status.

Package Structure:
    - models/: Pydantic models (resources, sources, results, statuses, messages)
    - resources/: ResourceCache and ResourceManager
    - uploader/: UploadContainerPool and SourceUploader
    - dispatcher.py: IngestionDispatcher
    - status.py: Status aggregation functions
    - clients/: Discovery, credential and Azure Storage collaborators
    - client.py: QueuedIngestClient facade

Usage:
    ```python
    from services.ingest_service import create_queued_ingest_client

    client = create_queued_ingest_client(execute_command, get_token)
    ```
"""

from services.ingest_service.client import QueuedIngestClient, create_queued_ingest_client

__all__ = ["QueuedIngestClient", "create_queued_ingest_client"]
