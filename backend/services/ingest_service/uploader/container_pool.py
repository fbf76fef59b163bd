"""
Rotating pool of staging containers.
"""

from services.ingest_service.models.resources import ResourceEntry, ResourceType
from services.ingest_service.resources.manager import ResourceManager


class UploadContainerPool:
    """
    Hands out the containers one source's upload attempts go through.

    Each plan starts at the next round-robin position of the current resource
    snapshot and cycles through the containers, wrapping around when there
    are fewer containers than attempts. With containers [A, B] and three
    attempts, consecutive plans are A->B->A and B->A->B.

    Args:
        resource_manager: Source of the TempStorage containers
        max_attempts: Attempts per source
    """

    def __init__(self, resource_manager: ResourceManager, max_attempts: int) -> None:
        self._resource_manager = resource_manager
        self.max_attempts = max_attempts

    async def attempt_plan(self) -> list[ResourceEntry]:
        """
        Return the container for each attempt, in order.

        An empty list means no container is available.

        Raises:
            ServiceUnavailableError: If resources were never discovered and
                discovery fails.
        """
        containers = await self._resource_manager.get_resources(ResourceType.TEMP_STORAGE)
        if not containers:
            return []
        return [containers[attempt % len(containers)] for attempt in range(self.max_attempts)]
