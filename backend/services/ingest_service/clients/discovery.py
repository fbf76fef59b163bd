"""
Resource discovery through the service's administrative commands.

The query/command protocol itself is not implemented here: the caller supplies
an async ``execute_command`` callable that runs a management command against
the ingestion endpoint and returns its primary result rows.
"""

from typing import Any, Awaitable, Callable, Iterable, Mapping, Protocol, Sequence

from loguru import logger

from common.exceptions import handle_external_service_error

GET_INGESTION_RESOURCES_COMMAND = ".get ingestion resources"
GET_IDENTITY_TOKEN_COMMAND = ".get kusto identity token"

CommandExecutor = Callable[[str], Awaitable[Iterable[Any]]]


class ResourceDiscovery(Protocol):
    """What the resource manager needs from a discovery collaborator."""

    async def fetch_resources(self) -> list[tuple[str, str]]:
        """Return rows of (resource type name, resource URL)."""
        ...

    async def fetch_identity_token(self) -> str | None:
        """Return the service identity token, or None if the service issues none."""
        ...


def _cell(row: Any, name: str, index: int) -> Any:
    if isinstance(row, Mapping):
        return row.get(name)
    if isinstance(row, Sequence) and len(row) > index:
        return row[index]
    return None


class CommandResourceDiscovery:
    """
    Discovers ingestion resources by running management commands.

    Args:
        execute_command: Coroutine function taking a command text and
            returning result rows. Rows may be sequences (positional columns)
            or mappings keyed by column name.

    Example:
        ```python
        discovery = CommandResourceDiscovery(kusto_admin.execute)
        rows = await discovery.fetch_resources()
        # [("TempStorage", "https://acct.blob.core.windows.net/c1?sv=..."), ...]
        ```
    """

    def __init__(self, execute_command: CommandExecutor) -> None:
        self._execute_command = execute_command

    async def fetch_resources(self) -> list[tuple[str, str]]:
        try:
            rows = await self._execute_command(GET_INGESTION_RESOURCES_COMMAND)
        except Exception as e:
            raise handle_external_service_error(
                "fetching ingestion resources", "resource discovery", e
            )

        resources = []
        for row in rows:
            type_name = _cell(row, "ResourceTypeName", 0)
            storage_root = _cell(row, "StorageRoot", 1)
            if not type_name or not storage_root:
                logger.warning(f"Skipping malformed ingestion resource row: {row!r}")
                continue
            resources.append((str(type_name), str(storage_root)))

        logger.debug(f"Discovered {len(resources)} ingestion resource rows")
        return resources

    async def fetch_identity_token(self) -> str | None:
        try:
            rows = await self._execute_command(GET_IDENTITY_TOKEN_COMMAND)
        except Exception as e:
            raise handle_external_service_error(
                "fetching identity token", "resource discovery", e
            )

        for row in rows:
            token = _cell(row, "AuthorizationContext", 0)
            if token:
                return str(token)
        return None
