"""
Ingestion resource models.

The service exposes several kinds of storage resources for queued ingestion:
temporary blob containers for staging, queues that announce staged blobs,
queues that report outcomes and a table that tracks per-blob status. Each
discovered resource is an immutable ResourceEntry; a full discovery result is
an immutable ResourceSet that carries its own round-robin cursors.
"""

from enum import Enum
import itertools
import threading
from types import MappingProxyType
from typing import Iterable, Mapping, Sequence
from urllib.parse import urlsplit, urlunsplit

from loguru import logger
from pydantic import BaseModel, ConfigDict


class ResourceType(str, Enum):
    """Kinds of ingestion resources, valued by their service-side names."""

    SECURED_READY_FOR_AGGREGATION_QUEUE = "SecuredReadyForAggregationQueue"
    TEMP_STORAGE = "TempStorage"
    FAILED_INGESTIONS_QUEUE = "FailedIngestionsQueue"
    SUCCESSFUL_INGESTIONS_QUEUE = "SuccessfulIngestionsQueue"
    INGESTIONS_STATUS_TABLE = "IngestionsStatusTable"

    @classmethod
    def from_service_name(cls, name: str) -> "ResourceType | None":
        """Resolve a service-side resource type name, ignoring case."""
        lowered = name.strip().lower()
        for resource_type in cls:
            if resource_type.value.lower() == lowered:
                return resource_type
        return None


class ResourceEntry(BaseModel):
    """
    A single discovered storage resource.

    Attributes:
        endpoint: Resource URL without its query string
        sas: Shared access signature query string (without the leading '?'),
            or None when the resource is accessed with a bearer token
        account_name: Storage account that hosts the resource
    """

    model_config = ConfigDict(frozen=True)

    endpoint: str
    sas: str | None = None
    account_name: str

    @property
    def url(self) -> str:
        """Full resource URL including the SAS token when present."""
        return f"{self.endpoint}?{self.sas}" if self.sas else self.endpoint

    @property
    def name(self) -> str:
        """Last path segment: the container, queue or table name."""
        return self.endpoint.rstrip("/").rsplit("/", 1)[-1]

    @classmethod
    def from_url(cls, url: str) -> "ResourceEntry":
        """
        Parse a resource URL as returned by resource discovery.

        Raises:
            ValueError: If the URL has no scheme or host.
        """
        parts = urlsplit(url.strip())
        if not parts.scheme or not parts.netloc:
            raise ValueError(f"Invalid resource URL: {url!r}")
        endpoint = urlunsplit((parts.scheme, parts.netloc, parts.path.rstrip("/"), "", ""))
        return cls(
            endpoint=endpoint,
            sas=parts.query or None,
            account_name=parts.netloc.split(".", 1)[0],
        )

    def __str__(self) -> str:
        return self.endpoint


class ResourceSet:
    """
    Immutable snapshot of every discovered resource, grouped by type.

    A snapshot is never modified after construction; the resource manager
    replaces it wholesale on refresh. The only mutable part is the rotation
    cursor per type, which is advanced under a lock so concurrent callers
    cycle through all entries.
    """

    def __init__(
        self,
        resources: Mapping[ResourceType, Sequence[ResourceEntry]],
        fetched_at: float,
        identity_token: str | None = None,
    ) -> None:
        self._resources = MappingProxyType(
            {resource_type: tuple(resources.get(resource_type, ())) for resource_type in ResourceType}
        )
        self.fetched_at = fetched_at
        self.identity_token = identity_token
        self._cursors = {resource_type: itertools.count() for resource_type in ResourceType}
        self._cursor_lock = threading.Lock()

    @classmethod
    def from_rows(
        cls,
        rows: Iterable[Sequence[str]],
        fetched_at: float,
        identity_token: str | None = None,
    ) -> "ResourceSet":
        """
        Build a snapshot from discovery rows of (resource type name, URL).

        Short rows, unknown resource types and unparsable URLs are logged and
        skipped.
        """
        grouped: dict[ResourceType, list[ResourceEntry]] = {}
        for row in rows:
            if len(row) < 2:
                logger.warning(f"Skipping malformed ingestion resource row: {row!r}")
                continue
            type_name, url = row[0], row[1]
            resource_type = ResourceType.from_service_name(type_name)
            if resource_type is None:
                logger.debug(f"Ignoring unknown ingestion resource type '{type_name}'")
                continue
            try:
                entry = ResourceEntry.from_url(url)
            except ValueError as e:
                logger.warning(f"Skipping {resource_type.value} resource: {e}")
                continue
            grouped.setdefault(resource_type, []).append(entry)
        return cls(grouped, fetched_at, identity_token)

    def entries(self, resource_type: ResourceType) -> tuple[ResourceEntry, ...]:
        return self._resources[resource_type]

    def has(self, resource_type: ResourceType) -> bool:
        return bool(self._resources[resource_type])

    def next_entry(self, resource_type: ResourceType) -> ResourceEntry | None:
        """Return the next entry of a type in round-robin order, or None if there are none."""
        entries = self._resources[resource_type]
        if not entries:
            return None
        with self._cursor_lock:
            position = next(self._cursors[resource_type])
        return entries[position % len(entries)]

    def rotation(self, resource_type: ResourceType) -> list[ResourceEntry]:
        """
        Return all entries of a type, starting at the next round-robin position.

        Used when a caller needs an ordered list to fail over through, such as
        the containers tried for one upload.
        """
        entries = self._resources[resource_type]
        if not entries:
            return []
        with self._cursor_lock:
            start = next(self._cursors[resource_type]) % len(entries)
        return list(entries[start:] + entries[:start])

    def __repr__(self) -> str:
        counts = ", ".join(
            f"{resource_type.value}={len(entries)}" for resource_type, entries in self._resources.items()
        )
        return f"ResourceSet({counts})"
