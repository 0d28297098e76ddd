import asyncio
import json
import logging
import time
from typing import Any, Callable

from pydantic import ValidationError

from nsbridge.protocol.locations import LocationEntry, default_locations
from nsbridge.server.ports import KeyValueStore

logger = logging.getLogger(__name__)


class MalformedLocationsError(ValueError):
    """Stored location data could not be turned back into entries."""


class LocationRegistry:
    """Owns the ordered collection of location entries.

    Every read and write goes through one asyncio lock, so concurrent request
    handlers never observe a half-applied mutation. Reads hand out copies of
    the list; callers cannot mutate the registry through them.
    """

    def __init__(
        self,
        key: str = "locations",
        persist_full_entries: bool = True,
        include_device_root: bool = False,
    ):
        self.key = key
        self.persist_full_entries = persist_full_entries
        self.include_device_root = include_device_root
        self._entries: list[LocationEntry] = []
        self._lock = asyncio.Lock()
        self._last_id = 0

    # ================================
    # Persistence
    # ================================

    async def load(self, store: KeyValueStore) -> list[LocationEntry]:
        """Replace the registry with the stored list.

        Falls back to the default set when nothing is stored or the stored
        data is malformed. Never raises for bad data.

        Returns:
            list[LocationEntry]: Snapshot of the loaded entries.
        """
        raw = await store.get(self.key)
        if raw is None:
            entries = self.defaults()
        else:
            logger.debug(f"Loading locations: {raw}")
            try:
                entries = parse_locations(raw)
            except MalformedLocationsError as e:
                logger.error(f"Stored locations are malformed, using defaults: {e}")
                entries = self.defaults()

        async with self._lock:
            self._entries = entries
            return list(self._entries)

    async def save(self, store: KeyValueStore) -> None:
        """Write the registry back to the store."""
        async with self._lock:
            raw = serialize_locations(self._entries, self.persist_full_entries)
        logger.debug(f"Saving locations: {raw}")
        await store.put(self.key, raw)

    def defaults(self) -> list[LocationEntry]:
        return default_locations(
            with_ids=True, include_device_root=self.include_device_root
        )

    # ================================
    # Queries
    # ================================

    async def entries(self) -> list[LocationEntry]:
        async with self._lock:
            return list(self._entries)

    async def filter(
        self, predicate: Callable[[LocationEntry], bool]
    ) -> list[LocationEntry]:
        async with self._lock:
            return [entry for entry in self._entries if predicate(entry)]

    async def get(self, server_id: int) -> LocationEntry | None:
        async with self._lock:
            return self._find(server_id)

    async def count(self) -> int:
        async with self._lock:
            return len(self._entries)

    # ================================
    # Mutations
    # ================================

    async def add(self, entry: LocationEntry) -> int:
        """Append an entry under a freshly issued id.

        Any id already on the entry is replaced.

        Returns:
            int: The new id.
        """
        async with self._lock:
            server_id = self.next_id()
            self._entries.append(entry.model_copy(update={"server_id": server_id}))
            return server_id

    async def update(self, server_id: int, fields: dict[str, Any]) -> bool:
        """Merge fields into the first entry with a matching id.

        Returns:
            bool: False if no entry has that id. The registry is unchanged.

        Raises:
            ValidationError: If the merged fields do not form a valid entry.
        """
        async with self._lock:
            for index, entry in enumerate(self._entries):
                if entry.server_id == server_id:
                    self._entries[index] = entry.merged(fields)
                    return True
            return False

    async def remove(self, server_id: int) -> bool:
        """Remove the first entry with a matching id."""
        async with self._lock:
            for index, entry in enumerate(self._entries):
                if entry.server_id == server_id:
                    del self._entries[index]
                    return True
            return False

    def next_id(self) -> int:
        """Issue a timestamp-derived id, strictly greater than the last one."""
        candidate = time.time_ns() // 1_000_000
        self._last_id = max(candidate, self._last_id + 1)
        return self._last_id

    def _find(self, server_id: int) -> LocationEntry | None:
        for entry in self._entries:
            if entry.server_id == server_id:
                return entry
        return None


def parse_locations(raw: str) -> list[LocationEntry]:
    """Parse a stored JSON array of entries.

    Rows in the legacy four-field shape are accepted; every other field takes
    its default.

    Raises:
        MalformedLocationsError: On invalid JSON, a non-list document, or a
            row without an integer `serverId`.
    """
    try:
        rows = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedLocationsError(str(e)) from e
    if not isinstance(rows, list):
        raise MalformedLocationsError("expected a JSON array")

    entries = []
    for row in rows:
        if not isinstance(row, dict) or not isinstance(row.get("serverId"), int):
            raise MalformedLocationsError(f"row without serverId: {row!r}")
        try:
            entries.append(LocationEntry.from_protocol(row))
        except ValidationError as e:
            raise MalformedLocationsError(str(e)) from e
    return entries


def serialize_locations(entries: list[LocationEntry], full: bool = True) -> str:
    if full:
        rows = [entry.to_protocol() for entry in entries]
    else:
        rows = [entry.to_legacy() for entry in entries]
    return json.dumps(rows, ensure_ascii=False)
