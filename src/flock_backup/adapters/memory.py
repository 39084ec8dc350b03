"""In-memory record store.

Provides ``MemoryStore``, a dict-backed implementation of the
``RecordStore`` protocol.  Used by the test suite and by the
``memory://`` database URL for local dry runs.

Transactions snapshot the whole dataset on entry and put it back if the
block raises, so a failed restore leaves no trace.  Transactions are
serialized with an ``asyncio.Lock``.

Usage:
    from flock_backup.adapters.memory import MemoryStore

    store = MemoryStore()
    row = await store.create("members", {"firstName": "Jane", "tenantId": 1})
"""

import asyncio
import copy
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from typing import Any

from flock_backup.adapters.base import RELATIONS
from flock_backup.errors import CollectionUnavailableError

# Every collection a full deployment provides.
DEFAULT_COLLECTIONS: tuple[str, ...] = (
    "settings",
    "users",
    "members",
    "departments",
    "events",
    "announcements",
    "sermons",
    "financeRecords",
    "attendanceRecords",
    "attendanceEntries",
    "councils",
    "councilMembers",
    "committees",
    "committeeMembers",
    "boardMinutes",
    "boardMinuteVersions",
    "businessMinutes",
    "businessMinuteVersions",
    "programs",
    "cellGroups",
    "cellGroupMemberships",
)


def _matches(row: dict, filters: dict[str, Any] | None) -> bool:
    if not filters:
        return True
    return all(row.get(k) == v for k, v in filters.items())


class MemoryStore:
    """Dict-backed ``RecordStore``.

    Args:
        collections: Collection names this store provides.  Reads of any
            other collection raise ``CollectionUnavailableError``, which
            mimics a deployment that lacks an optional entity type.
    """

    def __init__(self, collections: Iterable[str] | None = None) -> None:
        names = DEFAULT_COLLECTIONS if collections is None else tuple(collections)
        self._data: dict[str, list[dict]] = {name: [] for name in names}
        self._next_id: dict[str, int] = {name: 1 for name in names}
        self._lock = asyncio.Lock()

    def _rows(self, collection: str) -> list[dict]:
        try:
            return self._data[collection]
        except KeyError:
            raise CollectionUnavailableError(
                f"Collection not available: {collection}"
            ) from None

    # ------------------------------------------------------------------
    # CRUD Methods
    # ------------------------------------------------------------------

    async def find_many(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        include: list[str] | None = None,
    ) -> list[dict]:
        """Return copies of matching rows with requested relations attached."""
        rows = [copy.deepcopy(r) for r in self._rows(collection) if _matches(r, filters)]
        for name in include or []:
            relation = RELATIONS.get((collection, name))
            if relation is None:
                raise ValueError(f"Unknown relation {collection}.{name}")
            children = self._rows(relation.collection)
            for row in rows:
                row[name] = [
                    copy.deepcopy(c) for c in children if c.get(relation.field) == row["id"]
                ]
        return rows

    async def find_first(
        self, collection: str, filters: dict[str, Any]
    ) -> dict | None:
        for row in self._rows(collection):
            if _matches(row, filters):
                return copy.deepcopy(row)
        return None

    async def create(self, collection: str, data: dict) -> dict:
        rows = self._rows(collection)
        row = {k: v for k, v in data.items() if k != "id"}
        row["id"] = self._next_id[collection]
        self._next_id[collection] += 1
        rows.append(row)
        return copy.deepcopy(row)

    async def update(self, collection: str, record_id: Any, data: dict) -> dict:
        for row in self._rows(collection):
            if row["id"] == record_id:
                row.update({k: v for k, v in data.items() if k != "id"})
                return copy.deepcopy(row)
        raise ValueError(f"No {collection} row with id={record_id}")

    async def delete(self, collection: str, record_id: Any) -> None:
        rows = self._rows(collection)
        rows[:] = [r for r in rows if r["id"] != record_id]

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["MemoryStore"]:
        """Run a block atomically, restoring the prior state on error."""
        async with self._lock:
            saved_data = copy.deepcopy(self._data)
            saved_ids = dict(self._next_id)
            try:
                yield self
            except BaseException:
                self._data = saved_data
                self._next_id = saved_ids
                raise

    # ------------------------------------------------------------------
    # Join rows
    # ------------------------------------------------------------------

    async def select_links(
        self, link: str, filters: dict[str, Any] | None = None
    ) -> list[dict]:
        return await self.find_many(link, filters=filters)

    async def insert_link(
        self, link: str, data: dict, keys: tuple[str, ...]
    ) -> bool:
        key_values = {k: data.get(k) for k in keys}
        if await self.find_first(link, key_values) is not None:
            return False
        await self.create(link, data)
        return True

    async def delete_link(self, link: str, key_values: dict[str, Any]) -> None:
        rows = self._rows(link)
        rows[:] = [r for r in rows if not _matches(r, key_values)]

    async def close(self) -> None:
        """Nothing to release."""
        return None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def count(self, collection: str, filters: dict[str, Any] | None = None) -> int:
        """Number of rows in ``collection`` matching ``filters``."""
        return sum(1 for r in self._rows(collection) if _matches(r, filters))
