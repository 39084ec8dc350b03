"""Record store protocol definition.

Defines the ``RecordStore`` Protocol consumed by the backup subsystem.
All methods are ``async def`` -- the library is async-first.

Collections are addressed by their snapshot name (``"members"``,
``"councils"``, ...).  Relations that only exist as join rows
(``"councilMembers"``, ``"committeeMembers"``, ``"cellGroupMemberships"``)
are reached through the link methods.

Usage:
    from flock_backup.adapters.base import RecordStore

    async def do_work(store: RecordStore) -> None:
        rows = await store.find_many("members", filters={"tenantId": 1})
        async with store.transaction() as tx:
            await tx.create("departments", {"name": "Choir", "tenantId": 1})
"""

from contextlib import AbstractAsyncContextManager
from typing import Any, Protocol

from pydantic import BaseModel


class Relation(BaseModel):
    """Child collection loaded alongside a parent row via ``include``."""

    collection: str     # child collection name
    field: str          # FK column in the child pointing at the parent


# Sub-collections that ``find_many(..., include=[...])`` can attach.
RELATIONS: dict[tuple[str, str], Relation] = {
    ("attendanceRecords", "entries"): Relation(
        collection="attendanceEntries", field="recordId"
    ),
    ("councils", "members"): Relation(collection="councilMembers", field="councilId"),
    ("committees", "members"): Relation(
        collection="committeeMembers", field="committeeId"
    ),
    ("boardMinutes", "versions"): Relation(
        collection="boardMinuteVersions", field="minuteId"
    ),
    ("businessMinutes", "versions"): Relation(
        collection="businessMinuteVersions", field="minuteId"
    ),
}


class RecordStore(Protocol):
    """Persistent store interface that all adapters must implement.

    Rows are plain dicts keyed by column name.  Every row carries an
    ``id`` assigned by the store and, in multi-tenant deployments, a
    ``tenantId``.

    All methods are async -- callers must ``await`` every operation.
    """

    async def find_many(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        include: list[str] | None = None,
    ) -> list[dict]:
        """Select rows from a collection.

        Args:
            collection: Collection name.
            filters: Optional dict of field=value filters (all must match via AND).
            include: Optional relation names (see ``RELATIONS``) to attach
                as nested lists on each row.

        Returns:
            List of dicts, one per row.  Empty list if no matches.

        Raises:
            CollectionUnavailableError: If the deployment has no such collection.
        """
        ...

    async def find_first(
        self, collection: str, filters: dict[str, Any]
    ) -> dict | None:
        """Return the first row matching ``filters``, or ``None``."""
        ...

    async def create(self, collection: str, data: dict) -> dict:
        """Insert a row and return it, including the assigned ``id``."""
        ...

    async def update(self, collection: str, record_id: Any, data: dict) -> dict:
        """Update the row with ``id == record_id`` and return it.

        Raises:
            ValueError: If no row has that id.
        """
        ...

    async def delete(self, collection: str, record_id: Any) -> None:
        """Delete the row with ``id == record_id``."""
        ...

    def transaction(self) -> AbstractAsyncContextManager["RecordStore"]:
        """Open an atomic unit of work.

        The yielded store must be used for every operation inside the
        unit.  Leaving the block normally commits; an exception rolls
        every operation back.

        Example:
            async with store.transaction() as tx:
                await tx.create("users", {"email": "a@b.c", "tenantId": 1})
        """
        ...

    async def select_links(
        self, link: str, filters: dict[str, Any] | None = None
    ) -> list[dict]:
        """Read join rows from a link table by foreign key(s)."""
        ...

    async def insert_link(
        self, link: str, data: dict, keys: tuple[str, ...]
    ) -> bool:
        """Insert a join row unless one with the same ``keys`` values exists.

        Returns:
            ``True`` if a row was inserted, ``False`` if it already existed.
        """
        ...

    async def delete_link(self, link: str, key_values: dict[str, Any]) -> None:
        """Delete join rows matching the composite key values."""
        ...

    async def close(self) -> None:
        """Release connections and other resources."""
        ...
