"""Tests for the record store adapters.

Covers MemoryStore CRUD, includes, link rows, and transaction rollback,
plus AsyncPostgresStore URL handling, identifier quoting, table mapping,
and the SQL it issues against a mocked connection.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from flock_backup.adapters.base import RELATIONS, RecordStore
from flock_backup.adapters.memory import DEFAULT_COLLECTIONS, MemoryStore
from flock_backup.adapters.postgres import (
    DEFAULT_TABLE_MAP,
    AsyncPostgresStore,
    _quote,
    normalize_url,
)
from flock_backup.errors import CollectionUnavailableError


# ------------------------------------------------------------------
# MemoryStore
# ------------------------------------------------------------------


class TestMemoryStoreCrud:
    """Basic CRUD on the dict-backed store."""

    async def test_create_assigns_sequential_ids(self):
        """Ids start at 1 and increase per collection."""
        store = MemoryStore()
        a = await store.create("users", {"email": "a@x.org", "tenantId": 1})
        b = await store.create("users", {"email": "b@x.org", "tenantId": 1})
        d = await store.create("departments", {"name": "Choir", "tenantId": 1})
        assert (a["id"], b["id"], d["id"]) == (1, 2, 1)

    async def test_create_ignores_payload_id(self):
        """A supplied id is replaced by the store's own."""
        store = MemoryStore()
        row = await store.create("users", {"id": 99, "email": "a@x.org"})
        assert row["id"] == 1

    async def test_find_many_filters(self):
        """All filters must match."""
        store = MemoryStore()
        await store.create("members", {"firstName": "Jane", "tenantId": 1})
        await store.create("members", {"firstName": "Jane", "tenantId": 2})
        rows = await store.find_many("members", filters={"tenantId": 2})
        assert len(rows) == 1
        assert rows[0]["tenantId"] == 2

    async def test_none_filter_matches_missing_field(self):
        """A None filter value matches rows where the field is absent."""
        store = MemoryStore()
        await store.create("members", {"firstName": "Jane", "lastName": "Doe"})
        row = await store.find_first(
            "members", {"firstName": "Jane", "lastName": "Doe", "dob": None}
        )
        assert row is not None

    async def test_returned_rows_are_copies(self):
        """Mutating a returned row does not change the store."""
        store = MemoryStore()
        row = await store.create("users", {"email": "a@x.org"})
        row["email"] = "changed@x.org"
        assert (await store.find_first("users", {"id": 1}))["email"] == "a@x.org"

    async def test_update_merges_fields(self):
        """Update changes only the given fields."""
        store = MemoryStore()
        await store.create("users", {"email": "a@x.org", "name": "A"})
        row = await store.update("users", 1, {"name": "B"})
        assert row == {"id": 1, "email": "a@x.org", "name": "B"}

    async def test_update_missing_row_raises(self):
        """Updating an unknown id raises ValueError."""
        store = MemoryStore()
        with pytest.raises(ValueError, match="id=5"):
            await store.update("users", 5, {"name": "B"})

    async def test_delete(self):
        """Delete removes the row."""
        store = MemoryStore()
        await store.create("users", {"email": "a@x.org"})
        await store.delete("users", 1)
        assert store.count("users") == 0

    async def test_unknown_collection_raises(self):
        """A collection the store lacks raises CollectionUnavailableError."""
        store = MemoryStore(collections=["users"])
        with pytest.raises(CollectionUnavailableError):
            await store.find_many("financeRecords")

    def test_default_collections_cover_relations(self):
        """Every include target is a default collection."""
        for relation in RELATIONS.values():
            assert relation.collection in DEFAULT_COLLECTIONS

    def test_satisfies_protocol_methods(self):
        """MemoryStore provides every RecordStore method."""
        protocol_methods = {
            name for name in vars(RecordStore)
            if not name.startswith("_")
        }
        for name in protocol_methods:
            assert callable(getattr(MemoryStore, name)), name


class TestMemoryStoreIncludes:
    """Nested child collections via include."""

    async def test_include_attaches_children(self):
        """councils.members lists the council's join rows."""
        store = MemoryStore()
        council = await store.create("councils", {"name": "Elders"})
        await store.create("councils", {"name": "Deacons"})
        await store.create("councilMembers", {"councilId": council["id"], "memberId": 7})

        rows = await store.find_many("councils", include=["members"])
        by_name = {r["name"]: r for r in rows}
        assert [m["memberId"] for m in by_name["Elders"]["members"]] == [7]
        assert by_name["Deacons"]["members"] == []

    async def test_unknown_include_raises(self):
        """Includes not in RELATIONS are rejected."""
        store = MemoryStore()
        with pytest.raises(ValueError, match="Unknown relation"):
            await store.find_many("users", include=["posts"])


class TestMemoryStoreLinks:
    """Insert-if-absent link rows."""

    async def test_insert_link_is_idempotent(self):
        """Second insert with the same keys is a no-op."""
        store = MemoryStore()
        data = {"councilId": 1, "memberId": 2, "role": "Chair"}
        assert await store.insert_link("councilMembers", data, keys=("councilId", "memberId"))
        assert not await store.insert_link(
            "councilMembers", data, keys=("councilId", "memberId")
        )
        assert store.count("councilMembers") == 1

    async def test_delete_link(self):
        """delete_link removes rows matching the key values."""
        store = MemoryStore()
        await store.insert_link("committeeMembers", {"committeeId": 1, "memberId": 2},
                                keys=("committeeId", "memberId"))
        await store.insert_link("committeeMembers", {"committeeId": 1, "memberId": 3},
                                keys=("committeeId", "memberId"))
        await store.delete_link("committeeMembers", {"committeeId": 1, "memberId": 2})
        rows = await store.select_links("committeeMembers")
        assert [r["memberId"] for r in rows] == [3]


class TestMemoryStoreTransaction:
    """Snapshot-and-restore transactions."""

    async def test_commit_keeps_writes(self):
        """Leaving the block normally keeps every write."""
        store = MemoryStore()
        async with store.transaction() as tx:
            await tx.create("users", {"email": "a@x.org"})
        assert store.count("users") == 1

    async def test_error_rolls_back(self):
        """An exception inside the block discards all writes and ids."""
        store = MemoryStore()
        await store.create("users", {"email": "keep@x.org"})

        with pytest.raises(RuntimeError):
            async with store.transaction() as tx:
                await tx.create("users", {"email": "a@x.org"})
                await tx.update("users", 1, {"email": "changed@x.org"})
                raise RuntimeError("boom")

        assert store.count("users") == 1
        assert (await store.find_first("users", {"id": 1}))["email"] == "keep@x.org"
        assert (await store.create("users", {"email": "b@x.org"}))["id"] == 2


# ------------------------------------------------------------------
# AsyncPostgresStore
# ------------------------------------------------------------------


class _FakeResult:
    """Minimal stand-in for a SQLAlchemy CursorResult."""

    def __init__(self, columns: list[str], rows: list[tuple]) -> None:
        self._columns = columns
        self._rows = rows

    def keys(self):
        return self._columns

    def fetchall(self):
        return list(self._rows)

    def fetchone(self):
        return self._rows[0] if self._rows else None


def _fake_connection(*results: _FakeResult) -> AsyncMock:
    conn = AsyncMock()
    conn.execute = AsyncMock(side_effect=list(results))
    return conn


def _cm(conn):
    @asynccontextmanager
    async def _ctx():
        yield conn

    return _ctx()


def _store_with(conn, **kwargs) -> AsyncPostgresStore:
    store = AsyncPostgresStore("postgresql://u:p@localhost:5432/flock", **kwargs)
    engine = MagicMock()
    engine.connect = MagicMock(side_effect=lambda: _cm(conn))
    engine.begin = MagicMock(side_effect=lambda: _cm(conn))
    engine.dispose = AsyncMock()
    store._engine = engine
    return store


def _sql(conn, call_index: int = 0) -> str:
    return " ".join(str(conn.execute.call_args_list[call_index][0][0]).split())


def _params(conn, call_index: int = 0) -> dict:
    return conn.execute.call_args_list[call_index][0][1]


class TestPostgresHelpers:
    """URL normalization and identifier quoting."""

    def test_normalize_postgres_scheme(self):
        assert normalize_url("postgres://u@h/db") == "postgresql+asyncpg://u@h/db"

    def test_normalize_postgresql_scheme(self):
        assert normalize_url("postgresql://u@h/db") == "postgresql+asyncpg://u@h/db"

    def test_normalize_keeps_asyncpg_scheme(self):
        url = "postgresql+asyncpg://u@h/db"
        assert normalize_url(url) == url

    def test_quote_accepts_identifiers(self):
        assert _quote("tenantId") == '"tenantId"'

    @pytest.mark.parametrize("name", ['x"; DROP TABLE "User', "a b", "1abc", ""])
    def test_quote_rejects_unsafe_names(self, name):
        with pytest.raises(ValueError, match="Invalid identifier"):
            _quote(name)

    def test_default_table_map_covers_memory_collections(self):
        """Both stores expose the same collections."""
        assert set(DEFAULT_TABLE_MAP) == set(DEFAULT_COLLECTIONS)


class TestPostgresQueries:
    """SQL issued by AsyncPostgresStore."""

    async def test_find_many_builds_where_clause(self):
        conn = _fake_connection(_FakeResult(["id", "firstName"], [(1, "Jane")]))
        store = _store_with(conn)

        rows = await store.find_many("members", filters={"tenantId": 1, "dob": None})

        assert rows == [{"id": 1, "firstName": "Jane"}]
        assert _sql(conn) == 'SELECT * FROM "Member" WHERE "tenantId" = :p_0 AND "dob" IS NULL'
        assert _params(conn) == {"p_0": 1}

    async def test_table_map_override(self):
        conn = _fake_connection(_FakeResult(["id"], []))
        store = _store_with(conn, table_map={"members": "people"})
        await store.find_many("members")
        assert _sql(conn) == 'SELECT * FROM "people"'

    async def test_unmapped_collection_raises(self):
        store = _store_with(_fake_connection())
        with pytest.raises(CollectionUnavailableError):
            await store.find_many("widgets")

    async def test_find_many_include_fetches_children(self):
        conn = _fake_connection(
            _FakeResult(["id", "name"], [(1, "Elders"), (2, "Deacons")]),
            _FakeResult(["id", "councilId", "memberId"], [(10, 1, 5)]),
        )
        store = _store_with(conn)

        rows = await store.find_many("councils", include=["members"])

        assert rows[0]["members"] == [{"id": 10, "councilId": 1, "memberId": 5}]
        assert rows[1]["members"] == []
        assert _sql(conn, 1).startswith('SELECT * FROM "CouncilMember" WHERE "councilId" IN')
        assert _params(conn, 1) == {"ids": [1, 2]}

    async def test_create_drops_id_and_returns_row(self):
        conn = _fake_connection(_FakeResult(["id", "name", "tenantId"], [(3, "Choir", 1)]))
        store = _store_with(conn)

        row = await store.create("departments", {"id": 99, "name": "Choir", "tenantId": 1})

        assert row == {"id": 3, "name": "Choir", "tenantId": 1}
        sql = _sql(conn)
        assert sql.startswith('INSERT INTO "Department" ("name", "tenantId")')
        assert "RETURNING *" in sql
        assert _params(conn) == {"v_0": "Choir", "v_1": 1}

    async def test_update_missing_row_raises(self):
        conn = _fake_connection(_FakeResult(["id"], []))
        store = _store_with(conn)
        with pytest.raises(ValueError, match="id=4"):
            await store.update("users", 4, {"name": "B"})

    async def test_transaction_binds_one_connection(self):
        conn = _fake_connection(
            _FakeResult(["id", "email"], [(1, "a@x.org")]),
            _FakeResult(["id", "email"], [(2, "b@x.org")]),
        )
        store = _store_with(conn)

        async with store.transaction() as tx:
            assert tx is not store
            assert tx._conn is conn
            await tx.create("users", {"email": "a@x.org"})
            await tx.create("users", {"email": "b@x.org"})

        assert store._engine.begin.call_count == 1
        store._engine.connect.assert_not_called()
        assert store._conn is None

    async def test_nested_transaction_reuses_bound_store(self):
        store = _store_with(_fake_connection())
        async with store.transaction() as tx:
            async with tx.transaction() as inner:
                assert inner is tx
        assert store._engine.begin.call_count == 1

    async def test_aware_datetimes_sent_as_naive_utc(self):
        """Timestamp columns are naive; offsets are converted to UTC first."""
        conn = _fake_connection(
            _FakeResult(["id"], []),
            _FakeResult(["id", "title"], [(1, "Retreat")]),
        )
        store = _store_with(conn)
        when = datetime(2026, 3, 1, 20, 0, tzinfo=timezone(timedelta(hours=2)))

        await store.find_first("events", {"date": when})
        await store.create("events", {"title": "Retreat", "date": when})

        assert _params(conn, 0)["p_0"] == datetime(2026, 3, 1, 18, 0)
        assert _params(conn, 1)["v_1"] == datetime(2026, 3, 1, 18, 0)
        assert _params(conn, 1)["v_1"].tzinfo is None

    async def test_insert_link_skips_existing(self):
        conn = _fake_connection(_FakeResult(["id", "councilId", "memberId"], [(1, 1, 2)]))
        store = _store_with(conn)
        inserted = await store.insert_link(
            "councilMembers", {"councilId": 1, "memberId": 2}, keys=("councilId", "memberId")
        )
        assert inserted is False
        assert conn.execute.call_count == 1

    async def test_delete_link_requires_keys(self):
        store = _store_with(_fake_connection())
        with pytest.raises(ValueError):
            await store.delete_link("councilMembers", {})

    async def test_close_disposes_engine(self):
        store = _store_with(_fake_connection())
        await store.close()
        store._engine.dispose.assert_awaited_once()
