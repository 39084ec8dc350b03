"""Non-destructive restore driven by RestoreSchema.

Rows are matched to existing rows by natural key inside the target
tenant -- ids never survive an export/restore round trip.  Matched rows
get their mutable descriptive fields refreshed; unmatched rows are
created.  Nothing is ever deleted or nulled out, and every written row
is forced into the requesting tenant.

The whole restore runs in one ``store.transaction()``: any error rolls
back every write and surfaces as ``RestoreError``.

Foreign keys are remapped through per-collection id maps built while
restoring (payload id -> target id), the same way a parent-first
restore remaps parent PKs.  A reference that cannot be remapped is left
out of the write.

Usage:
    from flock_backup.backup.restore import restore_snapshot

    report = await restore_snapshot(store, payload, tenant_id=1)
    report.summary      # {"users": 3, "members": 10, ...}

    # Preview: runs the restore, then rolls it back
    report = await restore_snapshot(store, payload, tenant_id=1, dry_run=True)
    report.skipped      # [SkippedRow(collection="events", index=4, reason=...)]
"""

import logging
from datetime import date, datetime, timezone
from typing import Any

from flock_backup.adapters.base import RecordStore
from flock_backup.backup.models import (
    EntityDef,
    LinkDef,
    RestoreReport,
    RestoreSchema,
    SkippedRow,
    Snapshot,
)
from flock_backup.backup.schema import RESTORE_SCHEMA
from flock_backup.errors import RestoreError

logger = logging.getLogger(__name__)


class _DryRunRollback(Exception):
    """Raised inside the transaction to discard a dry run."""


def to_naive_utc(value: datetime) -> datetime:
    """Aware datetimes become naive UTC; naive ones pass through."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_datetime(value: Any) -> datetime | None:
    """Parse an ISO-8601 value to naive UTC; ``None`` when absent or unparseable.

    Timestamp columns are ``timestamp without time zone``, so offsets
    (including a trailing ``Z``) are converted to UTC and dropped.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        try:
            return to_naive_utc(datetime.fromisoformat(value))
        except ValueError:
            return None
    return None


class _Restorer:
    """Per-restore state: target tenant, id maps, and the report."""

    def __init__(self, store: RecordStore, tenant_id: int, report: RestoreReport) -> None:
        self.store = store
        self.tenant_id = tenant_id
        self.report = report
        self.id_maps: dict[str, dict[Any, Any]] = {}

    def _skip(self, collection: str, index: int, reason: str) -> None:
        logger.debug(f"Skipping {collection}[{index}]: {reason}")
        self.report.skipped.append(
            SkippedRow(collection=collection, index=index, reason=reason)
        )

    def _mapped(self, collection: str, value: Any) -> Any:
        if value is None:
            return None
        return self.id_maps.get(collection, {}).get(value)

    def _prepare(self, entity: EntityDef, raw: dict) -> tuple[dict, dict]:
        """Return (values, writable_refs) for a payload row.

        ``values`` holds parsed key and mutable fields plus the
        match-time value of each ref.  ``writable_refs`` holds only refs
        remapped to rows that exist in the target.
        """
        values: dict[str, Any] = {}
        fields = {f for key in entity.match_keys for f in key} | set(entity.mutable_fields)
        for f in fields:
            value = raw.get(f)
            if f in entity.date_fields:
                value = parse_datetime(value)
            values[f] = value

        writable_refs: dict[str, Any] = {}
        for ref in entity.refs:
            raw_value = raw.get(ref.field)
            if ref.collection in self.id_maps:
                mapped = self._mapped(ref.collection, raw_value)
                values[ref.field] = mapped
                if mapped is not None:
                    writable_refs[ref.field] = mapped
            else:
                # Referenced collection not in this payload: the raw id
                # may still match an existing row, but is never written.
                values[ref.field] = raw_value
        return values, writable_refs

    def _usable_keys(self, entity: EntityDef, values: dict) -> list[list[str]]:
        return [
            key
            for key in entity.match_keys
            if all(
                values.get(f) is not None or f in entity.nullable_key_fields
                for f in key
            )
        ]

    async def restore_entity(self, entity: EntityDef, rows: list) -> None:
        id_map = self.id_maps.setdefault(entity.name, {})
        ref_fields = {ref.field for ref in entity.refs}
        key_fields = [
            f for key in entity.match_keys for f in key if f not in ref_fields
        ]
        for link in entity.links:
            self.report.summary.setdefault(link.link, 0)

        count = 0
        for index, raw in enumerate(rows):
            if not isinstance(raw, dict):
                self._skip(entity.name, index, "not an object")
                continue

            values, writable_refs = self._prepare(entity, raw)
            keys = self._usable_keys(entity, values)
            if not keys:
                wanted = " or ".join("+".join(key) for key in entity.match_keys)
                self._skip(entity.name, index, f"missing natural key ({wanted})")
                continue

            existing = None
            used_key: list[str] = []
            for key in keys:
                filters = {f: values.get(f) for f in key}
                filters["tenantId"] = self.tenant_id
                existing = await self.store.find_first(entity.name, filters)
                if existing is not None:
                    used_key = key
                    break

            if existing is not None:
                target_id = existing["id"]
                if entity.update_on_match:
                    data = {
                        f: values[f]
                        for f in entity.mutable_fields
                        if f not in used_key and values.get(f) is not None
                    }
                    data.update(
                        {k: v for k, v in writable_refs.items() if k not in used_key}
                    )
                    data["tenantId"] = self.tenant_id
                    await self.store.update(entity.name, target_id, data)
            else:
                data = {f: values[f] for f in key_fields if values.get(f) is not None}
                data.update(
                    {f: values[f] for f in entity.mutable_fields if values.get(f) is not None}
                )
                data.update(
                    {f: raw[f] for f in entity.create_fields if raw.get(f) is not None}
                )
                for f, default in entity.defaults.items():
                    data.setdefault(f, default)
                data.update(writable_refs)
                data["tenantId"] = self.tenant_id
                created = await self.store.create(entity.name, data)
                target_id = created["id"]

            if raw.get("id") is not None:
                id_map[raw["id"]] = target_id
            count += 1

            for link in entity.links:
                nested = raw.get(link.source) or []
                await self.restore_links(
                    link, nested, parent_id=target_id, context=f"{entity.name}[{index}]"
                )

        self.report.summary[entity.name] = count

    async def restore_links(
        self,
        link: LinkDef,
        rows: list,
        parent_id: Any = None,
        context: str | None = None,
    ) -> None:
        count = 0
        for index, raw in enumerate(rows):
            where = f" (in {context})" if context else ""
            if not isinstance(raw, dict):
                self._skip(link.link, index, f"not an object{where}")
                continue

            data: dict[str, Any] = {}
            if link.parent_field:
                data[link.parent_field] = parent_id

            unresolved = []
            for ref in link.refs:
                mapped = self._mapped(ref.collection, raw.get(ref.field))
                if mapped is None:
                    unresolved.append(f"{ref.field}={raw.get(ref.field)}")
                data[ref.field] = mapped
            if unresolved:
                self._skip(
                    link.link, index, f"unresolved reference {', '.join(unresolved)}{where}"
                )
                continue

            for ref in link.optional_refs:
                mapped = self._mapped(ref.collection, raw.get(ref.field))
                if mapped is not None:
                    data[ref.field] = mapped
            for f in link.copy_fields:
                if raw.get(f) is not None:
                    data[f] = raw[f]
            data["tenantId"] = self.tenant_id

            await self.store.insert_link(link.link, data, keys=link.keys)
            count += 1

        self.report.summary[link.link] = self.report.summary.get(link.link, 0) + count


async def restore_snapshot(
    store: RecordStore,
    payload: dict[str, Any] | Snapshot,
    tenant_id: int,
    dry_run: bool = False,
    schema: RestoreSchema | None = None,
) -> RestoreReport:
    """Restore a (possibly partial) snapshot payload into ``tenant_id``.

    Collections absent from the payload are skipped entirely.  Rows
    without their natural key are skipped, not counted, and listed in
    ``RestoreReport.skipped``.  Counters report records reconciled
    (created or matched), not net-new rows.

    Args:
        store: Record store to write to.
        payload: Snapshot document (``{"users": [...], ...}``) or a
            ``Snapshot``.
        tenant_id: Tenant every restored row is written under.
        dry_run: Execute the restore, then roll the transaction back.
        schema: Restore plan (defaults to ``RESTORE_SCHEMA``).

    Returns:
        RestoreReport with per-collection counts and skipped rows.

    Raises:
        RestoreError: If any write fails; nothing is kept.
    """
    if isinstance(payload, Snapshot):
        payload = payload.collections
    schema = schema or RESTORE_SCHEMA
    report = RestoreReport(dry_run=dry_run)

    try:
        async with store.transaction() as tx:
            restorer = _Restorer(tx, tenant_id, report)
            for step in schema.steps:
                rows = payload.get(step.name)
                if not isinstance(rows, list):
                    continue
                if isinstance(step, LinkDef):
                    await restorer.restore_links(step, rows)
                else:
                    await restorer.restore_entity(step, rows)
            if dry_run:
                raise _DryRunRollback()
    except _DryRunRollback:
        logger.info(f"Dry-run restore into tenant {tenant_id}: {report.summary}")
        return report
    except Exception as e:
        logger.error(f"Restore into tenant {tenant_id} rolled back: {e}")
        raise RestoreError(str(e)) from e

    logger.info(f"Restored into tenant {tenant_id}: {report.summary}")
    return report
