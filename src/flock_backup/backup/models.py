"""Snapshot and restore models.

``Snapshot`` is the in-memory export value.  ``EntityDef`` and
``LinkDef`` declare, per collection, how the restore engine matches
rows across the export/restore boundary (natural keys), which fields
it may refresh, and which foreign keys it remaps.

Usage:
    from flock_backup.backup.models import EntityDef, ForeignKey, RestoreSchema

    schema = RestoreSchema(steps=[
        EntityDef(name="departments", match_keys=[["name"]],
                  mutable_fields=["description"]),
        EntityDef(name="events", match_keys=[["title", "date"]],
                  date_fields=["date"],
                  refs=[ForeignKey(collection="departments", field="departmentId")]),
    ])
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

SCHEMA_VERSION = "1.0"


def utc_now_iso() -> str:
    """Current UTC time as ``2026-01-15T09:30:00.123Z``."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ============================================================================
# Snapshot
# ============================================================================


class SnapshotMeta(BaseModel):
    """Snapshot header written as the document's ``meta`` object."""

    model_config = ConfigDict(populate_by_name=True)

    created_at: str = Field(default_factory=utc_now_iso, alias="createdAt")
    version: str = SCHEMA_VERSION


class Snapshot(BaseModel):
    """Point-in-time export of every collection for a tenant (or all tenants)."""

    meta: SnapshotMeta = Field(default_factory=SnapshotMeta)
    collections: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)

    def to_document(self) -> dict[str, Any]:
        """On-disk layout: ``meta`` plus one top-level array per collection."""
        document: dict[str, Any] = {"meta": self.meta.model_dump(by_alias=True)}
        document.update(self.collections)
        return document

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "Snapshot":
        """Inverse of ``to_document``; non-list keys other than ``meta`` are ignored."""
        meta = SnapshotMeta.model_validate(document.get("meta") or {})
        collections = {
            k: v for k, v in document.items() if k != "meta" and isinstance(v, list)
        }
        return cls(meta=meta, collections=collections)

    def counts(self) -> dict[str, int]:
        """Number of records per collection."""
        return {name: len(rows) for name, rows in self.collections.items()}


class PersistResult(BaseModel):
    """Location and size of a written snapshot file."""

    path: Path
    size_bytes: int
    encrypted: bool = False


class SnapshotInfo(BaseModel):
    """Catalog entry for one persisted snapshot file."""

    path: Path
    created_at: datetime    # file modification time (UTC)
    size_bytes: int


# ============================================================================
# Restore declarations
# ============================================================================


class ForeignKey(BaseModel):
    """Foreign key remapped through the restore id maps."""

    collection: str     # referenced collection
    field: str          # FK column in this collection


class LinkDef(BaseModel):
    """Join rows re-linked with insert-if-absent semantics.

    When nested under an ``EntityDef`` the rows come from the parent
    record's ``source`` list and ``parent_field`` is set to the parent's
    restored id.  As a top-level step the rows come from the payload
    collection named ``link``.
    """

    kind: Literal["link"] = "link"
    link: str                                       # link collection name
    source: str | None = None                       # nested list on the parent row
    parent_field: str | None = None                 # FK column pointing at the parent
    refs: list[ForeignKey] = Field(default_factory=list)           # required
    optional_refs: list[ForeignKey] = Field(default_factory=list)  # omitted if unresolved
    copy_fields: list[str] = Field(default_factory=list)           # copied as-is

    @property
    def name(self) -> str:
        return self.link

    @property
    def keys(self) -> tuple[str, ...]:
        names = [self.parent_field] if self.parent_field else []
        return tuple(names + [ref.field for ref in self.refs])


class EntityDef(BaseModel):
    """Definition of a collection for non-destructive restore."""

    kind: Literal["entity"] = "entity"
    name: str                                           # collection name
    match_keys: list[list[str]]                         # candidate natural keys, tried in order
    nullable_key_fields: list[str] = Field(default_factory=list)
    mutable_fields: list[str] = Field(default_factory=list)
    create_fields: list[str] = Field(default_factory=list)     # copied on create, never updated
    date_fields: list[str] = Field(default_factory=list)
    defaults: dict[str, Any] = Field(default_factory=dict)     # applied on create only
    refs: list[ForeignKey] = Field(default_factory=list)
    update_on_match: bool = True
    links: list[LinkDef] = Field(default_factory=list)


class RestoreSchema(BaseModel):
    """Ordered restore steps (referenced collections first)."""

    steps: list[EntityDef | LinkDef]

    def names(self) -> list[str]:
        return [step.name for step in self.steps]


# ============================================================================
# Results
# ============================================================================


class SkippedRow(BaseModel):
    """A payload row the restore engine could not reconcile."""

    collection: str
    index: int
    reason: str


class RestoreReport(BaseModel):
    """Outcome of a restore: records reconciled per collection."""

    summary: dict[str, int] = Field(default_factory=dict)
    skipped: list[SkippedRow] = Field(default_factory=list)
    dry_run: bool = False


class MemberRestoreResult(BaseModel):
    """Outcome of a member-name recovery."""

    restored_for: str
    source_file: Path
    report: RestoreReport
