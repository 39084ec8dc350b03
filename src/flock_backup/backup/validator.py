"""Consistency validation: dangling relational references in the live store.

Each ``ReferenceCheck`` reads one referencing collection and the id set
of the collection it points at, and reports every row whose reference
does not resolve.  Checks are independent; new ones are appended to
``REFERENCE_CHECKS``.  Nothing is repaired, and store read errors
propagate to the caller.

Usage:
    from flock_backup.backup.validator import validate_consistency

    issues = await validate_consistency(store, tenant_id=1)
    if not issues:
        print("healthy")
"""

from pydantic import BaseModel

from flock_backup.adapters.base import RecordStore
from flock_backup.backup.exporter import tenant_filter


class ReferenceCheck(BaseModel):
    """One reference that must resolve within the tenant."""

    label: str              # entity name used in issue messages
    collection: str         # referencing collection
    field: str              # FK column
    target: str             # referenced collection
    link: bool = False      # referencing collection is a join table
    verb: str = "missing"   # message wording


REFERENCE_CHECKS: list[ReferenceCheck] = [
    ReferenceCheck(
        label="Member", collection="members", field="userId", target="users",
        verb="references missing",
    ),
    ReferenceCheck(
        label="Event", collection="events", field="departmentId", target="departments",
        verb="references missing",
    ),
    ReferenceCheck(
        label="CouncilMember", collection="councilMembers", field="councilId",
        target="councils", link=True,
    ),
    ReferenceCheck(
        label="CouncilMember", collection="councilMembers", field="memberId",
        target="members", link=True,
    ),
    ReferenceCheck(
        label="CommitteeMember", collection="committeeMembers", field="committeeId",
        target="committees", link=True,
    ),
    ReferenceCheck(
        label="CommitteeMember", collection="committeeMembers", field="memberId",
        target="members", link=True,
    ),
]


async def validate_consistency(
    store: RecordStore,
    tenant_id: int | None = None,
    checks: list[ReferenceCheck] | None = None,
) -> list[str]:
    """Scan the store for dangling references.

    Args:
        store: Record store to read.
        tenant_id: Tenant to scope the scan to; ``None`` scans all tenants.
        checks: Checks to run (defaults to ``REFERENCE_CHECKS``).

    Returns:
        One issue string per dangling reference, e.g.
        ``"Member #7 references missing userId=3"``.  Empty when healthy.
    """
    where = tenant_filter(tenant_id)
    rows_cache: dict[str, list[dict]] = {}

    async def rows(collection: str, link: bool = False) -> list[dict]:
        if collection not in rows_cache:
            if link:
                rows_cache[collection] = await store.select_links(collection, filters=where)
            else:
                rows_cache[collection] = await store.find_many(collection, filters=where)
        return rows_cache[collection]

    issues: list[str] = []
    for check in checks if checks is not None else REFERENCE_CHECKS:
        referencing = await rows(check.collection, link=check.link)
        # Keyed by tenant so an unscoped scan flags cross-tenant references.
        targets = {(r.get("tenantId"), r["id"]) for r in await rows(check.target)}
        for row in referencing:
            value = row.get(check.field)
            # Only non-null references are checked.
            if value is None or (row.get("tenantId"), value) in targets:
                continue
            issues.append(
                f"{check.label} #{row.get('id')} {check.verb} {check.field}={value}"
            )
    return issues
