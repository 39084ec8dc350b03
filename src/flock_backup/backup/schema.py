"""Collections exported into a snapshot and how each one is restored.

``SNAPSHOT_COLLECTIONS`` lists every collection in export order along
with the sub-collections read alongside it.  ``RESTORE_SCHEMA`` is the
default restore plan: natural keys, refreshable fields, and FK remapping
for each restorable collection, ordered so that referenced rows are
reconciled before the rows that point at them (users before members,
members before departments and memberships, departments before events).
"""

from flock_backup.backup.models import EntityDef, ForeignKey, LinkDef, RestoreSchema

# (collection, includes) in snapshot order.
SNAPSHOT_COLLECTIONS: list[tuple[str, list[str]]] = [
    ("settings", []),
    ("users", []),
    ("members", []),
    ("departments", []),
    ("events", []),
    ("announcements", []),
    ("sermons", []),
    ("financeRecords", []),
    ("attendanceRecords", ["entries"]),
    ("councils", ["members"]),
    ("committees", ["members"]),
    ("boardMinutes", ["versions"]),
    ("businessMinutes", ["versions"]),
    ("programs", []),
    ("cellGroups", []),
    ("cellGroupMemberships", []),
]

SNAPSHOT_COLLECTION_NAMES: list[str] = [name for name, _ in SNAPSHOT_COLLECTIONS]

_MEMBER_FIELDS = [
    "firstName",
    "lastName",
    "gender",
    "dob",
    "contact",
    "address",
    "spiritualStatus",
    "photoUrl",
    "baptized",
    "dedicated",
    "weddingDate",
    "membershipStatus",
    "profession",
    "talents",
    "abilities",
]

RESTORE_SCHEMA = RestoreSchema(
    steps=[
        EntityDef(
            name="settings",
            match_keys=[["key"]],
            mutable_fields=["value"],
        ),
        EntityDef(
            name="users",
            match_keys=[["email"]],
            mutable_fields=["name", "role"],
            create_fields=["passwordHash"],
            defaults={"passwordHash": "", "name": "Restored", "role": "MEMBER"},
        ),
        # Heuristic: without a linked user, two people sharing a name and
        # birthdate collapse into one row.
        EntityDef(
            name="members",
            match_keys=[["userId"], ["firstName", "lastName", "dob"]],
            nullable_key_fields=["dob"],
            mutable_fields=_MEMBER_FIELDS,
            date_fields=["dob", "weddingDate"],
            defaults={"gender": "OTHER"},
            refs=[ForeignKey(collection="users", field="userId")],
        ),
        EntityDef(
            name="departments",
            match_keys=[["name"]],
            mutable_fields=["description"],
            refs=[ForeignKey(collection="members", field="leaderId")],
        ),
        EntityDef(
            name="events",
            match_keys=[["title", "date"]],
            mutable_fields=["description", "location"],
            date_fields=["date"],
            refs=[ForeignKey(collection="departments", field="departmentId")],
        ),
        EntityDef(
            name="programs",
            match_keys=[["name", "startDate"]],
            mutable_fields=["description", "endDate", "location", "status"],
            date_fields=["startDate", "endDate"],
        ),
        EntityDef(
            name="cellGroups",
            match_keys=[["name"]],
            mutable_fields=["description", "location"],
        ),
        LinkDef(
            link="cellGroupMemberships",
            refs=[
                ForeignKey(collection="cellGroups", field="groupId"),
                ForeignKey(collection="members", field="memberId"),
            ],
            optional_refs=[ForeignKey(collection="users", field="registeredById")],
        ),
        EntityDef(
            name="councils",
            match_keys=[["name"]],
            mutable_fields=["description", "contact", "meetingSchedule"],
            links=[
                LinkDef(
                    link="councilMembers",
                    source="members",
                    parent_field="councilId",
                    refs=[ForeignKey(collection="members", field="memberId")],
                    copy_fields=["role"],
                ),
            ],
        ),
        EntityDef(
            name="committees",
            match_keys=[["name"]],
            mutable_fields=["meetingFrequency"],
            links=[
                LinkDef(
                    link="committeeMembers",
                    source="members",
                    parent_field="committeeId",
                    refs=[ForeignKey(collection="members", field="memberId")],
                    copy_fields=["role"],
                ),
            ],
        ),
        # Historical communications are append-only.
        EntityDef(
            name="announcements",
            match_keys=[["title", "createdAt"]],
            mutable_fields=["content", "audience"],
            date_fields=["createdAt"],
            defaults={"content": ""},
            update_on_match=False,
        ),
        EntityDef(
            name="sermons",
            match_keys=[["title", "date"]],
            mutable_fields=["speaker", "type", "contentUrl", "textContent"],
            date_fields=["date"],
            defaults={"type": "TEXT"},
        ),
    ]
)
