"""
Audit logger — append-only history for every governed record.

Every committed change to a visitor or lost item (creation, approved edit or
delete, revert, restore) appends one AuditEntry holding old/new snapshots
and the explicit list of changed fields. Entries are never edited or
deleted; they are the only source for revert.
"""
from core.governance.errors import NotFoundError, ValidationError
from core.governance.fields import changed_fields as diff_fields, get_schema

AUDIT_KINDS = frozenset({
    'created', 'updated', 'status_changed', 'returned', 'deleted', 'reverted',
})


def append_entry(entity_type, entity_id, kind, old_data, new_data, actor,
                 changed_fields=None, notes=None, request_id=None,
                 source_entry_id=None):
    """Append an audit entry for a governed record.

    Args:
        entity_type: Registered entity type.
        entity_id: The record's id.
        kind: One of AUDIT_KINDS.
        old_data: Snapshot before the change (None for 'created').
        new_data: Snapshot after the change.
        actor: The Actor who committed the change.
        changed_fields: Explicit list; derived from the snapshots if omitted.
        notes: Optional human-readable note.
        request_id: The ActionRequest whose approval caused the change.
        source_entry_id: The entry a 'reverted' entry restored from.

    Returns:
        AuditEntry instance (added to the session, not committed).
    """
    from models import db, AuditEntry

    get_schema(entity_type)
    if kind not in AUDIT_KINDS:
        raise ValidationError(
            f'Invalid audit kind {kind!r}. Must be one of: {sorted(AUDIT_KINDS)}'
        )
    if changed_fields is None:
        changed_fields = diff_fields(old_data, new_data)

    entry = AuditEntry(
        entity_type=entity_type,
        entity_id=entity_id,
        action_type=kind,
        old_data=old_data,
        new_data=new_data,
        changed_fields=list(changed_fields),
        actor_id=actor.id if actor else None,
        actor_name=actor.name if actor else None,
        actor_role=actor.role.value if actor else None,
        notes=notes,
        request_id=request_id,
        source_entry_id=source_entry_id,
    )
    db.session.add(entry)
    # Caller is responsible for commit (batched with the entity mutation).
    db.session.flush()
    return entry


def history_query(entity_type, entity_id):
    """Query for an entity's history, newest first.

    Iterating the query re-runs it, so the sequence can be restarted.
    """
    from models import AuditEntry

    get_schema(entity_type)
    return AuditEntry.query.filter_by(
        entity_type=entity_type, entity_id=entity_id,
    ).order_by(AuditEntry.created_at.desc(), AuditEntry.id.desc())


def get_history(entity_type, entity_id, limit=None):
    """List an entity's audit entries, newest first.

    Args:
        entity_type: Registered entity type.
        entity_id: The record's id.
        limit: Optional max entries.

    Returns:
        list[AuditEntry]
    """
    q = history_query(entity_type, entity_id)
    if limit is not None:
        q = q.limit(limit)
    return q.all()


def get_entry(entry_id):
    """Fetch one audit entry.

    Raises:
        NotFoundError: If the entry does not exist.
    """
    from models import db, AuditEntry

    entry = db.session.get(AuditEntry, entry_id)
    if entry is None:
        raise NotFoundError(f'History entry #{entry_id} not found')
    return entry
