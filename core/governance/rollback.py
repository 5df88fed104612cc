"""
Revert — restore a record's governed fields to a recorded snapshot.

Every committed change stores the record's state before it (``old_data``)
in the audit history. Reverting to an entry writes that snapshot back onto
the live record, re-validated against the current field rules. A 'created'
entry has no prior state, so its ``new_data`` (the record as first
written) is restored instead.

A revert is itself an audited forward change: it appends a 'reverted'
entry pointing at its source, and earlier entries are never touched.
Reverts never change the deletion marker; use restore for that.
"""
import logging

from sqlalchemy.orm.exc import StaleDataError

from core.governance.errors import (
    GovernanceError, NotFoundError, StaleRequestError, ValidationError,
)
from core.governance.fields import get_schema
from core.governance.permissions import authorize

logger = logging.getLogger(__name__)


def revert_target(entry):
    """The snapshot a revert to ``entry`` restores."""
    return entry.old_data if entry.old_data is not None else entry.new_data


def revert_entity(history_entry_id, actor, entity_type=None, entity_id=None):
    """Revert a record to the state captured in an audit entry.

    Args:
        history_entry_id: The AuditEntry to revert to.
        actor: The Actor initiating the revert (manager or higher).
        entity_type: Optional scope; must match the entry if given.
        entity_id: Optional scope; must match the entry if given.

    Returns:
        dict with keys:
            entity       — the reverted record
            audit_entry  — the new 'reverted' AuditEntry

    Raises:
        NotFoundError: Entry or record missing, or entry outside the scope.
        AuthorizationError: Actor below manager.
        ValidationError: Snapshot is empty or violates current field rules.
    """
    from models import db
    from core.governance.audit import append_entry, get_entry
    from core.governance.mutations import write_fields

    entry = get_entry(history_entry_id)

    if entity_type is not None and entry.entity_type != entity_type:
        raise NotFoundError(
            f'History entry #{history_entry_id} does not belong to this record'
        )
    if entity_id is not None and str(entry.entity_id) != str(entity_id).strip():
        raise NotFoundError(
            f'History entry #{history_entry_id} does not belong to this record'
        )

    authorize(actor, 'revert', entry.entity_type)

    schema = get_schema(entry.entity_type)
    restorable = schema.governed_values(revert_target(entry))
    if not restorable:
        raise ValidationError(
            f'History entry #{history_entry_id} has no snapshot to revert to'
        )

    try:
        entity = schema.load(entry.entity_id, fresh=True, for_update=True)

        # --- Snapshot current state (before revert) ---
        before = schema.snapshot(entity)

        write_fields(entity, schema, restorable)
        db.session.flush()

        # --- Snapshot after revert ---
        after = schema.snapshot(entity)

        audit_entry = append_entry(
            entity_type=entry.entity_type,
            entity_id=entry.entity_id,
            kind='reverted',
            old_data=before,
            new_data=after,
            actor=actor,
            notes=(f'Reverted to state from entry #{entry.id} '
                   f'({entry.created_at.isoformat()})'),
            source_entry_id=entry.id,
        )
        db.session.commit()
    except GovernanceError:
        db.session.rollback()
        raise
    except StaleDataError:
        db.session.rollback()
        raise StaleRequestError(
            f'{schema.label} #{entry.entity_id} changed during the revert; retry'
        ) from None
    except Exception:
        db.session.rollback()
        logger.exception('[gov] revert to entry %s rolled back', history_entry_id)
        raise

    logger.info(
        '[gov] %s#%s reverted to entry %s by user=%s',
        entry.entity_type, entry.entity_id, entry.id, actor.id,
    )
    return {'entity': entity, 'audit_entry': audit_entry}
