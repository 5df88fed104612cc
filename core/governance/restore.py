"""
Restore — undo a soft delete.
"""
import logging

from sqlalchemy.orm.exc import StaleDataError

from core.governance.errors import (
    GovernanceError, InvalidStateError, StaleRequestError,
)
from core.governance.fields import LIFECYCLE_FIELD, get_schema
from core.governance.permissions import authorize

logger = logging.getLogger(__name__)


def restore_entity(entity_type, entity_id, actor):
    """Clear the deletion marker on a soft-deleted record.

    Writes an 'updated' audit entry whose only changed field is deleted_at.

    Returns:
        dict with keys ``entity`` and ``audit_entry``.

    Raises:
        AuthorizationError, NotFoundError,
        InvalidStateError: If the record is not deleted.
    """
    from models import db
    from core.governance.audit import append_entry

    authorize(actor, 'restore', entity_type)
    schema = get_schema(entity_type)

    try:
        entity = schema.load(entity_id, fresh=True, for_update=True)
        if entity.deleted_at is None:
            raise InvalidStateError(
                f'{schema.label} #{entity.id} is not deleted'
            )

        before = schema.snapshot(entity)
        entity.deleted_at = None
        entity.deleted_by = None
        db.session.flush()
        after = schema.snapshot(entity)

        audit_entry = append_entry(
            entity_type=entity_type,
            entity_id=entity.id,
            kind='updated',
            old_data=before,
            new_data=after,
            actor=actor,
            changed_fields=[LIFECYCLE_FIELD],
            notes='Restored from deletion',
        )
        db.session.commit()
    except GovernanceError:
        db.session.rollback()
        raise
    except StaleDataError:
        db.session.rollback()
        raise StaleRequestError(
            f'{schema.label} #{entity_id} changed during the restore; retry'
        ) from None
    except Exception:
        db.session.rollback()
        logger.exception('[gov] restore of %s#%s rolled back', entity_type, entity_id)
        raise

    logger.info('[gov] %s#%s restored by user=%s', entity_type, entity.id, actor.id)
    return {'entity': entity, 'audit_entry': audit_entry}
