"""
Mutation applier — the only code that writes governed fields.

    edit    — set exactly the fields in proposed_data, after validating all
              of them; unlisted fields are untouched.
    delete  — soft delete: stamp deleted_at/deleted_by, keep the data.

Nothing is committed here. The caller owns the transaction so that the
mutation, its audit entry and the request decision land together.
"""
from datetime import datetime

from core.governance.errors import ValidationError
from core.governance.fields import get_schema


def write_fields(entity, schema, values):
    """Validate then assign governed values onto an entity.

    Validation runs over every value before the first assignment, so a
    failing constraint leaves the entity untouched.
    """
    cleaned = schema.validate(values)
    for name, value in cleaned.items():
        setattr(entity, name, value)
    return cleaned


def apply_mutation(entity_type, entity_id, action_type, proposed_data, actor,
                   now=None):
    """Apply an approved edit or delete to a governed record.

    Args:
        entity_type: Registered entity type.
        entity_id: The record's id.
        action_type: 'edit' or 'delete'.
        proposed_data: The changed fields (edit only).
        actor: The deciding Actor.
        now: Decision time (defaults to utcnow).

    Returns:
        dict snapshot of the record after the change.

    Raises:
        ValidationError: Bad action type, empty edit, or failed constraint.
        NotFoundError: If the record does not exist.
        sqlalchemy.orm.exc.StaleDataError: If the row changed underneath.
    """
    from models import db

    schema = get_schema(entity_type)
    entity = schema.load(entity_id)
    now = now or datetime.utcnow()

    if action_type == 'edit':
        if not proposed_data:
            raise ValidationError('Edit has no fields to change')
        write_fields(entity, schema, proposed_data)
    elif action_type == 'delete':
        schema.require_live(entity)
        entity.deleted_at = now
        entity.deleted_by = actor.id
    else:
        raise ValidationError(f'Invalid action_type {action_type!r}')

    db.session.flush()
    return schema.snapshot(entity)
