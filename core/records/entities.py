"""
Record creation and lookup for governed entity types.
"""
from __future__ import annotations

import logging
from datetime import datetime

from models import db, Visitor, LostItem
from core.governance.audit import append_entry
from core.governance.errors import AuthorizationError, GovernanceError
from core.governance.fields import get_schema
from core.governance.permissions import Actor, Role

logger = logging.getLogger(__name__)


def _create(entity_type: str, actor: Actor, values: dict, **extra):
    if actor is None or actor.role.rank < Role.RECEPTIONIST.rank:
        raise AuthorizationError(f'Only front-desk staff can register {entity_type} records')

    schema = get_schema(entity_type)
    model = schema.model

    # Every required governed field must be present on creation.
    missing = {
        rule.name: None for rule in schema.fields
        if rule.required and rule.name not in values
    }
    cleaned = schema.validate({**missing, **values})

    entity = model(**cleaned, input_by_user_id=actor.id, **extra)
    db.session.add(entity)
    try:
        db.session.flush()
        append_entry(
            entity_type=entity_type,
            entity_id=entity.id,
            kind='created',
            old_data=None,
            new_data=schema.snapshot(entity),
            actor=actor,
            notes=f'{schema.label} registered',
        )
        db.session.commit()
    except GovernanceError:
        db.session.rollback()
        raise
    except Exception:
        db.session.rollback()
        logger.exception('[records] create %s failed', entity_type)
        raise

    logger.info('[records] %s#%s created by user=%s', entity_type, entity.id, actor.id)
    return entity


def create_visitor(actor: Actor, /, **values) -> Visitor:
    """Check in a new visitor.

    Args:
        actor: Front-desk Actor registering the visitor.
        **values: Governed visitor fields (full_name and phone required).

    Raises:
        ValidationError: On a missing or invalid field.
        AuthorizationError: If the actor is not front-desk staff.
    """
    return _create('visitor', actor, values, check_in_time=datetime.utcnow())


def create_lost_item(actor: Actor, /, **values) -> LostItem:
    """Register a found item. status defaults to 'found', condition to 'good'."""
    values.setdefault('status', 'found')
    values.setdefault('condition_status', 'good')
    return _create('lost_item', actor, values, found_at=datetime.utcnow())


def get_entity(entity_type: str, entity_id: int):
    """Read one record, soft-deleted or not.

    Raises:
        ValidationError: Unknown entity type.
        NotFoundError: No such record.
    """
    return get_schema(entity_type).load(entity_id)
