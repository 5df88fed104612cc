"""
Governed entity registry — which records are under governance and which of
their fields may be changed through it.

Each entity type declares an explicit list of governed fields with their
constraints. Snapshots stored on requests and audit entries are built from
this list (plus the ``deleted_at`` lifecycle marker), so the diff basis is a
named structure rather than an arbitrary row dump.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

from core.governance.errors import (
    InvalidStateError, NotFoundError, ValidationError,
)

# Lifecycle marker carried in every snapshot but never written by edit/revert.
LIFECYCLE_FIELD = 'deleted_at'


@dataclass(frozen=True)
class FieldRule:
    name: str
    required: bool = False
    min_length: int | None = None
    max_length: int | None = None
    choices: frozenset | None = None
    pattern: str | None = None

    def check(self, value):
        """Validate a single proposed value.

        Returns:
            (True, None) if valid.
            (False, str) on violation.
        """
        if value is None or (isinstance(value, str) and not value.strip()):
            if self.required:
                return False, f'{self.name} is required'
            return True, None

        if not isinstance(value, str):
            return False, f'{self.name} must be a string'

        text = value.strip()
        if self.min_length is not None and len(text) < self.min_length:
            return False, (
                f'{self.name} must be at least {self.min_length} characters'
            )
        if self.max_length is not None and len(text) > self.max_length:
            return False, (
                f'{self.name} must be at most {self.max_length} characters'
            )
        if self.choices is not None and text not in self.choices:
            return False, (
                f'{self.name} must be one of: {sorted(self.choices)}'
            )
        if self.pattern is not None and not re.fullmatch(self.pattern, text):
            return False, f'{self.name} has an invalid format'

        return True, None


@dataclass(frozen=True)
class EntitySchema:
    entity_type: str
    model_name: str
    label: str
    fields: tuple

    @property
    def field_names(self) -> tuple:
        return tuple(rule.name for rule in self.fields)

    def rule(self, name) -> FieldRule | None:
        for rule in self.fields:
            if rule.name == name:
                return rule
        return None

    @property
    def model(self):
        import models
        return getattr(models, self.model_name)

    # --- loading ---------------------------------------------------------

    def load(self, entity_id, *, fresh=False, for_update=False):
        """Fetch a live entity row (soft-deleted rows included).

        Raises:
            NotFoundError: If no row has this id.
        """
        from models import db

        try:
            entity_id = int(entity_id)
        except (TypeError, ValueError):
            raise NotFoundError(f'{self.label} {entity_id!r} not found') from None

        entity = db.session.get(
            self.model, entity_id,
            populate_existing=fresh,
            with_for_update=True if for_update else None,
        )
        if entity is None:
            raise NotFoundError(f'{self.label} #{entity_id} not found')
        return entity

    def require_live(self, entity):
        if getattr(entity, LIFECYCLE_FIELD) is not None:
            raise InvalidStateError(
                f'{self.label} #{entity.id} is deleted'
            )

    # --- snapshots -------------------------------------------------------

    def snapshot(self, entity) -> dict:
        """Governed fields plus the deletion marker, JSON-safe."""
        data = {name: getattr(entity, name) for name in self.field_names}
        deleted_at = getattr(entity, LIFECYCLE_FIELD)
        data[LIFECYCLE_FIELD] = deleted_at.isoformat() if deleted_at else None
        return data

    def governed_values(self, data) -> dict:
        """Restrict an arbitrary snapshot to the governed fields it carries."""
        return {
            name: data[name] for name in self.field_names
            if data is not None and name in data
        }

    # --- validation ------------------------------------------------------

    def validate(self, values) -> dict:
        """Validate proposed values against the field rules.

        Returns:
            The values with surrounding whitespace stripped from strings.

        Raises:
            ValidationError: On an unknown field or a failed constraint.
        """
        if not isinstance(values, dict):
            raise ValidationError('proposed_data must be an object')

        unknown = sorted(set(values) - set(self.field_names))
        if unknown:
            raise ValidationError(
                f'Fields not editable on {self.entity_type}: {unknown}',
                fields=unknown,
            )

        cleaned = {}
        errors = {}
        for name, value in values.items():
            ok, message = self.rule(name).check(value)
            if not ok:
                errors[name] = message
                continue
            if isinstance(value, str):
                value = value.strip() or None
            cleaned[name] = value

        if errors:
            first = next(iter(errors.values()))
            raise ValidationError(first, fields=errors)
        return cleaned

    def changes_against(self, entity, values) -> dict:
        """Validated values that actually differ from the entity's state."""
        cleaned = self.validate(values)
        return {
            name: value for name, value in cleaned.items()
            if getattr(entity, name) != value
        }


def changed_fields(old_data, new_data) -> list:
    """Keys whose value differs between two snapshots, in new_data order."""
    old_data = old_data or {}
    new_data = new_data or {}
    keys = list(new_data) + [k for k in old_data if k not in new_data]
    return [k for k in keys if old_data.get(k) != new_data.get(k)]


_PHONE = r'[0-9+\-() ]+'

ENTITY_SCHEMAS = {
    'visitor': EntitySchema(
        entity_type='visitor',
        model_name='Visitor',
        label='Visitor',
        fields=(
            FieldRule('full_name', required=True, min_length=2, max_length=255),
            FieldRule('phone', required=True, min_length=5, max_length=20,
                      pattern=_PHONE),
            FieldRule('email', max_length=255, pattern=r'[^@\s]+@[^@\s]+'),
            FieldRule('institution', max_length=255),
            FieldRule('purpose', max_length=255),
            FieldRule('person_to_meet', max_length=255),
            FieldRule('location', max_length=255),
            FieldRule('address'),
            FieldRule('id_number', max_length=100),
        ),
    ),
    'lost_item': EntitySchema(
        entity_type='lost_item',
        model_name='LostItem',
        label='Lost item',
        fields=(
            FieldRule('item_name', required=True, min_length=2, max_length=255),
            FieldRule('description'),
            FieldRule('category', max_length=100),
            FieldRule('found_location', required=True, min_length=2,
                      max_length=255),
            FieldRule('finder_name', max_length=255),
            FieldRule('finder_contact', max_length=100),
            FieldRule('condition_status', required=True,
                      choices=frozenset({'excellent', 'good', 'fair', 'poor'})),
            FieldRule('status', required=True,
                      choices=frozenset({'found', 'returned', 'disposed'})),
            FieldRule('notes'),
        ),
    ),
}


def get_schema(entity_type) -> EntitySchema:
    schema = ENTITY_SCHEMAS.get(entity_type) if isinstance(entity_type, str) else None
    if schema is None:
        raise ValidationError(
            f'Unknown entity type {entity_type!r}. '
            f'Must be one of: {sorted(ENTITY_SCHEMAS)}'
        )
    return schema
