"""
Permission gate — role checks for every governance operation.

Roles arrive from the identity layer as free-form strings ("Admin",
"receptionist", "Front Desk", ...). They are normalized once, at the
boundary, into the Role enum; everything past that point compares enums.

Operation policy:
    request, view            — receptionist or higher
    decide, revert, restore  — manager or higher

A requester may not decide their own request unless the app is configured
with GOVERNANCE_ALLOW_SELF_DECISION.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from core.governance.errors import AuthorizationError, ValidationError
from core.governance.settings import setting

logger = logging.getLogger(__name__)


class Role(str, Enum):
    USER = 'user'
    RECEPTIONIST = 'receptionist'
    MANAGER = 'manager'
    ADMIN = 'admin'

    @property
    def rank(self) -> int:
        return ROLE_RANK[self]


ROLE_RANK = {
    Role.USER: 0,
    Role.RECEPTIONIST: 1,
    Role.MANAGER: 2,
    Role.ADMIN: 3,
}

ROLE_ALIASES = {
    'operator': Role.RECEPTIONIST,
    'front_desk': Role.RECEPTIONIST,
    'frontdesk': Role.RECEPTIONIST,
    'administrator': Role.ADMIN,
    'supervisor': Role.MANAGER,
}

# Minimum role per operation.
OPERATION_ROLES = {
    'request': Role.RECEPTIONIST,
    'view': Role.RECEPTIONIST,
    'decide': Role.MANAGER,
    'revert': Role.MANAGER,
    'restore': Role.MANAGER,
}


def normalize_role(value) -> Role:
    """Map a raw role string onto the Role enum.

    Raises:
        AuthorizationError: If the role is empty or unknown.
    """
    if isinstance(value, Role):
        return value
    key = str(value or '').strip().lower().replace('-', '_').replace(' ', '_')
    if not key:
        raise AuthorizationError('Actor has no role')
    if key in ROLE_ALIASES:
        return ROLE_ALIASES[key]
    try:
        return Role(key)
    except ValueError:
        raise AuthorizationError(f'Unknown role {value!r}') from None


@dataclass(frozen=True)
class Actor:
    """Identity of the caller, passed explicitly into every core operation."""

    id: int
    name: str
    role: Role

    @classmethod
    def from_user(cls, user) -> Actor:
        return cls(
            id=user.id,
            name=user.name or user.email or f'user-{user.id}',
            role=normalize_role(user.role),
        )

    def to_dict(self) -> dict:
        return {'id': self.id, 'name': self.name, 'role': self.role.value}


def authorize(actor: Actor, operation: str, entity_type: str | None = None,
              request=None) -> bool:
    """Check that ``actor`` may perform ``operation`` on ``entity_type``.

    Args:
        actor: The calling Actor.
        operation: One of OPERATION_ROLES.
        entity_type: The governed entity type involved, or None for
                     operations spanning every type (reports).
        request: The ActionRequest being decided (for the self-decision
                 guard). Only consulted when operation == 'decide'.

    Returns:
        True when allowed.

    Raises:
        AuthorizationError: If the role is insufficient or the actor would
                            decide their own request.
    """
    from core.governance.fields import get_schema

    if operation not in OPERATION_ROLES:
        raise ValidationError(f'Unknown operation {operation!r}')
    if entity_type is not None:
        get_schema(entity_type)
    scope = entity_type or 'governed'

    if actor is None:
        raise AuthorizationError('Authentication required')

    required = OPERATION_ROLES[operation]
    if actor.role.rank < required.rank:
        logger.warning(
            '[gov] denied %s on %s for user=%s role=%s',
            operation, scope, actor.id, actor.role.value,
        )
        raise AuthorizationError(
            f'Role {actor.role.value!r} cannot {operation} {scope} '
            f'records (requires {required.value} or higher)'
        )

    if (operation == 'decide' and request is not None
            and request.requested_by == actor.id
            and not setting('GOVERNANCE_ALLOW_SELF_DECISION')):
        logger.warning(
            '[gov] self-decision refused request=%s user=%s',
            request.id, actor.id,
        )
        raise AuthorizationError('You cannot decide a request you submitted')

    return True
