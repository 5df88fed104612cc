"""
core.governance — maker-checker control over visitor and lost-item records.

Operators propose edits or deletes; a manager or admin approves or rejects
each proposal exactly once. Every committed change is written to an
append-only audit history that supports reverting a record to any earlier
recorded state. Soft-deleted records can be restored.

Public API:
    Actor, Role, normalize_role, authorize       — permission gate
    create_request, get_request, list_requests   — action requests
    list_stale_requests, request_stats,
    pending_status                               — reporting
    decide_request, approve_request,
    reject_request                               — approval gate
    apply_mutation                               — mutation applier
    append_entry, get_history, get_entry         — audit trail
    revert_entity                                — revert to a snapshot
    restore_entity                               — undo a soft delete
"""

from core.governance.errors import (
    GovernanceError,
    ValidationError,
    AuthorizationError,
    NotFoundError,
    ConflictError,
    InvalidStateError,
    StaleRequestError,
)
from core.governance.permissions import (
    Actor,
    Role,
    normalize_role,
    authorize,
)
from core.governance.requests import (
    create_request,
    get_request,
    list_requests,
    list_stale_requests,
    request_stats,
    pending_status,
)
from core.governance.approvals import (
    decide_request,
    approve_request,
    reject_request,
)
from core.governance.mutations import (
    apply_mutation,
)
from core.governance.audit import (
    append_entry,
    get_history,
    get_entry,
)
from core.governance.rollback import (
    revert_entity,
)
from core.governance.restore import (
    restore_entity,
)

__all__ = [
    'GovernanceError',
    'ValidationError',
    'AuthorizationError',
    'NotFoundError',
    'ConflictError',
    'InvalidStateError',
    'StaleRequestError',
    'Actor',
    'Role',
    'normalize_role',
    'authorize',
    'create_request',
    'get_request',
    'list_requests',
    'list_stale_requests',
    'request_stats',
    'pending_status',
    'decide_request',
    'approve_request',
    'reject_request',
    'apply_mutation',
    'append_entry',
    'get_history',
    'get_entry',
    'revert_entity',
    'restore_entity',
]
