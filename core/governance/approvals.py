"""
Approval gate — the only path out of 'pending'.

    pending -> approved   mutate the record, append an audit entry
    pending -> rejected   record the decision only; the record is untouched

Critical constraints:
    - The decider must be a manager or admin, and not the requester
      (unless GOVERNANCE_ALLOW_SELF_DECISION is set).
    - Approval is refused if the record's version moved since the request
      snapshot; the request stays pending and must be resubmitted.
    - The status flip is a conditional UPDATE guarded by status='pending',
      so of two concurrent decisions exactly one wins.
    - Mutation, audit entry and status flip commit together or not at all.
"""
import logging
from datetime import datetime

from sqlalchemy.orm.exc import StaleDataError

from core.governance.errors import (
    GovernanceError, InvalidStateError, StaleRequestError, ValidationError,
)
from core.governance.fields import changed_fields, get_schema
from core.governance.permissions import authorize
from core.governance.requests import clean_reason

logger = logging.getLogger(__name__)

TRANSITIONS = {
    'pending': frozenset({'approved', 'rejected'}),
    'approved': frozenset(),
    'rejected': frozenset(),
}

AUDIT_KIND_FOR_ACTION = {
    'edit': 'updated',
    'delete': 'deleted',
}


def can_transition(current, target):
    return target in TRANSITIONS.get(current, frozenset())


def decide_request(request_id, actor, outcome, notes=None):
    """Approve or reject a pending action request.

    Args:
        request_id: The request to decide.
        actor: The deciding Actor (manager or higher).
        outcome: 'approved' or 'rejected'.
        notes: Decision notes; required (as the rejection reason) when
               rejecting, optional when approving.

    Returns:
        dict with keys:
            request      — the decided ActionRequest
            entity       — the mutated record (approval only, else None)
            audit_entry  — the appended AuditEntry (approval only, else None)

    Raises:
        ValidationError, NotFoundError, AuthorizationError,
        InvalidStateError, StaleRequestError.
    """
    from core.governance.requests import get_request

    if outcome not in ('approved', 'rejected'):
        raise ValidationError(
            f'Invalid outcome {outcome!r}. Must be "approved" or "rejected"'
        )

    pcr = get_request(request_id)

    if not can_transition(pcr.status, outcome):
        raise InvalidStateError(
            f'Request is already {pcr.status}, cannot mark it {outcome}',
            status=pcr.status,
        )

    authorize(actor, 'decide', pcr.entity_type, request=pcr)

    if outcome == 'rejected':
        return _reject(pcr, actor, clean_reason(notes, label='Rejection reason'))
    if notes is not None:
        notes = str(notes).strip() or None
    return _approve(pcr, actor, notes)


def approve_request(request_id, actor, notes=None):
    return decide_request(request_id, actor, 'approved', notes=notes)


def reject_request(request_id, actor, reason):
    return decide_request(request_id, actor, 'rejected', notes=reason)


# ---------------------------------------------------------------------------
# Internal: guarded status transition
# ---------------------------------------------------------------------------

def _claim(pcr, outcome, actor, now, notes):
    """Flip pending -> outcome in one conditional UPDATE.

    Raises:
        InvalidStateError: If another decision got there first.
    """
    from models import ActionRequest

    updated = ActionRequest.query.filter(
        ActionRequest.id == pcr.id,
        ActionRequest.status == 'pending',
    ).update({
        'status': outcome,
        'processed_by': actor.id,
        'processed_by_name': actor.name,
        'processed_by_role': actor.role.value,
        'processed_at': now,
        'decision_notes': notes,
    }, synchronize_session=False)

    if updated != 1:
        raise InvalidStateError(
            f'Request #{pcr.id} was decided by someone else',
        )


def _finish(pcr):
    """Commit, and roll back everything on any failure."""
    from models import db

    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception('[gov] commit failed for request %s', pcr.id)
        raise


# ---------------------------------------------------------------------------
# Internal: reject
# ---------------------------------------------------------------------------

def _reject(pcr, actor, reason):
    from models import db

    request_id = pcr.id
    try:
        _claim(pcr, 'rejected', actor, datetime.utcnow(), reason)
    except GovernanceError:
        db.session.rollback()
        raise

    _finish(pcr)
    db.session.refresh(pcr)

    logger.info('[gov] request %s rejected by user=%s', request_id, actor.id)
    return {'request': pcr, 'entity': None, 'audit_entry': None}


# ---------------------------------------------------------------------------
# Internal: approve
# ---------------------------------------------------------------------------

def _approve(pcr, actor, notes):
    from models import db
    from core.governance.audit import append_entry
    from core.governance.mutations import apply_mutation

    schema = get_schema(pcr.entity_type)
    request_id = pcr.id

    try:
        # --- Optimistic concurrency check ---
        entity = schema.load(pcr.entity_id, fresh=True, for_update=True)
        if entity.version != pcr.entity_version:
            raise StaleRequestError(
                f'{schema.label} #{entity.id} changed since request '
                f'#{request_id} was filed; submit a new request',
                expected_version=pcr.entity_version,
                current_version=entity.version,
            )

        now = datetime.utcnow()
        _claim(pcr, 'approved', actor, now, notes)

        new_data = apply_mutation(
            pcr.entity_type, pcr.entity_id, pcr.action_type,
            pcr.proposed_data, actor, now=now,
        )

        kind = AUDIT_KIND_FOR_ACTION[pcr.action_type]
        entry = append_entry(
            entity_type=pcr.entity_type,
            entity_id=pcr.entity_id,
            kind=kind,
            old_data=pcr.original_data,
            new_data=new_data,
            actor=actor,
            changed_fields=changed_fields(pcr.original_data, new_data),
            notes=notes or f'Approved {pcr.action_type} request #{request_id}',
            request_id=request_id,
        )
        db.session.commit()
    except GovernanceError as e:
        db.session.rollback()
        logger.warning(
            '[gov] approval of request %s refused (%s): %s',
            request_id, e.code, e.message,
        )
        raise
    except StaleDataError:
        db.session.rollback()
        logger.warning('[gov] approval of request %s lost a write race', request_id)
        raise StaleRequestError(
            f'{schema.label} #{pcr.entity_id} changed while request '
            f'#{request_id} was being approved; submit a new request'
        ) from None
    except Exception:
        db.session.rollback()
        logger.exception('[gov] approval of request %s rolled back', request_id)
        raise

    db.session.refresh(pcr)
    logger.info(
        '[gov] request %s approved by user=%s: %s %s#%s (audit entry %s)',
        request_id, actor.id, pcr.action_type, pcr.entity_type,
        pcr.entity_id, entry.id,
    )
    return {'request': pcr, 'entity': entity, 'audit_entry': entry}
