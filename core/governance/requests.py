"""
Action request store — operators propose, approvers decide.

Operators propose an edit or a delete of a visitor or lost item via
create_request(). The request is stored as 'pending' and nothing on the
record changes until an approver decides it (see approvals).

Enforces:
- A non-empty reason on every request.
- Edit requests carry at least one field that actually changes.
- At most one pending request per (entity_type, entity_id, action_type),
  backed by a partial unique index.
- The record's governed fields and version are snapshotted at request time;
  that snapshot is the diff basis and never changes afterwards.
"""
import logging
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError

from core.governance.errors import (
    ConflictError, NotFoundError, ValidationError,
)
from core.governance.fields import get_schema
from core.governance.permissions import authorize
from core.governance.settings import setting

logger = logging.getLogger(__name__)

ACTION_TYPES = ('edit', 'delete')
REQUEST_STATUSES = ('pending', 'approved', 'rejected')

DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 200


def clean_reason(reason, label='reason'):
    """Strip and length-check a free-text justification.

    Raises:
        ValidationError: If the reason is missing or too short.
    """
    text = str(reason).strip() if reason is not None else ''
    if not text:
        raise ValidationError(f'{label} is required')
    min_length = setting('GOVERNANCE_MIN_REASON_LENGTH')
    if len(text) < min_length:
        raise ValidationError(
            f'{label} must be at least {min_length} characters'
        )
    return text


def create_request(actor, entity_type, entity_id, action_type, reason,
                   proposed_data=None):
    """Submit an edit or delete request for a governed record.

    Args:
        actor: The requesting Actor (receptionist or higher).
        entity_type: 'visitor' or 'lost_item'.
        entity_id: The record to change.
        action_type: 'edit' or 'delete'.
        reason: Requester's justification (required).
        proposed_data: New values for a subset of governed fields
                       (edit only; ignored for delete).

    Returns:
        The pending ActionRequest.

    Raises:
        ValidationError, AuthorizationError, NotFoundError,
        InvalidStateError (record is deleted), ConflictError.
    """
    from models import db, ActionRequest

    authorize(actor, 'request', entity_type)
    reason = clean_reason(reason)

    if action_type not in ACTION_TYPES:
        raise ValidationError(
            f'Invalid action_type {action_type!r}. Must be "edit" or "delete"'
        )

    schema = get_schema(entity_type)
    entity = schema.load(entity_id, fresh=True)
    schema.require_live(entity)

    changes = None
    if action_type == 'edit':
        if not proposed_data:
            raise ValidationError('Edit requests require proposed_data')
        changes = schema.changes_against(entity, proposed_data)
        if not changes:
            raise ValidationError('proposed_data has no changed fields')

    # --- One pending request per entity + action ---
    existing = ActionRequest.query.filter_by(
        entity_type=entity_type,
        entity_id=entity.id,
        action_type=action_type,
        status='pending',
    ).first()
    if existing is not None:
        raise ConflictError(
            f'There is already a pending {action_type} request '
            f'(#{existing.id}) for this {schema.label.lower()}',
            request_id=existing.id,
        )

    # --- Snapshot current state ---
    pcr = ActionRequest(
        entity_type=entity_type,
        entity_id=entity.id,
        action_type=action_type,
        status='pending',
        reason=reason,
        original_data=schema.snapshot(entity),
        proposed_data=changes,
        entity_version=entity.version,
        requested_by=actor.id,
        requested_by_name=actor.name,
        requested_by_role=actor.role.value,
        requested_at=datetime.utcnow(),
    )
    db.session.add(pcr)

    try:
        db.session.commit()
    except IntegrityError:
        # Lost the race against a concurrent submission.
        db.session.rollback()
        raise ConflictError(
            f'There is already a pending {action_type} request '
            f'for this {schema.label.lower()}'
        ) from None

    logger.info(
        '[gov] request %s submitted: %s %s#%s by user=%s',
        pcr.id, action_type, entity_type, entity.id, actor.id,
    )
    return pcr


def get_request(request_id):
    """Get a single action request.

    Raises:
        NotFoundError: If no request has this id.
    """
    from models import db, ActionRequest

    pcr = db.session.get(ActionRequest, request_id)
    if pcr is None:
        raise NotFoundError(f'Request #{request_id} not found')
    return pcr


def list_requests(status=None, action_type=None, entity_type=None,
                  entity_id=None, requested_by=None,
                  limit=DEFAULT_LIST_LIMIT):
    """List action requests, newest first.

    Args:
        status: Optional filter ('pending', 'approved', 'rejected').
        action_type: Optional filter ('edit', 'delete').
        entity_type: Optional filter.
        entity_id: Optional filter (usually with entity_type).
        requested_by: Optional requester user id.
        limit: Max entries (default 50, capped at 200).

    Returns:
        list[ActionRequest]
    """
    from models import ActionRequest

    if status is not None and status not in REQUEST_STATUSES:
        raise ValidationError(f'Invalid status filter {status!r}')
    if action_type is not None and action_type not in ACTION_TYPES:
        raise ValidationError(f'Invalid action_type filter {action_type!r}')
    if entity_type is not None:
        get_schema(entity_type)

    q = ActionRequest.query
    if status is not None:
        q = q.filter_by(status=status)
    if action_type is not None:
        q = q.filter_by(action_type=action_type)
    if entity_type is not None:
        q = q.filter_by(entity_type=entity_type)
    if entity_id is not None:
        q = q.filter_by(entity_id=entity_id)
    if requested_by is not None:
        q = q.filter_by(requested_by=requested_by)

    limit = min(max(int(limit or DEFAULT_LIST_LIMIT), 1), MAX_LIST_LIMIT)
    return q.order_by(
        ActionRequest.requested_at.desc(), ActionRequest.id.desc(),
    ).limit(limit).all()


def list_stale_requests(max_age_hours=None):
    """Pending requests older than the configured age, oldest first.

    Reporting only: stale requests stay pending until an approver decides
    them.
    """
    from models import ActionRequest

    if max_age_hours is None:
        max_age_hours = setting('GOVERNANCE_STALE_REQUEST_HOURS')
    cutoff = datetime.utcnow() - timedelta(hours=max_age_hours)

    return ActionRequest.query.filter(
        ActionRequest.status == 'pending',
        ActionRequest.requested_at <= cutoff,
    ).order_by(ActionRequest.requested_at.asc()).all()


MAX_STATUS_CHECK_IDS = 100


def request_stats(entity_type=None):
    """Count action requests by status, action type and entity type.

    Args:
        entity_type: Optional filter.

    Returns:
        dict with keys:
            total      — number of requests
            by_status  — {status: count}, every status present
            by_action  — {action_type: {status: count}}
            by_entity  — {entity_type: {status: count}}
    """
    from sqlalchemy import func
    from models import db, ActionRequest

    q = db.session.query(
        ActionRequest.entity_type,
        ActionRequest.action_type,
        ActionRequest.status,
        func.count(ActionRequest.id),
    )
    if entity_type is not None:
        get_schema(entity_type)
        q = q.filter(ActionRequest.entity_type == entity_type)
    rows = q.group_by(
        ActionRequest.entity_type,
        ActionRequest.action_type,
        ActionRequest.status,
    ).all()

    def empty():
        return {status: 0 for status in REQUEST_STATUSES}

    stats = {
        'total': 0,
        'by_status': empty(),
        'by_action': {action: empty() for action in ACTION_TYPES},
        'by_entity': {},
    }
    for row_entity, action, status, count in rows:
        stats['total'] += count
        stats['by_status'][status] += count
        stats['by_action'][action][status] += count
        stats['by_entity'].setdefault(row_entity, empty())[status] += count
    return stats


def pending_status(entity_type, entity_ids):
    """Governance status of several records in one query.

    Args:
        entity_type: Registered entity type.
        entity_ids: Non-empty list of at most 100 record ids.

    Returns:
        dict keyed by record id:
            has_pending  — True if any request on the record is pending
            pending      — {action_type: ActionRequest} for pending requests
            requests     — every request on the record, newest first

    Raises:
        ValidationError: Unknown entity type or a bad id list.
    """
    from models import ActionRequest

    get_schema(entity_type)

    if not isinstance(entity_ids, (list, tuple)) or not entity_ids:
        raise ValidationError('entity_ids must be a non-empty array')
    if len(entity_ids) > MAX_STATUS_CHECK_IDS:
        raise ValidationError(
            f'Maximum {MAX_STATUS_CHECK_IDS} entity ids allowed per request'
        )

    ids = []
    for raw in entity_ids:
        if isinstance(raw, bool) or (isinstance(raw, float) and not raw.is_integer()):
            raise ValidationError(f'Invalid entity id {raw!r}')
        try:
            entity_id = int(raw)
        except (TypeError, ValueError):
            raise ValidationError(f'Invalid entity id {raw!r}') from None
        if entity_id not in ids:
            ids.append(entity_id)

    rows = ActionRequest.query.filter(
        ActionRequest.entity_type == entity_type,
        ActionRequest.entity_id.in_(ids),
    ).order_by(
        ActionRequest.requested_at.desc(), ActionRequest.id.desc(),
    ).all()

    status = {
        entity_id: {'has_pending': False, 'pending': {}, 'requests': []}
        for entity_id in ids
    }
    for pcr in rows:
        entry = status[pcr.entity_id]
        entry['requests'].append(pcr)
        if pcr.status == 'pending':
            entry['has_pending'] = True
            entry['pending'][pcr.action_type] = pcr
    return status
