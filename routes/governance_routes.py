"""
Governance routes — action requests, decisions, history, revert and restore.

Requests:
    POST /api/governance/requests                    — operator submits an edit/delete request
    GET  /api/governance/requests                    — list requests (filters)
    GET  /api/governance/requests/stale              — pending requests past the stale age
    GET  /api/governance/requests/stats              — counts by status, action and entity type
    POST /api/governance/requests/status-check       — pending state of many records at once
    GET  /api/governance/requests/<id>               — request detail
Decisions:
    POST /api/governance/requests/<id>/approve       — approver accepts (notes optional)
    POST /api/governance/requests/<id>/reject        — approver rejects (reason required)
History:
    GET  /api/governance/history/<type>/<id>         — audit trail, newest first
    POST /api/governance/history/<entry_id>/revert   — revert a record to an entry
Lifecycle:
    POST /api/governance/entities/<type>/<id>/restore — undo a soft delete
"""
from functools import wraps

from flask import g, jsonify, request, session

from core.governance.errors import GovernanceError, ValidationError
from rate_limiter import limiter, GOVERNANCE_WRITE_LIMIT


# ---------------------------------------------------------------------------
# Auth helper
# ---------------------------------------------------------------------------

def _require_actor(f):
    """Resolve the session user into an Actor on ``g.actor``.

    The identity layer owns login; this only trusts its ``user_id``.
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        from models import db, User
        from core.governance.permissions import Actor

        user_id = session.get('user_id')
        if not user_id:
            return jsonify({'error': 'Authentication required'}), 401

        user = db.session.get(User, user_id)
        if user is None:
            session.clear()
            return jsonify({'error': 'Authentication required'}), 401

        # Role normalization happens here, once, at the boundary.
        g.actor = Actor.from_user(user)
        return f(*args, **kwargs)
    return decorated


def _json_object(required=False):
    """The request body as a dict; non-object JSON is a client error."""
    data = request.get_json(silent=True)
    if data is None:
        if required:
            raise ValidationError('Request body is required')
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def _decision_payload(result):
    payload = {
        'success': True,
        'request': result['request'].to_dict(),
    }
    if result.get('entity') is not None:
        payload['entity'] = result['entity'].to_dict()
    if result.get('audit_entry') is not None:
        payload['audit_entry'] = result['audit_entry'].to_dict()
    return payload


def register_governance_routes(app):
    """Register governance API routes and the governance error handler."""

    @app.errorhandler(GovernanceError)
    def handle_governance_error(e):
        return jsonify(e.to_dict()), e.http_status

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    @app.route('/api/governance/requests', methods=['POST'])
    @limiter.limit(GOVERNANCE_WRITE_LIMIT)
    @_require_actor
    def governance_submit_request():
        """Operator submits an edit or delete request.

        Body:
            entity_type (str): 'visitor' or 'lost_item'.
            entity_id (int): The record to change.
            action_type (str): 'edit' or 'delete'.
            reason (str): Justification (required).
            proposed_data (dict): New field values (edit only).
        """
        data = _json_object(required=True)

        entity_type = data.get('entity_type')
        entity_id = data.get('entity_id')
        action_type = data.get('action_type')

        if not entity_type:
            return jsonify({'error': 'entity_type is required'}), 400
        if entity_id is None:
            return jsonify({'error': 'entity_id is required'}), 400
        if not action_type:
            return jsonify({'error': 'action_type is required'}), 400

        from core.governance.requests import create_request

        pcr = create_request(
            actor=g.actor,
            entity_type=entity_type,
            entity_id=entity_id,
            action_type=action_type,
            reason=data.get('reason'),
            proposed_data=data.get('proposed_data'),
        )

        return jsonify({
            'success': True,
            'message': (f'{action_type.capitalize()} request submitted. '
                        f'Waiting for approval.'),
            'request': pcr.to_dict(),
        }), 201

    @app.route('/api/governance/requests', methods=['GET'])
    @_require_actor
    def governance_list_requests():
        """List action requests.

        Query params:
            status, action_type, entity_type, entity_id, requested_by (optional)
            limit (int, optional): Max results (default 50, max 200).
        """
        from core.governance.permissions import authorize
        from core.governance.requests import list_requests

        entity_type = request.args.get('entity_type')
        authorize(g.actor, 'view', entity_type)

        results = list_requests(
            status=request.args.get('status'),
            action_type=request.args.get('action_type'),
            entity_type=entity_type,
            entity_id=request.args.get('entity_id', type=int),
            requested_by=request.args.get('requested_by', type=int),
            limit=request.args.get('limit', 50, type=int),
        )

        return jsonify({
            'requests': [r.to_dict() for r in results],
            'count': len(results),
        })

    @app.route('/api/governance/requests/stale', methods=['GET'])
    @_require_actor
    def governance_stale_requests():
        """Pending requests older than GOVERNANCE_STALE_REQUEST_HOURS.

        Query params:
            max_age_hours (int, optional): Override the configured age.
        """
        from core.governance.permissions import authorize
        from core.governance.requests import list_stale_requests

        authorize(g.actor, 'decide')
        results = list_stale_requests(
            max_age_hours=request.args.get('max_age_hours', type=int),
        )
        return jsonify({
            'requests': [r.to_dict() for r in results],
            'count': len(results),
        })

    @app.route('/api/governance/requests/stats', methods=['GET'])
    @_require_actor
    def governance_request_stats():
        """Request counts by status, action type and entity type.

        Query params:
            entity_type (str, optional): Restrict to one entity type.
        """
        from core.governance.permissions import authorize
        from core.governance.requests import request_stats

        entity_type = request.args.get('entity_type')
        authorize(g.actor, 'decide', entity_type)
        return jsonify({'stats': request_stats(entity_type=entity_type)})

    @app.route('/api/governance/requests/status-check', methods=['POST'])
    @_require_actor
    def governance_status_check():
        """Pending-request state for a page of records.

        Body:
            entity_type (str): 'visitor' or 'lost_item'.
            entity_ids (list[int]): 1 to 100 record ids.
        """
        from core.governance.permissions import authorize
        from core.governance.requests import pending_status

        data = _json_object(required=True)
        entity_type = data.get('entity_type')
        authorize(g.actor, 'view', entity_type)

        status = pending_status(entity_type, data.get('entity_ids'))
        return jsonify({
            'entity_type': entity_type,
            'status': {
                str(entity_id): {
                    'has_pending': entry['has_pending'],
                    'pending': {
                        action: pcr.to_dict()
                        for action, pcr in entry['pending'].items()
                    },
                    'requests': [pcr.to_dict() for pcr in entry['requests']],
                }
                for entity_id, entry in status.items()
            },
        })

    @app.route('/api/governance/requests/<int:request_id>', methods=['GET'])
    @_require_actor
    def governance_get_request(request_id):
        from core.governance.permissions import authorize
        from core.governance.requests import get_request

        pcr = get_request(request_id)
        authorize(g.actor, 'view', pcr.entity_type)
        return jsonify({'request': pcr.to_dict()})

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    @app.route('/api/governance/requests/<int:request_id>/approve', methods=['POST'])
    @limiter.limit(GOVERNANCE_WRITE_LIMIT)
    @_require_actor
    def governance_approve_request(request_id):
        """Approver accepts a pending request.

        Body:
            notes (str, optional): Decision notes.
        """
        data = _json_object()

        from core.governance.approvals import approve_request

        result = approve_request(request_id, g.actor, notes=data.get('notes'))
        return jsonify(_decision_payload(result))

    @app.route('/api/governance/requests/<int:request_id>/reject', methods=['POST'])
    @limiter.limit(GOVERNANCE_WRITE_LIMIT)
    @_require_actor
    def governance_reject_request(request_id):
        """Approver rejects a pending request.

        Body:
            reason (str): Rejection reason (required).
        """
        data = _json_object()

        from core.governance.approvals import reject_request

        result = reject_request(request_id, g.actor, data.get('reason'))
        return jsonify(_decision_payload(result))

    # ------------------------------------------------------------------
    # History / revert / restore
    # ------------------------------------------------------------------

    @app.route('/api/governance/history/<entity_type>/<int:entity_id>', methods=['GET'])
    @_require_actor
    def governance_history(entity_type, entity_id):
        """Audit trail for one record, newest first.

        Query params:
            limit (int, optional): Max entries.
        """
        from core.governance.audit import get_history
        from core.governance.fields import get_schema
        from core.governance.permissions import authorize

        authorize(g.actor, 'view', entity_type)
        get_schema(entity_type).load(entity_id)

        entries = get_history(
            entity_type, entity_id,
            limit=request.args.get('limit', type=int),
        )
        return jsonify({
            'history': [e.to_dict() for e in entries],
            'count': len(entries),
        })

    @app.route('/api/governance/history/<int:entry_id>/revert', methods=['POST'])
    @limiter.limit(GOVERNANCE_WRITE_LIMIT)
    @_require_actor
    def governance_revert(entry_id):
        """Revert a record to the state captured in a history entry.

        Body (optional):
            entity_type, entity_id: Scope check against the entry.
        """
        data = _json_object()

        from core.governance.rollback import revert_entity

        result = revert_entity(
            entry_id, g.actor,
            entity_type=data.get('entity_type'),
            entity_id=data.get('entity_id'),
        )
        return jsonify({
            'success': True,
            'entity': result['entity'].to_dict(),
            'audit_entry': result['audit_entry'].to_dict(),
        })

    @app.route('/api/governance/entities/<entity_type>/<int:entity_id>/restore',
               methods=['POST'])
    @limiter.limit(GOVERNANCE_WRITE_LIMIT)
    @_require_actor
    def governance_restore(entity_type, entity_id):
        from core.governance.restore import restore_entity

        result = restore_entity(entity_type, entity_id, g.actor)
        return jsonify({
            'success': True,
            'entity': result['entity'].to_dict(),
            'audit_entry': result['audit_entry'].to_dict(),
        })
