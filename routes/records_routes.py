"""
Record routes — register and read the records governance protects.

    POST /api/visitors              — check in a visitor
    GET  /api/visitors/<id>         — visitor detail (deleted ones included)
    POST /api/lost-items            — register a found item
    GET  /api/lost-items/<id>       — lost item detail

Edits and deletes are not offered here; they go through
/api/governance/requests.
"""
from flask import g, jsonify, request

from routes.governance_routes import _require_actor
from rate_limiter import limiter, GOVERNANCE_WRITE_LIMIT


def register_records_routes(app):
    """Register record creation and lookup routes."""

    @app.route('/api/visitors', methods=['POST'])
    @limiter.limit(GOVERNANCE_WRITE_LIMIT)
    @_require_actor
    def records_create_visitor():
        data = request.get_json(silent=True)
        if not data:
            return jsonify({'error': 'Request body is required'}), 400
        if not isinstance(data, dict):
            return jsonify({'error': 'Request body must be a JSON object'}), 400

        from core.records import create_visitor

        visitor = create_visitor(g.actor, **data)
        return jsonify({'success': True, 'visitor': visitor.to_dict()}), 201

    @app.route('/api/visitors/<int:visitor_id>', methods=['GET'])
    @_require_actor
    def records_get_visitor(visitor_id):
        from core.governance.permissions import authorize
        from core.records import get_entity

        authorize(g.actor, 'view', 'visitor')
        return jsonify({'visitor': get_entity('visitor', visitor_id).to_dict()})

    @app.route('/api/lost-items', methods=['POST'])
    @limiter.limit(GOVERNANCE_WRITE_LIMIT)
    @_require_actor
    def records_create_lost_item():
        data = request.get_json(silent=True)
        if not data:
            return jsonify({'error': 'Request body is required'}), 400
        if not isinstance(data, dict):
            return jsonify({'error': 'Request body must be a JSON object'}), 400

        from core.records import create_lost_item

        item = create_lost_item(g.actor, **data)
        return jsonify({'success': True, 'lost_item': item.to_dict()}), 201

    @app.route('/api/lost-items/<int:item_id>', methods=['GET'])
    @_require_actor
    def records_get_lost_item(item_id):
        from core.governance.permissions import authorize
        from core.records import get_entity

        authorize(g.actor, 'view', 'lost_item')
        return jsonify({'lost_item': get_entity('lost_item', item_id).to_dict()})
