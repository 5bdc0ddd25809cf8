"""
Audience configuration API (embedded admin).

Endpoints:
    GET    /app/audiences               - list audiences
    POST   /app/audiences               - create an audience
    POST   /app/audiences/<id>/status   - activate / deactivate
    DELETE /app/audiences/<id>          - delete
"""
from flask import Blueprint, request, jsonify, g

from ..middleware.shopify_auth import require_shopify_auth
from ..services.audience_service import AudienceService

audiences_bp = Blueprint('persway_audiences', __name__)


@audiences_bp.route('/audiences', methods=['GET'])
@require_shopify_auth
def list_audiences():
    return jsonify(AudienceService(g.metafield_store).list_audiences())


@audiences_bp.route('/audiences', methods=['POST'])
@require_shopify_auth
def create_audience():
    """
    Create an audience from the admin form.

    Request body (camelCase or snake_case):
    {
        "name": "Cat lovers",
        "description": "",
        "priority": 1,
        "ruleType": "and",
        "eventType": "product_viewed",
        "filter": "product_type",
        "operator": "contains",
        "value": "cats",
        "countThreshold": 3,
        "timeframeDays": 30
    }
    """
    form = request.get_json(silent=True) or request.form.to_dict()
    audience = AudienceService(g.metafield_store).create_audience(form)
    return jsonify({'success': True, 'audience': audience}), 201


@audiences_bp.route('/audiences/<audience_id>/status', methods=['POST'])
@require_shopify_auth
def set_audience_status(audience_id):
    data = request.get_json(silent=True) or {}
    audience = AudienceService(g.metafield_store).set_audience_status(
        audience_id, data.get('status', '')
    )
    return jsonify({'success': True, 'audience': audience})


@audiences_bp.route('/audiences/<audience_id>', methods=['DELETE'])
@require_shopify_auth
def delete_audience(audience_id):
    AudienceService(g.metafield_store).delete_audience(audience_id)
    return jsonify({'success': True, 'deleted': audience_id})
