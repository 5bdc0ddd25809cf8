"""
Customer behavior API (embedded admin).

Endpoints:
    GET/POST /app/process-events                - re-process stored events for a customer
    GET      /app/customers/<id>/behavior       - read a customer's behavior profile
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..middleware.shopify_auth import require_shopify_auth
from ..services.behavior_data import isoformat, normalize_customer_id, utc_now
from ..services.event_service import EventService
from ..utils.cache import cache
from ..utils.errors import ErrorCode, bad_request, not_found

customers_bp = Blueprint('persway_customers', __name__)


@customers_bp.route('/process-events', methods=['GET'])
@require_shopify_auth
def process_events_info():
    return jsonify({'message': 'Persway Event Processing API'})


@customers_bp.route('/process-events', methods=['POST'])
@require_shopify_auth
def process_events():
    """
    Fold stored events into one customer's profile.

    Request body:
    {
        "customer_id": "123",
        "events": [{"id": "...", "type": "...", "timestamp": "...", "data": {...}}]
    }
    """
    payload = request.get_json(silent=True) or {}
    customer_id = payload.get('customer_id')
    events = payload.get('events')
    if not customer_id or not isinstance(events, list):
        return bad_request('Invalid payload')

    service = EventService.from_config(g.metafield_store, cache, g.shop_domain, current_app.config)
    now = utc_now()
    service.process_customer_events(customer_id, events, now=now)

    return jsonify({
        'success': True,
        'processed': len(events),
        'customer_id': normalize_customer_id(customer_id),
        'timestamp': isoformat(now),
    })


@customers_bp.route('/customers/<customer_id>/behavior', methods=['GET'])
@require_shopify_auth
def get_customer_behavior(customer_id):
    profile = g.metafield_store.load_behavior_data(customer_id)
    if profile is None:
        return not_found(
            f'No behavior data for customer {customer_id}', ErrorCode.PROFILE_NOT_FOUND
        )
    return jsonify({
        'customer_id': normalize_customer_id(customer_id),
        'behavior_data': profile,
    })
