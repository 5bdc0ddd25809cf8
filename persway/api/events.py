"""
Storefront pixel API.

The Persway web pixel posts event batches to /api/persway/events and, when a
shopper logs in, asks /api/persway/migrate to fold their anonymous session
into the customer's behavior profile.

Endpoints:
    GET/POST /api/persway/events   - ingest a pixel batch (public)
    GET/POST /api/persway/migrate  - migrate an anonymous session (shop auth)
"""
import logging
from flask import Blueprint, request, jsonify, g, current_app

from ..middleware.shopify_auth import load_shop_context, require_shopify_auth
from ..services.event_service import EventService
from ..services.migration_service import MigrationService
from ..utils.cache import cache
from ..utils.errors import bad_request
from ..utils.exceptions import ValidationError

logger = logging.getLogger(__name__)

events_bp = Blueprint('persway_events', __name__)


def _event_service(shop_domain: str) -> EventService:
    return EventService.from_config(
        g.get('metafield_store'), cache, shop_domain, current_app.config
    )


@events_bp.route('/events', methods=['GET'])
def events_info():
    return jsonify({'message': 'Persway Events API'})


@events_bp.route('/events', methods=['POST'])
def ingest_events():
    """
    Ingest a batch of pixel events.

    Request body:
    {
        "events": [
            {"id": "...", "type": "product_viewed", "timestamp": "...",
             "persway_id": "pw_...", "customer_id": null, "data": {...}}
        ],
        "session": {"persway_id": "pw_...", "session_start": "...", "customer_id": null}
    }

    The shop comes from the ``shop`` query param or X-Shop-Domain header.
    Customer events are only aggregated for installed shops; anonymous
    events are always buffered.
    """
    shop_domain = request.args.get('shop') or request.headers.get('X-Shop-Domain')
    if not shop_domain:
        return bad_request('Missing shop domain')

    payload = request.get_json(silent=True)
    if payload is None:
        raise ValidationError('Request body must be JSON', field='events')

    load_shop_context(shop_domain)
    result = _event_service(shop_domain).ingest(payload)
    return jsonify(result)


@events_bp.route('/migrate', methods=['GET'])
def migrate_info():
    return jsonify({
        'message': 'Persway Migration API',
        'description': 'Migrates anonymous user data to authenticated customer records'
    })


@events_bp.route('/migrate', methods=['POST'])
@require_shopify_auth
def migrate_session():
    """
    Merge an anonymous session into a customer's profile.

    Request body:
    {
        "customer_id": "gid://shopify/Customer/123",
        "persway_id": "pw_abc",
        "anonymous_events": [{"id": "...", "type": "...", "timestamp": "...", "data": {...}}],
        "session_summary": {"session_start": "...", "pages_viewed": 3, ...}
    }

    When ``anonymous_events`` is omitted the events buffered by
    /api/persway/events for that persway_id are replayed instead.
    """
    payload = request.get_json(silent=True) or {}
    customer_id = payload.get('customer_id')
    persway_id = payload.get('persway_id')
    if not customer_id or not persway_id:
        return bad_request('Invalid migration payload')

    events_service = _event_service(g.shop_domain)
    anonymous_events = payload.get('anonymous_events')
    from_buffer = anonymous_events is None
    if from_buffer:
        anonymous_events = events_service.get_anonymous_events(persway_id)
        if not anonymous_events:
            return bad_request('No anonymous events to migrate')

    service = MigrationService(
        g.metafield_store,
        max_recent_events=current_app.config.get('PERSWAY_MAX_RECENT_EVENTS', 50),
        retention_days=current_app.config.get('PERSWAY_RETENTION_DAYS', 365)
    )
    result = service.migrate(
        customer_id,
        persway_id,
        anonymous_events,
        session_summary=payload.get('session_summary')
    )

    events_service.clear_anonymous_events(persway_id)
    result['from_buffer'] = from_buffer
    return jsonify(result)
