"""
App lifecycle webhook handlers.
Handles app installation and uninstallation.
"""
import logging
from datetime import datetime
from flask import Blueprint, jsonify, g

from . import require_webhook_verification
from ..extensions import db
from ..middleware.shopify_auth import load_shop_context
from ..services.installation_service import InstallationService
from ..utils.exceptions import PerswayError

logger = logging.getLogger(__name__)

app_lifecycle_bp = Blueprint('app_lifecycle', __name__)


@app_lifecycle_bp.route('/app/installed', methods=['POST'])
@require_webhook_verification
def handle_app_installed():
    """
    Handle app installation.

    Creates the Persway metafield definitions and seeds the default
    audience and theme block configuration for the shop.
    """
    shop_domain = g.webhook_shop_domain
    logger.info('App installed by %s', shop_domain)

    shop = g.webhook_shop
    if shop and not shop.is_active:
        shop.is_active = True
        shop.installed_at = datetime.utcnow()
        shop.uninstalled_at = None
        db.session.commit()

    if not load_shop_context(shop_domain):
        return jsonify({'success': True, 'message': 'Shop has no API access yet'})

    service = InstallationService(g.shopify_client, g.metafield_store)
    try:
        definitions = service.setup_metafield_definitions()
    except PerswayError as e:
        logger.error('App installation setup failed for %s: %s', shop_domain, e.message)
        return jsonify({'error': e.message}), 500

    defaults = service.initialize_default_configuration()
    logger.info('App installation setup completed for %s', shop_domain)

    return jsonify({
        'success': definitions['success'],
        'shop': shop_domain,
        'definitions': definitions['results'],
        'defaults_initialized': defaults,
    })


@app_lifecycle_bp.route('/app/uninstalled', methods=['POST'])
@require_webhook_verification
def handle_app_uninstalled():
    """
    Handle APP_UNINSTALLED webhook.

    Marks the shop inactive and drops its access token. Behavior data lives
    in Shopify metafields and is removed by Shopify with the app.
    """
    shop_domain = g.webhook_shop_domain
    logger.info('App uninstalled by %s', shop_domain)

    shop = g.webhook_shop
    if not shop:
        return jsonify({'success': True, 'message': 'Shop not found'})

    shop.is_active = False
    shop.uninstalled_at = datetime.utcnow()
    shop.access_token = None
    db.session.commit()

    logger.info('Shop %s marked as uninstalled', shop_domain)

    return jsonify({
        'success': True,
        'shop': shop_domain,
        'action': 'marked_uninstalled'
    })
