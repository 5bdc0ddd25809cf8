"""
Webhook handlers for Persway.
Processes Shopify app lifecycle webhooks.
"""
import hmac
import hashlib
import base64
import logging
from functools import wraps
from flask import request, jsonify, current_app, g

from ..models import Shop

logger = logging.getLogger(__name__)


def verify_shopify_webhook_signature(data: bytes, hmac_header: str, secret: str) -> bool:
    """
    Verify Shopify webhook HMAC-SHA256 signature.

    Shopify signs app webhooks with the app's API secret. The expected
    signature is the base64 HMAC-SHA256 digest of the raw body.

    Args:
        data: Raw request body bytes
        hmac_header: The X-Shopify-Hmac-SHA256 header value
        secret: The app's API secret

    Returns:
        True if signature is valid, False otherwise
    """
    if not secret:
        logger.warning('No webhook secret configured for verification')
        return False

    if not hmac_header:
        logger.warning('No HMAC header in webhook request')
        return False

    computed_hmac = base64.b64encode(
        hmac.new(secret.encode('utf-8'), data, hashlib.sha256).digest()
    ).decode('utf-8')

    return hmac.compare_digest(computed_hmac, hmac_header)


def require_webhook_verification(f):
    """
    Decorator to require a valid Shopify webhook signature.

    Sets g.webhook_shop_domain and g.webhook_shop (None when the shop has
    no row yet).

    Usage:
        @app_lifecycle_bp.route('/app/uninstalled', methods=['POST'])
        @require_webhook_verification
        def handle_app_uninstalled():
            shop = g.webhook_shop
            ...
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        shop_domain = request.headers.get('X-Shopify-Shop-Domain', '')
        if not shop_domain:
            logger.warning('Webhook missing X-Shopify-Shop-Domain header')
            return jsonify({'error': 'Missing shop domain header'}), 400

        hmac_header = request.headers.get('X-Shopify-Hmac-SHA256', '')
        secret = current_app.config.get('SHOPIFY_API_SECRET')
        if not verify_shopify_webhook_signature(request.get_data(), hmac_header, secret):
            logger.warning('Invalid webhook signature from %s', shop_domain)
            return jsonify({'error': 'Invalid signature'}), 401

        g.webhook_shop_domain = shop_domain
        g.webhook_shop = Shop.query.filter_by(shop_domain=shop_domain).first()
        return f(*args, **kwargs)

    return decorated_function


from .app_lifecycle import app_lifecycle_bp

__all__ = [
    'app_lifecycle_bp',
    'verify_shopify_webhook_signature',
    'require_webhook_verification',
]
