"""
Shopify Session Token Authentication Middleware.

Verifies Shopify session tokens (JWT) from embedded apps to authenticate
admin requests, then loads the installed shop and builds the Admin API
client and metafield store for the request. Falls back to the shop query
param or X-Shop-Domain header when SHOPIFY_AUTH_DEV_MODE is enabled.

Session tokens are issued by Shopify App Bridge and contain:
- iss: Shop domain (https://shop.myshopify.com/admin)
- dest: Shop domain
- aud: API key
- sub: Staff member GID
- exp: Expiration time
"""
import logging
import jwt
from functools import wraps
from flask import request, g, current_app

from ..models import Shop
from ..services.shopify_client import ShopifyClient
from ..services.metafield_store import MetafieldStore
from ..utils.errors import ErrorCode, error_response, unauthorized

logger = logging.getLogger(__name__)


def decode_session_token(token: str) -> dict | None:
    """
    Decode and verify a Shopify session token.

    Args:
        token: JWT session token from App Bridge

    Returns:
        Decoded token payload or None if invalid
    """
    if not token:
        return None

    api_key = current_app.config.get('SHOPIFY_API_KEY', '')
    api_secret = current_app.config.get('SHOPIFY_API_SECRET', '')
    if not api_secret:
        logger.warning('[Auth] SHOPIFY_API_SECRET not configured, cannot verify session token')
        return None

    try:
        return jwt.decode(
            token,
            api_secret,
            algorithms=['HS256'],
            audience=api_key or None,
            options={
                'verify_aud': bool(api_key),
                'verify_exp': True,
            }
        )
    except jwt.ExpiredSignatureError:
        logger.info('[Auth] Session token expired')
        return None
    except jwt.InvalidAudienceError:
        logger.info('[Auth] Invalid token audience')
        return None
    except jwt.InvalidTokenError as e:
        logger.info('[Auth] Invalid token: %s', e)
        return None


def get_shop_from_token(payload: dict) -> str | None:
    """
    Extract shop domain from session token payload.

    Args:
        payload: Decoded JWT payload

    Returns:
        Shop domain (e.g., 'shop.myshopify.com')
    """
    for claim in ('dest', 'iss'):
        value = payload.get(claim, '')
        if value:
            value = value.replace('https://', '').replace('http://', '')
            return value.split('/')[0]
    return None


def get_shop_from_request(allow_unverified: bool = None) -> str | None:
    """
    Get shop domain from request.

    Priority:
    1. Session token in Authorization header
    2. shop query parameter (unverified)
    3. X-Shop-Domain header (unverified)

    Args:
        allow_unverified: Accept 2 and 3; defaults to SHOPIFY_AUTH_DEV_MODE

    Returns:
        Shop domain or None
    """
    auth_header = request.headers.get('Authorization', '')
    if auth_header.startswith('Bearer '):
        payload = decode_session_token(auth_header.split(' ', 1)[1])
        if payload:
            shop = get_shop_from_token(payload)
            if shop:
                return shop

    if allow_unverified is None:
        allow_unverified = current_app.config.get('SHOPIFY_AUTH_DEV_MODE', False)
    if not allow_unverified:
        return None

    return request.args.get('shop') or request.headers.get('X-Shop-Domain') or None


def client_for_shop(shop: Shop) -> ShopifyClient:
    """Admin API client sharing the app's rate limiter."""
    return ShopifyClient.for_shop(
        shop,
        api_version=current_app.config.get('SHOPIFY_API_VERSION', '2024-10'),
        rate_limiter=current_app.extensions['persway_rate_limiter'],
    )


def load_shop_context(shop_domain: str) -> bool:
    """
    Populate g.shop, g.shopify_client and g.metafield_store.

    Returns:
        True when the shop is installed with an access token
    """
    g.shop_domain = shop_domain
    g.shop = Shop.query.filter_by(shop_domain=shop_domain).first() if shop_domain else None
    g.shopify_client = None
    g.metafield_store = None

    if not g.shop or not g.shop.has_api_access:
        return False

    g.shopify_client = client_for_shop(g.shop)
    g.metafield_store = MetafieldStore.from_config(g.shopify_client, current_app.config)
    return True


def require_shopify_auth(f):
    """
    Decorator to require an authenticated, installed shop.

    Sets g.shop, g.shop_domain, g.shopify_client and g.metafield_store.

    Usage:
        @require_shopify_auth
        def my_endpoint():
            store = g.metafield_store
            ...
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        shop_domain = get_shop_from_request()
        if not shop_domain:
            return unauthorized('Missing shop domain or session token')

        if not load_shop_context(shop_domain):
            return error_response(
                'This shop has not installed the app',
                ErrorCode.SHOP_NOT_INSTALLED,
                403,
                log_error=False
            )

        return f(*args, **kwargs)

    return decorated_function
