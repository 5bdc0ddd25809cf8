"""
Tests for app lifecycle webhooks.

Tests cover:
- HMAC signature validation
- app/installed: metafield definitions and default configuration
- app/uninstalled: shop deactivated and token dropped
"""
import json
import hmac
import hashlib
import base64

from persway.models import Shop
from persway.webhooks import verify_shopify_webhook_signature

SHOP_DOMAIN = 'test-shop.myshopify.com'


def generate_hmac_signature(payload: bytes, secret: str) -> str:
    """Generate Shopify-compatible HMAC signature."""
    return base64.b64encode(
        hmac.new(secret.encode('utf-8'), payload, hashlib.sha256).digest()
    ).decode('utf-8')


def post_webhook(app, client, path, payload=None, signature=None, shop_domain=SHOP_DOMAIN):
    body = json.dumps(payload or {'myshopify_domain': shop_domain}).encode('utf-8')
    if signature is None:
        signature = generate_hmac_signature(body, app.config['SHOPIFY_API_SECRET'])
    return client.post(path, data=body, content_type='application/json', headers={
        'X-Shopify-Shop-Domain': shop_domain,
        'X-Shopify-Hmac-SHA256': signature,
    })


class TestSignature:

    def test_valid_signature(self):
        body = b'{"id": 1}'
        assert verify_shopify_webhook_signature(body, generate_hmac_signature(body, 's3cret'), 's3cret')

    def test_tampered_body(self):
        signature = generate_hmac_signature(b'{"id": 1}', 's3cret')
        assert not verify_shopify_webhook_signature(b'{"id": 2}', signature, 's3cret')

    def test_missing_secret_or_header(self):
        assert not verify_shopify_webhook_signature(b'{}', 'abc', '')
        assert not verify_shopify_webhook_signature(b'{}', '', 's3cret')

    def test_invalid_signature_rejected(self, app, client, sample_shop):
        response = post_webhook(app, client, '/webhooks/app/uninstalled', signature='bogus')
        assert response.status_code == 401
        assert Shop.query.filter_by(shop_domain=SHOP_DOMAIN).first().is_active is True

    def test_missing_shop_header(self, client):
        response = client.post('/webhooks/app/uninstalled', json={})
        assert response.status_code == 400


class TestAppInstalled:

    def test_sets_up_definitions_and_defaults(self, app, client, sample_shop, shopify_api):
        response = post_webhook(app, client, '/webhooks/app/installed')

        assert response.status_code == 200
        data = response.get_json()
        assert data['success'] is True
        assert len(data['definitions']) == 4
        assert data['defaults_initialized'] == {'audiences': True, 'theme_blocks': True}
        assert len(shopify_api.definitions['SHOP']) == 2

    def test_unknown_shop(self, app, client):
        response = post_webhook(app, client, '/webhooks/app/installed', shop_domain='new.myshopify.com')
        assert response.status_code == 200
        assert response.get_json()['message'] == 'Shop has no API access yet'

    def test_reactivates_shop(self, app, client, sample_shop, shopify_api):
        from persway.extensions import db
        sample_shop.is_active = False
        db.session.commit()

        post_webhook(app, client, '/webhooks/app/installed')

        shop = Shop.query.filter_by(shop_domain=SHOP_DOMAIN).first()
        assert shop.is_active is True
        assert shop.uninstalled_at is None


class TestAppUninstalled:

    def test_marks_shop_uninstalled(self, app, client, sample_shop):
        response = post_webhook(app, client, '/webhooks/app/uninstalled')

        assert response.status_code == 200
        assert response.get_json()['action'] == 'marked_uninstalled'

        shop = Shop.query.filter_by(shop_domain=SHOP_DOMAIN).first()
        assert shop.is_active is False
        assert shop.access_token is None
        assert shop.uninstalled_at is not None
        assert shop.has_api_access is False

    def test_unknown_shop(self, app, client):
        response = post_webhook(app, client, '/webhooks/app/uninstalled', shop_domain='gone.myshopify.com')
        assert response.status_code == 200
        assert response.get_json()['message'] == 'Shop not found'
