"""
Shared pytest fixtures.

Shopify is replaced by FakeShopifyClient, an in-memory stand-in exposing
the same methods as persway.services.shopify_client.ShopifyClient. Metafield
values are stored as JSON strings keyed by (owner GID, namespace, key).
"""
import json
import pytest
from unittest.mock import patch

from persway import create_app
from persway.extensions import db
from persway.models import Shop
from persway.services.metafield_store import MetafieldStore
from persway.services.shopify_client import customer_gid
from persway.utils.exceptions import MetafieldError

TEST_SHOP_DOMAIN = 'test-shop.myshopify.com'
TEST_SHOP_GID = 'gid://shopify/Shop/1'


class FakeShopifyClient:
    """In-memory Admin API."""

    def __init__(self, shop_domain: str = TEST_SHOP_DOMAIN):
        self.shop_domain = shop_domain
        self.metafields = {}
        self.definitions = {'CUSTOMER': [], 'SHOP': []}
        self.web_pixel = None
        self.writes = []
        # metafield keys or owner GIDs whose writes are rejected
        self.fail_writes = set()

    def get_customer_metafield(self, customer_id, namespace, key):
        return self.metafields.get((customer_gid(customer_id), namespace, key))

    def get_shop_metafield(self, namespace, key):
        return self.metafields.get((TEST_SHOP_GID, namespace, key))

    def set_json_metafield(self, owner_id, namespace, key, value):
        if key in self.fail_writes or owner_id in self.fail_writes:
            raise MetafieldError(f'Write rejected for {key}')
        self.metafields[(owner_id, namespace, key)] = json.dumps(value)
        self.writes.append((owner_id, namespace, key))
        return {'namespace': namespace, 'key': key}

    def get_shop_id(self):
        return TEST_SHOP_GID

    def get_shop_domain(self):
        return self.shop_domain

    def get_metafield_definitions(self, owner_type):
        return list(self.definitions[owner_type])

    def create_metafield_definition(self, definition):
        node = {
            'namespace': definition['namespace'].replace('$app:', 'app--1234--'),
            'key': definition['key'],
        }
        self.definitions[definition['ownerType']].append(node)
        return {'success': True, 'definition': node}

    def get_web_pixel(self):
        return self.web_pixel

    def create_web_pixel(self, settings):
        self.web_pixel = {'id': 'gid://shopify/WebPixel/1', 'settings': json.dumps(settings)}
        return self.web_pixel

    # ---- test helpers ----

    def stored(self, owner_id, namespace, key):
        raw = self.metafields.get((owner_id, namespace, key))
        return json.loads(raw) if raw else None


@pytest.fixture
def app():
    """Create application for testing."""
    app = create_app('testing')

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def sample_shop(app):
    """Installed shop with an offline access token."""
    shop = Shop(
        shop_domain=TEST_SHOP_DOMAIN,
        shop_name='Test Shop',
        access_token='shpat_test_token',
        scope='read_customers,write_customers,write_pixels',
        is_active=True,
    )
    db.session.add(shop)
    db.session.commit()
    return shop


@pytest.fixture
def fake_shopify():
    return FakeShopifyClient()


@pytest.fixture
def fake_store(fake_shopify):
    return MetafieldStore(fake_shopify)


@pytest.fixture
def shopify_api(fake_shopify):
    """Route every request-scoped Admin API client to fake_shopify."""
    with patch('persway.middleware.shopify_auth.client_for_shop', return_value=fake_shopify):
        yield fake_shopify


@pytest.fixture
def shop_headers():
    return {'X-Shop-Domain': TEST_SHOP_DOMAIN}
