"""
Tests for the metafield store.

Tests cover:
- Serialized size measurement
- Size ceilings enforced before any write
- JSON decoding of stored values
- Customer vs shop ownership of each document
"""
import pytest

from persway.services.behavior_data import (
    create_default_behavior_data,
    create_default_shop_audiences,
    create_default_theme_blocks,
)
from persway.services.metafield_store import (
    AUDIENCES_KEY,
    BEHAVIOR_KEY,
    BEHAVIOR_NAMESPACE,
    CONFIG_NAMESPACE,
    THEME_BLOCKS_KEY,
    MetafieldStore,
    metafield_size_kb,
    validate_metafield_size,
)
from persway.utils.exceptions import MetafieldError, SizeLimitExceededError

CUSTOMER_GID = 'gid://shopify/Customer/42'


class TestSizeValidation:

    def test_size_measured_on_utf8_json(self):
        assert metafield_size_kb({'a': 'x'}) == len('{"a": "x"}') / 1024

    def test_validate_returns_size(self):
        assert validate_metafield_size({'a': 1}, 1, 'Test') == metafield_size_kb({'a': 1})

    def test_validate_rejects_over_limit(self):
        with pytest.raises(SizeLimitExceededError) as exc:
            validate_metafield_size({'blob': 'x' * 2048}, 1, 'Test data')
        assert exc.value.code == 'SIZE_LIMIT_EXCEEDED'
        assert exc.value.limit_kb == 1
        assert 'Test data size' in exc.value.message


class TestBehaviorData:

    def test_load_missing_returns_none(self, fake_store):
        assert fake_store.load_behavior_data('42') is None

    def test_save_then_load(self, fake_store, fake_shopify):
        profile = create_default_behavior_data()
        fake_store.save_behavior_data('gid://shopify/Customer/42', profile)

        assert fake_shopify.writes == [(CUSTOMER_GID, BEHAVIOR_NAMESPACE, BEHAVIOR_KEY)]
        assert fake_store.load_behavior_data('42') == profile

    def test_oversized_profile_rejected_and_prior_value_kept(self, fake_store, fake_shopify):
        profile = create_default_behavior_data()
        fake_store.save_behavior_data('42', profile)

        oversized = create_default_behavior_data()
        oversized['recent_events'] = [
            {'type': 'page_viewed', 'timestamp': '2024-01-01T00:00:00.000Z', 'blob': 'x' * 1024}
            for _ in range(250)
        ]
        with pytest.raises(SizeLimitExceededError):
            fake_store.save_behavior_data('42', oversized)

        assert len(fake_shopify.writes) == 1
        assert fake_store.load_behavior_data('42') == profile

    def test_invalid_json_raises(self, fake_store, fake_shopify):
        fake_shopify.metafields[(CUSTOMER_GID, BEHAVIOR_NAMESPACE, BEHAVIOR_KEY)] = '{not json'
        with pytest.raises(MetafieldError):
            fake_store.load_behavior_data('42')

    def test_write_errors_propagate(self, fake_store, fake_shopify):
        fake_shopify.fail_writes.add(BEHAVIOR_KEY)
        with pytest.raises(MetafieldError):
            fake_store.save_behavior_data('42', create_default_behavior_data())


class TestShopDocuments:

    def test_audiences_written_to_shop(self, fake_store, fake_shopify):
        audiences = create_default_shop_audiences()
        fake_store.save_shop_audiences(audiences)

        assert fake_shopify.writes == [('gid://shopify/Shop/1', CONFIG_NAMESPACE, AUDIENCES_KEY)]
        assert fake_store.load_shop_audiences() == audiences

    def test_theme_blocks_written_to_shop(self, fake_store, fake_shopify):
        blocks = create_default_theme_blocks()
        fake_store.save_theme_blocks(blocks)

        assert fake_shopify.writes == [('gid://shopify/Shop/1', CONFIG_NAMESPACE, THEME_BLOCKS_KEY)]
        assert fake_store.load_theme_blocks()['hero_banners']['default']['button_url'] == '/collections/all'

    def test_limits_from_config(self, fake_shopify):
        store = MetafieldStore.from_config(fake_shopify, {'PERSWAY_AUDIENCES_MAX_KB': 0.1})
        assert store.size_limits_kb['audiences'] == 0.1
        assert store.size_limits_kb['behavior_data'] == 200

        with pytest.raises(SizeLimitExceededError):
            store.save_shop_audiences(create_default_shop_audiences())
        assert fake_shopify.writes == []
