"""
Tests for pixel event ingestion.

Tests cover:
- Customer events grouped and folded into one profile write per customer
- Anonymous events buffered per persway_id in the app cache; events without one are dropped
- Per-customer failures (including malformed stored profiles) reported without stopping the batch
- Shops without Admin API access
"""
import json
import pytest
from datetime import datetime, timezone

from persway.services.event_service import EventService
from persway.services.metafield_store import BEHAVIOR_KEY, BEHAVIOR_NAMESPACE
from persway.services.shopify_client import customer_gid
from persway.utils.cache import cache
from persway.utils.exceptions import ValidationError

NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
SHOP = 'test-shop.myshopify.com'


def pixel_event(kind, seconds, customer_id=None, persway_id='pw_1', **data):
    return {
        'id': f'evt_{seconds}',
        'type': kind,
        'timestamp': f'2024-05-01T11:00:{seconds:02d}.000Z',
        'persway_id': persway_id,
        'customer_id': customer_id,
        'data': data,
    }


@pytest.fixture
def service(app, fake_store):
    return EventService(fake_store, cache, SHOP)


class TestIngest:

    def test_customer_events_grouped_per_customer(self, service, fake_shopify):
        result = service.ingest({'events': [
            pixel_event('product_viewed', 1, customer_id='gid://shopify/Customer/1', product_type='Cats'),
            pixel_event('cart_viewed', 2, customer_id='1', cart_value=10),
            pixel_event('page_viewed', 3, customer_id='2'),
        ]}, now=NOW)

        assert result['success'] is True
        assert result['processed'] == 3
        assert result['customers'] == {'1': 2, '2': 1}
        assert result['anonymous_sessions'] == {}
        assert result['timestamp'] == '2024-05-01T12:00:00.000Z'
        assert len(fake_shopify.writes) == 2

        profile = fake_shopify.stored('gid://shopify/Customer/1', BEHAVIOR_NAMESPACE, BEHAVIOR_KEY)
        assert profile['event_summary']['product_viewed']['categories'] == {'cats': 1}
        assert profile['event_summary']['cart_viewed']['avg_cart_value'] == 10
        assert not any(e.get('migrated') for e in profile['recent_events'])

    def test_anonymous_events_buffered(self, service, fake_shopify):
        result = service.ingest({'events': [
            pixel_event('page_viewed', 1, persway_id='pw_a'),
            pixel_event('product_viewed', 2, persway_id='pw_a', product_type='Cats'),
            pixel_event('page_viewed', 3, persway_id='pw_b'),
        ]}, now=NOW)

        assert result['anonymous_sessions'] == {'pw_a': 2, 'pw_b': 1}
        assert fake_shopify.writes == []

        buffered = service.get_anonymous_events('pw_a')
        assert [e['type'] for e in buffered] == ['page_viewed', 'product_viewed']
        assert buffered[1]['data'] == {'product_type': 'Cats'}

    def test_buffer_appends_across_batches_and_is_capped(self, app, fake_store):
        service = EventService(fake_store, cache, SHOP, anonymous_buffer=3)
        service.ingest({'events': [pixel_event('page_viewed', i) for i in range(2)]}, now=NOW)
        service.ingest({'events': [pixel_event('page_viewed', i) for i in range(2, 5)]}, now=NOW)

        buffered = service.get_anonymous_events('pw_1')
        assert [e['id'] for e in buffered] == ['evt_2', 'evt_3', 'evt_4']

    def test_clear_anonymous_events(self, service):
        service.ingest({'events': [pixel_event('page_viewed', 1)]}, now=NOW)
        service.clear_anonymous_events('pw_1')
        assert service.get_anonymous_events('pw_1') == []

    def test_buffer_is_per_shop(self, app, fake_store):
        EventService(fake_store, cache, SHOP).ingest({'events': [pixel_event('page_viewed', 1)]}, now=NOW)
        other = EventService(fake_store, cache, 'other.myshopify.com')
        assert other.get_anonymous_events('pw_1') == []

    def test_failure_for_one_customer_does_not_stop_others(self, service, fake_shopify):
        fake_shopify.fail_writes.add('gid://shopify/Customer/1')

        result = service.ingest({'events': [
            pixel_event('page_viewed', 1, customer_id='1'),
            pixel_event('page_viewed', 2, customer_id='2'),
        ]}, now=NOW)

        assert result['success'] is False
        assert result['customers'] == {'2': 1}
        assert result['errors'][0]['customer_id'] == '1'
        assert result['errors'][0]['code'] == 'METAFIELD_ERROR'

    def test_customer_events_skipped_without_api_access(self, app):
        service = EventService(None, cache, SHOP)
        result = service.ingest({'events': [
            pixel_event('page_viewed', 1, customer_id='1'),
            pixel_event('page_viewed', 2),
        ]}, now=NOW)

        assert result['skipped'] == 1
        assert result['processed'] == 1
        assert result['anonymous_sessions'] == {'pw_1': 1}

    def test_empty_batch(self, service):
        result = service.ingest({'events': []}, now=NOW)
        assert result == {'success': True, 'processed': 0, 'timestamp': '2024-05-01T12:00:00.000Z'}

    def test_invalid_payload(self, service):
        with pytest.raises(ValidationError):
            service.ingest({'events': 'nope'})
        with pytest.raises(ValidationError):
            service.ingest(['not', 'a', 'dict'])

    def test_malformed_event_rejects_batch(self, service, fake_shopify):
        with pytest.raises(ValidationError):
            service.ingest({'events': [pixel_event('page_viewed', 1, customer_id='1'), {'id': 'x'}]})
        assert fake_shopify.writes == []

    def test_events_without_session_id_are_not_buffered(self, service):
        first = pixel_event('search_submitted', 1, search_term='first visitor')
        second = pixel_event('search_submitted', 2, search_term='second visitor')
        blank = pixel_event('page_viewed', 3, persway_id='  ')
        del first['persway_id']
        second['persway_id'] = None

        result = service.ingest({'events': [first]}, now=NOW)
        service.ingest({'events': [second, blank]}, now=NOW)

        assert result['anonymous_sessions'] == {}
        assert result['unidentified'] == 1
        assert result['processed'] == 0
        assert service.get_anonymous_events('unknown') == []
        assert service.get_anonymous_events('None') == []
        assert service.get_anonymous_events('  ') == []

    def test_malformed_stored_profile_repaired(self, service, fake_shopify):
        fake_shopify.metafields[(customer_gid('1'), BEHAVIOR_NAMESPACE, BEHAVIOR_KEY)] = json.dumps({
            'event_summary': {'cart_viewed': None, 'product_viewed': {'count': 'three', 'last_at': 5}},
            'recent_events': None,
        })

        result = service.ingest({'events': [
            pixel_event('cart_viewed', 1, customer_id='1', cart_value=10),
            pixel_event('product_viewed', 2, customer_id='2', product_type='Cats'),
        ], 'session': {}}, now=NOW)

        assert result['success'] is True
        assert result['customers'] == {'1': 1, '2': 1}
        profile = fake_shopify.stored(customer_gid('1'), BEHAVIOR_NAMESPACE, BEHAVIOR_KEY)
        assert profile['event_summary']['cart_viewed']['avg_cart_value'] == 10
        assert profile['event_summary']['product_viewed']['count'] == 0
        assert profile['event_summary']['product_viewed']['last_at'] is None
        assert len(profile['recent_events']) == 1

    def test_unrepairable_profile_does_not_stop_batch(self, service, fake_shopify):
        fake_shopify.metafields[(customer_gid('1'), BEHAVIOR_NAMESPACE, BEHAVIOR_KEY)] = json.dumps(['not', 'a', 'profile'])

        result = service.ingest({'events': [
            pixel_event('page_viewed', 1, customer_id='1'),
            pixel_event('page_viewed', 2, customer_id='2'),
            pixel_event('page_viewed', 3, persway_id='pw_a'),
        ]}, now=NOW)

        assert result['success'] is False
        assert result['customers'] == {'2': 1}
        assert result['errors'][0]['customer_id'] == '1'
        assert result['anonymous_sessions'] == {'pw_a': 1}

    def test_new_profile_uses_configured_retention(self, app, fake_store, fake_shopify):
        service = EventService(fake_store, cache, SHOP, retention_days=30)
        service.ingest({'events': [pixel_event('page_viewed', 1, customer_id='3')]}, now=NOW)

        profile = fake_shopify.stored(customer_gid('3'), BEHAVIOR_NAMESPACE, BEHAVIOR_KEY)
        assert profile['data_retention']['expires_at'] == '2024-05-31T12:00:00.000Z'

    def test_retention_read_from_config(self, app, fake_store):
        app.config['PERSWAY_RETENTION_DAYS'] = 90
        assert EventService.from_config(fake_store, cache, SHOP, app.config).retention_days == 90


class TestProcessCustomerEvents:

    def test_returns_updated_profile(self, service, fake_shopify):
        profile = service.process_customer_events('7', [pixel_event('search_submitted', 1, search_term='cat toys')],
                                                  now=NOW)
        assert profile['event_summary']['search_submitted']['terms'] == ['cat toys']
        assert fake_shopify.stored('gid://shopify/Customer/7', BEHAVIOR_NAMESPACE, BEHAVIOR_KEY) == profile

    def test_requires_store(self, app):
        with pytest.raises(ValidationError):
            EventService(None, cache, SHOP).process_customer_events('7', [pixel_event('page_viewed', 1)])
