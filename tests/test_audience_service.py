"""
Tests for audience configuration.

Tests cover:
- Form validation with per-field errors
- Audience creation and statistics
- Status changes and deletion
"""
import re
import pytest

from persway.services.audience_service import AudienceService, generate_audience_id
from persway.utils.exceptions import NotFoundError, ValidationError

VALID_FORM = {
    'name': 'Cat lovers',
    'description': 'Shoppers browsing cat products',
    'priority': '2',
    'ruleType': 'and',
    'eventType': 'product_viewed',
    'filter': 'product_type',
    'operator': 'contains',
    'value': 'cats',
    'countThreshold': '3',
    'timeframeDays': '30',
}


@pytest.fixture
def service(fake_store):
    return AudienceService(fake_store)


class TestAudienceValidation:

    def test_valid_form(self, service):
        fields = service.validate_form(VALID_FORM)
        assert fields['priority'] == 2
        assert fields['count_threshold'] == 3
        assert fields['event_type'] == 'product_viewed'

    def test_snake_case_keys_accepted(self, service):
        form = {'name': 'Searchers', 'event_type': 'search_submitted', 'value': 'toys',
                'rule_type': 'or', 'count_threshold': 2, 'timeframe_days': 7}
        fields = service.validate_form(form)
        assert fields['rule_type'] == 'or'
        assert fields['timeframe_days'] == 7
        assert fields['operator'] == 'contains'

    def test_required_fields(self, service):
        with pytest.raises(ValidationError) as exc:
            service.validate_form({})
        assert set(exc.value.field_errors) == {'name', 'eventType', 'value'}

    def test_invalid_values(self, service):
        form = dict(VALID_FORM, eventType='teleported', operator='near', ruleType='xor',
                    priority='11', countThreshold='0', timeframeDays='abc')
        with pytest.raises(ValidationError) as exc:
            service.validate_form(form)
        assert set(exc.value.field_errors) == {
            'eventType', 'operator', 'ruleType', 'priority', 'countThreshold', 'timeframeDays'
        }

    def test_generated_id_format(self):
        assert re.fullmatch(r'audience_\d+_[a-z0-9]{9}', generate_audience_id())


class TestAudienceCrud:

    def test_create_audience(self, service, fake_store):
        audience = service.create_audience(VALID_FORM)

        assert audience['status'] == 'active'
        assert audience['rules'] == {
            'type': 'and',
            'conditions': [{
                'event_type': 'product_viewed',
                'operator': 'contains',
                'value': 'cats',
                'count_threshold': 3,
                'timeframe_days': 30,
                'filter': 'product_type',
            }],
        }
        stored = fake_store.load_shop_audiences()
        assert stored['audiences'] == [audience]
        assert stored['statistics']['total_audiences'] == 1
        assert stored['statistics']['active_audiences'] == 1
        assert stored['global_settings']['max_recent_events'] == 50

    def test_list_sorted_by_priority(self, service):
        service.create_audience(dict(VALID_FORM, name='Low', priority=5))
        service.create_audience(dict(VALID_FORM, name='High', priority=1))

        listing = service.list_audiences()
        assert [a['name'] for a in listing['audiences']] == ['High', 'Low']
        assert listing['total_customers_assigned'] == 0

    def test_list_without_config(self, service):
        assert service.list_audiences() == {'audiences': [], 'total_customers_assigned': 0}

    def test_set_status(self, service, fake_store):
        audience = service.create_audience(VALID_FORM)
        updated = service.set_audience_status(audience['id'], 'inactive')

        assert updated['status'] == 'inactive'
        assert fake_store.load_shop_audiences()['statistics']['active_audiences'] == 0

    def test_set_invalid_status(self, service):
        audience = service.create_audience(VALID_FORM)
        with pytest.raises(ValidationError):
            service.set_audience_status(audience['id'], 'paused')

    def test_delete_audience(self, service, fake_store):
        audience = service.create_audience(VALID_FORM)
        service.delete_audience(audience['id'])

        stored = fake_store.load_shop_audiences()
        assert stored['audiences'] == []
        assert stored['statistics']['total_audiences'] == 0

    def test_unknown_audience(self, service):
        with pytest.raises(NotFoundError):
            service.delete_audience('audience_missing')
        with pytest.raises(NotFoundError):
            service.set_audience_status('audience_missing', 'active')
        with pytest.raises(NotFoundError):
            service.get_audience('audience_missing')
