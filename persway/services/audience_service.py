"""
Audience configuration service.

Audiences are rule-based customer segments stored in the shop's
``$app:persway_config/audiences`` metafield. This service only manages the
definitions; evaluating rules against behavior profiles happens elsewhere.
"""
import secrets
import string
import time
from typing import Any, Dict, List, Optional

from .behavior_data import KNOWN_EVENT_TYPES, create_default_shop_audiences, isoformat, utc_now
from .metafield_store import MetafieldStore
from ..utils.exceptions import NotFoundError, ValidationError

OPERATORS = ('contains', 'equals', 'gt', 'lt', 'gte', 'lte')
RULE_TYPES = ('and', 'or')
STATUSES = ('active', 'inactive')
MIN_PRIORITY = 1
MAX_PRIORITY = 10

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_audience_id() -> str:
    """audience_<epoch ms>_<9 random chars>"""
    suffix = ''.join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f'audience_{int(time.time() * 1000)}_{suffix}'


def _as_int(value: Any, default: int) -> Optional[int]:
    if value is None or value == '':
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _text(value: Any) -> str:
    return str(value).strip() if value is not None else ''


def refresh_statistics(shop_audiences: Dict[str, Any]) -> None:
    audiences = shop_audiences.get('audiences', [])
    stats = shop_audiences.setdefault('statistics', {})
    stats['total_audiences'] = len(audiences)
    stats['active_audiences'] = sum(1 for a in audiences if a.get('status') == 'active')


class AudienceService:
    """CRUD over the shop's audience definitions."""

    def __init__(self, store: MetafieldStore):
        self.store = store

    def _load(self) -> Dict[str, Any]:
        return self.store.load_shop_audiences() or create_default_shop_audiences()

    def list_audiences(self) -> Dict[str, Any]:
        shop_audiences = self.store.load_shop_audiences()
        if not shop_audiences:
            return {'audiences': [], 'total_customers_assigned': 0}

        rows = []
        for audience in shop_audiences.get('audiences', []):
            metrics = audience.get('performance_metrics') or {}
            rows.append({
                'id': audience.get('id'),
                'name': audience.get('name'),
                'description': audience.get('description', ''),
                'priority': audience.get('priority'),
                'status': audience.get('status'),
                'customer_count': metrics.get('customer_count', 0),
                'created_at': audience.get('created_at'),
            })
        rows.sort(key=lambda row: (row['priority'] or MAX_PRIORITY, row['created_at'] or ''))

        stats = shop_audiences.get('statistics') or {}
        return {
            'audiences': rows,
            'total_customers_assigned': stats.get('total_customers_assigned', 0),
        }

    def get_audience(self, audience_id: str) -> Dict[str, Any]:
        for audience in self._load().get('audiences', []):
            if audience.get('id') == audience_id:
                return audience
        raise NotFoundError('Audience', audience_id)

    def validate_form(self, form: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate a create-audience form.

        Returns:
            Normalized field values

        Raises:
            ValidationError: with ``field_errors`` keyed by form field
        """
        name = _text(form.get('name'))
        event_type = _text(form.get('eventType') or form.get('event_type'))
        value = _text(form.get('value'))
        operator = _text(form.get('operator')) or 'contains'
        rule_type = _text(form.get('ruleType') or form.get('rule_type')) or 'and'
        priority = _as_int(form.get('priority'), 1)
        count_threshold = _as_int(form.get('countThreshold', form.get('count_threshold')), 1)
        timeframe_days = _as_int(form.get('timeframeDays', form.get('timeframe_days')), 30)

        field_errors = {}
        if not name:
            field_errors['name'] = 'Audience name is required'
        if not event_type:
            field_errors['eventType'] = 'Event type is required'
        elif event_type not in KNOWN_EVENT_TYPES:
            field_errors['eventType'] = f'Unknown event type: {event_type}'
        if not value:
            field_errors['value'] = 'Rule value is required'
        if operator not in OPERATORS:
            field_errors['operator'] = f'Operator must be one of: {", ".join(OPERATORS)}'
        if rule_type not in RULE_TYPES:
            field_errors['ruleType'] = 'Rule type must be "and" or "or"'
        if priority is None or not MIN_PRIORITY <= priority <= MAX_PRIORITY:
            field_errors['priority'] = f'Priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}'
        if count_threshold is None or count_threshold < 1:
            field_errors['countThreshold'] = 'Count threshold must be at least 1'
        if timeframe_days is None or timeframe_days < 1:
            field_errors['timeframeDays'] = 'Timeframe must be at least 1 day'

        if field_errors:
            raise ValidationError('Invalid audience definition', field_errors=field_errors)

        return {
            'name': name,
            'description': _text(form.get('description')),
            'priority': priority,
            'rule_type': rule_type,
            'event_type': event_type,
            'filter': _text(form.get('filter')) or None,
            'operator': operator,
            'value': value,
            'count_threshold': count_threshold,
            'timeframe_days': timeframe_days,
        }

    def create_audience(self, form: Dict[str, Any]) -> Dict[str, Any]:
        fields = self.validate_form(form)
        now = isoformat(utc_now())

        condition = {
            'event_type': fields['event_type'],
            'operator': fields['operator'],
            'value': fields['value'],
            'count_threshold': fields['count_threshold'],
            'timeframe_days': fields['timeframe_days'],
        }
        if fields['filter']:
            condition['filter'] = fields['filter']

        audience = {
            'id': generate_audience_id(),
            'name': fields['name'],
            'description': fields['description'],
            'priority': fields['priority'],
            'status': 'active',
            'created_at': now,
            'updated_at': now,
            'rules': {
                'type': fields['rule_type'],
                'conditions': [condition],
            },
            'performance_metrics': {
                'customer_count': 0,
                'last_evaluated': now,
                'avg_assignment_time_ms': 0,
            },
        }

        shop_audiences = self._load()
        shop_audiences.setdefault('audiences', []).append(audience)
        refresh_statistics(shop_audiences)
        self.store.save_shop_audiences(shop_audiences)
        return audience

    def set_audience_status(self, audience_id: str, status: str) -> Dict[str, Any]:
        if status not in STATUSES:
            raise ValidationError('Status must be "active" or "inactive"', field='status')

        shop_audiences = self._load()
        for audience in shop_audiences.get('audiences', []):
            if audience.get('id') == audience_id:
                audience['status'] = status
                audience['updated_at'] = isoformat(utc_now())
                refresh_statistics(shop_audiences)
                self.store.save_shop_audiences(shop_audiences)
                return audience
        raise NotFoundError('Audience', audience_id)

    def delete_audience(self, audience_id: str) -> None:
        shop_audiences = self._load()
        audiences: List[Dict[str, Any]] = shop_audiences.get('audiences', [])
        remaining = [a for a in audiences if a.get('id') != audience_id]
        if len(remaining) == len(audiences):
            raise NotFoundError('Audience', audience_id)
        shop_audiences['audiences'] = remaining
        refresh_statistics(shop_audiences)
        self.store.save_shop_audiences(shop_audiences)
