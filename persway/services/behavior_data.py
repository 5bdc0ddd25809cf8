"""
Customer behavior data model.

Profiles, migration logs and shop configuration are stored as JSON in
Shopify metafields, so they are kept as plain dicts here. This module owns
their default shapes and the RawEvent view over incoming pixel events.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional

SCHEMA_VERSION = '1.0'

MAX_RECENT_EVENTS = 50
MAX_MIGRATION_RECORDS = 10
RETENTION_DAYS = 365

# Categorical lists inside event_summary
MAX_CATEGORY_LABELS = 100
MAX_COLLECTIONS = 100
MAX_SEARCH_TERMS = 100
MAX_DEVICE_TYPES = 10

# Event kinds with a dedicated event_summary bucket
SUMMARY_EVENT_TYPES = (
    'cart_viewed',
    'checkout_started',
    'checkout_completed',
    'product_viewed',
    'collection_viewed',
    'search_submitted',
)

KNOWN_EVENT_TYPES = SUMMARY_EVENT_TYPES + (
    'product_added_to_cart',
    'product_removed_from_cart',
    'page_viewed',
)

CUSTOMER_GID_PREFIX = 'gid://shopify/Customer/'


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(dt: datetime) -> str:
    """Format like JavaScript's toISOString(): 2024-05-01T12:00:00.000Z."""
    dt = dt.astimezone(timezone.utc)
    return dt.strftime('%Y-%m-%dT%H:%M:%S.') + f'{dt.microsecond // 1000:03d}Z'


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string; None when missing or malformed."""
    if not isinstance(value, str) or not value:
        return None
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def normalize_customer_id(customer_id: Any) -> str:
    """Strip the Admin API GID prefix: gid://shopify/Customer/42 -> 42."""
    return str(customer_id).replace(CUSTOMER_GID_PREFIX, '').strip()


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _as_label(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


@dataclass
class RawEvent:
    """
    One behavioral event as delivered by the web pixel or a migration request.

    ``data`` is an open mapping; the accessors below pull the fields the
    aggregator cares about and return None when a field is absent or unusable.
    """
    type: str
    timestamp: str = ''
    id: Optional[str] = None
    persway_id: Optional[str] = None
    customer_id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> 'RawEvent':
        data = raw.get('data')
        timestamp = raw.get('timestamp')
        return cls(
            type=raw['type'],
            timestamp=timestamp if isinstance(timestamp, str) else '',
            id=raw.get('id'),
            persway_id=raw.get('persway_id'),
            customer_id=raw.get('customer_id'),
            data=dict(data) if isinstance(data, Mapping) else {},
        )

    @property
    def category(self) -> Optional[str]:
        label = _as_label(self.data.get('product_type')) or _as_label(self.data.get('category'))
        return label.lower() if label else None

    @property
    def vendor(self) -> Optional[str]:
        label = _as_label(self.data.get('vendor'))
        return label.lower() if label else None

    @property
    def cart_value(self) -> Optional[float]:
        return _as_number(self.data.get('cart_value'))

    @property
    def order_value(self) -> Optional[float]:
        return _as_number(self.data.get('order_value'))

    @property
    def collection_handle(self) -> Optional[str]:
        return _as_label(self.data.get('collection_handle'))

    @property
    def search_term(self) -> Optional[str]:
        return _as_label(self.data.get('search_term'))

    @property
    def device_type(self) -> Optional[str]:
        label = _as_label(self.data.get('device_type'))
        return label.lower() if label else None

    def to_recent_event(self, migrated: bool = False) -> Dict[str, Any]:
        record = {'type': self.type, 'timestamp': self.timestamp}
        for key, value in self.data.items():
            if key not in ('type', 'timestamp'):
                record[key] = value
        if migrated:
            record['migrated'] = True
        return record


def create_default_behavior_data(now: datetime = None, retention_days: int = RETENTION_DAYS) -> Dict[str, Any]:
    """Zeroed BehaviorProfile; expires ``retention_days`` after creation."""
    now = now or utc_now()
    created = isoformat(now)
    return {
        'version': SCHEMA_VERSION,
        'audience_assignment': {
            'current_audience_id': None,
            'assigned_at': None,
            'priority': None,
            'evaluation_count': 0,
        },
        'event_summary': {
            'cart_viewed': {'count': 0, 'last_at': None, 'avg_cart_value': 0, 'value_count': 0},
            'checkout_started': {'count': 0, 'last_at': None, 'conversion_rate': 0},
            'checkout_completed': {'count': 0, 'last_at': None, 'total_value': 0},
            'product_viewed': {'count': 0, 'categories': {}, 'last_at': None},
            'collection_viewed': {'count': 0, 'collections': [], 'last_at': None},
            'search_submitted': {'count': 0, 'terms': [], 'last_at': None},
        },
        'affinity_scores': {},
        'recent_events': [],
        'session_data': {
            'total_sessions': 0,
            'avg_session_duration': 0,
            'last_session': None,
            'device_types': [],
        },
        'data_retention': {
            'created_at': created,
            'last_updated': created,
            'expires_at': isoformat(now + timedelta(days=retention_days)),
        },
    }


def create_default_migration_data() -> Dict[str, Any]:
    return {
        'version': SCHEMA_VERSION,
        'migrations': [],
        'migration_stats': {
            'total_migrations': 0,
            'last_migration': None,
        },
    }


def create_default_shop_audiences() -> Dict[str, Any]:
    return {
        'version': SCHEMA_VERSION,
        'audiences': [],
        'global_settings': {
            'evaluation_frequency': 'real_time',
            'max_recent_events': MAX_RECENT_EVENTS,
            'data_retention_days': RETENTION_DAYS,
            'privacy_mode': 'strict',
            'performance_monitoring': True,
        },
        'statistics': {
            'total_audiences': 0,
            'active_audiences': 0,
            'total_customers_assigned': 0,
            'last_global_evaluation': None,
        },
    }


def create_default_theme_blocks() -> Dict[str, Any]:
    return {
        'version': SCHEMA_VERSION,
        'hero_banners': {
            'default': {
                'image_url': '',
                'image_alt': 'Welcome to our store',
                'heading': 'Welcome to Our Store',
                'subheading': 'Discover amazing products tailored just for you',
                'button_text': 'Shop Now',
                'button_url': '/collections/all',
                'background_color': '#f8f9fa',
            }
        },
        'block_settings': {
            'fallback_strategy': 'default',
            'cache_duration_seconds': 300,
            'performance_monitoring': True,
        },
    }


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _repair(value: Any, default: Any) -> Any:
    """``value`` if it has the same JSON type as ``default``, else ``default``."""
    if isinstance(default, dict):
        if not isinstance(value, dict):
            return default
        for key, sub in default.items():
            value[key] = _repair(value[key], sub) if key in value else sub
        return value
    if default is None:
        return value
    if isinstance(default, bool):
        return value if isinstance(value, bool) else default
    if isinstance(default, (int, float)):
        return value if _is_number(value) else default
    if isinstance(default, str):
        return value if isinstance(value, str) or value is None else default
    return value if isinstance(value, type(default)) else default


def ensure_profile_shape(profile: Dict[str, Any]) -> Dict[str, Any]:
    """
    Fill in missing sections of a stored profile and reset malformed ones.

    Profiles written by older app versions may lack newer keys. A section or
    field whose stored type does not match the default (``null`` buckets,
    ``event_summary`` stored as a list, a string count) is replaced by its
    default; well-typed values are never overwritten.
    """
    cart = profile.get('event_summary')
    cart = cart.get('cart_viewed') if isinstance(cart, dict) else None
    if isinstance(cart, dict) and 'value_count' not in cart:
        # profiles from before value_count averaged over every cart view
        cart['value_count'] = cart.get('count', 0)
    _repair(profile, create_default_behavior_data())

    profile['recent_events'] = [e for e in profile['recent_events'] if isinstance(e, dict)]
    for bucket in profile['event_summary'].values():
        if not isinstance(bucket.get('last_at'), str):
            bucket['last_at'] = None
    for scores in (profile['affinity_scores'], profile['event_summary']['product_viewed']['categories']):
        for label in [k for k, v in scores.items() if not _is_number(v)]:
            del scores[label]
    return profile


def summarize_session(events: List[RawEvent]) -> Dict[str, Any]:
    """Pre-auth session summary used when the pixel did not send one."""
    timestamps = sorted(e.timestamp for e in events if e.timestamp)
    time_spent = 0
    if timestamps:
        first, last = parse_timestamp(timestamps[0]), parse_timestamp(timestamps[-1])
        if first and last:
            time_spent = int((last - first).total_seconds())

    categories: List[str] = []
    for event in events:
        if event.category and event.category not in categories:
            categories.append(event.category)

    return {
        'session_start': timestamps[0] if timestamps else None,
        'pages_viewed': sum(1 for e in events if e.type == 'page_viewed'),
        'products_viewed': sum(1 for e in events if e.type == 'product_viewed'),
        'time_spent': time_spent,
        'categories_browsed': categories,
    }
