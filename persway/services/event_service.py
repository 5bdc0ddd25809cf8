"""
Pixel event ingestion.

The web pixel posts batches of events. Events that carry a customer ID are
folded into that customer's behavior profile (one load/save per customer).
Anonymous events are buffered in the app cache under their pixel session ID
so that a later migration request can replay them.
"""
import logging
from collections import OrderedDict
from datetime import datetime
from typing import Any, Dict, List, Optional

from .behavior_aggregator import aggregate_events, coerce_events
from .behavior_data import (
    MAX_RECENT_EVENTS,
    RETENTION_DAYS,
    RawEvent,
    create_default_behavior_data,
    isoformat,
    normalize_customer_id,
    utc_now,
)
from .metafield_store import MetafieldStore
from ..utils.cache import cache_key
from ..utils.exceptions import PerswayError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_ANONYMOUS_EVENT_TTL = 86400
DEFAULT_ANONYMOUS_EVENT_BUFFER = 200


def _event_dict(event: RawEvent) -> Dict[str, Any]:
    return {
        'id': event.id,
        'type': event.type,
        'timestamp': event.timestamp,
        'data': event.data,
    }


class EventService:
    """
    Route incoming pixel events to customer profiles or the anonymous buffer.

    Args:
        store: Metafield store for the shop, or None when the shop has no
            Admin API access (customer events are then skipped)
        cache: Flask-Caching cache used for the anonymous buffer
        shop_domain: Shop the events belong to (part of the buffer key)
    """

    def __init__(self, store: Optional[MetafieldStore], cache, shop_domain: str,
                 max_recent_events: int = MAX_RECENT_EVENTS,
                 anonymous_ttl: int = DEFAULT_ANONYMOUS_EVENT_TTL,
                 anonymous_buffer: int = DEFAULT_ANONYMOUS_EVENT_BUFFER,
                 retention_days: int = RETENTION_DAYS):
        self.store = store
        self.cache = cache
        self.shop_domain = shop_domain
        self.max_recent_events = max_recent_events
        self.anonymous_ttl = anonymous_ttl
        self.anonymous_buffer = anonymous_buffer
        self.retention_days = retention_days

    @classmethod
    def from_config(cls, store: Optional[MetafieldStore], cache, shop_domain: str, config) -> 'EventService':
        return cls(
            store, cache, shop_domain,
            max_recent_events=config.get('PERSWAY_MAX_RECENT_EVENTS', MAX_RECENT_EVENTS),
            anonymous_ttl=config.get('ANONYMOUS_EVENT_TTL', DEFAULT_ANONYMOUS_EVENT_TTL),
            anonymous_buffer=config.get('ANONYMOUS_EVENT_BUFFER', DEFAULT_ANONYMOUS_EVENT_BUFFER),
            retention_days=config.get('PERSWAY_RETENTION_DAYS', RETENTION_DAYS),
        )

    def ingest(self, payload: Any, now: datetime = None) -> Dict[str, Any]:
        """
        Handle one pixel batch: ``{events: [...], session: {...}}``.

        Returns:
            Dict with processed count, per-customer results, anonymous session
            counts and any per-customer errors

        Raises:
            ValidationError: payload has no events list or a malformed event
        """
        now = now or utc_now()
        if not isinstance(payload, dict) or not isinstance(payload.get('events'), list):
            raise ValidationError('Invalid events payload', field='events')

        if not payload['events']:
            return {'success': True, 'processed': 0, 'timestamp': isoformat(now)}

        events = coerce_events(payload['events'])

        by_customer: Dict[str, List[RawEvent]] = OrderedDict()
        by_session: Dict[str, List[RawEvent]] = OrderedDict()
        unidentified = 0
        for event in events:
            if event.customer_id:
                by_customer.setdefault(normalize_customer_id(event.customer_id), []).append(event)
            elif isinstance(event.persway_id, str) and event.persway_id.strip():
                by_session.setdefault(event.persway_id.strip(), []).append(event)
            else:
                unidentified += 1

        if unidentified:
            # no session to attribute them to, so they can never be migrated
            logger.info('Dropping %d anonymous events without a persway_id for %s',
                        unidentified, self.shop_domain)

        customers = {}
        errors = []
        skipped = 0
        for customer_id, customer_events in by_customer.items():
            if self.store is None:
                logger.warning(
                    'No Admin API access for %s, skipping %d events for customer %s',
                    self.shop_domain, len(customer_events), customer_id
                )
                skipped += len(customer_events)
                continue
            try:
                self.process_customer_events(customer_id, customer_events, now=now)
                customers[customer_id] = len(customer_events)
            except PerswayError as e:
                logger.warning('Failed to process events for customer %s: %s', customer_id, e.message)
                errors.append({'customer_id': customer_id, 'error': e.message, 'code': e.code})

        anonymous_sessions = {}
        for persway_id, session_events in by_session.items():
            buffered = self.buffer_anonymous_events(persway_id, session_events)
            anonymous_sessions[persway_id] = len(session_events)
            logger.info(
                'Anonymous session %s: %d events (%d buffered)',
                persway_id, len(session_events), buffered
            )

        processed = sum(customers.values()) + sum(anonymous_sessions.values())
        result = {
            'success': not errors,
            'processed': processed,
            'customers': customers,
            'anonymous_sessions': anonymous_sessions,
            'timestamp': isoformat(now),
        }
        if skipped:
            result['skipped'] = skipped
        if unidentified:
            result['unidentified'] = unidentified
        if errors:
            result['errors'] = errors
        return result

    def process_customer_events(self, customer_id: str, events: List[Any],
                                now: datetime = None) -> Dict[str, Any]:
        """
        Load a customer's profile, fold ``events`` in and save it.

        Returns:
            The updated profile
        """
        if self.store is None:
            raise ValidationError('Shop has no Admin API access', field='shop')
        batch = coerce_events(events)
        customer_id = normalize_customer_id(customer_id)
        now = now or utc_now()

        profile = self.store.load_behavior_data(customer_id)
        if not profile:
            profile = create_default_behavior_data(now, self.retention_days)

        aggregate_events(profile, batch, now=now, max_recent_events=self.max_recent_events)
        self.store.save_behavior_data(customer_id, profile)
        return profile

    # ==================== Anonymous buffer ====================

    def _buffer_key(self, persway_id: str) -> str:
        return cache_key('anon_events', self.shop_domain, persway_id)

    def buffer_anonymous_events(self, persway_id: str, events: List[RawEvent]) -> int:
        """Append to the session buffer, keeping the newest entries. Returns buffer size."""
        key = self._buffer_key(persway_id)
        buffered = self.cache.get(key) or []
        buffered.extend(_event_dict(e) for e in events)
        if len(buffered) > self.anonymous_buffer:
            buffered = buffered[-self.anonymous_buffer:]
        self.cache.set(key, buffered, timeout=self.anonymous_ttl)
        return len(buffered)

    def get_anonymous_events(self, persway_id: str) -> List[Dict[str, Any]]:
        return self.cache.get(self._buffer_key(persway_id)) or []

    def clear_anonymous_events(self, persway_id: str) -> None:
        self.cache.delete(self._buffer_key(persway_id))
