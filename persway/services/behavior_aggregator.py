"""
Behavior aggregation.

Folds a batch of pixel events into a customer's behavior profile. The same
routine serves live event processing and anonymous-session migration; the
only difference is that migrated events are tagged ``migrated: True`` in
``recent_events``.

The function is pure apart from mutating the profile it is given: it does no
I/O and has no locking. Callers doing load -> aggregate -> save against the
metafield store must serialize per customer themselves, otherwise the last
writer wins.
"""
from datetime import datetime
from typing import Any, Dict, List, Mapping, Sequence, Union

from .behavior_data import (
    MAX_CATEGORY_LABELS,
    MAX_COLLECTIONS,
    MAX_DEVICE_TYPES,
    MAX_RECENT_EVENTS,
    MAX_SEARCH_TERMS,
    RawEvent,
    ensure_profile_shape,
    isoformat,
    utc_now,
)
from ..utils.exceptions import ValidationError

CATEGORY_AFFINITY_WEIGHT = 1
VENDOR_AFFINITY_WEIGHT = 0.5

EventInput = Union[RawEvent, Mapping[str, Any]]


def coerce_events(events: Any) -> List[RawEvent]:
    """
    Validate a batch and convert it to RawEvent objects.

    Raises:
        ValidationError: batch is not a non-empty list, or an entry has no
            string ``type``
    """
    if not isinstance(events, (list, tuple)):
        raise ValidationError('Events must be a list', field='events')
    if not events:
        raise ValidationError('Event batch is empty', field='events')

    coerced = []
    for index, event in enumerate(events):
        if isinstance(event, RawEvent):
            coerced.append(event)
            continue
        if not isinstance(event, Mapping):
            raise ValidationError(f'Event {index} is not an object', field='events')
        event_type = event.get('type')
        if not isinstance(event_type, str) or not event_type:
            raise ValidationError(f'Event {index} is missing a type', field='events')
        coerced.append(RawEvent.from_dict(event))
    return coerced


def _touch_last_at(bucket: Dict[str, Any], timestamp: str) -> None:
    # ISO-8601 strings compare lexically; no timezone normalization
    if timestamp and (not bucket.get('last_at') or timestamp > bucket['last_at']):
        bucket['last_at'] = timestamp


def _append_unique(values: List[str], value: str, limit: int) -> None:
    if value in values:
        return
    values.append(value)
    if len(values) > limit:
        del values[:len(values) - limit]


def _update_conversion_rate(summary: Dict[str, Any]) -> None:
    started = summary['checkout_started']['count']
    completed = summary['checkout_completed']['count']
    summary['checkout_started']['conversion_rate'] = completed / started if started > 0 else 0


def _apply_summary(profile: Dict[str, Any], event: RawEvent) -> None:
    summary = profile['event_summary']
    kind = event.type

    if kind == 'cart_viewed':
        bucket = summary['cart_viewed']
        bucket['count'] += 1
        _touch_last_at(bucket, event.timestamp)
        value = event.cart_value
        if value is not None:
            bucket['value_count'] += 1
            n = bucket['value_count']
            bucket['avg_cart_value'] = (bucket['avg_cart_value'] * (n - 1) + value) / n

    elif kind == 'checkout_started':
        bucket = summary['checkout_started']
        bucket['count'] += 1
        _touch_last_at(bucket, event.timestamp)
        _update_conversion_rate(summary)

    elif kind == 'checkout_completed':
        bucket = summary['checkout_completed']
        bucket['count'] += 1
        _touch_last_at(bucket, event.timestamp)
        value = event.order_value
        if value is not None:
            bucket['total_value'] += value
        _update_conversion_rate(summary)

    elif kind == 'product_viewed':
        bucket = summary['product_viewed']
        bucket['count'] += 1
        _touch_last_at(bucket, event.timestamp)
        category = event.category
        if category:
            categories = bucket['categories']
            if category in categories or len(categories) < MAX_CATEGORY_LABELS:
                categories[category] = categories.get(category, 0) + 1

    elif kind == 'collection_viewed':
        bucket = summary['collection_viewed']
        bucket['count'] += 1
        _touch_last_at(bucket, event.timestamp)
        if event.collection_handle:
            _append_unique(bucket['collections'], event.collection_handle, MAX_COLLECTIONS)

    elif kind == 'search_submitted':
        bucket = summary['search_submitted']
        bucket['count'] += 1
        _touch_last_at(bucket, event.timestamp)
        if event.search_term:
            _append_unique(bucket['terms'], event.search_term, MAX_SEARCH_TERMS)

    elif kind == 'page_viewed':
        profile['session_data']['total_sessions'] += 1

    # product_added_to_cart, product_removed_from_cart and unknown types only
    # show up in recent_events


def _apply_affinity(profile: Dict[str, Any], event: RawEvent) -> None:
    scores = profile['affinity_scores']
    if event.category:
        scores[event.category] = scores.get(event.category, 0) + CATEGORY_AFFINITY_WEIGHT
    if event.vendor:
        scores[event.vendor] = scores.get(event.vendor, 0) + VENDOR_AFFINITY_WEIGHT


def trim_recent_events(recent_events: List[Dict[str, Any]],
                       limit: int = MAX_RECENT_EVENTS) -> List[Dict[str, Any]]:
    """
    Newest-first list of at most ``limit`` events.

    Events are ordered by timestamp descending; among equal timestamps the
    later-appended event wins.
    """
    ordered = sorted(
        reversed(recent_events),
        key=lambda e: str(e.get('timestamp') or ''),
        reverse=True,
    )
    return ordered[:limit]


def aggregate_events(profile: Dict[str, Any], events: Sequence[EventInput],
                     tag_migrated: bool = False, now: datetime = None,
                     max_recent_events: int = MAX_RECENT_EVENTS) -> Dict[str, Any]:
    """
    Fold ``events`` into ``profile`` and return it.

    Args:
        profile: Behavior profile dict (see create_default_behavior_data)
        events: Non-empty list of RawEvent or raw event dicts
        tag_migrated: Mark appended recent_events with ``migrated: True``
        now: Wall-clock time of this aggregation (defaults to utcnow)
        max_recent_events: recent_events cap

    Raises:
        ValidationError: if the batch is empty or malformed; the profile is
            left untouched
    """
    if not isinstance(profile, dict):
        raise ValidationError('Profile must be an object', field='profile')
    batch = coerce_events(events)

    ensure_profile_shape(profile)
    stamp = isoformat(now or utc_now())

    for event in batch:
        _apply_summary(profile, event)
        profile['recent_events'].append(event.to_recent_event(migrated=tag_migrated))
        _apply_affinity(profile, event)

        device = event.device_type
        if device:
            _append_unique(profile['session_data']['device_types'], device, MAX_DEVICE_TYPES)

    profile['recent_events'] = trim_recent_events(profile['recent_events'], max_recent_events)

    profile['session_data']['last_session'] = stamp
    profile['data_retention']['last_updated'] = stamp
    return profile
