"""
Anonymous session migration.

When a shopper logs in, the pixel replays the events it collected while they
were anonymous. Those events are merged into the customer's behavior profile
(tagged ``migrated: True``) and a bounded migration log is kept alongside it.
The log is bookkeeping: if writing it fails the migration still succeeds.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from .behavior_aggregator import aggregate_events, coerce_events
from .behavior_data import (
    MAX_MIGRATION_RECORDS,
    MAX_RECENT_EVENTS,
    RETENTION_DAYS,
    create_default_behavior_data,
    create_default_migration_data,
    isoformat,
    normalize_customer_id,
    summarize_session,
    utc_now,
)
from .metafield_store import MetafieldStore
from ..utils.exceptions import SecondaryWriteFailure, ValidationError

logger = logging.getLogger(__name__)


def append_migration(migration_data: Dict[str, Any], persway_id: str, events_count: int,
                     session_summary: Dict[str, Any], now: datetime = None,
                     max_records: int = MAX_MIGRATION_RECORDS) -> Dict[str, Any]:
    """
    Append one migration record, keeping only the ``max_records`` newest.

    ``migration_stats.total_migrations`` keeps counting past the cap.
    """
    stamp = isoformat(now or utc_now())
    summary = session_summary or {}

    migrations: List[Dict[str, Any]] = migration_data.setdefault('migrations', [])
    migrations.append({
        'persway_id': persway_id,
        'migrated_at': stamp,
        'session_start': summary.get('session_start'),
        'events_count': events_count,
        'pre_auth_summary': summary,
    })
    if len(migrations) > max_records:
        migration_data['migrations'] = migrations[-max_records:]

    stats = migration_data.setdefault('migration_stats', {'total_migrations': 0, 'last_migration': None})
    stats['total_migrations'] = stats.get('total_migrations', 0) + 1
    stats['last_migration'] = stamp
    return migration_data


class MigrationService:
    """
    Merge anonymous pixel events into an authenticated customer's profile.

    Usage:
        service = MigrationService(store)
        result = service.migrate('12345', 'pw_abc', events, session_summary)
    """

    def __init__(self, store: MetafieldStore, max_recent_events: int = MAX_RECENT_EVENTS,
                 retention_days: int = RETENTION_DAYS):
        self.store = store
        self.max_recent_events = max_recent_events
        self.retention_days = retention_days

    def migrate(self, customer_id: str, persway_id: str, anonymous_events: List[Dict[str, Any]],
                session_summary: Optional[Dict[str, Any]] = None,
                now: datetime = None) -> Dict[str, Any]:
        """
        Merge ``anonymous_events`` into the customer's profile and log the migration.

        Args:
            customer_id: Numeric customer ID or customer GID
            persway_id: Anonymous pixel session identifier
            anonymous_events: Events as ``{id, type, timestamp, data}``
            session_summary: Pre-auth summary from the pixel; derived from the
                events when omitted
            now: Wall-clock time of the migration

        Returns:
            Dict with migrated_events, customer_id, persway_id and whether the
            migration log was written

        Raises:
            ValidationError: missing identifiers or an empty/malformed batch
            SizeLimitExceededError: merged profile over its size ceiling
        """
        if not customer_id:
            raise ValidationError('customer_id is required', field='customer_id')
        if not persway_id:
            raise ValidationError('persway_id is required', field='persway_id')

        events = coerce_events(anonymous_events)
        customer_id = normalize_customer_id(customer_id)
        now = now or utc_now()

        profile = self.store.load_behavior_data(customer_id)
        if not profile:
            profile = create_default_behavior_data(now, self.retention_days)

        aggregate_events(profile, events, tag_migrated=True, now=now,
                         max_recent_events=self.max_recent_events)
        self.store.save_behavior_data(customer_id, profile)

        summary = session_summary or summarize_session(events)
        recorded = self.record_migration(customer_id, persway_id, len(events), summary, now=now)

        logger.info(
            'Migrated %d events for customer %s from session %s',
            len(events), customer_id, persway_id
        )

        return {
            'success': True,
            'migrated_events': len(events),
            'customer_id': customer_id,
            'persway_id': persway_id,
            'migration_recorded': recorded,
            'timestamp': isoformat(now),
        }

    def record_migration(self, customer_id: str, persway_id: str, events_count: int,
                         session_summary: Dict[str, Any], now: datetime = None) -> bool:
        """
        Append to the customer's migration log.

        Never raises: failures are logged and reported as False.
        """
        try:
            migration_data = self.store.load_migration_data(customer_id)
            if not migration_data:
                migration_data = create_default_migration_data()
            append_migration(migration_data, persway_id, events_count, session_summary, now=now)
            self.store.save_migration_data(customer_id, migration_data)
            return True
        except Exception as e:
            failure = SecondaryWriteFailure(
                f'Failed to record migration for customer {customer_id}: {e}', original_error=e
            )
            logger.error(failure.message, exc_info=True)
            return False
