"""
Business logic services for Persway.
"""
from .behavior_aggregator import aggregate_events
from .metafield_store import MetafieldStore
from .migration_service import MigrationService
from .event_service import EventService
from .audience_service import AudienceService
from .installation_service import InstallationService

__all__ = [
    'aggregate_events',
    'MetafieldStore',
    'MigrationService',
    'EventService',
    'AudienceService',
    'InstallationService',
]
