"""
Metafield-backed storage for Persway data.

Customer behavior profiles and migration logs live in app-owned customer
metafields; audience definitions and theme blocks live in shop metafields.
Every value is a JSON document with a soft size ceiling that is checked
before anything is sent to Shopify, so an oversized write never replaces the
stored value.
"""
import json
import logging
from typing import Any, Dict, Optional

from .behavior_data import normalize_customer_id
from .shopify_client import ShopifyClient, customer_gid
from ..utils.exceptions import MetafieldError, SizeLimitExceededError

logger = logging.getLogger(__name__)

BEHAVIOR_NAMESPACE = '$app:persway_events'
BEHAVIOR_KEY = 'behavior_data'
SESSION_NAMESPACE = '$app:persway_session'
MIGRATION_KEY = 'migration_data'
CONFIG_NAMESPACE = '$app:persway_config'
AUDIENCES_KEY = 'audiences'
THEME_BLOCKS_KEY = 'theme_blocks'

DEFAULT_SIZE_LIMITS_KB = {
    'behavior_data': 200,
    'migration_data': 50,
    'audiences': 500,
    'theme_blocks': 250,
}


def metafield_size_kb(value: Any) -> float:
    """Serialized size in KB, measured on UTF-8 encoded JSON."""
    return len(json.dumps(value).encode('utf-8')) / 1024


def validate_metafield_size(value: Any, max_size_kb: float, label: str) -> float:
    """
    Check a value against its soft ceiling.

    Returns:
        The serialized size in KB

    Raises:
        SizeLimitExceededError: if the value is over ``max_size_kb``
    """
    size_kb = metafield_size_kb(value)
    if size_kb > max_size_kb:
        raise SizeLimitExceededError(label, size_kb, max_size_kb)
    return size_kb


def _decode(raw: Optional[str], label: str) -> Optional[Dict[str, Any]]:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError as e:
        raise MetafieldError(f'Stored {label} is not valid JSON: {e}')


class MetafieldStore:
    """
    Load and save Persway JSON documents through a ShopifyClient.

    Usage:
        store = MetafieldStore(client)
        profile = store.load_behavior_data('12345') or create_default_behavior_data()
        store.save_behavior_data('12345', profile)
    """

    def __init__(self, client: ShopifyClient, size_limits_kb: Dict[str, float] = None):
        self.client = client
        self.size_limits_kb = dict(DEFAULT_SIZE_LIMITS_KB)
        if size_limits_kb:
            self.size_limits_kb.update(size_limits_kb)

    @classmethod
    def from_config(cls, client: ShopifyClient, config) -> 'MetafieldStore':
        return cls(client, {
            'behavior_data': config.get('PERSWAY_BEHAVIOR_DATA_MAX_KB', 200),
            'migration_data': config.get('PERSWAY_MIGRATION_DATA_MAX_KB', 50),
            'audiences': config.get('PERSWAY_AUDIENCES_MAX_KB', 500),
            'theme_blocks': config.get('PERSWAY_THEME_BLOCKS_MAX_KB', 250),
        })

    # ==================== Customer documents ====================

    def load_behavior_data(self, customer_id: str) -> Optional[Dict[str, Any]]:
        raw = self.client.get_customer_metafield(
            normalize_customer_id(customer_id), BEHAVIOR_NAMESPACE, BEHAVIOR_KEY
        )
        return _decode(raw, 'customer behavior data')

    def save_behavior_data(self, customer_id: str, data: Dict[str, Any]) -> None:
        """
        Persist a full behavior profile.

        Raises:
            SizeLimitExceededError: profile over its ceiling; nothing is written
        """
        size_kb = validate_metafield_size(
            data, self.size_limits_kb['behavior_data'], 'Customer behavior data'
        )
        customer_id = normalize_customer_id(customer_id)
        self.client.set_json_metafield(
            customer_gid(customer_id), BEHAVIOR_NAMESPACE, BEHAVIOR_KEY, data
        )
        logger.debug('Saved behavior data for customer %s (%.1fKB)', customer_id, size_kb)

    def load_migration_data(self, customer_id: str) -> Optional[Dict[str, Any]]:
        raw = self.client.get_customer_metafield(
            normalize_customer_id(customer_id), SESSION_NAMESPACE, MIGRATION_KEY
        )
        return _decode(raw, 'customer migration data')

    def save_migration_data(self, customer_id: str, data: Dict[str, Any]) -> None:
        validate_metafield_size(
            data, self.size_limits_kb['migration_data'], 'Customer migration data'
        )
        customer_id = normalize_customer_id(customer_id)
        self.client.set_json_metafield(
            customer_gid(customer_id), SESSION_NAMESPACE, MIGRATION_KEY, data
        )

    # ==================== Shop documents ====================

    def load_shop_audiences(self) -> Optional[Dict[str, Any]]:
        raw = self.client.get_shop_metafield(CONFIG_NAMESPACE, AUDIENCES_KEY)
        return _decode(raw, 'shop audiences')

    def save_shop_audiences(self, data: Dict[str, Any]) -> None:
        validate_metafield_size(data, self.size_limits_kb['audiences'], 'Shop audiences data')
        self.client.set_json_metafield(
            self.client.get_shop_id(), CONFIG_NAMESPACE, AUDIENCES_KEY, data
        )

    def load_theme_blocks(self) -> Optional[Dict[str, Any]]:
        raw = self.client.get_shop_metafield(CONFIG_NAMESPACE, THEME_BLOCKS_KEY)
        return _decode(raw, 'shop theme blocks')

    def save_theme_blocks(self, data: Dict[str, Any]) -> None:
        validate_metafield_size(data, self.size_limits_kb['theme_blocks'], 'Shop theme blocks data')
        self.client.set_json_metafield(
            self.client.get_shop_id(), CONFIG_NAMESPACE, THEME_BLOCKS_KEY, data
        )
