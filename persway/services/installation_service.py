"""
App installation checks and setup.

Creates the metafield definitions Persway writes to, seeds default shop
configuration and registers the web pixel.
"""
import logging
from typing import Any, Dict, List

from .behavior_data import create_default_shop_audiences, create_default_theme_blocks
from .metafield_store import (
    AUDIENCES_KEY,
    BEHAVIOR_KEY,
    BEHAVIOR_NAMESPACE,
    CONFIG_NAMESPACE,
    MIGRATION_KEY,
    SESSION_NAMESPACE,
    THEME_BLOCKS_KEY,
    MetafieldStore,
)
from .shopify_client import ShopifyClient
from ..utils.exceptions import PerswayError

logger = logging.getLogger(__name__)

CUSTOMER_METAFIELD_DEFINITIONS = [
    {
        'namespace': BEHAVIOR_NAMESPACE,
        'key': BEHAVIOR_KEY,
        'name': 'Customer Behavior Data',
        'description': 'Stores customer behavioral events, audience assignment, and affinity scores '
                       'for personalization (target ~200KB)',
        'type': 'json',
        'ownerType': 'CUSTOMER',
    },
    {
        'namespace': SESSION_NAMESPACE,
        'key': MIGRATION_KEY,
        'name': 'Session Migration Data',
        'description': 'Tracks data migrated from anonymous sessions when customer logs in (target ~50KB)',
        'type': 'json',
        'ownerType': 'CUSTOMER',
    },
]

SHOP_METAFIELD_DEFINITIONS = [
    {
        'namespace': CONFIG_NAMESPACE,
        'key': AUDIENCES_KEY,
        'name': 'Audience Definitions',
        'description': 'Stores all audience definitions, rules, and performance metrics for customer '
                       'segmentation (target ~500KB)',
        'type': 'json',
        'ownerType': 'SHOP',
    },
    {
        'namespace': CONFIG_NAMESPACE,
        'key': THEME_BLOCKS_KEY,
        'name': 'Theme Block Configurations',
        'description': 'Stores personalized content configurations for each audience '
                       '(hero banners, etc.) (target ~250KB)',
        'type': 'json',
        'ownerType': 'SHOP',
    },
]

ALL_METAFIELD_DEFINITIONS = CUSTOMER_METAFIELD_DEFINITIONS + SHOP_METAFIELD_DEFINITIONS


def _namespace_suffix(namespace: str) -> str:
    # Shopify stores $app:persway_events as app--<app id>--persway_events
    return namespace.replace('$app:', '')


def _has_definition(existing: List[Dict[str, Any]], definition: Dict[str, Any]) -> bool:
    suffix = _namespace_suffix(definition['namespace'])
    return any(
        suffix in (node.get('namespace') or '') and node.get('key') == definition['key']
        for node in existing
    )


class InstallationService:
    """Installation status and setup for one shop."""

    def __init__(self, client: ShopifyClient, store: MetafieldStore):
        self.client = client
        self.store = store

    def _existing_definitions(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            'CUSTOMER': self.client.get_metafield_definitions('CUSTOMER'),
            'SHOP': self.client.get_metafield_definitions('SHOP'),
        }

    def setup_metafield_definitions(self) -> Dict[str, Any]:
        """
        Create missing metafield definitions.

        Returns:
            Dict with overall success and one result per definition
        """
        existing = self._existing_definitions()
        results = []
        for definition in ALL_METAFIELD_DEFINITIONS:
            label = f"{definition['namespace']}.{definition['key']}"
            if _has_definition(existing[definition['ownerType']], definition):
                results.append({'definition': label, 'success': True, 'skipped': True})
                continue

            result = self.client.create_metafield_definition(definition)
            if result['success']:
                results.append({'definition': label, 'success': True})
            else:
                messages = ', '.join(e.get('message', '') for e in result.get('errors', []))
                logger.warning('Failed to create metafield definition %s: %s', label, messages)
                results.append({'definition': label, 'success': False, 'error': messages})

        return {
            'success': all(r['success'] for r in results),
            'results': results,
        }

    def initialize_default_configuration(self) -> Dict[str, bool]:
        """
        Seed default audiences and theme blocks when the shop has none.

        Best effort: failures are logged, not raised.
        """
        initialized = {'audiences': False, 'theme_blocks': False}
        try:
            if self.store.load_shop_audiences() is None:
                self.store.save_shop_audiences(create_default_shop_audiences())
                initialized['audiences'] = True
            if self.store.load_theme_blocks() is None:
                self.store.save_theme_blocks(create_default_theme_blocks())
                initialized['theme_blocks'] = True
        except PerswayError as e:
            logger.error('Failed to initialize default configuration: %s', e.message)
        return initialized

    def metafield_definitions_status(self) -> Dict[str, Any]:
        try:
            existing = self._existing_definitions()
        except PerswayError as e:
            return {
                'status': 'missing',
                'customer_behavior': False,
                'shop_audiences': False,
                'shop_theme_blocks': False,
                'details': f'Error checking metafield definitions: {e.message}',
            }

        checks = {
            'customer_behavior': ('Customer Behavior Data', CUSTOMER_METAFIELD_DEFINITIONS[0]),
            'shop_audiences': ('Shop Audience Config', SHOP_METAFIELD_DEFINITIONS[0]),
            'shop_theme_blocks': ('Shop Theme Blocks', SHOP_METAFIELD_DEFINITIONS[1]),
        }
        found = {
            name: _has_definition(existing[definition['ownerType']], definition)
            for name, (_, definition) in checks.items()
        }
        completed = sum(found.values())

        if completed == len(checks):
            status = 'complete'
            details = 'All metafield definitions are properly configured.'
        elif completed:
            status = 'partial'
            missing = ', '.join(label for name, (label, _) in checks.items() if not found[name])
            details = f'{completed}/{len(checks)} metafield definitions configured. Missing: {missing}'
        else:
            status = 'missing'
            details = 'No metafield definitions found.'

        return {'status': status, **found, 'details': details}

    def web_pixel_status(self) -> Dict[str, Any]:
        try:
            pixel = self.client.get_web_pixel()
        except PerswayError as e:
            return {'status': 'error', 'details': f'Error checking Web Pixel status: {e.message}'}
        if not pixel:
            return {'status': 'not_installed', 'details': 'Web Pixel is not installed.'}
        return {'status': 'installed', 'pixel_id': pixel['id'], 'details': 'Web Pixel is active.'}

    def get_status(self) -> Dict[str, Any]:
        definitions = self.metafield_definitions_status()
        pixel = self.web_pixel_status()

        progress = 0
        if definitions['status'] == 'complete':
            progress += 60
        elif definitions['status'] == 'partial':
            progress += 30
        if pixel['status'] == 'installed':
            progress += 40

        return {
            'metafield_definitions': definitions,
            'web_pixel': pixel,
            'overall_progress': progress,
            'ready_for_use': definitions['status'] == 'complete' and pixel['status'] == 'installed',
        }

    def install_web_pixel(self) -> Dict[str, Any]:
        existing = self.client.get_web_pixel()
        if existing:
            return {'success': True, 'pixel_id': existing['id'], 'already_installed': True}
        shop_domain = self.client.get_shop_domain()
        pixel = self.client.create_web_pixel({'accountID': f'persway-{shop_domain}'})
        logger.info('Installed web pixel %s for %s', pixel.get('id'), shop_domain)
        return {'success': True, 'pixel_id': pixel.get('id'), 'already_installed': False}
