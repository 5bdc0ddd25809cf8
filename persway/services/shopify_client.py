"""
Shopify Admin API client.
Handles metafield storage, metafield definitions and web pixel registration.
"""
import json
import httpx
from typing import Optional, Dict, Any, List

from ..utils.exceptions import MetafieldError, ShopifyError
from ..utils.rate_limiter import RateLimiter


GET_CUSTOMER_METAFIELD = """
query getCustomerMetafield($customerId: ID!, $namespace: String!, $key: String!) {
    customer(id: $customerId) {
        id
        metafield(namespace: $namespace, key: $key) {
            id
            value
            updatedAt
        }
    }
}
"""

GET_SHOP_METAFIELD = """
query getShopMetafield($namespace: String!, $key: String!) {
    shop {
        id
        metafield(namespace: $namespace, key: $key) {
            id
            value
            updatedAt
        }
    }
}
"""

SET_METAFIELDS = """
mutation metafieldsSet($metafields: [MetafieldsSetInput!]!) {
    metafieldsSet(metafields: $metafields) {
        metafields {
            id
            namespace
            key
            value
            updatedAt
        }
        userErrors {
            field
            message
            code
        }
    }
}
"""

GET_SHOP = """
query {
    shop {
        id
        myshopifyDomain
    }
}
"""

GET_METAFIELD_DEFINITIONS = """
query getMetafieldDefinitions($ownerType: MetafieldOwnerType!) {
    metafieldDefinitions(first: 50, ownerType: $ownerType) {
        edges {
            node {
                id
                namespace
                key
                name
                type {
                    name
                }
            }
        }
    }
}
"""

CREATE_METAFIELD_DEFINITION = """
mutation createMetafieldDefinition($definition: MetafieldDefinitionInput!) {
    metafieldDefinitionCreate(definition: $definition) {
        createdDefinition {
            id
            namespace
            key
            name
        }
        userErrors {
            field
            message
            code
        }
    }
}
"""

GET_WEB_PIXEL = """
query {
    webPixel {
        id
        settings
    }
}
"""

CREATE_WEB_PIXEL = """
mutation webPixelCreate($webPixel: WebPixelInput!) {
    webPixelCreate(webPixel: $webPixel) {
        webPixel {
            id
            settings
        }
        userErrors {
            field
            message
        }
    }
}
"""


def customer_gid(customer_id: str) -> str:
    """Convert a numeric customer ID to its GID form."""
    if str(customer_id).startswith('gid://'):
        return str(customer_id)
    return f'gid://shopify/Customer/{customer_id}'


class ShopifyClient:
    """
    Client for Shopify Admin GraphQL API.

    Supports:
    - Customer and shop JSON metafields (read / metafieldsSet)
    - Metafield definitions
    - Web pixel lookup and creation

    Every request passes through the injected RateLimiter; a full window
    raises RateLimitError instead of calling Shopify.
    """

    def __init__(self, shop_domain: str, access_token: str, api_version: str = '2024-10',
                 rate_limiter: RateLimiter = None):
        self.shop_domain = shop_domain.replace('https://', '').replace('http://', '').rstrip('/')
        self.access_token = access_token
        self.api_version = api_version
        self.rate_limiter = rate_limiter or RateLimiter()
        self.graphql_url = f'https://{self.shop_domain}/admin/api/{api_version}/graphql.json'
        self._shop_id = None

    @classmethod
    def for_shop(cls, shop, api_version: str = '2024-10', rate_limiter: RateLimiter = None) -> 'ShopifyClient':
        """Build a client from a Shop row."""
        if not shop.access_token:
            raise ShopifyError(f'Shop {shop.shop_domain} has no access token')
        return cls(shop.shop_domain, shop.access_token, api_version=api_version, rate_limiter=rate_limiter)

    def _execute_query(self, query: str, variables: Optional[Dict] = None) -> Dict[str, Any]:
        """Execute a GraphQL query."""
        self.rate_limiter.acquire()

        headers = {
            'X-Shopify-Access-Token': self.access_token,
            'Content-Type': 'application/json'
        }

        payload = {'query': query}
        if variables:
            payload['variables'] = variables

        try:
            with httpx.Client() as client:
                response = client.post(
                    self.graphql_url,
                    headers=headers,
                    json=payload,
                    timeout=30.0
                )
                response.raise_for_status()
                result = response.json()
        except httpx.HTTPError as e:
            raise ShopifyError(f'Request failed: {e}', original_error=e)

        if result.get('errors'):
            errors = result['errors']
            message = errors[0].get('message') if isinstance(errors, list) and errors else str(errors)
            raise MetafieldError(f'GraphQL error: {message}')

        return result.get('data') or {}

    # ==================== Metafields ====================

    def get_customer_metafield(self, customer_id: str, namespace: str, key: str) -> Optional[str]:
        """
        Read one customer metafield value.

        Returns:
            The raw metafield value string, or None when unset
        """
        data = self._execute_query(GET_CUSTOMER_METAFIELD, {
            'customerId': customer_gid(customer_id),
            'namespace': namespace,
            'key': key
        })
        metafield = (data.get('customer') or {}).get('metafield')
        return metafield.get('value') if metafield else None

    def get_shop_metafield(self, namespace: str, key: str) -> Optional[str]:
        data = self._execute_query(GET_SHOP_METAFIELD, {'namespace': namespace, 'key': key})
        shop = data.get('shop') or {}
        if shop.get('id'):
            self._shop_id = shop['id']
        metafield = shop.get('metafield')
        return metafield.get('value') if metafield else None

    def set_json_metafield(self, owner_id: str, namespace: str, key: str, value: Any) -> Dict[str, Any]:
        """
        Write a JSON metafield with metafieldsSet.

        Args:
            owner_id: Owner GID (customer or shop)
            namespace: Metafield namespace (e.g., '$app:persway_events')
            key: Metafield key
            value: JSON-serializable value

        Raises:
            MetafieldError: on GraphQL or user errors
        """
        data = self._execute_query(SET_METAFIELDS, {
            'metafields': [{
                'ownerId': owner_id,
                'namespace': namespace,
                'key': key,
                'value': json.dumps(value),
                'type': 'json'
            }]
        })
        result = data.get('metafieldsSet') or {}
        user_errors = result.get('userErrors') or []
        if user_errors:
            error = user_errors[0]
            raise MetafieldError(error.get('message', 'Metafield update failed'),
                                 error.get('code'), error.get('field'))
        metafields = result.get('metafields') or []
        return metafields[0] if metafields else {}

    def get_shop_id(self) -> str:
        """Shop GID, cached for the lifetime of the client."""
        if self._shop_id:
            return self._shop_id
        data = self._execute_query(GET_SHOP)
        shop = data.get('shop') or {}
        if not shop.get('id'):
            raise ShopifyError('Unable to resolve shop ID')
        self._shop_id = shop['id']
        return self._shop_id

    def get_shop_domain(self) -> str:
        data = self._execute_query(GET_SHOP)
        return (data.get('shop') or {}).get('myshopifyDomain') or self.shop_domain

    # ==================== Metafield Definitions ====================

    def get_metafield_definitions(self, owner_type: str) -> List[Dict[str, Any]]:
        """List metafield definitions for CUSTOMER or SHOP owners."""
        data = self._execute_query(GET_METAFIELD_DEFINITIONS, {'ownerType': owner_type})
        edges = (data.get('metafieldDefinitions') or {}).get('edges', [])
        return [edge.get('node', {}) for edge in edges]

    def create_metafield_definition(self, definition: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create one metafield definition.

        Returns:
            Dict with success flag and either the created definition or errors
        """
        data = self._execute_query(CREATE_METAFIELD_DEFINITION, {'definition': definition})
        result = data.get('metafieldDefinitionCreate') or {}
        user_errors = result.get('userErrors') or []
        if user_errors:
            return {
                'success': False,
                'errors': user_errors
            }
        return {
            'success': True,
            'definition': result.get('createdDefinition')
        }

    # ==================== Web Pixel ====================

    def get_web_pixel(self) -> Optional[Dict[str, Any]]:
        """Return the app's web pixel or None if not installed."""
        try:
            data = self._execute_query(GET_WEB_PIXEL)
        except MetafieldError:
            # Shopify answers with a GraphQL error when no pixel exists
            return None
        pixel = data.get('webPixel')
        return pixel if pixel and pixel.get('id') else None

    def create_web_pixel(self, settings: Dict[str, Any]) -> Dict[str, Any]:
        data = self._execute_query(CREATE_WEB_PIXEL, {
            'webPixel': {'settings': json.dumps(settings)}
        })
        result = data.get('webPixelCreate') or {}
        user_errors = result.get('userErrors') or []
        if user_errors:
            messages = ', '.join(e.get('message', '') for e in user_errors)
            raise ShopifyError(f'Failed to create Web Pixel: {messages}')
        return result.get('webPixel') or {}


