"""
Middleware package for Persway.
"""
from .shopify_auth import (
    require_shopify_auth,
    get_shop_from_request,
    load_shop_context,
    client_for_shop,
)
