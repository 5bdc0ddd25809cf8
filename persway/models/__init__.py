"""
Database models for Persway.
Customer behavior data is stored in Shopify metafields; the database only
tracks installed shops.
"""
from .shop import Shop
