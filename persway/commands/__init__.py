"""
CLI Commands for Persway.

Usage:
    flask persway register-shop --shop example.myshopify.com --token shpat_...
    flask persway setup-metafields --shop example.myshopify.com
    flask persway show-profile --shop example.myshopify.com --customer 123
"""
from .persway import init_app as init_persway_commands


def init_app(app):
    """Register all CLI commands with the Flask app."""
    init_persway_commands(app)
