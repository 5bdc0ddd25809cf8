"""
CLI Commands for Persway administration.

# Create metafield definitions and default configuration for one shop
flask persway setup-metafields --shop=example.myshopify.com

# Dump a customer's behavior profile
flask persway show-profile --shop=example.myshopify.com --customer=123

# Register a shop's offline access token
flask persway register-shop --shop=example.myshopify.com --token=shpat_...
"""
import json

import click
from flask import current_app
from flask.cli import with_appcontext

from ..extensions import db
from ..models import Shop
from ..services.installation_service import InstallationService
from ..services.metafield_store import MetafieldStore
from ..services.shopify_client import ShopifyClient
from ..utils.exceptions import PerswayError


def _client_for(shop_domain: str) -> ShopifyClient:
    shop = Shop.query.filter_by(shop_domain=shop_domain).first()
    if not shop or not shop.has_api_access:
        raise click.ClickException(f'Shop {shop_domain} is not installed')
    return ShopifyClient.for_shop(
        shop,
        api_version=current_app.config.get('SHOPIFY_API_VERSION', '2024-10'),
        rate_limiter=current_app.extensions['persway_rate_limiter'],
    )


@click.group('persway')
def persway_cli():
    """Persway administration commands."""
    pass


@persway_cli.command('register-shop')
@click.option('--shop', 'shop_domain', required=True, help='myshopify.com domain')
@click.option('--token', required=True, help='Offline Admin API access token')
@click.option('--scope', default='', help='Granted scopes')
@with_appcontext
def register_shop(shop_domain, token, scope):
    """Create or update a shop and its access token."""
    shop = Shop.query.filter_by(shop_domain=shop_domain).first()
    if not shop:
        shop = Shop(shop_domain=shop_domain)
        db.session.add(shop)
    shop.access_token = token
    shop.scope = scope or shop.scope
    shop.is_active = True
    shop.uninstalled_at = None
    db.session.commit()
    click.echo(f'Registered {shop_domain}')


@persway_cli.command('setup-metafields')
@click.option('--shop', 'shop_domain', required=True, help='myshopify.com domain')
@with_appcontext
def setup_metafields(shop_domain):
    """Create metafield definitions and seed default configuration."""
    client = _client_for(shop_domain)
    service = InstallationService(client, MetafieldStore.from_config(client, current_app.config))

    try:
        result = service.setup_metafield_definitions()
    except PerswayError as e:
        raise click.ClickException(e.message)

    for row in result['results']:
        if row.get('skipped'):
            status = 'exists'
        elif row['success']:
            status = 'created'
        else:
            status = f"FAILED: {row.get('error')}"
        click.echo(f"  {row['definition']}: {status}")

    defaults = service.initialize_default_configuration()
    click.echo(f"Defaults initialized: audiences={defaults['audiences']}, "
               f"theme_blocks={defaults['theme_blocks']}")


@persway_cli.command('show-profile')
@click.option('--shop', 'shop_domain', required=True, help='myshopify.com domain')
@click.option('--customer', 'customer_id', required=True, help='Customer ID or GID')
@with_appcontext
def show_profile(shop_domain, customer_id):
    """Print a customer's behavior profile as JSON."""
    client = _client_for(shop_domain)
    store = MetafieldStore.from_config(client, current_app.config)

    try:
        profile = store.load_behavior_data(customer_id)
    except PerswayError as e:
        raise click.ClickException(e.message)

    if profile is None:
        click.echo(f'No behavior data for customer {customer_id}')
        return
    click.echo(json.dumps(profile, indent=2))


def init_app(app):
    """Register CLI commands."""
    app.cli.add_command(persway_cli)
