"""
Installation API (embedded admin).

Endpoints:
    GET  /app/installation                    - setup progress
    POST /app/installation/setup-metafields   - create definitions and defaults
    POST /app/installation/install-pixel      - register the web pixel
"""
import logging
from flask import Blueprint, jsonify, g

from ..middleware.shopify_auth import require_shopify_auth
from ..services.installation_service import InstallationService

logger = logging.getLogger(__name__)

installation_bp = Blueprint('persway_installation', __name__)


def _service() -> InstallationService:
    return InstallationService(g.shopify_client, g.metafield_store)


@installation_bp.route('/installation', methods=['GET'])
@require_shopify_auth
def installation_status():
    status = _service().get_status()
    status['shop'] = g.shop_domain
    return jsonify(status)


@installation_bp.route('/installation/setup-metafields', methods=['POST'])
@require_shopify_auth
def setup_metafields():
    service = _service()
    result = service.setup_metafield_definitions()
    result['defaults_initialized'] = service.initialize_default_configuration()
    logger.info('Metafield setup for %s: success=%s', g.shop_domain, result['success'])
    return jsonify(result)


@installation_bp.route('/installation/install-pixel', methods=['POST'])
@require_shopify_auth
def install_pixel():
    return jsonify(_service().install_web_pixel())
