"""
System status API endpoints.

Provides endpoints for:
- GET /api/status - Cache statistics and source configuration
- POST /api/status/cache/clear - Drop every cached feed
- DELETE /api/status/cache/<key> - Drop one cached feed
"""

import logging
from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify

logger = logging.getLogger(__name__)

status_bp = Blueprint('status', __name__, url_prefix='/api/status')


@status_bp.route('', methods=['GET'])
def get_system_status():
    """
    Get system status information.

    Returns:
    - Cache statistics and sweeper state
    - Enabled intel panels
    - Which credentialed sources are configured
    """
    cfg = current_app.config['INTEL_CONFIG']
    cache = current_app.extensions['intel_cache']

    return jsonify({
        'cache': {
            **cache.stats(),
            'sweeper_running': cache.is_running,
            'sweep_interval_seconds': cache.sweep_interval,
        },
        'features': {
            'intel_sources': cfg.features.intel_sources,
            'enabled': cfg.features.enabled_sources(),
        },
        'sources': {
            'opensky_authenticated': cfg.opensky.is_authenticated,
            'shodan_configured': cfg.shodan.is_configured,
            'wigle_configured': cfg.wigle.is_configured,
        },
        'http': {
            'timeout_ms': cfg.http.timeout_ms,
        },
        'timestamp': datetime.now(timezone.utc).isoformat(),
    })


@status_bp.route('/cache/clear', methods=['POST'])
def clear_cache():
    """Drop every cached entry; the next poll of each feed refetches."""
    cache = current_app.extensions['intel_cache']
    removed = cache.stats()['size']
    cache.clear()
    logger.info(f'Cache cleared ({removed} entries)')
    return jsonify({'success': True, 'removed': removed})


@status_bp.route('/cache/<path:key>', methods=['DELETE'])
def invalidate_cache_key(key: str):
    """Drop one cache entry. Succeeds whether or not the key exists."""
    cache = current_app.extensions['intel_cache']
    cache.invalidate(key)
    logger.info(f'Cache entry invalidated: {key}')
    return jsonify({'success': True, 'key': key})
