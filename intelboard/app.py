"""
IntelBoard Flask Application.

Main entry point for the web application. Initializes:
- Shared TTL cache and its background sweeper
- API routes and health check

Usage:
    python -m intelboard.app

Or with gunicorn:
    gunicorn 'intelboard.app:create_app()'
"""

import atexit
import logging
import os
from typing import Optional

from flask import Flask
from flask_cors import CORS

from intelboard.api import intel_bp, status_bp
from intelboard.cache import CacheStore
from intelboard.config import AppConfig, config as default_config

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if default_config.debug else logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S',
)
logger = logging.getLogger(__name__)


def create_app(
    config: Optional[AppConfig] = None,
    cache: Optional[CacheStore] = None,
    start_sweeper: bool = True,
) -> Flask:
    """
    Application factory for Flask.

    Args:
        config: Application configuration (loaded from environment if None).
        cache: Cache store to inject. A new one is created if None.
        start_sweeper: Whether to start the periodic cache sweep.
                       Set to False for testing.

    Returns:
        Configured Flask application instance.
    """
    config = config or default_config

    app = Flask(__name__)

    app.config['SECRET_KEY'] = config.secret_key
    app.config['INTEL_CONFIG'] = config

    # Enable CORS for API endpoints
    CORS(app, resources={r'/api/*': {'origins': '*'}})

    # One cache per process, shared by every request handler
    if cache is None:
        cache = CacheStore(sweep_interval=config.cache.sweep_interval_seconds)
    app.extensions['intel_cache'] = cache

    if start_sweeper:
        cache.start()
        atexit.register(cache.stop)

    app.register_blueprint(intel_bp)
    app.register_blueprint(status_bp)

    enabled = config.features.enabled_sources()
    if enabled:
        logger.info(f'Intel sources enabled: {", ".join(enabled)}')
    else:
        logger.warning('No intel sources enabled. Set PUBLIC_FEATURE_INTEL_SOURCES=true and panel flags in .env')

    @app.route('/health')
    def health():
        """Simple health check endpoint."""
        return {'status': 'ok'}

    # -------------------------------------------------------------------------
    # Error handlers
    # -------------------------------------------------------------------------

    @app.errorhandler(404)
    def not_found(e):
        return {'error': 'Not found'}, 404

    @app.errorhandler(500)
    def server_error(e):
        logger.error(f'Server error: {e}')
        return {'error': 'Internal server error'}, 500

    return app


def run_development_server():
    """Run the development server."""
    app = create_app()

    port = int(os.environ.get('PORT', 5000))

    logger.info(f'Starting IntelBoard on http://localhost:{port}')

    app.run(
        host='0.0.0.0',
        port=port,
        debug=default_config.debug,
        threaded=True,
        use_reloader=False,  # Disable reloader to prevent a duplicate sweeper thread
    )


if __name__ == '__main__':
    run_development_server()
