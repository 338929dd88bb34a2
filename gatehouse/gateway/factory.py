"""Provides an app factory for the gateway."""

from typing import Optional

from flask import Flask

from ..app_logging import setup_logger
from ..auth import cache
from ..auth.keys import PUBLIC_KEY_TTL
from ..errors import register_error_handlers
from ..manifest import ApiManifest
from . import routes, cli, controllers
from .services import issuer, acl, proxy


def create_app(config: Optional[dict] = None) -> Flask:
    """Initialize an instance of the gateway."""
    app = Flask('gatehouse.gateway')
    app.config.from_pyfile('config.py')
    if config:
        app.config.update(config)
    setup_logger(app.config.get('LOGLEVEL'))
    app.config.setdefault('PUBLIC_KEY_TTL', str(PUBLIC_KEY_TTL))

    cache.init_app(app)
    app.extensions['gatehouse.cache'] = cache.get_cache_store(app)
    issuer.init_app(app)
    acl.init_app(app)
    proxy.init_app(app)

    app.extensions[controllers.MANIFEST_EXTENSION] = \
        ApiManifest.load(app.config['API_MANIFEST'])
    app.extensions[controllers.ROUTES_EXTENSION] = \
        proxy.RouteTable.load(app.config['ROUTES'])

    app.register_blueprint(routes.blueprint)
    app.cli.add_command(cli.register_manifest)
    register_error_handlers(app)
    return app
