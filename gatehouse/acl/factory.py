"""Provides an app factory for the ACL service."""

from typing import Optional

from flask import Flask

from ..app_logging import setup_logger
from ..auth import cache
from ..errors import register_error_handlers
from . import routes, cli
from .services import datastore


def create_app(config: Optional[dict] = None) -> Flask:
    """Initialize an instance of the ACL service."""
    app = Flask('gatehouse.acl')
    app.config.from_pyfile('config.py')
    if config:
        app.config.update(config)
    setup_logger(app.config.get('LOGLEVEL'))

    datastore.init_app(app)
    cache.init_app(app)
    app.extensions['gatehouse.cache'] = cache.get_cache_store(app)

    app.register_blueprint(routes.blueprint)
    app.cli.add_command(cli.create_db)
    app.cli.add_command(cli.seed)
    register_error_handlers(app)

    if app.config['CREATE_DB']:
        with app.app_context():
            datastore.create_all()
    return app
