"""Provides an app factory for the issuer service."""

from typing import Optional

from flask import Flask

from ..app_logging import setup_logger
from ..errors import register_error_handlers
from . import routes, cli
from .services import users


def create_app(config: Optional[dict] = None) -> Flask:
    """Initialize an instance of the issuer service."""
    app = Flask('gatehouse.issuer')
    app.config.from_pyfile('config.py')
    if config:
        app.config.update(config)
    setup_logger(app.config.get('LOGLEVEL'))

    users.init_app(app)
    app.register_blueprint(routes.blueprint)
    app.cli.add_command(cli.create_db)
    app.cli.add_command(cli.create_user)
    register_error_handlers(app)

    if app.config['CREATE_DB']:
        with app.app_context():
            users.create_all()
    return app
