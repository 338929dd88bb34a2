"""Web Server Gateway Interface entry-point."""

from gatehouse.gateway.factory import create_app
import os

__flask_app__ = None


def application(environ, start_response):
    """WSGI application factory."""
    global __flask_app__
    for key, value in environ.items():
        if type(value) is str:
            os.environ[key] = value
    if __flask_app__ is None:
        __flask_app__ = create_app()
    return __flask_app__(environ, start_response)
