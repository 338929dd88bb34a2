"""Tools for backend services that sit behind the gateway."""

from typing import Optional

from flask import Flask, request, current_app

from . import cache, decorators, exceptions, keys, tokens
from .. import domain
from ..app_logging import redact

import logging

logger = logging.getLogger(__name__)

TOKEN_HEADER = 'X-Validated-Token'
USER_HEADER = 'X-Authenticated-User'


class Auth(object):
    """
    Attaches the gateway's authorization decision to the request.

    Intended for use in a Flask application factory, for example:

    .. code-block:: python

       from flask import Flask
       from gatehouse.auth import Auth
       from someapp import routes


       def create_web_app() -> Flask:
           app = Flask('someapp')
           app.config.from_pyfile('config.py')
           Auth(app)
           app.register_blueprint(routes.blueprint)
           return app

    The gateway public key is fetched from ``GATEWAY_PUBLIC_KEY_URL`` and
    cached. Routes are protected with :func:`.decorators.scoped`.
    """

    def __init__(self, app: Optional[Flask] = None) -> None:
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        """Attach :meth:`.load_entry` to the Flask app."""
        self.app = app
        cache.init_app(app)
        app.config.setdefault('GATEWAY_PUBLIC_KEY_URL',
                              'http://localhost:8080/gateway/public-key')
        app.config.setdefault('PUBLIC_KEY_TTL', str(keys.PUBLIC_KEY_TTL))
        app.extensions.setdefault('gatehouse.cache',
                                  cache.get_cache_store(app))
        app.extensions['gatehouse.keyring'] = keys.PublicKeyRing(
            'gateway',
            app.config['GATEWAY_PUBLIC_KEY_URL'],
            store=app.extensions['gatehouse.cache'],
            ttl=int(app.config['PUBLIC_KEY_TTL'])
        )
        app.before_request(self.load_entry)

    def load_entry(self) -> None:
        """
        Look up and verify the cache entry behind the forwarded token.

        On success the entry is attached as ``request.auth``. Anything that
        prevents verification leaves ``request.auth`` as ``None``, which
        :func:`.decorators.scoped` rejects.
        """
        request.auth = None
        token = request.headers.get(TOKEN_HEADER)
        if not token:
            return
        try:
            entry = cache.current_store().get(token)
        except (exceptions.CacheUnavailable, exceptions.CacheTamper) as e:
            logger.warning('Could not load entry for %s: %s', redact(token), e)
            return
        if entry is None:
            logger.debug('No cache entry for %s', redact(token))
            return

        if entry.token != token:
            logger.warning('Cache entry under %s belongs to another token',
                           redact(token))
            return
        if not self._verify(entry):
            logger.warning('Cache entry for %s failed verification',
                           redact(token))
            return
        if cache.is_expired(entry):
            logger.debug('Cache entry for %s has expired', redact(token))
            return
        forwarded_user = request.headers.get(USER_HEADER)
        if forwarded_user and forwarded_user != entry.username:
            logger.warning('Forwarded user does not match cache entry')
            return
        request.auth = entry

    def _verify(self, entry: domain.SignedCacheEntry) -> bool:
        ring: keys.PublicKeyRing = current_app.extensions['gatehouse.keyring']
        try:
            if cache.verify(entry, ring.get()):
                return True
            # The gateway may have rotated its keys since we cached one.
            return cache.verify(entry, ring.refresh())
        except exceptions.KeyUnavailable as e:
            logger.error('Gateway public key unavailable: %s', e)
            return False
