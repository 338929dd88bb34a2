"""
Redis-backed store for signed authorization cache entries.

Used by the gateway to cache decisions, by the ACL service to invalidate
them when the permission graph changes, and by backend services to look up
the entry behind a forwarded token.

Key layout:

- ``token:<token>``: JSON-serialized :class:`.SignedCacheEntry`, expiring
  with the entry.
- ``user_tokens:<username>``: set of tokens with live entries for the user.
- ``public_key:<service>``: PEM public key of a signing service.
"""

import json
from datetime import datetime
from functools import wraps
from typing import Any, Callable, Optional

import fakeredis
import redis
from redis.cluster import RedisCluster
from flask import current_app
from pytz import UTC

from ... import domain
from ...context import get_application_config, get_application_global
from ..exceptions import CacheTamper, CacheUnavailable
from ..keys import PUBLIC_KEY_TTL
from .entry import DEFAULT_TTL

import logging

logger = logging.getLogger(__name__)

TOKEN_PREFIX = 'token:'
USER_INDEX_PREFIX = 'user_tokens:'
PUBLIC_KEY_PREFIX = 'public_key:'


def _wrap_redis_errors(func: Callable) -> Callable:
    """Translate connection problems into :class:`.CacheUnavailable`."""
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except redis.exceptions.RedisError as e:
            raise CacheUnavailable(f'{func.__name__} failed: {e}') from e
    return wrapper


class SignedCacheStore(object):
    """
    Manages a connection to Redis.

    The client instance is thread safe and connections are attached at the
    time a command is executed. This class provides the key layout and
    (de)serialization of entries.
    """

    def __init__(self, host: str = 'localhost', port: int = 6379, db: int = 0,
                 cluster: bool = False, fake: bool = False,
                 ttl: int = DEFAULT_TTL,
                 client: Optional[Any] = None) -> None:
        """Open the connection to Redis."""
        self.ttl = ttl
        if client is not None:
            self.r = client
        elif fake:
            logger.debug('Using in-memory Redis')
            self.r = fakeredis.FakeStrictRedis(server=fakeredis.FakeServer(),
                                               decode_responses=True)
        elif cluster:
            logger.debug('New Redis cluster connection at %s, port %s',
                         host, port)
            self.r = RedisCluster(host=host, port=port,
                                  decode_responses=True)
        else:
            logger.debug('New Redis connection at %s, port %s', host, port)
            self.r = redis.StrictRedis(host=host, port=port, db=db,
                                       decode_responses=True)

    @staticmethod
    def token_key(token: str) -> str:
        return f'{TOKEN_PREFIX}{token}'

    @staticmethod
    def user_key(username: str) -> str:
        return f'{USER_INDEX_PREFIX}{username}'

    @_wrap_redis_errors
    def get(self, token: str) -> Optional[domain.SignedCacheEntry]:
        """
        Get the cache entry for a token.

        Returns
        -------
        :class:`.SignedCacheEntry` or None
            ``None`` if there is no entry for the token.

        Raises
        ------
        :class:`.CacheUnavailable`
            If Redis cannot be reached.
        :class:`.CacheTamper`
            If the stored value cannot be decoded as an entry.

        """
        raw = self.r.get(self.token_key(token))
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            entry: domain.SignedCacheEntry = \
                domain.from_dict(domain.SignedCacheEntry, data)
        except (ValueError, TypeError, KeyError, AttributeError,
                OverflowError) as e:
            raise CacheTamper(f'Malformed cache entry: {e}') from e
        return entry

    @_wrap_redis_errors
    def set(self, entry: domain.SignedCacheEntry,
            ttl: Optional[int] = None) -> None:
        """
        Store an entry, keyed by its token.

        The Redis TTL is ``ttl`` if given, otherwise the time left until the
        entry expires. Writing the same token again replaces the entry.
        """
        if ttl is None:
            remaining = entry.expires_at - datetime.now(tz=UTC)
            ttl = max(1, int(remaining.total_seconds()))
        payload = json.dumps(domain.to_dict(entry))
        self.r.set(self.token_key(entry.token), payload, ex=ttl)
        index = self.user_key(entry.username)
        self.r.sadd(index, entry.token)
        if (self.r.ttl(index) or 0) < ttl:
            self.r.expire(index, ttl)

    @_wrap_redis_errors
    def delete(self, token: str) -> None:
        """Remove the entry for a token, if any."""
        self.r.delete(self.token_key(token))

    @_wrap_redis_errors
    def invalidate_user(self, username: str) -> int:
        """
        Remove every entry belonging to a user.

        Returns
        -------
        int
            Number of entries removed.

        """
        index = self.user_key(username)
        tokens = self.r.smembers(index)
        removed = 0
        for token in tokens:
            removed += self.r.delete(self.token_key(token))
        self.r.delete(index)
        logger.debug('Removed %i cache entries for %s', removed, username)
        return removed

    @_wrap_redis_errors
    def invalidate_all(self) -> int:
        """Remove every cache entry and user index."""
        removed = 0
        for key in self.r.scan_iter(match=f'{TOKEN_PREFIX}*'):
            removed += self.r.delete(key)
        for key in self.r.scan_iter(match=f'{USER_INDEX_PREFIX}*'):
            self.r.delete(key)
        logger.debug('Removed %i cache entries', removed)
        return removed

    @_wrap_redis_errors
    def get_public_key(self, service: str) -> Optional[str]:
        pem: Optional[str] = self.r.get(f'{PUBLIC_KEY_PREFIX}{service}')
        return pem

    @_wrap_redis_errors
    def set_public_key(self, service: str, pem: str,
                       ttl: int = PUBLIC_KEY_TTL) -> None:
        self.r.set(f'{PUBLIC_KEY_PREFIX}{service}', pem, ex=ttl)

    @_wrap_redis_errors
    def delete_public_key(self, service: str) -> None:
        self.r.delete(f'{PUBLIC_KEY_PREFIX}{service}')


def _truthy(value: Any) -> bool:
    return str(value).lower() in ('1', 'true', 'yes', 'on')


def init_app(app: object = None) -> None:
    """Set default configuration parameters for an application instance."""
    config = get_application_config(app)
    config.setdefault('REDIS_HOST', 'localhost')
    config.setdefault('REDIS_PORT', '6379')
    config.setdefault('REDIS_DATABASE', '0')
    config.setdefault('REDIS_CLUSTER', '0')
    config.setdefault('REDIS_FAKE', '0')
    config.setdefault('CACHE_TTL', str(DEFAULT_TTL))


def get_cache_store(app: object = None) -> SignedCacheStore:
    """Get a new store, configured from the application."""
    config = get_application_config(app)
    return SignedCacheStore(
        host=config.get('REDIS_HOST', 'localhost'),
        port=int(config.get('REDIS_PORT', '6379')),
        db=int(config.get('REDIS_DATABASE', '0')),
        cluster=_truthy(config.get('REDIS_CLUSTER', '0')),
        fake=_truthy(config.get('REDIS_FAKE', '0')),
        ttl=int(config.get('CACHE_TTL', DEFAULT_TTL))
    )


def current_store() -> SignedCacheStore:
    """
    Get the :class:`.SignedCacheStore` for this context.

    An app that attached a store at ``app.extensions['gatehouse.cache']``
    shares that instance (so the in-memory store is shared when
    ``REDIS_FAKE`` is set); otherwise a store is created per app context.
    """
    g = get_application_global()
    if not g:
        return get_cache_store()
    shared = current_app.extensions.get('gatehouse.cache')
    if shared is not None:
        return shared   # type: ignore
    if 'cache_store' not in g:
        g.cache_store = get_cache_store()
    return g.cache_store    # type: ignore
