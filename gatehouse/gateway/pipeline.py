"""
The per-request authentication and authorization decision.

For each inbound request the gateway decides to forward it (with identity
headers) or to reject it with 401 or 403. The decision uses, in order:

1. the public paths, which are forwarded without identity;
2. the bearer token from the ``Authorization`` header;
3. the manifest, to find the permission that the request needs;
4. the signed cache of earlier decisions for the same token;
5. on a cache miss, the issuer (is the token valid?) and then the ACL (may
   the user call this API, and what else may they do?), after which a newly
   signed entry is cached.

Every failure closes: an unreachable issuer is a 401, an unreachable ACL is a
403, and a cache entry that fails verification is discarded.
"""

import re
from datetime import datetime
from typing import Dict, Iterable, NamedTuple, Optional, Union

from pytz import UTC

from .. import domain
from ..app_logging import redact
from ..auth import TOKEN_HEADER, USER_HEADER
from ..auth.cache import CacheSigner, SignedCacheStore, is_expired
from ..auth.exceptions import CacheTamper, CacheUnavailable, MissingToken, \
    UpstreamUnavailable
from ..manifest import ApiManifest

import logging

logger = logging.getLogger(__name__)

SOURCE_HEADER = 'X-Gateway-Source'
CACHE_HIT_HEADER = 'X-Cache-Hit'
EXPIRES_HEADER = 'X-Token-Expires'


class Forward(NamedTuple):
    """Let the request through, adding ``headers``."""

    headers: Dict[str, str]
    status: int = 200


class Reject(NamedTuple):
    """Refuse the request."""

    status: int
    reason: str


Decision = Union[Forward, Reject]


def extract_token(authorization: Optional[str]) -> str:
    """
    Get the bearer token from an ``Authorization`` header.

    The header must have exactly two parts, the first of which is ``Bearer``
    (in any case).

    Raises
    ------
    :class:`.MissingToken`

    """
    if not authorization:
        raise MissingToken('No authorization header')
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != 'bearer':
        raise MissingToken('Authorization header is malformed')
    return parts[1]


class AuthPipeline(object):
    """
    Decides whether to forward a request, and with which identity.

    Parameters
    ----------
    manifest : :class:`.ApiManifest`
        Permissions required per path and method.
    store : :class:`.SignedCacheStore`
    signer : :class:`.CacheSigner`
        Signs new entries and verifies cached ones.
    issuer : object
        Provides ``validate(token)``; see
        :class:`gatehouse.gateway.services.issuer.IssuerSession`.
    acl : object
        Provides ``check(...)`` and ``permissions(username)``; see
        :class:`gatehouse.gateway.services.acl.AclSession`.
    public_paths : iterable
        Regular expressions for paths that need no authentication.
    source : str
        Value of the ``X-Gateway-Source`` header.

    """

    def __init__(self, manifest: ApiManifest, store: SignedCacheStore,
                 signer: CacheSigner, issuer: object, acl: object,
                 public_paths: Iterable[Union[str, re.Pattern]] = (),
                 source: str = 'gatehouse') -> None:
        self.manifest = manifest
        self.store = store
        self.signer = signer
        self.issuer = issuer
        self.acl = acl
        self.public_paths = [re.compile(p) if isinstance(p, str) else p
                             for p in public_paths]
        self.source = source

    def is_public(self, path: str, method: str) -> bool:
        """Whether the request needs no authentication at all."""
        if any(pattern.search(path) for pattern in self.public_paths):
            return True
        return self.manifest.is_public(path, method)

    def decide(self, path: str, method: str,
               authorization: Optional[str]) -> Decision:
        """Decide what to do with a request."""
        method = method.upper()
        if self.is_public(path, method):
            logger.debug('%s %s is public', method, path)
            return Forward({})

        try:
            token = extract_token(authorization)
        except MissingToken as e:
            logger.info('%s %s: %s', method, path, e)
            return Reject(401, str(e))

        required = self.manifest.permission_for(path, method)
        entry = self._from_cache(token)
        if entry is not None:
            if entry.has_permission(required):
                logger.debug('Cache hit for %s, %s granted', redact(token),
                             required)
                return Forward(self._headers(entry, cache_hit=True))
            logger.info('Cache hit for %s, lacks %s', redact(token),
                        required)
            return Reject(403, 'Insufficient permissions')
        return self._authorize(token, path, method, required)

    def _from_cache(self, token: str) -> Optional[domain.SignedCacheEntry]:
        """Load a verified, unexpired entry; discard anything else."""
        try:
            entry = self.store.get(token)
        except CacheUnavailable as e:
            logger.warning('Cache read failed, treating as miss: %s', e)
            return None
        except CacheTamper as e:
            logger.warning('Discarding unreadable entry for %s: %s',
                           redact(token), e)
            self._discard(token)
            return None
        if entry is None:
            return None
        if entry.token != token or not self.signer.verify(entry):
            logger.warning('Cache entry for %s failed verification',
                           redact(token))
            self._discard(token)
            return None
        if is_expired(entry):
            logger.info('Cache entry for %s has expired', redact(token))
            self._discard(token)
            return None
        return entry

    def _discard(self, token: str) -> None:
        try:
            self.store.delete(token)
        except CacheUnavailable as e:
            logger.warning('Could not delete entry for %s: %s',
                           redact(token), e)

    def _authorize(self, token: str, path: str, method: str,
                   required: str) -> Decision:
        """Consult the issuer and the ACL, then cache the outcome."""
        try:
            validation = self.issuer.validate(token)    # type: ignore
        except UpstreamUnavailable as e:
            logger.error('Issuer unavailable: %s', e)
            return Reject(401, 'Could not validate token')
        if not validation.valid or not validation.username:
            logger.info('Invalid token %s', redact(token))
            return Reject(401, 'Invalid or expired token')
        username: str = validation.username
        now = datetime.now(tz=UTC)
        ttl = self._ttl(validation, now)
        if ttl <= 0:
            logger.info('Token %s for %s has expired', redact(token), username)
            return Reject(401, 'Invalid or expired token')

        if required == domain.UNMAPPED_PERMISSION:
            logger.info('%s %s is not in the manifest; denied to %s',
                        method, path, username)
            return Reject(403, 'Insufficient permissions')
        api = self.manifest.match(path, method)
        if api is None:     # Unreachable while the manifest is consistent.
            return Reject(403, 'Insufficient permissions')
        relative = path[len(self.manifest.prefix_for(api.project)):] or '/'
        try:
            allowed = self.acl.check(username, api.project,   # type: ignore
                                     relative, method, required)
            if not allowed:
                logger.info('ACL denied %s %s %s', username, method, path)
                return Reject(403, 'Insufficient permissions')
            permissions = self.acl.permissions(username)   # type: ignore
        except UpstreamUnavailable as e:
            logger.error('ACL unavailable: %s', e)
            return Reject(403, 'Could not check permissions')

        # The snapshot always includes the permission just granted.
        entry = self.signer.build(token, username,
                                  set(permissions) | {required}, ttl=ttl,
                                  now=now)
        try:
            self.store.set(entry)
        except CacheUnavailable as e:
            logger.warning('Could not cache decision for %s: %s', username, e)
        return Forward(self._headers(entry, cache_hit=False,
                                     expires_at=validation.expires_at))

    def _ttl(self, validation: domain.TokenValidation, now: datetime) -> int:
        """Seconds to cache a decision: never beyond the token's expiry."""
        ttl: int = self.signer.ttl
        if validation.expires_at is None:
            return ttl
        expires_at = validation.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        return min(ttl, int((expires_at - now).total_seconds()))

    def _headers(self, entry: domain.SignedCacheEntry, cache_hit: bool,
                 expires_at: Optional[datetime] = None) -> Dict[str, str]:
        headers = {
            USER_HEADER: entry.username,
            TOKEN_HEADER: entry.token,
            SOURCE_HEADER: self.source,
            CACHE_HIT_HEADER: 'true' if cache_hit else 'false'
        }
        if cache_hit:
            # Entries never outlive the token they were created for.
            expires_at = entry.expires_at
        if expires_at is not None:
            headers[EXPIRES_HEADER] = expires_at.isoformat()
        return headers
