"""
Signing and verification of authorization cache entries.

An entry is reduced to a canonical string, a compact JSON array::

    ["token","username",["perm_a","perm_b"],"issued_at","expires_at"]

where permissions are deduplicated and sorted, and timestamps are ISO-8601 in
UTC. JSON quoting keeps field boundaries unambiguous whatever characters the
names contain. The gateway signs that string with its RSA private key
(RSASSA-PKCS1-v1_5 over SHA-256) and stores the base64-encoded signature on
the entry. Anyone holding the gateway public key can check that an entry was
produced by the gateway and has not been altered since.
"""

import base64
import binascii
import json
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding
from pytz import UTC

from ...domain import SignedCacheEntry
from ..keys import KeyMaterial, PublicKey

import logging

logger = logging.getLogger(__name__)

DEFAULT_TTL = 1800      # 30 minutes.


def _timestamp(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC).isoformat()


def normalize_permissions(permissions: Iterable[str]) -> tuple:
    """Deduplicate and sort permission names."""
    return tuple(sorted(set(permissions)))


def canonicalize(token: str, username: str, permissions: Iterable[str],
                 issued_at: datetime, expires_at: datetime) -> str:
    """Generate the string that is signed for a cache entry."""
    return json.dumps([
        token,
        username,
        list(normalize_permissions(permissions)),
        _timestamp(issued_at),
        _timestamp(expires_at)
    ], separators=(',', ':'))


def canonical_form(entry: SignedCacheEntry) -> str:
    """Canonical string for an existing entry."""
    return canonicalize(entry.token, entry.username, entry.permissions,
                        entry.issued_at, entry.expires_at)


def verify(entry: SignedCacheEntry, public_key: PublicKey) -> bool:
    """
    Check the signature on a cache entry.

    Returns ``False`` (rather than raising) for a missing, malformed or
    non-matching signature.
    """
    if not entry.signature:
        return False
    try:
        signature = base64.b64decode(entry.signature, validate=True)
    except (binascii.Error, ValueError, TypeError):
        logger.debug('Cache entry signature is not valid base64')
        return False
    try:
        message = canonical_form(entry).encode('utf-8')
    except (TypeError, ValueError) as e:
        logger.debug('Cache entry has malformed fields: %s', e)
        return False
    try:
        public_key.verify(signature, message, padding.PKCS1v15(),
                          hashes.SHA256())
    except InvalidSignature:
        return False
    return True


def is_expired(entry: SignedCacheEntry,
               now: Optional[datetime] = None) -> bool:
    """An entry is expired at and after its ``expires_at`` moment."""
    if now is None:
        now = datetime.now(tz=UTC)
    return now >= entry.expires_at


class CacheSigner(object):
    """Produces signed cache entries with the gateway's private key."""

    def __init__(self, keys: KeyMaterial, ttl: int = DEFAULT_TTL) -> None:
        self.keys = keys
        self.ttl = ttl

    def sign(self, message: str) -> str:
        """Sign ``message`` and return the base64-encoded signature."""
        signature = self.keys.private_key.sign(message.encode('utf-8'),
                                               padding.PKCS1v15(),
                                               hashes.SHA256())
        return base64.b64encode(signature).decode('ascii')

    def build(self, token: str, username: str, permissions: Iterable[str],
              ttl: Optional[int] = None,
              now: Optional[datetime] = None) -> SignedCacheEntry:
        """
        Create a new signed entry for an authorization decision.

        Parameters
        ----------
        token : str
            The validated bearer token.
        username : str
        permissions : iterable
            Every permission held by the user. Duplicates are dropped.
        ttl : int
            Lifetime of the entry in seconds. Defaults to the signer's TTL.
        now : :class:`datetime`
            Issue time; defaults to the current time.

        Returns
        -------
        :class:`.SignedCacheEntry`

        """
        if now is None:
            now = datetime.now(tz=UTC)
        issued_at = now.astimezone(UTC).replace(microsecond=0)
        expires_at = issued_at + timedelta(seconds=ttl or self.ttl)
        entry = SignedCacheEntry(
            token=token,
            username=username,
            permissions=normalize_permissions(permissions),
            issued_at=issued_at,
            expires_at=expires_at
        )
        return entry._replace(signature=self.sign(canonical_form(entry)))

    def replace(self, entry: SignedCacheEntry,
                **changes: Any) -> SignedCacheEntry:
        """Derive a new entry with ``changes`` applied, and re-sign it."""
        changes.pop('signature', None)
        if 'permissions' in changes:
            changes['permissions'] = \
                normalize_permissions(changes['permissions'])
        updated = entry._replace(**changes)
        return updated._replace(signature=self.sign(canonical_form(updated)))

    def verify(self, entry: SignedCacheEntry) -> bool:
        """Verify ``entry`` against this signer's own public key."""
        return verify(entry, self.keys.public_key)
