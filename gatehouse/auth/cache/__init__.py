"""Signed cache of authorization decisions."""

from .entry import CacheSigner, canonicalize, canonical_form, verify, \
    is_expired, DEFAULT_TTL
from .store import SignedCacheStore, init_app, get_cache_store, current_store
