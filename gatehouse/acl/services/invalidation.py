"""
Removal of cached authorization decisions after permission changes.

The gateway caches each user's full permission set. Whenever the graph
changes, entries of the users whose effective permissions may have changed
are deleted, so that their next request goes through the ACL again.
"""

from typing import Iterable

from ...auth.cache import current_store
from ...auth.exceptions import CacheUnavailable

import logging

logger = logging.getLogger(__name__)


def invalidate_users(usernames: Iterable[str]) -> int:
    """
    Delete the cache entries of every user in ``usernames``.

    Returns
    -------
    int
        Number of entries removed. A cache outage is logged and counts as
        nothing removed.

    """
    usernames = sorted(set(usernames))
    if not usernames:
        return 0
    store = current_store()
    removed = 0
    for username in usernames:
        try:
            removed += store.invalidate_user(username)
        except CacheUnavailable as e:
            logger.error('Could not invalidate cache for %s: %s',
                         username, e)
    logger.info('Invalidated %i cache entries for %i users', removed,
                len(usernames))
    return removed


def invalidate_all() -> int:
    """Delete every cache entry, e.g. after public flags changed."""
    try:
        removed = current_store().invalidate_all()
    except CacheUnavailable as e:
        logger.error('Could not invalidate cache: %s', e)
        return 0
    logger.info('Invalidated all %i cache entries', removed)
    return removed
