"""
Permission-based authorization of requests forwarded by the gateway.

This module provides :func:`scoped`, a decorator factory used by backend
services to protect Flask routes. The gateway has already authenticated the
request and attached ``X-Validated-Token``; the :class:`gatehouse.auth.Auth`
extension turns that header into a verified :class:`.SignedCacheEntry` on
``request.auth``. The decorator then checks that the entry carries the
required permission, and optionally calls an authorizer function with the
signature ``(entry: SignedCacheEntry, *args, **kwargs) -> bool``.

.. code-block:: python

   from gatehouse.auth.decorators import scoped


   def is_self(entry, username: str, **kwargs) -> bool:
       return entry.username == username


   @blueprint.route('/admin/<string:username>', methods=['GET'])
   @scoped('SERVICE1_ADMIN_ACCESS', authorizer=is_self)
   def admin(username: str):
       ...

"""

from typing import Optional, Callable, Any
from functools import wraps
from flask import request
from werkzeug.exceptions import Unauthorized, Forbidden

from .. import domain

import logging

logger = logging.getLogger(__name__)


def scoped(required: Optional[str] = None,
           authorizer: Optional[Callable] = None) -> Callable:
    """
    Generate a decorator to enforce authorization requirements.

    Parameters
    ----------
    required : str
        Name of the permission that the cached authorization decision must
        include. If not provided, any verified entry is accepted.
    authorizer : function
        Additional check, called with the entry and the route parameters.
        If it returns ``False``, :class:`Forbidden` is raised.

    Returns
    -------
    function

    """
    def protector(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            entry: Optional[domain.SignedCacheEntry] = \
                getattr(request, 'auth', None)
            if entry is None:
                logger.debug('No verified authorization; aborting')
                raise Unauthorized('Not a valid authorization')

            if required and not entry.has_permission(required):
                logger.debug('%s lacks %s', entry.username, required)
                raise Forbidden('Access denied')

            if authorizer and not authorizer(entry, *args, **kwargs):
                logger.debug('Authorizer returned negative result')
                raise Forbidden('Access denied')

            return func(*args, **kwargs)
        return wrapper
    return protector
