"""
Authorization decisions over the permission graph.

:func:`check` answers whether a user may call one API of a project;
:func:`resolve_all_permissions` gives the full set of permission names held
by a user, which the gateway snapshots into its signed cache.
"""

from typing import FrozenSet, Optional

from sqlalchemy.exc import SQLAlchemyError

from ... import domain
from ...manifest import ApiManifest
from . import datastore

import logging

logger = logging.getLogger(__name__)


def _resolve_api(project: str, path: str, method: str,
                 permission: Optional[str]) \
        -> Optional[domain.ApiPermission]:
    api = datastore.find_api(project, path, method, permission)
    if api is not None:
        return api
    # The path may be a concrete instance of a templated API path.
    apis = datastore.project_apis(project)
    if permission:
        apis = [a for a in apis if a.name == permission]
    if not apis:
        return None
    manifest = ApiManifest([], apis, prefixes={project: ''})
    return manifest.match(path, method)


def check(username: str, project: str, path: str, method: str,
          permission: Optional[str] = None) -> bool:
    """
    Decide whether ``username`` may call ``method path`` of ``project``.

    Public APIs are allowed for anyone, including unknown users. Otherwise
    the permission required by the API must be among those that the user
    holds through the groups and roles of the graph.

    This never raises: an unknown project, API or user, or a storage
    failure, is logged and results in a denial.
    """
    method = method.upper()
    try:
        if not datastore.get_project(project):
            logger.info('Denied %s %s %s: unknown project %s', username,
                        method, path, project)
            return False
        api = _resolve_api(project, path, method, permission)
        if api is None:
            logger.info('Denied %s %s %s: no such API in %s', username,
                        method, path, project)
            return False
        if api.is_public:
            return True
        if not username or not datastore.user_exists(username):
            logger.info('Denied %s %s: unknown user %s', method, path,
                        username)
            return False
        granted = api.name in datastore.user_permissions(username)
    except SQLAlchemyError as e:
        logger.error('Permission check failed for %s: %s', username, e)
        return False
    logger.debug('%s %s %s for %s: %s', method, path, api.name, username,
                 'granted' if granted else 'denied')
    return granted


def resolve_all_permissions(username: str) -> FrozenSet[str]:
    """Get every permission name held by ``username``."""
    return datastore.user_permissions(username)
