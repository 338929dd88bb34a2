"""Client for the ACL service."""

from functools import wraps
from typing import Any, FrozenSet, Iterable, Optional
from urllib.parse import quote

import requests
from flask import Flask

from ... import domain
from ...auth.exceptions import UpstreamUnavailable
from ...context import get_application_config, get_application_global
from ...manifest import api_to_dict

import logging

logger = logging.getLogger(__name__)


class AclSession(object):
    """An HTTP session with the ACL service."""

    def __init__(self, endpoint: str, timeout: float = 5.0) -> None:
        """Create a new HTTP session."""
        self.endpoint = endpoint.rstrip('/')
        self.timeout = timeout
        self._session = requests.Session()
        self._adapter = requests.adapters.HTTPAdapter(max_retries=2)
        self._session.mount('http://', self._adapter)
        self._session.mount('https://', self._adapter)
        logger.debug('New AclSession with endpoint %s', self.endpoint)

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = self._session.request(method,
                                             f'{self.endpoint}{path}',
                                             timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise UpstreamUnavailable(f'ACL unreachable: {e}') from e
        if not response.ok:
            raise UpstreamUnavailable(f'ACL responded with status'
                                      f' {response.status_code}')
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamUnavailable('Could not read ACL response') from e

    def status(self) -> bool:
        """Check the availability of the ACL service."""
        try:
            self._request('GET', '/acl/health')
        except UpstreamUnavailable:
            return False
        return True

    def check(self, username: str, project: str, path: str, method: str,
              permission: Optional[str] = None) -> bool:
        """
        Ask whether ``username`` may call ``method path`` of ``project``.

        Raises
        ------
        :class:`.UpstreamUnavailable`
            If the ACL could not be reached or gave an unreadable response.

        """
        payload = {'username': username, 'project': project, 'apiPath': path,
                   'httpMethod': method}
        if permission:
            payload['permissionName'] = permission
        data = self._request('POST', '/acl/check', json=payload)
        if not isinstance(data, dict):
            raise UpstreamUnavailable('Malformed check response from ACL')
        return data.get('hasPermission') is True

    def permissions(self, username: str) -> FrozenSet[str]:
        """Get every permission held by ``username``."""
        path = f'/acl/user/{quote(username, safe="")}/permissions'
        permissions = self._request('GET', path)
        if not isinstance(permissions, list) \
                or not all(isinstance(p, str) for p in permissions):
            raise UpstreamUnavailable('Malformed permissions from ACL')
        return frozenset(permissions)

    def register_project(self, project: domain.Project,
                         apis: Iterable[domain.ApiPermission]) -> dict:
        """Register a project and its APIs with the ACL."""
        payload = {'name': project.name, 'base_url': project.base_url,
                   'version': project.version,
                   'description': project.description,
                   'apis': [api_to_dict(api) for api in apis]}
        return self._request('POST', '/acl/projects/register', json=payload)


def init_app(app: Optional[Flask] = None) -> None:
    """Set required configuration defaults for the application."""
    config = get_application_config(app)
    config.setdefault('ACL_URL', 'http://localhost:8083')
    config.setdefault('UPSTREAM_TIMEOUT', '5')


def get_session(app: Optional[Flask] = None) -> AclSession:
    """Create a new ACL session."""
    config = get_application_config(app)
    return AclSession(config.get('ACL_URL', 'http://localhost:8083'),
                      timeout=float(config.get('UPSTREAM_TIMEOUT', 5)))


def current_session(app: Optional[Flask] = None) -> AclSession:
    """Get the ACL session for this context (if there is one)."""
    g = get_application_global()
    if g:
        if 'acl' not in g:
            g.acl = get_session(app)
        return g.acl    # type: ignore
    return get_session(app)


@wraps(AclSession.check)
def check(username: str, project: str, path: str, method: str,
          permission: Optional[str] = None) -> bool:
    """Wrapper for :meth:`AclSession.check`."""
    return current_session().check(username, project, path, method,
                                   permission)


@wraps(AclSession.permissions)
def permissions(username: str) -> FrozenSet[str]:
    """Wrapper for :meth:`AclSession.permissions`."""
    return current_session().permissions(username)
