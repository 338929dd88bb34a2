"""
Forwarding of authorized requests to backend services.

Backends are found through a static route table that maps gateway path
prefixes to base URLs. The prefix is stripped before forwarding, so
``/service1/app1/hello`` with the route ``/service1 ->
http://localhost:8082`` becomes ``http://localhost:8082/app1/hello``.
"""

import json
from typing import Dict, Mapping, Optional, Tuple, Union

import requests
from flask import Flask

from ...auth.exceptions import ConfigurationError, UpstreamUnavailable
from ...context import get_application_config

import logging

logger = logging.getLogger(__name__)

HOP_BY_HOP = frozenset({
    'connection', 'keep-alive', 'proxy-authenticate', 'proxy-authorization',
    'te', 'trailers', 'transfer-encoding', 'upgrade', 'host',
    'content-length', 'content-encoding'
})
"""Headers that apply to a single connection and are never forwarded."""


class RouteTable(object):
    """Maps gateway path prefixes to backend base URLs."""

    def __init__(self, routes: Mapping[str, str]) -> None:
        self.routes: Dict[str, str] = {
            '/' + prefix.strip('/'): base_url.rstrip('/')
            for prefix, base_url in routes.items()
        }

    def resolve(self, path: str) -> Optional[Tuple[str, str]]:
        """
        Find the backend for a path.

        The longest matching prefix wins; a prefix matches only on a path
        segment boundary.

        Returns
        -------
        tuple or None
            The backend base URL and the path with the prefix stripped, or
            ``None`` if no route matches.

        """
        for prefix in sorted(self.routes, key=len, reverse=True):
            if path == prefix or path.startswith(prefix + '/'):
                return self.routes[prefix], path[len(prefix):] or '/'
        return None

    @classmethod
    def load(cls, source: Union[None, str, Mapping[str, str]]) \
            -> 'RouteTable':
        """Load the route table from a dict or a JSON string."""
        if not source:
            return cls({})
        if isinstance(source, str):
            try:
                source = json.loads(source)
            except ValueError as e:
                raise ConfigurationError(f'ROUTES is not valid JSON: {e}') \
                    from e
        if not isinstance(source, Mapping):
            raise ConfigurationError('ROUTES must map prefixes to URLs')
        return cls(source)


def forward(base_url: str, path: str, method: str,
            headers: Mapping[str, str], query: str = '',
            body: Optional[bytes] = None,
            timeout: float = 30.0) -> requests.Response:
    """
    Send a request to a backend.

    Raises
    ------
    :class:`.UpstreamUnavailable`
        If the backend could not be reached or timed out.

    """
    url = f'{base_url}{path}'
    if query:
        url = f'{url}?{query}'
    outbound = {key: value for key, value in headers.items()
                if key.lower() not in HOP_BY_HOP}
    try:
        response = requests.request(method, url, headers=outbound, data=body,
                                    timeout=timeout, allow_redirects=False)
    except requests.exceptions.RequestException as e:
        raise UpstreamUnavailable(f'Backend {base_url} unreachable: {e}') \
            from e
    logger.debug('%s %s -> %i', method, url, response.status_code)
    return response


def response_headers(response: requests.Response) -> Dict[str, str]:
    """Headers of a backend response that may be passed back to the client."""
    return {key: value for key, value in response.headers.items()
            if key.lower() not in HOP_BY_HOP}


def init_app(app: Optional[Flask] = None) -> None:
    """Set required configuration defaults for the application."""
    config = get_application_config(app)
    config.setdefault('ROUTES', {})
    config.setdefault('PROXY_TIMEOUT', '30')
