"""
Declarative table of the APIs exposed through the gateway.

The manifest lists, per project, every API path and method together with the
permission required to call it. The gateway uses it to work out which
permission a request needs, and the same document is sent to the ACL service
to register each project's APIs.

A manifest is a JSON document of the form:

.. code-block:: json

   {"projects": [
       {"name": "service1",
        "prefix": "/service1",
        "base_url": "http://localhost:8082",
        "version": "1.0",
        "description": "Demo service",
        "apis": [
            {"path": "/app1/admin", "method": "GET",
             "permission": "SERVICE1_ADMIN_ACCESS", "critical": true},
            {"path": "/app1/public", "method": "GET",
             "permission": "SERVICE1_PUBLIC", "public": true}
        ]}
   ]}

API paths are relative to the project; the gateway sees them under the
project ``prefix`` (``/<name>`` by default). Paths may contain werkzeug
placeholders such as ``/items/<item_id>``.
"""

import json
import os
from urllib.parse import urlsplit
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from werkzeug.exceptions import HTTPException
from werkzeug.routing import Map, Rule, RequestRedirect

from .domain import ApiPermission, Project, UNMAPPED_PERMISSION
from .auth.exceptions import ConfigurationError

import logging

logger = logging.getLogger(__name__)


def _api_from_dict(project: str, data: dict) -> ApiPermission:
    try:
        path = data.get('path', data.get('api_path'))
        method = data.get('method', data.get('http_method', 'GET'))
        name = data.get('permission', data.get('name'))
        if not path or not name:
            raise KeyError('path and permission are required')
    except (AttributeError, KeyError) as e:
        raise ConfigurationError(f'Malformed API in {project}: {e}') from e
    if not path.startswith('/'):
        path = f'/{path}'
    return ApiPermission(
        name=name,
        project=project,
        api_path=path,
        http_method=method.upper(),
        is_public=bool(data.get('public', data.get('is_public', False))),
        is_critical=bool(data.get('critical',
                                  data.get('is_critical', False))),
        description=data.get('description', '')
    )


def api_to_dict(api: ApiPermission) -> dict:
    """Serialize an API in the manifest format."""
    return {
        'path': api.api_path,
        'method': api.http_method,
        'permission': api.name,
        'public': api.is_public,
        'critical': api.is_critical,
        'description': api.description
    }


def apis_from_payload(project: str, apis: Iterable[dict]) \
        -> List[ApiPermission]:
    """Parse the ``apis`` list of a project in the manifest format."""
    return [_api_from_dict(project, api) for api in apis]


class ApiManifest(object):
    """Maps gateway paths to the permissions they require."""

    def __init__(self, projects: Iterable[Project] = (),
                 apis: Iterable[ApiPermission] = (),
                 prefixes: Optional[Dict[str, str]] = None) -> None:
        self.projects: Dict[str, Project] = {p.name: p for p in projects}
        self.apis: List[ApiPermission] = list(apis)
        self.prefixes: Dict[str, str] = dict(prefixes or {})
        for api in self.apis:
            if api.project not in self.projects:
                self.projects[api.project] = Project(name=api.project)

        rules = []
        for index, api in enumerate(self.apis):
            rules.append(Rule(self.prefix_for(api.project) + api.api_path,
                              methods=[api.http_method], endpoint=str(index)))
        self._map = Map(rules, strict_slashes=False)
        self._adapter = self._map.bind('gateway')

    def prefix_for(self, project: str) -> str:
        """Get the gateway path prefix under which a project is exposed."""
        return self.prefixes.get(project, f'/{project}').rstrip('/')

    def match(self, path: str, method: str) -> Optional[ApiPermission]:
        """Find the API that handles ``method`` on ``path``, if any."""
        try:
            endpoint, _ = self._adapter.match(path, method=method.upper())
        except RequestRedirect as e:
            # Trailing-slash variants of a declared path.
            return self.match(urlsplit(e.new_url).path, method)
        except HTTPException:      # NotFound, MethodNotAllowed.
            return None
        api: ApiPermission = self.apis[int(endpoint)]
        return api

    def permission_for(self, path: str, method: str) -> str:
        """
        Get the permission required for a request.

        Paths that are not declared require :data:`.UNMAPPED_PERMISSION`.
        """
        api = self.match(path, method)
        if api is None:
            return UNMAPPED_PERMISSION
        return api.name

    def is_public(self, path: str, method: str) -> bool:
        """Whether a request targets an API declared as public."""
        api = self.match(path, method)
        return api is not None and api.is_public

    def for_project(self, project: str) -> List[ApiPermission]:
        return [api for api in self.apis if api.project == project]

    def registrations(self) -> List[Tuple[Project, List[ApiPermission]]]:
        """Projects with their APIs, as registered with the ACL."""
        return [(project, self.for_project(name))
                for name, project in self.projects.items()]

    @classmethod
    def from_dict(cls, data: dict) -> 'ApiManifest':
        """Build a manifest from its JSON representation."""
        projects, apis, prefixes = [], [], {}
        for item in data.get('projects', []):
            if 'name' not in item:
                raise ConfigurationError('Manifest project without a name')
            name = item['name']
            projects.append(Project(
                name=name,
                base_url=item.get('base_url', ''),
                version=item.get('version', ''),
                description=item.get('description', '')
            ))
            if 'prefix' in item:
                prefixes[name] = item['prefix']
            apis.extend(apis_from_payload(name, item.get('apis', [])))
        return cls(projects, apis, prefixes)

    @classmethod
    def load(cls, source: Union[None, str, dict, 'ApiManifest']) \
            -> 'ApiManifest':
        """
        Load a manifest from configuration.

        ``source`` may be a manifest, a dict in the manifest format, a path
        to a JSON file, or a JSON string. ``None`` or an empty value gives an
        empty manifest, in which every path is unmapped.
        """
        if source is None or source == '':
            return cls()
        if isinstance(source, ApiManifest):
            return source
        if isinstance(source, dict):
            return cls.from_dict(source)
        try:
            if os.path.exists(source):
                with open(source) as f:
                    data: Any = json.load(f)
            else:
                data = json.loads(source)
        except (OSError, ValueError) as e:
            raise ConfigurationError(f'Could not load manifest: {e}') from e
        logger.debug('Loaded API manifest')
        return cls.from_dict(data)
