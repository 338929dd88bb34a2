"""
Request controllers for the ACL service.

The ACL owns the group -> role -> permission graph. The gateway asks it
whether a user may call an API and which permissions the user holds;
administrators change the graph through the remaining endpoints, and every
change invalidates the gateway's cached decisions for the affected users.
"""

from typing import Any, Callable, Dict, List, Optional, Tuple

from werkzeug.exceptions import BadRequest, NotFound, Conflict

from .. import domain
from ..auth.exceptions import ConfigurationError
from ..manifest import apis_from_payload
from .services import datastore, invalidation, resolver

import logging

logger = logging.getLogger(__name__)

ResponseData = Tuple[dict, int, dict]


def _get_field(data: Any, field: str) -> str:
    if not isinstance(data, dict) or not data.get(field):
        raise BadRequest(f'Missing required field: {field}')
    value = data[field]
    if not isinstance(value, str):
        raise BadRequest(f'{field} must be a string')
    return value


def _get_names(data: Any, field: str) -> List[str]:
    if not isinstance(data, dict) or not isinstance(data.get(field), list):
        raise BadRequest(f'{field} must be a list')
    names = data[field]
    if not all(isinstance(name, str) for name in names):
        raise BadRequest(f'{field} must be a list of names')
    return names


def _result(result: domain.AssignmentResult) -> ResponseData:
    data = domain.to_dict(result)
    data['success'] = result.success
    return data, 200, {}


def _get_alias(data: Any, field: str, alias: str) -> Optional[str]:
    if not isinstance(data, dict):
        return None
    value = data.get(field) or data.get(alias)
    if value is not None and not isinstance(value, str):
        raise BadRequest(f'{field} must be a string')
    return value or None


def check(data: Any) -> ResponseData:
    """
    Decide whether a user may call an API.

    Parameters
    ----------
    data : dict
        ``username``, ``project`` and ``apiPath`` are required;
        ``httpMethod`` defaults to ``GET``. ``permissionName`` optionally
        selects among APIs that share a path. ``path``, ``method`` and
        ``permission`` are accepted in place of the last three.

    Returns
    -------
    dict
        ``hasPermission`` (also given as ``allowed``) plus the request
        parameters.
    int
        Status code. A denial is still a 200.
    dict
        Headers to add to the response.

    """
    username = _get_field(data, 'username')
    project = _get_field(data, 'project')
    path = _get_alias(data, 'apiPath', 'path')
    if path is None:
        raise BadRequest('Missing required field: apiPath')
    method = _get_alias(data, 'httpMethod', 'method') or 'GET'
    permission = _get_alias(data, 'permissionName', 'permission')
    allowed = resolver.check(username, project, path, method, permission)
    return {'hasPermission': allowed, 'allowed': allowed,
            'username': username, 'project': project, 'apiPath': path,
            'httpMethod': method.upper()}, 200, {}


def get_permissions(username: str) -> Tuple[list, int, dict]:
    """Get every permission held by a user, as a sorted list of names."""
    permissions = resolver.resolve_all_permissions(username)
    return sorted(permissions), 200, {}


def register_project(data: Any) -> ResponseData:
    """Create or update a project and the APIs it exposes."""
    name = _get_field(data, 'name')
    try:
        apis = apis_from_payload(name, data.get('apis') or [])
    except ConfigurationError as e:
        raise BadRequest(str(e)) from e
    try:
        count, public_changed = datastore.register_project(
            name,
            base_url=data.get('base_url', ''),
            version=data.get('version', ''),
            description=data.get('description', ''),
            apis=apis
        )
    except ValueError as e:
        raise BadRequest(str(e)) from e
    return {'project': name, 'registered': count,
            'publicChanged': public_changed}, 200, {}


def _create(create: Callable, data: Any, field: str, kind: str,
            **extra: Any) -> ResponseData:
    name = _get_field(data, field)
    try:
        create(name, **extra)
    except datastore.AlreadyExists as e:
        raise Conflict(f'{kind} {name} already exists') from e
    return {field: name}, 201, {}


def create_user(data: Any) -> ResponseData:
    """Register a principal with the ACL."""
    active = bool(data.get('active', True)) if isinstance(data, dict) \
        else True
    return _create(datastore.create_user, data, 'username', 'User',
                   active=active)


def create_group(data: Any) -> ResponseData:
    description = data.get('description', '') if isinstance(data, dict) \
        else ''
    return _create(datastore.create_group, data, 'name', 'Group',
                   description=description)


def create_role(data: Any) -> ResponseData:
    description = data.get('description', '') if isinstance(data, dict) \
        else ''
    return _create(datastore.create_role, data, 'name', 'Role',
                   description=description)


def update_role_permissions(role: str, data: Any) -> ResponseData:
    """Replace the permissions of a role."""
    permissions = _get_names(data, 'permissions')
    if datastore.role_permissions(role) is None:
        raise NotFound(f'No such role: {role}')
    return _result(datastore.update_role_permissions(role, permissions))


def update_group_roles(group: str, data: Any) -> ResponseData:
    """Replace the roles of a group."""
    roles = _get_names(data, 'roles')
    if datastore.group_roles(group) is None:
        raise NotFound(f'No such group: {group}')
    return _result(datastore.update_group_roles(group, roles))


def update_user_groups(username: str, data: Any) -> ResponseData:
    """Replace the groups of a user."""
    groups = _get_names(data, 'groups')
    if not datastore.user_exists(username):
        raise NotFound(f'No such user: {username}')
    return _result(datastore.update_user_groups(username, groups))


def get_group_roles(group: str) -> ResponseData:
    roles = datastore.group_roles(group)
    if roles is None:
        raise NotFound(f'No such group: {group}')
    return {'group': group, 'roles': roles}, 200, {}


def get_role_permissions(role: str) -> ResponseData:
    permissions = datastore.role_permissions(role)
    if permissions is None:
        raise NotFound(f'No such role: {role}')
    return {'role': role, 'permissions': permissions}, 200, {}


def get_user(username: str) -> ResponseData:
    principal = datastore.get_principal(username)
    if principal is None:
        raise NotFound(f'No such user: {username}')
    return domain.to_dict(principal), 200, {}


def _add_member(group: str, username: str) -> domain.AssignmentResult:
    return datastore.add_user_to_group(username, group)


def _remove_member(group: str, username: str) -> domain.AssignmentResult:
    return datastore.remove_user_from_group(username, group)


ASSIGNMENTS: Dict[Tuple[str, str], Callable[..., domain.AssignmentResult]] = {
    ('roles', 'PUT'): datastore.assign_role_to_group,
    ('roles', 'DELETE'): datastore.remove_role_from_group,
    ('permissions', 'PUT'): datastore.assign_permission_to_role,
    ('permissions', 'DELETE'): datastore.remove_permission_from_role,
    ('members', 'PUT'): _add_member,
    ('members', 'DELETE'): _remove_member,
}
"""Single-relation operations by (relation, HTTP method)."""


def assignment(relation: str, method: str, owner: str,
               name: str) -> ResponseData:
    """
    Grant or revoke a single relation of the graph.

    Unknown names are reported in ``missing`` with a 404, so that callers can
    tell which side of the relation was not found.
    """
    try:
        operation = ASSIGNMENTS[(relation, method)]
    except KeyError as e:
        raise NotFound(f'No such relation: {relation}') from e
    result = operation(owner, name)
    data, _, headers = _result(result)
    return data, 200 if result.success else 404, headers


def permission_changed(data: Any) -> ResponseData:
    """
    Invalidate cached decisions by hand.

    ``{"usernames": [...]}`` invalidates those users, ``{"all": true}``
    invalidates everyone.
    """
    if isinstance(data, dict) and data.get('all'):
        removed = invalidation.invalidate_all()
    else:
        removed = invalidation.invalidate_users(_get_names(data, 'usernames'))
    return {'invalidated': removed}, 200, {}
