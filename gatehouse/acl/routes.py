"""HTTP routes for the ACL service."""

from flask import Blueprint, request, jsonify, Response

from . import controllers

blueprint = Blueprint('acl', __name__, url_prefix='/acl')


def _json() -> object:
    return request.get_json(force=True, silent=True)


@blueprint.route('/check', methods=['POST'])
def check() -> Response:
    """Decide whether a user may call an API."""
    data, code, headers = controllers.check(_json())
    return jsonify(data), code, headers


@blueprint.route('/user/<username>/permissions', methods=['GET'])
def get_permissions(username: str) -> Response:
    """Get every permission held by a user."""
    data, code, headers = controllers.get_permissions(username)
    return jsonify(data), code, headers


@blueprint.route('/projects/register', methods=['POST'])
def register_project() -> Response:
    """Register a project and its APIs."""
    data, code, headers = controllers.register_project(_json())
    return jsonify(data), code, headers


@blueprint.route('/users', methods=['POST'])
def create_user() -> Response:
    data, code, headers = controllers.create_user(_json())
    return jsonify(data), code, headers


@blueprint.route('/groups', methods=['POST'])
def create_group() -> Response:
    data, code, headers = controllers.create_group(_json())
    return jsonify(data), code, headers


@blueprint.route('/roles', methods=['POST'])
def create_role() -> Response:
    data, code, headers = controllers.create_role(_json())
    return jsonify(data), code, headers


@blueprint.route('/users/<username>', methods=['GET'])
def get_user(username: str) -> Response:
    data, code, headers = controllers.get_user(username)
    return jsonify(data), code, headers


@blueprint.route('/users/<username>/groups', methods=['PUT'])
def update_user_groups(username: str) -> Response:
    """Replace the groups of a user."""
    data, code, headers = controllers.update_user_groups(username, _json())
    return jsonify(data), code, headers


@blueprint.route('/groups/<group>/roles', methods=['GET'])
def get_group_roles(group: str) -> Response:
    data, code, headers = controllers.get_group_roles(group)
    return jsonify(data), code, headers


@blueprint.route('/groups/<group>/roles', methods=['PUT'])
def update_group_roles(group: str) -> Response:
    """Replace the roles of a group."""
    data, code, headers = controllers.update_group_roles(group, _json())
    return jsonify(data), code, headers


@blueprint.route('/roles/<role>/permissions', methods=['GET'])
def get_role_permissions(role: str) -> Response:
    data, code, headers = controllers.get_role_permissions(role)
    return jsonify(data), code, headers


@blueprint.route('/roles/<role>/permissions', methods=['PUT'])
def update_role_permissions(role: str) -> Response:
    """Replace the permissions of a role."""
    data, code, headers = controllers.update_role_permissions(role, _json())
    return jsonify(data), code, headers


@blueprint.route('/groups/<owner>/roles/<name>', methods=['PUT', 'DELETE'])
def group_role(owner: str, name: str) -> Response:
    """Grant or revoke one role of a group."""
    data, code, headers = \
        controllers.assignment('roles', request.method, owner, name)
    return jsonify(data), code, headers


@blueprint.route('/groups/<owner>/members/<name>', methods=['PUT', 'DELETE'])
def group_member(owner: str, name: str) -> Response:
    """Add or remove one member of a group."""
    data, code, headers = \
        controllers.assignment('members', request.method, owner, name)
    return jsonify(data), code, headers


@blueprint.route('/roles/<owner>/permissions/<name>',
                 methods=['PUT', 'DELETE'])
def role_permission(owner: str, name: str) -> Response:
    """Grant or revoke one permission of a role."""
    data, code, headers = \
        controllers.assignment('permissions', request.method, owner, name)
    return jsonify(data), code, headers


@blueprint.route('/permission-changed', methods=['POST'])
def permission_changed() -> Response:
    """Invalidate cached authorization decisions."""
    data, code, headers = controllers.permission_changed(_json())
    return jsonify(data), code, headers


@blueprint.route('/health', methods=['GET'])
def health() -> Response:
    return jsonify({'status': 'UP', 'service': 'acl'}), 200, {}
