"""HTTP routes for the gateway."""

from flask import Blueprint, request, jsonify, Response

from . import controllers

blueprint = Blueprint('gateway', __name__, url_prefix='')

METHODS = ['GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'HEAD', 'OPTIONS']


@blueprint.route('/auth', methods=['GET'])
def authorize() -> Response:
    """Authorization subrequest from a reverse proxy."""
    data, code, headers = controllers.authorize(request.headers)
    return jsonify(data), code, headers


@blueprint.route('/gateway/public-key', methods=['GET'])
def public_key() -> Response:
    """Get the key that verifies signed cache entries."""
    data, code, headers = controllers.public_key()
    return jsonify(data), code, headers


@blueprint.route('/gateway/health', methods=['GET'])
def health() -> Response:
    data, code, headers = controllers.health()
    return jsonify(data), code, headers


@blueprint.route('/', defaults={'path': ''}, methods=METHODS)
@blueprint.route('/<path:path>', methods=METHODS)
def forward(path: str) -> Response:
    """Authorize the request and pass it on to its backend."""
    content, code, headers = controllers.forward(
        f'/{path}', request.method, request.headers,
        query=request.query_string.decode('utf-8'),
        body=request.get_data() or None
    )
    return Response(content, status=code, headers=headers)
