"""HTTP routes for the issuer."""

from flask import Blueprint, request, jsonify, Response

from . import controllers

blueprint = Blueprint('issuer', __name__, url_prefix='/auth')


@blueprint.route('/login', methods=['POST'])
def login() -> Response:
    """Exchange credentials for a bearer token."""
    data, code, headers = \
        controllers.login(request.get_json(force=True, silent=True))
    return jsonify(data), code, headers


@blueprint.route('/validate', methods=['POST'])
def validate() -> Response:
    """Validate a bearer token."""
    data, code, headers = \
        controllers.validate(request.get_json(force=True, silent=True))
    return jsonify(data), code, headers


@blueprint.route('/public-key', methods=['GET'])
def public_key() -> Response:
    """Get the token verification key."""
    data, code, headers = controllers.public_key()
    return jsonify(data), code, headers


@blueprint.route('/health', methods=['GET'])
def health() -> Response:
    return jsonify({'status': 'UP', 'service': 'issuer'}), 200, {}
