"""
Request controllers for the issuer.

The issuer is the only holder of the token-signing private key. It mints
RS256 bearer tokens at login, validates them on behalf of the gateway, and
publishes its public key so that other services can check tokens offline.
"""

from typing import Any, Dict, Optional, Tuple

from flask import current_app
from werkzeug.exceptions import BadRequest, Unauthorized

from ..auth import tokens
from ..auth.exceptions import InvalidCredentials, Unauthenticated
from ..auth.keys import KeyMaterial
from ..app_logging import redact
from .services import users

import logging

logger = logging.getLogger(__name__)

ResponseData = Tuple[dict, int, dict]

KEYS_EXTENSION = 'gatehouse.issuer.keys'


def get_keys() -> KeyMaterial:
    """Get the issuer's key pair, loading or generating it on first use."""
    keys: Optional[KeyMaterial] = current_app.extensions.get(KEYS_EXTENSION)
    if keys is None:
        keys = KeyMaterial.load_or_generate(
            current_app.config['KEY_DIRECTORY'], 'issuer',
            key_size=int(current_app.config.get('KEY_SIZE', 2048))
        )
        current_app.extensions[KEYS_EXTENSION] = keys
    return keys


def _get_field(data: Any, field: str) -> str:
    if not isinstance(data, dict) or not data.get(field):
        raise BadRequest(f'Missing required field: {field}')
    value = data[field]
    if not isinstance(value, str):
        raise BadRequest(f'{field} must be a string')
    return value


def login(data: Any) -> ResponseData:
    """
    Exchange a username and password for a bearer token.

    Parameters
    ----------
    data : dict
        Should include ``username`` and ``password``.

    Returns
    -------
    dict
        ``token``, ``tokenType``, ``username`` and ``expiresIn`` (seconds).
    int
        Status code.
    dict
        Headers to add to the response.

    Raises
    ------
    :class:`BadRequest`
        If either field is missing.
    :class:`Unauthorized`
        If the credentials are not valid.

    """
    username = _get_field(data, 'username')
    password = _get_field(data, 'password')
    try:
        username = users.authenticate(username, password)
    except InvalidCredentials as e:
        logger.info('Failed login for %s', username)
        raise Unauthorized('Invalid username or password') from e

    lifetime = int(current_app.config['TOKEN_LIFETIME'])
    token = tokens.encode(username, get_keys(), lifetime=lifetime)
    logger.info('Issued token %s to %s', redact(token), username)
    return {'token': token, 'tokenType': 'Bearer', 'username': username,
            'expiresIn': lifetime}, 200, {}


def validate(data: Any) -> ResponseData:
    """
    Check a bearer token.

    Any problem with the token (signature, format, expiry, unknown or
    deactivated subject) gives ``{"valid": false}``; this never raises for
    a bad token.
    """
    token = _get_field(data, 'token')
    try:
        claims = tokens.decode(token, get_keys().public_key)
    except Unauthenticated as e:
        logger.debug('Token %s is not valid: %s', redact(token), e)
        return {'valid': False}, 200, {}
    if not users.is_active(claims.subject):
        logger.info('Token %s belongs to inactive user %s', redact(token),
                    claims.subject)
        return {'valid': False}, 200, {}
    response: Dict[str, Any] = {
        'valid': True,
        'username': claims.subject,
        'expiresAt': claims.expires_at.isoformat()
    }
    return response, 200, {}


def public_key() -> ResponseData:
    """Publish the token verification key."""
    keys = get_keys()
    return {'publicKey': keys.public_pem, 'algorithm': tokens.ALGORITHM,
            'keySize': keys.key_size}, 200, {}
