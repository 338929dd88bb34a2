"""Password hashing for issuer credentials."""

from werkzeug.security import generate_password_hash, check_password_hash

from .exceptions import InvalidCredentials

import logging

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    """Generate a salted hash of a password."""
    if not password:
        raise ValueError('Password must not be empty')
    return generate_password_hash(password)


def check_password(password: str, encrypted: str) -> bool:
    """
    Check a password against a stored hash.

    Raises
    ------
    :class:`.InvalidCredentials`
        If the password does not match.

    """
    if not password or not encrypted \
            or not check_password_hash(encrypted, password):
        raise InvalidCredentials('Incorrect password')
    return True
