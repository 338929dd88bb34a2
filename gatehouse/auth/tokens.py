"""Functions for minting and checking RS256 bearer tokens."""

import uuid
from datetime import datetime, timedelta
from typing import Optional

import jwt
from pytz import UTC

from . import exceptions
from .keys import KeyMaterial, PublicKey
from .. import domain

ALGORITHM = 'RS256'
REQUIRED_CLAIMS = ['sub', 'iat', 'exp']


def encode(subject: str, keys: KeyMaterial, lifetime: int = 3600,
           now: Optional[datetime] = None) -> str:
    """Mint a signed token for ``subject`` valid for ``lifetime`` seconds."""
    if now is None:
        now = datetime.now(tz=UTC)
    issued_at = now.replace(microsecond=0)
    claims = {
        'sub': subject,
        'iat': issued_at,
        'exp': issued_at + timedelta(seconds=lifetime),
        'jti': str(uuid.uuid4())
    }
    token: str = jwt.encode(claims, keys.private_key, algorithm=ALGORITHM)
    return token


def decode(token: str, public_key: PublicKey) -> domain.TokenClaims:
    """
    Verify a token and unpack its claims.

    Raises
    ------
    :class:`.ExpiredToken`
        If the ``exp`` claim is in the past.
    :class:`.InvalidToken`
        For any other signature, format or claim problem.

    """
    try:
        data: dict = jwt.decode(token, public_key, algorithms=[ALGORITHM],
                                options={'require': REQUIRED_CLAIMS})
    except jwt.exceptions.ExpiredSignatureError as e:
        raise exceptions.ExpiredToken('Token has expired') from e
    except jwt.exceptions.InvalidTokenError as e:
        raise exceptions.InvalidToken(f'Not a valid token: {e}') from e

    subject = data.get('sub')
    if not isinstance(subject, str) or not subject:
        raise exceptions.InvalidToken('Token has no subject')
    return domain.TokenClaims(
        subject=subject,
        issued_at=datetime.fromtimestamp(data['iat'], tz=UTC),
        expires_at=datetime.fromtimestamp(data['exp'], tz=UTC),
        token_id=data.get('jti')
    )
