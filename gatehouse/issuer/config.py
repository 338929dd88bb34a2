"""Flask configuration for the issuer service."""

import os

KEY_DIRECTORY = os.environ.get('KEY_DIRECTORY', 'keys')
"""Directory holding ``issuer-private.pem`` and ``issuer-public.pem``.

Keys are generated on first start if they are not present."""

KEY_SIZE = int(os.environ.get('KEY_SIZE', '2048'))

TOKEN_LIFETIME = int(os.environ.get('TOKEN_LIFETIME', '3600'))
"""Seconds for which a minted bearer token is valid."""

SQLALCHEMY_DATABASE_URI = os.environ.get('SQLALCHEMY_DATABASE_URI',
                                         'sqlite:///issuer.db')
SQLALCHEMY_TRACK_MODIFICATIONS = False

CREATE_DB = os.environ.get('CREATE_DB', '0') == '1'
"""Create tables at startup; useful for development."""

LOGLEVEL = os.environ.get('LOGLEVEL', 'INFO')
