"""Flask configuration for the ACL service."""

import os

SQLALCHEMY_DATABASE_URI = os.environ.get('SQLALCHEMY_DATABASE_URI',
                                         'sqlite:///acl.db')
SQLALCHEMY_TRACK_MODIFICATIONS = False

CREATE_DB = os.environ.get('CREATE_DB', '0') == '1'
"""Create tables at startup; useful for development."""

REDIS_HOST = os.environ.get('REDIS_HOST', 'localhost')
REDIS_PORT = os.environ.get('REDIS_PORT', '6379')
REDIS_DATABASE = os.environ.get('REDIS_DATABASE', '0')
REDIS_CLUSTER = os.environ.get('REDIS_CLUSTER', '0')
"""If 1, expects a redis cluster; otherwise expects a single redis node."""

REDIS_FAKE = os.environ.get('REDIS_FAKE', '0')
"""Use the FakeRedis library instead of a redis service.

Invalidation is then a no-op as far as the gateway is concerned. Useful for
testing and development."""

LOGLEVEL = os.environ.get('LOGLEVEL', 'INFO')
