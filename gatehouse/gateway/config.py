"""Flask configuration for the gateway."""

import json
import os

ISSUER_URL = os.environ.get('ISSUER_URL', 'http://localhost:8084')
ACL_URL = os.environ.get('ACL_URL', 'http://localhost:8083')

UPSTREAM_TIMEOUT = os.environ.get('UPSTREAM_TIMEOUT', '5')
"""Seconds to wait for the issuer or the ACL before failing closed."""

PROXY_TIMEOUT = os.environ.get('PROXY_TIMEOUT', '30')
"""Seconds to wait for a backend service."""

CACHE_TTL = os.environ.get('CACHE_TTL', '1800')
"""Lifetime in seconds of a cached authorization decision."""

PUBLIC_KEY_TTL = os.environ.get('PUBLIC_KEY_TTL', '86400')

KEY_DIRECTORY = os.environ.get('KEY_DIRECTORY', 'keys')
"""Directory holding ``gateway-private.pem`` and ``gateway-public.pem``."""

KEY_SIZE = int(os.environ.get('KEY_SIZE', '2048'))

PUBLIC_PATHS = [
    pattern for pattern in os.environ.get(
        'PUBLIC_PATHS', r'^/sso/login$,^/sso/public-key$,^/sso/health$'
    ).split(',') if pattern
]
"""Regular expressions for paths that are forwarded without authentication.

Comma-separated in the environment."""

API_MANIFEST = os.environ.get('API_MANIFEST', '')
"""Path to a JSON manifest of the APIs behind the gateway, or the JSON
itself. See :mod:`gatehouse.manifest`."""

ROUTES = json.loads(os.environ.get(
    'ROUTES',
    '{"/sso": "http://localhost:8084/auth",'
    ' "/service1": "http://localhost:8082"}'
))
"""Gateway path prefix to backend base URL. The prefix is stripped."""

GATEWAY_SOURCE = os.environ.get('GATEWAY_SOURCE', 'gatehouse-gateway')
"""Value of the ``X-Gateway-Source`` header on forwarded requests."""

REDIS_HOST = os.environ.get('REDIS_HOST', 'localhost')
REDIS_PORT = os.environ.get('REDIS_PORT', '6379')
REDIS_DATABASE = os.environ.get('REDIS_DATABASE', '0')
REDIS_CLUSTER = os.environ.get('REDIS_CLUSTER', '0')
"""If 1, expects a redis cluster; otherwise expects a single redis node."""

REDIS_FAKE = os.environ.get('REDIS_FAKE', '0')
"""Use the FakeRedis library instead of a redis service.

Useful for testing and development."""

LOGLEVEL = os.environ.get('LOGLEVEL', 'INFO')
