"""
Request controllers for the gateway.

The gateway is the only writer of the signed cache. It holds the cache
signing key, and publishes the public half so that backends can verify the
entries behind forwarded tokens.
"""

from typing import Dict, Mapping, Optional, Tuple
from urllib.parse import urlsplit

from flask import current_app
from werkzeug.exceptions import BadGateway, Forbidden, NotFound, \
    Unauthorized

from ..auth import TOKEN_HEADER, USER_HEADER
from ..auth.cache import CacheSigner, current_store
from ..auth.exceptions import CacheUnavailable, UpstreamUnavailable
from ..auth.keys import KeyMaterial
from ..manifest import ApiManifest
from .pipeline import AuthPipeline, Decision, Reject, SOURCE_HEADER, \
    CACHE_HIT_HEADER, EXPIRES_HEADER
from .services import issuer, acl, proxy

import logging

logger = logging.getLogger(__name__)

ResponseData = Tuple[dict, int, dict]

KEYS_EXTENSION = 'gatehouse.gateway.keys'
MANIFEST_EXTENSION = 'gatehouse.gateway.manifest'
ROUTES_EXTENSION = 'gatehouse.gateway.routes'

IDENTITY_HEADERS = frozenset(h.lower() for h in (
    USER_HEADER, TOKEN_HEADER, SOURCE_HEADER, CACHE_HIT_HEADER,
    EXPIRES_HEADER
))
"""Set only by the gateway; stripped from inbound requests."""


def get_keys() -> KeyMaterial:
    """Get the cache signing keys, loading or generating them on first use."""
    keys: Optional[KeyMaterial] = current_app.extensions.get(KEYS_EXTENSION)
    if keys is None:
        keys = KeyMaterial.load_or_generate(
            current_app.config['KEY_DIRECTORY'], 'gateway',
            key_size=int(current_app.config.get('KEY_SIZE', 2048))
        )
        current_app.extensions[KEYS_EXTENSION] = keys
        try:
            current_store().set_public_key(
                'gateway', keys.public_pem,
                ttl=int(current_app.config['PUBLIC_KEY_TTL'])
            )
        except CacheUnavailable as e:
            logger.warning('Could not publish gateway public key: %s', e)
    return keys


def get_pipeline() -> AuthPipeline:
    """Assemble the decision pipeline for this request."""
    config = current_app.config
    manifest: ApiManifest = current_app.extensions[MANIFEST_EXTENSION]
    return AuthPipeline(
        manifest=manifest,
        store=current_store(),
        signer=CacheSigner(get_keys(), ttl=int(config['CACHE_TTL'])),
        issuer=issuer.current_session(),
        acl=acl.current_session(),
        public_paths=config.get('PUBLIC_PATHS', []),
        source=config.get('GATEWAY_SOURCE', 'gatehouse-gateway')
    )


def _enforce(decision: Decision) -> Dict[str, str]:
    if isinstance(decision, Reject):
        if decision.status == 401:
            raise Unauthorized(decision.reason)
        raise Forbidden(decision.reason)
    return decision.headers


def authorize(headers: Mapping[str, str]) -> ResponseData:
    """
    Decide on a request on behalf of a reverse proxy.

    The original request is described by the ``X-Original-URI`` and
    ``X-Original-Method`` headers, as sent by NGINX's ``auth_request``.

    Returns
    -------
    dict
        Empty response body.
    int
        200 if the request may proceed.
    dict
        Identity headers to pass on to the backend.

    Raises
    ------
    :class:`Unauthorized`
        If the request is not authenticated.
    :class:`Forbidden`
        If the user lacks the permission for the request.

    """
    path = urlsplit(headers.get('X-Original-URI', '/')).path or '/'
    method = headers.get('X-Original-Method', 'GET')
    decision = get_pipeline().decide(path, method,
                                     headers.get('Authorization'))
    return {}, 200, _enforce(decision)


def forward(path: str, method: str, headers: Mapping[str, str],
            query: str = '', body: Optional[bytes] = None) \
        -> Tuple[bytes, int, Dict[str, str]]:
    """
    Authorize a request and pass it on to its backend.

    Raises
    ------
    :class:`NotFound`
        If no route matches the path.
    :class:`BadGateway`
        If the backend could not be reached.

    """
    routes: proxy.RouteTable = current_app.extensions[ROUTES_EXTENSION]
    target = routes.resolve(path)
    if target is None:
        raise NotFound(f'No route for {path}')
    base_url, backend_path = target

    decision = get_pipeline().decide(path, method,
                                     headers.get('Authorization'))
    outbound = {key: value for key, value in headers.items()
                if key.lower() not in IDENTITY_HEADERS}
    outbound.update(_enforce(decision))
    try:
        response = proxy.forward(
            base_url, backend_path, method, outbound, query=query, body=body,
            timeout=float(current_app.config['PROXY_TIMEOUT'])
        )
    except UpstreamUnavailable as e:
        logger.error('Could not forward %s %s: %s', method, path, e)
        raise BadGateway('Backend service unavailable') from e
    return response.content, response.status_code, \
        proxy.response_headers(response)


def public_key() -> ResponseData:
    """Publish the key that verifies cache entries."""
    keys = get_keys()
    return {'publicKey': keys.public_pem, 'algorithm': 'RS256',
            'keySize': keys.key_size, 'source': keys.source}, 200, {}


def health() -> ResponseData:
    return {'status': 'UP', 'service': 'gateway'}, 200, {}
