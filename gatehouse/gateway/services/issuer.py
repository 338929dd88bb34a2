"""Client for the issuer's token validation endpoint."""

from functools import wraps
from typing import Any, Dict, Optional

import dateutil.parser
import requests
from flask import Flask
from pytz import UTC

from ... import domain
from ...app_logging import redact
from ...auth.exceptions import UpstreamUnavailable
from ...context import get_application_config, get_application_global

import logging

logger = logging.getLogger(__name__)


class IssuerSession(object):
    """An HTTP session with the issuer."""

    def __init__(self, endpoint: str, timeout: float = 5.0) -> None:
        """Create a new HTTP session."""
        self.endpoint = endpoint.rstrip('/')
        self.timeout = timeout
        self._session = requests.Session()
        self._adapter = requests.adapters.HTTPAdapter(max_retries=2)
        self._session.mount('http://', self._adapter)
        self._session.mount('https://', self._adapter)
        logger.debug('New IssuerSession with endpoint %s', self.endpoint)

    def status(self) -> bool:
        """Check the availability of the issuer."""
        try:
            response = self._session.get(f'{self.endpoint}/auth/health',
                                         timeout=self.timeout)
        except requests.exceptions.RequestException:
            return False
        return response.ok

    def validate(self, token: str) -> domain.TokenValidation:
        """
        Ask the issuer whether a bearer token is valid.

        Returns
        -------
        :class:`.TokenValidation`
            ``valid`` is ``False`` for any token that the issuer rejects.

        Raises
        ------
        :class:`.UpstreamUnavailable`
            If the issuer could not be reached, timed out, or gave a response
            that could not be read.

        """
        try:
            response = self._session.post(f'{self.endpoint}/auth/validate',
                                          json={'token': token},
                                          timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise UpstreamUnavailable(f'Issuer unreachable: {e}') from e
        if not response.ok:
            raise UpstreamUnavailable(f'Issuer responded with status'
                                      f' {response.status_code}')
        try:
            data: Dict[str, Any] = response.json()
        except ValueError as e:
            raise UpstreamUnavailable('Could not read issuer response') from e
        if not data.get('valid') or not data.get('username'):
            logger.debug('Issuer rejected token %s', redact(token))
            return domain.TokenValidation(valid=False)
        expires_at = None
        if data.get('expiresAt'):
            expires_at = dateutil.parser.parse(data['expiresAt'])
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=UTC)
        return domain.TokenValidation(valid=True, username=data['username'],
                                      expires_at=expires_at)


def init_app(app: Optional[Flask] = None) -> None:
    """Set required configuration defaults for the application."""
    config = get_application_config(app)
    config.setdefault('ISSUER_URL', 'http://localhost:8084')
    config.setdefault('UPSTREAM_TIMEOUT', '5')


def get_session(app: Optional[Flask] = None) -> IssuerSession:
    """Create a new issuer session."""
    config = get_application_config(app)
    return IssuerSession(config.get('ISSUER_URL', 'http://localhost:8084'),
                         timeout=float(config.get('UPSTREAM_TIMEOUT', 5)))


def current_session(app: Optional[Flask] = None) -> IssuerSession:
    """Get the issuer session for this context (if there is one)."""
    g = get_application_global()
    if g:
        if 'issuer' not in g:
            g.issuer = get_session(app)
        return g.issuer     # type: ignore
    return get_session(app)


@wraps(IssuerSession.validate)
def validate(token: str) -> domain.TokenValidation:
    """Wrapper for :meth:`IssuerSession.validate`."""
    return current_session().validate(token)
