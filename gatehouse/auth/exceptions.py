"""Exceptions raised while authenticating and authorizing requests."""


class Unauthenticated(RuntimeError):
    """The request does not carry a usable identity."""


class InvalidToken(Unauthenticated):
    """Token in request isn't valid."""


class ExpiredToken(Unauthenticated):
    """Token has expired."""


class MissingToken(Unauthenticated):
    """No token was provided, or the Authorization header is malformed."""


class Unauthorized(RuntimeError):
    """The identity is known, but lacks the required permission."""


class UpstreamUnavailable(RuntimeError):
    """A collaborating service could not be reached or misbehaved."""


class CacheTamper(RuntimeError):
    """A cache entry failed signature verification."""


class CacheUnavailable(RuntimeError):
    """The cache store could not be reached."""


class KeyUnavailable(RuntimeError):
    """Key material could not be loaded or fetched."""


class NotFound(RuntimeError):
    """A referenced user, group, role, project or permission does not exist."""


class InvalidCredentials(RuntimeError):
    """Failed to authenticate user with provided credentials."""


class ConfigurationError(RuntimeError):
    """A required configuration parameter is missing or malformed."""
