"""Defines the core concepts shared by the gateway, issuer and ACL services."""

from typing import Any, FrozenSet, NamedTuple, Optional, Tuple
from datetime import datetime
import dateutil.parser
from pytz import UTC

import logging

logger = logging.getLogger(__name__)

UNMAPPED_PERMISSION = '__UNMAPPED__'
"""
Sentinel permission required for paths that are missing from the manifest.

No role can be granted this permission, so unmapped paths are always denied
to authenticated users.
"""


class Principal(NamedTuple):
    """An authenticated identity, as seen by the ACL service."""

    username: str
    """Unique username, shared between the issuer and the ACL."""

    groups: FrozenSet[str] = frozenset()
    """Names of the groups to which the principal belongs."""


class TokenClaims(NamedTuple):
    """Claims carried by a bearer token minted by the issuer."""

    subject: str
    """The username for which the token was issued."""

    issued_at: datetime
    """When the token was minted."""

    expires_at: datetime
    """After this moment the token is no longer valid."""

    token_id: Optional[str] = None
    """Unique identifier for the token (the ``jti`` claim)."""

    @property
    def expired(self) -> bool:
        """Expired if the current time is at or after :attr:`.expires_at`."""
        return datetime.now(tz=UTC) >= self.expires_at


class TokenValidation(NamedTuple):
    """The outcome of validating a token with the issuer."""

    valid: bool
    username: Optional[str] = None
    expires_at: Optional[datetime] = None


class Project(NamedTuple):
    """A backend service that registers its APIs with the ACL."""

    name: str
    """Unique project name, e.g. ``service1``."""

    base_url: str = ''
    version: str = ''
    description: str = ''


class ApiPermission(NamedTuple):
    """A named, project-scoped grant bound to a path and an HTTP method."""

    name: str
    """Permission name, e.g. ``SERVICE1_ADMIN_ACCESS``."""

    project: str
    """Name of the :class:`.Project` that owns the API."""

    api_path: str
    """
    Path of the API.

    May contain werkzeug-style placeholders (e.g. ``/items/<item_id>``).
    """

    http_method: str
    """Upper-case HTTP method."""

    is_public: bool = False
    """Public APIs bypass authorization entirely."""

    is_critical: bool = False
    """Informational severity flag."""

    description: str = ''


class SignedCacheEntry(NamedTuple):
    """
    A tamper-evident snapshot of an authorization decision.

    Entries are immutable. The signature covers every other field, so any
    change to the entry that does not go through
    :meth:`gatehouse.auth.cache.entry.CacheSigner.replace` will fail
    verification.
    """

    token: str
    """The bearer token for which the entry was created."""

    username: str
    """The username to which the token was issued."""

    permissions: Tuple[str, ...]
    """Sorted, deduplicated names of every permission held by the user."""

    issued_at: datetime
    """When the entry was created."""

    expires_at: datetime
    """When the entry stops being authoritative."""

    signature: str = ''
    """Base64-encoded signature over the canonical form of the fields."""

    def has_permission(self, permission: str) -> bool:
        """Check whether the snapshot includes ``permission``."""
        return permission in self.permissions


class AssignmentResult(NamedTuple):
    """Outcome of an administrative operation on the permission graph."""

    assigned: int = 0
    """Number of relations that exist after the operation."""

    missing: Tuple[str, ...] = ()
    """Names that could not be resolved (unknown role, group, etc)."""

    changed: bool = False
    """Whether the operation modified the graph."""

    @property
    def success(self) -> bool:
        """Whether every requested name was resolved."""
        return not self.missing


# Helpers.


def to_dict(obj: tuple) -> dict:
    """
    Generate a JSON-friendly dict representation of a NamedTuple instance.

    Child NamedTuples are converted recursively, datetimes become ISO-8601
    strings and tuples/frozensets become lists.
    """
    if not hasattr(obj, '_asdict'):  # NamedTuple-generated classes have this.
        return {}

    def _cast(value: Any) -> Any:
        if hasattr(value, '_asdict'):
            return to_dict(value)
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, frozenset):
            return sorted(_cast(o) for o in value)
        if isinstance(value, (list, tuple)):
            return [_cast(o) for o in value]
        return value

    return {key: _cast(value) for key, value in obj._asdict().items()}


def from_dict(cls: type, data: dict) -> Any:
    """
    Generate a NamedTuple instance from a dict.

    This is the inverse of :func:`to_dict` for the field types used in this
    module (datetimes, tuples and frozensets of strings, scalars).
    """
    _data = {}
    for field, field_type in cls.__annotations__.items():
        if field not in data:
            continue
        _data[field] = _cast_to(field_type, data[field])
    return cls(**_data)


def _cast_to(field_type: Any, value: Any) -> Any:
    if value is None:
        return None
    origin = getattr(field_type, '__origin__', None)
    args = getattr(field_type, '__args__', ())
    if origin is not None and type(None) in args:   # Optional[X]
        inner = [arg for arg in args if arg is not type(None)]
        return _cast_to(inner[0], value)
    if field_type is datetime or origin is datetime:
        if isinstance(value, str):
            parsed = dateutil.parser.parse(value)
        elif isinstance(value, datetime):
            parsed = value
        else:
            raise TypeError(f'Expected a datetime, got {value!r}')
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed
    if origin is tuple:
        return tuple(value)
    if origin is frozenset:
        return frozenset(value)
    return value
