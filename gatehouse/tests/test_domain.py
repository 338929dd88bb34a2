"""Tests for :mod:`gatehouse.domain`."""

from unittest import TestCase
from datetime import datetime, timedelta
import json

from pytz import UTC

from .. import domain


class TestSignedCacheEntry(TestCase):
    """Cache entries survive serialization for storage in Redis."""

    def setUp(self):
        """Create an entry."""
        self.issued = datetime(2026, 1, 2, 3, 4, 5, tzinfo=UTC)
        self.entry = domain.SignedCacheEntry(
            token='abc.def.ghi',
            username='alice',
            permissions=('SERVICE1_ADMIN_ACCESS', 'SERVICE1_HELLO_ACCESS'),
            issued_at=self.issued,
            expires_at=self.issued + timedelta(minutes=30),
            signature='c2lnbmF0dXJl'
        )

    def test_to_dict(self):
        """Datetimes become ISO strings and tuples become lists."""
        data = domain.to_dict(self.entry)
        self.assertEqual(data['issued_at'], '2026-01-02T03:04:05+00:00')
        self.assertEqual(data['permissions'],
                         ['SERVICE1_ADMIN_ACCESS', 'SERVICE1_HELLO_ACCESS'])
        json.dumps(data)    # Does not raise.

    def test_from_dict(self):
        """The dict form can be loaded back into an equal entry."""
        data = json.loads(json.dumps(domain.to_dict(self.entry)))
        loaded = domain.from_dict(domain.SignedCacheEntry, data)
        self.assertEqual(loaded, self.entry)
        self.assertIsInstance(loaded.permissions, tuple)
        self.assertEqual(loaded.issued_at.utcoffset(), timedelta(0))

    def test_has_permission(self):
        """Membership is checked against the permission snapshot."""
        self.assertTrue(self.entry.has_permission('SERVICE1_ADMIN_ACCESS'))
        self.assertFalse(self.entry.has_permission('SERVICE1_ALL_ACCESS'))
        self.assertFalse(
            self.entry.has_permission(domain.UNMAPPED_PERMISSION)
        )


class TestTokenClaims(TestCase):
    """Tests for :class:`.domain.TokenClaims`."""

    def test_expired(self):
        """Claims are expired at their expiry time."""
        now = datetime.now(tz=UTC)
        claims = domain.TokenClaims(subject='alice',
                                    issued_at=now - timedelta(hours=1),
                                    expires_at=now - timedelta(seconds=1))
        self.assertTrue(claims.expired)

    def test_not_expired(self):
        """Claims with a future expiry are not expired."""
        now = datetime.now(tz=UTC)
        claims = domain.TokenClaims(subject='alice', issued_at=now,
                                    expires_at=now + timedelta(hours=1))
        self.assertFalse(claims.expired)


class TestAssignmentResult(TestCase):
    """Tests for :class:`.domain.AssignmentResult`."""

    def test_success(self):
        """A result without missing names is a success."""
        self.assertTrue(domain.AssignmentResult(assigned=2).success)
        self.assertFalse(
            domain.AssignmentResult(assigned=1, missing=('nope',)).success
        )

    def test_principal_groups(self):
        """Principal groups serialize as a sorted list."""
        principal = domain.Principal('alice', frozenset({'b', 'a'}))
        self.assertEqual(domain.to_dict(principal),
                         {'username': 'alice', 'groups': ['a', 'b']})
        self.assertEqual(
            domain.from_dict(domain.Principal, domain.to_dict(principal)),
            principal
        )
