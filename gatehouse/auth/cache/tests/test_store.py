"""Tests for :mod:`gatehouse.auth.cache.store`."""

import json
from unittest import TestCase, mock

from redis.exceptions import ConnectionError

from .. import store
from ..entry import CacheSigner, verify
from ...keys import KeyMaterial
from ...exceptions import CacheUnavailable, CacheTamper

KEYS = KeyMaterial.generate(name='gateway')


class TestSignedCacheStore(TestCase):
    """Entries are kept in Redis under ``token:<token>``."""

    def setUp(self):
        """Use an in-memory Redis."""
        self.store = store.SignedCacheStore(fake=True)
        self.signer = CacheSigner(KEYS)

    def test_set_and_get(self):
        """A stored entry loads back intact and still verifies."""
        entry = self.signer.build('tok1', 'alice', ['SERVICE1_ADMIN_ACCESS'])
        self.store.set(entry)
        loaded = self.store.get('tok1')
        self.assertEqual(loaded, entry)
        self.assertTrue(verify(loaded, KEYS.public_key))
        self.assertTrue(self.store.r.exists('token:tok1'))
        self.assertGreater(self.store.r.ttl('token:tok1'), 1700)

    def test_missing(self):
        """Unknown tokens are a miss."""
        self.assertIsNone(self.store.get('nope'))

    def test_overwrite(self):
        """Setting the same token again replaces the entry."""
        self.store.set(self.signer.build('tok1', 'alice', ['A']))
        self.store.set(self.signer.build('tok1', 'alice', ['B']))
        self.assertEqual(self.store.get('tok1').permissions, ('B',))

    def test_tampered_value(self):
        """A value edited in Redis no longer verifies."""
        self.store.set(self.signer.build('tok1', 'bob', []))
        data = json.loads(self.store.r.get('token:tok1'))
        data['permissions'] = ['SERVICE1_ADMIN_ACCESS']
        self.store.r.set('token:tok1', json.dumps(data))
        self.assertFalse(verify(self.store.get('tok1'), KEYS.public_key))

    def test_malformed_value(self):
        """A value that is not an entry is reported as tampering."""
        self.store.r.set('token:tok1', 'not json')
        with self.assertRaises(CacheTamper):
            self.store.get('tok1')

    def test_mistyped_fields(self):
        """Fields of the wrong type are reported as tampering."""
        self.store.set(self.signer.build('tok1', 'alice', ['A']))
        valid = json.loads(self.store.r.get('token:tok1'))
        for field, value in [('issued_at', 12345), ('expires_at', 1.5),
                             ('expires_at', ['2026-01-01']),
                             ('issued_at', 'not a date')]:
            data = dict(valid, **{field: value})
            self.store.r.set('token:tok1', json.dumps(data))
            with self.assertRaises(CacheTamper, msg=f'{field}={value!r}'):
                self.store.get('tok1')

        # Other mistyped fields load, but never verify.
        for field, value in [('signature', 42), ('permissions', [1, 'A'])]:
            data = dict(valid, **{field: value})
            self.store.r.set('token:tok1', json.dumps(data))
            self.assertFalse(verify(self.store.get('tok1'), KEYS.public_key))

    def test_delete(self):
        """Deleted entries are gone."""
        self.store.set(self.signer.build('tok1', 'alice', []))
        self.store.delete('tok1')
        self.assertIsNone(self.store.get('tok1'))

    def test_invalidate_user(self):
        """Every entry of a user is removed, and only those."""
        self.store.set(self.signer.build('tok1', 'alice', []))
        self.store.set(self.signer.build('tok2', 'alice', []))
        self.store.set(self.signer.build('tok3', 'bob', []))
        self.assertEqual(self.store.invalidate_user('alice'), 2)
        self.assertIsNone(self.store.get('tok1'))
        self.assertIsNone(self.store.get('tok2'))
        self.assertIsNotNone(self.store.get('tok3'))
        self.assertEqual(self.store.invalidate_user('nobody'), 0)

    def test_invalidate_all(self):
        """Global invalidation clears every entry but not public keys."""
        self.store.set(self.signer.build('tok1', 'alice', []))
        self.store.set(self.signer.build('tok3', 'bob', []))
        self.store.set_public_key('gateway', KEYS.public_pem)
        self.assertEqual(self.store.invalidate_all(), 2)
        self.assertIsNone(self.store.get('tok1'))
        self.assertIsNone(self.store.get('tok3'))
        self.assertEqual(self.store.get_public_key('gateway'),
                         KEYS.public_pem)

    def test_public_keys(self):
        """Public keys are cached with a TTL."""
        self.store.set_public_key('gateway', KEYS.public_pem, ttl=100)
        self.assertEqual(self.store.get_public_key('gateway'),
                         KEYS.public_pem)
        self.assertLessEqual(self.store.r.ttl('public_key:gateway'), 100)
        self.store.delete_public_key('gateway')
        self.assertIsNone(self.store.get_public_key('gateway'))


class TestUnavailable(TestCase):
    """Connection problems surface as :class:`.CacheUnavailable`."""

    def setUp(self):
        """Use a Redis client that cannot connect."""
        self.client = mock.MagicMock()
        for method in ('get', 'set', 'delete', 'smembers', 'sadd'):
            getattr(self.client, method).side_effect = ConnectionError('nope')
        self.store = store.SignedCacheStore(client=self.client)

    def test_get(self):
        """Reads raise."""
        with self.assertRaises(CacheUnavailable):
            self.store.get('tok')

    def test_set(self):
        """Writes raise."""
        entry = CacheSigner(KEYS).build('tok', 'alice', [])
        with self.assertRaises(CacheUnavailable):
            self.store.set(entry)

    def test_invalidate(self):
        """Invalidation raises."""
        with self.assertRaises(CacheUnavailable):
            self.store.invalidate_user('alice')


class TestGetCacheStore(TestCase):
    """Stores are configured from the application."""

    @mock.patch(f'{store.__name__}.get_application_config')
    @mock.patch(f'{store.__name__}.redis')
    def test_plain_redis(self, mock_redis, mock_get_config):
        """A single Redis node is used when clustering is off."""
        mock_get_config.return_value = {'REDIS_HOST': 'redis',
                                        'REDIS_PORT': '6380',
                                        'REDIS_CLUSTER': '0'}
        store.get_cache_store()
        mock_redis.StrictRedis.assert_called_once_with(
            host='redis', port=6380, db=0, decode_responses=True
        )

    @mock.patch(f'{store.__name__}.get_application_config')
    @mock.patch(f'{store.__name__}.RedisCluster')
    def test_cluster(self, mock_cluster, mock_get_config):
        """A cluster client is used when configured."""
        mock_get_config.return_value = {'REDIS_HOST': 'redis',
                                        'REDIS_CLUSTER': '1'}
        store.get_cache_store()
        mock_cluster.assert_called_once_with(host='redis', port=6379,
                                             decode_responses=True)
