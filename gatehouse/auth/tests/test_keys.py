"""Tests for :mod:`gatehouse.auth.keys`."""

import os
import shutil
import tempfile
from unittest import TestCase, mock

import requests

from .. import keys
from ..exceptions import KeyUnavailable
from ..cache.store import SignedCacheStore

MATERIAL = keys.KeyMaterial.generate(name='gateway')


class TestKeyMaterial(TestCase):
    """Key pairs are generated once and persisted as PEM."""

    def setUp(self):
        """Create a scratch directory."""
        self.directory = tempfile.mkdtemp()

    def tearDown(self):
        """Remove the scratch directory."""
        shutil.rmtree(self.directory, ignore_errors=True)

    def test_generate_and_persist(self):
        """A missing key pair is generated and written to disk."""
        material = keys.KeyMaterial.load_or_generate(self.directory, 'issuer')
        self.assertEqual(material.key_size, 2048)
        self.assertTrue(os.path.exists(
            os.path.join(self.directory, 'issuer-private.pem')
        ))
        self.assertTrue(os.path.exists(
            os.path.join(self.directory, 'issuer-public.pem')
        ))

    def test_keys_survive_reload(self):
        """Loading again returns the same key pair."""
        first = keys.KeyMaterial.load_or_generate(self.directory, 'issuer')
        second = keys.KeyMaterial.load_or_generate(self.directory, 'issuer')
        self.assertEqual(first.public_pem, second.public_pem)
        self.assertEqual(second.source, 'file')

    def test_corrupt_key_file(self):
        """A corrupt private key file is not silently replaced."""
        for suffix in ('private', 'public'):
            with open(os.path.join(self.directory,
                                   f'gw-{suffix}.pem'), 'w') as f:
                f.write('not a key')
        with self.assertRaises(KeyUnavailable):
            keys.KeyMaterial.load_or_generate(self.directory, 'gw')

    def test_public_pem_round_trip(self):
        """The public PEM parses back to the same key."""
        loaded = keys.load_public_key(MATERIAL.public_pem)
        self.assertEqual(keys.dump_public_key(loaded), MATERIAL.public_pem)

    def test_invalid_public_pem(self):
        """Garbage is not accepted as a public key."""
        with self.assertRaises(KeyUnavailable):
            keys.load_public_key('-----BEGIN PUBLIC KEY-----\nnope')


class TestPublicKeyRing(TestCase):
    """The key ring caches a remote service's public key."""

    def setUp(self):
        """Use an in-memory shared store."""
        self.store = SignedCacheStore(fake=True)
        self.ring = keys.PublicKeyRing('gateway',
                                       'http://gateway/gateway/public-key',
                                       store=self.store)

    @mock.patch(f'{keys.__name__}.requests.get')
    def test_fetch_and_cache(self, mock_get):
        """The key is fetched once, then served from memory."""
        mock_get.return_value = mock.MagicMock(
            json=mock.MagicMock(return_value={'publicKey':
                                              MATERIAL.public_pem})
        )
        key = self.ring.get()
        self.assertEqual(keys.dump_public_key(key), MATERIAL.public_pem)
        self.ring.get()
        self.assertEqual(mock_get.call_count, 1)
        self.assertEqual(self.store.get_public_key('gateway'),
                         MATERIAL.public_pem)

    @mock.patch(f'{keys.__name__}.requests.get')
    def test_shared_store(self, mock_get):
        """A key in the shared store is used without fetching."""
        self.store.set_public_key('gateway', MATERIAL.public_pem)
        key = self.ring.get()
        self.assertEqual(keys.dump_public_key(key), MATERIAL.public_pem)
        self.assertEqual(mock_get.call_count, 0)

    @mock.patch(f'{keys.__name__}.requests.get')
    def test_refresh(self, mock_get):
        """Refreshing skips every cache and fetches again."""
        other = keys.KeyMaterial.generate()
        self.store.set_public_key('gateway', other.public_pem)
        mock_get.return_value = mock.MagicMock(
            json=mock.MagicMock(return_value={'publicKey':
                                              MATERIAL.public_pem})
        )
        self.assertEqual(keys.dump_public_key(self.ring.get()),
                         other.public_pem)
        self.assertEqual(keys.dump_public_key(self.ring.refresh()),
                         MATERIAL.public_pem)
        self.assertEqual(mock_get.call_count, 1)

    @mock.patch(f'{keys.__name__}.requests.get')
    def test_fetch_fails(self, mock_get):
        """An unreachable key endpoint raises after bounded retries."""
        mock_get.side_effect = requests.ConnectionError('nope')
        with self.assertRaises(KeyUnavailable):
            self.ring.get()
        self.assertEqual(mock_get.call_count, 3)
