"""API tests for the issuer service."""

import shutil
import tempfile
from unittest import TestCase
from datetime import datetime, timedelta

import dateutil.parser
from pytz import UTC

from ..factory import create_app
from ..services import users
from ...auth import tokens
from ...auth.keys import KeyMaterial, load_public_key


class IssuerTestCase(TestCase):
    """Creates an issuer backed by in-memory SQLite and scratch keys."""

    @classmethod
    def setUpClass(cls):
        """Key generation is slow, so share one directory per class."""
        cls.key_directory = tempfile.mkdtemp()

    @classmethod
    def tearDownClass(cls):
        shutil.rmtree(cls.key_directory, ignore_errors=True)

    def setUp(self):
        """Register alice."""
        self.app = create_app({
            'SQLALCHEMY_DATABASE_URI': 'sqlite://',
            'KEY_DIRECTORY': self.key_directory,
            'TOKEN_LIFETIME': 600,
            'CREATE_DB': False
        })
        with self.app.app_context():
            users.create_all()
            users.create_user('alice', 'alicepass')
            users.create_user('carol', 'carolpass', active=False)
        self.client = self.app.test_client()

    def tearDown(self):
        with self.app.app_context():
            users.drop_all()

    def _login(self, username='alice', password='alicepass'):
        return self.client.post('/auth/login', json={'username': username,
                                                     'password': password})


class TestLogin(IssuerTestCase):
    """POST /auth/login exchanges credentials for a token."""

    def test_login(self):
        """Valid credentials yield an RS256 token for the user."""
        response = self._login()
        self.assertEqual(response.status_code, 200)
        data = response.get_json()
        self.assertEqual(data['tokenType'], 'Bearer')
        self.assertEqual(data['expiresIn'], 600)
        with self.app.app_context():
            keys = self.app.extensions['gatehouse.issuer.keys']
        claims = tokens.decode(data['token'], keys.public_key)
        self.assertEqual(claims.subject, 'alice')

    def test_failures_look_the_same(self):
        """Wrong password, unknown and inactive users are indistinguishable."""
        responses = [self._login(password='wrong'),
                     self._login(username='nobody'),
                     self._login(username='carol', password='carolpass')]
        for response in responses:
            self.assertEqual(response.status_code, 401)
        reasons = {r.get_json()['reason'] for r in responses}
        self.assertEqual(len(reasons), 1)

    def test_missing_fields(self):
        """Missing username or password is a bad request."""
        response = self.client.post('/auth/login', json={'username': 'alice'})
        self.assertEqual(response.status_code, 400)
        self.assertIn('reason', response.get_json())
        response = self.client.post('/auth/login', data='nope')
        self.assertEqual(response.status_code, 400)


class TestValidate(IssuerTestCase):
    """POST /auth/validate checks tokens for the gateway."""

    def test_valid(self):
        """A fresh token is valid."""
        token = self._login().get_json()['token']
        response = self.client.post('/auth/validate', json={'token': token})
        self.assertEqual(response.status_code, 200)
        data = response.get_json()
        self.assertTrue(data['valid'])
        self.assertEqual(data['username'], 'alice')
        expires = dateutil.parser.parse(data['expiresAt'])
        self.assertGreater(expires, datetime.now(tz=UTC))

    def test_garbage(self):
        """Anything that is not a token is invalid."""
        response = self.client.post('/auth/validate',
                                    json={'token': 'not.a.token'})
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.get_json()['valid'])

    def test_expired(self):
        """An expired token is invalid."""
        with self.app.app_context():
            keys = self.app.extensions.get('gatehouse.issuer.keys') \
                or KeyMaterial.load_or_generate(self.key_directory, 'issuer')
        token = tokens.encode('alice', keys, lifetime=60,
                              now=datetime.now(tz=UTC) - timedelta(hours=1))
        response = self.client.post('/auth/validate', json={'token': token})
        self.assertFalse(response.get_json()['valid'])

    def test_foreign_key(self):
        """A token signed with another key is invalid."""
        token = tokens.encode('alice', KeyMaterial.generate())
        response = self.client.post('/auth/validate', json={'token': token})
        self.assertFalse(response.get_json()['valid'])

    def test_deactivated_user(self):
        """Tokens of users deactivated after login are invalid."""
        token = self._login().get_json()['token']
        with self.app.app_context():
            users.set_active('alice', False)
        response = self.client.post('/auth/validate', json={'token': token})
        self.assertFalse(response.get_json()['valid'])

    def test_missing_token(self):
        """A request without a token is a bad request."""
        response = self.client.post('/auth/validate', json={})
        self.assertEqual(response.status_code, 400)


class TestPublicKey(IssuerTestCase):
    """GET /auth/public-key publishes the verification key."""

    def test_public_key(self):
        """The published key verifies issued tokens."""
        response = self.client.get('/auth/public-key')
        self.assertEqual(response.status_code, 200)
        data = response.get_json()
        self.assertEqual(data['algorithm'], 'RS256')
        self.assertGreaterEqual(data['keySize'], 2048)
        key = load_public_key(data['publicKey'])
        token = self._login().get_json()['token']
        self.assertEqual(tokens.decode(token, key).subject, 'alice')

    def test_keys_persist(self):
        """A new app instance on the same key directory uses the same key."""
        first = self.client.get('/auth/public-key').get_json()['publicKey']
        other = create_app({'SQLALCHEMY_DATABASE_URI': 'sqlite://',
                            'KEY_DIRECTORY': self.key_directory})
        second = other.test_client().get('/auth/public-key').get_json()
        self.assertEqual(first, second['publicKey'])

    def test_health(self):
        """The health endpoint reports the service as up."""
        response = self.client.get('/auth/health')
        self.assertEqual(response.get_json()['status'], 'UP')


class TestCommands(IssuerTestCase):
    """The CLI registers users."""

    def test_create_user(self):
        """A user created on the command line can log in."""
        runner = self.app.test_cli_runner()
        result = runner.invoke(args=['create-user', '--username', 'dave',
                                     '--password', 'davepass'])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual(self._login('dave', 'davepass').status_code, 200)

    def test_create_existing_user(self):
        """Registering a taken username fails."""
        runner = self.app.test_cli_runner()
        result = runner.invoke(args=['create-user', '--username', 'alice',
                                     '--password', 'x'])
        self.assertNotEqual(result.exit_code, 0)
