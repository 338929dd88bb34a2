"""API tests for the gateway."""

import shutil
import tempfile
from unittest import TestCase, mock

import requests

from ... import domain
from ...auth.keys import KeyMaterial, load_public_key
from ...auth.exceptions import UpstreamUnavailable
from ..factory import create_app
from ..services.acl import AclSession
from ..services.issuer import IssuerSession
from ..services import proxy
from .. import controllers

KEYS = KeyMaterial.generate(name='gateway')

MANIFEST = {'projects': [{
    'name': 'service1',
    'apis': [
        {'path': '/app1/hello', 'method': 'GET',
         'permission': 'SERVICE1_HELLO_ACCESS'},
        {'path': '/app1/admin', 'method': 'GET',
         'permission': 'SERVICE1_ADMIN_ACCESS'},
        {'path': '/app1/public', 'method': 'GET',
         'permission': 'SERVICE1_PUBLIC', 'public': True},
    ]
}]}

ROUTES = {'/service1': 'http://backend:8082', '/sso': 'http://issuer/auth'}


def backend_response(status=200, content=b'{"ok": true}'):
    response = mock.MagicMock(spec=requests.Response)
    response.status_code = status
    response.content = content
    response.headers = {'Content-Type': 'application/json',
                        'Transfer-Encoding': 'chunked'}
    return response


class GatewayTestCase(TestCase):
    """A gateway with fake Redis, mocked upstreams and a shared key."""

    def setUp(self):
        self.app = create_app({
            'REDIS_FAKE': '1',
            'API_MANIFEST': MANIFEST,
            'ROUTES': ROUTES,
            'PUBLIC_PATHS': [r'^/sso/login$'],
        })
        self.app.extensions[controllers.KEYS_EXTENSION] = KEYS
        self.store = self.app.extensions['gatehouse.cache']
        self.client = self.app.test_client()

        validate = mock.patch.object(IssuerSession, 'validate')
        check = mock.patch.object(AclSession, 'check')
        permissions = mock.patch.object(AclSession, 'permissions')
        forward = mock.patch.object(proxy.requests, 'request')
        self.validate = validate.start()
        self.check = check.start()
        self.permissions = permissions.start()
        self.request = forward.start()
        for patcher in (validate, check, permissions, forward):
            self.addCleanup(patcher.stop)

        self.validate.return_value = domain.TokenValidation(
            valid=True, username='alice'
        )
        self.check.return_value = True
        self.permissions.return_value = frozenset({'SERVICE1_ADMIN_ACCESS'})
        self.request.return_value = backend_response()


class TestSubrequest(GatewayTestCase):
    """GET /auth answers a reverse proxy's authorization subrequest."""

    def _auth(self, uri, token='alicetoken'):
        headers = {'X-Original-URI': uri, 'X-Original-Method': 'GET'}
        if token:
            headers['Authorization'] = f'Bearer {token}'
        return self.client.get('/auth', headers=headers)

    def test_granted(self):
        """Identity headers come back on the response."""
        response = self._auth('/service1/app1/admin?verbose=1')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers['X-Authenticated-User'], 'alice')
        self.assertEqual(response.headers['X-Cache-Hit'], 'false')

    def test_second_request_hits_cache(self):
        self._auth('/service1/app1/admin')
        response = self._auth('/service1/app1/admin')
        self.assertEqual(response.headers['X-Cache-Hit'], 'true')
        self.assertEqual(self.validate.call_count, 1)

    def test_no_token(self):
        response = self._auth('/service1/app1/admin', token=None)
        self.assertEqual(response.status_code, 401)
        self.assertIn('reason', response.get_json())

    def test_malformed_header(self):
        response = self.client.get('/auth', headers={
            'X-Original-URI': '/service1/app1/admin',
            'Authorization': 'Token a b'
        })
        self.assertEqual(response.status_code, 401)

    def test_forbidden(self):
        self.check.return_value = False
        response = self._auth('/service1/app1/admin')
        self.assertEqual(response.status_code, 403)

    def test_issuer_down(self):
        self.validate.side_effect = UpstreamUnavailable('timeout')
        self.assertEqual(self._auth('/service1/app1/admin').status_code, 401)

    def test_acl_down(self):
        self.check.side_effect = UpstreamUnavailable('timeout')
        self.assertEqual(self._auth('/service1/app1/admin').status_code, 403)


class TestProxy(GatewayTestCase):
    """Authorized requests are forwarded to their backend."""

    def test_forward(self):
        """The prefix is stripped and identity headers are added."""
        response = self.client.get('/service1/app1/admin?x=1', headers={
            'Authorization': 'Bearer alicetoken'
        })
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json(), {'ok': True})
        self.assertNotIn('Transfer-Encoding', response.headers)
        args, kwargs = self.request.call_args
        self.assertEqual(args, ('GET', 'http://backend:8082/app1/admin?x=1'))
        self.assertEqual(kwargs['headers']['X-Authenticated-User'], 'alice')
        self.assertEqual(kwargs['headers']['X-Cache-Hit'], 'false')

    def test_spoofed_identity_is_dropped(self):
        """Identity headers from the client never reach the backend."""
        self.client.get('/service1/app1/public', headers={
            'X-Authenticated-User': 'root'
        })
        _, kwargs = self.request.call_args
        self.assertNotIn('X-Authenticated-User', kwargs['headers'])

    def test_public_without_token(self):
        response = self.client.get('/service1/app1/public')
        self.assertEqual(response.status_code, 200)
        self.validate.assert_not_called()

    def test_unauthorized_not_forwarded(self):
        response = self.client.get('/service1/app1/admin')
        self.assertEqual(response.status_code, 401)
        self.request.assert_not_called()

    def test_unknown_prefix(self):
        response = self.client.get('/nowhere/app1/admin', headers={
            'Authorization': 'Bearer alicetoken'
        })
        self.assertEqual(response.status_code, 404)

    def test_backend_down(self):
        self.request.side_effect = requests.exceptions.ConnectionError()
        response = self.client.get('/service1/app1/admin', headers={
            'Authorization': 'Bearer alicetoken'
        })
        self.assertEqual(response.status_code, 502)

    def test_backend_status_passed_through(self):
        self.request.return_value = backend_response(status=404,
                                                     content=b'{}')
        response = self.client.get('/service1/app1/admin', headers={
            'Authorization': 'Bearer alicetoken'
        })
        self.assertEqual(response.status_code, 404)

    def test_configured_public_path(self):
        """The issuer's login is reachable through the gateway."""
        self.client.post('/sso/login', json={'username': 'alice'})
        args, kwargs = self.request.call_args
        self.assertEqual(args, ('POST', 'http://issuer/auth/login'))
        self.assertIn(b'alice', kwargs['data'])


class TestPublicKey(TestCase):
    """The gateway publishes the key that verifies cache entries."""

    def setUp(self):
        self.key_directory = tempfile.mkdtemp()
        self.app = create_app({'REDIS_FAKE': '1',
                               'KEY_DIRECTORY': self.key_directory})
        self.client = self.app.test_client()

    def tearDown(self):
        shutil.rmtree(self.key_directory, ignore_errors=True)

    def test_public_key(self):
        """The key is generated, persisted and published to the cache."""
        response = self.client.get('/gateway/public-key')
        self.assertEqual(response.status_code, 200)
        data = response.get_json()
        self.assertEqual(data['algorithm'], 'RS256')
        self.assertEqual(data['keySize'], 2048)
        self.assertEqual(data['source'], 'file')
        self.assertIsNotNone(load_public_key(data['publicKey']))

        keys = KeyMaterial.load_or_generate(self.key_directory, 'gateway')
        self.assertEqual(keys.public_pem, data['publicKey'])
        store = self.app.extensions['gatehouse.cache']
        self.assertEqual(store.get_public_key('gateway'), data['publicKey'])

    def test_health(self):
        response = self.client.get('/gateway/health')
        self.assertEqual(response.get_json(),
                         {'status': 'UP', 'service': 'gateway'})
