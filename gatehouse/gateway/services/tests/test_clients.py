"""Tests for the issuer and ACL clients."""

from unittest import TestCase, mock
from datetime import datetime

import requests
from flask import Flask
from pytz import UTC

from .... import domain
from ....auth.exceptions import UpstreamUnavailable
from .. import issuer, acl


def json_response(data, status=200):
    response = mock.MagicMock()
    response.ok = status < 400
    response.status_code = status
    response.json.return_value = data
    return response


class TestIssuerSession(TestCase):
    """:meth:`.IssuerSession.validate` asks the issuer about a token."""

    def setUp(self):
        self.session = issuer.IssuerSession('http://issuer:8084/',
                                            timeout=2.0)
        self.post = mock.MagicMock()
        self.session._session.post = self.post

    def test_valid(self):
        self.post.return_value = json_response({
            'valid': True, 'username': 'alice',
            'expiresAt': '2026-10-19T12:00:00+00:00'
        })
        validation = self.session.validate('alicetoken')
        self.assertEqual(validation, domain.TokenValidation(
            valid=True, username='alice',
            expires_at=datetime(2026, 10, 19, 12, tzinfo=UTC)
        ))
        self.post.assert_called_once_with(
            'http://issuer:8084/auth/validate', json={'token': 'alicetoken'},
            timeout=2.0
        )

    def test_invalid(self):
        self.post.return_value = json_response({'valid': False})
        self.assertFalse(self.session.validate('nope').valid)

    def test_timeout(self):
        """A timeout is an outage, not an invalid token."""
        self.post.side_effect = requests.exceptions.Timeout()
        with self.assertRaises(UpstreamUnavailable):
            self.session.validate('alicetoken')

    def test_server_error(self):
        self.post.return_value = json_response({}, status=500)
        with self.assertRaises(UpstreamUnavailable):
            self.session.validate('alicetoken')

    def test_unreadable(self):
        response = json_response(None)
        response.json.side_effect = ValueError('not json')
        self.post.return_value = response
        with self.assertRaises(UpstreamUnavailable):
            self.session.validate('alicetoken')


class TestAclSession(TestCase):
    """:class:`.AclSession` asks the ACL for decisions."""

    def setUp(self):
        self.session = acl.AclSession('http://acl:8083', timeout=2.0)
        self.request = mock.MagicMock()
        self.session._session.request = self.request

    def test_check(self):
        self.request.return_value = json_response({'hasPermission': True})
        self.assertTrue(self.session.check('alice', 'service1',
                                           '/app1/admin', 'GET',
                                           'SERVICE1_ADMIN_ACCESS'))
        self.request.assert_called_once_with(
            'POST', 'http://acl:8083/acl/check', timeout=2.0,
            json={'username': 'alice', 'project': 'service1',
                  'apiPath': '/app1/admin', 'httpMethod': 'GET',
                  'permissionName': 'SERVICE1_ADMIN_ACCESS'}
        )

    def test_denied(self):
        self.request.return_value = json_response({'hasPermission': False})
        self.assertFalse(self.session.check('bob', 'service1', '/app1/admin',
                                            'GET'))

    def test_permissions(self):
        self.request.return_value = json_response(['A', 'B', 'A'])
        self.assertEqual(self.session.permissions('alice'),
                         frozenset({'A', 'B'}))
        self.request.assert_called_once_with(
            'GET', 'http://acl:8083/acl/user/alice/permissions',
            timeout=2.0
        )

    def test_username_is_quoted(self):
        """A username cannot change the path that is requested."""
        self.request.return_value = json_response([])
        self.session.permissions('../a b')
        self.request.assert_called_once_with(
            'GET', 'http://acl:8083/acl/user/..%2Fa%20b/permissions',
            timeout=2.0
        )

    def test_malformed_permissions(self):
        self.request.return_value = json_response({'permissions': 'A'})
        with self.assertRaises(UpstreamUnavailable):
            self.session.permissions('alice')
        self.request.return_value = json_response(['A', 1])
        with self.assertRaises(UpstreamUnavailable):
            self.session.permissions('alice')

    def test_malformed_check(self):
        self.request.return_value = json_response(['yes'])
        with self.assertRaises(UpstreamUnavailable):
            self.session.check('alice', 'service1', '/app1/admin', 'GET')

    def test_unreachable(self):
        self.request.side_effect = requests.exceptions.ConnectionError()
        with self.assertRaises(UpstreamUnavailable):
            self.session.check('alice', 'service1', '/app1/admin', 'GET')
        self.assertFalse(self.session.status())

    def test_register_project(self):
        """APIs are sent in the manifest format."""
        self.request.return_value = json_response({'registered': 1})
        project = domain.Project(name='service1', version='1.0')
        api = domain.ApiPermission(name='SERVICE1_HELLO_ACCESS',
                                   project='service1',
                                   api_path='/app1/hello', http_method='GET')
        self.session.register_project(project, [api])
        _, kwargs = self.request.call_args
        self.assertEqual(kwargs['json']['name'], 'service1')
        self.assertEqual(kwargs['json']['apis'][0]['permission'],
                         'SERVICE1_HELLO_ACCESS')


class TestCurrentSession(TestCase):
    """Sessions are configured from the application."""

    def test_configured(self):
        app = Flask('test')
        app.config['ISSUER_URL'] = 'http://issuer.local'
        app.config['ACL_URL'] = 'http://acl.local'
        app.config['UPSTREAM_TIMEOUT'] = '1.5'
        with app.app_context():
            issuer_session = issuer.current_session()
            acl_session = acl.current_session()
            self.assertIs(issuer.current_session(), issuer_session)
        self.assertEqual(issuer_session.endpoint, 'http://issuer.local')
        self.assertEqual(issuer_session.timeout, 1.5)
        self.assertEqual(acl_session.endpoint, 'http://acl.local')

    def test_defaults(self):
        app = Flask('test')
        issuer.init_app(app)
        acl.init_app(app)
        self.assertEqual(app.config['ISSUER_URL'], 'http://localhost:8084')
        self.assertEqual(app.config['ACL_URL'], 'http://localhost:8083')
