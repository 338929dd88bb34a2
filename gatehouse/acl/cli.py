"""
Command line tools for the ACL service.

.. code-block:: bash

   $ gatehouse-acl create-db
   $ gatehouse-acl seed

"""

from typing import Dict, List

import click
from flask import Flask
from flask.cli import FlaskGroup, with_appcontext

from .. import domain
from .services import datastore

DEMO_PROJECT = 'service1'

DEMO_APIS = [
    domain.ApiPermission(name='SERVICE1_HELLO_ACCESS', project=DEMO_PROJECT,
                         api_path='/app1/hello', http_method='GET',
                         description='Say hello'),
    domain.ApiPermission(name='SERVICE1_ADMIN_ACCESS', project=DEMO_PROJECT,
                         api_path='/app1/admin', http_method='GET',
                         is_critical=True, description='Administration'),
    domain.ApiPermission(name='SERVICE1_ALL_ACCESS', project=DEMO_PROJECT,
                         api_path='/app1/user-info', http_method='GET',
                         description='Details of the current user'),
    domain.ApiPermission(name='SERVICE1_PUBLIC', project=DEMO_PROJECT,
                         api_path='/app1/public', http_method='GET',
                         is_public=True, description='Open to everyone'),
]

DEMO_ROLES: Dict[str, List[str]] = {
    'user': ['SERVICE1_HELLO_ACCESS', 'SERVICE1_ALL_ACCESS'],
    'admin': ['SERVICE1_HELLO_ACCESS', 'SERVICE1_ALL_ACCESS',
              'SERVICE1_ADMIN_ACCESS'],
}

DEMO_GROUPS: Dict[str, List[str]] = {
    'users': ['user'],
    'admins': ['admin'],
}

DEMO_MEMBERS: Dict[str, List[str]] = {
    'alice': ['admins'],
    'bob': ['users'],
}


def seed_demo_graph() -> None:
    """Load the ``service1`` demo project and its users into the graph."""
    datastore.register_project(DEMO_PROJECT, base_url='http://localhost:8082',
                               version='1.0', description='Demo service',
                               apis=DEMO_APIS)
    for role, permissions in DEMO_ROLES.items():
        if datastore.role_permissions(role) is None:
            datastore.create_role(role)
        datastore.update_role_permissions(role, permissions)
    for group, roles in DEMO_GROUPS.items():
        if datastore.group_roles(group) is None:
            datastore.create_group(group)
        datastore.update_group_roles(group, roles)
    for username, groups in DEMO_MEMBERS.items():
        if not datastore.user_exists(username):
            datastore.create_user(username)
        datastore.update_user_groups(username, groups)


@click.command('create-db')
@with_appcontext
def create_db() -> None:
    """Create the ACL tables."""
    datastore.create_all()
    click.echo('Created ACL tables')


@click.command('seed')
@with_appcontext
def seed() -> None:
    """Load a demo graph: alice is an admin, bob is a user."""
    datastore.create_all()
    seed_demo_graph()
    click.echo(f'Seeded project {DEMO_PROJECT}')


def _create_app() -> Flask:
    from .factory import create_app
    return create_app()


main = FlaskGroup(create_app=_create_app,
                  help='Manage the gatehouse ACL service.')
