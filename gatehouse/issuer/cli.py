"""
Command line tools for the issuer.

.. code-block:: bash

   $ gatehouse-issuer create-db
   $ gatehouse-issuer create-user --username alice
   Password:
   Repeat for confirmation:

"""

import click
from flask import Flask
from flask.cli import FlaskGroup, with_appcontext

from .services import users


@click.command('create-db')
@with_appcontext
def create_db() -> None:
    """Create the issuer tables."""
    users.create_all()
    click.echo('Created issuer tables')


@click.command('create-user')
@click.option('--username', prompt='Username')
@click.option('--password', prompt='Password', hide_input=True,
              confirmation_prompt=True)
@click.option('--inactive', is_flag=True, default=False,
              help='Register the user without allowing login')
@with_appcontext
def create_user(username: str, password: str, inactive: bool) -> None:
    """Register a user that can log in."""
    try:
        users.create_user(username, password, active=not inactive)
    except (users.UserExists, ValueError) as e:
        raise click.ClickException(str(e)) from e
    click.echo(f'Created user {username}')


def _create_app() -> Flask:
    from .factory import create_app
    return create_app()


main = FlaskGroup(create_app=_create_app,
                  help='Manage the gatehouse issuer service.')
