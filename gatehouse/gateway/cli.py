"""
Command line tools for the gateway.

.. code-block:: bash

   $ API_MANIFEST=manifest.json gatehouse-gateway register-manifest

"""

import click
from flask import Flask, current_app
from flask.cli import FlaskGroup, with_appcontext

from ..auth.exceptions import UpstreamUnavailable
from .services import acl


@click.command('register-manifest')
@with_appcontext
def register_manifest() -> None:
    """Register every project of the API manifest with the ACL."""
    manifest = current_app.extensions['gatehouse.gateway.manifest']
    session = acl.current_session()
    for project, apis in manifest.registrations():
        try:
            result = session.register_project(project, apis)
        except UpstreamUnavailable as e:
            raise click.ClickException(str(e)) from e
        click.echo(f'Registered {result.get("registered", 0)} APIs'
                   f' for {project.name}')


def _create_app() -> Flask:
    from .factory import create_app
    return create_app()


main = FlaskGroup(create_app=_create_app,
                  help='Manage the gatehouse gateway.')
