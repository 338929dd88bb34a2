"""Test harness wiring for :mod:`gatehouse.auth.tests`."""

import pytest
from flask import Flask


@pytest.fixture(autouse=True)
def _request_context(request):
    """Push a request context so ``mock.patch`` can inspect ``flask.request``."""
    if request.module.__name__.rsplit('.', 1)[-1] != 'test_decorators':
        yield
        return
    with Flask(__name__).test_request_context():
        yield
