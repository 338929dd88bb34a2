"""JSON logging for the gatehouse services."""

import logging
from typing import Optional

from pythonjsonlogger import jsonlogger


def setup_logger(level: Optional[str] = None) -> None:
    """Install a JSON formatter on the root logger."""
    root = logging.getLogger()
    if any(getattr(handler, '_gatehouse', False)
           for handler in root.handlers):
        return     # Already configured, e.g. several apps in one process.
    log_handler = logging.StreamHandler()
    log_handler._gatehouse = True   # type: ignore
    formatter = jsonlogger.JsonFormatter(
        '%(asctime)s %(levelname)s %(name)s %(message)s',
        rename_fields={'levelname': 'level', 'asctime': 'timestamp'}
    )
    log_handler.setFormatter(formatter)
    root.addHandler(log_handler)
    root.setLevel(getattr(logging, (level or 'INFO').upper(), logging.INFO))


def redact(token: Optional[str]) -> str:
    """Shorten a bearer token so that it can be logged safely."""
    if not token:
        return '<none>'
    if len(token) <= 12:
        return '***'
    return f'{token[:6]}...{token[-4:]}'
