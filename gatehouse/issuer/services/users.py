"""Persistence of principals and their credentials."""

from contextlib import contextmanager
from datetime import datetime
from typing import Generator, Optional

from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.exc import IntegrityError
from pytz import UTC

from ...auth import passwords
from ...auth.exceptions import InvalidCredentials

import logging

logger = logging.getLogger(__name__)

db: SQLAlchemy = SQLAlchemy()


class DBUser(db.Model):
    """A principal that can log in."""

    __tablename__ = 'issuer_user'

    user_id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    created = Column(DateTime, default=lambda: datetime.now(tz=UTC))


class UserExists(RuntimeError):
    """A user with the same username is already registered."""


@contextmanager
def transaction() -> Generator:
    """Context manager for database transaction."""
    try:
        yield db.session
        db.session.commit()
    except Exception as e:
        logger.error('Commit failed, rolling back: %s', str(e))
        db.session.rollback()
        raise


def init_app(app: Flask) -> None:
    """Attach the database session to the application."""
    db.init_app(app)


def create_all() -> None:
    """Create all tables in the database."""
    db.create_all()


def drop_all() -> None:
    """Drop all tables in the database."""
    db.drop_all()


def get_user(username: str) -> Optional[DBUser]:
    user: Optional[DBUser] = \
        db.session.query(DBUser).filter(DBUser.username == username).first()
    return user


def create_user(username: str, password: str, active: bool = True) -> None:
    """
    Register a new user.

    Raises
    ------
    :class:`UserExists`
        If the username is taken.

    """
    if not username:
        raise ValueError('Username must not be empty')
    try:
        with transaction() as session:
            session.add(DBUser(username=username,
                               password_hash=passwords.hash_password(password),
                               active=active))
    except IntegrityError as e:
        raise UserExists(f'{username} is already registered') from e
    logger.info('Registered user %s', username)


def set_active(username: str, active: bool) -> bool:
    """Activate or deactivate a user. Returns ``False`` if unknown."""
    with transaction():
        user = get_user(username)
        if user is None:
            return False
        user.active = active
    return True


def authenticate(username: str, password: str) -> str:
    """
    Check a username and password.

    Unknown users, inactive users and wrong passwords all raise the same
    exception, so callers cannot tell them apart.

    Returns
    -------
    str
        The username.

    Raises
    ------
    :class:`.InvalidCredentials`

    """
    user = get_user(username) if username else None
    if user is None or not user.active:
        logger.debug('No active user %s', username)
        raise InvalidCredentials('Invalid username or password')
    try:
        passwords.check_password(password, user.password_hash)
    except InvalidCredentials as e:
        logger.debug('Wrong password for %s', username)
        raise InvalidCredentials('Invalid username or password') from e
    return user.username


def is_active(username: str) -> bool:
    """Whether ``username`` exists and may hold tokens."""
    user = get_user(username)
    return user is not None and user.active
