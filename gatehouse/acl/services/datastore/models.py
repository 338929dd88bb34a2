"""SQLAlchemy models for the permission graph."""

from datetime import datetime

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, \
    String, Text, UniqueConstraint
from pytz import UTC

db: SQLAlchemy = SQLAlchemy()


def _now() -> datetime:
    return datetime.now(tz=UTC)


class DBUser(db.Model):
    """A principal known to the ACL. Credentials live in the issuer."""

    __tablename__ = 'acl_user'

    user_id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(255), unique=True, nullable=False, index=True)
    active = Column(Boolean, default=True, nullable=False)
    created = Column(DateTime, default=_now)


class DBGroup(db.Model):
    """A named set of users. Inactive groups grant nothing."""

    __tablename__ = 'acl_group'

    group_id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), unique=True, nullable=False, index=True)
    description = Column(Text, default='')
    active = Column(Boolean, default=True, nullable=False)
    created = Column(DateTime, default=_now)


class DBRole(db.Model):
    """A named bundle of permissions."""

    __tablename__ = 'acl_role'

    role_id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), unique=True, nullable=False, index=True)
    description = Column(Text, default='')
    created = Column(DateTime, default=_now)


class DBPermission(db.Model):
    """A permission name, shared by every API that requires it."""

    __tablename__ = 'acl_permission'

    permission_id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), unique=True, nullable=False, index=True)
    description = Column(Text, default='')


class DBProject(db.Model):
    """A backend service that registers its APIs."""

    __tablename__ = 'acl_project'

    project_id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), unique=True, nullable=False, index=True)
    base_url = Column(String(255), default='')
    version = Column(String(64), default='')
    description = Column(Text, default='')
    created = Column(DateTime, default=_now)
    updated = Column(DateTime, default=_now, onupdate=_now)


class DBApiPermission(db.Model):
    """An API of a project, and the permission needed to call it."""

    __tablename__ = 'acl_api_permission'
    __table_args__ = (
        UniqueConstraint('project_id', 'api_path', 'http_method',
                         'permission_id'),
    )

    api_id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(ForeignKey('acl_project.project_id'), nullable=False,
                        index=True)
    permission_id = Column(ForeignKey('acl_permission.permission_id'),
                           nullable=False)
    api_path = Column(String(255), nullable=False)
    http_method = Column(String(16), nullable=False)
    is_public = Column(Boolean, default=False, nullable=False)
    is_critical = Column(Boolean, default=False, nullable=False)
    description = Column(Text, default='')


class DBGroupMember(db.Model):
    """Membership of a user in a group."""

    __tablename__ = 'acl_group_member'

    group_id = Column(ForeignKey('acl_group.group_id'), primary_key=True)
    user_id = Column(ForeignKey('acl_user.user_id'), primary_key=True)
    is_primary = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=_now)


class DBGroupRole(db.Model):
    """Grant of a role to a group."""

    __tablename__ = 'acl_group_role'

    group_id = Column(ForeignKey('acl_group.group_id'), primary_key=True)
    role_id = Column(ForeignKey('acl_role.role_id'), primary_key=True)
    created_by = Column(String(255), default='system')
    created_at = Column(DateTime, default=_now)


class DBRolePermission(db.Model):
    """Grant of a permission to a role."""

    __tablename__ = 'acl_role_permission'

    role_id = Column(ForeignKey('acl_role.role_id'), primary_key=True)
    permission_id = Column(ForeignKey('acl_permission.permission_id'),
                           primary_key=True)
    created_by = Column(String(255), default='system')
    created_at = Column(DateTime, default=_now)
