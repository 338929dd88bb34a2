"""
Database integration for the group -> role -> permission graph.

Relations are kept in ID-keyed join tables and resolved with explicit
queries. Every mutation runs in a single transaction and reports its outcome
as an :class:`.AssignmentResult`; unknown names are reported in
``missing`` rather than raised. After a mutation that changed the graph is
committed, the cached decisions of the affected users are invalidated.
"""

from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from sqlalchemy.orm.session import Session

from . import util, models
from .models import DBUser, DBGroup, DBRole, DBPermission, DBProject, \
    DBApiPermission, DBGroupMember, DBGroupRole, DBRolePermission
from .. import invalidation
from .... import domain

import logging

logger = logging.getLogger(__name__)


class AlreadyExists(RuntimeError):
    """An entity with the same name is already registered."""


init_app = util.init_app
create_all = util.create_all
drop_all = util.drop_all
transaction = util.transaction


# Lookups.


def _one_by_name(session: Session, model: type, column: str,
                 value: str) -> Optional[models.db.Model]:
    if not value:
        return None
    obj: Optional[models.db.Model] = \
        session.query(model).filter(getattr(model, column) == value).first()
    return obj


def _user(session: Session, username: str) -> Optional[DBUser]:
    return _one_by_name(session, DBUser, 'username', username)


def _group(session: Session, name: str) -> Optional[DBGroup]:
    return _one_by_name(session, DBGroup, 'name', name)


def _role(session: Session, name: str) -> Optional[DBRole]:
    return _one_by_name(session, DBRole, 'name', name)


def _permission(session: Session, name: str) -> Optional[DBPermission]:
    if name == domain.UNMAPPED_PERMISSION:
        return None
    return _one_by_name(session, DBPermission, 'name', name)


def _project(session: Session, name: str) -> Optional[DBProject]:
    return _one_by_name(session, DBProject, 'name', name)


def get_principal(username: str) -> Optional[domain.Principal]:
    """Get a user and the names of their groups."""
    session = util.current_session()
    user = _user(session, username)
    if user is None:
        return None
    groups = session.query(DBGroup.name) \
        .join(DBGroupMember, DBGroupMember.group_id == DBGroup.group_id) \
        .filter(DBGroupMember.user_id == user.user_id)
    return domain.Principal(username=user.username,
                            groups=frozenset(name for name, in groups))


def user_exists(username: str) -> bool:
    return _user(util.current_session(), username) is not None


def user_permissions(username: str) -> FrozenSet[str]:
    """
    Resolve every permission name held by a user.

    This is the union over the user's active groups of the permissions of
    every role granted to those groups. Unknown or inactive users hold no
    permissions.
    """
    session = util.current_session()
    query = session.query(DBPermission.name) \
        .join(DBRolePermission,
              DBRolePermission.permission_id == DBPermission.permission_id) \
        .join(DBGroupRole, DBGroupRole.role_id == DBRolePermission.role_id) \
        .join(DBGroup, DBGroup.group_id == DBGroupRole.group_id) \
        .join(DBGroupMember, DBGroupMember.group_id == DBGroup.group_id) \
        .join(DBUser, DBUser.user_id == DBGroupMember.user_id) \
        .filter(DBUser.username == username) \
        .filter(DBUser.active.is_(True)) \
        .filter(DBGroup.active.is_(True)) \
        .distinct()
    return frozenset(name for name, in query)


def _to_domain(api: DBApiPermission, permission: str,
               project: str) -> domain.ApiPermission:
    return domain.ApiPermission(
        name=permission,
        project=project,
        api_path=api.api_path,
        http_method=api.http_method,
        is_public=bool(api.is_public),
        is_critical=bool(api.is_critical),
        description=api.description or ''
    )


def project_apis(project: str) -> List[domain.ApiPermission]:
    """Get every API registered by a project."""
    session = util.current_session()
    rows = session.query(DBApiPermission, DBPermission.name) \
        .join(DBPermission,
              DBPermission.permission_id == DBApiPermission.permission_id) \
        .join(DBProject, DBProject.project_id == DBApiPermission.project_id) \
        .filter(DBProject.name == project) \
        .order_by(DBApiPermission.api_id)
    return [_to_domain(api, name, project) for api, name in rows]


def get_project(name: str) -> Optional[domain.Project]:
    db_project = _project(util.current_session(), name)
    if db_project is None:
        return None
    return domain.Project(name=db_project.name,
                          base_url=db_project.base_url or '',
                          version=db_project.version or '',
                          description=db_project.description or '')


def find_api(project: str, api_path: str, http_method: str,
             permission: Optional[str] = None) \
        -> Optional[domain.ApiPermission]:
    """Find an API by project, exact path, method and (optionally) name."""
    session = util.current_session()
    query = session.query(DBApiPermission, DBPermission.name) \
        .join(DBPermission,
              DBPermission.permission_id == DBApiPermission.permission_id) \
        .join(DBProject, DBProject.project_id == DBApiPermission.project_id) \
        .filter(DBProject.name == project) \
        .filter(DBApiPermission.api_path == api_path) \
        .filter(DBApiPermission.http_method == http_method.upper())
    if permission:
        query = query.filter(DBPermission.name == permission)
    row = query.first()
    if row is None:
        return None
    api, name = row
    return _to_domain(api, name, project)


def group_roles(group: str) -> Optional[List[str]]:
    """Names of the roles granted to a group, or ``None`` if unknown."""
    session = util.current_session()
    db_group = _group(session, group)
    if db_group is None:
        return None
    rows = session.query(DBRole.name) \
        .join(DBGroupRole, DBGroupRole.role_id == DBRole.role_id) \
        .filter(DBGroupRole.group_id == db_group.group_id) \
        .order_by(DBRole.name)
    return [name for name, in rows]


def role_permissions(role: str) -> Optional[List[str]]:
    """Names of the permissions granted to a role, or ``None`` if unknown."""
    session = util.current_session()
    db_role = _role(session, role)
    if db_role is None:
        return None
    rows = session.query(DBPermission.name) \
        .join(DBRolePermission,
              DBRolePermission.permission_id == DBPermission.permission_id) \
        .filter(DBRolePermission.role_id == db_role.role_id) \
        .order_by(DBPermission.name)
    return [name for name, in rows]


def _members(session: Session, group_id: int) -> Set[str]:
    rows = session.query(DBUser.username) \
        .join(DBGroupMember, DBGroupMember.user_id == DBUser.user_id) \
        .filter(DBGroupMember.group_id == group_id)
    return {name for name, in rows}


def _holders(session: Session, role_id: int) -> Set[str]:
    rows = session.query(DBUser.username) \
        .join(DBGroupMember, DBGroupMember.user_id == DBUser.user_id) \
        .join(DBGroupRole, DBGroupRole.group_id == DBGroupMember.group_id) \
        .filter(DBGroupRole.role_id == role_id) \
        .distinct()
    return {name for name, in rows}


def _finish(result: domain.AssignmentResult,
            affected: Iterable[str]) -> domain.AssignmentResult:
    if result.changed:
        invalidation.invalidate_users(affected)
    return result


# Entities.


def create_user(username: str, active: bool = True) -> None:
    """Register a principal in the ACL."""
    with transaction() as session:
        if _user(session, username) is not None:
            raise AlreadyExists(f'User {username} exists')
        session.add(DBUser(username=username, active=active))
    logger.info('Created user %s', username)


def create_group(name: str, description: str = '',
                 active: bool = True) -> None:
    with transaction() as session:
        if _group(session, name) is not None:
            raise AlreadyExists(f'Group {name} exists')
        session.add(DBGroup(name=name, description=description,
                            active=active))
    logger.info('Created group %s', name)


def create_role(name: str, description: str = '') -> None:
    with transaction() as session:
        if _role(session, name) is not None:
            raise AlreadyExists(f'Role {name} exists')
        session.add(DBRole(name=name, description=description))
    logger.info('Created role %s', name)


def set_user_active(username: str, active: bool) -> domain.AssignmentResult:
    with transaction() as session:
        user = _user(session, username)
        if user is None:
            return domain.AssignmentResult(missing=(username,))
        changed = bool(user.active) != active
        user.active = active
    return _finish(domain.AssignmentResult(assigned=1, changed=changed),
                   [username])


def set_group_active(name: str, active: bool) -> domain.AssignmentResult:
    """Activate or deactivate a group; members are invalidated."""
    with transaction() as session:
        group = _group(session, name)
        if group is None:
            return domain.AssignmentResult(missing=(name,))
        changed = bool(group.active) != active
        group.active = active
        affected = _members(session, group.group_id)
    return _finish(domain.AssignmentResult(assigned=1, changed=changed),
                   affected)


# Single assignments. These are idempotent.


def assign_role_to_group(group: str, role: str,
                         created_by: str = 'system') \
        -> domain.AssignmentResult:
    """Grant ``role`` to ``group``."""
    with transaction() as session:
        db_group, db_role = _group(session, group), _role(session, role)
        missing = tuple(name for name, obj
                        in ((group, db_group), (role, db_role)) if obj is None)
        if missing:
            logger.warning('Cannot assign role: unknown %s', missing)
            return domain.AssignmentResult(missing=missing)
        existing = session.get(
            DBGroupRole, (db_group.group_id, db_role.role_id)
        )
        changed = existing is None
        if changed:
            session.add(DBGroupRole(group_id=db_group.group_id,
                                    role_id=db_role.role_id,
                                    created_by=created_by))
        affected = _members(session, db_group.group_id)
    return _finish(domain.AssignmentResult(assigned=1, changed=changed),
                   affected)


def remove_role_from_group(group: str, role: str) -> domain.AssignmentResult:
    """Revoke ``role`` from ``group``."""
    with transaction() as session:
        db_group, db_role = _group(session, group), _role(session, role)
        missing = tuple(name for name, obj
                        in ((group, db_group), (role, db_role)) if obj is None)
        if missing:
            return domain.AssignmentResult(missing=missing)
        existing = session.get(
            DBGroupRole, (db_group.group_id, db_role.role_id)
        )
        changed = existing is not None
        if changed:
            session.delete(existing)
        affected = _members(session, db_group.group_id)
    return _finish(domain.AssignmentResult(assigned=0, changed=changed),
                   affected)


def assign_permission_to_role(role: str, permission: str,
                              created_by: str = 'system') \
        -> domain.AssignmentResult:
    """Grant ``permission`` to ``role``."""
    with transaction() as session:
        db_role = _role(session, role)
        db_perm = _permission(session, permission)
        missing = tuple(name for name, obj
                        in ((role, db_role), (permission, db_perm))
                        if obj is None)
        if missing:
            logger.warning('Cannot assign permission: unknown %s', missing)
            return domain.AssignmentResult(missing=missing)
        existing = session.get(
            DBRolePermission, (db_role.role_id, db_perm.permission_id)
        )
        changed = existing is None
        if changed:
            session.add(DBRolePermission(role_id=db_role.role_id,
                                         permission_id=db_perm.permission_id,
                                         created_by=created_by))
        affected = _holders(session, db_role.role_id)
    return _finish(domain.AssignmentResult(assigned=1, changed=changed),
                   affected)


def remove_permission_from_role(role: str, permission: str) \
        -> domain.AssignmentResult:
    """Revoke ``permission`` from ``role``."""
    with transaction() as session:
        db_role = _role(session, role)
        db_perm = _permission(session, permission)
        missing = tuple(name for name, obj
                        in ((role, db_role), (permission, db_perm))
                        if obj is None)
        if missing:
            return domain.AssignmentResult(missing=missing)
        existing = session.get(
            DBRolePermission, (db_role.role_id, db_perm.permission_id)
        )
        changed = existing is not None
        if changed:
            session.delete(existing)
        affected = _holders(session, db_role.role_id)
    return _finish(domain.AssignmentResult(assigned=0, changed=changed),
                   affected)


def add_user_to_group(username: str, group: str,
                      is_primary: bool = False) -> domain.AssignmentResult:
    """Make ``username`` a member of ``group``."""
    with transaction() as session:
        db_user, db_group = _user(session, username), _group(session, group)
        missing = tuple(name for name, obj
                        in ((username, db_user), (group, db_group))
                        if obj is None)
        if missing:
            logger.warning('Cannot add member: unknown %s', missing)
            return domain.AssignmentResult(missing=missing)
        existing = session.get(
            DBGroupMember, (db_group.group_id, db_user.user_id)
        )
        changed = existing is None
        if changed:
            session.add(DBGroupMember(group_id=db_group.group_id,
                                      user_id=db_user.user_id,
                                      is_primary=is_primary))
    return _finish(domain.AssignmentResult(assigned=1, changed=changed),
                   [username])


def remove_user_from_group(username: str, group: str) \
        -> domain.AssignmentResult:
    """Remove ``username`` from ``group``."""
    with transaction() as session:
        db_user, db_group = _user(session, username), _group(session, group)
        missing = tuple(name for name, obj
                        in ((username, db_user), (group, db_group))
                        if obj is None)
        if missing:
            return domain.AssignmentResult(missing=missing)
        existing = session.get(
            DBGroupMember, (db_group.group_id, db_user.user_id)
        )
        changed = existing is not None
        if changed:
            session.delete(existing)
    return _finish(domain.AssignmentResult(assigned=0, changed=changed),
                   [username])


# Bulk replacement. The target keeps exactly the listed relations that could
# be resolved; unknown names are reported and skipped.


def update_group_roles(group: str, roles: Iterable[str],
                       created_by: str = 'system') -> domain.AssignmentResult:
    """Replace the roles granted to ``group``."""
    roles = sorted(set(roles))
    with transaction() as session:
        db_group = _group(session, group)
        if db_group is None:
            return domain.AssignmentResult(missing=(group,))
        found: Dict[str, DBRole] = {}
        missing: List[str] = []
        for name in roles:
            db_role = _role(session, name)
            if db_role is None:
                missing.append(name)
            else:
                found[name] = db_role
        existing = session.query(DBGroupRole) \
            .filter(DBGroupRole.group_id == db_group.group_id).all()
        before = {row.role_id for row in existing}
        for row in existing:
            session.delete(row)
        session.flush()
        for db_role in found.values():
            session.add(DBGroupRole(group_id=db_group.group_id,
                                    role_id=db_role.role_id,
                                    created_by=created_by))
        after = {db_role.role_id for db_role in found.values()}
        affected = _members(session, db_group.group_id)
    result = domain.AssignmentResult(assigned=len(found),
                                     missing=tuple(missing),
                                     changed=before != after)
    return _finish(result, affected)


def update_user_groups(username: str, groups: Iterable[str]) \
        -> domain.AssignmentResult:
    """Replace the groups of which ``username`` is a member."""
    groups = sorted(set(groups))
    with transaction() as session:
        db_user = _user(session, username)
        if db_user is None:
            return domain.AssignmentResult(missing=(username,))
        found: Dict[str, DBGroup] = {}
        missing: List[str] = []
        for name in groups:
            db_group = _group(session, name)
            if db_group is None:
                missing.append(name)
            else:
                found[name] = db_group
        existing = session.query(DBGroupMember) \
            .filter(DBGroupMember.user_id == db_user.user_id).all()
        before = {row.group_id for row in existing}
        primary = {row.group_id for row in existing if row.is_primary}
        for row in existing:
            session.delete(row)
        session.flush()
        for db_group in found.values():
            session.add(DBGroupMember(group_id=db_group.group_id,
                                      user_id=db_user.user_id,
                                      is_primary=db_group.group_id in primary))
        after = {db_group.group_id for db_group in found.values()}
    result = domain.AssignmentResult(assigned=len(found),
                                     missing=tuple(missing),
                                     changed=before != after)
    return _finish(result, [username])


def update_role_permissions(role: str, permissions: Iterable[str],
                            created_by: str = 'system') \
        -> domain.AssignmentResult:
    """Replace the permissions granted to ``role``."""
    permissions = sorted(set(permissions))
    with transaction() as session:
        db_role = _role(session, role)
        if db_role is None:
            return domain.AssignmentResult(missing=(role,))
        found: Dict[str, DBPermission] = {}
        missing: List[str] = []
        for name in permissions:
            db_perm = _permission(session, name)
            if db_perm is None:
                missing.append(name)
            else:
                found[name] = db_perm
        existing = session.query(DBRolePermission) \
            .filter(DBRolePermission.role_id == db_role.role_id).all()
        before = {row.permission_id for row in existing}
        for row in existing:
            session.delete(row)
        session.flush()
        for db_perm in found.values():
            session.add(DBRolePermission(role_id=db_role.role_id,
                                         permission_id=db_perm.permission_id,
                                         created_by=created_by))
        after = {db_perm.permission_id for db_perm in found.values()}
        affected = _holders(session, db_role.role_id)
    result = domain.AssignmentResult(assigned=len(found),
                                     missing=tuple(missing),
                                     changed=before != after)
    return _finish(result, affected)


# Projects.


def register_project(name: str, base_url: str = '', version: str = '',
                     description: str = '',
                     apis: Iterable[domain.ApiPermission] = ()) \
        -> Tuple[int, bool]:
    """
    Create or update a project and its APIs.

    APIs are matched on (path, method, permission name); existing ones are
    updated in place and new ones are added. Permission names are created
    on first use.

    Returns
    -------
    int
        Number of APIs registered.
    bool
        Whether any public flag changed. In that case every cached decision
        is invalidated.

    """
    if not name:
        raise ValueError('Project name is required')
    count = 0
    public_changed = False
    with transaction() as session:
        project = _project(session, name)
        if project is None:
            project = DBProject(name=name)
            session.add(project)
        project.base_url = base_url
        project.version = version
        project.description = description
        session.flush()

        for api in apis:
            if api.name == domain.UNMAPPED_PERMISSION:
                raise ValueError(f'{api.name} is reserved')
            permission = _permission(session, api.name)
            if permission is None:
                permission = DBPermission(name=api.name,
                                          description=api.description)
                session.add(permission)
                session.flush()
            method = api.http_method.upper()
            db_api = session.query(DBApiPermission) \
                .filter(DBApiPermission.project_id == project.project_id) \
                .filter(DBApiPermission.api_path == api.api_path) \
                .filter(DBApiPermission.http_method == method) \
                .filter(DBApiPermission.permission_id
                        == permission.permission_id) \
                .first()
            if db_api is None:
                db_api = DBApiPermission(
                    project_id=project.project_id,
                    permission_id=permission.permission_id,
                    api_path=api.api_path,
                    http_method=method,
                    is_public=False
                )
                session.add(db_api)
            if bool(db_api.is_public) != api.is_public:
                public_changed = True
            db_api.is_public = api.is_public
            db_api.is_critical = api.is_critical
            db_api.description = api.description
            count += 1
    logger.info('Registered %i APIs for project %s', count, name)
    if public_changed:
        invalidation.invalidate_all()
    return count, public_changed


def all_usernames() -> List[str]:
    rows = util.current_session().query(DBUser.username) \
        .order_by(DBUser.username)
    return [name for name, in rows]
