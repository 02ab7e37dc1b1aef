"""
Grant Store.

Durable (principal, role, scope) triples. Inserts are idempotent by triple.
The store flushes but never commits: the caller owns the transaction.
"""

from datetime import datetime, timezone
from typing import Callable, List, Optional, Set

import structlog
from sqlalchemy import and_, distinct, func, or_, select
from sqlalchemy.orm import Session

from permgate.database.models import (
    Group,
    GroupPermission,
    Project,
    User,
    UserPermission,
    user_groups,
)
from permgate.exceptions import ValidationError
from permgate.principals import (
    Anyone,
    GroupId,
    GroupIdOrAnyone,
    Principal,
    ProjectScope,
    Scope,
    UserId,
    is_anyone,
    project_id_of,
)
from permgate.roles import validate_role
from permgate.services.membership_service import GroupLookup

logger = structlog.get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _group_id_of(group: GroupIdOrAnyone) -> Optional[str]:
    # Anyone is stored as a NULL group id
    if isinstance(group, Anyone):
        return None
    return group.id


def _nullable_eq(column, value):
    if value is None:
        return column.is_(None)
    return column == value


class GrantStore:
    """
    Reads and writes grants held by users, groups and Anyone.
    """

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert_grant(self, principal: Principal, role: str, scope: Scope) -> bool:
        """
        Insert a grant for any kind of principal.

        Returns:
            True if a row was written, False if the triple already existed
        """
        if isinstance(principal, UserId):
            return self.insert_user_permission(principal.id, role, scope, refresh=False)
        if isinstance(principal, (GroupId, Anyone)):
            return self.insert_group_permission(principal, role, scope, refresh=False)
        raise ValidationError(f"Unsupported principal: {principal!r}")

    def insert_user_permission(
        self,
        user_id: str,
        role: str,
        scope: Scope,
        refresh: bool = True,
    ) -> bool:
        """Grant a role to a user. Refreshes the project timestamp unless told not to."""
        validate_role(role)
        project_id = project_id_of(scope)

        existing = self.db.query(UserPermission).filter(
            UserPermission.user_id == user_id,
            _nullable_eq(UserPermission.project_id, project_id),
            UserPermission.role == role,
        ).first()

        inserted = False
        if not existing:
            self.db.add(UserPermission(user_id=user_id, project_id=project_id, role=role))
            self.db.flush()
            logger.debug("User permission inserted", user_id=user_id, role=role, project_id=project_id)
            inserted = True

        if refresh:
            self.refresh_authorization_timestamp(scope)
        return inserted

    def insert_group_permission(
        self,
        group: GroupIdOrAnyone,
        role: str,
        scope: Scope,
        refresh: bool = True,
    ) -> bool:
        """Grant a role to a group or to Anyone."""
        validate_role(role)
        group_id = _group_id_of(group)
        project_id = project_id_of(scope)

        existing = self.db.query(GroupPermission).filter(
            _nullable_eq(GroupPermission.group_id, group_id),
            _nullable_eq(GroupPermission.project_id, project_id),
            GroupPermission.role == role,
        ).first()

        inserted = False
        if not existing:
            self.db.add(GroupPermission(group_id=group_id, project_id=project_id, role=role))
            self.db.flush()
            logger.debug("Group permission inserted", group_id=group_id, role=role, project_id=project_id)
            inserted = True

        if refresh:
            self.refresh_authorization_timestamp(scope)
        return inserted

    def insert_group_permission_by_name(
        self,
        organization_id: str,
        group_name: str,
        role: str,
        scope: Scope,
    ) -> bool:
        """Grant a role to a group given by name; "anyone" designates Anyone."""
        group = GroupLookup(self.db).find_group_or_anyone(
            organization_id=organization_id, name=group_name
        )
        return self.insert_group_permission(group, role, scope)

    def delete_user_permission(self, user_id: str, role: str, scope: Scope) -> int:
        """Remove a role from a user. Returns the number of rows deleted."""
        project_id = project_id_of(scope)
        deleted = self.db.query(UserPermission).filter(
            UserPermission.user_id == user_id,
            _nullable_eq(UserPermission.project_id, project_id),
            UserPermission.role == role,
        ).delete(synchronize_session=False)
        self.refresh_authorization_timestamp(scope)
        return deleted

    def delete_group_permission(self, group: GroupIdOrAnyone, role: str, scope: Scope) -> int:
        """Remove a role from a group or from Anyone."""
        group_id = _group_id_of(group)
        project_id = project_id_of(scope)
        deleted = self.db.query(GroupPermission).filter(
            _nullable_eq(GroupPermission.group_id, group_id),
            _nullable_eq(GroupPermission.project_id, project_id),
            GroupPermission.role == role,
        ).delete(synchronize_session=False)
        self.refresh_authorization_timestamp(scope)
        return deleted

    def delete_group_permissions_by_group(self, group_id: str) -> int:
        """Remove every grant of a group, global and project ones."""
        return self.db.query(GroupPermission).filter(
            GroupPermission.group_id == group_id
        ).delete(synchronize_session=False)

    def delete_permissions_by_project(self, project_id: str) -> int:
        """Remove every user and group grant attached to a project."""
        deleted = self.db.query(UserPermission).filter(
            UserPermission.project_id == project_id
        ).delete(synchronize_session=False)
        deleted += self.db.query(GroupPermission).filter(
            GroupPermission.project_id == project_id
        ).delete(synchronize_session=False)
        self.refresh_authorization_timestamp(ProjectScope(project_id))
        return deleted

    def refresh_authorization_timestamp(self, scope: Scope) -> None:
        """Bump the project's authorization timestamp. No-op for global scope."""
        project_id = project_id_of(scope)
        if project_id is None:
            return
        self.db.query(Project).filter(Project.id == project_id).update(
            {Project.authorization_updated_at: self.clock()}
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def select_group_permissions(self, group_name: str, scope: Scope) -> Set[str]:
        """
        Roles held by a group on a scope, looked up by group name.

        The name "anyone" in any letter case selects the Anyone grants.
        """
        project_id = project_id_of(scope)
        query = self.db.query(GroupPermission.role).filter(
            _nullable_eq(GroupPermission.project_id, project_id)
        )
        if is_anyone(group_name):
            query = query.filter(GroupPermission.group_id.is_(None))
        else:
            query = query.join(Group, Group.id == GroupPermission.group_id).filter(
                Group.name == group_name
            )
        return {row.role for row in query.all()}

    def select_user_permissions(self, login: str, scope: Scope) -> Set[str]:
        """Roles granted directly to a user, looked up by login."""
        project_id = project_id_of(scope)
        rows = self.db.query(UserPermission.role).join(
            User, User.id == UserPermission.user_id
        ).filter(
            User.login == login,
            _nullable_eq(UserPermission.project_id, project_id),
        ).all()
        return {row.role for row in rows}

    def count_project_permissions(self, project_id: str) -> int:
        """Count user and group grants attached to a project."""
        users = self.db.query(func.count(UserPermission.id)).filter(
            UserPermission.project_id == project_id
        ).scalar()
        groups = self.db.query(func.count(GroupPermission.id)).filter(
            GroupPermission.project_id == project_id
        ).scalar()
        return users + groups

    def select_project_ids_by_permission_and_user(self, role: str, user_id: str) -> List[str]:
        """
        Projects on which a user holds a role, directly, through one of its
        groups, or through Anyone. Sorted by project id.
        """
        member_of = select(user_groups.c.group_id).where(user_groups.c.user_id == user_id)

        direct = select(UserPermission.project_id).where(
            UserPermission.user_id == user_id,
            UserPermission.role == role,
            UserPermission.project_id.is_not(None),
        )
        via_groups = select(GroupPermission.project_id).where(
            GroupPermission.role == role,
            GroupPermission.project_id.is_not(None),
            or_(
                GroupPermission.group_id.in_(member_of),
                GroupPermission.group_id.is_(None),
            ),
        )
        rows = self.db.execute(direct.union(via_groups))
        return sorted({row[0] for row in rows})

    def count_users_with_permission(self, role: str, excluded_group_id: Optional[str] = None) -> int:
        """
        Count grants of a global role to users, directly and through group
        membership. A user holding the role both ways counts twice.

        Args:
            role: The global role
            excluded_group_id: Ignore grants coming from this group, e.g. to
                check whether removing it would leave nobody with the role
        """
        direct = self.db.query(func.count(distinct(UserPermission.user_id))).filter(
            UserPermission.role == role,
            UserPermission.project_id.is_(None),
        ).scalar()

        group_filter = [
            GroupPermission.role == role,
            GroupPermission.project_id.is_(None),
            GroupPermission.group_id.is_not(None),
        ]
        if excluded_group_id is not None:
            group_filter.append(GroupPermission.group_id != excluded_group_id)

        via_groups = self.db.query(func.count(distinct(user_groups.c.user_id))).select_from(
            GroupPermission
        ).join(
            user_groups, user_groups.c.group_id == GroupPermission.group_id
        ).filter(and_(*group_filter)).scalar()

        return direct + via_groups
