"""
Membership Service.

Read-only lookups over group membership, and conversion of external group
references into principal values.
"""

from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from permgate.database.models import Group, User, user_groups
from permgate.exceptions import NotFoundError, ValidationError
from permgate.principals import ANYONE, GroupId, GroupIdOrAnyone, is_anyone


class MembershipResolver:
    """
    Answers which groups a user currently belongs to.
    """

    def __init__(self, db: Session):
        self.db = db

    def groups_of(self, user_id: str) -> Set[str]:
        """
        Get the ids of the groups a user belongs to.

        Args:
            user_id: The user

        Returns:
            Set of group ids; empty for unknown users
        """
        rows = self.db.execute(
            select(user_groups.c.group_id).where(user_groups.c.user_id == user_id)
        )
        return {row.group_id for row in rows}

    def group_names_by_logins(self, logins: Iterable[str]) -> Dict[str, List[str]]:
        """
        Get group names for several users at once.

        Returns:
            Dict mapping each login to its group names sorted alphabetically.
            Logins without groups map to an empty list.
        """
        logins = list(logins)
        result: Dict[str, List[str]] = {login: [] for login in logins}
        if not logins:
            return result

        rows = self.db.execute(
            select(User.login, Group.name)
            .join(user_groups, user_groups.c.user_id == User.id)
            .join(Group, Group.id == user_groups.c.group_id)
            .where(User.login.in_(logins))
            .order_by(User.login, Group.name)
        )
        for login, group_name in rows:
            result[login].append(group_name)
        return result

    def count_members(self, group_id: str) -> int:
        """Count the users belonging to a group."""
        return self.db.execute(
            select(func.count()).select_from(user_groups).where(user_groups.c.group_id == group_id)
        ).scalar_one()


class GroupLookup:
    """
    Resolves group references given by id, or by organization and name.

    The name "anyone" (any letter case) designates the virtual Anyone group.
    This is the only place where that name comparison happens.
    """

    def __init__(self, db: Session):
        self.db = db

    def find_group(
        self,
        group_id: Optional[str] = None,
        organization_id: Optional[str] = None,
        name: Optional[str] = None,
    ) -> GroupId:
        """
        Find a concrete group. The virtual Anyone group is not supported.

        Raises:
            ValidationError: If both or neither of id and name are given
            NotFoundError: If the group does not exist or Anyone is requested
        """
        self._check_reference(group_id, organization_id, name)
        if group_id is not None:
            return self._by_id(group_id)

        if is_anyone(name):
            raise NotFoundError(f"No group with name '{name}'")
        return self._by_name(organization_id, name)

    def find_group_or_anyone(
        self,
        group_id: Optional[str] = None,
        organization_id: Optional[str] = None,
        name: Optional[str] = None,
    ) -> GroupIdOrAnyone:
        """
        Find a concrete group or the virtual Anyone group.

        Raises:
            ValidationError: If both or neither of id and name are given
            NotFoundError: If a concrete group does not exist
        """
        self._check_reference(group_id, organization_id, name)
        if group_id is not None:
            return self._by_id(group_id)

        if is_anyone(name):
            return ANYONE
        return self._by_name(organization_id, name)

    @staticmethod
    def _check_reference(
        group_id: Optional[str],
        organization_id: Optional[str],
        name: Optional[str],
    ) -> None:
        if group_id is not None:
            if organization_id is not None or name is not None:
                raise ValidationError("Either group id or couple organization/group name must be set")
            return
        if name is None:
            raise ValidationError("Group name or group id must be provided")

    def _by_id(self, group_id: str) -> GroupId:
        group = self.db.query(Group).filter(Group.id == group_id).first()
        if not group:
            raise NotFoundError(f"No group with id '{group_id}'")
        return GroupId(group.id, organization_id=group.organization_id)

    def _by_name(self, organization_id: Optional[str], name: str) -> GroupId:
        group = self.db.query(Group).filter(
            Group.organization_id == organization_id,
            Group.name == name,
        ).first()
        if not group:
            raise NotFoundError(f"No group with name '{name}'")
        return GroupId(group.id, organization_id=group.organization_id)
