"""
Template Repository.

Loads permission templates as immutable snapshots and handles template
administration (entries and creator characteristics).
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import FrozenSet, Mapping, Optional, Tuple

import structlog
from sqlalchemy.orm import Session

from permgate.database.models import (
    PermissionTemplate,
    PermissionTemplateCharacteristic,
    PermissionTemplateGroup,
    PermissionTemplateUser,
    User,
)
from permgate.exceptions import NotFoundError, ValidationError
from permgate.principals import ANYONE, Anyone, GroupId, GroupIdOrAnyone, UserId
from permgate.roles import validate_role

logger = structlog.get_logger(__name__)

GroupEntry = Tuple[GroupIdOrAnyone, str]
UserEntry = Tuple[UserId, str]


@dataclass(frozen=True)
class TemplateSnapshot:
    """
    Immutable view of a permission template.

    Attributes:
        id: Template id
        name: Template name
        group_entries: (group or ANYONE, role) pairs
        user_entries: (user, role) pairs
        characteristics: role -> "also grant to the project creator" flag
    """

    id: str
    name: str
    group_entries: FrozenSet[GroupEntry] = frozenset()
    user_entries: FrozenSet[UserEntry] = frozenset()
    characteristics: Mapping[str, bool] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def creator_roles(self) -> FrozenSet[str]:
        """Roles granted to whoever creates the project."""
        return frozenset(role for role, flag in self.characteristics.items() if flag)

    def has_user_entry(self, user_id: str, role: str) -> bool:
        return (UserId(user_id), role) in self.user_entries

    def has_anyone_entry(self, role: str) -> bool:
        return (ANYONE, role) in self.group_entries

    def group_ids_for(self, role: str) -> FrozenSet[str]:
        """Ids of the concrete groups the template grants a role to."""
        return frozenset(
            group.id
            for group, entry_role in self.group_entries
            if entry_role == role and isinstance(group, GroupId)
        )


class TemplateRepository:
    """
    Service for reading and administering permission templates.
    """

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_template(self, template_id: str) -> Optional[PermissionTemplate]:
        """Get a template by id."""
        return self.db.query(PermissionTemplate).filter(
            PermissionTemplate.id == template_id
        ).first()

    def get_template_by_name(self, organization_id: Optional[str], name: str) -> Optional[PermissionTemplate]:
        """Get a template by name within an organization."""
        return self.db.query(PermissionTemplate).filter(
            PermissionTemplate.organization_id == organization_id,
            PermissionTemplate.name == name,
        ).first()

    def find_template(
        self,
        template_id: Optional[str] = None,
        organization_id: Optional[str] = None,
        name: Optional[str] = None,
    ) -> PermissionTemplate:
        """
        Find a template by id or by organization and name.

        Raises:
            ValidationError: If both or neither of id and name are given
            NotFoundError: If no template matches
        """
        if (template_id is None) == (name is None):
            raise ValidationError("Template id or template name must be provided, not both")

        if template_id is not None:
            template = self.get_template(template_id)
            if not template:
                raise NotFoundError(f"Permission template with id '{template_id}' is not found")
            return template

        template = self.get_template_by_name(organization_id, name)
        if not template:
            raise NotFoundError(f"Permission template with name '{name}' is not found")
        return template

    def snapshot(self, template: PermissionTemplate) -> TemplateSnapshot:
        """Read a template and all its entries into an immutable snapshot."""
        group_rows = self.db.query(
            PermissionTemplateGroup.group_id, PermissionTemplateGroup.role
        ).filter(PermissionTemplateGroup.template_id == template.id).all()

        user_rows = self.db.query(
            PermissionTemplateUser.user_id, User.login, PermissionTemplateUser.role
        ).join(User, User.id == PermissionTemplateUser.user_id).filter(
            PermissionTemplateUser.template_id == template.id
        ).all()

        characteristic_rows = self.db.query(
            PermissionTemplateCharacteristic.role,
            PermissionTemplateCharacteristic.with_project_creator,
        ).filter(PermissionTemplateCharacteristic.template_id == template.id).all()

        return TemplateSnapshot(
            id=template.id,
            name=template.name,
            group_entries=frozenset(
                (ANYONE if group_id is None else GroupId(group_id), role)
                for group_id, role in group_rows
            ),
            user_entries=frozenset(
                (UserId(user_id, login=login), role) for user_id, login, role in user_rows
            ),
            characteristics=MappingProxyType(
                {role: bool(flag) for role, flag in characteristic_rows}
            ),
        )

    def resolve_template(self, template_id: str) -> TemplateSnapshot:
        """
        Snapshot of an explicitly referenced template.

        Raises:
            NotFoundError: If the template does not exist
        """
        return self.snapshot(self.find_template(template_id=template_id))

    def resolve_default(self, selector: Optional[str]) -> Optional[TemplateSnapshot]:
        """
        Snapshot of the template named by the default-template selector.

        Returns:
            None when the selector is empty or names a missing template
        """
        if not selector:
            return None
        template = self.get_template(selector)
        if not template:
            logger.warning("Default permission template not found", template_id=selector)
            return None
        return self.snapshot(template)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def create_template(
        self,
        organization_id: Optional[str],
        name: str,
        description: Optional[str] = None,
    ) -> PermissionTemplate:
        """
        Create an empty template.

        Raises:
            ValidationError: If the name is empty or taken in the organization
        """
        if not name or not name.strip():
            raise ValidationError("Template name must not be empty")
        if self.get_template_by_name(organization_id, name):
            raise ValidationError(f"A template with the name '{name}' already exists")

        template = PermissionTemplate(
            organization_id=organization_id,
            name=name,
            description=description,
        )
        self.db.add(template)
        self.db.commit()
        self.db.refresh(template)
        logger.info("Permission template created", template_id=template.id, name=name)
        return template

    def add_user_to_template(self, template_id: str, user_id: str, role: str) -> bool:
        """
        Add a (user, role) entry. Adding an existing pair is a no-op.

        Returns:
            True if the entry was created
        """
        validate_role(role)
        self.find_template(template_id=template_id)
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError(f"User with id '{user_id}' is not found")

        existing = self.db.query(PermissionTemplateUser).filter(
            PermissionTemplateUser.template_id == template_id,
            PermissionTemplateUser.user_id == user_id,
            PermissionTemplateUser.role == role,
        ).first()
        if existing:
            return False

        self.db.add(PermissionTemplateUser(template_id=template_id, user_id=user_id, role=role))
        self.db.commit()
        return True

    def add_group_to_template(self, template_id: str, group: GroupIdOrAnyone, role: str) -> bool:
        """
        Add a (group or Anyone, role) entry. Adding an existing pair is a no-op.

        Returns:
            True if the entry was created
        """
        validate_role(role)
        self.find_template(template_id=template_id)
        group_id = None if isinstance(group, Anyone) else group.id

        query = self.db.query(PermissionTemplateGroup).filter(
            PermissionTemplateGroup.template_id == template_id,
            PermissionTemplateGroup.role == role,
        )
        if group_id is None:
            query = query.filter(PermissionTemplateGroup.group_id.is_(None))
        else:
            query = query.filter(PermissionTemplateGroup.group_id == group_id)
        if query.first():
            return False

        self.db.add(PermissionTemplateGroup(template_id=template_id, group_id=group_id, role=role))
        self.db.commit()
        return True

    def remove_user_from_template(self, template_id: str, user_id: str, role: str) -> bool:
        """Remove a (user, role) entry. Returns False if it did not exist."""
        deleted = self.db.query(PermissionTemplateUser).filter(
            PermissionTemplateUser.template_id == template_id,
            PermissionTemplateUser.user_id == user_id,
            PermissionTemplateUser.role == role,
        ).delete(synchronize_session=False)
        self.db.commit()
        return deleted > 0

    def remove_group_from_template(self, template_id: str, group: GroupIdOrAnyone, role: str) -> bool:
        """Remove a (group or Anyone, role) entry. Returns False if it did not exist."""
        query = self.db.query(PermissionTemplateGroup).filter(
            PermissionTemplateGroup.template_id == template_id,
            PermissionTemplateGroup.role == role,
        )
        if isinstance(group, Anyone):
            query = query.filter(PermissionTemplateGroup.group_id.is_(None))
        else:
            query = query.filter(PermissionTemplateGroup.group_id == group.id)
        deleted = query.delete(synchronize_session=False)
        self.db.commit()
        return deleted > 0

    def set_creator_characteristic(
        self,
        template_id: str,
        role: str,
        with_project_creator: bool,
    ) -> PermissionTemplateCharacteristic:
        """Create or update the project-creator flag of a role."""
        validate_role(role)
        self.find_template(template_id=template_id)

        characteristic = self.db.query(PermissionTemplateCharacteristic).filter(
            PermissionTemplateCharacteristic.template_id == template_id,
            PermissionTemplateCharacteristic.role == role,
        ).first()

        if characteristic:
            characteristic.with_project_creator = with_project_creator
        else:
            characteristic = PermissionTemplateCharacteristic(
                template_id=template_id,
                role=role,
                with_project_creator=with_project_creator,
            )
            self.db.add(characteristic)

        self.db.commit()
        self.db.refresh(characteristic)
        return characteristic
