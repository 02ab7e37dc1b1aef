"""SQLAlchemy models"""

import uuid

from sqlalchemy import Boolean, Column, ForeignKey, Index, String, Table, Text, TIMESTAMP, UniqueConstraint, text
from sqlalchemy.orm import relationship, validates
from sqlalchemy.sql import func

from permgate.database.database import Base
from permgate.exceptions import ValidationError
from permgate.principals import is_anyone

# Association table for group membership
user_groups = Table(
    "groups_users",
    Base.metadata,
    Column("user_id", String, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("group_id", String, ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True),
)


def generate_id():
    """Generate a unique ID"""
    return str(uuid.uuid4())


def unique_where(name, *columns, where):
    """
    Partial unique index.

    Unique constraints treat NULLs as distinct, so rows with a NULL project
    (global scope) or a NULL group (Anyone) need their own index.
    """
    condition = text(where)
    return Index(name, *columns, unique=True, sqlite_where=condition, postgresql_where=condition)


class Organization(Base):
    """Organization model: the namespace owning groups and templates"""
    __tablename__ = "organizations"

    id = Column(String, primary_key=True, default=generate_id)
    key = Column(String, unique=True, nullable=False)
    name = Column(String, nullable=False)
    created_at = Column(TIMESTAMP, server_default=func.now())

    # Relationships
    groups = relationship("Group", back_populates="organization", cascade="all, delete-orphan")
    projects = relationship("Project", back_populates="organization")
    permission_templates = relationship(
        "PermissionTemplate", back_populates="organization", cascade="all, delete-orphan"
    )


class User(Base):
    """User model"""
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=generate_id)
    login = Column(String, unique=True, nullable=False)
    name = Column(String)
    email = Column(String)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())

    # Relationships
    groups = relationship("Group", secondary=user_groups, back_populates="users")


class Group(Base):
    """Group model. The virtual Anyone group is never stored here."""
    __tablename__ = "groups"
    __table_args__ = (
        UniqueConstraint("organization_id", "name", name="uq_groups_organization_name"),
    )

    id = Column(String, primary_key=True, default=generate_id)
    name = Column(String, nullable=False)
    organization_id = Column(String, ForeignKey("organizations.id"), nullable=False)
    description = Column(Text)
    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())

    # Relationships
    organization = relationship("Organization", back_populates="groups")
    users = relationship("User", secondary=user_groups, back_populates="groups")

    @validates("name")
    def validate_name(self, key, name):
        if not name or not name.strip():
            raise ValidationError("Group name must not be empty")
        if is_anyone(name):
            raise ValidationError(f"Group name '{name}' is reserved for the virtual Anyone group")
        return name


class Project(Base):
    """Project model"""
    __tablename__ = "projects"

    id = Column(String, primary_key=True, default=generate_id)
    key = Column(String, unique=True, nullable=False)
    name = Column(String, nullable=False)
    qualifier = Column(String(10), default="TRK", nullable=False)
    organization_id = Column(String, ForeignKey("organizations.id"), nullable=True)
    # Bumped whenever grants on the project change; permission caches key off it
    authorization_updated_at = Column(TIMESTAMP, nullable=True)
    created_at = Column(TIMESTAMP, server_default=func.now())

    # Relationships
    organization = relationship("Organization", back_populates="projects")


class UserPermission(Base):
    """A role held by a user, globally (project_id NULL) or on a project"""
    __tablename__ = "user_roles"
    __table_args__ = (
        UniqueConstraint("user_id", "project_id", "role", name="uq_user_roles_triple"),
        unique_where("uq_user_roles_global", "user_id", "role", where="project_id IS NULL"),
    )

    id = Column(String, primary_key=True, default=generate_id)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    project_id = Column(String, ForeignKey("projects.id", ondelete="CASCADE"), nullable=True)
    role = Column(String(64), nullable=False)
    created_at = Column(TIMESTAMP, server_default=func.now())


class GroupPermission(Base):
    """A role held by a group, or by Anyone when group_id is NULL"""
    __tablename__ = "group_roles"
    __table_args__ = (
        UniqueConstraint("group_id", "project_id", "role", name="uq_group_roles_triple"),
        unique_where("uq_group_roles_global", "group_id", "role", where="project_id IS NULL"),
        unique_where("uq_group_roles_anyone", "project_id", "role", where="group_id IS NULL"),
        unique_where(
            "uq_group_roles_anyone_global", "role", where="group_id IS NULL AND project_id IS NULL"
        ),
    )

    id = Column(String, primary_key=True, default=generate_id)
    group_id = Column(String, ForeignKey("groups.id", ondelete="CASCADE"), nullable=True)
    project_id = Column(String, ForeignKey("projects.id", ondelete="CASCADE"), nullable=True)
    role = Column(String(64), nullable=False)
    created_at = Column(TIMESTAMP, server_default=func.now())


class PermissionTemplate(Base):
    """Permission template model"""
    __tablename__ = "permission_templates"
    __table_args__ = (
        UniqueConstraint("organization_id", "name", name="uq_permission_templates_organization_name"),
    )

    id = Column(String, primary_key=True, default=generate_id)
    organization_id = Column(String, ForeignKey("organizations.id"), nullable=True)
    name = Column(String, nullable=False)
    description = Column(Text)
    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())

    # Relationships
    organization = relationship("Organization", back_populates="permission_templates")
    group_entries = relationship(
        "PermissionTemplateGroup", back_populates="template", cascade="all, delete-orphan"
    )
    user_entries = relationship(
        "PermissionTemplateUser", back_populates="template", cascade="all, delete-orphan"
    )
    characteristics = relationship(
        "PermissionTemplateCharacteristic", back_populates="template", cascade="all, delete-orphan"
    )


class PermissionTemplateGroup(Base):
    """Role granted to a group (or Anyone when group_id is NULL) by a template"""
    __tablename__ = "perm_templates_groups"
    __table_args__ = (
        UniqueConstraint("template_id", "group_id", "role", name="uq_perm_templates_groups_entry"),
        unique_where("uq_perm_templates_groups_anyone", "template_id", "role", where="group_id IS NULL"),
    )

    id = Column(String, primary_key=True, default=generate_id)
    template_id = Column(String, ForeignKey("permission_templates.id", ondelete="CASCADE"), nullable=False)
    group_id = Column(String, ForeignKey("groups.id", ondelete="CASCADE"), nullable=True)
    role = Column(String(64), nullable=False)
    created_at = Column(TIMESTAMP, server_default=func.now())

    template = relationship("PermissionTemplate", back_populates="group_entries")


class PermissionTemplateUser(Base):
    """Role granted to a user by a template"""
    __tablename__ = "perm_templates_users"
    __table_args__ = (
        UniqueConstraint("template_id", "user_id", "role", name="uq_perm_templates_users_entry"),
    )

    id = Column(String, primary_key=True, default=generate_id)
    template_id = Column(String, ForeignKey("permission_templates.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(64), nullable=False)
    created_at = Column(TIMESTAMP, server_default=func.now())

    template = relationship("PermissionTemplate", back_populates="user_entries")


class PermissionTemplateCharacteristic(Base):
    """Per-role flag: also grant the role to whoever creates the project"""
    __tablename__ = "perm_tpl_characteristics"
    __table_args__ = (
        UniqueConstraint("template_id", "role", name="uq_perm_tpl_characteristics_role"),
    )

    id = Column(String, primary_key=True, default=generate_id)
    template_id = Column(String, ForeignKey("permission_templates.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(64), nullable=False)
    with_project_creator = Column(Boolean, default=False, nullable=False)
    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())

    template = relationship("PermissionTemplate", back_populates="characteristics")
