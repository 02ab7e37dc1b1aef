"""
Principal and scope value types.

The subject of a grant or a template entry is one of:
- UserId: a concrete user
- GroupId: a concrete group
- Anyone: the virtual group of every principal, anonymous visitors included

Anyone is a value, not a row. Storage represents it as a NULL group id; that
convention stays inside the persistence layer.
"""

from dataclasses import dataclass, field
from typing import Optional, Union

ANYONE_GROUP_NAME = "Anyone"


@dataclass(frozen=True)
class UserId:
    """A concrete user. Equality is by id only."""

    id: str
    login: Optional[str] = field(default=None, compare=False)


@dataclass(frozen=True)
class GroupId:
    """A concrete group."""

    id: str
    organization_id: Optional[str] = field(default=None, compare=False)


@dataclass(frozen=True)
class Anyone:
    """The virtual group matching every principal."""

    def __repr__(self) -> str:
        return "ANYONE"


ANYONE = Anyone()

GroupIdOrAnyone = Union[GroupId, Anyone]
Principal = Union[UserId, GroupId, Anyone]


def is_anyone(group_name: Optional[str]) -> bool:
    """Check whether a group name designates the virtual Anyone group."""
    return group_name is not None and group_name.lower() == ANYONE_GROUP_NAME.lower()


@dataclass(frozen=True)
class GlobalScope:
    """Grants not attached to any project."""

    def __repr__(self) -> str:
        return "GLOBAL"


@dataclass(frozen=True)
class ProjectScope:
    """Grants attached to one project."""

    project_id: str


GLOBAL = GlobalScope()

Scope = Union[GlobalScope, ProjectScope]


def project_id_of(scope: Scope) -> Optional[str]:
    """Storage representation of a scope: the project id, or None for global."""
    if isinstance(scope, ProjectScope):
        return scope.project_id
    return None
