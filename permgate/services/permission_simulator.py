"""
Permission Simulator.

Answers whether a principal would hold a role on a project if the project
were provisioned now with the default template. Never writes.
"""

from typing import Optional

import structlog
from sqlalchemy.orm import Session

from permgate.config import Settings, settings as default_settings
from permgate.services.membership_service import MembershipResolver
from permgate.services.template_repository import TemplateRepository, TemplateSnapshot

logger = structlog.get_logger(__name__)


class PermissionSimulator:
    """
    Read-only evaluation of template rules for a hypothetical project.
    """

    def __init__(
        self,
        db: Session,
        settings: Optional[Settings] = None,
        templates: Optional[TemplateRepository] = None,
        memberships: Optional[MembershipResolver] = None,
    ):
        self.db = db
        self.settings = settings or default_settings
        self.templates = templates or TemplateRepository(db)
        self.memberships = memberships or MembershipResolver(db)

    def would_have_permission(
        self,
        user_id: Optional[str],
        role: str,
        project_key: str,
        qualifier: str,
    ) -> bool:
        """
        Check whether a user would hold a role on a not-yet-provisioned project.

        Args:
            user_id: The user, or None for an anonymous visitor
            role: The role to check
            project_key: Key of the hypothetical project
            qualifier: Qualifier of the hypothetical project (e.g. "TRK")

        Returns:
            True if the default template would grant the role
        """
        template = self.templates.resolve_default(self.settings.DEFAULT_PERMISSION_TEMPLATE)
        if template is None:
            return False

        result = self._evaluate(template, user_id, role)
        logger.debug(
            "Simulated permission",
            template_id=template.id,
            user_id=user_id,
            role=role,
            project_key=project_key,
            qualifier=qualifier,
            result=result,
        )
        return result

    def _evaluate(self, template: TemplateSnapshot, user_id: Optional[str], role: str) -> bool:
        # Anyone matches anonymous and authenticated principals alike
        if template.has_anyone_entry(role):
            return True

        if user_id is None:
            return False

        if template.has_user_entry(user_id, role):
            return True

        # The principal is treated as the creator of the hypothetical project
        if role in template.creator_roles:
            return True

        group_ids = template.group_ids_for(role)
        if not group_ids:
            return False
        return not group_ids.isdisjoint(self.memberships.groups_of(user_id))
