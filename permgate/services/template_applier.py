"""
Template Applier.

Materializes a permission template as grants on a project. One call is one
transaction: either every grant and the authorization timestamp are
committed, or nothing is.
"""

from typing import Optional, Union

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from permgate.config import Settings, settings as default_settings
from permgate.database.models import Project
from permgate.exceptions import NotFoundError, StorageError
from permgate.principals import ProjectScope, UserId
from permgate.services.grant_store import GrantStore
from permgate.services.template_repository import TemplateRepository, TemplateSnapshot

logger = structlog.get_logger(__name__)


class TemplateApplier:
    """
    Service applying permission templates to projects.
    """

    def __init__(
        self,
        db: Session,
        settings: Optional[Settings] = None,
        grant_store: Optional[GrantStore] = None,
        templates: Optional[TemplateRepository] = None,
    ):
        self.db = db
        self.settings = settings or default_settings
        self.grant_store = grant_store or GrantStore(db)
        self.templates = templates or TemplateRepository(db)

    def apply_template_to_project(
        self,
        template: Union[str, TemplateSnapshot],
        project_id: str,
        acting_user_id: Optional[str] = None,
    ) -> TemplateSnapshot:
        """
        Apply a permission template to a project.

        This will:
        1. Grant every group entry role (Anyone included) on the project
        2. Grant every user entry role on the project
        3. Grant every creator-flagged role to the acting user, if given
        4. Refresh the project's authorization timestamp

        Any failure while writing rolls back every grant of this call.

        Args:
            template: Template id, or an already resolved snapshot
            project_id: The project to apply the template to
            acting_user_id: Whoever is provisioning the project, if anyone

        Returns:
            The snapshot that was applied

        Raises:
            NotFoundError: If the template or the project does not exist
            StorageError: If the transaction could not be committed
        """
        if not isinstance(template, TemplateSnapshot):
            template = self.templates.resolve_template(template)

        project = self.db.query(Project).filter(Project.id == project_id).first()
        if not project:
            raise NotFoundError(f"Project with id '{project_id}' is not found")

        scope = ProjectScope(project.id)
        try:
            written = self._write_grants(template, scope, acting_user_id)
            self.grant_store.refresh_authorization_timestamp(scope)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                "Failed to apply permission template, rolled back",
                template_id=template.id,
                project_id=project_id,
                error=str(e),
            )
            raise StorageError(
                f"Could not apply permission template '{template.id}' to project '{project_id}'"
            ) from e
        except Exception:
            self.db.rollback()
            logger.error(
                "Permission template application aborted, rolled back",
                template_id=template.id,
                project_id=project_id,
            )
            raise

        logger.info(
            "Permission template applied",
            template_id=template.id,
            project_id=project_id,
            grants_written=written,
            with_creator=acting_user_id is not None,
        )
        return template

    def apply_default_template(
        self,
        project_id: str,
        acting_user_id: Optional[str] = None,
    ) -> Optional[TemplateSnapshot]:
        """
        Apply the configured default template to a project.

        A selector naming no existing template makes this a no-op.

        Returns:
            The applied snapshot, or None when no default template resolves
        """
        selector = self.settings.DEFAULT_PERMISSION_TEMPLATE
        template = self.templates.resolve_default(selector)
        if template is None:
            logger.warning(
                "No default permission template, project left without template grants",
                project_id=project_id,
                selector=selector,
            )
            return None
        return self.apply_template_to_project(template, project_id, acting_user_id)

    def _write_grants(
        self,
        template: TemplateSnapshot,
        scope: ProjectScope,
        acting_user_id: Optional[str],
    ) -> int:
        written = 0
        for group, role in template.group_entries:
            written += self.grant_store.insert_grant(group, role, scope)

        for user, role in template.user_entries:
            written += self.grant_store.insert_grant(user, role, scope)

        if acting_user_id is not None:
            creator = UserId(acting_user_id)
            for role in template.creator_roles:
                written += self.grant_store.insert_grant(creator, role, scope)
        return written
