"""
Command line tool for permission templates.

Usage:
    permgate init-db
    permgate apply --project ID [--template ID] [--creator USER_ID]
    permgate apply-default --project ID [--creator USER_ID]
    permgate check --role ROLE --project-key KEY [--qualifier TRK] [--user USER_ID]
"""

from typing import Optional

import click
import structlog
from rich.console import Console

from permgate import __version__
from permgate.config import Settings, settings
from permgate.database.database import create_db_engine, create_session_factory, init_db
from permgate.exceptions import PermgateError
from permgate.logging_config import configure_logging
from permgate.services.permission_simulator import PermissionSimulator
from permgate.services.template_applier import TemplateApplier

logger = structlog.get_logger(__name__)

console = Console()


def get_db_session(app_settings: Settings):
    """Create a database session."""
    engine = create_db_engine(app_settings)
    SessionLocal = create_session_factory(engine)
    return SessionLocal()


def _fail(command: str, error: PermgateError) -> click.ClickException:
    logger.error("Command failed", command=command, error=error.message)
    return click.ClickException(error.message)


@click.group()
@click.version_option(version=__version__, prog_name="permgate")
@click.pass_context
def cli(ctx):
    """
    permgate - permission templates for projects

    Apply templates to projects and simulate the resulting permissions.
    """
    if ctx.obj is None:
        ctx.obj = settings
    configure_logging(ctx.obj)


@cli.command("init-db")
@click.pass_obj
def init_db_command(app_settings: Settings):
    """Create database tables"""
    init_db(create_db_engine(app_settings))
    console.print("[green]Database tables created[/green]")


def _apply(app_settings: Settings, project: str, template: Optional[str], creator: Optional[str]):
    db = get_db_session(app_settings)
    try:
        applier = TemplateApplier(db, settings=app_settings)
        if template:
            applied = applier.apply_template_to_project(template, project, creator)
        else:
            applied = applier.apply_default_template(project, creator)
    except PermgateError as e:
        raise _fail("apply", e)
    finally:
        db.close()

    if applied is None:
        console.print("[yellow]No default template configured, nothing applied[/yellow]")
    else:
        console.print(f"[green]Applied template '{applied.name}'[/green] ({applied.id}) to project {project}")


@cli.command()
@click.option("--project", required=True, help="Project id")
@click.option("--template", default=None, help="Template id (defaults to the configured default)")
@click.option("--creator", default=None, help="Id of the user provisioning the project")
@click.pass_obj
def apply(app_settings: Settings, project: str, template: Optional[str], creator: Optional[str]):
    """Apply a template to a project"""
    _apply(app_settings, project, template, creator)


@cli.command("apply-default")
@click.option("--project", required=True, help="Project id")
@click.option("--creator", default=None, help="Id of the user provisioning the project")
@click.pass_obj
def apply_default(app_settings: Settings, project: str, creator: Optional[str]):
    """Apply the default template to a project"""
    _apply(app_settings, project, None, creator)


@cli.command()
@click.option("--role", required=True, help="Role to check")
@click.option("--project-key", required=True, help="Key of the project")
@click.option("--qualifier", default="TRK", show_default=True, help="Project qualifier")
@click.option("--user", default=None, help="User id (omit for an anonymous visitor)")
@click.pass_obj
def check(app_settings: Settings, role: str, project_key: str, qualifier: str, user: Optional[str]):
    """Simulate a permission on a project provisioned with the default template"""
    db = get_db_session(app_settings)
    try:
        simulator = PermissionSimulator(db, settings=app_settings)
        result = simulator.would_have_permission(user, role, project_key, qualifier)
    except PermgateError as e:
        raise _fail("check", e)
    finally:
        db.close()

    click.echo("true" if result else "false")


if __name__ == "__main__":
    cli()
