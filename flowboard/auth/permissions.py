"""
Project-level permission checking utilities.

The predicates are pure: they look only at a project snapshot and the
requester. Callers load the project immediately before deciding (see
``get_project_or_404``), so no permission state is cached across requests.

Permission sources (in order):
1. Global admin claim (bypasses all per-project checks)
2. The project's ``permissions`` table (Owner / Editor / Viewer)

Membership in ``team_members`` alone grants nothing.
"""

import logging
from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session

from flowboard.auth.dependencies import Identity
from flowboard.errors import Forbidden, NotFound
from flowboard.models import Project, Role

logger = logging.getLogger(__name__)


def can_view(project: Project, user_id: int, is_admin: bool = False) -> bool:
    return is_admin or project.role_of(user_id) is not None


def can_edit(project: Project, user_id: int) -> bool:
    """True iff the user holds Owner or Editor on the project."""
    role = project.role_of(user_id)
    return role is not None and role.at_least(Role.Editor)


def can_manage_members(project: Project, user_id: int, is_admin: bool = False) -> bool:
    return is_admin or can_edit(project, user_id)


def can_manage_permissions(project: Project, user_id: int, is_admin: bool = False) -> bool:
    return is_admin or project.role_of(user_id) == Role.Owner


def can_delete(project: Project, user_id: int, is_admin: bool = False) -> bool:
    return is_admin or project.role_of(user_id) == Role.Owner


def is_owner(project: Project, user_id: int) -> bool:
    """Owner by role, or the immutable creator."""
    return project.role_of(user_id) == Role.Owner or project.created_by == user_id


def get_project_or_404(db: Session, project_id: int) -> Project:
    """
    Load the current persisted state of a project.

    ``populate_existing`` overwrites any copy already in the session, so the
    decision that follows sees what is in the database right now.
    """
    project = db.get(Project, project_id, populate_existing=True)
    if project is None:
        logger.info(f"Project {project_id} not found")
        raise NotFound("Project not found")
    return project


def get_viewable_projects(db: Session, identity: Identity) -> List[Project]:
    """
    Get all projects the caller can view.

    Roles are stored in a JSON column, so the filter runs here rather than in SQL.
    """
    projects = db.execute(select(Project).order_by(Project.id)).scalars().all()
    if identity.is_admin:
        logger.debug(f"User {identity.user_id} is admin, returning all {len(projects)} projects")
        return list(projects)
    visible = [p for p in projects if can_view(p, identity.user_id)]
    logger.debug(f"User {identity.user_id} can view {len(visible)} of {len(projects)} projects")
    return visible


def _deny(identity: Identity, project: Project, reason: str) -> Forbidden:
    logger.info(
        f"User {identity.user_id} has role '{project.role_of(identity.user_id)}' in project "
        f"{project.id}, denied: {reason}"
    )
    return Forbidden(reason)


def require_view(project: Project, identity: Identity) -> None:
    if not can_view(project, identity.user_id, identity.is_admin):
        raise _deny(identity, project, "You do not have access to this project.")


def require_edit(project: Project, identity: Identity) -> None:
    """
    Require Owner/Editor on the project, or the admin claim.

    Example:
        >>> project = get_project_or_404(db, category.project_id)
        >>> require_edit(project, identity)
        >>> # If we get here, the caller may modify the project's categories and tasks
    """
    if not (identity.is_admin or can_edit(project, identity.user_id)):
        raise _deny(identity, project, "You do not have permission to edit this project.")
    logger.debug(f"Edit permission check passed for user {identity.user_id} on project {project.id}")


def require_delete(project: Project, identity: Identity) -> None:
    if not can_delete(project, identity.user_id, identity.is_admin):
        raise _deny(identity, project, "Only the project owner can delete this project.")


def require_manage_members(project: Project, identity: Identity) -> None:
    if not can_manage_members(project, identity.user_id, identity.is_admin):
        raise _deny(identity, project, "You do not have permission to manage members of this project.")


def require_manage_permissions(project: Project, identity: Identity) -> None:
    if not can_manage_permissions(project, identity.user_id, identity.is_admin):
        raise _deny(identity, project, "Only the project owner can change member roles.")
