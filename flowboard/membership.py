"""
Project membership mutations.

Each operation authorizes against the project snapshot it was given, computes
the next ``team_members`` and ``permissions`` from that snapshot, and writes
both with a single UPDATE of the project row. The read and the write are
separate steps: two concurrent mutations of the same project can both pass
their checks, and the later UPDATE replaces the whole membership state.

Invariants kept on every write:
- the creator is in ``team_members`` and holds Owner
- every user with a role is in ``team_members``
"""

import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from flowboard.auth.dependencies import Identity
from flowboard.auth.permissions import (
    is_owner,
    require_manage_members,
    require_manage_permissions,
)
from flowboard.errors import Forbidden, InvalidReference, InvariantViolation, NotFound, ValidationError
from flowboard.models import Project, Role, User

logger = logging.getLogger(__name__)


def _merge(members: List[int], new_ids: Iterable[int]) -> List[int]:
    """Append ids not already present, keeping first-seen order."""
    merged = list(members)
    for user_id in new_ids:
        if user_id not in merged:
            merged.append(user_id)
    return merged


def require_users_exist(db: Session, user_ids: Iterable[int]) -> None:
    """
    Raise InvalidReference naming every id with no user record.

    Example:
        >>> require_users_exist(db, [2, 3])
    """
    wanted = set(user_ids)
    if not wanted:
        return
    found = set(db.execute(select(User.id).where(User.id.in_(wanted))).scalars().all())
    missing = sorted(wanted - found)
    if missing:
        logger.info(f"Referenced users do not exist: {missing}")
        raise InvalidReference(f"User(s) not found: {', '.join(str(m) for m in missing)}")


def _is_listed(project: Project, user_id: int) -> bool:
    return project.has_member(user_id) or str(user_id) in (project.permissions or {})


def _write_membership(
    db: Session, project: Project, team_members: List[int], permissions: Dict[str, str]
) -> Project:
    """Persist both collections in one UPDATE and return the refreshed project."""
    creator = project.created_by
    team_members = _merge(team_members, [creator])
    permissions = dict(permissions)
    permissions[str(creator)] = Role.Owner.value

    result = db.execute(
        update(Project)
        .where(Project.id == project.id)
        .values(team_members=team_members, permissions=permissions)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.rollback()
        logger.info(f"Project {project.id} disappeared before membership update")
        raise NotFound("Project not found")
    db.commit()
    db.refresh(project)
    return project


def _guard_creator_role(project: Project, user_id: int, role: Optional[Role]) -> None:
    if user_id == project.created_by and role != Role.Owner:
        logger.info(f"Refusing to change creator {user_id} role on project {project.id} to {role}")
        raise InvariantViolation("The project creator must keep the Owner role.")


def add_members(
    db: Session,
    project: Project,
    candidate_ids: List[int],
    role_assignments: Dict[int, Optional[Role]],
    identity: Identity,
) -> Project:
    """
    Add users to a project and optionally assign or revoke their roles.

    Args:
        candidate_ids: users to add to ``team_members``
        role_assignments: user id -> role; ``None`` revokes the user's role
            but leaves them in ``team_members``
        identity: the requester

    Raises:
        ValidationError: nothing to do
        Forbidden: requester cannot manage members, or sent roles without
            being allowed to manage permissions
        InvalidReference: some referenced user does not exist
        InvariantViolation: a role change would demote the creator
    """
    if not candidate_ids and not role_assignments:
        raise ValidationError("Provide userIds and/or permissions.")

    require_manage_members(project, identity)
    if role_assignments:
        require_manage_permissions(project, identity)

    require_users_exist(db, list(candidate_ids) + list(role_assignments))
    for user_id, role in role_assignments.items():
        _guard_creator_role(project, user_id, role)

    team_members = _merge(project.team_members or [], candidate_ids)
    permissions = dict(project.permissions or {})
    for user_id, role in role_assignments.items():
        if role is None:
            permissions.pop(str(user_id), None)
        else:
            permissions[str(user_id)] = role.value
            team_members = _merge(team_members, [user_id])

    project = _write_membership(db, project, team_members, permissions)
    changed_roles = {k: (v.value if v else None) for k, v in role_assignments.items()}
    logger.critical(
        f"User {identity.user_id} updated members of project {project.id}: "
        f"added={list(candidate_ids)} roles={changed_roles}"
    )
    return project


def remove_member(db: Session, project: Project, member_id: int, identity: Identity) -> Project:
    """
    Remove a member from both ``team_members`` and ``permissions``.

    The creator can never be removed, whoever asks. Removing an Owner
    requires the requester to be an Owner or admin.
    """
    if member_id == project.created_by:
        logger.info(f"User {identity.user_id} tried to remove creator {member_id} from project {project.id}")
        raise InvariantViolation("The project creator cannot be removed from the project.")

    require_manage_members(project, identity)

    if not _is_listed(project, member_id):
        raise NotFound("Member not found")

    if project.role_of(member_id) == Role.Owner:
        if not (identity.is_admin or project.role_of(identity.user_id) == Role.Owner):
            logger.info(f"Editor {identity.user_id} tried to remove owner {member_id} from project {project.id}")
            raise Forbidden("Only an owner can remove another owner.")

    team_members = [m for m in (project.team_members or []) if m != member_id]
    permissions = dict(project.permissions or {})
    permissions.pop(str(member_id), None)

    project = _write_membership(db, project, team_members, permissions)
    logger.critical(f"User {identity.user_id} removed member {member_id} from project {project.id}")
    return project


def leave_project(db: Session, project: Project, identity: Identity) -> Project:
    """Remove the requester from the project. Owners cannot leave."""
    user_id = identity.user_id
    if is_owner(project, user_id):
        logger.info(f"Owner {user_id} tried to leave project {project.id}")
        raise Forbidden("Owners cannot leave their project. Transfer ownership or delete the project instead.")

    if not _is_listed(project, user_id):
        raise NotFound("You are not a member of this project.")

    team_members = [m for m in (project.team_members or []) if m != user_id]
    permissions = dict(project.permissions or {})
    permissions.pop(str(user_id), None)

    project = _write_membership(db, project, team_members, permissions)
    logger.critical(f"User {user_id} left project {project.id}")
    return project


def update_permission_role(
    db: Session,
    project: Project,
    target_user_id: int,
    new_role: Optional[Role],
    identity: Identity,
) -> Project:
    """
    Set, overwrite or (with ``None``) delete one user's role.

    Granting a role also adds the user to ``team_members``; deleting it does
    not remove them.
    """
    require_manage_permissions(project, identity)
    require_users_exist(db, [target_user_id])
    _guard_creator_role(project, target_user_id, new_role)

    team_members = list(project.team_members or [])
    permissions = dict(project.permissions or {})
    if new_role is None:
        permissions.pop(str(target_user_id), None)
    else:
        permissions[str(target_user_id)] = new_role.value
        team_members = _merge(team_members, [target_user_id])

    project = _write_membership(db, project, team_members, permissions)
    logger.critical(
        f"User {identity.user_id} set role of {target_user_id} on project {project.id} "
        f"to {new_role.value if new_role else None}"
    )
    return project
