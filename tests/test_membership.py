"""
Tests for the membership mutator (add / remove / leave / role changes).

Tests cover:
- Owner invariant after every mutation
- Role grant implies membership, empty role revokes the entry only
- Creator can never be removed or demoted
- Owners cannot leave
- Editor/Viewer limits
- Owner/editor walkthrough on a fresh project
- Concurrent add_members: last writer wins
"""

import logging
import pytest
from sqlalchemy.orm import Session

from flowboard import models
from flowboard.auth.dependencies import Identity
from flowboard.auth.permissions import can_edit, can_manage_permissions, get_project_or_404
from flowboard.database import Database
from flowboard.errors import Forbidden, InvalidReference, InvariantViolation, NotFound, ValidationError
from flowboard.membership import add_members, remove_member, leave_project, update_permission_role
from tests.conftest import make_user

logger = logging.getLogger(__name__)


def assert_owner_invariant(project: models.Project):
    assert project.created_by in project.team_members
    assert project.role_of(project.created_by) == models.Role.Owner
    for user_id in project.permissions:
        assert int(user_id) in project.team_members


# ============== add_members ==============


def test_add_members_merges_without_duplicates(test_db: Session, project, owner_user, editor_user, outsider_user):
    identity = Identity(user_id=owner_user.id)
    updated = add_members(test_db, project, [editor_user.id, outsider_user.id, outsider_user.id], {}, identity)

    assert updated.team_members.count(outsider_user.id) == 1
    assert updated.team_members.count(editor_user.id) == 1
    assert updated.role_of(outsider_user.id) is None
    assert_owner_invariant(updated)


def test_role_grant_adds_membership(test_db: Session, project, owner_user, outsider_user):
    updated = add_members(
        test_db, project, [], {outsider_user.id: models.Role.Editor}, Identity(user_id=owner_user.id)
    )

    assert outsider_user.id in updated.team_members
    assert updated.role_of(outsider_user.id) == models.Role.Editor
    assert_owner_invariant(updated)


def test_empty_role_revokes_entry_but_keeps_membership(test_db: Session, project, owner_user, viewer_user):
    updated = add_members(test_db, project, [], {viewer_user.id: None}, Identity(user_id=owner_user.id))

    assert str(viewer_user.id) not in updated.permissions
    assert viewer_user.id in updated.team_members
    assert_owner_invariant(updated)


def test_add_members_requires_input(test_db: Session, project, owner_user):
    with pytest.raises(ValidationError):
        add_members(test_db, project, [], {}, Identity(user_id=owner_user.id))


def test_editor_can_add_members_but_not_roles(test_db: Session, project, editor_user, outsider_user):
    identity = Identity(user_id=editor_user.id)

    updated = add_members(test_db, project, [outsider_user.id], {}, identity)
    assert outsider_user.id in updated.team_members

    with pytest.raises(Forbidden):
        add_members(test_db, updated, [], {outsider_user.id: models.Role.Viewer}, identity)


def test_viewer_cannot_add_members(test_db: Session, project, viewer_user, outsider_user):
    with pytest.raises(Forbidden):
        add_members(test_db, project, [outsider_user.id], {}, Identity(user_id=viewer_user.id))


def test_add_unknown_user_is_invalid_reference(test_db: Session, project, owner_user):
    with pytest.raises(InvalidReference) as exc_info:
        add_members(test_db, project, [9999], {}, Identity(user_id=owner_user.id))
    assert "9999" in exc_info.value.detail

    test_db.expire_all()
    assert 9999 not in get_project_or_404(test_db, project.id).team_members


@pytest.mark.parametrize("role", [models.Role.Editor, models.Role.Viewer, None])
def test_add_members_cannot_demote_creator(test_db: Session, project, owner_user, role):
    with pytest.raises(InvariantViolation):
        add_members(test_db, project, [], {owner_user.id: role}, Identity(user_id=owner_user.id))


def test_admin_can_assign_roles_without_project_role(test_db: Session, project, admin_user, outsider_user):
    updated = add_members(
        test_db, project, [], {outsider_user.id: models.Role.Owner}, Identity(user_id=admin_user.id, is_admin=True)
    )
    assert updated.role_of(outsider_user.id) == models.Role.Owner


# ============== remove_member ==============


@pytest.mark.parametrize("requester", ["owner_user", "editor_user", "viewer_user", "outsider_user"])
def test_creator_can_never_be_removed(test_db: Session, project, owner_user, requester, request):
    user = request.getfixturevalue(requester)
    with pytest.raises(InvariantViolation):
        remove_member(test_db, project, owner_user.id, Identity(user_id=user.id))


def test_creator_cannot_be_removed_by_admin(test_db: Session, project, owner_user, admin_user):
    with pytest.raises(InvariantViolation):
        remove_member(test_db, project, owner_user.id, Identity(user_id=admin_user.id, is_admin=True))


def test_remove_member_clears_both_collections(test_db: Session, project, editor_user, viewer_user):
    updated = remove_member(test_db, project, viewer_user.id, Identity(user_id=editor_user.id))

    assert viewer_user.id not in updated.team_members
    assert str(viewer_user.id) not in updated.permissions
    assert_owner_invariant(updated)


def test_remove_unknown_member_is_not_found(test_db: Session, project, owner_user, outsider_user):
    with pytest.raises(NotFound):
        remove_member(test_db, project, outsider_user.id, Identity(user_id=owner_user.id))


def test_viewer_cannot_remove_members(test_db: Session, project, viewer_user, editor_user):
    with pytest.raises(Forbidden):
        remove_member(test_db, project, editor_user.id, Identity(user_id=viewer_user.id))


def test_only_owner_removes_another_owner(test_db: Session, project, owner_user, editor_user, outsider_user):
    project = update_permission_role(
        test_db, project, outsider_user.id, models.Role.Owner, Identity(user_id=owner_user.id)
    )

    with pytest.raises(Forbidden):
        remove_member(test_db, project, outsider_user.id, Identity(user_id=editor_user.id))

    updated = remove_member(test_db, project, outsider_user.id, Identity(user_id=owner_user.id))
    assert outsider_user.id not in updated.team_members


# ============== leave_project ==============


def test_member_can_leave(test_db: Session, project, viewer_user):
    updated = leave_project(test_db, project, Identity(user_id=viewer_user.id))

    assert viewer_user.id not in updated.team_members
    assert str(viewer_user.id) not in updated.permissions


def test_owner_cannot_leave(test_db: Session, project, owner_user):
    with pytest.raises(Forbidden):
        leave_project(test_db, project, Identity(user_id=owner_user.id))


def test_creator_without_owner_entry_still_cannot_leave(test_db: Session, project, owner_user):
    project.permissions = {}
    with pytest.raises(Forbidden):
        leave_project(test_db, project, Identity(user_id=owner_user.id))


def test_non_member_leave_is_not_found(test_db: Session, project, outsider_user):
    with pytest.raises(NotFound):
        leave_project(test_db, project, Identity(user_id=outsider_user.id))


# ============== update_permission_role ==============


def test_owner_promotes_editor(test_db: Session, project, owner_user, editor_user):
    updated = update_permission_role(test_db, project, editor_user.id, models.Role.Owner, Identity(user_id=owner_user.id))
    assert updated.role_of(editor_user.id) == models.Role.Owner
    assert_owner_invariant(updated)


def test_role_revoke_keeps_membership(test_db: Session, project, owner_user, editor_user):
    updated = update_permission_role(test_db, project, editor_user.id, None, Identity(user_id=owner_user.id))
    assert updated.role_of(editor_user.id) is None
    assert editor_user.id in updated.team_members


def test_editor_cannot_change_roles(test_db: Session, project, editor_user, viewer_user):
    with pytest.raises(Forbidden):
        update_permission_role(test_db, project, viewer_user.id, models.Role.Editor, Identity(user_id=editor_user.id))


def test_unknown_target_is_invalid_reference(test_db: Session, project, owner_user):
    with pytest.raises(InvalidReference):
        update_permission_role(test_db, project, 4242, models.Role.Viewer, Identity(user_id=owner_user.id))


def test_creator_keeps_owner_role(test_db: Session, project, owner_user, admin_user):
    with pytest.raises(InvariantViolation):
        update_permission_role(
            test_db, project, owner_user.id, models.Role.Editor, Identity(user_id=admin_user.id, is_admin=True)
        )


def test_owner_invariant_survives_mutation_sequence(
    test_db: Session, project, owner_user, editor_user, viewer_user, outsider_user
):
    owner = Identity(user_id=owner_user.id)
    project = add_members(test_db, project, [outsider_user.id], {viewer_user.id: models.Role.Editor}, owner)
    project = update_permission_role(test_db, project, outsider_user.id, models.Role.Viewer, owner)
    project = remove_member(test_db, project, editor_user.id, owner)
    project = leave_project(test_db, project, Identity(user_id=outsider_user.id))
    project = update_permission_role(test_db, project, viewer_user.id, None, owner)

    assert_owner_invariant(project)
    assert sorted(project.team_members) == sorted([owner_user.id, viewer_user.id])


# ============== Walkthrough ==============


def test_owner_and_editor_walkthrough(test_db: Session, owner_user, outsider_user):
    """Creator adds an editor, who can edit but not change roles or remove the creator."""
    p = models.Project(
        name="P",
        created_by=owner_user.id,
        team_members=[owner_user.id],
        permissions={str(owner_user.id): "Owner"},
    )
    test_db.add(p)
    test_db.commit()
    test_db.refresh(p)

    u1 = Identity(user_id=owner_user.id)
    u2 = Identity(user_id=outsider_user.id)

    p = add_members(test_db, p, [outsider_user.id], {outsider_user.id: models.Role.Editor}, u1)
    assert can_edit(p, u2.user_id)
    assert not can_manage_permissions(p, u2.user_id)
    with pytest.raises(Forbidden):
        update_permission_role(test_db, p, outsider_user.id, models.Role.Owner, u2)

    with pytest.raises(InvariantViolation):
        remove_member(test_db, p, owner_user.id, u2)

    p = remove_member(test_db, p, outsider_user.id, u1)
    assert outsider_user.id not in p.team_members
    assert str(outsider_user.id) not in p.permissions


# ============== Concurrency ==============


def test_concurrent_add_members_last_writer_wins(database: Database, test_db: Session, project, owner_user):
    """
    Two requests authorize against the same snapshot; each writes the full
    membership state, so the second write drops the first one's addition.
    """
    u3 = make_user(test_db, "third")
    u4 = make_user(test_db, "fourth")
    owner = Identity(user_id=owner_user.id)

    first = database.session()
    second = database.session()
    try:
        snapshot_a = get_project_or_404(first, project.id)
        snapshot_b = get_project_or_404(second, project.id)

        add_members(first, snapshot_a, [u3.id], {}, owner)
        add_members(second, snapshot_b, [u4.id], {}, owner)
    finally:
        first.close()
        second.close()

    test_db.expire_all()
    final = get_project_or_404(test_db, project.id)
    assert u4.id in final.team_members
    assert u3.id not in final.team_members
    assert_owner_invariant(final)
