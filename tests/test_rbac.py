"""Tests for the role / resource / action policy."""

import pytest

from schoolops.core import rbac
from schoolops.core.rbac import Action, Resource, Role


def test_admin_finance_writes_allowed():
    assert rbac.can(Role.ADMIN, Resource.FINANCE, Action.CREATE)
    assert rbac.can(Role.PRINCIPAL, Resource.FINANCE, Action.DELETE)


def test_student_and_parent_blocked_from_writes():
    assert not rbac.can(Role.STUDENT, Resource.FINANCE, Action.CREATE)
    assert not rbac.can(Role.PARENT, Resource.SETTINGS, Action.UPDATE)


def test_string_arguments_match_enum_arguments():
    assert rbac.can("ADMIN", "finance", "create")
    assert not rbac.can("STUDENT", "finance", "create")


@pytest.mark.parametrize(
    "role,resource,action",
    [
        ("JANITOR", "finance", "read"),
        ("admin", "finance", "read"),  # roles are case sensitive
        ("ADMIN", "payroll", "read"),
        ("ADMIN", "finance", "approve"),
        (None, "finance", "read"),
    ],
)
def test_unknown_values_are_denied(role, resource, action):
    assert rbac.can(role, resource, action) is False


def test_super_admin_and_admin_have_full_access():
    for role in (Role.SUPER_ADMIN, Role.ADMIN):
        for resource in Resource:
            for action in Action:
                assert rbac.can(role, resource, action), (role, resource, action)


def test_teacher_permissions():
    assert rbac.can(Role.TEACHER, Resource.ATTENDANCE, Action.CREATE)
    assert rbac.can(Role.TEACHER, Resource.GRADES, Action.UPDATE)
    assert rbac.can(Role.TEACHER, Resource.ANNOUNCEMENTS, Action.CREATE)
    assert not rbac.can(Role.TEACHER, Resource.GRADES, Action.DELETE)
    assert not rbac.can(Role.TEACHER, Resource.FINANCE, Action.READ)
    assert not rbac.can(Role.TEACHER, Resource.SETTINGS, Action.READ)


def test_staff_handles_finance_but_not_settings():
    assert rbac.can(Role.STAFF, Resource.FINANCE, Action.CREATE)
    assert not rbac.can(Role.STAFF, Resource.FINANCE, Action.DELETE)
    assert not rbac.can(Role.STAFF, Resource.SETTINGS, Action.UPDATE)


def test_students_and_parents_are_read_only():
    for role in (Role.STUDENT, Role.PARENT):
        for resource in Resource:
            for action in (Action.UPDATE, Action.DELETE):
                assert not rbac.can(role, resource, action)
        assert rbac.can(role, Resource.REALTIME, Action.READ)
        assert rbac.can(role, Resource.PUSH, Action.CREATE)
        assert not rbac.can(role, Resource.USERS, Action.READ)


def test_policy_table_is_immutable():
    with pytest.raises(TypeError):
        rbac.POLICY[Role.STUDENT] = {}  # type: ignore[index]
    with pytest.raises(TypeError):
        rbac.POLICY[Role.STUDENT][Resource.FINANCE] = rbac.CRUD  # type: ignore[index]


def test_every_role_is_authored():
    assert set(rbac.POLICY) == set(Role)


# ── Privileged roles ────────────────────────────────────────────────
def test_privileged_set_is_exact():
    assert rbac.PRIVILEGED_ROLES == {Role.SUPER_ADMIN, Role.ADMIN, Role.PRINCIPAL}
    for role in Role:
        assert rbac.is_privileged_role(role) is (
            role in {Role.SUPER_ADMIN, Role.ADMIN, Role.PRINCIPAL}
        )


def test_privileged_accepts_strings_and_rejects_unknown():
    assert rbac.is_privileged_role("SUPER_ADMIN")
    assert not rbac.is_privileged_role("TEACHER")
    assert not rbac.is_privileged_role("ROOT")
    assert not rbac.is_privileged_role(None)


def test_privileged_roles_can_administer_settings():
    for role in rbac.PRIVILEGED_ROLES:
        assert rbac.can(role, Resource.SETTINGS, Action.READ)
        assert rbac.can(role, Resource.SETTINGS, Action.UPDATE)


# ── Dashboard routing ───────────────────────────────────────────────
@pytest.mark.parametrize(
    "role,path",
    [
        (Role.STUDENT, "/dashboard/portal/student"),
        (Role.PARENT, "/dashboard/portal/parent"),
        (Role.TEACHER, "/dashboard/portal/teacher"),
        (Role.ADMIN, "/dashboard"),
        (Role.STAFF, "/dashboard"),
        (None, "/dashboard"),
    ],
)
def test_default_dashboard_path(role, path):
    assert rbac.default_dashboard_path(role) == path


def test_allowed_dashboard_prefixes():
    assert rbac.allowed_dashboard_prefixes("STUDENT") == ("/dashboard/portal/student",)
    assert "/dashboard/grades" in rbac.allowed_dashboard_prefixes(Role.TEACHER)
    assert "/dashboard/finance" not in rbac.allowed_dashboard_prefixes(Role.TEACHER)
    assert rbac.allowed_dashboard_prefixes(Role.PRINCIPAL) == ("/dashboard",)


def test_parse_role():
    assert rbac.parse_role("TEACHER") is Role.TEACHER
    assert rbac.parse_role(Role.PARENT) is Role.PARENT
    assert rbac.parse_role("teacher") is None
    assert rbac.parse_role(None) is None
