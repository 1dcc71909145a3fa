"""
Role-based access control: who may do what to which resource.

The policy table is plain, immutable configuration. Every role is written
out in full; there is no inheritance between roles, and anything missing
from the table is denied.
"""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Mapping


class Role(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    PRINCIPAL = "PRINCIPAL"
    TEACHER = "TEACHER"
    STAFF = "STAFF"
    STUDENT = "STUDENT"
    PARENT = "PARENT"


class Resource(str, Enum):
    STUDENTS = "students"
    TEACHERS = "teachers"
    CLASSES = "classes"
    ATTENDANCE = "attendance"
    GRADES = "grades"
    FINANCE = "finance"
    EVENTS = "events"
    ANNOUNCEMENTS = "announcements"
    SETTINGS = "settings"
    USERS = "users"
    REALTIME = "realtime"
    PUSH = "push"


class Action(str, Enum):
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


R = frozenset({Action.READ})
C = frozenset({Action.CREATE})
RC = R | C
RCU = RC | {Action.UPDATE}
RU = R | {Action.UPDATE}
CRUD = frozenset(Action)


def _grants(table: dict[Resource, frozenset[Action]]) -> Mapping[Resource, frozenset[Action]]:
    return MappingProxyType(dict(table))


POLICY: Mapping[Role, Mapping[Resource, frozenset[Action]]] = MappingProxyType(
    {
        Role.SUPER_ADMIN: _grants({resource: CRUD for resource in Resource}),
        Role.ADMIN: _grants({resource: CRUD for resource in Resource}),
        Role.PRINCIPAL: _grants(
            {
                Resource.STUDENTS: CRUD,
                Resource.TEACHERS: CRUD,
                Resource.CLASSES: CRUD,
                Resource.ATTENDANCE: CRUD,
                Resource.GRADES: CRUD,
                Resource.FINANCE: CRUD,
                Resource.EVENTS: CRUD,
                Resource.ANNOUNCEMENTS: CRUD,
                Resource.SETTINGS: RU,
                Resource.USERS: RU,
                Resource.REALTIME: R,
                Resource.PUSH: C,
            }
        ),
        Role.TEACHER: _grants(
            {
                Resource.STUDENTS: R,
                Resource.TEACHERS: R,
                Resource.CLASSES: R,
                Resource.ATTENDANCE: RCU,
                Resource.GRADES: RCU,
                Resource.EVENTS: R,
                Resource.ANNOUNCEMENTS: RC,
                Resource.REALTIME: R,
                Resource.PUSH: C,
            }
        ),
        Role.STAFF: _grants(
            {
                Resource.STUDENTS: RCU,
                Resource.TEACHERS: R,
                Resource.CLASSES: R,
                Resource.ATTENDANCE: R,
                Resource.FINANCE: RCU,
                Resource.EVENTS: RCU,
                Resource.ANNOUNCEMENTS: RC,
                Resource.REALTIME: R,
                Resource.PUSH: C,
            }
        ),
        Role.STUDENT: _grants(
            {
                Resource.CLASSES: R,
                Resource.ATTENDANCE: R,
                Resource.GRADES: R,
                Resource.EVENTS: R,
                Resource.ANNOUNCEMENTS: R,
                Resource.REALTIME: R,
                Resource.PUSH: C,
            }
        ),
        Role.PARENT: _grants(
            {
                Resource.CLASSES: R,
                Resource.ATTENDANCE: R,
                Resource.GRADES: R,
                Resource.EVENTS: R,
                Resource.ANNOUNCEMENTS: R,
                Resource.REALTIME: R,
                Resource.PUSH: C,
            }
        ),
    }
)


def _coerce(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return None


def parse_role(value: Role | str | None) -> Role | None:
    """Map a claim / column value to :class:`Role`; unknown values give ``None``."""
    if value is None:
        return None
    return _coerce(Role, value)


def can(
    role: Role | str | None,
    resource: Resource | str,
    action: Action | str,
) -> bool:
    """Return whether *role* may perform *action* on *resource* (default deny)."""
    role = parse_role(role)
    resource = _coerce(Resource, resource)
    action = _coerce(Action, action)
    if role is None or resource is None or action is None:
        return False
    return action in POLICY.get(role, {}).get(resource, frozenset())


# "Privileged" means allowed to change institution settings. Deriving it from
# the table keeps the coarse shortcut and the full policy from drifting apart.
PRIVILEGED_ROLES: frozenset[Role] = frozenset(
    role for role in Role if can(role, Resource.SETTINGS, Action.UPDATE)
)


def is_privileged_role(role: Role | str | None) -> bool:
    """Coarse, resource-independent admin check (SUPER_ADMIN, ADMIN, PRINCIPAL)."""
    return parse_role(role) in PRIVILEGED_ROLES


# ── Dashboard routing ───────────────────────────────────────────────
_PORTAL_PATHS = {
    Role.STUDENT: "/dashboard/portal/student",
    Role.PARENT: "/dashboard/portal/parent",
    Role.TEACHER: "/dashboard/portal/teacher",
}

_TEACHER_PREFIXES = (
    "/dashboard/portal/teacher",
    "/dashboard/attendance",
    "/dashboard/grades",
    "/dashboard/events",
    "/dashboard/announcements",
    "/dashboard/students/reports",
)


def default_dashboard_path(role: Role | str | None) -> str:
    """Landing page after sign-in."""
    return _PORTAL_PATHS.get(parse_role(role), "/dashboard")


def allowed_dashboard_prefixes(role: Role | str | None) -> tuple[str, ...]:
    role = parse_role(role)
    if role in (Role.STUDENT, Role.PARENT):
        return (_PORTAL_PATHS[role],)
    if role is Role.TEACHER:
        return _TEACHER_PREFIXES
    return ("/dashboard",)
