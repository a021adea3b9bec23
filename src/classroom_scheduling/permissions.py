from __future__ import annotations

from classroom_scheduling.errors import AuthorizationError
from classroom_scheduling.models import ADMIN, SUPERADMIN, TEACHER, TUTOR, Actor, ClassEntity

ADMIN_ROLES = frozenset({ADMIN, SUPERADMIN})
ELEVATED_ROLES = frozenset({TEACHER, TUTOR, ADMIN, SUPERADMIN})
TEACHING_ROLES = frozenset({TEACHER, TUTOR})


def is_admin(actor: Actor) -> bool:
    return actor.role in ADMIN_ROLES


def can_join_early(role: str) -> bool:
    """Elevated roles may open a room at any time."""
    return role in ELEVATED_ROLES


def can_manage_class(actor: Actor, class_entity: ClassEntity) -> bool:
    return is_admin(actor) or class_entity.teacher_id == actor.id


def require_manage_class(actor: Actor, class_entity: ClassEntity, action: str) -> None:
    if not can_manage_class(actor, class_entity):
        raise AuthorizationError(f"Only administrators or the class teacher can {action}.")


def require_admin(actor: Actor, action: str) -> None:
    if not is_admin(actor):
        raise AuthorizationError(f"Only administrators can {action}.")
