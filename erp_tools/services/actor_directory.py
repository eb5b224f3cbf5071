"""
Actor directory: read-only lookup over users and roles in the main store.

Workflow rows reference actors by display name; this module is the only
place that resolves those names to users, roles and permissions.

Usage:
    from erp_tools.services.actor_directory import check_permission

    check_permission("Ana Rojas", "requests:status:approve")   # raises PermissionDenied
"""

from sqlalchemy import select

from erp_tools.core.exceptions import PermissionDenied
from erp_tools.models import db
from erp_tools.models.auth import ADMIN_ROLE_ID, Role, User


def find_by_name(name: str) -> User | None:
    """Return the active user with this display name, or None."""
    if not name:
        return None
    return db.session.execute(
        select(User).where(User.name == name, User.is_active.is_(True))
    ).scalar_one_or_none()


def roles_with_permission(permission: str) -> list[str]:
    """Role ids granting *permission*; ``admin`` is always included."""
    roles = db.session.execute(select(Role)).scalars().all()
    ids = {ADMIN_ROLE_ID}
    ids.update(r.id for r in roles if permission in (r.permissions or []))
    return sorted(ids)


def users_with_permission(permission: str) -> list[str]:
    """Names of active users holding *permission* through their role."""
    role_ids = roles_with_permission(permission)
    return list(db.session.execute(
        select(User.name)
        .where(User.role_id.in_(role_ids), User.is_active.is_(True))
        .order_by(User.name)
    ).scalars())


def has_permission(actor: str, permission: str) -> bool:
    user = find_by_name(actor)
    if user is None or user.role is None:
        return False
    return user.role.grants(permission)


def check_permission(actor: str, permission: str) -> None:
    """Raise PermissionDenied unless *actor* holds *permission*."""
    if not has_permission(actor, permission):
        raise PermissionDenied(actor, permission)
