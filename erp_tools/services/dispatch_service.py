"""
Dispatch container service.

Containers group dispatch assignments (one truck / route).  A container can
be locked by one user while they verify its documents; the lock is taken
with a conditional UPDATE so two users cannot both win it.

Assignments themselves are workflow entities: they are created and moved
through ``workflow_service`` with module key ``dispatch``.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import or_, select, update

from erp_tools.core.exceptions import ConflictError, NotFoundError, ValidationError
from erp_tools.models import db
from erp_tools.models.warehouse import DispatchContainer
from erp_tools.services.actor_directory import check_permission
from erp_tools.services.transaction import atomic
from erp_tools.services.workflow_definitions import get_module
from erp_tools.services.workflow_events import publish

logger = logging.getLogger(__name__)


def _permission(name: str) -> str:
    return get_module("dispatch").permissions[name]


def get_container(container_id: int, *, include_assignments: bool = False) -> dict:
    container = db.session.get(DispatchContainer, container_id)
    if container is None:
        raise NotFoundError(resource="DispatchContainer", resource_id=container_id)
    return container.to_dict(include_assignments=include_assignments)


def list_containers() -> list[dict]:
    containers = db.session.execute(select(DispatchContainer).order_by(DispatchContainer.name)).scalars()
    return [c.to_dict() for c in containers]


def create_container(name: str, actor: str, *, skip_permission: bool = False) -> dict:
    """Create a named container.

    Raises:
        ValidationError: empty name.
        ConflictError: a container with this name already exists.
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    if not skip_permission:
        check_permission(actor, _permission("containers"))

    existing = db.session.execute(
        select(DispatchContainer.id).where(DispatchContainer.name == name)
    ).scalar_one_or_none()
    if existing is not None:
        raise ConflictError("DispatchContainer", "name", name)

    with atomic("create_container", resource="DispatchContainer"):
        container = DispatchContainer(name=name, created_by=actor)
        db.session.add(container)
        db.session.flush()
    result = container.to_dict()

    logger.info("Dispatch container %s created by %s", name, actor,
                extra={"module_key": "dispatch", "entity_id": result["id"], "actor": actor})
    publish(module_key="dispatch_container", entity={"id": result["id"], "consecutive": name},
            action="container.create", actor=actor)
    return result


def lock_container(container_id: int, actor: str, *, skip_permission: bool = False) -> dict:
    """Take the container lock for *actor*; re-locking by the holder is a no-op.

    Raises:
        NotFoundError: unknown container.
        ConflictError: another user holds the lock.
    """
    if not skip_permission:
        check_permission(actor, _permission("edit"))
    with atomic("lock_container", resource="DispatchContainer", resource_id=container_id):
        result = db.session.execute(
            update(DispatchContainer)
            .where(
                DispatchContainer.id == container_id,
                or_(DispatchContainer.is_locked.is_(False), DispatchContainer.locked_by == actor),
            )
            .values(is_locked=True, locked_by=actor, locked_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            holder = db.session.execute(
                select(DispatchContainer.locked_by).where(DispatchContainer.id == container_id)
            ).one_or_none()
            if holder is None:
                raise NotFoundError(resource="DispatchContainer", resource_id=container_id)
            raise ConflictError("DispatchContainer", "lock", holder[0],
                                message=f"Container is locked by {holder[0]}")

    db.session.expire_all()
    data = get_container(container_id)
    logger.info("Dispatch container %s locked by %s", container_id, actor,
                extra={"module_key": "dispatch", "entity_id": container_id, "actor": actor})
    publish(module_key="dispatch_container", entity={"id": container_id, "consecutive": data["name"]},
            action="container.lock", actor=actor)
    return data


def unlock_container(container_id: int, actor: str, *, force: bool = False, skip_permission: bool = False) -> dict:
    """Release the lock.  Only the holder may release it unless *force* is set,
    which requires the lock-management permission.  Releasing a container
    that is not locked changes nothing and writes no audit row.
    """
    if not skip_permission:
        check_permission(actor, _permission("edit"))
    container = db.session.get(DispatchContainer, container_id)
    if container is None:
        raise NotFoundError(resource="DispatchContainer", resource_id=container_id)
    if not container.is_locked:
        return container.to_dict()
    if container.locked_by != actor:
        if not force:
            raise ConflictError("DispatchContainer", "lock", container.locked_by,
                                message=f"Container is locked by {container.locked_by}")
        if not skip_permission:
            check_permission(actor, _permission("locks"))

    previous_holder = container.locked_by
    with atomic("unlock_container", resource="DispatchContainer", resource_id=container_id):
        container.is_locked = False
        container.locked_by = None
        container.locked_at = None
    data = container.to_dict()

    logger.info("Dispatch container %s unlocked by %s (holder was %s)", container_id, actor, previous_holder,
                extra={"module_key": "dispatch", "entity_id": container_id, "actor": actor})
    publish(module_key="dispatch_container", entity={"id": container_id, "consecutive": data["name"]},
            action="container.unlock", actor=actor, diff={"locked_by": {"old": previous_holder, "new": None}})
    return data


def ensure_container_writable(container_id, actor: str) -> None:
    """Assignments may be added only to existing containers not locked by someone else.

    Call inside the creating transaction: the container row is read with
    ``FOR UPDATE`` so a concurrent lock waits for the insert to commit.
    """
    container = db.session.execute(
        select(DispatchContainer)
        .where(DispatchContainer.id == container_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if container is None:
        raise NotFoundError(resource="DispatchContainer", resource_id=container_id)
    if container.is_locked and container.locked_by != actor:
        raise ConflictError("DispatchContainer", "lock", container.locked_by,
                            message=f"Container is locked by {container.locked_by}")
