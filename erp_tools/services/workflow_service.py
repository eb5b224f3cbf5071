"""
Workflow service, the transactional shell around the status machine.

Every operation follows the same steps:
  1. read the module settings fresh
  2. open a transaction; load the entity row (SELECT … FOR UPDATE)
  3. check permission / ``expected_status``
  4. ask ``status_machine`` for a plan, apply it, append the history row
  5. commit (``version`` column guards against lost updates)
  6. after commit, hand the event to ``workflow_events`` (audit + notifications)

Operations:
    create_entity, get_entity, list_entities, get_history,
    update_status, request_action, resolve_action,
    update_details, confirm_modification, add_note,
    update_planning_fields, get_completed_in_range

Usage:
    from erp_tools.services import workflow_service as wf

    req = wf.create_entity("requests", {...}, actor="Ana")
    wf.update_status("requests", req["id"], "approved", actor="Luis")
"""

from __future__ import annotations

import logging
from datetime import datetime, time, timedelta, timezone

from sqlalchemy import Boolean, Date, DateTime, Float, Integer, JSON, String, Text, func, or_, select

from erp_tools.core.exceptions import (
    ConcurrencyConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from erp_tools.models import db
from erp_tools.models.base import PRIORITIES
from erp_tools.services import status_machine as sm
from erp_tools.services.actor_directory import check_permission
from erp_tools.services.code_generator import allocate_number
from erp_tools.services.dispatch_service import ensure_container_writable
from erp_tools.services.settings_service import get_settings
from erp_tools.services.transaction import atomic
from erp_tools.services.workflow_definitions import WorkflowModule, get_module
from erp_tools.services.workflow_events import publish
from erp_tools.utils.helpers import parse_date_input

logger = logging.getLogger(__name__)

# Module-specific checks run inside the creating transaction, before the insert
_CREATE_GUARDS = {
    "dispatch": lambda values, actor: ensure_container_writable(values["container_id"], actor),
}

_ACTION_PERMISSIONS = {
    "unapproval-request": "request_unapproval",
    "cancellation-request": "request_cancellation",
}


# ═════════════════════════════════════════════════════════════════════════════
# Internal helpers
# ═════════════════════════════════════════════════════════════════════════════


def _require_actor(actor: str | None) -> str:
    if not actor or not str(actor).strip():
        raise ValidationError("actor is required", details={"actor": "required"})
    return str(actor).strip()


def _authorize(actor: str, permission: str | None, skip_permission: bool) -> None:
    if permission and not skip_permission:
        check_permission(actor, permission)


def _coerce(module: WorkflowModule, values: dict) -> dict:
    """Convert payload values to the column types of the entity model."""
    columns = module.entity_model.__table__.columns
    coerced, errors = {}, {}
    for name, value in values.items():
        if name not in columns:
            errors[name] = "unknown field"
            continue
        col_type = columns[name].type
        if value is None or (value == "" and not isinstance(col_type, (String, Text))):
            coerced[name] = None
            continue
        try:
            if isinstance(col_type, DateTime):
                coerced[name] = value if isinstance(value, datetime) else datetime.fromisoformat(str(value))
            elif isinstance(col_type, Date):
                coerced[name] = parse_date_input(value)
            elif isinstance(col_type, Boolean):
                if isinstance(value, str):
                    value = value.strip().lower() in ("1", "true", "yes", "si", "sí")
                coerced[name] = bool(value)
            elif isinstance(col_type, Float):
                coerced[name] = float(value)
            elif isinstance(col_type, Integer):
                coerced[name] = int(value)
            elif isinstance(col_type, JSON):
                if not isinstance(value, (list, dict)):
                    raise ValueError("must be a list or object")
                coerced[name] = value
            else:
                coerced[name] = str(value).strip()
        except (TypeError, ValueError) as exc:
            errors[name] = str(exc) or "invalid value"
    if "priority" in coerced and coerced["priority"] not in PRIORITIES:
        errors["priority"] = f"must be one of: {', '.join(PRIORITIES)}"
    if errors:
        raise ValidationError("Invalid field values", details=errors)
    return coerced


def _snapshot(entity) -> dict:
    return {c.key: getattr(entity, c.key) for c in entity.__table__.columns}


def _serialize(module: WorkflowModule, entity, settings: dict) -> dict:
    data = entity.to_dict()
    data["module"] = module.key
    data["status_label"] = sm.status_label(module.definition, settings, entity.status)
    data["is_archived"] = entity.status in sm.archived_statuses(module.definition, settings)
    return data


def _load(module: WorkflowModule, entity_id, *, for_update: bool = False):
    if for_update:
        entity = db.session.get(module.entity_model, entity_id, with_for_update=True, populate_existing=True)
    else:
        entity = db.session.get(module.entity_model, entity_id)
    if entity is None:
        raise NotFoundError(resource=module.entity_model.__name__, resource_id=entity_id)
    return entity


def _check_expected(module: WorkflowModule, entity, expected_status: str | None) -> None:
    if expected_status is not None and entity.status != expected_status:
        raise ConcurrencyConflictError(
            module.entity_model.__name__, entity.id,
            f"expected status '{expected_status}' but found '{entity.status}'",
        )


def _apply(entity, changes: dict) -> dict:
    """Set *changes* on *entity*; returns {field: {old, new}} for the audit row."""
    diff = {}
    for name, value in changes.items():
        old = getattr(entity, name)
        if old != value:
            diff[name] = {"old": old, "new": value}
        setattr(entity, name, value)
    return diff


def _append_history(module: WorkflowModule, entity, status: str, notes: str, actor: str):
    entry = module.history_model(status=status, notes=notes or "", updated_by=actor)
    setattr(entry, module.history_fk, entity.id)
    db.session.add(entry)
    return entry


def _log(message: str, module: WorkflowModule, data: dict, actor: str, **extra):
    logger.info(
        message, module.key, data["consecutive"], actor,
        extra={"module_key": module.key, "entity_id": data["id"],
               "consecutive": data["consecutive"], "actor": actor, **extra},
    )


def _status_message(module: WorkflowModule, data: dict) -> str:
    noun = "La solicitud" if module.key == "requests" else (
        "La orden" if module.key == "planner" else "La asignación")
    return f"{noun} {data['consecutive']} ha sido actualizada a: {data['status_label']}."


# ═════════════════════════════════════════════════════════════════════════════
# Reads
# ═════════════════════════════════════════════════════════════════════════════


def get_entity(module_key: str, entity_id: int) -> dict:
    """Return one entity with its status label and archive flag."""
    module = get_module(module_key)
    settings = get_settings(module_key)
    return _serialize(module, _load(module, entity_id), settings)


def get_history(module_key: str, entity_id: int) -> list[dict]:
    """Return the history ledger of an entity, oldest first."""
    module = get_module(module_key)
    _load(module, entity_id)
    history = module.history_model
    rows = db.session.execute(
        select(history)
        .where(getattr(history, module.history_fk) == entity_id)
        .order_by(history.timestamp.asc(), history.id.asc())
    ).scalars()
    return [r.to_dict() for r in rows]


def list_entities(
    module_key: str,
    *,
    archived: bool = False,
    page: int = 0,
    page_size: int = 50,
    search: str | None = None,
    statuses: list[str] | None = None,
    requested_by: str | None = None,
) -> dict:
    """List the active or archived partition of a module, newest first.

    The partition is derived from ``status`` alone: an entity whose status is
    the configured final status or ``canceled`` is archived, everything else
    (pending actions included) is active.

    Returns:
        {"items", "total_active", "total_archived", "page", "page_size"}
    """
    module = get_module(module_key)
    settings = get_settings(module_key)
    model = module.entity_model
    archived_set = sorted(sm.archived_statuses(module.definition, settings))
    page = max(int(page or 0), 0)
    page_size = min(max(int(page_size or 50), 1), 500)

    filters = []
    if search:
        pattern = f"%{search.strip()}%"
        columns = [model.consecutive] + [getattr(model, f) for f in module.search_fields]
        filters.append(or_(*[c.ilike(pattern) for c in columns]))
    if statuses:
        filters.append(model.status.in_(statuses))
    if requested_by:
        filters.append(model.requested_by == requested_by)

    def _count(*criteria):
        return db.session.execute(
            select(func.count(model.id)).where(*filters, *criteria)
        ).scalar_one()

    total_active = _count(model.status.not_in(archived_set))
    total_archived = _count(model.status.in_(archived_set))

    partition = model.status.in_(archived_set) if archived else model.status.not_in(archived_set)
    rows = db.session.execute(
        select(model)
        .where(*filters, partition)
        .order_by(model.request_date.desc(), model.id.desc())
        .offset(page * page_size)
        .limit(page_size)
    ).scalars()

    return {
        "items": [_serialize(module, r, settings) for r in rows],
        "total_active": total_active,
        "total_archived": total_archived,
        "page": page,
        "page_size": page_size,
    }


def get_completed_in_range(module_key: str, date_from, date_to) -> list[dict]:
    """Entities whose history reached a completion status within [date_from, date_to].

    Each item carries its full ``history``.
    """
    module = get_module(module_key)
    try:
        start = parse_date_input(date_from)
        end = parse_date_input(date_to)
    except ValueError as exc:
        raise ValidationError(str(exc), details={"date": "invalid"}) from exc
    if start is None or end is None:
        raise ValidationError("date_from and date_to are required")
    if start > end:
        raise ValidationError("date_from must not be after date_to")

    history = module.history_model
    fk = getattr(history, module.history_fk)
    lower = datetime.combine(start, time.min, tzinfo=timezone.utc)
    upper = datetime.combine(end + timedelta(days=1), time.min, tzinfo=timezone.utc)
    ids = db.session.execute(
        select(fk).distinct().where(
            history.status.in_(module.completion_statuses),
            history.timestamp >= lower,
            history.timestamp < upper,
        )
    ).scalars().all()
    if not ids:
        return []

    settings = get_settings(module_key)
    model = module.entity_model
    rows = db.session.execute(
        select(model).where(model.id.in_(ids)).order_by(model.id)
    ).scalars()
    result = []
    for row in rows:
        data = _serialize(module, row, settings)
        data["history"] = get_history(module_key, row.id)
        result.append(data)
    return result


# ═════════════════════════════════════════════════════════════════════════════
# Create
# ═════════════════════════════════════════════════════════════════════════════


def create_entity(module_key: str, payload: dict, actor: str, *, skip_permission: bool = False) -> dict:
    """Insert a new entity in the initial status with its consecutive and first history entry.

    The counter increment, the entity row and the history row commit together.

    Raises:
        ValidationError: missing required fields or bad values.
        PermissionDenied: actor may not create in this module.
    """
    module = get_module(module_key)
    actor = _require_actor(actor)
    _authorize(actor, module.permissions["create"], skip_permission)

    definition = module.definition
    accepted = set(definition.editable_fields) | set(definition.planning_fields) | set(module.required_fields)
    unknown = sorted(set(payload or {}) - accepted)
    if unknown:
        raise ValidationError(
            f"Fields not accepted on create: {', '.join(unknown)}",
            details={f: "not accepted" for f in unknown},
        )
    values = _coerce(module, payload or {})
    missing = [f for f in module.required_fields if values.get(f) in (None, "")]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            details={f: "required" for f in missing},
        )
    settings = get_settings(module_key)
    guard = _CREATE_GUARDS.get(module_key)
    with atomic("create_entity", resource=module.entity_model.__name__):
        if guard:
            guard(values, actor)
        consecutive = allocate_number(module_key, settings=settings)
        entity = module.entity_model(
            **values,
            consecutive=consecutive,
            status=definition.initial_status,
            pending_action="none",
            has_been_modified=False,
            reopened=False,
            requested_by=actor,
        )
        db.session.add(entity)
        db.session.flush()
        _append_history(module, entity, definition.initial_status, definition.creation_note, actor)
    data = _serialize(module, entity, settings)

    _log("%s %s created by %s", module, data, actor, to_status=data["status"])
    approve_permission = module.status_permissions.get("approved")
    publish(
        module_key=module_key, entity=data, action="create", actor=actor,
        title=f"Nueva {definition.entity_label.lower()} {data['consecutive']}",
        message=f"{actor} creó {data['consecutive']}.",
        permission=approve_permission, task_type="review" if approve_permission else None,
        href=module.href,
    )
    return data


# ═════════════════════════════════════════════════════════════════════════════
# Status machine operations
# ═════════════════════════════════════════════════════════════════════════════


def update_status(
    module_key: str,
    entity_id: int,
    new_status: str,
    actor: str,
    notes: str | None = None,
    *,
    reopen: bool = False,
    expected_status: str | None = None,
    extra_fields: dict | None = None,
    skip_permission: bool = False,
) -> dict:
    """Move an entity to *new_status*; status, extras and history commit atomically.

    Args:
        reopen: explicit reopen (required to leave an archived status).
        expected_status: optimistic precondition, re-checked inside the transaction.
        extra_fields: module status fields merged only when provided.

    Returns:
        The full updated entity.

    Raises:
        NotFoundError, InvalidStatusError, InvalidTransitionError,
        ConcurrencyConflictError, PermissionDenied, TransactionFailedError
    """
    module = get_module(module_key)
    actor = _require_actor(actor)
    settings = get_settings(module_key)
    extras = _coerce(module, extra_fields) if extra_fields else None

    with atomic("update_status", resource=module.entity_model.__name__, resource_id=entity_id):
        entity = _load(module, entity_id, for_update=True)
        _check_expected(module, entity, expected_status)
        previous = entity.status
        permission = (
            module.edge_permissions.get((previous, new_status))
            or (module.permissions["reopen"] if reopen else None)
            or module.status_permissions.get(new_status)
        )
        _authorize(actor, permission, skip_permission)
        plan = sm.plan_status_change(
            module.definition, settings, _snapshot(entity), new_status, actor, notes,
            reopen=reopen, extra_fields=extras,
        )
        diff = _apply(entity, plan.changes)
        _append_history(module, entity, plan.history_status, plan.history_notes, actor)
    data = _serialize(module, entity, settings)

    _log("%s %s status changed by %s", module, data, actor, from_status=previous, to_status=new_status)
    publish(
        module_key=module_key, entity=data, action="status_change", actor=actor, diff=diff,
        title=f"{data['consecutive']}: {data['status_label']}",
        message=_status_message(module, data),
        recipients=[data["requested_by"]], href=module.href,
    )
    return data


def request_action(
    module_key: str,
    entity_id: int,
    action: str,
    actor: str,
    notes: str | None = None,
    *,
    expected_status: str | None = None,
    skip_permission: bool = False,
) -> dict:
    """Open an unapproval/cancellation request without changing status.

    Each action has its own permission; the statuses it may be opened from
    come from the module definition (unknown actions fail validation).
    """
    module = get_module(module_key)
    actor = _require_actor(actor)
    _authorize(actor, module.permissions.get(_ACTION_PERMISSIONS.get(action)), skip_permission)
    settings = get_settings(module_key)

    with atomic("request_action", resource=module.entity_model.__name__, resource_id=entity_id):
        entity = _load(module, entity_id, for_update=True)
        _check_expected(module, entity, expected_status)
        plan = sm.plan_action_request(module.definition, settings, _snapshot(entity), action, notes)
        diff = _apply(entity, plan.changes)
        _append_history(module, entity, plan.history_status, plan.history_notes, actor)
    data = _serialize(module, entity, settings)

    _log("%s %s pending action requested by %s", module, data, actor, pending_action=action)
    publish(
        module_key=module_key, entity=data, action="pending_action.request", actor=actor, diff=diff,
        title=f"{data['consecutive']}: acción pendiente",
        message=plan.history_notes, category="pending-action",
        permission=module.permissions["resolve_action"], task_type="resolve-action", href=module.href,
    )
    return data


def resolve_action(
    module_key: str,
    entity_id: int,
    grant: bool,
    actor: str,
    notes: str | None = None,
    *,
    target_status: str | None = None,
    skip_permission: bool = False,
) -> dict:
    """Grant or deny the pending action.

    Deny clears ``pending_action`` and leaves ``status`` untouched.  Grant runs
    the ordinary status transition to the action's target (``canceled`` for a
    cancellation, the module's unapproval target otherwise, or *target_status*).

    Raises:
        InvalidTransitionError: nothing is pending, or the target edge is illegal.
    """
    module = get_module(module_key)
    actor = _require_actor(actor)
    _authorize(actor, module.permissions["resolve_action"], skip_permission)
    settings = get_settings(module_key)

    with atomic("resolve_action", resource=module.entity_model.__name__, resource_id=entity_id):
        entity = _load(module, entity_id, for_update=True)
        snapshot = _snapshot(entity)
        pending = snapshot["pending_action"]
        if grant:
            plan = sm.plan_action_grant(
                module.definition, settings, snapshot, actor, notes, target_status=target_status,
            )
        else:
            plan = sm.plan_action_denial(snapshot, notes)
        diff = _apply(entity, plan.changes)
        _append_history(module, entity, plan.history_status, plan.history_notes, actor)
    data = _serialize(module, entity, settings)

    outcome = "grant" if grant else "deny"
    _log("%s %s pending action resolved by %s", module, data, actor,
         pending_action=pending, to_status=data["status"])
    publish(
        module_key=module_key, entity=data, action=f"pending_action.{outcome}", actor=actor, diff=diff,
        title=f"{data['consecutive']}: solicitud {'aprobada' if grant else 'rechazada'}",
        message=plan.history_notes, category="pending-action",
        recipients=[data["requested_by"]], href=module.href,
    )
    return data


# ═════════════════════════════════════════════════════════════════════════════
# Field edits
# ═════════════════════════════════════════════════════════════════════════════


def update_details(
    module_key: str,
    entity_id: int,
    field_changes: dict,
    actor: str,
    *,
    expected_status: str | None = None,
    skip_permission: bool = False,
) -> dict:
    """Edit entity fields; edits to tracked fields in a locked status flag the entity.

    A payload equal to the stored values (after string normalisation) writes
    nothing and never sets ``has_been_modified``.
    """
    module = get_module(module_key)
    actor = _require_actor(actor)
    if not field_changes:
        raise ValidationError("No fields to update")
    unknown = sorted(set(field_changes) - set(module.definition.editable_fields))
    if unknown:
        raise ValidationError(
            f"Fields not editable: {', '.join(unknown)}",
            details={f: "not editable" for f in unknown},
        )
    values = _coerce(module, field_changes)
    settings = get_settings(module_key)
    definition = module.definition

    with atomic("update_details", resource=module.entity_model.__name__, resource_id=entity_id):
        entity = _load(module, entity_id, for_update=True)
        _check_expected(module, entity, expected_status)
        if entity.status in sm.archived_statuses(definition, settings):
            raise InvalidTransitionError(entity.consecutive, entity.status, None,
                                         "archived entities cannot be edited")
        locked = entity.status in sm.locked_statuses(definition, settings)
        _authorize(actor, module.permissions["edit_locked" if locked else "edit"], skip_permission)
        plan = sm.plan_details_update(definition, settings, _snapshot(entity), values)
        diff = {}
        if plan.changes:
            diff = _apply(entity, plan.changes)
            entity.last_modified_by = actor
            entity.last_modified_at = datetime.now(timezone.utc)
            if plan.history_notes:
                _append_history(module, entity, plan.history_status, plan.history_notes, actor)
    data = _serialize(module, entity, settings)

    if not plan.changes:
        return data

    flagged = bool(plan.history_notes)
    _log("%s %s edited by %s", module, data, actor)
    publish(
        module_key=module_key, entity=data, action="update", actor=actor, diff=diff,
        title=f"{data['consecutive']}: modificada después de aprobación" if flagged else None,
        message=plan.history_notes or "", category="modification",
        permission=module.permissions["confirm_modification"] if flagged else None,
        task_type="confirm-modification" if flagged else None, href=module.href,
    )
    return data


def confirm_modification(module_key: str, entity_id: int, actor: str, *, skip_permission: bool = False) -> dict:
    """Acknowledge a modified-after-approval entity: clear the flag, log one history entry."""
    module = get_module(module_key)
    actor = _require_actor(actor)
    _authorize(actor, module.permissions["confirm_modification"], skip_permission)
    settings = get_settings(module_key)

    with atomic("confirm_modification", resource=module.entity_model.__name__, resource_id=entity_id):
        entity = _load(module, entity_id, for_update=True)
        plan = sm.plan_confirm_modification(_snapshot(entity))
        diff = _apply(entity, plan.changes)
        entity.last_modified_by = actor
        entity.last_modified_at = datetime.now(timezone.utc)
        _append_history(module, entity, plan.history_status, plan.history_notes, actor)
    data = _serialize(module, entity, settings)

    _log("%s %s modification confirmed by %s", module, data, actor)
    publish(module_key=module_key, entity=data, action="modification.confirm", actor=actor, diff=diff)
    return data


def add_note(module_key: str, entity_id: int, notes: str, actor: str, *, skip_permission: bool = False) -> dict:
    """Append a note-only history entry at the current status."""
    module = get_module(module_key)
    actor = _require_actor(actor)
    notes = (notes or "").strip()
    if not notes:
        raise ValidationError("notes is required", details={"notes": "required"})
    _authorize(actor, module.permissions["notes"], skip_permission)

    with atomic("add_note", resource=module.entity_model.__name__, resource_id=entity_id):
        entity = _load(module, entity_id)
        entry = _append_history(module, entity, entity.status, f"Nota agregada: {notes}", actor)
        db.session.flush()
    result = entry.to_dict()

    logger.info("%s %s note added by %s", module.key, entity.consecutive, actor,
                extra={"module_key": module.key, "entity_id": entity_id, "actor": actor})
    publish(module_key=module_key, entity={"id": entity_id, "consecutive": entity.consecutive},
            action="note", actor=actor, diff={"notes": notes})
    return result


def update_planning_fields(
    module_key: str,
    entity_id: int,
    changes: dict,
    actor: str,
    *,
    skip_permission: bool = False,
) -> dict:
    """Update scheduling fields (priority, machine, shift, schedule range, sort order).

    These are operational details: they never set ``has_been_modified``.
    A priority change is recorded in the history ledger.
    """
    module = get_module(module_key)
    actor = _require_actor(actor)
    if not changes:
        raise ValidationError("No fields to update")
    unknown = sorted(set(changes) - set(module.definition.planning_fields))
    if unknown:
        raise ValidationError(
            f"Fields not accepted: {', '.join(unknown)}",
            details={f: "not a planning field" for f in unknown},
        )
    for name in changes:
        _authorize(actor, module.planning_permissions.get(name), skip_permission)
    values = _coerce(module, changes)
    settings = get_settings(module_key)
    _validate_planning(settings, values)

    with atomic("update_planning_fields", resource=module.entity_model.__name__, resource_id=entity_id):
        entity = _load(module, entity_id, for_update=True)
        start = values.get("scheduled_start_date", getattr(entity, "scheduled_start_date", None))
        end = values.get("scheduled_end_date", getattr(entity, "scheduled_end_date", None))
        if start and end and start > end:
            raise ValidationError("scheduled_start_date must not be after scheduled_end_date")
        current = _snapshot(entity)
        changed = {k: v for k, v in values.items()
                   if sm.normalise_value(current.get(k)) != sm.normalise_value(v)}
        diff = {}
        if changed:
            diff = _apply(entity, changed)
            entity.last_modified_by = actor
            entity.last_modified_at = datetime.now(timezone.utc)
            if "priority" in changed:
                _append_history(module, entity, entity.status, f"Prioridad cambiada a: {changed['priority']}", actor)
    data = _serialize(module, entity, settings)

    if changed:
        _log("%s %s planning updated by %s", module, data, actor)
        publish(module_key=module_key, entity=data, action="planning.update", actor=actor, diff=diff)
    return data


def _validate_planning(settings: dict, values: dict) -> None:
    machines = {m.get("id") for m in settings.get("machines") or [] if isinstance(m, dict)}
    shifts = {s.get("id") for s in settings.get("shifts") or [] if isinstance(s, dict)}
    errors = {}
    if values.get("machine_id") and machines and values["machine_id"] not in machines:
        errors["machine_id"] = "unknown machine"
    if values.get("shift_id") and shifts and values["shift_id"] not in shifts:
        errors["shift_id"] = "unknown shift"
    if errors:
        raise ValidationError("Invalid planning values", details=errors)
