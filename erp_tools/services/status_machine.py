"""
Workflow status machine: pure decision logic.

Given a module's ``WorkflowDefinition``, the module settings, a snapshot of
the entity's current columns and a requested move, compute the column
changes and the history note.  Nothing here touches the database: the
workflow service loads rows, calls a ``plan_*`` function and applies the
returned ``Plan`` inside one transaction.

Moves:
    plan_status_change      status transition (incl. reopen, extras)
    plan_action_request     open a pending administrative action
    plan_action_denial      reject the pending action (status untouched)
    plan_action_grant       accept it → ordinary status transition
    plan_details_update     field edits + modified-after-approval tracking
    plan_confirm_modification  clear the modified flag
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal

from erp_tools.core.exceptions import (
    InvalidStatusError,
    InvalidTransitionError,
    ValidationError,
)

ADMIN_ACTIONS = ("unapproval-request", "cancellation-request")
CANCELED = "canceled"


@dataclass(frozen=True)
class WorkflowDefinition:
    """Static description of one module's workflow."""

    key: str
    entity_label: str
    initial_status: str
    statuses: tuple[str, ...]
    status_labels: dict[str, str]
    transitions: dict[str, tuple[str, ...]]
    final_status: Callable[[dict], str]
    creation_note: str
    editable_fields: tuple[str, ...]
    status_fields: tuple[str, ...] = ()
    planning_fields: tuple[str, ...] = ()
    default_locked_statuses: tuple[str, ...] = ()
    backward_edges: frozenset = frozenset()
    backward_targets: frozenset = frozenset()
    unapprovable_statuses: tuple[str, ...] = ()
    cancel_request_statuses: tuple[str, ...] = ()
    unapproval_target: str = "pending"
    status_stamps: dict[str, dict[str, str]] = field(default_factory=dict)
    custom_status_ids: tuple[str, ...] = ()
    custom_status_links: tuple[str, ...] = ()
    # Setting-gated preconditions: status → (setting key, field that must be set)
    status_requirements: dict[str, tuple[str, str]] = field(default_factory=dict)


@dataclass
class Plan:
    """Column changes plus the single history entry a move produces."""

    changes: dict
    history_status: str
    history_notes: str | None
    diffs: list = field(default_factory=list)


# ═════════════════════════════════════════════════════════════════════════════
# Status sets
# ═════════════════════════════════════════════════════════════════════════════


def active_custom_statuses(definition: WorkflowDefinition, settings: dict) -> dict[str, dict]:
    """Custom statuses switched on in settings, keyed by id."""
    if not definition.custom_status_ids:
        return {}
    active = {}
    for custom in settings.get("customStatuses") or []:
        cid = custom.get("id")
        if cid in definition.custom_status_ids and custom.get("isActive") and custom.get("label"):
            active[cid] = custom
    return active


def known_statuses(definition: WorkflowDefinition, settings: dict) -> list[str]:
    return list(definition.statuses) + list(active_custom_statuses(definition, settings))


def status_label(definition: WorkflowDefinition, settings: dict, status: str) -> str:
    custom = active_custom_statuses(definition, settings).get(status)
    if custom:
        return custom["label"]
    return definition.status_labels.get(status, status)


def final_status(definition: WorkflowDefinition, settings: dict) -> str:
    return definition.final_status(settings)


def archived_statuses(definition: WorkflowDefinition, settings: dict) -> frozenset[str]:
    """Statuses hidden from the active list: the configured final status and canceled."""
    return frozenset({final_status(definition, settings), CANCELED})


def locked_statuses(definition: WorkflowDefinition, settings: dict) -> frozenset[str]:
    configured = settings.get("lockedStatuses")
    return frozenset(configured if configured else definition.default_locked_statuses)


def tracked_fields(definition: WorkflowDefinition, settings: dict) -> frozenset[str]:
    """Fields whose edits flag a locked entity as modified; empty config means all editable fields."""
    configured = [f for f in (settings.get("fieldsToTrackChanges") or []) if f in definition.editable_fields]
    return frozenset(configured or definition.editable_fields)


def allowed_targets(definition: WorkflowDefinition, settings: dict, current: str) -> set[str]:
    """Statuses reachable from *current* without the reopen flag."""
    targets = set(definition.transitions.get(current, ()))
    custom = active_custom_statuses(definition, settings)
    if custom:
        links = set(definition.custom_status_links)
        if current in links:
            targets.update(custom)
        if current in custom:
            targets.update(links | set(custom))
            targets.discard(current)
    return targets


def is_backward(definition: WorkflowDefinition, current: str, new: str) -> bool:
    return new in definition.backward_targets or (current, new) in definition.backward_edges


# ═════════════════════════════════════════════════════════════════════════════
# Value comparison
# ═════════════════════════════════════════════════════════════════════════════


def normalise_value(value) -> str:
    """String form of a field value for change detection.

    ``None`` and ``""`` compare equal; ``10``, ``10.0`` and ``"10"`` compare
    equal; dates compare by ISO form.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, Decimal)):
        return _number_text(float(value))
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(normalise_value(v) for v in value) + "]"
    if isinstance(value, dict):
        return "{" + ",".join(f"{k}:{normalise_value(value[k])}" for k in sorted(value)) + "}"
    text = str(value).strip()
    try:
        return _number_text(float(text))
    except ValueError:
        return text


def _number_text(number: float) -> str:
    return str(int(number)) if number.is_integer() else repr(number)


def _display(value) -> str:
    text = normalise_value(value)
    return text if text else "(vacío)"


# ═════════════════════════════════════════════════════════════════════════════
# Planners
# ═════════════════════════════════════════════════════════════════════════════


def plan_status_change(
    definition: WorkflowDefinition,
    settings: dict,
    snapshot: dict,
    new_status: str,
    actor: str,
    notes: str | None = None,
    *,
    reopen: bool = False,
    extra_fields: dict | None = None,
    granted_action: bool = False,
    now: datetime | None = None,
) -> Plan:
    """Compute a status transition.

    Args:
        snapshot: current column values (needs ``consecutive``, ``status``,
            ``approved_by``, ``reopened``).
        reopen: mark the move as an explicit reopen; required to leave an
            archived status back to the initial one.
        extra_fields: module status fields (delivered quantity, ERP numbers …).
            Keys that are present are written, an explicit None clears the
            column; absent keys leave it alone.
        granted_action: the move carries out a granted pending action, which
            may leave an archived status without the reopen flag (the edge
            must still be in the transition table).

    Raises:
        InvalidStatusError: *new_status* is not a known status.
        InvalidTransitionError: the edge is not allowed.
        ValidationError: unknown extra fields.
    """
    known = known_statuses(definition, settings)
    if new_status not in known:
        raise InvalidStatusError(definition.key, new_status, known)

    current = snapshot["status"]
    consecutive = snapshot.get("consecutive") or ""
    archived = archived_statuses(definition, settings)
    is_reopen_move = current in archived and new_status == definition.initial_status

    if settings.get("strictTransitions", True):
        if is_reopen_move and not granted_action:
            if not reopen:
                raise InvalidTransitionError(consecutive, current, new_status,
                                             "archived entities must be reopened explicitly")
        elif new_status == current:
            raise InvalidTransitionError(consecutive, current, new_status, "already in this status")
        elif new_status not in allowed_targets(definition, settings, current):
            raise InvalidTransitionError(consecutive, current, new_status, "transition not allowed")

    extras = dict(extra_fields or {})
    unknown = sorted(set(extras) - set(definition.status_fields))
    if unknown:
        raise ValidationError(
            f"Fields not accepted on status change: {', '.join(unknown)}",
            details={f: "not a status field" for f in unknown},
        )

    requirement = definition.status_requirements.get(new_status)
    if requirement and settings.get(requirement[0]):
        required = requirement[1]
        if extras.get(required) in (None, "") and snapshot.get(required) in (None, ""):
            raise ValidationError(
                f"{required} must be set before moving to '{new_status}'",
                details={required: "required"},
            )

    now = now or datetime.now(timezone.utc)
    changes = dict(extras)
    changes.update({
        "status": new_status,
        "pending_action": "none",
        "last_status_update_by": actor,
        "last_status_update_notes": notes or "",
        "reopened": bool(reopen or snapshot.get("reopened")),
    })
    if new_status == "approved" and not snapshot.get("approved_by"):
        changes["approved_by"] = actor
    if (reopen and is_reopen_move) or is_backward(definition, current, new_status):
        changes["previous_status"] = current
    else:
        changes["previous_status"] = None
    for column, source in definition.status_stamps.get(new_status, {}).items():
        changes[column] = actor if source == "actor" else now

    return Plan(changes=changes, history_status=new_status, history_notes=notes or "")


def plan_action_request(
    definition: WorkflowDefinition,
    settings: dict,
    snapshot: dict,
    action: str,
    notes: str | None = None,
) -> Plan:
    """Open an unapproval or cancellation request; status stays where it is."""
    if action not in ADMIN_ACTIONS:
        raise ValidationError(
            f"Unknown administrative action '{action}'",
            details={"action": f"must be one of: {', '.join(ADMIN_ACTIONS)}"},
        )
    current = snapshot["status"]
    consecutive = snapshot.get("consecutive") or ""
    if snapshot.get("pending_action", "none") != "none":
        raise InvalidTransitionError(consecutive, current, None,
                                     f"'{snapshot['pending_action']}' is already pending")
    if action == "unapproval-request":
        if current not in definition.unapprovable_statuses:
            raise InvalidTransitionError(consecutive, current, None,
                                         f"unapproval cannot be requested from '{current}'")
    elif current not in definition.cancel_request_statuses:
        raise InvalidTransitionError(consecutive, current, None,
                                     f"cancellation cannot be requested from '{current}'")

    kind = "desaprobación" if action == "unapproval-request" else "cancelación"
    note = f"Solicitud de {kind} iniciada"
    if notes:
        note += f": {notes}"
    return Plan(
        changes={"pending_action": action, "previous_status": current},
        history_status=current,
        history_notes=note,
    )


def _require_pending(snapshot: dict) -> str:
    pending = snapshot.get("pending_action", "none")
    if pending == "none":
        raise InvalidTransitionError(snapshot.get("consecutive") or "", snapshot["status"], None,
                                     "no administrative action is pending")
    return pending


def plan_action_denial(snapshot: dict, notes: str | None = None) -> Plan:
    """Reject the pending action; ``previous_status`` stays as the record of the request."""
    _require_pending(snapshot)
    note = "Acción administrativa rechazada"
    if notes:
        note += f": {notes}"
    return Plan(changes={"pending_action": "none"}, history_status=snapshot["status"], history_notes=note)


def grant_target(definition: WorkflowDefinition, pending_action: str, target_status: str | None = None) -> str:
    if target_status:
        return target_status
    return CANCELED if pending_action == "cancellation-request" else definition.unapproval_target


def plan_action_grant(
    definition: WorkflowDefinition,
    settings: dict,
    snapshot: dict,
    actor: str,
    notes: str | None = None,
    *,
    target_status: str | None = None,
    now: datetime | None = None,
) -> Plan:
    """Accept the pending action by running the ordinary transition to its target."""
    pending = _require_pending(snapshot)
    target = grant_target(definition, pending, target_status)
    kind = "desaprobación" if pending == "unapproval-request" else "cancelación"
    note = f"Solicitud de {kind} aprobada"
    if notes:
        note += f": {notes}"
    return plan_status_change(definition, settings, snapshot, target, actor, note,
                              granted_action=True, now=now)


def plan_details_update(
    definition: WorkflowDefinition,
    settings: dict,
    snapshot: dict,
    field_changes: dict,
) -> Plan:
    """Compute field edits and whether they flag the entity as modified.

    Only fields whose normalised value differs are written.  When the entity
    sits in a locked status and a tracked field changed, the plan sets
    ``has_been_modified`` and carries a history note listing the changes;
    otherwise ``history_notes`` is ``None`` (no history entry).
    """
    unknown = sorted(set(field_changes) - set(definition.editable_fields))
    if unknown:
        raise ValidationError(
            f"Fields not editable: {', '.join(unknown)}",
            details={f: "not editable" for f in unknown},
        )

    changes = {}
    diffs = []
    for name, new_value in field_changes.items():
        old_value = snapshot.get(name)
        if normalise_value(old_value) != normalise_value(new_value):
            changes[name] = new_value
            diffs.append((name, old_value, new_value))

    note = None
    if diffs and snapshot["status"] in locked_statuses(definition, settings):
        tracked = tracked_fields(definition, settings)
        tracked_diffs = [d for d in diffs if d[0] in tracked]
        if tracked_diffs:
            changes["has_been_modified"] = True
            note = "Editado después de aprobación: " + "; ".join(
                f"{name}: {_display(old)} → {_display(new)}" for name, old, new in tracked_diffs
            )

    return Plan(changes=changes, history_status=snapshot["status"], history_notes=note, diffs=diffs)


def plan_confirm_modification(snapshot: dict) -> Plan:
    """Clear the modified flag; status and pending action are untouched."""
    if not snapshot.get("has_been_modified"):
        raise InvalidTransitionError(snapshot.get("consecutive") or "", snapshot["status"], None,
                                     "there is no unconfirmed modification")
    return Plan(
        changes={"has_been_modified": False},
        history_status=snapshot["status"],
        history_notes="Modificación confirmada y alerta eliminada.",
    )
