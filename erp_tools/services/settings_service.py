"""
Per-module settings provider.

Settings live in each module's own bind as key → JSON rows, merged over the
module defaults.  They are read fresh on every call (no caching): a change
saved by an administrator applies to the very next operation.

Counter values (``nextRequestNumber`` …) are exposed alongside the settings
but stored in the module's sequence table; see ``code_generator``.
"""

import copy
import logging

from sqlalchemy import select

from erp_tools.core.exceptions import ValidationError
from erp_tools.models import db
from erp_tools.services.actor_directory import check_permission
from erp_tools.services.status_machine import known_statuses
from erp_tools.services.transaction import atomic
from erp_tools.services.workflow_definitions import WorkflowModule, get_module
from erp_tools.services.workflow_events import publish

logger = logging.getLogger(__name__)


def _counter_value(module: WorkflowModule, name: str) -> int:
    seq = module.sequence_model
    value = db.session.execute(select(seq.next_value).where(seq.name == name)).scalar_one_or_none()
    return value if value is not None else 1


def get_settings(module_key: str) -> dict:
    """Return the effective settings of a module (defaults + stored rows + counters)."""
    module = get_module(module_key)
    settings = copy.deepcopy(module.default_settings)
    for row in db.session.execute(select(module.setting_model)).scalars():
        settings[row.key] = copy.deepcopy(row.value)
    for name, counter in module.counters.items():
        settings[counter.next_key] = _counter_value(module, name)
    return settings


def _validate(module: WorkflowModule, data: dict, current: dict) -> dict:
    counter_keys = {c.next_key: name for name, c in module.counters.items()}
    errors = {}
    for key, value in data.items():
        if key in counter_keys:
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                errors[key] = "must be a positive integer"
            elif value < current[key]:
                errors[key] = f"cannot be lowered below {current[key]}"
            continue
        if key not in module.default_settings:
            errors[key] = "unknown setting"
            continue
        default = module.default_settings[key]
        if isinstance(default, bool):
            if not isinstance(value, bool):
                errors[key] = "must be a boolean"
        elif isinstance(default, str):
            if not isinstance(value, str):
                errors[key] = "must be a string"
        elif isinstance(default, list) and not isinstance(value, list):
            errors[key] = "must be a list"

    definition = module.definition
    merged = {**current, **{k: v for k, v in data.items() if k not in errors}}
    if "lockedStatuses" in data and "lockedStatuses" not in errors:
        unknown = set(data["lockedStatuses"]) - set(known_statuses(definition, merged))
        if unknown:
            errors["lockedStatuses"] = f"unknown statuses: {', '.join(sorted(unknown))}"
    if "fieldsToTrackChanges" in data and "fieldsToTrackChanges" not in errors:
        unknown = set(data["fieldsToTrackChanges"]) - set(definition.editable_fields)
        if unknown:
            errors["fieldsToTrackChanges"] = f"not editable fields: {', '.join(sorted(unknown))}"
    if "customStatuses" in data and "customStatuses" not in errors:
        for custom in data["customStatuses"]:
            if not isinstance(custom, dict) or custom.get("id") not in definition.custom_status_ids:
                errors["customStatuses"] = f"ids must be among: {', '.join(definition.custom_status_ids)}"
                break

    if errors:
        raise ValidationError("Invalid settings", details=errors)
    return counter_keys


def save_settings(module_key: str, data: dict, actor: str, *, skip_permission: bool = False) -> dict:
    """Validate and persist settings; counters may only move forward.

    Returns:
        The effective settings after the save.

    Raises:
        ValidationError: unknown key, wrong type, or a counter lowered.
        PermissionDenied: actor lacks the module settings permission.
    """
    module = get_module(module_key)
    if not skip_permission:
        check_permission(actor, module.permissions["settings"])
    if not isinstance(data, dict) or not data:
        raise ValidationError("No settings provided")
    current = get_settings(module_key)
    counter_keys = _validate(module, data, current)

    seq = module.sequence_model
    with atomic("save_settings", resource=f"{module_key} settings"):
        for key, value in data.items():
            if key in counter_keys:
                row = db.session.get(seq, counter_keys[key])
                if row is None:
                    db.session.add(seq(name=counter_keys[key], next_value=value))
                else:
                    row.next_value = value
            else:
                db.session.merge(module.setting_model(key=key, value=value))

    diff = {k: {"old": current.get(k), "new": v} for k, v in data.items() if current.get(k) != v}

    logger.info("Settings saved for %s by %s: %s", module_key, actor, sorted(data),
                extra={"module_key": module_key, "actor": actor})
    publish(module_key=module_key, entity={"id": "settings", "consecutive": None},
            action="settings.update", actor=actor, diff=diff)
    return get_settings(module_key)


def seed_defaults(module_key: str | None = None) -> int:
    """Insert missing default settings rows and counters. Idempotent.

    Returns:
        Number of rows created.  Caller commits.
    """
    keys = [module_key] if module_key else ["requests", "planner", "dispatch"]
    created = 0
    for key in keys:
        module = get_module(key)
        existing = set(db.session.execute(select(module.setting_model.key)).scalars())
        for name, value in module.default_settings.items():
            if name not in existing:
                db.session.add(module.setting_model(key=name, value=copy.deepcopy(value)))
                created += 1
        for name in module.counters:
            if db.session.get(module.sequence_model, name) is None:
                db.session.add(module.sequence_model(name=name, next_value=1))
                created += 1
    db.session.flush()
    return created
