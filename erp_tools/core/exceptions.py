"""
Workflow-wide exception hierarchy.

Services raise these types; blueprints register handlers against them
once and get consistent HTTP status codes everywhere.

    NotFoundError             → 404
    ValidationError           → 422  (InvalidStatusError is a subtype)
    PermissionDenied          → 403
    ConflictError             → 409
    InvalidTransitionError    → 409
    ConcurrencyConflictError  → 409
    TransactionFailedError    → 500

Usage:
    from erp_tools.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="PurchaseRequest", resource_id=42)
    raise ValidationError("quantity is required", details={"quantity": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested entity does not exist.

    No partial write has happened when this is raised: lookups always
    precede mutations.

    Args:
        resource: Human-readable model/entity name (e.g. "PurchaseRequest").
        resource_id: The PK or code that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails validation in the service layer.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class InvalidStatusError(ValidationError):
    """Raised when a status is not a member of the module's known status set."""

    def __init__(self, module: str, status: str, known: list[str] | None = None) -> None:
        self.module = module
        self.status = status
        details = {"status": f"must be one of: {', '.join(known)}"} if known else None
        super().__init__(f"Unknown {module} status '{status}'", details=details)


class InvalidTransitionError(Exception):
    """Raised when a workflow move is not allowed from the entity's current state.

    Covers illegal status edges as well as pending-action misuse
    (requesting while one is pending, resolving when none is).
    """

    def __init__(self, consecutive: str, current: str, target: str | None, reason: str | None = None):
        msg = f"Cannot move {consecutive} from '{current}'"
        if target:
            msg += f" to '{target}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
        self.consecutive = consecutive
        self.current_status = current
        self.target_status = target


class ConflictError(Exception):
    """Raised when an operation would duplicate a unique value or hit a held lock.

    Args:
        resource: Model name.
        field: The unique field (or lock) in conflict.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None, message: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(message or f"{resource} with {field}={value!r} already exists")


class ConcurrencyConflictError(Exception):
    """Raised when a row changed underneath a read-modify-write.

    Either the optimistic ``version`` check failed at flush time, or the
    caller's ``expected_status`` no longer matches the stored status.
    """

    def __init__(self, resource: str, resource_id: int | str, reason: str) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} id={resource_id} was modified concurrently: {reason}")


class TransactionFailedError(Exception):
    """Raised when the store fails mid-write; the transaction has been rolled back."""

    def __init__(self, operation: str, cause: Exception | None = None) -> None:
        self.operation = operation
        self.cause = cause
        super().__init__(f"Transaction failed during {operation}")


class PermissionDenied(Exception):
    """Raised when an actor lacks the permission required for an action."""

    def __init__(self, actor: str, permission: str):
        super().__init__(f"User {actor} does not have permission for '{permission}'")
        self.actor = actor
        self.permission = permission
