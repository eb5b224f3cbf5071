"""
ERP Workflow Tools
Blueprint registry and shared request helpers.
"""

import logging

from flask import request
from werkzeug.exceptions import HTTPException

from erp_tools.core.exceptions import (
    ConcurrencyConflictError,
    ConflictError,
    InvalidStatusError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDenied,
    TransactionFailedError,
    ValidationError,
)
from erp_tools.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def register_error_handlers(bp):
    """Map the service exception hierarchy to standard JSON errors on *bp*."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(InvalidStatusError)
    def _handle_invalid_status(error):
        return api_error(E.VALIDATION_STATUS, str(error), details=error.details)

    @bp.errorhandler(ValidationError)
    def _handle_validation(error):
        return api_error(E.VALIDATION_INVALID, str(error), details=error.details)

    @bp.errorhandler(PermissionDenied)
    def _handle_forbidden(error):
        return api_error(E.FORBIDDEN, str(error), details={"permission": error.permission})

    @bp.errorhandler(InvalidTransitionError)
    def _handle_transition(error):
        return api_error(E.CONFLICT_STATE, str(error),
                         details={"current_status": error.current_status, "target_status": error.target_status})

    @bp.errorhandler(ConcurrencyConflictError)
    def _handle_concurrent(error):
        return api_error(E.CONFLICT_CONCURRENT, str(error))

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error):
        return api_error(E.CONFLICT_DUPLICATE, str(error), details={"field": error.field})

    @bp.errorhandler(TransactionFailedError)
    def _handle_transaction(error):
        return api_error(E.DATABASE, "Database error")

    @bp.errorhandler(Exception)
    def _handle_unexpected(error):
        if isinstance(error, HTTPException):
            return error
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")

    return bp


def pagination_args(default_size=50, max_size=500):
    """Read ``page`` / ``page_size`` query params (zero-based page)."""
    try:
        page = max(int(request.args.get("page", 0)), 0)
    except (ValueError, TypeError):
        page = 0
    try:
        size = min(max(int(request.args.get("page_size", default_size)), 1), max_size)
    except (ValueError, TypeError):
        size = default_size
    return page, size


def bool_arg(name, default=False):
    value = request.args.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes")
