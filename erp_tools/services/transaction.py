"""
Transaction boundary for service operations.

    with atomic("update_status", resource="PurchaseRequest", resource_id=7):
        ...mutate rows...
    # committed here; on any error the session is rolled back

Failure mapping:
    StaleDataError   → ConcurrencyConflictError (optimistic version check lost)
    SQLAlchemyError  → TransactionFailedError
    anything else    → re-raised unchanged after rollback
"""

import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from erp_tools.core.exceptions import ConcurrencyConflictError, TransactionFailedError
from erp_tools.models import db

logger = logging.getLogger(__name__)


@contextmanager
def atomic(operation: str, *, resource: str = "", resource_id=None):
    try:
        yield
        db.session.commit()
    except StaleDataError as exc:
        db.session.rollback()
        logger.warning("Version conflict during %s on %s id=%s", operation, resource, resource_id)
        raise ConcurrencyConflictError(resource, resource_id, "row version changed") from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Database error during %s on %s id=%s", operation, resource, resource_id)
        raise TransactionFailedError(operation, exc) from exc
    except Exception:
        db.session.rollback()
        raise
