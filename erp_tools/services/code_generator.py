"""
Consecutive number generator.

Generates module-prefixed sequential codes:
  - Purchase requests:     SC-{seq:05d}   (e.g. SC-00001)
  - Production orders:     OP-{seq:05d}   (e.g. OP-00042)
  - Dispatch assignments:  DSP-{seq:05d}
  - Inventory units:       U{seq:05d}     (e.g. U00001)

The prefix comes from module settings; the counter lives in the module's
sequence table.  ``allocate_number`` increments the counter row *first*:
the UPDATE takes the row/write lock, so concurrent allocations serialize,
and reads the value back in the same transaction.  It must run inside the
transaction that inserts the numbered row: a rollback of that insert also
rolls back the increment, so no number is ever handed out twice.
"""

from sqlalchemy import select, update

from erp_tools.models import db
from erp_tools.services.settings_service import get_settings
from erp_tools.services.workflow_definitions import get_module


def format_consecutive(prefix: str, number: int) -> str:
    return f"{prefix}{number:05d}"


def allocate_number(module_key: str, counter: str = "entity", *, settings: dict | None = None) -> str:
    """Reserve the next number of *counter* and return the formatted code.

    Args:
        module_key: "requests" | "planner" | "dispatch".
        counter: counter name within the module ("entity", or "unit" for dispatch).
        settings: already-loaded module settings (avoids a second read).

    Does NOT commit: the caller's transaction owns the increment.
    """
    module = get_module(module_key)
    spec = module.counters[counter]
    seq = module.sequence_model

    result = db.session.execute(
        update(seq)
        .where(seq.name == counter)
        .values(next_value=seq.next_value + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        # First allocation ever on this store
        db.session.add(seq(name=counter, next_value=2))
        db.session.flush()
        number = 1
    else:
        number = db.session.execute(
            select(seq.next_value).where(seq.name == counter)
        ).scalar_one() - 1

    if settings is None:
        settings = get_settings(module_key)
    prefix = settings.get(spec.prefix_key) or spec.default_prefix
    return format_consecutive(prefix, number)
