"""
ORM-Level Location Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Invoices and tax records reference a customer location by id.  If the
street address behind that id could change, past invoices would silently
point at a different place than the one they were taxed for.

LocationReconciler.replace() already refuses such edits with a named-field
domain error before anything is written.  This module is the second layer:
it catches the same change made through any other code path (a stray
attribute assignment, a script, a task) at flush time, before the UPDATE is
sent to the database.

===============================================================================
HOW IT WORKS
===============================================================================

    session.flush()
         |
         v
    [before_flush] --> _check_location_immutability() --> LocationImmutableError
         |
         v
    SQL sent to database (only if checks pass)

Protected fields: address1, address2, city, state, zip, country -- on
locations owned by a customer.  Prospect locations have no billing history
and stay editable.

Sanctioned edits (address standardization, whitespace upgrades) run inside
``allow_location_edit(session)``, which sets a flag in ``session.info``.

===============================================================================
USAGE
===============================================================================

Called automatically on import of billing_kernel.db:

    from billing_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from billing_kernel.exceptions import LocationImmutableError
from billing_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

PROTECTED_LOCATION_FIELDS = ("address1", "address2", "city", "state", "zip", "country")

ALLOW_LOCATION_EDIT = "allow_location_edit"


@contextmanager
def allow_location_edit(session: Session) -> Generator[Session, None, None]:
    """Permit in-place edits of protected location fields within the block."""
    previous = session.info.get(ALLOW_LOCATION_EDIT, False)
    session.info[ALLOW_LOCATION_EDIT] = True
    try:
        yield session
    finally:
        session.info[ALLOW_LOCATION_EDIT] = previous


def location_edit_allowed(session: Session) -> bool:
    return bool(session.info.get(ALLOW_LOCATION_EDIT, False))


def changed_protected_field(location) -> str | None:
    """
    Return the first protected field whose value differs from the stored one.

    Uses attribute history, so it only sees changes made since the object
    was loaded or last flushed.
    """
    state = inspect(location)
    for field in PROTECTED_LOCATION_FIELDS:
        history = state.attrs[field].history
        if not history.has_changes():
            continue
        old = history.deleted[0] if history.deleted else None
        new = history.added[0] if history.added else None
        if (old or "") != (new or ""):
            return field
    return None


def _check_location_immutability(session, flush_context, instances):
    """Refuse to flush address changes to customer-owned locations."""
    from billing_kernel.models.location import Location

    if location_edit_allowed(session):
        return

    for obj in list(session.dirty):
        if not isinstance(obj, Location) or obj.customer_id is None:
            continue
        field = changed_protected_field(obj)
        if field is not None:
            logger.warning(
                "location_immutability_blocked",
                extra={"location_id": str(obj.id), "field": field},
            )
            raise LocationImmutableError(str(obj.id), field)


def register_immutability_listeners() -> None:
    """Register the flush-time immutability checks (idempotent)."""
    if not event.contains(Session, "before_flush", _check_location_immutability):
        event.listen(Session, "before_flush", _check_location_immutability)


def unregister_immutability_listeners() -> None:
    """Remove the flush-time immutability checks. FOR TESTING ONLY."""
    if event.contains(Session, "before_flush", _check_location_immutability):
        event.remove(Session, "before_flush", _check_location_immutability)
