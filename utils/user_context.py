"""Propagate the acting staff member's identity through the call stack."""

from contextvars import ContextVar
from uuid import UUID
from contextlib import contextmanager

_current_staff_id: ContextVar[UUID | None] = ContextVar("current_staff_id", default=None)


def get_current_staff_id() -> UUID:
    """
    Get the acting staff member's ID.

    Raises RuntimeError if no staff context is set. Code that requires an
    author (e.g. explicit audit attribution) should fail fast here.
    """
    staff_id = _current_staff_id.get()
    if staff_id is None:
        raise RuntimeError(
            "No staff context set. This usually means you're calling "
            "staff-scoped code outside of an authenticated request."
        )
    return staff_id


def current_staff_id_or_none() -> UUID | None:
    """
    Get the acting staff member's ID, or None for system-initiated work.

    Event handlers and maintenance jobs run without a staff member; their
    audit entries are recorded with a null author.
    """
    return _current_staff_id.get()


def set_current_staff_id(staff_id: UUID) -> None:
    """
    Set the acting staff member.

    Called by the staff context middleware once the gateway header is parsed.
    """
    _current_staff_id.set(staff_id)


def clear_current_staff_id() -> None:
    """
    Clear staff context.

    Must be called in a finally block to prevent context leakage between
    requests served by the same worker.
    """
    _current_staff_id.set(None)


@contextmanager
def staff_context(staff_id: UUID):
    """
    Temporarily act as a staff member.

    Example:
        with staff_context(cashier_id):
            invoice_service.mark_as_paid(invoice_id, payment)
    """
    previous = _current_staff_id.get()
    set_current_staff_id(staff_id)
    try:
        yield
    finally:
        if previous is None:
            clear_current_staff_id()
        else:
            set_current_staff_id(previous)
