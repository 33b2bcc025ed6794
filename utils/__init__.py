"""Utility modules for cross-cutting concerns."""

from utils.timezone import now_utc, as_utc, add_days
from utils.user_context import (
    get_current_staff_id,
    current_staff_id_or_none,
    set_current_staff_id,
    clear_current_staff_id,
    staff_context,
)
from utils.money import cents_to_decimal, format_brl, to_cents, cents_from_decimal_fields
