"""Currency helpers.

Amounts are integer cents everywhere in the engine. R$ 10,00 = 1000 cents.
These helpers only exist for display and for the decimal boundary.
"""

from decimal import ROUND_HALF_UP, Decimal


def cents_to_decimal(cents: int) -> Decimal:
    """Convert cents to a two-place Decimal (1050 -> Decimal('10.50'))."""
    return (Decimal(cents) / 100).quantize(Decimal("0.01"))


def format_brl(cents: int) -> str:
    """
    Format cents the way the clinic prints amounts.

    Example: 123456 -> "R$ 1.234,56", -50 -> "-R$ 0,50"
    """
    sign = "-" if cents < 0 else ""
    whole, fraction = divmod(abs(cents), 100)
    grouped = f"{whole:,}".replace(",", ".")
    return f"{sign}R$ {grouped},{fraction:02d}"


def to_cents(amount) -> int:
    """
    Convert a decimal currency amount to integer cents, half-up to the cent.

    Accepts Decimal, int, str ("33.33") or float (33.33). Floats go through
    their shortest repr so 33.33 never becomes 3332.
    """
    if isinstance(amount, bool):
        raise ValueError("amount must be a number")
    if isinstance(amount, float):
        amount = repr(amount)
    try:
        value = Decimal(str(amount))
    except (ArithmeticError, ValueError) as e:
        raise ValueError(f"invalid amount: {amount!r}") from e
    if not value.is_finite():
        raise ValueError(f"invalid amount: {amount!r}")
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def cents_from_decimal_fields(data, mapping: dict[str, str]):
    """
    Pydantic ``mode="before"`` helper: move decimal amounts onto cents fields.

    ``mapping`` is {decimal_key: cents_key}. A payload that already carries the
    cents key is left alone for that pair.
    """
    if not isinstance(data, dict):
        return data
    converted = dict(data)
    for decimal_key, cents_key in mapping.items():
        if decimal_key in converted and cents_key not in converted:
            raw = converted.pop(decimal_key)
            converted[cents_key] = None if raw is None else to_cents(raw)
    return converted
