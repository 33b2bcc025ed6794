"""
Installment scheduling.

Pure functions over integer cents. Every schedule produced or accepted here
sums exactly to the invoice total: the last installment absorbs whatever the
per-installment rounding left over.
"""

from datetime import date

from core.exceptions import InvalidInstallmentPlan, InstallmentSumMismatch, ValidationError
from core.models.installment import InstallmentDraft
from utils.timezone import add_days


def split_amount(total_cents: int, count: int) -> list[int]:
    """
    Split an amount into ``count`` parts that sum exactly to it.

    The first count-1 parts are total/count rounded half-up to the cent; the
    last part takes the remainder. When half-up rounding would leave the last
    part negative (total smaller than count cents), parts are rounded down
    instead.

    Example: split_amount(10000, 3) -> [3333, 3333, 3334]
    """
    if count < 1:
        raise InvalidInstallmentPlan("A quantidade de parcelas deve ser pelo menos 1.")
    if total_cents < 0:
        raise ValidationError("O total da conta não pode ser negativo.", field="total")

    base = (2 * total_cents + count) // (2 * count)
    if base * (count - 1) > total_cents:
        base = total_cents // count
    last = total_cents - base * (count - 1)
    return [base] * (count - 1) + [last]


def build_schedule(
    total_cents: int,
    installment_count: int,
    day_offset: int,
    anchor: date,
) -> list[InstallmentDraft]:
    """
    Build a fresh schedule for a total and a payment condition.

    Installment i (0-based) falls due ``anchor + day_offset * i``.

    Example: 10000 cents, 3x, 30 days, anchor 2024-01-01 ->
        3333 @ 2024-01-01, 3333 @ 2024-01-31, 3334 @ 2024-03-01
    """
    if day_offset < 0:
        raise InvalidInstallmentPlan("O intervalo entre parcelas não pode ser negativo.")
    amounts = split_amount(total_cents, installment_count)
    return [
        InstallmentDraft(due_date=add_days(anchor, day_offset * i), amount_cents=amount)
        for i, amount in enumerate(amounts)
    ]


def rebalance_schedule(
    installments: list[InstallmentDraft],
    total_cents: int,
) -> list[InstallmentDraft]:
    """
    Fit an existing schedule to a new total without touching paid installments.

    The outstanding balance is redistributed across the unpaid installments,
    which keep their due dates. Raises ValidationError if the new total is
    below what has already been paid.
    """
    paid_cents = sum(i.amount_cents for i in installments if i.paid_at is not None)
    outstanding = total_cents - paid_cents
    if outstanding < 0:
        raise ValidationError(
            "O novo total da conta é menor que o valor já pago. "
            "Estorne os pagamentos antes de reduzir os itens.",
            field="total",
        )

    unpaid_positions = [pos for pos, i in enumerate(installments) if i.paid_at is None]
    if not unpaid_positions:
        if outstanding != 0:
            raise ValidationError(
                "Não há parcelas em aberto para absorver a diferença do total.",
                field="installments",
            )
        return list(installments)

    amounts = iter(split_amount(outstanding, len(unpaid_positions)))
    rebalanced = []
    for installment in installments:
        if installment.paid_at is None:
            installment = installment.model_copy(update={"amount_cents": next(amounts)})
        rebalanced.append(installment)
    return rebalanced


def normalize_plan(
    plan: list[InstallmentDraft],
    total_cents: int,
    tolerance_cents: int = 1,
    max_installments: int | None = None,
) -> list[InstallmentDraft]:
    """
    Validate a caller-supplied plan against the invoice total.

    Accepts plans within ``tolerance_cents`` of the total and moves the
    residual onto the last installment so the stored sum is exact.

    Raises:
        InvalidInstallmentPlan: Empty or too long, or the residual would make
            the last installment negative
        InstallmentSumMismatch: Sum differs from the total by more than the tolerance
    """
    if not plan:
        raise InvalidInstallmentPlan("Informe pelo menos uma parcela.")
    if max_installments is not None and len(plan) > max_installments:
        raise InvalidInstallmentPlan(
            f"O parcelamento aceita no máximo {max_installments} parcelas."
        )

    plan_sum = sum(i.amount_cents for i in plan)
    residual = total_cents - plan_sum
    if abs(residual) > tolerance_cents:
        raise InstallmentSumMismatch(expected_cents=total_cents, actual_cents=plan_sum)
    if residual == 0:
        return list(plan)

    last = plan[-1]
    adjusted = last.amount_cents + residual
    if adjusted < 0:
        raise InvalidInstallmentPlan("O valor da última parcela não pode ser negativo.")
    return list(plan[:-1]) + [last.model_copy(update={"amount_cents": adjusted})]
