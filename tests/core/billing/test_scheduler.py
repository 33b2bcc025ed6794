"""Tests for installment scheduling."""

from datetime import date, datetime, timezone

import pytest

from core.billing.scheduler import build_schedule, normalize_plan, rebalance_schedule, split_amount
from core.exceptions import InstallmentSumMismatch, InvalidInstallmentPlan, ValidationError
from core.models import InstallmentDraft

PAID = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)


def draft(amount_cents, due=date(2024, 1, 1), paid_at=None):
    return InstallmentDraft(due_date=due, amount_cents=amount_cents, paid_at=paid_at)


class TestSplitAmount:
    """Tests for split_amount()."""

    def test_last_part_takes_remainder(self):
        assert split_amount(10000, 3) == [3333, 3333, 3334]

    def test_single_part(self):
        assert split_amount(4590, 1) == [4590]

    def test_rounds_half_up(self):
        """2.5 cents rounds to 3, the last part absorbs the difference."""
        assert split_amount(10, 4) == [3, 3, 3, 1]

    def test_falls_back_to_floor_when_last_would_go_negative(self):
        assert split_amount(5, 8) == [0, 0, 0, 0, 0, 0, 0, 5]

    def test_zero_total(self):
        assert split_amount(0, 3) == [0, 0, 0]

    def test_sum_and_length_hold_across_inputs(self):
        """Sum equals total, count equals N, nothing negative."""
        for total in [0, 1, 2, 7, 99, 100, 101, 9999, 10000, 123457]:
            for count in range(1, 13):
                parts = split_amount(total, count)
                assert len(parts) == count
                assert sum(parts) == total, (total, count)
                assert all(p >= 0 for p in parts), (total, count)

    def test_rejects_zero_count(self):
        with pytest.raises(InvalidInstallmentPlan):
            split_amount(100, 0)

    def test_rejects_negative_total(self):
        with pytest.raises(ValidationError):
            split_amount(-1, 2)


class TestBuildSchedule:
    """Tests for build_schedule()."""

    def test_three_installments_every_thirty_days(self):
        """R$ 100,00 in 3x every 30 days from 2024-01-01."""
        schedule = build_schedule(10000, 3, 30, date(2024, 1, 1))

        assert [(i.due_date, i.amount_cents) for i in schedule] == [
            (date(2024, 1, 1), 3333),
            (date(2024, 1, 31), 3333),
            (date(2024, 3, 1), 3334),
        ]
        assert all(i.paid_at is None for i in schedule)

    def test_single_installment_on_anchor(self):
        schedule = build_schedule(7000, 1, 0, date(2024, 1, 8))

        assert len(schedule) == 1
        assert schedule[0].due_date == date(2024, 1, 8)
        assert schedule[0].amount_cents == 7000

    def test_zero_offset_keeps_all_on_anchor(self):
        schedule = build_schedule(300, 3, 0, date(2024, 5, 1))
        assert {i.due_date for i in schedule} == {date(2024, 5, 1)}

    def test_rejects_negative_offset(self):
        with pytest.raises(InvalidInstallmentPlan):
            build_schedule(100, 2, -1, date(2024, 1, 1))


class TestRebalanceSchedule:
    """Tests for rebalance_schedule()."""

    def test_keeps_paid_and_spreads_outstanding(self):
        current = [
            draft(3333, date(2024, 1, 1), paid_at=PAID),
            draft(3333, date(2024, 1, 31)),
            draft(3334, date(2024, 3, 1)),
        ]

        result = rebalance_schedule(current, 12000)

        assert [i.amount_cents for i in result] == [3333, 4334, 4333]
        assert result[0].paid_at == PAID
        assert [i.due_date for i in result] == [i.due_date for i in current]
        assert sum(i.amount_cents for i in result) == 12000

    def test_rejects_total_below_paid(self):
        current = [draft(5000, paid_at=PAID), draft(5000)]

        with pytest.raises(ValidationError, match="menor que o valor já pago"):
            rebalance_schedule(current, 4000)

    def test_fully_paid_with_unchanged_total_is_kept(self):
        current = [draft(5000, paid_at=PAID)]
        assert rebalance_schedule(current, 5000) == current

    def test_fully_paid_cannot_absorb_difference(self):
        with pytest.raises(ValidationError):
            rebalance_schedule([draft(5000, paid_at=PAID)], 6000)


class TestNormalizePlan:
    """Tests for normalize_plan()."""

    def test_exact_plan_is_unchanged(self):
        plan = [draft(5000), draft(5000)]
        assert normalize_plan(plan, 10000) == plan

    def test_residual_within_tolerance_lands_on_last(self):
        plan = [draft(3333), draft(3333), draft(3333)]

        result = normalize_plan(plan, 10000, tolerance_cents=1)

        assert [i.amount_cents for i in result] == [3333, 3333, 3334]

    def test_mismatch_beyond_tolerance(self):
        with pytest.raises(InstallmentSumMismatch) as exc:
            normalize_plan([draft(3000), draft(3000)], 10000)

        assert exc.value.expected_cents == 10000
        assert exc.value.actual_cents == 6000
        assert exc.value.field == "installments"

    def test_rejects_empty_plan(self):
        with pytest.raises(InvalidInstallmentPlan):
            normalize_plan([], 100)

    def test_rejects_plan_longer_than_maximum(self):
        plan = [draft(1) for _ in range(5)]
        with pytest.raises(InvalidInstallmentPlan, match="no máximo 4"):
            normalize_plan(plan, 5, max_installments=4)

    def test_residual_cannot_make_last_negative(self):
        with pytest.raises(InvalidInstallmentPlan):
            normalize_plan([draft(10000), draft(0)], 9999)

    def test_accepts_decimal_amounts(self):
        """Plans may be sent in currency units; they arrive as cents."""
        plan = [InstallmentDraft(due_date=date(2024, 1, 1), amount="33.33")] * 3

        result = normalize_plan(plan, 10000)

        assert [i.amount_cents for i in result] == [3333, 3333, 3334]
