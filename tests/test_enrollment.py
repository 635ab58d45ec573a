"""
Tests for services/enrollment.py - payment plans and installment schedules

Tests:
- split_amount / add_months / build_schedule (pure schedule arithmetic)
- submit_plan create, replace and validation behaviour
- set_installment_paid / set_installment_open
"""

from datetime import date
import calendar

import pytest
from hypothesis import given
from hypothesis import strategies as st
from sqlalchemy import func, select

from challengeapp.errors import NotFoundError, ValidationError
from challengeapp.models.enrollment import Enrollment, Installment, PaymentType
from challengeapp.services.enrollment import (
    PlanTerms,
    add_months,
    build_schedule,
    parse_plan,
    set_installment_open,
    set_installment_paid,
    split_amount,
    submit_plan,
)

from conftest import TODAY, cash_plan, installment_plan


def installments_of(db, athlete_id):
    stmt = (
        select(Installment)
        .join(Enrollment, Enrollment.id == Installment.enrollment_id)
        .where(Enrollment.athlete_id == athlete_id)
        .order_by(Installment.number)
    )
    return list(db.execute(stmt).scalars().all())


# ============================================================================
# Schedule arithmetic
# ============================================================================

class TestSplitAmount:

    def test_remainder_goes_to_earliest(self):
        assert split_amount(1000, 3) == [334, 333, 333]
        assert split_amount(1001, 3) == [334, 334, 333]

    def test_exact_division(self):
        assert split_amount(1200, 12) == [100] * 12

    def test_fewer_cents_than_installments(self):
        assert split_amount(2, 5) == [1, 1, 0, 0, 0]

    def test_single_share(self):
        assert split_amount(15050, 1) == [15050]

    @given(
        total=st.integers(min_value=1, max_value=10**10),
        count=st.integers(min_value=1, max_value=12),
    )
    def test_sum_is_exact_and_spread_is_one_cent(self, total, count):
        shares = split_amount(total, count)
        assert len(shares) == count
        assert sum(shares) == total
        assert max(shares) - min(shares) <= 1
        assert shares == sorted(shares, reverse=True)


class TestAddMonths:

    @pytest.mark.parametrize("start,months,expected", [
        (date(2024, 1, 31), 1, date(2024, 2, 29)),
        (date(2023, 1, 31), 1, date(2023, 2, 28)),
        (date(2024, 1, 31), 2, date(2024, 3, 31)),
        (date(2024, 1, 31), 3, date(2024, 4, 30)),
        (date(2024, 11, 30), 3, date(2025, 2, 28)),
        (date(2024, 12, 15), 1, date(2025, 1, 15)),
        (date(2024, 5, 10), 0, date(2024, 5, 10)),
    ])
    def test_calendar_months_with_clamping(self, start, months, expected):
        assert add_months(start, months) == expected

    @given(
        start=st.dates(min_value=date(1990, 1, 1), max_value=date(2200, 12, 31)),
        months=st.integers(min_value=0, max_value=11),
    )
    def test_month_distance_and_day_preservation(self, start, months):
        result = add_months(start, months)
        assert (result.year * 12 + result.month) - (start.year * 12 + start.month) == months
        last_day = calendar.monthrange(result.year, result.month)[1]
        assert result.day == min(start.day, last_day)


class TestBuildSchedule:

    def test_schedule_for_month_end_anchor(self):
        terms = PlanTerms(10000, PaymentType.INSTALLMENTS, 3, date(2024, 1, 31))
        assert build_schedule(terms) == [
            (1, date(2024, 1, 31), 3334),
            (2, date(2024, 2, 29), 3333),
            (3, date(2024, 3, 31), 3333),
        ]

    @given(
        total=st.integers(min_value=1, max_value=10**8),
        count=st.integers(min_value=1, max_value=12),
        first=st.dates(min_value=date(2000, 1, 1), max_value=date(2100, 1, 1)),
    )
    def test_every_schedule_sums_to_total(self, total, count, first):
        schedule = build_schedule(PlanTerms(total, PaymentType.INSTALLMENTS, count, first))
        assert [n for n, _, _ in schedule] == list(range(1, count + 1))
        assert sum(amount for _, _, amount in schedule) == total
        assert schedule[0][1] == first
        dues = [due for _, due, _ in schedule]
        assert dues == sorted(dues)


# ============================================================================
# parse_plan
# ============================================================================

class TestParsePlan:

    def test_cash_forces_single_installment(self):
        terms = parse_plan({
            "total_amount": "99.90",
            "payment_type": "cash",
            "installments_count": 6,
            "first_due_date": "2024-04-01",
        })
        assert terms == PlanTerms(9990, PaymentType.CASH, 1, date(2024, 4, 1))

    def test_installments_count_from_text(self):
        terms = parse_plan(installment_plan("4"))
        assert terms.installments_count == 4
        assert terms.payment_type is PaymentType.INSTALLMENTS

    @pytest.mark.parametrize("plan", [
        None,
        {"total_amount": "100", "payment_type": "card", "first_due_date": "2024-04-01"},
        {"total_amount": "100", "payment_type": "CASH", "first_due_date": "2024-04-01"},
        {"total_amount": "0", "payment_type": "cash", "first_due_date": "2024-04-01"},
        {"total_amount": "100", "payment_type": "cash", "first_due_date": "2024-02-30"},
        {"total_amount": "100", "payment_type": "cash"},
        installment_plan(1),
        installment_plan(13),
        installment_plan(2.5),
        installment_plan(None),
    ])
    def test_invalid_plans(self, plan):
        with pytest.raises(ValidationError):
            parse_plan(plan)


# ============================================================================
# submit_plan
# ============================================================================

class TestSubmitPlan:

    def test_athlete_creation_builds_cash_plan(self, db, make_athlete):
        athlete = make_athlete()
        rows = installments_of(db, athlete.id)
        assert [(i.number, i.due_date, i.amount_cents, i.paid_at) for i in rows] == [
            (1, date(2024, 4, 1), 15000, None),
        ]

    def test_replace_regenerates_schedule(self, db, organizer, make_athlete):
        athlete = make_athlete()
        original = db.execute(select(Enrollment).where(Enrollment.athlete_id == athlete.id)).scalar_one()

        enrollment = submit_plan(db, organizer.id, athlete.id, installment_plan(3, "2024-01-31"))

        assert enrollment.id == original.id
        assert enrollment.total_amount_cents == 10000
        assert enrollment.payment_type is PaymentType.INSTALLMENTS
        assert enrollment.installments_count == 3
        assert [(i.number, i.due_date, i.amount_cents) for i in enrollment.installments] == [
            (1, date(2024, 1, 31), 3334),
            (2, date(2024, 2, 29), 3333),
            (3, date(2024, 3, 31), 3333),
        ]

    def test_replacing_twice_leaves_only_second_schedule(self, db, organizer, make_athlete):
        athlete = make_athlete()
        submit_plan(db, organizer.id, athlete.id, installment_plan(12, total_amount="1200"))
        submit_plan(db, organizer.id, athlete.id, installment_plan(2, "2024-06-15", "75.01"))

        rows = installments_of(db, athlete.id)
        assert [(i.number, i.due_date, i.amount_cents) for i in rows] == [
            (1, date(2024, 6, 15), 3751),
            (2, date(2024, 7, 15), 3750),
        ]
        assert db.execute(select(func.count()).select_from(Installment)).scalar_one() == 2
        assert db.execute(select(func.count()).select_from(Enrollment)).scalar_one() == 1

    def test_replace_discards_paid_state(self, db, organizer, make_athlete, clock):
        athlete = make_athlete()
        first = installments_of(db, athlete.id)[0]
        set_installment_paid(db, organizer.id, first.id, clock=clock)

        submit_plan(db, organizer.id, athlete.id, cash_plan("2024-05-01"))

        rows = installments_of(db, athlete.id)
        assert len(rows) == 1
        assert rows[0].paid_at is None

    def test_invalid_plan_leaves_schedule_untouched(self, db, organizer, make_athlete):
        athlete = make_athlete(plan=installment_plan(4))
        before = [(i.id, i.amount_cents, i.due_date) for i in installments_of(db, athlete.id)]

        with pytest.raises(ValidationError):
            submit_plan(db, organizer.id, athlete.id, installment_plan(13))

        after = [(i.id, i.amount_cents, i.due_date) for i in installments_of(db, athlete.id)]
        assert after == before
        enrollment = db.execute(select(Enrollment).where(Enrollment.athlete_id == athlete.id)).scalar_one()
        assert enrollment.installments_count == 4

    def test_foreign_athlete_is_not_found(self, db, other_organizer, make_athlete):
        athlete = make_athlete()
        with pytest.raises(NotFoundError):
            submit_plan(db, other_organizer.id, athlete.id, cash_plan("2024-05-01"))

    def test_unknown_athlete_is_not_found(self, db, organizer):
        with pytest.raises(NotFoundError):
            submit_plan(db, organizer.id, 9999, cash_plan("2024-05-01"))


# ============================================================================
# set_installment_paid / set_installment_open
# ============================================================================

class TestInstallmentState:

    def test_paid_defaults_to_today(self, db, organizer, make_athlete, clock):
        athlete = make_athlete()
        installment = installments_of(db, athlete.id)[0]

        paid = set_installment_paid(db, organizer.id, installment.id, note=" pix ", clock=clock)

        assert paid.paid_at == TODAY
        assert paid.note == "pix"

    def test_paying_again_overwrites(self, db, organizer, make_athlete, clock):
        athlete = make_athlete()
        installment = installments_of(db, athlete.id)[0]
        set_installment_paid(db, organizer.id, installment.id, "2024-03-01", "cash", clock=clock)

        paid = set_installment_paid(db, organizer.id, installment.id, "2024-03-05", "transfer", clock=clock)

        assert paid.paid_at == date(2024, 3, 5)
        assert paid.note == "transfer"

    def test_paying_again_without_note_clears_it(self, db, organizer, make_athlete, clock):
        athlete = make_athlete()
        installment = installments_of(db, athlete.id)[0]
        set_installment_paid(db, organizer.id, installment.id, "2024-03-01", "pix", clock=clock)

        paid = set_installment_paid(db, organizer.id, installment.id, "2024-03-05", clock=clock)

        assert paid.paid_at == date(2024, 3, 5)
        assert paid.note == ""

    def test_open_clears_date_and_keeps_note(self, db, organizer, make_athlete, clock):
        athlete = make_athlete()
        installment = installments_of(db, athlete.id)[0]
        set_installment_paid(db, organizer.id, installment.id, "2024-03-01", "cash", clock=clock)

        reopened = set_installment_open(db, organizer.id, installment.id)

        assert reopened.paid_at is None
        assert reopened.note == "cash"

    def test_open_with_new_note(self, db, organizer, make_athlete):
        athlete = make_athlete()
        installment = installments_of(db, athlete.id)[0]
        reopened = set_installment_open(db, organizer.id, installment.id, "bounced")
        assert reopened.note == "bounced"

    def test_invalid_paid_date(self, db, organizer, make_athlete, clock):
        athlete = make_athlete()
        installment = installments_of(db, athlete.id)[0]
        with pytest.raises(ValidationError):
            set_installment_paid(db, organizer.id, installment.id, "01/03/2024", clock=clock)
        db.refresh(installment)
        assert installment.paid_at is None

    def test_foreign_installment_is_not_found(self, db, organizer, other_organizer, make_athlete, clock):
        athlete = make_athlete()
        installment = installments_of(db, athlete.id)[0]

        with pytest.raises(NotFoundError):
            set_installment_paid(db, other_organizer.id, installment.id, clock=clock)
        with pytest.raises(NotFoundError):
            set_installment_open(db, other_organizer.id, installment.id)
        with pytest.raises(NotFoundError):
            set_installment_open(db, organizer.id, 424242)
