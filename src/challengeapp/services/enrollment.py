# src/challengeapp/services/enrollment.py

import calendar
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Tuple, Union

from sqlalchemy.orm import Session

from ..clock import Clock, resolve_clock
from ..errors import ValidationError
from ..metrics import installment_updates_total, plans_submitted_total
from ..models.enrollment import Enrollment, Installment, PaymentType
from ..repository import LedgerRepository
from ..schemas import PlanRequest
from ..utils.logging import setup_logger
from ..utils.parsing import format_cents, optional_text, parse_amount_cents, parse_int, parse_iso_date, parse_optional_date
from .ownership import ensure_athlete_owner, ensure_installment_owner

logger = setup_logger(__name__)

MIN_INSTALLMENTS = 2
MAX_INSTALLMENTS = 12


@dataclass(frozen=True)
class PlanTerms:
    total_amount_cents: int
    payment_type: PaymentType
    installments_count: int
    first_due_date: date


def split_amount(total_cents: int, count: int) -> List[int]:
    """Split ``total_cents`` into ``count`` shares that differ by at most one cent.

    The remainder of the floor division goes one cent at a time to the
    earliest shares, so the result always sums to ``total_cents``.
    """
    if count < 1:
        raise ValueError("count must be at least 1")
    base, remainder = divmod(total_cents, count)
    return [base + 1 if i < remainder else base for i in range(count)]


def add_months(start: date, months: int) -> date:
    """Advance by calendar months, clamping to the last day of short months."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def build_schedule(terms: PlanTerms) -> List[Tuple[int, date, int]]:
    """(number, due date, amount in cents) for every installment of a plan."""
    amounts = split_amount(terms.total_amount_cents, terms.installments_count)
    return [
        (k + 1, add_months(terms.first_due_date, k), amount)
        for k, amount in enumerate(amounts)
    ]


def parse_plan(plan: Union[PlanRequest, dict, None]) -> PlanTerms:
    if plan is None:
        raise ValidationError("Enrollment plan is required.")
    if isinstance(plan, dict):
        plan = PlanRequest(**plan)

    total_cents = parse_amount_cents(plan.total_amount, "Total amount")

    if plan.payment_type == PaymentType.CASH.value:
        payment_type = PaymentType.CASH
        count = 1
    elif plan.payment_type == PaymentType.INSTALLMENTS.value:
        payment_type = PaymentType.INSTALLMENTS
        count = parse_int(plan.installments_count, "Installments count", MIN_INSTALLMENTS, MAX_INSTALLMENTS)
    else:
        raise ValidationError("Payment type must be 'cash' or 'installments'.")

    first_due = parse_iso_date(plan.first_due_date, "First due date")
    return PlanTerms(
        total_amount_cents=total_cents,
        payment_type=payment_type,
        installments_count=count,
        first_due_date=first_due,
    )


def upsert_enrollment(repo: LedgerRepository, athlete_id: int, terms: PlanTerms) -> Enrollment:
    """Create or replace the athlete's enrollment and regenerate every installment.

    Runs inside the caller's transaction; the caller commits.
    """
    enrollment = repo.get_enrollment(athlete_id)
    if enrollment is not None:
        enrollment.total_amount_cents = terms.total_amount_cents
        enrollment.payment_type = terms.payment_type
        enrollment.installments_count = terms.installments_count
        enrollment.first_due_date = terms.first_due_date
        removed = repo.delete_installments(enrollment.id)
        logger.debug(f"Removed {removed} installments of enrollment {enrollment.id}")
    else:
        enrollment = repo.add(Enrollment(
            athlete_id=athlete_id,
            total_amount_cents=terms.total_amount_cents,
            payment_type=terms.payment_type,
            installments_count=terms.installments_count,
            first_due_date=terms.first_due_date,
        ))

    for number, due_date, amount in build_schedule(terms):
        repo.session.add(Installment(
            enrollment_id=enrollment.id,
            number=number,
            due_date=due_date,
            amount_cents=amount,
            paid_at=None,
            note="",
        ))
    repo.session.flush()
    repo.session.expire(enrollment, ["installments"])

    plans_submitted_total.labels(payment_type=terms.payment_type.value).inc()
    logger.info(
        f"Enrollment {enrollment.id} for athlete {athlete_id}: "
        f"{format_cents(terms.total_amount_cents)} in {terms.installments_count} installment(s) "
        f"from {terms.first_due_date.isoformat()}"
    )
    return enrollment


def submit_plan(db: Session, owner_id: int, athlete_id: int, plan: Union[PlanRequest, dict]) -> Enrollment:
    """Create or wholesale-replace an athlete's payment plan in one transaction."""
    repo = LedgerRepository(db)
    ensure_athlete_owner(repo, athlete_id, owner_id)
    terms = parse_plan(plan)

    try:
        enrollment = upsert_enrollment(repo, athlete_id, terms)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return enrollment


def set_installment_paid(
    db: Session,
    owner_id: int,
    installment_id: int,
    paid_date=None,
    note: Optional[str] = None,
    clock: Optional[Clock] = None,
) -> Installment:
    """Mark an installment paid. Paying again overwrites the date and note."""
    repo = LedgerRepository(db)
    ownership = ensure_installment_owner(repo, installment_id, owner_id)
    paid_at = parse_optional_date(paid_date, "Payment date") or resolve_clock(clock).today()

    installment = ownership.installment
    try:
        installment.paid_at = paid_at
        installment.note = optional_text(note)
        db.commit()
    except Exception:
        db.rollback()
        raise

    installment_updates_total.labels(state="paid").inc()
    logger.info(f"Installment {installment.id} ({installment.number}) marked paid on {paid_at.isoformat()}")
    return installment


def set_installment_open(db: Session, owner_id: int, installment_id: int, note: Optional[str] = None) -> Installment:
    """Clear the paid date. The note is kept unless a new one is given."""
    repo = LedgerRepository(db)
    ownership = ensure_installment_owner(repo, installment_id, owner_id)

    installment = ownership.installment
    try:
        installment.paid_at = None
        if note is not None:
            installment.note = optional_text(note)
        db.commit()
    except Exception:
        db.rollback()
        raise

    installment_updates_total.labels(state="open").inc()
    logger.info(f"Installment {installment.id} ({installment.number}) reopened")
    return installment
