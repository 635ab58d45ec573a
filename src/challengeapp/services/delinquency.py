# src/challengeapp/services/delinquency.py

"""Payment status of installments and athletes.

An unpaid installment is OPEN until its due date, OVERDUE the day after,
OVERDUE_N_DAYS for 2 to 10 days late and BLOCKED beyond that. The athlete
verdict looks only at unpaid installments due strictly before today and is
BLOCKED once the worst of them is more than ``BLOCK_AFTER_DAYS`` late.
"""

import enum
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from ..clock import Clock, resolve_clock
from ..errors import ValidationError
from ..models.enrollment import Enrollment, Installment
from ..repository import InstallmentRow, LedgerRepository
from ..utils.parsing import parse_optional_date
from .ownership import ensure_athlete_owner, ensure_challenge_owner

BLOCK_AFTER_DAYS = 10


class InstallmentStatusCode(enum.Enum):
    PAID = "PAID"
    OPEN = "OPEN"
    OVERDUE = "OVERDUE"
    OVERDUE_N_DAYS = "OVERDUE_N_DAYS"
    BLOCKED = "BLOCKED"


class VerdictCode(enum.Enum):
    ON_TRACK = "ON_TRACK"
    GRACE_PERIOD = "GRACE_PERIOD"
    BLOCKED = "BLOCKED"


@dataclass(frozen=True)
class InstallmentStatus:
    code: InstallmentStatusCode
    label: str
    overdue_days: int = 0
    blocked: bool = False


@dataclass(frozen=True)
class PaymentVerdict:
    code: VerdictCode
    label: str
    blocked: bool
    max_overdue_days: int = 0
    block_reason: Optional[str] = None


@dataclass
class InstallmentView:
    installment: Installment
    status: InstallmentStatus


@dataclass
class AthletePayments:
    enrollment: Enrollment
    installments: List[InstallmentView]
    verdict: PaymentVerdict
    challenge_id: int


@dataclass
class Pendency:
    row: InstallmentRow
    overdue_days: int
    severity: str
    label: str


@dataclass
class FinanceSummary:
    total_expected_cents: int
    total_received_cents: int
    total_open_cents: int
    delinquent_value_cents: int
    delinquent_athletes_count: int
    paid_installments: List[InstallmentRow] = field(default_factory=list)
    overdue_installments: List[Pendency] = field(default_factory=list)


def overdue_days(due_date: date, today: date) -> int:
    """Calendar days from due date to today; negative when not yet due."""
    return (today - due_date).days


def installment_status(due_date: date, paid_at: Optional[date], today: date) -> InstallmentStatus:
    if paid_at is not None:
        return InstallmentStatus(InstallmentStatusCode.PAID, "Paid")
    if today <= due_date:
        return InstallmentStatus(InstallmentStatusCode.OPEN, "Open")

    days = overdue_days(due_date, today)
    if days > BLOCK_AFTER_DAYS:
        return InstallmentStatus(InstallmentStatusCode.BLOCKED, "Blocked", days, True)
    if days > 1:
        return InstallmentStatus(InstallmentStatusCode.OVERDUE_N_DAYS, f"Overdue {days} days", days)
    return InstallmentStatus(InstallmentStatusCode.OVERDUE, "Overdue", days)


def verdict_from_overdue(due_dates: List[date], today: date) -> PaymentVerdict:
    """Aggregate the due dates of unpaid, past-due installments into a verdict."""
    if not due_dates:
        return PaymentVerdict(VerdictCode.ON_TRACK, "On track", blocked=False)

    worst = max(overdue_days(due, today) for due in due_dates)
    if worst > BLOCK_AFTER_DAYS:
        return PaymentVerdict(
            VerdictCode.BLOCKED,
            "Blocked for late payment",
            blocked=True,
            max_overdue_days=worst,
            block_reason=(
                f"An installment is {worst} days overdue "
                f"(tolerance is {BLOCK_AFTER_DAYS} days)."
            ),
        )
    return PaymentVerdict(
        VerdictCode.GRACE_PERIOD,
        f"Late {worst} day(s)",
        blocked=False,
        max_overdue_days=worst,
    )


def evaluate_athlete(repo: LedgerRepository, athlete_id: int, today: date) -> PaymentVerdict:
    """Verdict for an athlete whose ownership has already been checked."""
    overdue = repo.unpaid_installments_before(athlete_id, today)
    return verdict_from_overdue([i.due_date for i in overdue], today)


def athlete_payment_status(db: Session, owner_id: int, athlete_id: int, clock: Optional[Clock] = None) -> PaymentVerdict:
    repo = LedgerRepository(db)
    ensure_athlete_owner(repo, athlete_id, owner_id)
    return evaluate_athlete(repo, athlete_id, resolve_clock(clock).today())


def get_athlete_payments(db: Session, owner_id: int, athlete_id: int, clock: Optional[Clock] = None) -> AthletePayments:
    repo = LedgerRepository(db)
    ownership = ensure_athlete_owner(repo, athlete_id, owner_id)
    enrollment = repo.get_enrollment(athlete_id)
    if enrollment is None:
        raise ValidationError("Athlete has no enrollment on file.")

    today = resolve_clock(clock).today()
    views = [
        InstallmentView(i, installment_status(i.due_date, i.paid_at, today))
        for i in repo.installments_for_athlete(athlete_id)
    ]
    return AthletePayments(
        enrollment=enrollment,
        installments=views,
        verdict=evaluate_athlete(repo, athlete_id, today),
        challenge_id=ownership.challenge_id,
    )


def _pendency(row: InstallmentRow, today: date) -> Pendency:
    days = overdue_days(row.installment.due_date, today)
    if days > BLOCK_AFTER_DAYS:
        return Pendency(row, days, "blocked", f"Blocked ({days} days)")
    return Pendency(row, days, "warning", f"Overdue {days} days")


def list_payment_pendencies(
    db: Session,
    owner_id: int,
    challenge_id: Optional[int] = None,
    clock: Optional[Clock] = None,
) -> List[Pendency]:
    """Unpaid installments past due across the owner's challenges."""
    repo = LedgerRepository(db)
    if challenge_id is not None:
        ensure_challenge_owner(repo, challenge_id, owner_id)
    today = resolve_clock(clock).today()
    rows = repo.owner_unpaid_installments_before(owner_id, today, challenge_id)
    return [_pendency(row, today) for row in rows]


def finance_summary(
    db: Session,
    owner_id: int,
    challenge_id: Optional[int] = None,
    start_date=None,
    end_date=None,
    clock: Optional[Clock] = None,
) -> FinanceSummary:
    """Totals over installments due in [start_date, end_date] and payments made in it."""
    repo = LedgerRepository(db)
    if challenge_id is not None:
        ensure_challenge_owner(repo, challenge_id, owner_id)
    start = parse_optional_date(start_date, "Start date")
    end = parse_optional_date(end_date, "End date")
    today = resolve_clock(clock).today()

    due = repo.owner_installments_due_between(owner_id, challenge_id, start, end)
    paid = repo.owner_installments_paid_between(owner_id, challenge_id, start, end)

    expected = sum(r.installment.amount_cents for r in due)
    received = sum(r.installment.amount_cents for r in due if r.installment.is_paid)
    overdue = [
        r for r in due
        if not r.installment.is_paid and r.installment.due_date < today
    ]

    return FinanceSummary(
        total_expected_cents=expected,
        total_received_cents=received,
        total_open_cents=expected - received,
        delinquent_value_cents=sum(r.installment.amount_cents for r in overdue),
        delinquent_athletes_count=len({r.athlete_id for r in overdue}),
        paid_installments=paid,
        overdue_installments=[_pendency(r, today) for r in overdue],
    )
