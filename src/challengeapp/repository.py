# src/challengeapp/repository.py

from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from .models.challenge import Activity, Athlete, Challenge, Organizer
from .models.enrollment import Enrollment, Installment


@dataclass(frozen=True)
class AthleteOwnership:
    athlete: Athlete
    challenge_id: int
    owner_id: int


@dataclass(frozen=True)
class InstallmentOwnership:
    installment: Installment
    enrollment: Enrollment
    athlete_id: int
    challenge_id: int
    owner_id: int


@dataclass(frozen=True)
class AthleteTotals:
    athlete: Athlete
    total_km: float
    last_activity_date: Optional[date]


@dataclass(frozen=True)
class InstallmentRow:
    """An installment joined with the athlete and challenge it belongs to."""

    installment: Installment
    athlete_id: int
    athlete_name: str
    challenge_id: int
    challenge_title: str


class LedgerRepository:
    """Ownership-scoped queries and mutation primitives over one session.

    Holds no state besides the session; build one per unit of work.
    """

    def __init__(self, session: Session):
        self.session = session

    # -- point lookups -----------------------------------------------------

    def get_organizer(self, organizer_id: int) -> Optional[Organizer]:
        return self.session.get(Organizer, organizer_id)

    def get_challenge(self, challenge_id: int, owner_id: int) -> Optional[Challenge]:
        stmt = select(Challenge).where(
            Challenge.id == challenge_id,
            Challenge.owner_id == owner_id,
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def get_athlete(self, athlete_id: int, challenge_id: int) -> Optional[Athlete]:
        stmt = select(Athlete).where(
            Athlete.id == athlete_id,
            Athlete.challenge_id == challenge_id,
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def resolve_athlete(self, athlete_id: int) -> Optional[AthleteOwnership]:
        stmt = (
            select(Athlete, Challenge.owner_id)
            .join(Challenge, Challenge.id == Athlete.challenge_id)
            .where(Athlete.id == athlete_id)
        )
        row = self.session.execute(stmt).first()
        if row is None:
            return None
        athlete, owner_id = row
        return AthleteOwnership(athlete=athlete, challenge_id=athlete.challenge_id, owner_id=owner_id)

    def resolve_installment(self, installment_id: int) -> Optional[InstallmentOwnership]:
        """Walk installment -> enrollment -> athlete -> challenge -> owner in one query."""
        stmt = (
            select(Installment, Enrollment, Athlete.id, Challenge.id, Challenge.owner_id)
            .join(Enrollment, Enrollment.id == Installment.enrollment_id)
            .join(Athlete, Athlete.id == Enrollment.athlete_id)
            .join(Challenge, Challenge.id == Athlete.challenge_id)
            .where(Installment.id == installment_id)
        )
        row = self.session.execute(stmt).first()
        if row is None:
            return None
        installment, enrollment, athlete_id, challenge_id, owner_id = row
        return InstallmentOwnership(
            installment=installment,
            enrollment=enrollment,
            athlete_id=athlete_id,
            challenge_id=challenge_id,
            owner_id=owner_id,
        )

    def get_enrollment(self, athlete_id: int) -> Optional[Enrollment]:
        stmt = select(Enrollment).where(Enrollment.athlete_id == athlete_id)
        return self.session.execute(stmt).scalar_one_or_none()

    # -- collection queries ------------------------------------------------

    def list_challenges(self, owner_id: int) -> List[tuple]:
        """(challenge, total_km, athletes_count) ordered by end date, newest first on ties."""
        stmt = (
            select(
                Challenge,
                func.coalesce(func.sum(Activity.km), 0.0),
                func.count(func.distinct(Athlete.id)),
            )
            .outerjoin(Athlete, Athlete.challenge_id == Challenge.id)
            .outerjoin(Activity, Activity.athlete_id == Athlete.id)
            .where(Challenge.owner_id == owner_id)
            .group_by(Challenge.id)
            .order_by(Challenge.end_date.asc(), Challenge.created_at.desc(), Challenge.id.desc())
        )
        return [tuple(row) for row in self.session.execute(stmt).all()]

    def athlete_totals(self, challenge_id: int, search: str = "") -> List[AthleteTotals]:
        stmt = (
            select(
                Athlete,
                func.coalesce(func.sum(Activity.km), 0.0),
                func.max(Activity.date),
            )
            .outerjoin(Activity, Activity.athlete_id == Athlete.id)
            .where(Athlete.challenge_id == challenge_id)
            .group_by(Athlete.id)
            .order_by(func.lower(Athlete.name).asc(), Athlete.id.asc())
        )
        if search:
            stmt = stmt.where(func.lower(Athlete.name).like(f"%{search.lower()}%"))
        return [
            AthleteTotals(athlete=athlete, total_km=float(total), last_activity_date=last)
            for athlete, total, last in self.session.execute(stmt).all()
        ]

    def challenge_activities(self, challenge_id: int, newest_first: bool = False) -> List[Activity]:
        """Activities of a challenge in chronological (or reverse) insertion order."""
        stmt = (
            select(Activity)
            .join(Athlete, Athlete.id == Activity.athlete_id)
            .where(Athlete.challenge_id == challenge_id)
        )
        if newest_first:
            stmt = stmt.order_by(Activity.date.desc(), Activity.id.desc())
        else:
            stmt = stmt.order_by(Activity.date.asc(), Activity.id.asc())
        return list(self.session.execute(stmt).scalars().all())

    def installments_for_athlete(self, athlete_id: int) -> List[Installment]:
        stmt = (
            select(Installment)
            .join(Enrollment, Enrollment.id == Installment.enrollment_id)
            .where(Enrollment.athlete_id == athlete_id)
            .order_by(Installment.number.asc())
        )
        return list(self.session.execute(stmt).scalars().all())

    def unpaid_installments_before(self, athlete_id: int, before: date) -> List[Installment]:
        stmt = (
            select(Installment)
            .join(Enrollment, Enrollment.id == Installment.enrollment_id)
            .where(
                Enrollment.athlete_id == athlete_id,
                Installment.paid_at.is_(None),
                Installment.due_date < before,
            )
            .order_by(Installment.due_date.asc())
        )
        return list(self.session.execute(stmt).scalars().all())

    def _owner_installments(self, owner_id: int, challenge_id: Optional[int] = None):
        stmt = (
            select(Installment, Athlete.id, Athlete.name, Challenge.id, Challenge.title)
            .join(Enrollment, Enrollment.id == Installment.enrollment_id)
            .join(Athlete, Athlete.id == Enrollment.athlete_id)
            .join(Challenge, Challenge.id == Athlete.challenge_id)
            .where(Challenge.owner_id == owner_id)
        )
        if challenge_id is not None:
            stmt = stmt.where(Challenge.id == challenge_id)
        return stmt

    def _rows(self, stmt) -> List[InstallmentRow]:
        return [InstallmentRow(*row) for row in self.session.execute(stmt).all()]

    def owner_unpaid_installments_before(
        self, owner_id: int, before: date, challenge_id: Optional[int] = None
    ) -> List[InstallmentRow]:
        stmt = (
            self._owner_installments(owner_id, challenge_id)
            .where(Installment.paid_at.is_(None), Installment.due_date < before)
            .order_by(Installment.due_date.asc(), func.lower(Athlete.name).asc(), Installment.id.asc())
        )
        return self._rows(stmt)

    def owner_installments_due_between(
        self,
        owner_id: int,
        challenge_id: Optional[int] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[InstallmentRow]:
        stmt = self._owner_installments(owner_id, challenge_id)
        if start is not None:
            stmt = stmt.where(Installment.due_date >= start)
        if end is not None:
            stmt = stmt.where(Installment.due_date <= end)
        stmt = stmt.order_by(Installment.due_date.asc(), func.lower(Athlete.name).asc(), Installment.id.asc())
        return self._rows(stmt)

    def owner_installments_paid_between(
        self,
        owner_id: int,
        challenge_id: Optional[int] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[InstallmentRow]:
        stmt = self._owner_installments(owner_id, challenge_id).where(Installment.paid_at.is_not(None))
        if start is not None:
            stmt = stmt.where(Installment.paid_at >= start)
        if end is not None:
            stmt = stmt.where(Installment.paid_at <= end)
        stmt = stmt.order_by(Installment.paid_at.desc(), Installment.id.desc())
        return self._rows(stmt)

    # -- mutations ---------------------------------------------------------

    def add(self, obj):
        self.session.add(obj)
        self.session.flush()
        return obj

    def delete_installments(self, enrollment_id: int) -> int:
        """Remove every installment of an enrollment as one statement."""
        result = self.session.execute(
            delete(Installment).where(Installment.enrollment_id == enrollment_id)
        )
        return result.rowcount

    def delete_athlete_tree(self, athlete_id: int) -> None:
        """Delete an athlete with its installments, enrollment and activities."""
        enrollment_ids = select(Enrollment.id).where(Enrollment.athlete_id == athlete_id)
        self.session.execute(delete(Installment).where(Installment.enrollment_id.in_(enrollment_ids)))
        self.session.execute(delete(Enrollment).where(Enrollment.athlete_id == athlete_id))
        self.session.execute(delete(Activity).where(Activity.athlete_id == athlete_id))
        self.session.execute(delete(Athlete).where(Athlete.id == athlete_id))

    def delete_challenge_tree(self, challenge_id: int) -> None:
        athlete_ids = self.session.execute(
            select(Athlete.id).where(Athlete.challenge_id == challenge_id)
        ).scalars().all()
        for athlete_id in athlete_ids:
            self.delete_athlete_tree(athlete_id)
        self.session.execute(delete(Challenge).where(Challenge.id == challenge_id))
