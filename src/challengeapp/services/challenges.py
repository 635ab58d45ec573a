# src/challengeapp/services/challenges.py

from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Union

from sqlalchemy.orm import Session

from ..clock import Clock, resolve_clock
from ..errors import NotFoundError, ValidationError
from ..models.challenge import Athlete, Challenge, Organizer
from ..repository import LedgerRepository
from ..schemas import AthleteIn, ChallengeIn
from ..utils.logging import setup_logger
from ..utils.parsing import optional_text, parse_iso_date, parse_number, parse_optional_date, parse_optional_number, require_text
from .delinquency import PaymentVerdict, evaluate_athlete
from .enrollment import parse_plan, upsert_enrollment
from .ownership import ensure_challenge_owner

logger = setup_logger(__name__)


@dataclass
class ChallengeSummary:
    challenge: Challenge
    total_km: float
    athletes_count: int


@dataclass
class AthleteSummary:
    athlete: Athlete
    total_km: float
    last_activity_date: Optional[date]
    payment_status: PaymentVerdict


@dataclass
class ChallengeProgress:
    goal_km: float
    total_km: float
    percent: float


def create_organizer(db: Session, name) -> Organizer:
    organizer = Organizer(name=require_text(name, "Name"))
    db.add(organizer)
    db.commit()
    logger.info(f"Created organizer {organizer.id}")
    return organizer


def _challenge_fields(data: Union[ChallengeIn, dict]) -> dict:
    if isinstance(data, dict):
        data = ChallengeIn(**data)
    title = require_text(data.title, "Title")
    start = parse_iso_date(data.start_date, "Start date")
    end = parse_iso_date(data.end_date, "End date")
    if end < start:
        raise ValidationError("End date must be on or after the start date.")
    return {
        "title": title,
        "description": optional_text(data.description),
        "goal_km": parse_number(data.goal_km if data.goal_km is not None else 0, "Goal (km)", 0),
        "start_date": start,
        "end_date": end,
    }


def list_challenges(db: Session, owner_id: int) -> List[ChallengeSummary]:
    repo = LedgerRepository(db)
    return [
        ChallengeSummary(challenge, float(total), int(count))
        for challenge, total, count in repo.list_challenges(owner_id)
    ]


def create_challenge(db: Session, owner_id: int, data: Union[ChallengeIn, dict]) -> Challenge:
    fields = _challenge_fields(data)
    repo = LedgerRepository(db)
    if repo.get_organizer(owner_id) is None:
        raise NotFoundError("Organizer not found or not permitted.")

    try:
        challenge = repo.add(Challenge(owner_id=owner_id, **fields))
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info(f"Created challenge {challenge.id} '{challenge.title}' for owner {owner_id}")
    return challenge


def update_challenge(db: Session, owner_id: int, challenge_id: int, data: Union[ChallengeIn, dict]) -> Challenge:
    repo = LedgerRepository(db)
    challenge = ensure_challenge_owner(repo, challenge_id, owner_id)
    fields = _challenge_fields(data)

    try:
        for name, value in fields.items():
            setattr(challenge, name, value)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info(f"Updated challenge {challenge.id}")
    return challenge


def delete_challenge(db: Session, owner_id: int, challenge_id: int) -> None:
    repo = LedgerRepository(db)
    ensure_challenge_owner(repo, challenge_id, owner_id)
    try:
        repo.delete_challenge_tree(challenge_id)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info(f"Deleted challenge {challenge_id}")


def challenge_progress(db: Session, owner_id: int, challenge_id: int) -> ChallengeProgress:
    repo = LedgerRepository(db)
    challenge = ensure_challenge_owner(repo, challenge_id, owner_id)
    goal = float(challenge.goal_km or 0.0)
    total = sum(t.total_km for t in repo.athlete_totals(challenge_id))
    percent = min(100.0, total / goal * 100) if goal > 0 else 0.0
    return ChallengeProgress(goal_km=goal, total_km=total, percent=percent)


def _athlete_fields(data: AthleteIn) -> dict:
    return {
        "name": require_text(data.name, "Athlete name"),
        "phone": optional_text(data.phone),
        "bib_number": optional_text(data.bib_number),
        "birth_date": parse_optional_date(data.birth_date, "Birth date"),
        "gender": optional_text(data.gender),
        "shirt_size": optional_text(data.shirt_size),
        "personal_goal_km": parse_optional_number(data.personal_goal_km, "Personal goal (km)", 0),
    }


def list_athletes(
    db: Session,
    owner_id: int,
    challenge_id: int,
    search: str = "",
    clock: Optional[Clock] = None,
) -> List[AthleteSummary]:
    repo = LedgerRepository(db)
    ensure_challenge_owner(repo, challenge_id, owner_id)
    today = resolve_clock(clock).today()
    return [
        AthleteSummary(
            athlete=t.athlete,
            total_km=t.total_km,
            last_activity_date=t.last_activity_date,
            payment_status=evaluate_athlete(repo, t.athlete.id, today),
        )
        for t in repo.athlete_totals(challenge_id, (search or "").strip())
    ]


def create_athlete(db: Session, owner_id: int, challenge_id: int, data: Union[AthleteIn, dict]) -> Athlete:
    """Register an athlete together with the mandatory payment plan."""
    if isinstance(data, dict):
        data = AthleteIn(**data)
    repo = LedgerRepository(db)
    ensure_challenge_owner(repo, challenge_id, owner_id)
    fields = _athlete_fields(data)
    terms = parse_plan(data.plan)

    try:
        athlete = repo.add(Athlete(challenge_id=challenge_id, **fields))
        upsert_enrollment(repo, athlete.id, terms)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info(f"Created athlete {athlete.id} in challenge {challenge_id}")
    return athlete


def update_athlete(
    db: Session,
    owner_id: int,
    challenge_id: int,
    athlete_id: int,
    data: Union[AthleteIn, dict],
) -> Athlete:
    """Update athlete details and replace the payment plan in one transaction."""
    if isinstance(data, dict):
        data = AthleteIn(**data)
    repo = LedgerRepository(db)
    ensure_challenge_owner(repo, challenge_id, owner_id)
    athlete = repo.get_athlete(athlete_id, challenge_id)
    if athlete is None:
        raise NotFoundError("Athlete not found or not permitted.")
    fields = _athlete_fields(data)
    terms = parse_plan(data.plan)

    try:
        for name, value in fields.items():
            setattr(athlete, name, value)
        upsert_enrollment(repo, athlete.id, terms)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info(f"Updated athlete {athlete.id}")
    return athlete


def delete_athlete(db: Session, owner_id: int, challenge_id: int, athlete_id: int) -> None:
    repo = LedgerRepository(db)
    ensure_challenge_owner(repo, challenge_id, owner_id)
    if repo.get_athlete(athlete_id, challenge_id) is None:
        raise NotFoundError("Athlete not found or not permitted.")
    try:
        repo.delete_athlete_tree(athlete_id)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info(f"Deleted athlete {athlete_id} from challenge {challenge_id}")
