# src/challengeapp/services/activities.py

from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.orm import Session

from ..clock import Clock, resolve_clock
from ..errors import NotFoundError, PaymentBlockedError, ValidationError
from ..metrics import activities_recorded_total, activity_rejections_total
from ..models.challenge import Activity
from ..repository import LedgerRepository
from ..utils.logging import setup_logger
from ..utils.parsing import optional_text, parse_iso_date, parse_positive_number
from .delinquency import BLOCK_AFTER_DAYS, PaymentVerdict, evaluate_athlete
from .ownership import ensure_athlete_owner, ensure_challenge_owner

logger = setup_logger(__name__)


@dataclass
class RecordedActivity:
    activity: Activity
    challenge_id: int
    verdict: PaymentVerdict


def record_activity(
    db: Session,
    owner_id: int,
    athlete_id,
    activity_date,
    km,
    note: Optional[str] = None,
    clock: Optional[Clock] = None,
) -> RecordedActivity:
    """Append a distance entry unless the athlete is blocked for late payment."""
    if athlete_id is None or athlete_id == "":
        raise ValidationError("Select an athlete.")

    repo = LedgerRepository(db)
    try:
        ownership = ensure_athlete_owner(repo, int(athlete_id), owner_id)
    except (TypeError, ValueError):
        raise ValidationError("Select an athlete.")
    except NotFoundError:
        activity_rejections_total.labels(reason="not_found").inc()
        logger.warning(f"Activity rejected: athlete {athlete_id} not found for owner {owner_id}")
        raise

    on_date = parse_iso_date(activity_date, "Date")
    distance = parse_positive_number(km, "Distance (km)")
    text = optional_text(note)

    verdict = evaluate_athlete(repo, ownership.athlete.id, resolve_clock(clock).today())
    if verdict.blocked:
        activity_rejections_total.labels(reason="payment_blocked").inc()
        logger.warning(
            f"Activity rejected: athlete {ownership.athlete.id} blocked, "
            f"{verdict.max_overdue_days} days overdue"
        )
        raise PaymentBlockedError(
            f"Athlete is blocked for late payment: an installment is more than "
            f"{BLOCK_AFTER_DAYS} days overdue.",
            verdict=verdict,
        )

    try:
        activity = Activity(athlete_id=ownership.athlete.id, date=on_date, km=distance, note=text)
        repo.add(activity)
        db.commit()
    except Exception:
        db.rollback()
        raise

    activities_recorded_total.inc()
    logger.info(
        f"Recorded {distance} km for athlete {ownership.athlete.id} on {on_date.isoformat()} "
        f"(challenge {ownership.challenge_id}, {verdict.code.value})"
    )
    return RecordedActivity(activity=activity, challenge_id=ownership.challenge_id, verdict=verdict)


def list_activities(db: Session, owner_id: int, challenge_id: int) -> List[Activity]:
    """Activities of a challenge, newest first."""
    repo = LedgerRepository(db)
    ensure_challenge_owner(repo, challenge_id, owner_id)
    return repo.challenge_activities(challenge_id, newest_first=True)
