"""Authorization helpers.

Each helper resolves the full ownership chain once and either returns the
typed result or raises ``NotFoundError``. Missing records and records owned by
someone else produce the same error so callers cannot probe for existence.
"""

from ..errors import NotFoundError
from ..models.challenge import Challenge
from ..repository import AthleteOwnership, InstallmentOwnership, LedgerRepository


def ensure_challenge_owner(repo: LedgerRepository, challenge_id: int, owner_id: int) -> Challenge:
    challenge = repo.get_challenge(challenge_id, owner_id)
    if challenge is None:
        raise NotFoundError("Challenge not found or not permitted.")
    return challenge


def ensure_athlete_owner(repo: LedgerRepository, athlete_id: int, owner_id: int) -> AthleteOwnership:
    ownership = repo.resolve_athlete(athlete_id)
    if ownership is None or ownership.owner_id != owner_id:
        raise NotFoundError("Athlete not found or not permitted.")
    return ownership


def ensure_installment_owner(repo: LedgerRepository, installment_id: int, owner_id: int) -> InstallmentOwnership:
    ownership = repo.resolve_installment(installment_id)
    if ownership is None or ownership.owner_id != owner_id:
        raise NotFoundError("Installment not found or not permitted.")
    return ownership
