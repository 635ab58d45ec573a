# src/challengeapp/services/ranking.py

import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from ..metrics import ranking_duration
from ..models.challenge import Activity, Athlete
from ..repository import LedgerRepository
from .ownership import ensure_challenge_owner

GoalMarker = Tuple[date, int]


@dataclass
class Standing:
    position: int
    athlete_id: int
    name: str
    bib_number: str
    personal_goal_km: Optional[float]
    total_km: float
    last_activity_date: Optional[date]
    goal_reached_on: Optional[date]
    goal_reached_activity_id: Optional[int]
    created_at: datetime

    @property
    def reached_goal(self) -> bool:
        return self.goal_reached_on is not None


def goal_markers(activities: Sequence[Activity], goal_km: float) -> Dict[int, GoalMarker]:
    """First (date, activity id) at which each athlete's running total meets the goal.

    ``activities`` must already be in chronological insertion order.
    """
    markers: Dict[int, GoalMarker] = {}
    if goal_km <= 0:
        return markers

    running: Dict[int, List[float]] = defaultdict(list)
    for activity in activities:
        if activity.athlete_id in markers:
            continue
        running[activity.athlete_id].append(activity.km)
        # fsum, matching the totals
        if math.fsum(running[activity.athlete_id]) >= goal_km:
            markers[activity.athlete_id] = (activity.date, activity.id)
    return markers


def compute_standings(athletes: Sequence[Athlete], activities: Sequence[Activity], goal_km: float) -> List[Standing]:
    """Order athletes by total distance with goal-crossing and recency tie-breaks.

    Ties on distance go to whoever reached the goal first, then to the earlier
    last-activity date, then to the athlete registered first.
    """
    ordered = sorted(activities, key=lambda a: (a.date, a.id))
    distances: Dict[int, List[float]] = defaultdict(list)
    last_dates: Dict[int, date] = {}
    for activity in ordered:
        distances[activity.athlete_id].append(activity.km)
        last_dates[activity.athlete_id] = activity.date

    markers = goal_markers(ordered, goal_km or 0.0)

    def sort_key(athlete: Athlete):
        marker = markers.get(athlete.id)
        return (
            -math.fsum(distances[athlete.id]),
            marker is None,
            marker or (date.max, 0),
            last_dates.get(athlete.id, date.max),
            athlete.created_at,
            athlete.id,
        )

    standings = []
    for position, athlete in enumerate(sorted(athletes, key=sort_key), 1):
        marker = markers.get(athlete.id)
        standings.append(Standing(
            position=position,
            athlete_id=athlete.id,
            name=athlete.name,
            bib_number=athlete.bib_number,
            personal_goal_km=athlete.personal_goal_km,
            total_km=math.fsum(distances[athlete.id]),
            last_activity_date=last_dates.get(athlete.id),
            goal_reached_on=marker[0] if marker else None,
            goal_reached_activity_id=marker[1] if marker else None,
            created_at=athlete.created_at,
        ))
    return standings


def rank(db: Session, owner_id: int, challenge_id: int) -> List[Standing]:
    repo = LedgerRepository(db)
    challenge = ensure_challenge_owner(repo, challenge_id, owner_id)
    with ranking_duration.time():
        athletes = [t.athlete for t in repo.athlete_totals(challenge_id)]
        activities = repo.challenge_activities(challenge_id)
        return compute_standings(athletes, activities, float(challenge.goal_km or 0.0))
