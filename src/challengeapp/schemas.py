"""Request bodies.

Field types are deliberately loose; the services own the domain validation
and report failures as ``ValidationError``.
"""

from datetime import date
from typing import Optional, Union

from pydantic import BaseModel

Number = Union[int, float, str]
DateLike = Union[date, str]


class PlanRequest(BaseModel):
    total_amount: Optional[Number] = None
    payment_type: Optional[str] = None
    installments_count: Optional[Number] = None
    first_due_date: Optional[DateLike] = None


class OrganizerIn(BaseModel):
    name: Optional[str] = None


class ChallengeIn(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    goal_km: Optional[Number] = 0
    start_date: Optional[DateLike] = None
    end_date: Optional[DateLike] = None


class AthleteIn(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    bib_number: Optional[str] = None
    birth_date: Optional[DateLike] = None
    gender: Optional[str] = None
    shirt_size: Optional[str] = None
    personal_goal_km: Optional[Number] = None
    plan: Optional[PlanRequest] = None


class ActivityIn(BaseModel):
    athlete_id: Optional[int] = None
    date: Optional[DateLike] = None
    km: Optional[Number] = None
    note: Optional[str] = None


class InstallmentPaidIn(BaseModel):
    paid_at: Optional[DateLike] = None
    note: Optional[str] = None


class InstallmentOpenIn(BaseModel):
    note: Optional[str] = None
