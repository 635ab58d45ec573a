"""
conftest.py - Shared pytest fixtures

Provides an in-memory store per test, a clock pinned to 2024-03-20 and
builders for organizers, challenges and athletes.
"""

from datetime import date

import pytest
from sqlalchemy import func, select

from challengeapp.clock import FixedClock
from challengeapp.models.challenge import Activity
from challengeapp.models.database import create_db_engine, init_db, make_session_factory
from challengeapp.services.challenges import create_athlete, create_challenge, create_organizer

TODAY = date(2024, 3, 20)

CASH_PLAN = {
    "total_amount": "150.00",
    "payment_type": "cash",
    "first_due_date": "2024-04-01",
}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def cash_plan(first_due_date: str, total_amount: str = "150.00") -> dict:
    return {
        "total_amount": total_amount,
        "payment_type": "cash",
        "first_due_date": first_due_date,
    }


def installment_plan(count, first_due_date: str = "2024-04-01", total_amount: str = "100.00") -> dict:
    return {
        "total_amount": total_amount,
        "payment_type": "installments",
        "installments_count": count,
        "first_due_date": first_due_date,
    }


def activity_count(db) -> int:
    return db.execute(select(func.count()).select_from(Activity)).scalar_one()


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    factory = make_session_factory(engine)
    with factory() as session:
        yield session


@pytest.fixture
def clock():
    return FixedClock(TODAY)


@pytest.fixture
def organizer(db):
    return create_organizer(db, "Marina")


@pytest.fixture
def other_organizer(db):
    return create_organizer(db, "Intruder")


@pytest.fixture
def make_challenge(db, organizer):
    def _make(goal_km=100, title="Spring 100k", owner=None):
        owner = owner or organizer
        return create_challenge(db, owner.id, {
            "title": title,
            "goal_km": goal_km,
            "start_date": "2024-03-01",
            "end_date": "2024-05-31",
        })
    return _make


@pytest.fixture
def challenge(make_challenge):
    return make_challenge()


@pytest.fixture
def make_athlete(db, organizer, challenge):
    def _make(name="Runner", plan=None, challenge_id=None, owner=None, **fields):
        owner = owner or organizer
        data = {"name": name, "plan": plan or dict(CASH_PLAN)}
        data.update(fields)
        return create_athlete(db, owner.id, challenge_id or challenge.id, data)
    return _make
