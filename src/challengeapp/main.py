# src/challengeapp/main.py
import logging
from dataclasses import asdict
from datetime import date
from typing import Optional

import uvicorn
from sqlalchemy.exc import IntegrityError
from fastapi import Depends, FastAPI, Header, Request  # type: ignore
from fastapi.responses import JSONResponse  # type: ignore

from .clock import Clock
from .config import Settings, settings as default_settings
from .errors import AppError, ConflictError, UnauthorizedError
from .metrics import start_metrics_server
from .models.database import check_db_connection, create_db_engine, get_session, init_db, make_session_factory
from .repository import InstallmentRow
from .schemas import ActivityIn, AthleteIn, ChallengeIn, InstallmentOpenIn, InstallmentPaidIn, OrganizerIn, PlanRequest
from .services import activities, challenges, delinquency, enrollment, ranking
from .utils.logging import setup_logger

logger = setup_logger(__name__)


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def challenge_to_dict(challenge) -> dict:
    return {
        "id": challenge.id,
        "owner_id": challenge.owner_id,
        "title": challenge.title,
        "description": challenge.description,
        "goal_km": challenge.goal_km,
        "start_date": _iso(challenge.start_date),
        "end_date": _iso(challenge.end_date),
    }


def athlete_to_dict(athlete) -> dict:
    return {
        "id": athlete.id,
        "challenge_id": athlete.challenge_id,
        "name": athlete.name,
        "phone": athlete.phone,
        "bib_number": athlete.bib_number,
        "birth_date": _iso(athlete.birth_date),
        "gender": athlete.gender,
        "shirt_size": athlete.shirt_size,
        "personal_goal_km": athlete.personal_goal_km,
    }


def enrollment_to_dict(item) -> dict:
    return {
        "id": item.id,
        "athlete_id": item.athlete_id,
        "total_amount_cents": item.total_amount_cents,
        "payment_type": item.payment_type.value,
        "installments_count": item.installments_count,
        "first_due_date": _iso(item.first_due_date),
    }


def installment_to_dict(item) -> dict:
    return {
        "id": item.id,
        "number": item.number,
        "due_date": _iso(item.due_date),
        "amount_cents": item.amount_cents,
        "paid_at": _iso(item.paid_at),
        "note": item.note,
    }


def verdict_to_dict(verdict) -> dict:
    return {
        "code": verdict.code.value,
        "label": verdict.label,
        "blocked": verdict.blocked,
        "max_overdue_days": verdict.max_overdue_days,
        "block_reason": verdict.block_reason,
    }


def row_to_dict(row: InstallmentRow) -> dict:
    data = installment_to_dict(row.installment)
    data.update({
        "athlete_id": row.athlete_id,
        "athlete_name": row.athlete_name,
        "challenge_id": row.challenge_id,
        "challenge_title": row.challenge_title,
    })
    return data


def pendency_to_dict(pendency) -> dict:
    data = row_to_dict(pendency.row)
    data.update({
        "overdue_days": pendency.overdue_days,
        "severity": pendency.severity,
        "status_label": pendency.label,
        "blocked": pendency.severity == "blocked",
    })
    return data


def activity_to_dict(activity) -> dict:
    return {
        "id": activity.id,
        "athlete_id": activity.athlete_id,
        "date": _iso(activity.date),
        "km": activity.km,
        "note": activity.note,
    }


def standing_to_dict(standing) -> dict:
    data = asdict(standing)
    for key in ("last_activity_date", "goal_reached_on"):
        data[key] = _iso(data[key])
    data["created_at"] = standing.created_at.isoformat()
    data["reached_goal"] = standing.reached_goal
    return data


def get_db(request: Request):
    yield from get_session(request.app.state.session_factory)


def get_clock(request: Request) -> Clock:
    return request.app.state.clock


def get_owner_id(x_owner_id: Optional[str] = Header(default=None)) -> int:
    try:
        owner_id = int(x_owner_id)
    except (TypeError, ValueError):
        raise UnauthorizedError("Invalid user.")
    if owner_id <= 0:
        raise UnauthorizedError("Invalid user.")
    return owner_id


def create_app(config: Optional[Settings] = None, clock: Optional[Clock] = None) -> FastAPI:
    """Build the API over a freshly opened store."""
    config = config or default_settings
    engine = create_db_engine(config.database_url, echo=config.sql_echo)
    init_db(engine)

    app = FastAPI(title="challengeapp")
    app.state.engine = engine
    app.state.session_factory = make_session_factory(engine)
    app.state.clock = clock or Clock()

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        logger.warning(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError):
        logger.error(f"{request.method} {request.url.path} violated a constraint: {exc.orig}")
        conflict = ConflictError("The record conflicts with existing data.")
        return JSONResponse(status_code=conflict.status_code, content={"error": conflict.to_dict()})

    @app.on_event("startup")
    async def on_startup():
        """Initialize services on startup."""
        if not check_db_connection(engine):
            logger.error("Database connection failed")
            raise Exception("Database connection failed")
        if config.metrics_enabled:
            start_metrics_server(config.metrics_port)
        logger.info("Application startup completed successfully")

    @app.on_event("shutdown")
    async def on_shutdown():
        engine.dispose()
        logger.info("Application shutdown complete")

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    # -- organizers & challenges ------------------------------------------

    @app.post("/organizers", status_code=201)
    def create_organizer(body: OrganizerIn, db=Depends(get_db)):
        organizer = challenges.create_organizer(db, body.name)
        return {"organizer": {"id": organizer.id, "name": organizer.name}}

    @app.get("/challenges")
    def list_challenges(owner_id: int = Depends(get_owner_id), db=Depends(get_db)):
        rows = challenges.list_challenges(db, owner_id)
        return {"challenges": [
            dict(challenge_to_dict(r.challenge), total_km=r.total_km, athletes_count=r.athletes_count)
            for r in rows
        ]}

    @app.post("/challenges", status_code=201)
    def create_challenge(body: ChallengeIn, owner_id: int = Depends(get_owner_id), db=Depends(get_db)):
        return {"challenge": challenge_to_dict(challenges.create_challenge(db, owner_id, body))}

    @app.put("/challenges/{challenge_id}")
    def update_challenge(challenge_id: int, body: ChallengeIn, owner_id: int = Depends(get_owner_id), db=Depends(get_db)):
        return {"challenge": challenge_to_dict(challenges.update_challenge(db, owner_id, challenge_id, body))}

    @app.delete("/challenges/{challenge_id}")
    def delete_challenge(challenge_id: int, owner_id: int = Depends(get_owner_id), db=Depends(get_db)):
        challenges.delete_challenge(db, owner_id, challenge_id)
        return {"success": True}

    @app.get("/challenges/{challenge_id}/progress")
    def get_progress(challenge_id: int, owner_id: int = Depends(get_owner_id), db=Depends(get_db)):
        return {"progress": asdict(challenges.challenge_progress(db, owner_id, challenge_id))}

    @app.get("/challenges/{challenge_id}/ranking")
    def get_ranking(challenge_id: int, owner_id: int = Depends(get_owner_id), db=Depends(get_db)):
        return {"ranking": [standing_to_dict(s) for s in ranking.rank(db, owner_id, challenge_id)]}

    @app.get("/challenges/{challenge_id}/activities")
    def list_activities(challenge_id: int, owner_id: int = Depends(get_owner_id), db=Depends(get_db)):
        rows = activities.list_activities(db, owner_id, challenge_id)
        return {"activities": [activity_to_dict(a) for a in rows]}

    # -- athletes ---------------------------------------------------------

    @app.get("/challenges/{challenge_id}/athletes")
    def list_athletes(
        challenge_id: int,
        search: str = "",
        owner_id: int = Depends(get_owner_id),
        db=Depends(get_db),
        clock: Clock = Depends(get_clock),
    ):
        rows = challenges.list_athletes(db, owner_id, challenge_id, search, clock=clock)
        return {"athletes": [
            dict(
                athlete_to_dict(r.athlete),
                total_km=r.total_km,
                last_activity_date=_iso(r.last_activity_date),
                payment_status=verdict_to_dict(r.payment_status),
            )
            for r in rows
        ]}

    @app.post("/challenges/{challenge_id}/athletes", status_code=201)
    def create_athlete(challenge_id: int, body: AthleteIn, owner_id: int = Depends(get_owner_id), db=Depends(get_db)):
        return {"athlete": athlete_to_dict(challenges.create_athlete(db, owner_id, challenge_id, body))}

    @app.put("/challenges/{challenge_id}/athletes/{athlete_id}")
    def update_athlete(
        challenge_id: int,
        athlete_id: int,
        body: AthleteIn,
        owner_id: int = Depends(get_owner_id),
        db=Depends(get_db),
    ):
        athlete = challenges.update_athlete(db, owner_id, challenge_id, athlete_id, body)
        return {"athlete": athlete_to_dict(athlete)}

    @app.delete("/challenges/{challenge_id}/athletes/{athlete_id}")
    def delete_athlete(challenge_id: int, athlete_id: int, owner_id: int = Depends(get_owner_id), db=Depends(get_db)):
        challenges.delete_athlete(db, owner_id, challenge_id, athlete_id)
        return {"success": True}

    # -- payments ---------------------------------------------------------

    @app.put("/athletes/{athlete_id}/plan")
    def submit_plan(athlete_id: int, body: PlanRequest, owner_id: int = Depends(get_owner_id), db=Depends(get_db)):
        saved = enrollment.submit_plan(db, owner_id, athlete_id, body)
        return {
            "enrollment": enrollment_to_dict(saved),
            "installments": [installment_to_dict(i) for i in saved.installments],
        }

    @app.get("/athletes/{athlete_id}/payments")
    def get_payments(
        athlete_id: int,
        owner_id: int = Depends(get_owner_id),
        db=Depends(get_db),
        clock: Clock = Depends(get_clock),
    ):
        payments = delinquency.get_athlete_payments(db, owner_id, athlete_id, clock=clock)
        return {
            "enrollment": enrollment_to_dict(payments.enrollment),
            "installments": [
                dict(
                    installment_to_dict(v.installment),
                    status_code=v.status.code.value,
                    status_label=v.status.label,
                    overdue_days=v.status.overdue_days,
                    blocked=v.status.blocked,
                )
                for v in payments.installments
            ],
            "payment_status": verdict_to_dict(payments.verdict),
            "challenge_id": payments.challenge_id,
        }

    @app.get("/athletes/{athlete_id}/payment-status")
    def get_payment_status(
        athlete_id: int,
        owner_id: int = Depends(get_owner_id),
        db=Depends(get_db),
        clock: Clock = Depends(get_clock),
    ):
        verdict = delinquency.athlete_payment_status(db, owner_id, athlete_id, clock=clock)
        return {"payment_status": verdict_to_dict(verdict)}

    @app.post("/installments/{installment_id}/paid")
    def mark_paid(
        installment_id: int,
        body: InstallmentPaidIn,
        owner_id: int = Depends(get_owner_id),
        db=Depends(get_db),
        clock: Clock = Depends(get_clock),
    ):
        item = enrollment.set_installment_paid(db, owner_id, installment_id, body.paid_at, body.note, clock=clock)
        return {"installment": installment_to_dict(item)}

    @app.post("/installments/{installment_id}/open")
    def mark_open(installment_id: int, body: InstallmentOpenIn, owner_id: int = Depends(get_owner_id), db=Depends(get_db)):
        item = enrollment.set_installment_open(db, owner_id, installment_id, body.note)
        return {"installment": installment_to_dict(item)}

    @app.get("/pendencies")
    def list_pendencies(
        challenge_id: Optional[int] = None,
        owner_id: int = Depends(get_owner_id),
        db=Depends(get_db),
        clock: Clock = Depends(get_clock),
    ):
        rows = delinquency.list_payment_pendencies(db, owner_id, challenge_id, clock=clock)
        return {"pendencies": [pendency_to_dict(p) for p in rows]}

    @app.get("/finance/summary")
    def get_finance_summary(
        challenge_id: Optional[int] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        owner_id: int = Depends(get_owner_id),
        db=Depends(get_db),
        clock: Clock = Depends(get_clock),
    ):
        summary = delinquency.finance_summary(db, owner_id, challenge_id, start_date, end_date, clock=clock)
        return {
            "totals": {
                "total_expected_cents": summary.total_expected_cents,
                "total_received_cents": summary.total_received_cents,
                "total_open_cents": summary.total_open_cents,
                "delinquent_athletes_count": summary.delinquent_athletes_count,
                "delinquent_value_cents": summary.delinquent_value_cents,
            },
            "paid_installments": [row_to_dict(r) for r in summary.paid_installments],
            "overdue_installments": [pendency_to_dict(p) for p in summary.overdue_installments],
        }

    # -- activities -------------------------------------------------------

    @app.post("/activities", status_code=201)
    def create_activity(
        body: ActivityIn,
        owner_id: int = Depends(get_owner_id),
        db=Depends(get_db),
        clock: Clock = Depends(get_clock),
    ):
        recorded = activities.record_activity(
            db, owner_id, body.athlete_id, body.date, body.km, body.note, clock=clock
        )
        return {"activity": dict(
            activity_to_dict(recorded.activity),
            challenge_id=recorded.challenge_id,
            payment_check=verdict_to_dict(recorded.verdict),
        )}

    return app


if __name__ == "__main__":
    logging.getLogger("uvicorn").setLevel(default_settings.log_level.upper())
    uvicorn.run(create_app(), host=default_settings.api_host, port=default_settings.api_port)
