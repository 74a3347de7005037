from __future__ import annotations

import datetime as dt

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from adaptcore import models
from adaptcore.config import Settings
from adaptcore.schemas import PlanSummary, Session


@pytest.fixture()
def db():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)

    # let SQLAlchemy own BEGIN so SAVEPOINTs nest inside a real transaction
    @event.listens_for(engine, "connect")
    def _no_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    models.Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    s = factory()
    try:
        yield s
    finally:
        s.close()
        engine.dispose()


@pytest.fixture()
def settings():
    return Settings(database_url="sqlite://")


def make_session(
    session_id: str,
    minutes: int,
    status: str = "planned",
    priority: str | None = None,
    zone: str | None = None,
    day: dt.date = dt.date(2026, 10, 19),
    sport: str = "run",
) -> Session:
    return Session(
        session_id=session_id,
        date=day,
        sport=sport,
        planned_duration_min=minutes,
        status=status,
        priority=priority,
        planned_zone_primary=zone,
    )


def make_plan(version: int = 12, blocks=()) -> PlanSummary:
    return PlanSummary(plan_id="00000000-0000-0000-0000-000000000abc", version=version, blocks=tuple(blocks))


PLAN_ID = "00000000-0000-0000-0000-000000000abc"


def seed_plan(s, athlete_id: str = "ath-1", version: int = 12, blocks=()):
    s.add(models.Plan(id=PLAN_ID, athlete_id=athlete_id, version=version))
    for phase, start, end in blocks:
        s.add(models.PlanBlock(plan_id=PLAN_ID, phase=phase, start_date=start, end_date=end))
    s.flush()


def seed_session(s, session_id: str, day: dt.date, minutes: int, athlete_id: str = "ath-1", **extra):
    s.add(
        models.PlanSession(
            session_id=session_id,
            athlete_id=athlete_id,
            plan_id=PLAN_ID,
            session_date=day,
            sport=extra.pop("sport", "run"),
            title=extra.pop("title", ""),
            planned_duration_min=minutes,
            **extra,
        )
    )
    s.flush()


def seed_readiness(s, day: dt.date, band: str, score: float | None = 50.0, athlete_id: str = "ath-1", **extra):
    s.add(
        models.ReadinessDaily(
            athlete_id=athlete_id,
            readiness_date=day,
            score=score,
            band=band,
            drivers=extra.pop("drivers", []),
            flags=extra.pop("flags", []),
            data_quality=extra.pop("data_quality", {}),
        )
    )
    s.flush()
