"""Read-only collectors for the inputs of one adaptation request.

All of them may return empty collections. ``fetch_readiness`` returns None
when there is no snapshot for the day; store errors propagate.
"""

from __future__ import annotations

import datetime as dt

from sqlalchemy import select
from sqlalchemy.orm import Session as OrmSession

from adaptcore import models
from adaptcore.errors import PlanNotFoundError
from adaptcore.schemas import (
    Blocker,
    LoadPoint,
    PlanBlock,
    PlanSummary,
    Readiness,
    Session,
    as_utc,
)


def _window_dates(start: dt.datetime, end: dt.datetime) -> tuple[dt.date, dt.date]:
    """Dates overlapping the half-open instant window ``[start, end)``."""
    last = (end - dt.timedelta(microseconds=1)).date() if end > start else start.date()
    return start.date(), last


def fetch_plan_summary(s: OrmSession, athlete_id: str) -> PlanSummary:
    plan = s.execute(
        select(models.Plan)
        .where(models.Plan.athlete_id == athlete_id, models.Plan.status == "active")
        .order_by(models.Plan.created_at.desc())
        .limit(1)
    ).scalar_one_or_none()
    if plan is None:
        raise PlanNotFoundError("No active plan for athlete", athlete_id=athlete_id)

    blocks = s.execute(
        select(models.PlanBlock).where(models.PlanBlock.plan_id == plan.id).order_by(models.PlanBlock.start_date)
    ).scalars()
    return PlanSummary(
        plan_id=plan.id,
        version=plan.version,
        blocks=tuple(PlanBlock(phase=b.phase, start_date=b.start_date, end_date=b.end_date) for b in blocks),
    )


def fetch_sessions_in_window(s: OrmSession, athlete_id: str, start: dt.datetime, end: dt.datetime) -> list[Session]:
    first, last = _window_dates(start, end)
    rows = s.execute(
        select(models.PlanSession)
        .where(
            models.PlanSession.athlete_id == athlete_id,
            models.PlanSession.session_date >= first,
            models.PlanSession.session_date <= last,
        )
        .order_by(models.PlanSession.session_date, models.PlanSession.session_id)
    ).scalars()
    return [
        Session(
            session_id=r.session_id,
            date=r.session_date,
            sport=r.sport,
            title=r.title,
            planned_duration_min=r.planned_duration_min,
            planned_load=r.planned_load,
            planned_zone_primary=r.planned_zone_primary,
            status=r.status,
            priority=r.priority,
        )
        for r in rows
    ]


def fetch_readiness(s: OrmSession, athlete_id: str, day: dt.date) -> Readiness | None:
    row = s.execute(
        select(models.ReadinessDaily).where(
            models.ReadinessDaily.athlete_id == athlete_id,
            models.ReadinessDaily.readiness_date == day,
        )
    ).scalar_one_or_none()
    if row is None:
        return None
    return Readiness.from_dict(
        {
            "date": row.readiness_date,
            "score": row.score,
            "band": row.band,
            "drivers": row.drivers or [],
            "flags": row.flags or [],
            "data_quality": row.data_quality or {},
        }
    )


def fetch_daily_load_window(s: OrmSession, athlete_id: str, start: dt.datetime, end: dt.datetime) -> list[LoadPoint]:
    first, last = _window_dates(start, end)
    rows = s.execute(
        select(models.LoadDaily)
        .where(
            models.LoadDaily.athlete_id == athlete_id,
            models.LoadDaily.load_date >= first,
            models.LoadDaily.load_date <= last,
        )
        .order_by(models.LoadDaily.load_date)
    ).scalars()
    return [
        LoadPoint(
            date=r.load_date,
            day_load=r.day_load,
            ctl=r.ctl,
            atl=r.atl,
            monotony=r.monotony,
            ramp_rate_pct=r.ramp_rate_pct,
        )
        for r in rows
    ]


def fetch_blockers(s: OrmSession, athlete_id: str, start: dt.datetime, end: dt.datetime) -> list[Blocker]:
    rows = s.execute(
        select(models.Blocker)
        .where(
            models.Blocker.athlete_id == athlete_id,
            models.Blocker.start_at < end,
            models.Blocker.end_at > start,
        )
        .order_by(models.Blocker.start_at)
    ).scalars()
    return [
        Blocker(start=as_utc(r.start_at), end=as_utc(r.end_at), blocker_type=r.blocker_type, plan_impact=r.plan_impact)
        for r in rows
    ]
