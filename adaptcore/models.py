from __future__ import annotations

import datetime as dt
from typing import Any

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class Base(DeclarativeBase):
    pass


class Plan(Base):
    __tablename__ = "plans"
    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    athlete_id: Mapped[str] = mapped_column(String(64), index=True)
    version: Mapped[int] = mapped_column(Integer, default=1)
    status: Mapped[str] = mapped_column(String(20), default="active")
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    __table_args__ = (CheckConstraint("version >= 0"),)


class PlanBlock(Base):
    __tablename__ = "plan_blocks"
    id: Mapped[int] = mapped_column(primary_key=True)
    plan_id: Mapped[str] = mapped_column(ForeignKey("plans.id"), index=True)
    phase: Mapped[str] = mapped_column(String(16))
    start_date: Mapped[dt.date] = mapped_column(Date)
    end_date: Mapped[dt.date] = mapped_column(Date)
    __table_args__ = (CheckConstraint("phase in ('base', 'build', 'peak', 'taper')"),)


class PlanSession(Base):
    __tablename__ = "plan_sessions"
    session_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    athlete_id: Mapped[str] = mapped_column(String(64), index=True)
    plan_id: Mapped[str] = mapped_column(ForeignKey("plans.id"), index=True)
    session_date: Mapped[dt.date] = mapped_column(Date, index=True)
    sport: Mapped[str] = mapped_column(String(16))
    title: Mapped[str] = mapped_column(String(160), default="")
    planned_duration_min: Mapped[int] = mapped_column(Integer)
    planned_load: Mapped[float | None] = mapped_column(Float)
    planned_zone_primary: Mapped[str | None] = mapped_column(String(4))
    status: Mapped[str] = mapped_column(String(16), default="planned")
    priority: Mapped[str | None] = mapped_column(String(16))
    __table_args__ = (
        CheckConstraint("planned_duration_min >= 0"),
        CheckConstraint("status in ('planned', 'completed', 'missed', 'partial')"),
    )


class ReadinessDaily(Base):
    __tablename__ = "readiness_daily"
    id: Mapped[int] = mapped_column(primary_key=True)
    athlete_id: Mapped[str] = mapped_column(String(64), index=True)
    readiness_date: Mapped[dt.date] = mapped_column(Date)
    score: Mapped[float | None] = mapped_column(Float)
    band: Mapped[str] = mapped_column(String(8))
    drivers: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    flags: Mapped[list[str]] = mapped_column(JSON, default=list)
    data_quality: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    __table_args__ = (
        UniqueConstraint("athlete_id", "readiness_date", name="uq_readiness_daily"),
        CheckConstraint("band in ('green', 'amber', 'red')"),
    )


class LoadDaily(Base):
    __tablename__ = "load_daily"
    id: Mapped[int] = mapped_column(primary_key=True)
    athlete_id: Mapped[str] = mapped_column(String(64), index=True)
    load_date: Mapped[dt.date] = mapped_column(Date)
    day_load: Mapped[float | None] = mapped_column(Float)
    ctl: Mapped[float | None] = mapped_column(Float)
    atl: Mapped[float | None] = mapped_column(Float)
    monotony: Mapped[float | None] = mapped_column(Float)
    ramp_rate_pct: Mapped[float | None] = mapped_column(Float)
    __table_args__ = (UniqueConstraint("athlete_id", "load_date", name="uq_load_daily"),)


class Blocker(Base):
    __tablename__ = "blockers"
    id: Mapped[int] = mapped_column(primary_key=True)
    athlete_id: Mapped[str] = mapped_column(String(64), index=True)
    start_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True))
    end_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True))
    blocker_type: Mapped[str] = mapped_column(String(40))
    plan_impact: Mapped[str] = mapped_column(String(40), default="")


class AdaptationPreviewCache(Base):
    __tablename__ = "adaptation_preview_cache"
    adaptation_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    athlete_id: Mapped[str] = mapped_column(String(64))
    plan_id: Mapped[str] = mapped_column(String(36))
    scope: Mapped[str] = mapped_column(String(16))
    impact_start: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True))
    impact_end: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True))
    reason_code: Mapped[str] = mapped_column(String(32))
    triggers: Mapped[list[str]] = mapped_column(JSON, default=list)
    changes_json: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    plan_version_before: Mapped[int] = mapped_column(Integer)
    rationale_text: Mapped[str] = mapped_column(Text)
    driver_attribution: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON)
    data_snapshot: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    checksum: Mapped[str] = mapped_column(String(64))
    idempotency_key: Mapped[str | None] = mapped_column(String(36))
    explainability_id: Mapped[str] = mapped_column(String(64), default="")
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    expires_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True))
    __table_args__ = (
        UniqueConstraint("athlete_id", "checksum", name="uq_preview_checksum"),
        UniqueConstraint("athlete_id", "idempotency_key", "checksum", name="uq_preview_idempotency"),
        Index("ix_preview_expires_at", "expires_at"),
    )


class AdaptationDecision(Base):
    __tablename__ = "adaptation_decisions"
    id: Mapped[int] = mapped_column(primary_key=True)
    adaptation_id: Mapped[str] = mapped_column(ForeignKey("adaptation_preview_cache.adaptation_id"), unique=True)
    athlete_id: Mapped[str] = mapped_column(String(64), index=True)
    plan_id: Mapped[str] = mapped_column(String(36))
    decision: Mapped[str] = mapped_column(String(16))
    final_changes: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    plan_version_before: Mapped[int] = mapped_column(Integer)
    plan_version_after: Mapped[int | None] = mapped_column(Integer)
    rationale_text: Mapped[str] = mapped_column(Text)
    driver_attribution: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON)
    explainability_id: Mapped[str] = mapped_column(String(64), default="")
    decided_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    __table_args__ = (CheckConstraint("decision in ('accepted', 'modified', 'rejected')"),)
