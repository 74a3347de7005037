"""Deterministic adaptation rules.

Inspects readiness, load trend and session status, picks exactly one reason
from a fixed priority cascade, and synthesizes the edits for that reason:

1. missed_session  - a session in the window was missed
2. low_readiness   - red band, or amber band with a depressed HRV driver
3. monotony_high   - daily load too uniform (monotony >= 2.0)
4. ramp_high       - weekly load climbing too fast (ramp >= 10%)

Every edit list goes through the weekly volume guard before it is returned.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Callable

from adaptcore.schemas import (
    Blocker,
    DiffChange,
    Evaluation,
    ImpactWindow,
    LoadPoint,
    PlanSummary,
    Readiness,
    Session,
)
from adaptcore.services.volume_guard import (
    MAX_WEEKLY_DELTA_PCT,
    MIN_SESSION_DURATION_MIN,
    apply_weekly_volume_guard,
    round_minutes,
)

HRV_LOW_Z = -0.8
MONOTONY_HIGH = 2.0
RAMP_HIGH_PCT = 10.0

RATIONALES: dict[str | None, str] = {
    "low_readiness": "Low readiness drivers detected; reducing intensity to Z3 and trimming duration.",
    "missed_session": "Missed session; rescheduling within window and trimming by ~15%.",
    "monotony_high": "High monotony; redistributing load to smooth daily variation.",
    "ramp_high": "High ramp rate; reducing key session duration to moderate weekly increase.",
    None: "General adjustment.",
}


@dataclass
class RuleInputs:
    day: dt.date
    scope: str
    plan: PlanSummary
    sessions: list[Session]
    readiness: Readiness | None = None
    load: list[LoadPoint] = field(default_factory=list)
    blockers: list[Blocker] = field(default_factory=list)
    window: ImpactWindow | None = None
    allow_missing_readiness: bool = False


@dataclass(frozen=True)
class Signals:
    """Facts derived once from the inputs and shared by every rule."""

    low_readiness: bool
    monotony: float
    monotony_high: bool
    ramp: float
    ramp_high: bool
    missed: tuple[Session, ...]
    in_taper: bool
    form: float | None = None
    floor_min: int = MIN_SESSION_DURATION_MIN


def read_signals(inputs: RuleInputs, floor_min: int = MIN_SESSION_DURATION_MIN) -> Signals:
    readiness = inputs.readiness
    flags = set(readiness.flags) if readiness else set()
    monotony = max([p.monotony or 0.0 for p in inputs.load] + [0.0])
    ramp = max([p.ramp_rate_pct or 0.0 for p in inputs.load] + [0.0])
    latest = max(inputs.load, key=lambda p: p.date, default=None)

    low = False
    if readiness is not None:
        hrv_low = any(d.key == "hrv" and d.z <= HRV_LOW_Z for d in readiness.drivers)
        low = readiness.band == "red" or (readiness.band == "amber" and hrv_low)

    return Signals(
        low_readiness=low,
        monotony=monotony,
        monotony_high=monotony >= MONOTONY_HIGH or "monotony_high" in flags,
        ramp=ramp,
        ramp_high=ramp >= RAMP_HIGH_PCT or "ramp_high" in flags,
        missed=tuple(s for s in inputs.sessions if s.status == "missed"),
        in_taper=inputs.plan.in_taper(inputs.day),
        form=latest.form if latest else None,
        floor_min=floor_min,
    )


RuleOutput = tuple[list[DiffChange], dict[str, Any]]
Handler = Callable[[RuleInputs, Signals], RuleOutput]


def _scaled(minutes: int, factor: float) -> int:
    return round_minutes(minutes * factor)


def handle_missed_session(inputs: RuleInputs, signals: Signals) -> RuleOutput:
    session = signals.missed[0]
    changes = [
        DiffChange.replace(session.session_id, "date", session.date.isoformat(), inputs.day.isoformat()),
        DiffChange.replace(
            session.session_id,
            "planned_duration_min",
            session.planned_duration_min,
            _scaled(session.planned_duration_min, 0.85),
        ),
    ]
    return changes, {}


def handle_low_readiness(inputs: RuleInputs, signals: Signals) -> RuleOutput:
    target = next(
        (s for s in inputs.sessions if s.priority == "key" or s.planned_zone_primary in ("z4", "z5")),
        None,
    )
    if target is None:
        return [], {}

    factor = 0.90 if signals.in_taper else 0.80
    changes = [
        DiffChange.replace(target.session_id, "planned_zone_primary", target.planned_zone_primary, "z3"),
        DiffChange.replace(
            target.session_id,
            "planned_duration_min",
            target.planned_duration_min,
            _scaled(target.planned_duration_min, factor),
        ),
    ]
    hrv = inputs.readiness.driver("hrv") if inputs.readiness else None
    return changes, {"hrv_z": hrv.z if hrv else None}


def handle_monotony_high(inputs: RuleInputs, signals: Signals) -> RuleOutput:
    planned = sorted(
        (s for s in inputs.sessions if s.status == "planned"),
        key=lambda s: s.planned_duration_min,
        reverse=True,
    )
    if len(planned) < 2:
        return [], {}

    big, small = planned[0], planned[-1]
    changes = [
        DiffChange.replace(
            big.session_id,
            "planned_duration_min",
            big.planned_duration_min,
            max(signals.floor_min, _scaled(big.planned_duration_min, 0.90)),
        )
    ]
    # taper: shed load from the big day only, never add to the small one
    if not signals.in_taper:
        changes.append(
            DiffChange.replace(
                small.session_id,
                "planned_duration_min",
                small.planned_duration_min,
                _scaled(small.planned_duration_min, 1.05),
            )
        )
    return changes, {"monotony": signals.monotony}


def handle_ramp_high(inputs: RuleInputs, signals: Signals) -> RuleOutput:
    key = next((s for s in inputs.sessions if s.priority == "key"), None)
    if key is None:
        return [], {}

    factor = 0.95 if signals.in_taper else 0.90
    changes = [
        DiffChange.replace(
            key.session_id,
            "planned_duration_min",
            key.planned_duration_min,
            _scaled(key.planned_duration_min, factor),
        )
    ]
    return changes, {"ramp": signals.ramp, "form": signals.form}


# Evaluated in order; the first matching predicate wins.
CASCADE: list[tuple[str, Callable[[Signals], bool], Handler]] = [
    ("missed_session", lambda sig: bool(sig.missed), handle_missed_session),
    ("low_readiness", lambda sig: sig.low_readiness, handle_low_readiness),
    ("monotony_high", lambda sig: sig.monotony_high, handle_monotony_high),
    ("ramp_high", lambda sig: sig.ramp_high, handle_ramp_high),
]

FALLBACK_REASON = "low_readiness"


def select_reason(signals: Signals) -> tuple[str, Handler] | None:
    for reason, predicate, handler in CASCADE:
        if predicate(signals):
            return reason, handler
    return None


def rule_engine_deterministic(
    inputs: RuleInputs,
    *,
    max_pct: float = MAX_WEEKLY_DELTA_PCT,
    floor_min: int = MIN_SESSION_DURATION_MIN,
) -> Evaluation:
    """Evaluate the cascade and return the guard-passed adaptation.

    With no trigger the result falls back to ``low_readiness`` with an empty
    trigger list and no changes; an empty trigger list means nothing to adapt.
    """
    signals = read_signals(inputs, floor_min)
    selected = select_reason(signals)

    raw_changes: list[DiffChange] = []
    snapshot: dict[str, Any] = {}
    reason: str | None = None
    if selected is not None:
        reason, handler = selected
        raw_changes, snapshot = handler(inputs, signals)

    guard = apply_weekly_volume_guard(
        inputs.sessions,
        raw_changes,
        signals.in_taper,
        max_pct=max_pct,
        floor_min=floor_min,
    )
    snapshot["volume_guard"] = guard.metrics.to_snapshot()

    return Evaluation(
        reason_code=reason or FALLBACK_REASON,
        triggers=[reason] if reason else [],
        changes=guard.changes,
        rationale_text=RATIONALES[reason],
        driver_attribution=list(inputs.readiness.drivers) if inputs.readiness else [],
        data_snapshot=snapshot,
    )
