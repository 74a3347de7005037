"""Weekly volume accounting and the +/-20% volume guard.

The guard never rejects a proposal. When the aggregate change in remaining
weekly volume exceeds the limit, every duration edit in the batch is scaled
back by the same factor so the total lands on the limit, or a minute inside it
when the limit is not a whole number of minutes.
"""

from __future__ import annotations

import datetime as dt
import math
from dataclasses import fields, replace
from typing import Iterable

from adaptcore.schemas import DiffChange, PlanSummary, Session, VolumeGuardMetrics, VolumeGuardResult

MAX_WEEKLY_DELTA_PCT = 20.0
MIN_SESSION_DURATION_MIN = 30

_SESSION_FIELDS = frozenset(f.name for f in fields(Session)) - {"session_id"}


def round_minutes(value: float) -> int:
    """Round half up to whole minutes (``round`` would bank 82.5 to 82)."""
    return int(math.floor(value + 0.5))


def compute_weekly_volume(sessions: Iterable[Session]) -> int:
    """Sum planned minutes still ahead; completed, missed and partial sessions don't count."""
    return sum(s.planned_duration_min for s in sessions if s.status == "planned")


def _coerce(field_name: str, value):
    if field_name == "date" and isinstance(value, str):
        return dt.date.fromisoformat(value[:10])
    if field_name == "planned_duration_min" and value is not None:
        return int(value)
    return value


def apply_changes_to_sessions(sessions: list[Session], changes: Iterable[DiffChange]) -> list[Session]:
    """Replay ``replace`` changes onto a copy of ``sessions``.

    Only ``replace`` is honored, so a session can never be dropped. Changes
    aimed at unknown sessions or fields are inert.
    """
    result = list(sessions)
    index = {s.session_id: i for i, s in enumerate(result)}

    for change in changes:
        if change.op != "replace":
            continue
        target = change.target
        if target is None:
            continue
        session_id, field_name = target
        pos = index.get(session_id)
        if pos is None or field_name not in _SESSION_FIELDS:
            continue
        result[pos] = replace(result[pos], **{field_name: _coerce(field_name, change.to)})

    return result


def _toward_zero(minutes: float) -> int:
    """Truncate so a scaled batch never lands past the limit (1e-9 absorbs float noise)."""
    return int(math.copysign(math.floor(abs(minutes) + 1e-9), minutes))


def _delta_pct(before: int, after: int) -> float:
    return (after - before) / before * 100 if before > 0 else 0.0


def apply_weekly_volume_guard(
    sessions: list[Session],
    changes: list[DiffChange],
    in_taper: bool,
    *,
    max_pct: float = MAX_WEEKLY_DELTA_PCT,
    floor_min: int = MIN_SESSION_DURATION_MIN,
) -> VolumeGuardResult:
    """Bound the weekly volume swing of ``changes`` to ``max_pct``.

    In taper a non-negative delta passes unclamped; the rule evaluator does
    not propose increases there, and ``metrics.delta_pct`` still reports it.
    """
    before = compute_weekly_volume(sessions)
    after = compute_weekly_volume(apply_changes_to_sessions(sessions, changes))
    delta = after - before
    delta_pct = _delta_pct(before, after)

    violates = abs(delta_pct) > max_pct and not (in_taper and delta >= 0)
    if not violates:
        return VolumeGuardResult(
            changes=list(changes),
            metrics=VolumeGuardMetrics(
                before_min=before,
                after_min=after,
                delta_pct=round(delta_pct, 2),
                clamped=False,
                in_taper=in_taper,
            ),
            violates=False,
        )

    target_delta = before * (max_pct / 100 if delta_pct > 0 else -max_pct / 100)
    scale = min(target_delta / delta, 1.0)

    current = {s.session_id: s.planned_duration_min for s in sessions}
    scaled: list[DiffChange] = []
    for change in changes:
        if not change.is_duration:
            scaled.append(change)
            continue
        original = int(change.from_) if change.from_ is not None else current.get(change.target[0], 0)
        proposed = int(change.to or 0)
        duration = original + _toward_zero((proposed - original) * scale)
        scaled.append(change.with_to(max(floor_min, duration)))

    clamped_after = compute_weekly_volume(apply_changes_to_sessions(sessions, scaled))
    return VolumeGuardResult(
        changes=scaled,
        metrics=VolumeGuardMetrics(
            before_min=before,
            after_min=clamped_after,
            delta_pct=round(_delta_pct(before, clamped_after), 2),
            clamped=True,
            in_taper=in_taper,
        ),
        violates=True,
    )


def guard_against_plan(
    sessions: list[Session],
    changes: list[DiffChange],
    plan: PlanSummary,
    day: dt.date | None = None,
    **limits,
) -> VolumeGuardResult:
    """Run the guard with the taper flag resolved from the plan's blocks on ``day``."""
    return apply_weekly_volume_guard(sessions, changes, plan.in_taper(day), **limits)
