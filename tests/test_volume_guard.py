"""Tests for weekly volume accounting, change application and the volume guard."""

from __future__ import annotations

import datetime as dt

from conftest import make_plan, make_session

from adaptcore.schemas import DiffChange, PlanBlock
from adaptcore.services.volume_guard import (
    apply_changes_to_sessions,
    apply_weekly_volume_guard,
    compute_weekly_volume,
    guard_against_plan,
    round_minutes,
)


def _two_hundred():
    return [make_session("a", 100), make_session("b", 100)]


def test_weekly_volume_counts_only_planned():
    sessions = [
        make_session("a", 60),
        make_session("b", 45, status="completed"),
        make_session("c", 30, status="missed"),
        make_session("d", 20, status="partial"),
        make_session("e", 90),
    ]
    assert compute_weekly_volume(sessions) == 150


def test_weekly_volume_empty():
    assert compute_weekly_volume([]) == 0


def test_round_minutes_rounds_half_up():
    assert round_minutes(82.5) == 83
    assert round_minutes(47.25) == 47


def test_apply_changes_replaces_field_without_mutating_input():
    sessions = _two_hundred()
    out = apply_changes_to_sessions(sessions, [DiffChange.replace("a", "planned_duration_min", 100, 70)])
    assert out[0].planned_duration_min == 70
    assert sessions[0].planned_duration_min == 100
    assert len(out) == len(sessions)


def test_apply_changes_ignores_unknown_session_and_non_replace_ops():
    sessions = _two_hundred()
    changes = [
        DiffChange.replace("ghost", "planned_duration_min", 100, 10),
        DiffChange(op="remove", path="/sessions/a/planned_duration_min"),
        DiffChange(op="add", path="/sessions/b/planned_zone_primary", to="z2"),
        DiffChange(op="replace", path="not-a-session-path", to=5),
    ]
    out = apply_changes_to_sessions(sessions, changes)
    assert out == sessions


def test_apply_changes_parses_date_strings():
    sessions = [make_session("a", 60, status="missed", day=dt.date(2026, 10, 17))]
    out = apply_changes_to_sessions(sessions, [DiffChange.replace("a", "date", "2026-10-17", "2026-10-19")])
    assert out[0].date == dt.date(2026, 10, 19)


def test_guard_passes_small_changes_through():
    changes = [DiffChange.replace("a", "planned_duration_min", 100, 120)]
    result = apply_weekly_volume_guard(_two_hundred(), changes, in_taper=False)
    assert result.changes == changes
    assert result.metrics.clamped is False
    assert result.metrics.delta_pct == 10.0
    assert result.violates is False


def test_guard_clamps_increase_to_exactly_twenty_percent():
    changes = [DiffChange.replace("a", "planned_duration_min", 100, 150)]
    result = apply_weekly_volume_guard(_two_hundred(), changes, in_taper=False)
    assert result.changes[0].to == 140
    assert result.metrics.clamped is True
    assert result.metrics.before_min == 200
    assert result.metrics.after_min == 240
    assert result.metrics.delta_pct == 20.0


def test_guard_clamps_decrease_to_exactly_twenty_percent():
    changes = [DiffChange.replace("a", "planned_duration_min", 100, 50)]
    result = apply_weekly_volume_guard(_two_hundred(), changes, in_taper=False)
    assert result.changes[0].to == 60
    assert result.metrics.delta_pct == -20.0


def test_guard_second_pass_does_not_clamp_again():
    sessions = _two_hundred()
    first = apply_weekly_volume_guard(sessions, [DiffChange.replace("a", "planned_duration_min", 100, 150)], False)
    second = apply_weekly_volume_guard(sessions, first.changes, False)
    assert second.metrics.clamped is False
    assert second.changes == first.changes


def test_guard_scales_every_duration_edit_by_same_factor():
    sessions = [make_session("a", 100), make_session("b", 100), make_session("c", 200)]
    changes = [
        DiffChange.replace("a", "planned_duration_min", 100, 200),
        DiffChange.replace("b", "planned_duration_min", 100, 200),
    ]
    result = apply_weekly_volume_guard(sessions, changes, in_taper=False)
    # +200 on 400 is +50%; target +80 gives scale 0.4
    assert [c.to for c in result.changes] == [140, 140]
    assert result.metrics.after_min == 480


def test_guard_floor_is_thirty_minutes():
    sessions = [make_session("a", 40), make_session("b", 200)]
    changes = [
        DiffChange.replace("a", "planned_duration_min", 40, 0),
        DiffChange.replace("b", "planned_duration_min", 200, 100),
    ]
    result = apply_weekly_volume_guard(sessions, changes, in_taper=False)
    assert result.changes[0].to == 30
    assert result.changes[1].to == 166


def test_guard_leaves_non_duration_changes_untouched():
    changes = [
        DiffChange.replace("a", "planned_zone_primary", "z4", "z3"),
        DiffChange.replace("a", "planned_duration_min", 100, 50),
    ]
    result = apply_weekly_volume_guard(_two_hundred(), changes, in_taper=False)
    assert result.changes[0] == changes[0]
    assert result.changes[1].to == 60


def test_guard_in_taper_does_not_clamp_increases():
    changes = [DiffChange.replace("a", "planned_duration_min", 100, 150)]
    result = apply_weekly_volume_guard(_two_hundred(), changes, in_taper=True)
    assert result.changes == changes
    assert result.metrics.clamped is False
    assert result.metrics.in_taper is True


def test_guard_in_taper_still_clamps_decreases():
    changes = [DiffChange.replace("a", "planned_duration_min", 100, 50)]
    result = apply_weekly_volume_guard(_two_hundred(), changes, in_taper=True)
    assert result.changes[0].to == 60
    assert result.metrics.clamped is True


def test_guard_with_no_planned_volume_reports_zero_delta():
    sessions = [make_session("a", 100, status="completed")]
    changes = [DiffChange.replace("a", "planned_duration_min", 100, 10)]
    result = apply_weekly_volume_guard(sessions, changes, in_taper=False)
    assert result.metrics.delta_pct == 0
    assert result.metrics.clamped is False


def test_guard_against_plan_resolves_taper_from_blocks():
    plan = make_plan(blocks=[PlanBlock("taper", dt.date(2026, 10, 18), dt.date(2026, 10, 25))])
    changes = [DiffChange.replace("a", "planned_duration_min", 100, 150)]
    in_taper = guard_against_plan(_two_hundred(), changes, plan, dt.date(2026, 10, 19))
    outside = guard_against_plan(_two_hundred(), changes, plan, dt.date(2026, 11, 2))
    assert in_taper.metrics.in_taper is True
    assert in_taper.metrics.clamped is False
    assert outside.metrics.clamped is True


def test_guard_never_overshoots_a_fractional_limit():
    # 20% of 203 is 40.6 minutes; the scaled edit must stay at or under it
    sessions = [make_session("a", 103), make_session("b", 100)]
    changes = [DiffChange.replace("a", "planned_duration_min", 103, 163)]
    first = apply_weekly_volume_guard(sessions, changes, in_taper=False)
    assert first.metrics.clamped is True
    assert first.changes[0].to == 143
    assert first.metrics.delta_pct <= 20.0

    second = apply_weekly_volume_guard(sessions, first.changes, in_taper=False)
    assert second.metrics.clamped is False
    assert second.changes == first.changes


def test_guard_never_overshoots_a_fractional_decrease():
    sessions = [make_session("a", 103), make_session("b", 100)]
    changes = [DiffChange.replace("a", "planned_duration_min", 103, 40)]
    first = apply_weekly_volume_guard(sessions, changes, in_taper=False)
    assert first.changes[0].to == 63
    assert first.metrics.delta_pct >= -20.0
    assert apply_weekly_volume_guard(sessions, first.changes, in_taper=False).metrics.clamped is False


def test_guard_uses_current_duration_when_from_is_missing():
    changes = [DiffChange(op="replace", path="/sessions/a/planned_duration_min", to=150)]
    result = apply_weekly_volume_guard(_two_hundred(), changes, in_taper=False)
    assert result.changes[0].to == 140
