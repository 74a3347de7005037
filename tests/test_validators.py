"""Tests for Pydantic input validation models."""

from __future__ import annotations

from datetime import date

import pytest
from pydantic import ValidationError

from adaptcore.validators import DecisionRequest, DiffChangeInput, PreviewRequest


# --- PreviewRequest ---

def test_preview_request_defaults():
    req = PreviewRequest(date="2026-10-19")
    assert req.date == date(2026, 10, 19)
    assert req.scope == "today"
    assert req.allow_missing_readiness is False
    assert req.idempotency_key is None


def test_preview_request_invalid_scope():
    with pytest.raises(ValidationError, match="scope"):
        PreviewRequest(date="2026-10-19", scope="month")


def test_preview_request_invalid_date():
    with pytest.raises(ValidationError):
        PreviewRequest(date="19/10/2026")


# --- DiffChangeInput ---

def test_change_accepts_from_alias():
    c = DiffChangeInput.model_validate({"path": "/sessions/s1/planned_duration_min", "from": 60, "to": 50})
    change = c.to_change()
    assert change.op == "replace"
    assert change.from_ == 60
    assert change.to == 50


def test_change_rejects_bad_path():
    with pytest.raises(ValidationError, match="path"):
        DiffChangeInput(path="/plans/p1/version", to=2)


def test_change_rejects_bad_op():
    with pytest.raises(ValidationError, match="op"):
        DiffChangeInput(op="move", path="/sessions/s1/date", to="2026-10-20")


# --- DecisionRequest ---

def test_decision_accepted_without_changes():
    req = DecisionRequest(decision="accepted")
    assert req.to_changes() == []


def test_decision_invalid_value():
    with pytest.raises(ValidationError, match="decision"):
        DecisionRequest(decision="maybe")


def test_modified_requires_changes():
    with pytest.raises(ValidationError, match="requires at least one change"):
        DecisionRequest(decision="modified")


def test_modified_changes_convert():
    req = DecisionRequest(
        decision="modified",
        changes=[{"op": "replace", "path": "/sessions/s1/planned_duration_min", "from": 90, "to": 75}],
    )
    [change] = req.to_changes()
    assert change.target == ("s1", "planned_duration_min")


@pytest.mark.parametrize("op", ["add", "remove"])
def test_change_rejects_ops_that_could_drop_sessions(op):
    with pytest.raises(ValidationError, match="op must be replace"):
        DiffChangeInput(op=op, path="/sessions/k1/planned_duration_min")


def test_modified_decision_with_remove_op_is_invalid():
    with pytest.raises(ValidationError):
        DecisionRequest(
            decision="modified",
            changes=[{"op": "remove", "path": "/sessions/k1/planned_duration_min"}],
        )


@pytest.mark.parametrize("to", [-10, None, "45", 42.5, True])
def test_duration_change_requires_non_negative_minutes(to):
    with pytest.raises(ValidationError, match="non-negative integer"):
        DiffChangeInput(path="/sessions/k1/planned_duration_min", **{"from": 100, "to": to})


def test_duration_change_rejects_bad_from():
    with pytest.raises(ValidationError, match="non-negative integer"):
        DiffChangeInput(path="/sessions/k1/planned_duration_min", **{"from": -5, "to": 40})


def test_date_change_requires_iso_date():
    with pytest.raises(ValidationError, match="ISO date"):
        DiffChangeInput(path="/sessions/k1/date", to="next tuesday")
    ok = DiffChangeInput(path="/sessions/k1/date", to="2026-10-20")
    assert ok.to == "2026-10-20"


def test_other_fields_accept_any_value():
    c = DiffChangeInput(path="/sessions/k1/planned_zone_primary", **{"from": "z4", "to": "z3"})
    assert c.to_change().to == "z3"
