"""Pydantic validation models for the engine's inbound requests."""

from __future__ import annotations

from datetime import date as dt_date
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from adaptcore.schemas import CHANGE_PATH_RE, DECISIONS, SCOPES, DiffChange


class PreviewRequest(BaseModel):
    date: dt_date
    scope: str = "today"
    allow_missing_readiness: bool = False
    idempotency_key: Optional[str] = Field(default=None, max_length=128)

    @field_validator("scope")
    @classmethod
    def valid_scope(cls, v):
        if v not in SCOPES:
            raise ValueError(f"scope must be one of {SCOPES}")
        return v


def _is_minutes(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


class DiffChangeInput(BaseModel):
    """A caller-supplied edit. Only ``replace`` is accepted, so a decision can never drop a session."""

    op: str = "replace"
    path: str
    from_: Any = Field(default=None, alias="from")
    to: Any = None

    model_config = {"populate_by_name": True}

    @field_validator("op")
    @classmethod
    def valid_op(cls, v):
        if v != "replace":
            raise ValueError("op must be replace")
        return v

    @field_validator("path")
    @classmethod
    def valid_path(cls, v):
        if not CHANGE_PATH_RE.match(v):
            raise ValueError("path must look like /sessions/<session_id>/<field>")
        return v

    @model_validator(mode="after")
    def valid_values(self):
        field_name = CHANGE_PATH_RE.match(self.path).group(2)
        if field_name == "planned_duration_min":
            if not _is_minutes(self.to):
                raise ValueError("planned_duration_min must be a non-negative integer")
            if self.from_ is not None and not _is_minutes(self.from_):
                raise ValueError("from for planned_duration_min must be a non-negative integer")
        elif field_name == "date":
            try:
                dt_date.fromisoformat(str(self.to)[:10])
            except ValueError:
                raise ValueError("date must be an ISO date (YYYY-MM-DD)") from None
        return self

    def to_change(self) -> DiffChange:
        return DiffChange(op=self.op, path=self.path, from_=self.from_, to=self.to)


class DecisionRequest(BaseModel):
    decision: str
    changes: list[DiffChangeInput] = Field(default_factory=list)

    @field_validator("decision")
    @classmethod
    def valid_decision(cls, v):
        if v not in DECISIONS:
            raise ValueError(f"decision must be one of {DECISIONS}")
        return v

    @model_validator(mode="after")
    def modified_needs_changes(self):
        if self.decision == "modified" and not self.changes:
            raise ValueError("a modified decision requires at least one change")
        return self

    def to_changes(self) -> list[DiffChange]:
        return [c.to_change() for c in self.changes]
