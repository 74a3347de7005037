"""Domain types shared by the adaptation engine.

Everything here is plain, immutable data. Conversion to and from JSON-ready
dicts lives on the types so the store and the cache can persist them without
knowing their shape.
"""

from __future__ import annotations

import datetime as dt
import json
import math
import re
from dataclasses import dataclass, field, replace
from typing import Any, Literal

Scope = Literal["today", "next_72h", "week"]
Sport = Literal["swim", "bike", "run", "strength", "mobility"]
SessionStatus = Literal["planned", "completed", "missed", "partial"]
Priority = Literal["key", "supporting", "recovery"]
Zone = Literal["z1", "z2", "z3", "z4", "z5"]
Band = Literal["green", "amber", "red"]
Phase = Literal["base", "build", "peak", "taper"]
ReasonCode = Literal["low_readiness", "missed_session", "monotony_high", "ramp_high", "illness"]
DecisionKind = Literal["accepted", "modified", "rejected"]
ChangeOp = Literal["add", "remove", "replace"]

SCOPES: tuple[str, ...] = ("today", "next_72h", "week")
DECISIONS: tuple[str, ...] = ("accepted", "modified", "rejected")
DRIVER_KEYS: tuple[str, ...] = ("hrv", "rhr", "sleep", "soreness", "mood", "prior_strain", "context")

CHANGE_PATH_RE = re.compile(r"^/sessions/([^/]+)/(.+)$")


def _as_date(value: dt.date | str) -> dt.date:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    return dt.date.fromisoformat(str(value)[:10])


def as_utc(value: dt.datetime | str) -> dt.datetime:
    if isinstance(value, dt.datetime):
        parsed = value
    else:
        parsed = dt.datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed


def iso_utc(value: dt.datetime) -> str:
    """Render an instant as ISO-8601 UTC with millisecond precision and a Z suffix."""
    value = value.astimezone(dt.timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


@dataclass(frozen=True)
class Session:
    """One planned or executed training unit."""

    session_id: str
    date: dt.date
    sport: str
    planned_duration_min: int
    title: str = ""
    planned_load: float | None = None
    planned_zone_primary: str | None = None
    status: str = "planned"
    priority: str | None = None

    def __post_init__(self):
        if self.planned_duration_min < 0:
            raise ValueError("planned_duration_min must be non-negative")

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "date": self.date.isoformat(),
            "sport": self.sport,
            "title": self.title,
            "planned_duration_min": self.planned_duration_min,
            "planned_load": self.planned_load,
            "planned_zone_primary": self.planned_zone_primary,
            "status": self.status,
            "priority": self.priority,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Session:
        return cls(
            session_id=str(data["session_id"]),
            date=_as_date(data["date"]),
            sport=data.get("sport", "run"),
            title=data.get("title", ""),
            planned_duration_min=int(data.get("planned_duration_min", 0)),
            planned_load=data.get("planned_load"),
            planned_zone_primary=data.get("planned_zone_primary"),
            status=data.get("status", "planned"),
            priority=data.get("priority"),
        )


@dataclass(frozen=True)
class ReadinessDriver:
    key: str
    z: float
    weight: float
    contribution: float

    def to_dict(self) -> dict[str, Any]:
        return {"key": self.key, "z": self.z, "weight": self.weight, "contribution": self.contribution}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReadinessDriver:
        return cls(
            key=data["key"],
            z=float(data.get("z", 0.0)),
            weight=float(data.get("weight", 0.0)),
            contribution=float(data.get("contribution", 0.0)),
        )


@dataclass(frozen=True)
class Readiness:
    """Daily readiness snapshot produced upstream. Immutable."""

    date: dt.date
    score: float | None
    band: str
    drivers: tuple[ReadinessDriver, ...] = ()
    flags: tuple[str, ...] = ()
    missing: tuple[str, ...] = ()
    clipped: bool = False

    def driver(self, key: str) -> ReadinessDriver | None:
        return next((d for d in self.drivers if d.key == key), None)

    def weights_sum_to_one(self, tolerance: float = 1e-6) -> bool:
        if not self.drivers:
            return True
        return math.isclose(sum(d.weight for d in self.drivers), 1.0, abs_tol=tolerance)

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "score": self.score,
            "band": self.band,
            "drivers": [d.to_dict() for d in self.drivers],
            "flags": list(self.flags),
            "data_quality": {"missing": list(self.missing), "clipped": self.clipped},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Readiness:
        quality = data.get("data_quality") or {}
        return cls(
            date=_as_date(data["date"]),
            score=data.get("score"),
            band=data.get("band", "green"),
            drivers=tuple(ReadinessDriver.from_dict(d) for d in data.get("drivers") or []),
            flags=tuple(data.get("flags") or ()),
            missing=tuple(quality.get("missing") or ()),
            clipped=bool(quality.get("clipped", False)),
        )


@dataclass(frozen=True)
class LoadPoint:
    date: dt.date
    day_load: float | None = None
    ctl: float | None = None
    atl: float | None = None
    monotony: float | None = None
    ramp_rate_pct: float | None = None

    @property
    def form(self) -> float | None:
        if self.ctl is None or self.atl is None:
            return None
        return round(self.ctl - self.atl, 1)


@dataclass(frozen=True)
class Blocker:
    start: dt.datetime
    end: dt.datetime
    blocker_type: str
    plan_impact: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": iso_utc(self.start),
            "end": iso_utc(self.end),
            "type": self.blocker_type,
            "plan_impact": self.plan_impact,
        }


@dataclass(frozen=True)
class PlanBlock:
    phase: str
    start_date: dt.date
    end_date: dt.date

    def covers(self, day: dt.date) -> bool:
        return self.start_date <= day <= self.end_date


@dataclass(frozen=True)
class PlanSummary:
    plan_id: str
    version: int
    blocks: tuple[PlanBlock, ...] = ()

    def phase_on(self, day: dt.date) -> str | None:
        block = next((b for b in self.blocks if b.covers(day)), None)
        return block.phase if block else None

    def in_taper(self, day: dt.date | None) -> bool:
        if day is None:
            return False
        return self.phase_on(day) == "taper"


@dataclass(frozen=True)
class DiffChange:
    """An atomic proposed edit, addressed by ``/sessions/<id>/<field>``.

    The engine only ever builds changes through :meth:`replace`; ``add`` and
    ``remove`` exist so changes from other producers can still be loaded.
    """

    op: str
    path: str
    from_: Any = None
    to: Any = None

    @classmethod
    def replace(cls, session_id: str, field_name: str, from_: Any, to: Any) -> DiffChange:
        return cls(op="replace", path=f"/sessions/{session_id}/{field_name}", from_=from_, to=to)

    @property
    def target(self) -> tuple[str, str] | None:
        match = CHANGE_PATH_RE.match(self.path)
        if not match:
            return None
        return match.group(1), match.group(2)

    @property
    def is_duration(self) -> bool:
        target = self.target
        return self.op == "replace" and target is not None and target[1] == "planned_duration_min"

    def with_to(self, to: Any) -> DiffChange:
        return replace(self, to=to)

    def to_dict(self) -> dict[str, Any]:
        return {"op": self.op, "path": self.path, "from": self.from_, "to": self.to}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DiffChange:
        op = data.get("op", "replace")
        if op not in ("add", "remove", "replace"):
            raise ValueError(f"unknown change op: {op}")
        return cls(op=op, path=str(data["path"]), from_=data.get("from"), to=data.get("to"))


@dataclass(frozen=True)
class ImpactWindow:
    start: dt.datetime
    end: dt.datetime

    @property
    def start_iso(self) -> str:
        return iso_utc(self.start)

    @property
    def end_iso(self) -> str:
        return iso_utc(self.end)

    def to_dict(self) -> dict[str, str]:
        return {"start": self.start_iso, "end": self.end_iso}


@dataclass(frozen=True)
class VolumeGuardMetrics:
    before_min: int
    after_min: int
    delta_pct: float
    clamped: bool
    in_taper: bool

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "original_volume": self.before_min,
            "new_volume": self.after_min,
            "delta_minutes": self.after_min - self.before_min,
            "delta_percent": self.delta_pct,
            "clamped": self.clamped,
            "in_taper": self.in_taper,
        }


@dataclass(frozen=True)
class VolumeGuardResult:
    changes: list[DiffChange]
    metrics: VolumeGuardMetrics
    violates: bool


@dataclass
class Evaluation:
    """What the rule evaluator decided for one set of inputs."""

    reason_code: str
    triggers: list[str]
    changes: list[DiffChange]
    rationale_text: str
    driver_attribution: list[ReadinessDriver] = field(default_factory=list)
    data_snapshot: dict[str, Any] = field(default_factory=dict)

    @property
    def needs_adaptation(self) -> bool:
        return bool(self.triggers)


@dataclass(frozen=True)
class PreviewDraft:
    """Everything needed to persist a preview except cache bookkeeping."""

    athlete_id: str
    plan_id: str
    plan_version_before: int
    scope: str
    window: ImpactWindow
    evaluation: Evaluation
    explainability_id: str


@dataclass(frozen=True)
class AdaptationPreview:
    adaptation_id: str
    athlete_id: str
    plan_id: str
    plan_version_before: int
    scope: str
    impact_start: dt.datetime
    impact_end: dt.datetime
    reason_code: str
    triggers: tuple[str, ...]
    changes: tuple[DiffChange, ...]
    rationale_text: str
    driver_attribution: tuple[ReadinessDriver, ...]
    data_snapshot: dict[str, Any]
    checksum: str
    expires_at: dt.datetime
    idempotency_key: str | None = None
    explainability_id: str = ""
    created_at: dt.datetime | None = None

    def is_expired(self, now: dt.datetime) -> bool:
        return self.expires_at <= now

    def to_dict(self) -> dict[str, Any]:
        """Response shape; bookkeeping columns (checksum, expiry, key) are left out."""
        return {
            "adaptation_id": self.adaptation_id,
            "plan_id": self.plan_id,
            "scope": self.scope,
            "impact_window": {"start": iso_utc(self.impact_start), "end": iso_utc(self.impact_end)},
            "reason_code": self.reason_code,
            "triggers": list(self.triggers),
            "changes": [c.to_dict() for c in self.changes],
            "decision": "proposed",
            "plan_version_before": self.plan_version_before,
            "plan_version_after": None,
            "rationale": {
                "text": self.rationale_text,
                "driver_attribution": [d.to_dict() for d in self.driver_attribution],
                "data_snapshot": self.data_snapshot,
            },
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"), default=str)


@dataclass(frozen=True)
class DecisionRecord:
    adaptation_id: str
    athlete_id: str
    plan_id: str
    decision: str
    final_changes: tuple[DiffChange, ...]
    plan_version_before: int
    plan_version_after: int | None
    rationale_text: str
    driver_attribution: tuple[ReadinessDriver, ...] = ()
    explainability_id: str = ""
    decided_at: dt.datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "adaptation_id": self.adaptation_id,
            "plan_id": self.plan_id,
            "decision": self.decision,
            "final_changes": [c.to_dict() for c in self.final_changes],
            "plan_version_before": self.plan_version_before,
            "plan_version_after": self.plan_version_after,
            "rationale_text": self.rationale_text,
        }
