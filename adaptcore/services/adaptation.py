"""End-to-end adaptation flows: propose a preview, then record the athlete's decision.

These are what a transport layer calls once it has resolved the athlete id.
"""

from __future__ import annotations

import datetime as dt
from typing import Any

from sqlalchemy.orm import Session as OrmSession

from adaptcore.config import Settings, get_settings
from adaptcore.errors import (
    GuardrailViolationError,
    InvalidDecisionError,
    MissingReadinessError,
    PreviewNotFoundError,
    StalePreviewError,
)
from adaptcore.logging_config import get_logger, make_explainability_id, trace_info
from adaptcore.schemas import PreviewDraft
from adaptcore.services.checksum import compute_inputs_checksum
from adaptcore.services.collectors import (
    fetch_blockers,
    fetch_daily_load_window,
    fetch_plan_summary,
    fetch_readiness,
    fetch_sessions_in_window,
)
from adaptcore.services.decisions import record_decision
from adaptcore.services.impact_window import compute_impact_window
from adaptcore.services.preview_cache import PreviewResolution, resolve_preview
from adaptcore.services.rules import RuleInputs, rule_engine_deterministic
from adaptcore.services.store import SqlDecisionStore, SqlPreviewStore
from adaptcore.services.volume_guard import guard_against_plan
from adaptcore.validators import DecisionRequest, PreviewRequest

logger = get_logger(__name__)

READINESS_REQUIRED_SCOPES = ("today", "next_72h")


def readiness_required(scope: str, settings: Settings) -> bool:
    return settings.readiness_strict or scope in READINESS_REQUIRED_SCOPES


def preview_adaptation(
    s: OrmSession,
    athlete_id: str,
    request: PreviewRequest,
    settings: Settings | None = None,
    now: dt.datetime | None = None,
) -> PreviewResolution:
    """Propose (or replay) the adaptation for ``request.date`` and ``request.scope``.

    Raises MissingReadinessError when readiness is required, absent, and not waived.
    """
    settings = settings or get_settings()
    explainability_id = make_explainability_id()
    window = compute_impact_window(request.date, request.scope)
    plan = fetch_plan_summary(s, athlete_id)

    readiness = fetch_readiness(s, athlete_id, request.date)
    if readiness is not None and not readiness.weights_sum_to_one():
        logger.warning(
            "Readiness driver weights do not sum to one",
            extra={"ctx_athlete_id": athlete_id, "ctx_date": request.date.isoformat()},
        )
    if readiness is None and readiness_required(request.scope, settings):
        if not request.allow_missing_readiness:
            trace_info(
                explainability_id,
                "readiness_missing",
                scope=request.scope,
                strict_mode=settings.readiness_strict,
                retry_after_sec=settings.readiness_retry_after_sec,
            )
            raise MissingReadinessError(
                f"Readiness data not available for {request.date.isoformat()}",
                retry_after_sec=settings.readiness_retry_after_sec,
            )
        logger.info("Readiness missing but waived; continuing", extra={"ctx_athlete_id": athlete_id})

    sessions = fetch_sessions_in_window(s, athlete_id, window.start, window.end)
    load = fetch_daily_load_window(s, athlete_id, window.start, window.end)
    blockers = fetch_blockers(s, athlete_id, window.start, window.end)

    checksum = compute_inputs_checksum(athlete_id, request.date, request.scope, plan.version, readiness)

    def compute() -> PreviewDraft:
        evaluation = rule_engine_deterministic(
            RuleInputs(
                day=request.date,
                scope=request.scope,
                plan=plan,
                sessions=sessions,
                readiness=readiness,
                load=load,
                blockers=blockers,
                window=window,
                allow_missing_readiness=request.allow_missing_readiness,
            ),
            max_pct=settings.volume_guard_max_pct,
            floor_min=settings.duration_floor_min,
        )
        if not evaluation.needs_adaptation:
            logger.info("No adaptation trigger", extra={"ctx_athlete_id": athlete_id, "ctx_scope": request.scope})
        guard = evaluation.data_snapshot["volume_guard"]
        if guard["clamped"]:
            trace_info(
                explainability_id,
                "volume_guard_clamp",
                before_min=guard["original_volume"],
                after_min=guard["new_volume"],
                delta_pct=guard["delta_percent"],
                in_taper=guard["in_taper"],
            )
        return PreviewDraft(
            athlete_id=athlete_id,
            plan_id=plan.plan_id,
            plan_version_before=plan.version,
            scope=request.scope,
            window=window,
            evaluation=evaluation,
            explainability_id=explainability_id,
        )

    resolution = resolve_preview(
        SqlPreviewStore(s, settings.store_timeout_sec),
        athlete_id,
        checksum,
        request.idempotency_key,
        compute,
        now=now,
        ttl=dt.timedelta(hours=settings.preview_ttl_hours),
    )

    preview = resolution.preview
    if resolution.created:
        trace_info(
            explainability_id,
            "adaptation_preview",
            scope=request.scope,
            reason_code=preview.reason_code,
            change_count=len(preview.changes),
            idempotency_key=request.idempotency_key,
            replayed=False,
        )
    else:
        trace_info(
            preview.explainability_id or explainability_id,
            "adaptation_preview_cached",
            scope=request.scope,
            idempotency_key=request.idempotency_key,
            replayed=resolution.is_replay,
        )
    return resolution


def decide_adaptation(
    s: OrmSession,
    athlete_id: str,
    adaptation_id: str,
    request: DecisionRequest,
    settings: Settings | None = None,
) -> dict[str, Any]:
    """Record the athlete's decision on a preview and return the decided adaptation.

    Modified change sets are re-run through the volume guard against the
    sessions currently in the preview's window: ``clamp`` mode commits the
    clamped set, ``block`` mode raises GuardrailViolationError instead.

    Accepting or modifying a preview made against an older plan version raises
    StalePreviewError; rejecting one is always allowed.
    """
    settings = settings or get_settings()
    explainability_id = make_explainability_id()

    preview = SqlPreviewStore(s, settings.store_timeout_sec).get(athlete_id, adaptation_id)
    if preview is None:
        raise PreviewNotFoundError("Adaptation not found", adaptation_id=adaptation_id)

    decisions = SqlDecisionStore(s, settings.store_timeout_sec)
    if decisions.find_by_adaptation(adaptation_id) is not None:
        raise InvalidDecisionError("Adaptation already decided", adaptation_id=adaptation_id)

    plan = fetch_plan_summary(s, athlete_id)
    stale = plan.plan_id != preview.plan_id or plan.version != preview.plan_version_before
    if stale and request.decision != "rejected":
        raise StalePreviewError(
            "Plan changed since this adaptation was proposed",
            adaptation_id=adaptation_id,
            plan_version_before=preview.plan_version_before,
            plan_version_current=plan.version,
        )

    final_changes = None
    if request.decision == "modified":
        sessions = fetch_sessions_in_window(s, athlete_id, preview.impact_start, preview.impact_end)
        guard = guard_against_plan(
            sessions,
            request.to_changes(),
            plan,
            preview.impact_start.date(),
            max_pct=settings.volume_guard_max_pct,
            floor_min=settings.duration_floor_min,
        )
        metrics = guard.metrics
        trace_info(
            explainability_id,
            "decision_guard_check",
            mode=settings.decision_guard_mode,
            clamped=metrics.clamped,
            original_volume=metrics.before_min,
            new_volume=metrics.after_min,
            delta_percent=metrics.delta_pct,
            in_taper=metrics.in_taper,
            violates=guard.violates,
        )
        if settings.decision_guard_mode == "block" and guard.violates:
            # report the unclamped swing the athlete asked for
            raw = guard_against_plan(sessions, request.to_changes(), plan, preview.impact_start.date(), max_pct=float("inf"))
            raise GuardrailViolationError(
                "Weekly volume change exceeds safety limits",
                delta_percent=raw.metrics.delta_pct,
                max_allowed=settings.volume_guard_max_pct,
                in_taper=metrics.in_taper,
            )
        final_changes = guard.changes

    record = record_decision(
        decisions,
        preview,
        request.decision,
        final_changes,
        explainability_id=explainability_id,
    )
    trace_info(
        explainability_id,
        "adaptation_decision",
        adaptation_id=adaptation_id,
        decision=record.decision,
        change_count=len(record.final_changes),
        plan_version_after=record.plan_version_after,
    )

    body = preview.to_dict()
    body["decision"] = record.decision
    body["plan_version_after"] = record.plan_version_after
    body["final_changes"] = [c.to_dict() for c in record.final_changes]
    return body
