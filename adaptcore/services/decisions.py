"""Decision recorder: the single point where a preview becomes a committed edit."""

from __future__ import annotations

from typing import Iterable

from adaptcore.errors import InvalidDecisionError
from adaptcore.logging_config import get_logger
from adaptcore.schemas import DECISIONS, AdaptationPreview, DecisionRecord, DiffChange
from adaptcore.services.store import DecisionStore

logger = get_logger(__name__)


def finalize_changes(
    decision: str,
    preview_changes: Iterable[DiffChange],
    modified_changes: Iterable[DiffChange] | None = None,
) -> list[DiffChange]:
    """Pick the change set that gets committed.

    ``modified_changes`` must already have been through the volume guard.
    """
    if decision == "accepted":
        return list(preview_changes)
    if decision == "modified":
        if modified_changes is None:
            raise InvalidDecisionError("modified decision requires a change set")
        changes = list(modified_changes)
        if any(c.op != "replace" for c in changes):
            raise InvalidDecisionError("modified changes may only replace session fields")
        return changes
    if decision == "rejected":
        return []
    raise InvalidDecisionError(f"decision must be one of {DECISIONS}", decision=decision)


def record_decision(
    store: DecisionStore,
    preview: AdaptationPreview,
    decision: str,
    final_changes: Iterable[DiffChange] | None = None,
    *,
    rationale_text: str | None = None,
    explainability_id: str = "",
) -> DecisionRecord:
    changes = finalize_changes(decision, preview.changes, final_changes)
    before = preview.plan_version_before
    # the store owns the counter; record whatever it lands on
    after = None if decision == "rejected" else store.increment_plan_version(preview.plan_id)
    record = DecisionRecord(
        adaptation_id=preview.adaptation_id,
        athlete_id=preview.athlete_id,
        plan_id=preview.plan_id,
        decision=decision,
        final_changes=tuple(changes),
        plan_version_before=before,
        plan_version_after=after,
        rationale_text=rationale_text or f"{decision.capitalize()}: {preview.rationale_text}",
        driver_attribution=preview.driver_attribution,
        explainability_id=explainability_id,
    )

    stored = store.append(record)

    logger.info(
        "Recorded adaptation decision",
        extra={
            "ctx_adaptation_id": preview.adaptation_id,
            "ctx_decision": decision,
            "ctx_plan_version_after": record.plan_version_after,
        },
    )
    return stored
