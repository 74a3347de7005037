"""Preview cache and idempotency coordinator.

Lookup order for ``resolve_preview``:

1. ``(athlete, idempotency_key, checksum)`` when a well-formed key is given;
   a hit is an idempotent replay.
2. ``(athlete, checksum)``; a hit is a natural cache hit, and a valid key the
   row does not carry yet is attached to it for future replays.
3. Compute, persist with a fixed TTL, return as newly created.

Concurrent creators of the same ``(athlete, checksum)`` are serialized by the
store's uniqueness constraint; the loser reads back the winner's row.
"""

from __future__ import annotations

import datetime as dt
import uuid
from dataclasses import dataclass
from typing import Callable

from adaptcore.errors import PreviewConflictError
from adaptcore.logging_config import get_logger
from adaptcore.schemas import AdaptationPreview, PreviewDraft
from adaptcore.services.checksum import is_valid_idempotency_key
from adaptcore.services.store import PreviewStore

logger = get_logger(__name__)

PREVIEW_TTL = dt.timedelta(hours=24)


@dataclass(frozen=True)
class PreviewResolution:
    preview: AdaptationPreview
    is_replay: bool
    created: bool
    idempotency_key: str | None = None


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def build_preview(
    draft: PreviewDraft,
    checksum: str,
    idempotency_key: str | None,
    now: dt.datetime,
    ttl: dt.timedelta = PREVIEW_TTL,
) -> AdaptationPreview:
    evaluation = draft.evaluation
    return AdaptationPreview(
        adaptation_id=str(uuid.uuid4()),
        athlete_id=draft.athlete_id,
        plan_id=draft.plan_id,
        plan_version_before=draft.plan_version_before,
        scope=draft.scope,
        impact_start=draft.window.start,
        impact_end=draft.window.end,
        reason_code=evaluation.reason_code,
        triggers=tuple(evaluation.triggers),
        changes=tuple(evaluation.changes),
        rationale_text=evaluation.rationale_text,
        driver_attribution=tuple(evaluation.driver_attribution),
        data_snapshot=dict(evaluation.data_snapshot),
        checksum=checksum,
        expires_at=now + ttl,
        idempotency_key=idempotency_key if is_valid_idempotency_key(idempotency_key) else None,
        explainability_id=draft.explainability_id,
        created_at=now,
    )


def _attach_key(store: PreviewStore, preview: AdaptationPreview, key: str) -> None:
    try:
        store.update_idempotency_key(preview.adaptation_id, key)
    except Exception:
        logger.warning(
            "Failed to attach idempotency key to cached preview",
            exc_info=True,
            extra={"ctx_adaptation_id": preview.adaptation_id},
        )


def resolve_preview(
    store: PreviewStore,
    athlete_id: str,
    inputs_checksum: str,
    idempotency_key: str | None,
    compute: Callable[[], PreviewDraft],
    *,
    now: dt.datetime | None = None,
    ttl: dt.timedelta = PREVIEW_TTL,
) -> PreviewResolution:
    now = now or _utcnow()
    valid_key = is_valid_idempotency_key(idempotency_key)

    if valid_key:
        replay = store.find_by_idempotency_key(athlete_id, idempotency_key, inputs_checksum, now)
        if replay is not None:
            logger.info("Idempotent replay", extra={"ctx_adaptation_id": replay.adaptation_id})
            return PreviewResolution(replay, is_replay=True, created=False, idempotency_key=idempotency_key)
    elif idempotency_key:
        logger.info("Idempotency key is not a UUID; falling back to checksum lookup")

    cached = store.find_by_checksum(athlete_id, inputs_checksum, now)
    if cached is not None:
        if valid_key and cached.idempotency_key != idempotency_key:
            _attach_key(store, cached, idempotency_key)
        return PreviewResolution(cached, is_replay=False, created=False, idempotency_key=idempotency_key)

    draft = compute()
    preview = build_preview(draft, inputs_checksum, idempotency_key, now, ttl)
    try:
        stored = store.create(preview)
    except PreviewConflictError:
        winner = store.find_by_checksum(athlete_id, inputs_checksum, now)
        if winner is None:
            raise
        logger.info("Lost preview create race", extra={"ctx_adaptation_id": winner.adaptation_id})
        return PreviewResolution(winner, is_replay=False, created=False, idempotency_key=idempotency_key)

    logger.info(
        "Created adaptation preview",
        extra={"ctx_adaptation_id": stored.adaptation_id, "ctx_reason_code": stored.reason_code},
    )
    return PreviewResolution(stored, is_replay=False, created=True, idempotency_key=idempotency_key)
