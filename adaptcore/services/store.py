"""Persistence for adaptation previews and decisions.

The abstract stores are what the coordinator and the decision recorder talk
to; the SQL implementations back them with the ``adaptation_preview_cache``
and ``adaptation_decisions`` tables.
"""

from __future__ import annotations

import datetime as dt
from abc import ABC, abstractmethod
from functools import wraps

from sqlalchemy import delete, select, text, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session as OrmSession

from adaptcore.errors import PreviewConflictError, StoreTimeoutError
from adaptcore.logging_config import get_logger
from adaptcore.models import AdaptationDecision, AdaptationPreviewCache, Plan
from adaptcore.schemas import AdaptationPreview, DecisionRecord, DiffChange, ReadinessDriver, as_utc

logger = get_logger(__name__)

_TIMEOUT_MARKERS = ("statement timeout", "canceling statement", "lock timeout", "database is locked")


class PreviewStore(ABC):
    @abstractmethod
    def find_by_checksum(self, athlete_id: str, checksum: str, now: dt.datetime) -> AdaptationPreview | None:
        ...

    @abstractmethod
    def find_by_idempotency_key(
        self, athlete_id: str, idempotency_key: str, checksum: str, now: dt.datetime
    ) -> AdaptationPreview | None:
        ...

    @abstractmethod
    def create(self, preview: AdaptationPreview) -> AdaptationPreview:
        """Persist a new preview; raise PreviewConflictError if a live row already exists."""

    @abstractmethod
    def update_idempotency_key(self, adaptation_id: str, idempotency_key: str) -> None:
        ...

    @abstractmethod
    def get(self, athlete_id: str, adaptation_id: str) -> AdaptationPreview | None:
        ...


class DecisionStore(ABC):
    @abstractmethod
    def append(self, record: DecisionRecord) -> DecisionRecord:
        ...

    @abstractmethod
    def find_by_adaptation(self, adaptation_id: str) -> DecisionRecord | None:
        ...

    @abstractmethod
    def increment_plan_version(self, plan_id: str) -> int:
        ...


def _translate_timeouts(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except OperationalError as exc:
            message = str(exc.orig or exc).lower()
            if any(marker in message for marker in _TIMEOUT_MARKERS):
                raise StoreTimeoutError("Store operation timed out", operation=fn.__name__) from exc
            raise

    return wrapper


def preview_from_row(row: AdaptationPreviewCache) -> AdaptationPreview:
    return AdaptationPreview(
        adaptation_id=row.adaptation_id,
        athlete_id=row.athlete_id,
        plan_id=row.plan_id,
        plan_version_before=row.plan_version_before,
        scope=row.scope,
        impact_start=as_utc(row.impact_start),
        impact_end=as_utc(row.impact_end),
        reason_code=row.reason_code,
        triggers=tuple(row.triggers or ()),
        changes=tuple(DiffChange.from_dict(c) for c in row.changes_json or ()),
        rationale_text=row.rationale_text,
        driver_attribution=tuple(ReadinessDriver.from_dict(d) for d in row.driver_attribution or ()),
        data_snapshot=dict(row.data_snapshot or {}),
        checksum=row.checksum,
        expires_at=as_utc(row.expires_at),
        idempotency_key=row.idempotency_key,
        explainability_id=row.explainability_id or "",
        created_at=as_utc(row.created_at) if row.created_at else None,
    )


def row_from_preview(preview: AdaptationPreview) -> AdaptationPreviewCache:
    return AdaptationPreviewCache(
        adaptation_id=preview.adaptation_id,
        athlete_id=preview.athlete_id,
        plan_id=preview.plan_id,
        scope=preview.scope,
        impact_start=preview.impact_start,
        impact_end=preview.impact_end,
        reason_code=preview.reason_code,
        triggers=list(preview.triggers),
        changes_json=[c.to_dict() for c in preview.changes],
        plan_version_before=preview.plan_version_before,
        rationale_text=preview.rationale_text,
        driver_attribution=[d.to_dict() for d in preview.driver_attribution] or None,
        data_snapshot=preview.data_snapshot or None,
        checksum=preview.checksum,
        idempotency_key=preview.idempotency_key,
        explainability_id=preview.explainability_id,
        created_at=preview.created_at,
        expires_at=preview.expires_at,
    )


def decision_from_row(row: AdaptationDecision) -> DecisionRecord:
    return DecisionRecord(
        adaptation_id=row.adaptation_id,
        athlete_id=row.athlete_id,
        plan_id=row.plan_id,
        decision=row.decision,
        final_changes=tuple(DiffChange.from_dict(c) for c in row.final_changes or ()),
        plan_version_before=row.plan_version_before,
        plan_version_after=row.plan_version_after,
        rationale_text=row.rationale_text,
        driver_attribution=tuple(ReadinessDriver.from_dict(d) for d in row.driver_attribution or ()),
        explainability_id=row.explainability_id or "",
        decided_at=as_utc(row.decided_at) if row.decided_at else None,
    )


class _SqlStore:
    def __init__(self, session: OrmSession, timeout_sec: float | None = None):
        self.session = session
        self.timeout_sec = timeout_sec
        self._timeout_applied = False

    def _prepare(self) -> None:
        """Bound statements on Postgres; other dialects rely on the driver's own timeout."""
        if self._timeout_applied or not self.timeout_sec:
            return
        if self.session.get_bind().dialect.name == "postgresql":
            self.session.execute(text(f"SET LOCAL statement_timeout = {int(self.timeout_sec * 1000)}"))
        self._timeout_applied = True


class SqlPreviewStore(_SqlStore, PreviewStore):
    @_translate_timeouts
    def find_by_checksum(self, athlete_id: str, checksum: str, now: dt.datetime) -> AdaptationPreview | None:
        self._prepare()
        row = self.session.execute(
            select(AdaptationPreviewCache)
            .where(
                AdaptationPreviewCache.athlete_id == athlete_id,
                AdaptationPreviewCache.checksum == checksum,
                AdaptationPreviewCache.expires_at > now,
            )
            .limit(1)
        ).scalar_one_or_none()
        return preview_from_row(row) if row else None

    @_translate_timeouts
    def find_by_idempotency_key(
        self, athlete_id: str, idempotency_key: str, checksum: str, now: dt.datetime
    ) -> AdaptationPreview | None:
        self._prepare()
        row = self.session.execute(
            select(AdaptationPreviewCache)
            .where(
                AdaptationPreviewCache.athlete_id == athlete_id,
                AdaptationPreviewCache.idempotency_key == idempotency_key,
                AdaptationPreviewCache.checksum == checksum,
                AdaptationPreviewCache.expires_at > now,
            )
            .limit(1)
        ).scalar_one_or_none()
        return preview_from_row(row) if row else None

    @_translate_timeouts
    def create(self, preview: AdaptationPreview) -> AdaptationPreview:
        self._prepare()
        now = preview.created_at or dt.datetime.now(dt.timezone.utc)
        # expired rows for this checksum would otherwise hold the unique slot
        self.session.execute(
            delete(AdaptationPreviewCache).where(
                AdaptationPreviewCache.athlete_id == preview.athlete_id,
                AdaptationPreviewCache.checksum == preview.checksum,
                AdaptationPreviewCache.expires_at <= now,
            )
            .execution_options(synchronize_session="fetch")
        )
        row = row_from_preview(preview)
        try:
            with self.session.begin_nested():
                self.session.add(row)
                self.session.flush()
        except IntegrityError as exc:
            raise PreviewConflictError(
                "Preview already exists for checksum",
                athlete_id=preview.athlete_id,
            ) from exc
        return preview_from_row(row)

    @_translate_timeouts
    def update_idempotency_key(self, adaptation_id: str, idempotency_key: str) -> None:
        self._prepare()
        # a key collision only unwinds this savepoint, not the caller's work
        with self.session.begin_nested():
            self.session.execute(
                update(AdaptationPreviewCache)
                .where(AdaptationPreviewCache.adaptation_id == adaptation_id)
                .values(idempotency_key=idempotency_key)
            )

    @_translate_timeouts
    def get(self, athlete_id: str, adaptation_id: str) -> AdaptationPreview | None:
        self._prepare()
        row = self.session.execute(
            select(AdaptationPreviewCache).where(
                AdaptationPreviewCache.athlete_id == athlete_id,
                AdaptationPreviewCache.adaptation_id == adaptation_id,
            )
        ).scalar_one_or_none()
        return preview_from_row(row) if row else None

    @_translate_timeouts
    def purge_expired(self, now: dt.datetime) -> int:
        self._prepare()
        result = self.session.execute(
            delete(AdaptationPreviewCache)
            .where(AdaptationPreviewCache.expires_at <= now)
            .execution_options(synchronize_session="fetch")
        )
        logger.info("Purged expired previews", extra={"ctx_count": result.rowcount})
        return result.rowcount or 0


class SqlDecisionStore(_SqlStore, DecisionStore):
    @_translate_timeouts
    def append(self, record: DecisionRecord) -> DecisionRecord:
        self._prepare()
        row = AdaptationDecision(
            adaptation_id=record.adaptation_id,
            athlete_id=record.athlete_id,
            plan_id=record.plan_id,
            decision=record.decision,
            final_changes=[c.to_dict() for c in record.final_changes],
            plan_version_before=record.plan_version_before,
            plan_version_after=record.plan_version_after,
            rationale_text=record.rationale_text,
            driver_attribution=[d.to_dict() for d in record.driver_attribution],
            explainability_id=record.explainability_id,
        )
        self.session.add(row)
        self.session.flush()
        return decision_from_row(row)

    @_translate_timeouts
    def find_by_adaptation(self, adaptation_id: str) -> DecisionRecord | None:
        self._prepare()
        row = self.session.execute(
            select(AdaptationDecision).where(AdaptationDecision.adaptation_id == adaptation_id)
        ).scalar_one_or_none()
        return decision_from_row(row) if row else None

    @_translate_timeouts
    def increment_plan_version(self, plan_id: str) -> int:
        self._prepare()
        self.session.execute(update(Plan).where(Plan.id == plan_id).values(version=Plan.version + 1))
        self.session.flush()
        return self.session.execute(select(Plan.version).where(Plan.id == plan_id)).scalar_one()
