from __future__ import annotations

import datetime as dt
import hashlib
import json
import re

from adaptcore.schemas import Readiness

_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


def is_valid_idempotency_key(value: str | None) -> bool:
    return bool(value) and bool(_UUID_RE.match(value))


def compute_inputs_checksum(
    athlete_id: str,
    day: dt.date,
    scope: str,
    plan_version: int,
    readiness: Readiness | None,
) -> str:
    """SHA-256 over the canonical JSON of the decision-relevant inputs."""
    payload = {
        "athlete_id": athlete_id,
        "date": day.isoformat(),
        "scope": scope,
        "plan_version": plan_version,
        "readiness_date": readiness.date.isoformat() if readiness else None,
        "readiness_score": readiness.score if readiness else None,
    }
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
