from __future__ import annotations

import datetime as _dt
import logging
from typing import Mapping, Optional

from speaker_roles.asr.pipeline import BatchResult

from .contracts import AuditEvent, AuditEventType
from .session_store import InMemorySessionStore

logger = logging.getLogger(__name__)

_MAX_DETAIL_CHARS = 200


def _sanitize_detail(detail: str) -> str:
    # Counters and role maps only; transcript text never goes into audit detail.
    flattened = " ".join((detail or "").split())
    if len(flattened) > _MAX_DETAIL_CHARS:
        return flattened[:_MAX_DETAIL_CHARS] + "..."
    return flattened


def roles_detail(roles: Mapping[str, str]) -> str:
    return ",".join(f"{speaker_id}={role}" for speaker_id, role in roles.items())


def log_event(
    store: InMemorySessionStore,
    session_id: str,
    event_type: AuditEventType,
    code: str,
    detail: str,
    duration_ms: Optional[int] = None,
) -> AuditEvent:
    event = AuditEvent(
        ts_iso=_dt.datetime.now(_dt.timezone.utc).isoformat(),
        session_id=session_id,
        type=event_type,
        code=code,
        detail=_sanitize_detail(detail),
        duration_ms=duration_ms,
    )
    store.append_audit_event(session_id, event)
    logger.debug("audit_event session_id=%s type=%s code=%s", session_id, event_type, code)
    return event


def record_batch(store: InMemorySessionStore, result: BatchResult, elapsed_ms: int) -> list[AuditEvent]:
    """Audit one processed batch plus any side conditions it raised (drops, role flips, profile fallback)."""
    session_id = result.session_id
    events = [
        log_event(
            store,
            session_id,
            "BATCH_FINAL" if result.is_final else "BATCH_INTERIM",
            "OK",
            f"units={len(result.units)} folded={result.units_folded} segments={len(result.segments)}",
            duration_ms=elapsed_ms,
        )
    ]
    if result.dropped:
        events.append(log_event(store, session_id, "MALFORMED_INPUT", "DROPPED", f"dropped={result.dropped}"))
    if result.roles_changed:
        events.append(
            log_event(
                store,
                session_id,
                "ROLES_CHANGED",
                result.assignment.method.upper(),
                roles_detail(result.assignment.roles),
            )
        )
    if result.profile_fallback:
        events.append(
            log_event(store, session_id, "PROFILE_MISMATCH", "FALLBACK_RANKING", "voice profile has no characteristics")
        )
    return events
