from __future__ import annotations

"""
API surface for the speaker-role attribution backend.

Design intent:
- Keep API orchestration thin and typed.
- Delegate role attribution to the asr engine; this layer only owns session/profile tables.
- Map invalid input to 400 and unknown ids to 404; the engine itself never raises on bad records.
"""

import logging
from time import perf_counter
from typing import Any

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from speaker_roles.asr.formatting import format_for_display
from speaker_roles.asr.normalizer import normalize_batch, records_from_transcript_text
from speaker_roles.asr.pipeline import current_assignment, current_segments, process_batch
from speaker_roles.asr.voice_profile import VoiceProfile, VoiceProfileError, enroll
from speaker_roles.internal_core.audit import log_event, record_batch
from speaker_roles.internal_core.config import RoleEngineConfig, load_config
from speaker_roles.internal_core.contracts import (
    AuditResponse,
    BatchRequest,
    BatchResponse,
    EnrollRequest,
    EnrollResponse,
    RolesResponse,
    SegmentsResponse,
    SessionCreateRequest,
    SessionInfo,
)
from speaker_roles.internal_core.session_store import InMemorySessionStore

app = FastAPI(title="speaker roles backend service")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _get_config() -> RoleEngineConfig:
    existing = getattr(app.state, "role_engine_config", None)
    if isinstance(existing, RoleEngineConfig):
        return existing
    created = load_config()
    logging.getLogger("speaker_roles").setLevel(created.SCRIBE_LOG_LEVEL.upper())
    setattr(app.state, "role_engine_config", created)
    return created


def _get_session_store() -> InMemorySessionStore:
    existing = getattr(app.state, "role_session_store", None)
    if isinstance(existing, InMemorySessionStore):
        return existing
    config = _get_config()
    created = InMemorySessionStore(
        ttl_seconds=config.SCRIBE_SESSION_TTL_SECONDS,
        options=config.engine_options(),
    )
    setattr(app.state, "role_session_store", created)
    return created


def _get_voice_profile_store() -> dict[str, VoiceProfile]:
    existing = getattr(app.state, "voice_profiles", None)
    if isinstance(existing, dict):
        return existing
    created: dict[str, VoiceProfile] = {}
    setattr(app.state, "voice_profiles", created)
    return created


def _normalize_session_id(session_id: str) -> str:
    normalized = str(session_id or "").strip()
    if not normalized:
        raise HTTPException(status_code=400, detail="session_id is required.")
    return normalized


def _require_session(store: InMemorySessionStore, session_id: str) -> str:
    normalized = _normalize_session_id(session_id)
    if not store.has_session(normalized):
        raise HTTPException(status_code=404, detail=f"Unknown session_id: {normalized}")
    return normalized


def _request_records(records: list[dict[str, Any]], transcript_text: str | None) -> list[dict[str, Any]]:
    if records:
        return list(records)
    if transcript_text and transcript_text.strip():
        return records_from_transcript_text(transcript_text)
    return []


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/sessions", response_model=SessionInfo)
async def create_session(payload: SessionCreateRequest) -> SessionInfo:
    store = _get_session_store()
    expired = store.cleanup_expired_sessions()
    if expired:
        logger.info("session_cleanup expired=%s", expired)

    profile: VoiceProfile | None = None
    if payload.voice_profile_id:
        profile = _get_voice_profile_store().get(payload.voice_profile_id)
        if profile is None:
            raise HTTPException(status_code=404, detail=f"Unknown voice_profile_id: {payload.voice_profile_id}")

    try:
        session_id = store.create_session(
            payload.session_id,
            speakers_expected=payload.speakers_expected,
            language_code=payload.language_code,
            voice_profile=profile,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    log_event(
        store,
        session_id,
        "SESSION_CREATED",
        "OK",
        f"speakers_expected={payload.speakers_expected} profile={bool(profile)}",
    )
    return store.get_session_info(session_id)


@app.get("/sessions/{session_id}", response_model=SessionInfo)
async def get_session(session_id: str) -> SessionInfo:
    store = _get_session_store()
    normalized = _require_session(store, session_id)
    return store.get_session_info(normalized)


@app.post("/sessions/{session_id}/batches", response_model=BatchResponse)
async def post_batch(session_id: str, payload: BatchRequest) -> BatchResponse:
    store = _get_session_store()
    normalized = _require_session(store, session_id)
    records = _request_records(payload.records, payload.transcript_text)

    started = perf_counter()
    engine = store.get_engine(normalized)
    result = process_batch(engine, records, is_final=payload.is_final, language_code=payload.language_code)
    elapsed_ms = int(round((perf_counter() - started) * 1000.0))

    store.set_status(normalized, "streaming")
    record_batch(store, result, elapsed_ms)
    return BatchResponse(
        session_id=normalized,
        is_final=payload.is_final,
        segments=result.segments,
        new_final_segments=result.update.new_final_segments,
        interim_segments=result.update.interim_segments,
        roles=result.assignment,
        transcript_text=format_for_display(result.segments),
        debug={
            "records_received": len(records),
            "units": len(result.units),
            "units_folded": result.units_folded,
            "dropped": result.dropped,
            "interim_replaced": result.update.interim_replaced,
            "roles_changed": result.roles_changed,
            "profile_fallback": result.profile_fallback,
            "elapsed_ms": elapsed_ms,
        },
    )


@app.get("/sessions/{session_id}/segments", response_model=SegmentsResponse)
async def get_segments(session_id: str, relabel: bool = Query(default=False)) -> SegmentsResponse:
    store = _get_session_store()
    normalized = _require_session(store, session_id)
    segments = current_segments(store.get_engine(normalized), relabel=relabel)
    return SegmentsResponse(
        session_id=normalized,
        relabelled=relabel,
        segments=segments,
        transcript_text=format_for_display(segments),
    )


@app.get("/sessions/{session_id}/roles", response_model=RolesResponse)
async def get_roles(session_id: str) -> RolesResponse:
    store = _get_session_store()
    normalized = _require_session(store, session_id)
    engine = store.get_engine(normalized)
    return RolesResponse(
        session_id=normalized,
        roles=current_assignment(engine),
        features=[item.as_dict() for item in engine.features.snapshot().values()],
    )


@app.get("/sessions/{session_id}/audit", response_model=AuditResponse)
async def get_audit(session_id: str) -> AuditResponse:
    store = _get_session_store()
    normalized = _require_session(store, session_id)
    return AuditResponse(session_id=normalized, events=store.get_audit_events(normalized))


@app.delete("/sessions/{session_id}")
async def delete_session(session_id: str) -> dict[str, str]:
    store = _get_session_store()
    normalized = _require_session(store, session_id)
    store.destroy_session(normalized, reason="client_request")
    return {"status": "deleted", "session_id": normalized}


@app.post("/voice-profiles", response_model=EnrollResponse)
async def enroll_voice_profile(payload: EnrollRequest) -> EnrollResponse:
    config = _get_config()
    records = _request_records(payload.records, payload.transcript_text)
    normalized = normalize_batch(
        records,
        is_final=True,
        language_code=payload.language_code,
        group_tokens=config.SCRIBE_GROUP_TOKENS,
        default_final_confidence=config.SCRIBE_DEFAULT_FINAL_CONFIDENCE,
        default_interim_confidence=config.SCRIBE_DEFAULT_INTERIM_CONFIDENCE,
    )
    try:
        profile = enroll(normalized.units, payload.owner_name)
    except VoiceProfileError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    _get_voice_profile_store()[profile.profile_id] = profile
    logger.info(
        "voice_profile_enrolled profile_id=%s units=%s words=%s",
        profile.profile_id,
        len(normalized.units),
        profile.characteristics.total_words if profile.characteristics else 0,
    )
    return EnrollResponse(
        profile=profile,
        units_used=len(normalized.units),
        message=f"Voice profile created for {profile.owner_name}",
    )


@app.get("/voice-profiles/{profile_id}", response_model=VoiceProfile)
async def get_voice_profile(profile_id: str) -> VoiceProfile:
    profile = _get_voice_profile_store().get(str(profile_id or "").strip())
    if profile is None:
        raise HTTPException(status_code=404, detail=f"Unknown voice_profile_id: {profile_id}")
    return profile
