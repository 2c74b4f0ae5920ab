from __future__ import annotations

import logging
import time
import uuid
from threading import RLock
from typing import Any, Dict, List, Optional

from speaker_roles.asr.session import EngineOptions, RoleSession
from speaker_roles.asr.voice_profile import VoiceProfile

from .contracts import AuditEvent, SessionInfo, SessionStatus

logger = logging.getLogger(__name__)


class InMemorySessionStore:
    def __init__(self, ttl_seconds: int, options: Optional[EngineOptions] = None):
        self._ttl_seconds = ttl_seconds
        self._options = options or EngineOptions()
        self._lock = RLock()
        self._sessions: Dict[str, Dict[str, Any]] = {}

    def create_session(
        self,
        session_id: Optional[str] = None,
        *,
        speakers_expected: Optional[int] = None,
        language_code: Optional[str] = None,
        voice_profile: Optional[VoiceProfile] = None,
    ) -> str:
        session_id = session_id or uuid.uuid4().hex
        now = time.time()
        engine = RoleSession(
            session_id=session_id,
            speakers_expected=speakers_expected,
            language_code=language_code,
            voice_profile=voice_profile,
            options=self._options,
        )
        with self._lock:
            if session_id in self._sessions:
                raise ValueError(f"Session already exists: {session_id}")
            self._sessions[session_id] = {
                "session_id": session_id,
                "created_at": now,
                "updated_at": now,
                "expires_at": now + self._ttl_seconds,
                "status": "idle",
                "engine": engine,
                "audit_events": [],
            }
        return session_id

    def _touch(self, session_id: str) -> None:
        now = time.time()
        session = self._sessions[session_id]
        session["updated_at"] = now
        session["expires_at"] = now + self._ttl_seconds

    def _require(self, session_id: str) -> Dict[str, Any]:
        session = self._sessions.get(session_id)
        if session is None:
            raise KeyError(f"Unknown session_id: {session_id}")
        return session

    def has_session(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def get_engine(self, session_id: str) -> RoleSession:
        with self._lock:
            session = self._require(session_id)
            self._touch(session_id)
            return session["engine"]

    def set_status(self, session_id: str, status: SessionStatus) -> None:
        with self._lock:
            self._require(session_id)["status"] = status
            self._touch(session_id)

    def append_audit_event(self, session_id: str, event: AuditEvent) -> None:
        with self._lock:
            self._require(session_id)["audit_events"].append(event)
            self._touch(session_id)

    def get_audit_events(self, session_id: str) -> List[AuditEvent]:
        with self._lock:
            return list(self._require(session_id)["audit_events"])

    def get_session_info(self, session_id: str) -> SessionInfo:
        with self._lock:
            session = self._require(session_id)
            engine: RoleSession = session["engine"]
            profile = engine.voice_profile
            return SessionInfo(
                session_id=session["session_id"],
                status=session["status"],
                created_at=session["created_at"],
                expires_at=session["expires_at"],
                speakers_expected=engine.speakers_expected,
                language_code=engine.language_code,
                voice_profile_id=profile.profile_id if profile is not None else None,
                batches_processed=engine.batches_processed,
                units_dropped=engine.units_dropped,
            )

    def destroy_session(self, session_id: str, reason: str) -> bool:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        engine: RoleSession = session["engine"]
        logger.info(
            "session_destroyed session_id=%s reason=%s batches=%s speakers=%s",
            session_id,
            reason,
            engine.batches_processed,
            len(engine.features),
        )
        return True

    def cleanup_expired_sessions(self) -> int:
        now = time.time()
        expired = []
        with self._lock:
            for session_id, session in self._sessions.items():
                if session["expires_at"] <= now:
                    expired.append(session_id)
        for session_id in expired:
            self.destroy_session(session_id, reason="ttl_expired")
        return len(expired)
