from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from speaker_roles.asr.models import RoleAssignment, Segment
from speaker_roles.asr.voice_profile import VoiceProfile

SessionStatus = Literal["idle", "streaming"]


AuditEventType = Literal[
    "SESSION_CREATED",
    "BATCH_FINAL",
    "BATCH_INTERIM",
    "MALFORMED_INPUT",
    "ROLES_CHANGED",
    "PROFILE_MISMATCH",
]


class AuditEvent(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ts_iso: str
    session_id: str
    type: AuditEventType
    code: str
    detail: str
    duration_ms: Optional[int] = None


class SessionCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    session_id: Optional[str] = Field(default=None, min_length=1, max_length=128)
    speakers_expected: Optional[int] = Field(default=None, ge=1)
    language_code: Optional[str] = None
    voice_profile_id: Optional[str] = None


class SessionInfo(BaseModel):
    model_config = ConfigDict(extra="forbid")

    session_id: str
    status: SessionStatus
    created_at: float
    expires_at: float
    speakers_expected: Optional[int] = None
    language_code: Optional[str] = None
    voice_profile_id: Optional[str] = None
    batches_processed: int = 0
    units_dropped: int = 0


class BatchRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    is_final: bool
    records: List[Dict[str, Any]] = Field(default_factory=list)
    transcript_text: Optional[str] = None
    language_code: Optional[str] = None


class BatchResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    session_id: str
    is_final: bool
    segments: List[Segment] = Field(default_factory=list)
    new_final_segments: List[Segment] = Field(default_factory=list)
    interim_segments: List[Segment] = Field(default_factory=list)
    roles: RoleAssignment
    transcript_text: str = ""
    debug: Dict[str, Any] = Field(default_factory=dict)


class SegmentsResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    session_id: str
    relabelled: bool = False
    segments: List[Segment] = Field(default_factory=list)
    transcript_text: str = ""


class RolesResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    session_id: str
    roles: RoleAssignment
    features: List[Dict[str, Any]] = Field(default_factory=list)


class AuditResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    session_id: str
    events: List[AuditEvent] = Field(default_factory=list)


class EnrollRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    owner_name: str = Field(min_length=1, max_length=128)
    records: List[Dict[str, Any]] = Field(default_factory=list)
    transcript_text: Optional[str] = None
    language_code: Optional[str] = None


class EnrollResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    profile: VoiceProfile
    units_used: int
    message: str
