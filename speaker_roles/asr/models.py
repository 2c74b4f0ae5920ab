from __future__ import annotations

"""
Typed data contracts shared by the role attribution engine.

Design intent:
- Keep one immutable unit type regardless of provider payload shape.
- Enforce timestamp-valid windows at the boundary, while tolerating missing timestamps.
- Make role assignments serializable for diagnostics without extra mapping code.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

ROLE_DOCTOR = "Doctor"
ROLE_PATIENT = "Patient"

AssignmentMethod = Literal["empty", "ranking", "single_speaker", "voice_profile"]


def other_speaker_role(speaker_id: str) -> str:
    return f"Speaker {speaker_id}"


def _check_window(start_ms: float | None, end_ms: float | None, name: str) -> None:
    if start_ms is None or end_ms is None:
        return
    if end_ms < start_ms:
        raise ValueError(f"{name}.end_ms must be >= {name}.start_ms")


class Unit(BaseModel):
    model_config = ConfigDict(frozen=True)

    speaker_id: str = Field(min_length=1)
    text: str
    start_ms: float | None = Field(default=None, ge=0.0, allow_inf_nan=False)
    end_ms: float | None = Field(default=None, ge=0.0, allow_inf_nan=False)
    confidence: float = Field(ge=0.0, le=1.0)
    is_final: bool
    language: str | None = None

    @model_validator(mode="after")
    def _validate_window(self) -> "Unit":
        _check_window(self.start_ms, self.end_ms, "Unit")
        return self

    @property
    def duration_ms(self) -> float:
        if self.start_ms is None or self.end_ms is None:
            return 0.0
        return max(0.0, self.end_ms - self.start_ms)


class Segment(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: str
    text: str
    start_ms: float | None = None
    end_ms: float | None = None
    is_final: bool
    confidence: float = Field(ge=0.0, le=1.0)
    speaker_ids: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate_window(self) -> "Segment":
        _check_window(self.start_ms, self.end_ms, "Segment")
        return self


class RoleAssignment(BaseModel):
    roles: dict[str, str] = Field(default_factory=dict)
    scores: dict[str, float] = Field(default_factory=dict)
    method: AssignmentMethod = "empty"

    def role_for(self, speaker_id: str) -> str | None:
        return self.roles.get(speaker_id)

    def speaker_for(self, role: str) -> str | None:
        for speaker_id, assigned in self.roles.items():
            if assigned == role:
                return speaker_id
        return None
