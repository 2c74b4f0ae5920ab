from __future__ import annotations

"""
Explicit per-conversation engine state.

Design intent:
- Hold everything one conversation mutates (features, timeline, latest assignment) in one handle.
- Callers own the `session_id -> RoleSession` table; engine functions only receive the handle.
- Serialize writers per session with the session's own lock; sessions never share mutable state.
"""

import threading
from dataclasses import dataclass, field

from speaker_roles.asr.features import FeatureAccumulator
from speaker_roles.asr.models import ROLE_DOCTOR, RoleAssignment
from speaker_roles.asr.normalizer import DEFAULT_FINAL_CONFIDENCE, DEFAULT_INTERIM_CONFIDENCE
from speaker_roles.asr.role_mapping import DEFAULT_WEIGHTS, ScoreWeights
from speaker_roles.asr.segments import SegmentTimeline
from speaker_roles.asr.voice_profile import VoiceProfile


@dataclass(frozen=True)
class EngineOptions:
    weights: ScoreWeights = DEFAULT_WEIGHTS
    group_tokens: bool = True
    default_final_confidence: float = DEFAULT_FINAL_CONFIDENCE
    default_interim_confidence: float = DEFAULT_INTERIM_CONFIDENCE


@dataclass
class RoleSession:
    session_id: str
    speakers_expected: int | None = None
    language_code: str | None = None
    voice_profile: VoiceProfile | None = None
    options: EngineOptions = field(default_factory=EngineOptions)
    features: FeatureAccumulator = field(default_factory=FeatureAccumulator)
    timeline: SegmentTimeline = field(default_factory=SegmentTimeline)
    assignment: RoleAssignment = field(default_factory=RoleAssignment)
    batches_processed: int = 0
    units_dropped: int = 0
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def single_speaker(self) -> bool:
        return self.speakers_expected == 1

    @property
    def lead_role(self) -> str:
        if self.voice_profile is not None and self.voice_profile.characteristics is not None:
            return self.voice_profile.owner_name
        return ROLE_DOCTOR

    def reset(self) -> None:
        with self.lock:
            self.features.clear()
            self.timeline.clear()
            self.assignment = RoleAssignment()
            self.batches_processed = 0
            self.units_dropped = 0
