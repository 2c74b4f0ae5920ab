from __future__ import annotations

"""
Enrolled voice profiles and summary-statistic speaker matching.

Design intent:
- Approximate "who is the enrolled clinician" with crude linguistic/confidence statistics.
- Keep the similarity formula fixed and explicit; this is not a biometric speaker model.
- Fall back to relative ranking when a profile carries no usable characteristics.
"""

import hashlib
import json
import re
import secrets
from datetime import datetime, timezone
from typing import Mapping, Sequence

import numpy as np
from pydantic import BaseModel, ConfigDict, Field

from speaker_roles.asr.features import (
    SpeakerFeatures,
    count_medical_terms,
    is_question,
    ordered_features,
)
from speaker_roles.asr.models import ROLE_PATIENT, RoleAssignment, Unit, other_speaker_role

_SENTENCE_END_RE = re.compile(r"[.!?]+")
_CLAUSE_RE = re.compile(r"[,;:]")

# confidence, medical term density, question frequency
_SIMILARITY_WEIGHTS = np.array([2.0, 4.0, 3.0], dtype=np.float64)
_MEDICAL_DENSITY_BONUS = 5.0


class VoiceProfileError(ValueError):
    pass


class SentenceStructure(BaseModel):
    model_config = ConfigDict(frozen=True)

    avg_sentence_length: float = 0.0
    total_sentences: int = 0
    complexity: int = 0


class VoiceCharacteristics(BaseModel):
    model_config = ConfigDict(frozen=True)

    average_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    total_words: int = Field(default=0, ge=0)
    audio_duration_ms: float = Field(default=0.0, ge=0.0)
    speaker_count: int = 1
    speech_rate: float = 0.0
    avg_word_length: float = 0.0
    vocabulary_complexity: float = 0.0
    medical_term_count: int = 0
    medical_term_density: float = 0.0
    question_frequency: float = 0.0
    sentence_structure: SentenceStructure = Field(default_factory=SentenceStructure)


class VoiceProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    owner_name: str = Field(min_length=1)
    profile_id: str
    created_at: str
    characteristics: VoiceCharacteristics | None = None
    fingerprint: str = ""
    language: str | None = None


def _sentence_structure(text: str) -> SentenceStructure:
    sentences = [item for item in _SENTENCE_END_RE.split(text) if item.strip()]
    if not sentences:
        return SentenceStructure()
    lengths = [len(item.split()) for item in sentences]
    return SentenceStructure(
        avg_sentence_length=round(sum(lengths) / len(lengths), 4),
        total_sentences=len(sentences),
        complexity=len(_CLAUSE_RE.split(sentences[0])),
    )


def _audio_duration_ms(units: Sequence[Unit]) -> float:
    starts = [item.start_ms for item in units if item.start_ms is not None]
    ends = [item.end_ms for item in units if item.end_ms is not None]
    if not starts or not ends:
        return sum(item.duration_ms for item in units)
    return max(0.0, max(ends) - min(starts))


def characteristics_from_units(units: Sequence[Unit]) -> VoiceCharacteristics:
    usable = [item for item in units if item.text.strip()]
    if not usable:
        return VoiceCharacteristics()

    full_text = " ".join(item.text for item in usable)
    words = full_text.split()
    total_words = len(words)
    duration_ms = _audio_duration_ms(usable)
    medical_terms = sum(count_medical_terms(item.text) for item in usable)
    questions = sum(1 for item in usable if is_question(item.text))
    lowered_words = [word.lower() for word in words]

    return VoiceCharacteristics(
        average_confidence=round(sum(item.confidence for item in usable) / len(usable), 6),
        total_words=total_words,
        audio_duration_ms=round(duration_ms, 3),
        speaker_count=len({item.speaker_id for item in usable}),
        speech_rate=round(total_words / max(duration_ms / 1000.0, 1.0), 6),
        avg_word_length=round(sum(len(word) for word in words) / max(total_words, 1), 6),
        vocabulary_complexity=round(len(set(lowered_words)) / max(total_words, 1), 6),
        medical_term_count=medical_terms,
        medical_term_density=round(medical_terms / max(total_words, 1), 6),
        question_frequency=round(questions / len(usable), 6),
        sentence_structure=_sentence_structure(full_text),
    )


def profile_fingerprint(owner_name: str, characteristics: VoiceCharacteristics) -> str:
    payload = {
        "name": owner_name,
        "confidence": characteristics.average_confidence,
        "words": characteristics.total_words,
        "duration_ms": characteristics.audio_duration_ms,
        "speech_rate": characteristics.speech_rate,
        "medical_terms": characteristics.medical_term_count,
    }
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


def enroll(reference_units: Sequence[Unit], owner_name: str) -> VoiceProfile:
    """
    Build an immutable voice profile from one reference recording of the owner speaking alone.

    Raises `VoiceProfileError` when the owner name is blank or no unit carries text.
    """
    name = str(owner_name or "").strip()
    if not name:
        raise VoiceProfileError("owner_name is required for enrollment.")
    usable = [item for item in reference_units if item.text.strip()]
    if not usable:
        raise VoiceProfileError("Enrollment needs at least one reference unit with text.")

    characteristics = characteristics_from_units(usable)
    language = next((item.language for item in usable if item.language), None)
    return VoiceProfile(
        owner_name=name,
        profile_id=secrets.token_hex(16),
        created_at=datetime.now(timezone.utc).isoformat(),
        characteristics=characteristics,
        fingerprint=profile_fingerprint(name, characteristics),
        language=language,
    )


def _similarity(observed: np.ndarray, reference: np.ndarray) -> np.ndarray:
    return 1.0 - np.minimum(np.abs(observed - reference), 1.0)


def match_scores(profile: VoiceProfile, features: Mapping[str, SpeakerFeatures]) -> dict[str, float] | None:
    """Per-speaker similarity to the enrolled profile; None when the profile has no characteristics."""
    traits = profile.characteristics
    if traits is None:
        return None
    speakers = ordered_features(features)
    if not speakers:
        return {}

    reference = np.array(
        [traits.average_confidence, traits.medical_term_density, traits.question_frequency],
        dtype=np.float64,
    )
    observed = np.array(
        [[item.average_confidence, item.medical_term_density, item.question_frequency] for item in speakers],
        dtype=np.float64,
    ).reshape(len(speakers), 3)
    scores = _similarity(observed, reference) @ _SIMILARITY_WEIGHTS
    scores = scores + observed[:, 1] * _MEDICAL_DENSITY_BONUS
    return {item.speaker_id: float(score) for item, score in zip(speakers, scores)}


def match_voice_profile(
    profile: VoiceProfile,
    features: Mapping[str, SpeakerFeatures],
) -> RoleAssignment | None:
    """
    Assign the enrolled owner's name to the best-matching speaker and Patient to the next one.

    Returns None when the profile is unusable so the caller can fall back to ranking.
    """
    scores = match_scores(profile, features)
    if scores is None:
        return None
    if not scores:
        return RoleAssignment(method="voice_profile")

    order = {item.speaker_id: idx for idx, item in enumerate(ordered_features(features))}
    ranked = sorted(scores.items(), key=lambda pair: (-pair[1], order[pair[0]]))

    roles: dict[str, str] = {}
    for idx, (speaker_id, _) in enumerate(ranked):
        if idx == 0:
            roles[speaker_id] = profile.owner_name
        elif idx == 1:
            roles[speaker_id] = ROLE_PATIENT
        else:
            roles[speaker_id] = other_speaker_role(speaker_id)

    return RoleAssignment(
        roles=roles,
        scores={speaker_id: round(score, 6) for speaker_id, score in ranked},
        method="voice_profile",
    )
