from __future__ import annotations

"""
Accumulate per-speaker conversational evidence for role scoring.

Design intent:
- Fold only final units into the counters so re-scoring is reproducible from final data alone.
- Evaluate lexical cues once per unit (substring matching, case-insensitive) to keep updates O(units).
- Remember first appearance order so ranking ties resolve deterministically.
"""

from dataclasses import dataclass, replace
from typing import Iterable, Mapping

from speaker_roles.asr.models import Unit

QUESTION_CUES: tuple[str, ...] = (
    "what",
    "when",
    "where",
    "how",
    "why",
    "who",
    "which",
    "can you",
    "do you",
    "have you",
    "are you",
)

MEDICAL_TERMS: tuple[str, ...] = (
    "fever",
    "diagnose",
    "diagnosis",
    "prescription",
    "medication",
    "treatment",
    "examine",
    "symptoms",
    "condition",
    "blood pressure",
    "temperature",
    "pulse",
    "heart rate",
    "mg",
    "dosage",
    "chronic",
    "acute",
    "prescribe",
    "follow up",
    "recommend",
    "suggest",
    "test",
    "lab",
    "results",
)

COMMAND_PHRASES: tuple[str, ...] = (
    "let me",
    "i need to",
    "i want to",
    "i'm going to",
    "we should",
    "you need to",
    "you should",
    "take this",
    "come back",
    "schedule",
)


@dataclass(frozen=True)
class TextSignals:
    word_count: int
    is_question: bool
    medical_terms: int
    command_phrases: int


def count_words(text: str) -> int:
    return len(text.split())


def is_question(text: str) -> bool:
    lowered = text.lower()
    return "?" in lowered or any(cue in lowered for cue in QUESTION_CUES)


def count_medical_terms(text: str) -> int:
    lowered = text.lower()
    return sum(1 for term in MEDICAL_TERMS if term in lowered)


def count_command_phrases(text: str) -> int:
    lowered = text.lower()
    return sum(1 for phrase in COMMAND_PHRASES if phrase in lowered)


def analyze_text(text: str) -> TextSignals:
    source = str(text or "")
    return TextSignals(
        word_count=count_words(source),
        is_question=is_question(source),
        medical_terms=count_medical_terms(source),
        command_phrases=count_command_phrases(source),
    )


@dataclass
class SpeakerFeatures:
    speaker_id: str
    first_seen: int
    utterance_count: int = 0
    word_count: int = 0
    question_count: int = 0
    medical_term_count: int = 0
    command_phrase_count: int = 0
    total_duration_ms: float = 0.0
    confidence_total: float = 0.0
    is_first_speaker: bool = False

    @property
    def average_confidence(self) -> float:
        if self.utterance_count <= 0:
            return 0.0
        return self.confidence_total / self.utterance_count

    @property
    def medical_term_density(self) -> float:
        return self.medical_term_count / max(self.word_count, 1)

    @property
    def question_frequency(self) -> float:
        return self.question_count / max(self.utterance_count, 1)

    def as_dict(self) -> dict[str, object]:
        return {
            "speaker_id": self.speaker_id,
            "first_seen": self.first_seen,
            "utterance_count": self.utterance_count,
            "word_count": self.word_count,
            "question_count": self.question_count,
            "medical_term_count": self.medical_term_count,
            "command_phrase_count": self.command_phrase_count,
            "total_duration_ms": round(self.total_duration_ms, 3),
            "average_confidence": round(self.average_confidence, 4),
            "is_first_speaker": self.is_first_speaker,
        }


class FeatureAccumulator:
    """Session-scoped running totals keyed by speaker id."""

    def __init__(self) -> None:
        self._features: dict[str, SpeakerFeatures] = {}
        self._units_seen = 0

    def __len__(self) -> int:
        return len(self._features)

    def clear(self) -> None:
        self._features = {}
        self._units_seen = 0

    @property
    def units_seen(self) -> int:
        return self._units_seen

    def update(self, units: Iterable[Unit]) -> int:
        """Fold final units into the counters; interim units are ignored. Returns units folded."""
        folded = 0
        for unit in units:
            if not unit.is_final:
                continue
            slot = self._features.get(unit.speaker_id)
            if slot is None:
                slot = SpeakerFeatures(
                    speaker_id=unit.speaker_id,
                    first_seen=len(self._features),
                    is_first_speaker=not self._features,
                )
                self._features[unit.speaker_id] = slot

            signals = analyze_text(unit.text)
            slot.utterance_count += 1
            slot.word_count += signals.word_count
            if signals.is_question:
                slot.question_count += 1
            slot.medical_term_count += signals.medical_terms
            slot.command_phrase_count += signals.command_phrases
            slot.total_duration_ms += unit.duration_ms
            slot.confidence_total += unit.confidence
            folded += 1

        self._units_seen += folded
        return folded

    def snapshot(self) -> dict[str, SpeakerFeatures]:
        """Copy of the per-speaker totals, ordered by first appearance."""
        ordered = sorted(self._features.values(), key=lambda item: item.first_seen)
        return {item.speaker_id: replace(item) for item in ordered}


def features_from_units(units: Iterable[Unit]) -> dict[str, SpeakerFeatures]:
    accumulator = FeatureAccumulator()
    accumulator.update(units)
    return accumulator.snapshot()


def ordered_features(features: Mapping[str, SpeakerFeatures]) -> list[SpeakerFeatures]:
    return sorted(features.values(), key=lambda item: (item.first_seen, item.speaker_id))
