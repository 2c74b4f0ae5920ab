import pytest

from speaker_roles.asr.features import (
    FeatureAccumulator,
    analyze_text,
    count_command_phrases,
    count_medical_terms,
    features_from_units,
    is_question,
)
from speaker_roles.asr.models import Unit


def _unit(speaker_id: str, text: str, start: float, end: float, *, is_final: bool = True, confidence: float = 0.9) -> Unit:
    return Unit(
        speaker_id=speaker_id,
        text=text,
        start_ms=start,
        end_ms=end,
        confidence=confidence,
        is_final=is_final,
    )


def test_analyze_text_counts_lexical_cues() -> None:
    signals = analyze_text("What brings you in today? Any fever or chronic pain?")

    assert signals.word_count == 10
    assert signals.is_question is True
    assert signals.medical_terms == 2
    assert signals.command_phrases == 0


def test_cue_matching_is_case_insensitive() -> None:
    assert is_question("CAN YOU breathe in deeply") is True
    assert is_question("I slept badly.") is False
    assert count_medical_terms("Check your BLOOD PRESSURE and Heart Rate") == 2
    assert count_command_phrases("Let me listen. You should rest, then come back Friday.") == 3


def test_accumulator_folds_only_final_units() -> None:
    accumulator = FeatureAccumulator()

    folded = accumulator.update(
        [
            _unit("B", "Any fever?", 0, 1000, is_final=False),
            _unit("A", "I feel tired.", 1000, 2500),
        ]
    )

    assert folded == 1
    assert len(accumulator) == 1
    assert accumulator.units_seen == 1
    snapshot = accumulator.snapshot()
    assert list(snapshot) == ["A"]
    assert snapshot["A"].is_first_speaker is True


def test_accumulator_tracks_first_appearance_and_totals() -> None:
    accumulator = FeatureAccumulator()
    accumulator.update(
        [
            _unit("B", "What brings you in today?", 0, 1500, confidence=0.8),
            _unit("A", "My head has been aching.", 1700, 3000, confidence=1.0),
        ]
    )
    accumulator.update([_unit("B", "Any fever? Let me examine you.", 3200, 5200, confidence=0.6)])

    snapshot = accumulator.snapshot()
    assert list(snapshot) == ["B", "A"]
    doctor = snapshot["B"]
    assert doctor.first_seen == 0
    assert doctor.is_first_speaker is True
    assert doctor.utterance_count == 2
    assert doctor.word_count == 11
    assert doctor.question_count == 2
    assert doctor.medical_term_count == 2
    assert doctor.command_phrase_count == 1
    assert doctor.total_duration_ms == pytest.approx(3500.0)
    assert doctor.average_confidence == pytest.approx(0.7)
    assert doctor.question_frequency == pytest.approx(1.0)
    assert doctor.medical_term_density == pytest.approx(2 / 11)
    assert snapshot["A"].first_seen == 1
    assert snapshot["A"].is_first_speaker is False


def test_snapshot_is_a_copy() -> None:
    accumulator = FeatureAccumulator()
    accumulator.update([_unit("A", "hello", 0, 500)])

    snapshot = accumulator.snapshot()
    snapshot["A"].utterance_count = 99

    assert accumulator.snapshot()["A"].utterance_count == 1


def test_features_from_units_and_as_dict() -> None:
    features = features_from_units([_unit("A", "Take this twice daily.", 0, 2000)])

    payload = features["A"].as_dict()
    assert payload["speaker_id"] == "A"
    assert payload["utterance_count"] == 1
    assert payload["command_phrase_count"] == 1
    assert payload["total_duration_ms"] == pytest.approx(2000.0)
    assert payload["average_confidence"] == pytest.approx(0.9)


def test_clear_resets_counters() -> None:
    accumulator = FeatureAccumulator()
    accumulator.update([_unit("A", "hello", 0, 500)])
    accumulator.clear()

    assert len(accumulator) == 0
    assert accumulator.units_seen == 0
    assert accumulator.snapshot() == {}
