import pytest
from pydantic import ValidationError

from speaker_roles.asr.models import Unit
from speaker_roles.asr.normalizer import (
    detect_record_kind,
    normalize_batch,
    parse_duration_ms,
    records_from_transcript_text,
    speaker_from_prefix,
)


def test_normalize_batch_utterance_records_use_default_confidence() -> None:
    batch = normalize_batch(
        [
            {"speaker": "A", "text": "  Good   morning ", "start": 0, "end": 900},
            {"speaker": 2, "text": "Hi there.", "start": 1000, "end": 1800, "confidence": 0.5},
        ],
        is_final=True,
        language_code="en-US",
    )

    assert batch.dropped == 0
    assert batch.kinds == {"utterance": 2}
    assert [unit.speaker_id for unit in batch.units] == ["A", "2"]
    assert batch.units[0].text == "Good morning"
    assert batch.units[0].confidence == pytest.approx(0.9)
    assert batch.units[0].language == "en-US"
    assert batch.units[1].confidence == pytest.approx(0.5)
    assert all(unit.is_final for unit in batch.units)


def test_normalize_batch_interim_uses_interim_default_confidence() -> None:
    batch = normalize_batch([{"speaker": "A", "text": "I think"}], is_final=False)

    assert len(batch.units) == 1
    assert batch.units[0].is_final is False
    assert batch.units[0].confidence == pytest.approx(0.7)
    assert batch.units[0].start_ms is None
    assert batch.units[0].duration_ms == 0.0


def test_normalize_batch_groups_word_records_into_speaker_runs() -> None:
    batch = normalize_batch(
        [
            {"word": "Hello", "speakerTag": 1, "startTime": "0s", "endTime": "0.5s"},
            {"word": "there", "speakerTag": 1, "startTime": "0.5s", "endTime": "1s"},
            {"word": "Hi", "speakerTag": 2, "startTime": {"seconds": 1, "nanos": 500000000}, "endTime": "2s"},
        ],
        is_final=True,
    )

    assert batch.kinds == {"word": 3}
    assert [(unit.speaker_id, unit.text) for unit in batch.units] == [("1", "Hello there"), ("2", "Hi")]
    assert batch.units[0].start_ms == pytest.approx(0.0)
    assert batch.units[0].end_ms == pytest.approx(1000.0)
    assert batch.units[1].start_ms == pytest.approx(1500.0)
    assert batch.units[1].end_ms == pytest.approx(2000.0)


def test_normalize_batch_without_grouping_keeps_one_unit_per_word() -> None:
    batch = normalize_batch(
        [
            {"word": "Hello", "speakerTag": 1},
            {"word": "there", "speakerTag": 1},
        ],
        is_final=True,
        group_tokens=False,
    )

    assert [unit.text for unit in batch.units] == ["Hello", "there"]


def test_normalize_batch_token_flag_overrides_batch_finality() -> None:
    batch = normalize_batch(
        [
            {"text": "Hel", "speaker": "A", "start_ms": 0, "end_ms": 100},
            {"text": "lo", "speaker": "A", "start_ms": 100, "end_ms": 200},
            {"text": " doc", "speaker": "A", "start_ms": 200, "end_ms": 400, "is_final": False},
        ],
        is_final=True,
    )

    assert [(unit.text, unit.is_final) for unit in batch.units] == [("Hello", True), ("doc", False)]
    assert batch.units[0].end_ms == pytest.approx(200.0)
    assert batch.units[1].confidence == pytest.approx(0.7)


def test_normalize_batch_drops_malformed_records_and_repairs_windows() -> None:
    batch = normalize_batch(
        [
            None,
            {"unexpected": 1},
            {"speaker": "A", "text": "   "},
            {"speaker": True, "text": "flag speaker"},
            {"speaker": "A", "text": "inverted", "start": 500, "end": 100, "confidence": 1.7},
            {"speaker": "B", "text": "negative", "start": -20, "end": 300},
        ],
        is_final=True,
    )

    assert batch.dropped == 4
    assert len(batch.units) == 2
    inverted, negative = batch.units
    assert inverted.start_ms == pytest.approx(500.0)
    assert inverted.end_ms == pytest.approx(500.0)
    assert inverted.confidence == pytest.approx(1.0)
    assert negative.start_ms == pytest.approx(0.0)


def test_detect_record_kind_prefers_explicit_kind() -> None:
    assert detect_record_kind({"kind": "token", "speaker": "A", "text": "x"}) == "token"
    assert detect_record_kind({"word": "x", "speakerTag": 1}) == "word"
    assert detect_record_kind({"speaker": "A", "text": "x", "end_ms": 5}) == "token"
    assert detect_record_kind({"speaker": "A", "text": "x"}) == "utterance"
    assert detect_record_kind({"text": "x"}) is None


def test_parse_duration_ms_accepts_provider_shapes() -> None:
    assert parse_duration_ms(1.25) == pytest.approx(1250.0)
    assert parse_duration_ms("2.5s") == pytest.approx(2500.0)
    assert parse_duration_ms({"seconds": "3", "nanos": 250000000}) == pytest.approx(3250.0)
    assert parse_duration_ms("soon") is None
    assert parse_duration_ms(None) is None
    assert parse_duration_ms(True) is None


def test_speaker_from_prefix_strips_speaker_word() -> None:
    assert speaker_from_prefix("Speaker 2: hello") == ("2", "hello")
    assert speaker_from_prefix("Doctor: Any pain?") == ("Doctor", "Any pain?")
    assert speaker_from_prefix("no prefix here") == (None, "no prefix here")


def test_records_from_transcript_text_builds_synthetic_timing() -> None:
    records = records_from_transcript_text(
        "Doctor: What brings you in today? Any fever.\nPatient: I have had a cough.\nIt started Monday."
    )

    assert [record["speaker"] for record in records] == ["Doctor", "Doctor", "Patient", "Patient"]
    assert records[0] == {"speaker": "Doctor", "text": "What brings you in today?", "start": 0.0, "end": 1650.0}
    assert records[1]["start"] == pytest.approx(1850.0)
    assert records[1]["end"] == pytest.approx(2850.0)
    assert records[2]["start"] == pytest.approx(3050.0)
    assert records[3]["text"] == "It started Monday."
    assert records_from_transcript_text("   ") == []


def test_normalize_batch_drops_non_finite_times_to_none() -> None:
    batch = normalize_batch(
        [
            {"speaker": "A", "text": "Any fever?", "start": 0, "end": float("inf"), "confidence": float("nan")},
            {"word": "okay", "speakerTag": 2, "startTime": float("-inf"), "endTime": 1.0},
        ],
        is_final=True,
    )

    assert batch.dropped == 0
    first, second = batch.units
    assert first.start_ms == pytest.approx(0.0)
    assert first.end_ms is None
    assert first.confidence == pytest.approx(0.9)
    assert second.start_ms is None
    assert second.end_ms == pytest.approx(1000.0)


def test_unit_rejects_non_finite_timestamps() -> None:
    with pytest.raises(ValidationError):
        Unit(speaker_id="A", text="x", start_ms=0.0, end_ms=float("inf"), confidence=0.9, is_final=True)
