import math

from speaker_roles.asr.pipeline import current_assignment, current_segments, process_batch
from speaker_roles.asr.session import RoleSession
from speaker_roles.asr.voice_profile import VoiceCharacteristics, VoiceProfile


def test_single_speaker_mode_labels_everything_doctor() -> None:
    session = RoleSession(session_id="training", speakers_expected=1)

    result = process_batch(
        session,
        [{"speaker": "1", "text": "Hello, I'm Dr. Smith, let's examine your symptoms", "start": 0, "end": 3000}],
        is_final=True,
    )

    assert result.assignment.method == "single_speaker"
    assert [segment.role for segment in result.segments] == ["Doctor"]
    assert result.units_folded == 1


def test_questions_and_medical_terms_decide_roles() -> None:
    session = RoleSession(session_id="ranking")

    result = process_batch(
        session,
        [
            {"speaker": "B", "text": "What brings you in today? Any fever or pain?", "start": 0, "end": 2500},
            {"speaker": "A", "text": "My head has been aching.", "start": 2700, "end": 4000},
        ],
        is_final=True,
    )

    assert result.assignment.roles == {"B": "Doctor", "A": "Patient"}
    assert [(segment.role, segment.is_final) for segment in result.segments] == [
        ("Doctor", True),
        ("Patient", True),
    ]
    assert session.batches_processed == 1


def test_interim_units_never_change_features() -> None:
    session = RoleSession(session_id="interim")

    result = process_batch(
        session,
        [
            {"speaker": "1", "text": "What brings you", "start": 0, "end": 900},
            {"speaker": "2", "text": "I have", "start": 1000, "end": 1400},
        ],
        is_final=False,
    )

    assert result.units_folded == 0
    assert len(session.features) == 0
    assert result.assignment.method == "empty"
    assert [(segment.role, segment.is_final) for segment in result.segments] == [
        ("Doctor", False),
        ("Patient", False),
    ]


def test_final_segments_freeze_role_when_ranking_flips() -> None:
    session = RoleSession(session_id="flip")
    process_batch(
        session,
        [{"speaker": "A", "text": "My head has been aching.", "start": 0, "end": 1500}],
        is_final=True,
    )
    assert current_assignment(session).roles == {"A": "Doctor"}

    result = process_batch(
        session,
        [
            {
                "speaker": "B",
                "text": "What brings you in today? Any fever? Let me examine your symptoms before we discuss treatment.",
                "start": 1700,
                "end": 6000,
            }
        ],
        is_final=True,
    )

    assert result.roles_changed is True
    assert result.assignment.roles == {"B": "Doctor", "A": "Patient"}
    assert [segment.role for segment in current_segments(session)] == ["Doctor", "Doctor"]
    assert [segment.role for segment in current_segments(session, relabel=True)] == ["Patient", "Doctor"]


def test_mixed_finality_tokens_in_one_batch() -> None:
    session = RoleSession(session_id="tokens")

    result = process_batch(
        session,
        [
            {"text": "Hi", "speaker": "1", "start_ms": 0, "end_ms": 300},
            {"text": " there", "speaker": "1", "start_ms": 300, "end_ms": 600, "is_final": False},
        ],
        is_final=True,
    )

    assert result.units_folded == 1
    assert [segment.text for segment in result.update.new_final_segments] == ["Hi"]
    assert [segment.text for segment in result.update.interim_segments] == ["there"]


def test_malformed_records_are_counted_not_raised() -> None:
    session = RoleSession(session_id="malformed")

    result = process_batch(session, [{"nothing": "useful"}, "text", {"speaker": "1", "text": "Okay."}], is_final=True)

    assert result.dropped == 2
    assert session.units_dropped == 2
    assert len(result.segments) == 1


def test_sessions_do_not_share_state() -> None:
    first = RoleSession(session_id="one")
    second = RoleSession(session_id="two")

    process_batch(first, [{"speaker": "1", "text": "Any fever?"}], is_final=True)

    assert len(first.features) == 1
    assert len(second.features) == 0
    assert current_segments(second) == []


def test_profile_without_characteristics_falls_back_to_ranking() -> None:
    profile = VoiceProfile(owner_name="Dr. Lee", profile_id="p1", created_at="2026-01-01T00:00:00+00:00")
    session = RoleSession(session_id="fallback", voice_profile=profile)

    result = process_batch(
        session,
        [
            {"speaker": "1", "text": "Do you take any medication?", "start": 0, "end": 1500},
            {"speaker": "2", "text": "Only vitamins.", "start": 1600, "end": 2400},
        ],
        is_final=True,
    )

    assert result.profile_fallback is True
    assert result.assignment.method == "ranking"
    assert result.assignment.roles == {"1": "Doctor", "2": "Patient"}


def test_voice_profile_names_the_enrolled_clinician() -> None:
    profile = VoiceProfile(
        owner_name="Dr. Lee",
        profile_id="p2",
        created_at="2026-01-01T00:00:00+00:00",
        characteristics=VoiceCharacteristics(average_confidence=0.9, medical_term_density=0.2, question_frequency=1.0),
    )
    session = RoleSession(session_id="profile", voice_profile=profile)

    interim = process_batch(session, [{"speaker": "3", "text": "Any"}], is_final=False)
    assert [segment.role for segment in interim.segments] == ["Dr. Lee"]

    result = process_batch(
        session,
        [
            {"speaker": "4", "text": "I feel tired all day.", "start": 0, "end": 1500},
            {"speaker": "3", "text": "Any fever? Did you check your temperature?", "start": 1600, "end": 3200},
        ],
        is_final=True,
    )

    assert result.assignment.method == "voice_profile"
    assert result.assignment.roles == {"3": "Dr. Lee", "4": "Patient"}
    assert [segment.role for segment in result.segments] == ["Patient", "Dr. Lee"]


def test_reset_clears_session_state() -> None:
    session = RoleSession(session_id="reset")
    process_batch(session, [{"speaker": "1", "text": "Okay."}], is_final=True)

    session.reset()

    assert len(session.features) == 0
    assert current_segments(session) == []
    assert current_assignment(session).method == "empty"
    assert session.batches_processed == 0


def test_new_speaker_joining_is_not_a_role_change() -> None:
    session = RoleSession(session_id="joining")
    process_batch(
        session,
        [{"speaker": "A", "text": "What brings you in today? Any fever?", "start": 0, "end": 2000}],
        is_final=True,
    )

    result = process_batch(
        session,
        [{"speaker": "B", "text": "My head has been aching.", "start": 2200, "end": 3500}],
        is_final=True,
    )

    assert result.assignment.roles == {"A": "Doctor", "B": "Patient"}
    assert result.roles_changed is False


def test_non_finite_timestamps_keep_scores_finite() -> None:
    session = RoleSession(session_id="infinite")

    result = process_batch(
        session,
        [
            {"speaker": "1", "text": "Any fever?", "start": 0, "end": float("inf")},
            {"speaker": "2", "text": "Since Monday.", "start": float("nan"), "end": float("inf")},
        ],
        is_final=True,
    )

    assert result.dropped == 0
    assert all(math.isfinite(score) for score in result.assignment.scores.values())
    assert result.assignment.roles == {"1": "Doctor", "2": "Patient"}
    assert session.features.snapshot()["1"].total_duration_ms == 0.0
