from __future__ import annotations

"""
Rank speakers into clinical roles from accumulated per-speaker evidence.

Design intent:
- Recompute the full mapping from the feature snapshot on every call; no incremental state.
- Score each speaker by weighted shares of session-wide totals, so evidence is relative.
- Keep output deterministic: ties resolve by first appearance, never by dict iteration luck.
"""

from dataclasses import dataclass
from typing import Mapping

import numpy as np

from speaker_roles.asr.features import SpeakerFeatures, ordered_features
from speaker_roles.asr.models import ROLE_DOCTOR, ROLE_PATIENT, RoleAssignment, other_speaker_role


@dataclass(frozen=True)
class ScoreWeights:
    utterances: float = 2.0
    words: float = 1.5
    questions: float = 3.0
    medical_terms: float = 4.0
    commands: float = 2.0
    duration: float = 1.0
    first_speaker_bonus: float = 1.0

    def share_vector(self) -> np.ndarray:
        return np.array(
            [
                self.utterances,
                self.words,
                self.questions,
                self.medical_terms,
                self.commands,
                self.duration,
            ],
            dtype=np.float64,
        )


DEFAULT_WEIGHTS = ScoreWeights()


def _feature_matrix(speakers: list[SpeakerFeatures]) -> np.ndarray:
    return np.array(
        [
            [
                float(item.utterance_count),
                float(item.word_count),
                float(item.question_count),
                float(item.medical_term_count),
                float(item.command_phrase_count),
                float(item.total_duration_ms),
            ]
            for item in speakers
        ],
        dtype=np.float64,
    ).reshape(len(speakers), 6)


def score_speakers(
    features: Mapping[str, SpeakerFeatures],
    *,
    weights: ScoreWeights = DEFAULT_WEIGHTS,
) -> dict[str, float]:
    """
    Weighted sum of each speaker's share of every session-wide total.

    A column whose total is zero contributes nothing to any speaker.
    """
    speakers = ordered_features(features)
    if not speakers:
        return {}

    matrix = _feature_matrix(speakers)
    totals = matrix.sum(axis=0)
    shares = np.divide(matrix, totals, out=np.zeros_like(matrix), where=totals > 0)
    scores = shares @ weights.share_vector()
    bonus = np.array([weights.first_speaker_bonus if item.is_first_speaker else 0.0 for item in speakers])
    scores = scores + bonus
    return {item.speaker_id: float(score) for item, score in zip(speakers, scores)}


def rank_speakers(
    features: Mapping[str, SpeakerFeatures],
    *,
    weights: ScoreWeights = DEFAULT_WEIGHTS,
) -> list[tuple[str, float]]:
    scores = score_speakers(features, weights=weights)
    order = {item.speaker_id: idx for idx, item in enumerate(ordered_features(features))}
    return sorted(scores.items(), key=lambda pair: (-pair[1], order[pair[0]]))


def assign_roles(
    features: Mapping[str, SpeakerFeatures],
    *,
    weights: ScoreWeights = DEFAULT_WEIGHTS,
) -> RoleAssignment:
    """Rank 0 -> Doctor, rank 1 -> Patient, anyone else keeps an anonymous `Speaker <id>` label."""
    ranked = rank_speakers(features, weights=weights)
    if not ranked:
        return RoleAssignment(method="empty")

    roles: dict[str, str] = {}
    for idx, (speaker_id, _) in enumerate(ranked):
        if idx == 0:
            roles[speaker_id] = ROLE_DOCTOR
        elif idx == 1:
            roles[speaker_id] = ROLE_PATIENT
        else:
            roles[speaker_id] = other_speaker_role(speaker_id)

    return RoleAssignment(
        roles=roles,
        scores={speaker_id: round(score, 6) for speaker_id, score in ranked},
        method="ranking",
    )


def single_speaker_assignment(features: Mapping[str, SpeakerFeatures]) -> RoleAssignment:
    """Training/enrollment convention: every observed speaker is the Doctor."""
    speakers = ordered_features(features)
    if not speakers:
        return RoleAssignment(method="single_speaker")
    return RoleAssignment(
        roles={item.speaker_id: ROLE_DOCTOR for item in speakers},
        method="single_speaker",
    )


def resolve_role(
    assignment: RoleAssignment,
    speaker_id: str,
    *,
    pending: Mapping[str, str] | None = None,
    lead_role: str = ROLE_DOCTOR,
) -> str:
    """
    Role for `speaker_id`, with a provisional label for speakers that have no final evidence yet.

    Provisional labels take the first free slot (`lead_role`, then Patient) and are never stored
    in the assignment. `pending` carries provisional labels already handed out within the same render.
    """
    role = assignment.role_for(speaker_id)
    if role is not None:
        return role
    if pending and speaker_id in pending:
        return pending[speaker_id]
    if assignment.method == "single_speaker":
        return ROLE_DOCTOR

    taken = set(assignment.roles.values()) | set((pending or {}).values())
    for candidate in (lead_role, ROLE_PATIENT):
        if candidate not in taken:
            return candidate
    return other_speaker_role(speaker_id)
