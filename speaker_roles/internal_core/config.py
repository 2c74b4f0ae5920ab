from __future__ import annotations

import os
from dataclasses import dataclass

from speaker_roles.asr.role_mapping import ScoreWeights
from speaker_roles.asr.session import EngineOptions


def _getenv_str(name: str, default: str) -> str:
    value = os.getenv(name)
    return default if value is None else value


def _getenv_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


def _getenv_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def _getenv_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return float(value)


def _getenv_unit_float(name: str, default: float) -> float:
    return max(0.0, min(1.0, _getenv_float(name, default)))


@dataclass(frozen=True)
class RoleEngineConfig:
    SCRIBE_SESSION_TTL_SECONDS: int
    SCRIBE_LOG_LEVEL: str
    SCRIBE_GROUP_TOKENS: bool
    SCRIBE_DEFAULT_FINAL_CONFIDENCE: float
    SCRIBE_DEFAULT_INTERIM_CONFIDENCE: float
    SCRIBE_ROLE_WEIGHT_UTTERANCES: float
    SCRIBE_ROLE_WEIGHT_WORDS: float
    SCRIBE_ROLE_WEIGHT_QUESTIONS: float
    SCRIBE_ROLE_WEIGHT_MEDICAL_TERMS: float
    SCRIBE_ROLE_WEIGHT_COMMANDS: float
    SCRIBE_ROLE_WEIGHT_DURATION: float
    SCRIBE_ROLE_FIRST_SPEAKER_BONUS: float

    def score_weights(self) -> ScoreWeights:
        return ScoreWeights(
            utterances=self.SCRIBE_ROLE_WEIGHT_UTTERANCES,
            words=self.SCRIBE_ROLE_WEIGHT_WORDS,
            questions=self.SCRIBE_ROLE_WEIGHT_QUESTIONS,
            medical_terms=self.SCRIBE_ROLE_WEIGHT_MEDICAL_TERMS,
            commands=self.SCRIBE_ROLE_WEIGHT_COMMANDS,
            duration=self.SCRIBE_ROLE_WEIGHT_DURATION,
            first_speaker_bonus=self.SCRIBE_ROLE_FIRST_SPEAKER_BONUS,
        )

    def engine_options(self) -> EngineOptions:
        return EngineOptions(
            weights=self.score_weights(),
            group_tokens=self.SCRIBE_GROUP_TOKENS,
            default_final_confidence=self.SCRIBE_DEFAULT_FINAL_CONFIDENCE,
            default_interim_confidence=self.SCRIBE_DEFAULT_INTERIM_CONFIDENCE,
        )


def load_config() -> RoleEngineConfig:
    defaults = ScoreWeights()
    return RoleEngineConfig(
        SCRIBE_SESSION_TTL_SECONDS=_getenv_int("SCRIBE_SESSION_TTL_SECONDS", 14400),
        SCRIBE_LOG_LEVEL=_getenv_str("SCRIBE_LOG_LEVEL", "INFO"),
        SCRIBE_GROUP_TOKENS=_getenv_bool("SCRIBE_GROUP_TOKENS", True),
        SCRIBE_DEFAULT_FINAL_CONFIDENCE=_getenv_unit_float("SCRIBE_DEFAULT_FINAL_CONFIDENCE", 0.9),
        SCRIBE_DEFAULT_INTERIM_CONFIDENCE=_getenv_unit_float("SCRIBE_DEFAULT_INTERIM_CONFIDENCE", 0.7),
        SCRIBE_ROLE_WEIGHT_UTTERANCES=_getenv_float("SCRIBE_ROLE_WEIGHT_UTTERANCES", defaults.utterances),
        SCRIBE_ROLE_WEIGHT_WORDS=_getenv_float("SCRIBE_ROLE_WEIGHT_WORDS", defaults.words),
        SCRIBE_ROLE_WEIGHT_QUESTIONS=_getenv_float("SCRIBE_ROLE_WEIGHT_QUESTIONS", defaults.questions),
        SCRIBE_ROLE_WEIGHT_MEDICAL_TERMS=_getenv_float(
            "SCRIBE_ROLE_WEIGHT_MEDICAL_TERMS", defaults.medical_terms
        ),
        SCRIBE_ROLE_WEIGHT_COMMANDS=_getenv_float("SCRIBE_ROLE_WEIGHT_COMMANDS", defaults.commands),
        SCRIBE_ROLE_WEIGHT_DURATION=_getenv_float("SCRIBE_ROLE_WEIGHT_DURATION", defaults.duration),
        SCRIBE_ROLE_FIRST_SPEAKER_BONUS=_getenv_float(
            "SCRIBE_ROLE_FIRST_SPEAKER_BONUS", defaults.first_speaker_bonus
        ),
    )
