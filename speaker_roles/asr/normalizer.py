from __future__ import annotations

"""
Normalize heterogeneous provider payloads into immutable engine units.

Design intent:
- Represent provider record shapes as an explicit tagged union instead of ad hoc field probing.
- Group word/token level records into per-speaker runs so each unit reads like an utterance.
- Never fail a batch because of one bad record: drop it, log it, count it.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Annotated, Any, Literal, Mapping, Sequence, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, TypeAdapter, ValidationError

from speaker_roles.asr.models import Unit

logger = logging.getLogger(__name__)

DEFAULT_FINAL_CONFIDENCE = 0.9
DEFAULT_INTERIM_CONFIDENCE = 0.7

_DURATION_STR_RE = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*s?\s*$")
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")
_SPEAKER_PREFIX_RE = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9 _-]{0,31})\s*:\s*(.+)$")

RecordKind = Literal["utterance", "word", "token"]


def _coerce_speaker(value: Any) -> Any:
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return str(int(value)) if float(value).is_integer() else str(value)
    if isinstance(value, str):
        return value.strip()
    return value


SpeakerKey = Annotated[str, BeforeValidator(_coerce_speaker), Field(min_length=1)]


class UtteranceRecord(BaseModel):
    """Utterance-level record: `{speaker, text, start, end, confidence?}` with ms timestamps."""

    model_config = ConfigDict(extra="ignore")

    kind: Literal["utterance"] = "utterance"
    speaker: SpeakerKey
    text: str
    start: float | None = None
    end: float | None = None
    confidence: float | None = None
    language: str | None = None


class WordRecord(BaseModel):
    """Word-level record: `{word, speakerTag, startTime, endTime}`; times are durations in seconds."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    kind: Literal["word"] = "word"
    word: str
    speaker_tag: SpeakerKey = Field(alias="speakerTag")
    start_time: Any = Field(default=None, alias="startTime")
    end_time: Any = Field(default=None, alias="endTime")
    confidence: float | None = None


class TokenRecord(BaseModel):
    """Sub-word token record with ms timestamps; `text` carries its own leading spacing."""

    model_config = ConfigDict(extra="ignore")

    kind: Literal["token"] = "token"
    text: str = Field(min_length=1)
    speaker: SpeakerKey
    start_ms: float | None = None
    end_ms: float | None = None
    confidence: float | None = None
    is_final: bool | None = None
    language: str | None = None


ProviderRecord = Annotated[
    Union[UtteranceRecord, WordRecord, TokenRecord],
    Field(discriminator="kind"),
]
_RECORD_ADAPTER: TypeAdapter[Any] = TypeAdapter(ProviderRecord)


@dataclass(frozen=True)
class NormalizedBatch:
    units: list[Unit]
    dropped: int
    kinds: dict[str, int] = field(default_factory=dict)


def detect_record_kind(raw: Mapping[str, Any]) -> RecordKind | None:
    explicit = str(raw.get("kind", "") or "").strip().lower()
    if explicit in {"utterance", "word", "token"}:
        return explicit  # type: ignore[return-value]
    if "word" in raw and ("speakerTag" in raw or "speaker_tag" in raw):
        return "word"
    if "start_ms" in raw or "end_ms" in raw:
        return "token"
    if "speaker" in raw and "text" in raw:
        return "utterance"
    return None


def parse_record(raw: Any) -> UtteranceRecord | WordRecord | TokenRecord | None:
    if not isinstance(raw, Mapping):
        logger.warning("normalizer_drop reason=not_a_mapping type=%s", type(raw).__name__)
        return None
    kind = detect_record_kind(raw)
    if kind is None:
        logger.warning("normalizer_drop reason=unknown_shape keys=%s", sorted(str(k) for k in raw.keys())[:8])
        return None
    try:
        return _RECORD_ADAPTER.validate_python({**raw, "kind": kind})
    except ValidationError as exc:
        logger.warning("normalizer_drop reason=invalid_%s errors=%s", kind, exc.error_count())
        return None


def parse_duration_ms(value: Any) -> float | None:
    """Convert a provider duration (seconds number, `"1.5s"`, or `{seconds, nanos}`) to ms."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) * 1000.0
    if isinstance(value, str):
        match = _DURATION_STR_RE.match(value)
        if not match:
            return None
        return float(match.group(1)) * 1000.0
    if isinstance(value, Mapping):
        try:
            seconds = float(value.get("seconds", 0) or 0)
            nanos = float(value.get("nanos", 0) or 0)
        except (TypeError, ValueError):
            return None
        return seconds * 1000.0 + nanos / 1_000_000.0
    return None


@dataclass
class _Pending:
    speaker_id: str
    kind: RecordKind
    is_final: bool
    texts: list[str]
    starts: list[float]
    ends: list[float]
    confidences: list[float]
    language: str | None


def _finite_or_none(value: float | None) -> float | None:
    if value is None or not math.isfinite(float(value)):
        return None
    return float(value)


def _clamp_confidence(value: float | None, default: float) -> float:
    if value is None or not math.isfinite(float(value)):
        return default
    return max(0.0, min(1.0, float(value)))


def _window(start_ms: float | None, end_ms: float | None) -> tuple[float | None, float | None]:
    start = _finite_or_none(start_ms)
    end = _finite_or_none(end_ms)
    start = None if start is None else max(0.0, start)
    end = None if end is None else max(0.0, end)
    if start is not None and end is not None and end < start:
        end = start
    return start, end


def _build_unit(
    *,
    speaker_id: str,
    text: str,
    start_ms: float | None,
    end_ms: float | None,
    confidence: float,
    is_final: bool,
    language: str | None,
) -> Unit | None:
    start, end = _window(start_ms, end_ms)
    try:
        return Unit(
            speaker_id=speaker_id,
            text=text,
            start_ms=start,
            end_ms=end,
            confidence=confidence,
            is_final=is_final,
            language=language,
        )
    except ValidationError as exc:
        logger.warning("normalizer_drop reason=invalid_unit speaker_id=%s errors=%s", speaker_id, exc.error_count())
        return None


def _flush(pending: _Pending) -> Unit | None:
    joiner = " " if pending.kind == "word" else ""
    text = joiner.join(pending.texts).strip()
    if pending.kind == "word":
        text = " ".join(text.split())
    if not text:
        return None
    return _build_unit(
        speaker_id=pending.speaker_id,
        text=text,
        start_ms=min(pending.starts) if pending.starts else None,
        end_ms=max(pending.ends) if pending.ends else None,
        confidence=sum(pending.confidences) / len(pending.confidences),
        is_final=pending.is_final,
        language=pending.language,
    )


def normalize_batch(
    records: Sequence[Any],
    *,
    is_final: bool,
    language_code: str | None = None,
    group_tokens: bool = True,
    default_final_confidence: float = DEFAULT_FINAL_CONFIDENCE,
    default_interim_confidence: float = DEFAULT_INTERIM_CONFIDENCE,
) -> NormalizedBatch:
    """
    Convert one provider batch into units, preserving arrival order.

    Word and token records are merged into consecutive same-speaker runs when `group_tokens`
    is set. A token's own `is_final` flag wins over the batch flag.
    """
    units: list[Unit] = []
    kinds: dict[str, int] = {}
    dropped = 0
    pending: _Pending | None = None

    def emit_pending() -> None:
        nonlocal pending, dropped
        if pending is None:
            return
        unit = _flush(pending)
        if unit is None:
            dropped += 1
        else:
            units.append(unit)
        pending = None

    for raw in records or []:
        record = parse_record(raw)
        if record is None:
            dropped += 1
            continue
        kinds[record.kind] = kinds.get(record.kind, 0) + 1

        if isinstance(record, UtteranceRecord):
            emit_pending()
            text = " ".join(record.text.split())
            if not text:
                logger.warning("normalizer_drop reason=empty_text speaker_id=%s", record.speaker)
                dropped += 1
                continue
            default_conf = default_final_confidence if is_final else default_interim_confidence
            unit = _build_unit(
                speaker_id=record.speaker,
                text=text,
                start_ms=record.start,
                end_ms=record.end,
                confidence=_clamp_confidence(record.confidence, default_conf),
                is_final=is_final,
                language=record.language or language_code,
            )
            if unit is None:
                dropped += 1
            else:
                units.append(unit)
            continue

        if isinstance(record, WordRecord):
            speaker_id = record.speaker_tag
            piece = record.word
            start_ms = parse_duration_ms(record.start_time)
            end_ms = parse_duration_ms(record.end_time)
            unit_final = is_final
            language = language_code
        else:
            speaker_id = record.speaker
            piece = record.text
            start_ms = record.start_ms
            end_ms = record.end_ms
            unit_final = is_final if record.is_final is None else bool(record.is_final)
            language = record.language or language_code

        default_conf = default_final_confidence if unit_final else default_interim_confidence
        confidence = _clamp_confidence(record.confidence, default_conf)

        same_run = (
            group_tokens
            and pending is not None
            and pending.speaker_id == speaker_id
            and pending.kind == record.kind
            and pending.is_final == unit_final
        )
        if same_run and pending is not None:
            run = pending
        else:
            emit_pending()
            run = _Pending(
                speaker_id=speaker_id,
                kind=record.kind,
                is_final=unit_final,
                texts=[],
                starts=[],
                ends=[],
                confidences=[],
                language=language,
            )
            pending = run
        run.texts.append(piece)
        run.confidences.append(confidence)
        if start_ms is not None:
            run.starts.append(start_ms)
        if end_ms is not None:
            run.ends.append(end_ms)
        if run.language is None and language:
            run.language = language
        if not group_tokens:
            emit_pending()

    emit_pending()
    if dropped:
        logger.warning("normalizer_batch dropped=%s kept=%s is_final=%s", dropped, len(units), is_final)
    return NormalizedBatch(units=units, dropped=dropped, kinds=kinds)


def speaker_from_prefix(text: str) -> tuple[str | None, str]:
    match = _SPEAKER_PREFIX_RE.match((text or "").strip())
    if not match:
        return None, (text or "").strip()
    label = match.group(1).strip()
    if label.lower().startswith("speaker "):
        label = label[len("speaker ") :].strip()
    return (label or None), match.group(2).strip()


def records_from_transcript_text(
    transcript_text: str,
    *,
    start_at_ms: float = 0.0,
) -> list[dict[str, Any]]:
    """
    Build utterance records from `Speaker: text` lines with synthetic timing.

    Lines without a speaker prefix continue the previous speaker. Durations are estimated
    from word count so duration shares stay comparable to real ASR output.
    """
    source = (transcript_text or "").strip()
    if not source:
        return []

    records: list[dict[str, Any]] = []
    cursor = float(max(0.0, start_at_ms))
    current_speaker: str | None = None

    for line in source.splitlines():
        speaker, content = speaker_from_prefix(line)
        if speaker is not None:
            current_speaker = speaker
        if current_speaker is None or not content:
            continue
        for sentence in (item.strip() for item in _SENTENCE_SPLIT_RE.split(content)):
            if not sentence:
                continue
            word_count = len([token for token in sentence.split() if token])
            duration = max(1000.0, min(word_count * 330.0, 5200.0))
            t0 = round(cursor, 1)
            t1 = round(cursor + duration, 1)
            cursor = t1 + 200.0
            records.append({"speaker": current_speaker, "text": sentence, "start": t0, "end": t1})

    return records
