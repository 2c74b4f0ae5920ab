from __future__ import annotations

"""
Maintain a session-scoped display timeline of role-labelled segments.

Design intent:
- Final segments are appended once, in arrival order, and never edited or removed.
- Interim segments are a wholesale replacement of "what might currently be being said".
- Every update returns the full segment list so consumers can re-render without diffing.
"""

from dataclasses import dataclass
from typing import Callable, Sequence

from speaker_roles.asr.models import ROLE_DOCTOR, RoleAssignment, Segment, Unit
from speaker_roles.asr.role_mapping import resolve_role


@dataclass(frozen=True)
class TimelineUpdate:
    new_final_segments: list[Segment]
    interim_segments: list[Segment]
    all_segments: list[Segment]
    interim_replaced: int


def _merge_start(current: float | None, incoming: float | None) -> float | None:
    if current is None:
        return incoming
    if incoming is None:
        return current
    return min(current, incoming)


def _merge_end(current: float | None, incoming: float | None) -> float | None:
    if current is None:
        return incoming
    if incoming is None:
        return current
    return max(current, incoming)


def coalesce_units(units: Sequence[Unit], resolve: Callable[[str], str]) -> list[Segment]:
    """Merge consecutive units that resolve to the same role into one segment."""
    segments: list[Segment] = []
    role: str | None = None
    texts: list[str] = []
    confidences: list[float] = []
    speaker_ids: list[str] = []
    start_ms: float | None = None
    end_ms: float | None = None
    is_final = True

    def flush() -> None:
        if role is None or not texts:
            return
        segments.append(
            Segment(
                role=role,
                text=" ".join(texts),
                start_ms=start_ms,
                end_ms=end_ms,
                is_final=is_final,
                confidence=round(sum(confidences) / len(confidences), 6),
                speaker_ids=list(speaker_ids),
            )
        )

    for unit in units:
        text = unit.text.strip()
        if not text:
            continue
        unit_role = resolve(unit.speaker_id)
        if unit_role != role or unit.is_final != is_final:
            flush()
            role = unit_role
            texts = []
            confidences = []
            speaker_ids = []
            start_ms = None
            end_ms = None
            is_final = unit.is_final
        texts.append(text)
        confidences.append(unit.confidence)
        if unit.speaker_id not in speaker_ids:
            speaker_ids.append(unit.speaker_id)
        start_ms = _merge_start(start_ms, unit.start_ms)
        end_ms = _merge_end(end_ms, unit.end_ms)

    flush()
    return segments


def role_resolver(assignment: RoleAssignment, *, lead_role: str = ROLE_DOCTOR) -> Callable[[str], str]:
    """Resolver bound to one assignment; provisional labels stay consistent within one render."""
    pending: dict[str, str] = {}

    def resolve(speaker_id: str) -> str:
        role = resolve_role(assignment, speaker_id, pending=pending, lead_role=lead_role)
        if assignment.role_for(speaker_id) is None:
            pending[speaker_id] = role
        return role

    return resolve


class SegmentTimeline:
    def __init__(self) -> None:
        self._final: list[Segment] = []
        self._final_units: list[list[Unit]] = []
        self._interim: list[Segment] = []

    def clear(self) -> None:
        self._final = []
        self._final_units = []
        self._interim = []

    @property
    def final_segments(self) -> list[Segment]:
        return list(self._final)

    @property
    def interim_segments(self) -> list[Segment]:
        return list(self._interim)

    def segments(self) -> list[Segment]:
        return [*self._final, *self._interim]

    def commit_final(self, units: Sequence[Unit], resolve: Callable[[str], str]) -> list[Segment]:
        """Drop every interim segment, then append the coalesced final units permanently."""
        self._interim = []
        finals = [unit for unit in units if unit.is_final]
        new_segments = coalesce_units(finals, resolve)
        self._final.extend(new_segments)
        if finals:
            self._final_units.append(finals)
        return new_segments

    def replace_interim(self, units: Sequence[Unit], resolve: Callable[[str], str]) -> int:
        """Replace the trailing interim run entirely. Returns how many interim segments were discarded."""
        discarded = len(self._interim)
        interim = [unit for unit in units if not unit.is_final]
        self._interim = coalesce_units(interim, resolve)
        return discarded

    def apply(
        self,
        units: Sequence[Unit],
        resolve: Callable[[str], str],
        *,
        is_final: bool,
    ) -> TimelineUpdate:
        """
        Apply one batch: final units are committed, interim units replace the live tail.

        A final batch always clears the interim tail, even when it carries no interim units.
        An interim batch always replaces it, even with nothing (speech ended without a final).
        """
        final_units = [unit for unit in units if unit.is_final]
        interim_units = [unit for unit in units if not unit.is_final]

        new_final: list[Segment] = []
        replaced = 0
        if final_units or is_final:
            replaced = len(self._interim)
            new_final = self.commit_final(final_units, resolve)
        if interim_units or not is_final:
            replaced += self.replace_interim(interim_units, resolve)

        return TimelineUpdate(
            new_final_segments=new_final,
            interim_segments=list(self._interim),
            all_segments=self.segments(),
            interim_replaced=replaced,
        )

    def relabel(self, resolve: Callable[[str], str]) -> list[Segment]:
        """
        Re-render every committed final batch with a newer role mapping.

        Stored final segments are untouched; this is a read-only view.
        """
        relabelled: list[Segment] = []
        for batch in self._final_units:
            relabelled.extend(coalesce_units(batch, resolve))
        return [*relabelled, *self._interim]
