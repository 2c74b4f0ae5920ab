from __future__ import annotations

"""
Batch pipeline: normalize -> accumulate -> score -> build segments.

Design intent:
- One call processes one provider batch to completion under the session lock.
- Role mapping is recomputed from the full feature snapshot whenever final evidence arrives.
- Degrade instead of raising: malformed records are dropped, unusable profiles fall back to ranking.
"""

import logging
from dataclasses import dataclass
from typing import Any, Sequence

from speaker_roles.asr.models import RoleAssignment, Segment, Unit
from speaker_roles.asr.normalizer import normalize_batch
from speaker_roles.asr.role_mapping import assign_roles, single_speaker_assignment
from speaker_roles.asr.segments import TimelineUpdate, role_resolver
from speaker_roles.asr.session import RoleSession
from speaker_roles.asr.voice_profile import match_voice_profile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchResult:
    session_id: str
    is_final: bool
    units: list[Unit]
    units_folded: int
    dropped: int
    assignment: RoleAssignment
    roles_changed: bool
    profile_fallback: bool
    update: TimelineUpdate

    @property
    def segments(self) -> list[Segment]:
        return self.update.all_segments


def compute_assignment(session: RoleSession) -> tuple[RoleAssignment, bool]:
    """
    Fresh role assignment from the session's accumulated features.

    Returns `(assignment, profile_fallback)`; the flag is set when a voice profile was supplied
    but carried no characteristics, so relative ranking was used instead.
    """
    snapshot = session.features.snapshot()
    if session.single_speaker:
        return single_speaker_assignment(snapshot), False

    if session.voice_profile is not None:
        matched = match_voice_profile(session.voice_profile, snapshot)
        if matched is not None:
            return matched, False
        if snapshot:
            logger.warning(
                "voice_profile_fallback session_id=%s profile_id=%s reason=missing_characteristics",
                session.session_id,
                session.voice_profile.profile_id,
            )
        return assign_roles(snapshot, weights=session.options.weights), bool(snapshot)

    return assign_roles(snapshot, weights=session.options.weights), False


def process_units(session: RoleSession, units: Sequence[Unit], *, is_final: bool, dropped: int = 0) -> BatchResult:
    with session.lock:
        previous = session.assignment
        folded = session.features.update(units)
        profile_fallback = False
        if folded or session.assignment.method == "empty":
            session.assignment, profile_fallback = compute_assignment(session)

        assignment = session.assignment
        # A speaker joining is not a flip; only roles held before this batch count.
        roles_changed = any(
            assignment.roles.get(speaker_id) != role for speaker_id, role in previous.roles.items()
        )
        if roles_changed:
            logger.info(
                "role_assignment_changed session_id=%s method=%s before=%s after=%s",
                session.session_id,
                assignment.method,
                previous.roles,
                assignment.roles,
            )

        resolve = role_resolver(assignment, lead_role=session.lead_role)
        update = session.timeline.apply(units, resolve, is_final=is_final)
        session.batches_processed += 1
        session.units_dropped += dropped

    return BatchResult(
        session_id=session.session_id,
        is_final=is_final,
        units=list(units),
        units_folded=folded,
        dropped=dropped,
        assignment=assignment,
        roles_changed=roles_changed,
        profile_fallback=profile_fallback,
        update=update,
    )


def process_batch(
    session: RoleSession,
    records: Sequence[Any],
    *,
    is_final: bool,
    language_code: str | None = None,
) -> BatchResult:
    """Normalize one provider batch and run it through the session's pipeline."""
    options = session.options
    normalized = normalize_batch(
        records,
        is_final=is_final,
        language_code=language_code or session.language_code,
        group_tokens=options.group_tokens,
        default_final_confidence=options.default_final_confidence,
        default_interim_confidence=options.default_interim_confidence,
    )
    return process_units(session, normalized.units, is_final=is_final, dropped=normalized.dropped)


def current_segments(session: RoleSession, *, relabel: bool = False) -> list[Segment]:
    with session.lock:
        if not relabel:
            return session.timeline.segments()
        resolve = role_resolver(session.assignment, lead_role=session.lead_role)
        return session.timeline.relabel(resolve)


def current_assignment(session: RoleSession) -> RoleAssignment:
    with session.lock:
        return session.assignment
