from __future__ import annotations

"""
Render role-labelled segments as plain transcript lines.

Design intent:
- Keep UI and export-facing transcript deterministic.
- Roles are already resolved upstream; this module only shapes text.
- Mark interim lines so readers can tell provisional speech from committed speech.
"""

import re
from typing import Sequence

from speaker_roles.asr.models import Segment

INTERIM_MARKER = " ..."

_SENTENCE_BOUNDARY_RE = re.compile(r"(?<=[.!?])\s+")


def _display_sentences(text: str, *, split_sentences: bool) -> list[str]:
    collapsed = " ".join(text.split())
    if not collapsed:
        return []
    parts = _SENTENCE_BOUNDARY_RE.split(collapsed) if split_sentences else [collapsed]
    sentences: list[str] = []
    for part in parts:
        part = part.strip()
        if not part:
            continue
        sentences.append(part if part[-1] in ".!?" else f"{part}.")
    return sentences


def _clock(start_ms: float | None) -> str:
    if start_ms is None:
        return "[--:--] "
    total_seconds = int(start_ms // 1000)
    return f"[{total_seconds // 60:02d}:{total_seconds % 60:02d}] "


def format_for_display(
    segments: Sequence[Segment],
    *,
    split_sentences: bool = True,
    include_interim: bool = True,
    with_timestamps: bool = False,
) -> str:
    """One `Role: sentence.` line per sentence; interim lines end with the interim marker."""
    lines: list[str] = []
    for segment in segments:
        if not segment.is_final and not include_interim:
            continue
        prefix = _clock(segment.start_ms) if with_timestamps else ""
        suffix = "" if segment.is_final else INTERIM_MARKER
        for sentence in _display_sentences(segment.text, split_sentences=split_sentences):
            lines.append(f"{prefix}{segment.role}: {sentence}{suffix}")
    return "\n".join(lines)
