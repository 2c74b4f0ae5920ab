from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any

from speaker_roles.asr.formatting import format_for_display
from speaker_roles.asr.pipeline import current_segments, process_batch
from speaker_roles.asr.session import RoleSession
from speaker_roles.asr.voice_profile import VoiceProfile
from speaker_roles.internal_core.config import load_config


def load_batches(path: Path) -> list[dict[str, Any]]:
    """
    Accept `{"batches": [{is_final, records}, ...]}`, `{"utterances": [...]}`, or a bare record list.

    Bare lists and `utterances` payloads are replayed as one final batch.
    """
    payload = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(payload, list):
        return [{"is_final": True, "records": payload}]
    if not isinstance(payload, dict):
        raise SystemExit(f"unsupported payload type: {type(payload).__name__}")
    if isinstance(payload.get("batches"), list):
        batches: list[dict[str, Any]] = []
        for item in payload["batches"]:
            if not isinstance(item, dict):
                continue
            batches.append(
                {
                    "is_final": bool(item.get("is_final", item.get("isFinal", True))),
                    "records": list(item.get("records") or item.get("words") or item.get("tokens") or []),
                    "language_code": item.get("language_code"),
                }
            )
        return batches
    for key in ("utterances", "words", "tokens"):
        if isinstance(payload.get(key), list):
            return [{"is_final": True, "records": payload[key]}]
    raise SystemExit("payload has no batches/utterances/words/tokens list")


def load_profile(path: Path) -> VoiceProfile:
    raw = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(raw, dict) and isinstance(raw.get("profile"), dict):
        raw = raw["profile"]
    return VoiceProfile.model_validate(raw)


def replay(
    batches: list[dict[str, Any]],
    *,
    speakers_expected: int | None = None,
    profile: VoiceProfile | None = None,
) -> RoleSession:
    config = load_config()
    session = RoleSession(
        session_id="replay",
        speakers_expected=speakers_expected,
        voice_profile=profile,
        options=config.engine_options(),
    )
    for batch in batches:
        process_batch(
            session,
            batch["records"],
            is_final=batch["is_final"],
            language_code=batch.get("language_code"),
        )
    return session


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Replay recorded transcription batches and print the role-labelled transcript."
    )
    parser.add_argument("--input", required=True, help="Path to a JSON conversation/batch file.")
    parser.add_argument("--profile", default="", help="Optional enrolled voice profile JSON.")
    parser.add_argument(
        "--speakers-expected",
        type=int,
        default=None,
        help="Force single-speaker mode with 1 (every unit resolves to Doctor).",
    )
    parser.add_argument(
        "--show-scores",
        action="store_true",
        help="Print per-speaker scores and accumulated features after the transcript.",
    )
    parser.add_argument("--timestamps", action="store_true", help="Prefix each line with its [mm:ss] start time.")
    parser.add_argument(
        "--relabel",
        action="store_true",
        help="Render final segments with the latest role mapping instead of their emitted roles.",
    )
    args = parser.parse_args()

    logging.basicConfig(level=load_config().SCRIBE_LOG_LEVEL.upper())

    path = Path(args.input).expanduser()
    if not path.exists():
        raise SystemExit(f"input file not found: {path}")
    profile = None
    if args.profile:
        profile_path = Path(args.profile).expanduser()
        if not profile_path.exists():
            raise SystemExit(f"profile file not found: {profile_path}")
        profile = load_profile(profile_path)

    session = replay(load_batches(path), speakers_expected=args.speakers_expected, profile=profile)
    segments = current_segments(session, relabel=args.relabel)
    print(format_for_display(segments, with_timestamps=args.timestamps) or "(no segments)")

    if args.show_scores:
        print("")
        print(f"method: {session.assignment.method}")
        lead_speaker = session.assignment.speaker_for(session.lead_role) or "(none)"
        print(f"lead: {session.lead_role} -> speaker {lead_speaker}")
        for speaker_id, role in session.assignment.roles.items():
            score = session.assignment.scores.get(speaker_id)
            score_text = "n/a" if score is None else f"{score:.3f}"
            print(f"speaker {speaker_id} -> {role} (score={score_text})")
        for item in session.features.snapshot().values():
            print(f"  {json.dumps(item.as_dict(), sort_keys=True)}")


if __name__ == "__main__":
    main()
