"""
API orchestration boundary for the role attribution backend.

Design intent:
- Expose thin, typed endpoints over session-scoped role attribution.
- Keep request validation explicit and failure modes predictable.
- Own the session and voice-profile tables; the engine only receives explicit state.
"""
