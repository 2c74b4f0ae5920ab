"""
Role attribution engine boundary.

Design intent:
- Normalize provider-shaped transcription payloads into one unit type.
- Accumulate per-speaker evidence from final units only and re-rank speakers on every update.
- Emit display segments that are safe to re-render wholesale.
"""
