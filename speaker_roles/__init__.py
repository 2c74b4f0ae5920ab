"""
Speaker-role attribution backend package.

Design intent:
- Turn speaker-tagged ASR output into Doctor/Patient labelled transcript segments.
- Keep the role engine (asr/) independent from transport and storage concerns.
"""
