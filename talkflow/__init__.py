"""
TalkFlow dictation package.

Design intent:
- Keep capability interfaces (capture/credentials/transcription) in internal_core.
- Keep domain modules (audio/history/dictionary/dictation) independent of the API.
- Ship deterministic test doubles next to each real implementation.
"""
