"""
Local HTTP boundary for TalkFlow.

Design intent:
- Expose dictation, history, dictionary and credential flows to local clients.
- Keep handlers thin and resolve every collaborator from app state.
- Map domain error codes to predictable HTTP statuses.
"""
