"""
Dictation orchestration boundary for TalkFlow.

Design intent:
- Drive capture, processing, transcription, output and history in order.
- Depend only on capability interfaces so mocks can stand in for devices.
- Turn every failure into an outcome instead of an exception at the edge.
"""

from .output import BufferTextOutput, TextOutput
from .pipeline import DictationOutcome, DictationPipeline

__all__ = ["BufferTextOutput", "DictationOutcome", "DictationPipeline", "TextOutput"]
