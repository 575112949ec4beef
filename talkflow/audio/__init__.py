"""
Audio processing boundary for TalkFlow.

Design intent:
- Turn raw capture snapshots into upload-ready speech-only audio.
- Keep gating and voice detection deterministic and free of device I/O.
- Report "no speech" as an empty result instead of an error.
"""

from .noise_gate import NoiseGate
from .processor import AudioProcessor
from .vad import SpeechSegment, VoiceActivityDetector

__all__ = ["AudioProcessor", "NoiseGate", "SpeechSegment", "VoiceActivityDetector"]
