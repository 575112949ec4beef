from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List

import numpy as np

logger = logging.getLogger(__name__)

# Silence between speech frames shorter than this is treated as speech.
MAX_GAP_MS = 100.0


@dataclass(frozen=True)
class SpeechSegment:
    start_sample: int
    end_sample: int

    @property
    def length(self) -> int:
        return self.end_sample - self.start_sample


def _filter_short_runs(frames: List[bool], min_length: int) -> List[bool]:
    result = list(frames)
    i = 0
    n = len(frames)
    while i < n:
        if not frames[i]:
            i += 1
            continue
        j = i
        while j < n and frames[j]:
            j += 1
        if j - i < min_length:
            for k in range(i, j):
                result[k] = False
        i = j
    return result


def _fill_small_gaps(frames: List[bool], max_gap: int) -> List[bool]:
    result = list(frames)
    i = 0
    n = len(frames)
    while i < n:
        if frames[i]:
            i += 1
            continue
        j = i
        while j < n and not frames[j]:
            j += 1
        if j - i <= max_gap and i > 0 and j < n and frames[i - 1] and frames[j]:
            for k in range(i, j):
                result[k] = True
        i = j
    return result


def _merge_overlapping(segments: List[SpeechSegment]) -> List[SpeechSegment]:
    if not segments:
        return []
    merged: List[SpeechSegment] = []
    current = segments[0]
    for nxt in segments[1:]:
        if nxt.start_sample <= current.end_sample:
            current = SpeechSegment(current.start_sample, max(current.end_sample, nxt.end_sample))
        else:
            merged.append(current)
            current = nxt
    merged.append(current)
    return merged


class VoiceActivityDetector:
    """Frame-energy voice activity detection.

    Frames of ``frame_size`` samples are taken every ``hop_size`` samples and
    marked as speech when their RMS level exceeds ``silence_threshold_db``.
    Runs shorter than ``min_speech_duration_ms`` are discarded, gaps up to
    100 ms between speech are bridged, and every segment is widened by
    ``padding_ms`` on both sides before overlapping segments are merged.
    """

    def __init__(
        self,
        sample_rate: float = 44100.0,
        frame_size: int = 2048,
        hop_size: int = 512,
        silence_threshold_db: float = -40.0,
        min_speech_duration_ms: float = 100.0,
        padding_ms: float = 200.0,
    ):
        self.sample_rate = float(sample_rate)
        self.frame_size = int(frame_size)
        self.hop_size = int(hop_size)
        self.silence_threshold_db = float(silence_threshold_db)
        self.min_speech_duration_ms = float(min_speech_duration_ms)
        self.padding_ms = float(padding_ms)

    def frame_energies_db(self, samples: np.ndarray) -> np.ndarray:
        audio = np.asarray(samples, dtype=np.float32)
        if audio.size < self.frame_size:
            return np.zeros(0, dtype=np.float32)
        frames = np.lib.stride_tricks.sliding_window_view(audio, self.frame_size)[:: self.hop_size]
        rms = np.sqrt(np.mean(frames.astype(np.float64) ** 2, axis=1))
        return (20.0 * np.log10(np.maximum(rms, 1e-10))).astype(np.float32)

    def detect_speech_segments(self, samples: np.ndarray) -> List[SpeechSegment]:
        audio = np.asarray(samples, dtype=np.float32)
        if audio.size == 0:
            return []

        energies = self.frame_energies_db(audio)
        speech = [bool(e > self.silence_threshold_db) for e in energies]

        min_frames = int((self.min_speech_duration_ms / 1000.0) * self.sample_rate / self.hop_size)
        speech = _filter_short_runs(speech, min_frames)

        max_gap_frames = int((MAX_GAP_MS / 1000.0) * self.sample_rate / self.hop_size)
        speech = _fill_small_gaps(speech, max_gap_frames)

        padding = int((self.padding_ms / 1000.0) * self.sample_rate)
        total = int(audio.size)
        segments: List[SpeechSegment] = []
        in_speech = False
        start = 0
        for index, is_speech in enumerate(speech):
            position = index * self.hop_size
            if is_speech and not in_speech:
                start = max(0, position - padding)
                in_speech = True
            elif not is_speech and in_speech:
                segments.append(SpeechSegment(start, min(total, position + padding)))
                in_speech = False
        if in_speech:
            segments.append(SpeechSegment(start, total))

        segments = _merge_overlapping(segments)
        logger.debug("VAD detected %d speech segments", len(segments))
        return segments

    def contains_speech(self, samples: np.ndarray) -> bool:
        return len(self.detect_speech_segments(samples)) > 0
