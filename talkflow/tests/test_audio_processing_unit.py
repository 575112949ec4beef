import io
import wave

import numpy as np

from talkflow.audio import AudioProcessor, NoiseGate, VoiceActivityDetector
from talkflow.internal_core.audio_utils import float32_to_pcm16, load_wav_pcm16
from talkflow.internal_core.config import ConfigurationManager
from talkflow.internal_core.contracts import CapturedAudio

SR = 44100


def _tone(seconds: float, amplitude: float = 0.5, freq: float = 440.0) -> np.ndarray:
    t = np.arange(int(seconds * SR), dtype=np.float32) / SR
    return (amplitude * np.sin(2 * np.pi * freq * t)).astype(np.float32)


def _silence(seconds: float) -> np.ndarray:
    return np.zeros(int(seconds * SR), dtype=np.float32)


def test_noise_gate_passes_loud_signal() -> None:
    signal = _tone(0.5)
    out = NoiseGate(threshold_db=-50.0, sample_rate=SR).process(signal)
    assert out.shape == signal.shape
    assert np.allclose(out[1000:], signal[1000:], atol=1e-6)


def test_noise_gate_attenuates_quiet_signal() -> None:
    signal = _tone(0.5, amplitude=1e-4)
    out = NoiseGate(threshold_db=-50.0, sample_rate=SR).process(signal)
    assert float(np.max(np.abs(out))) < float(np.max(np.abs(signal))) * 0.05


def test_noise_gate_keeps_silence_silent_and_resets() -> None:
    gate = NoiseGate(sample_rate=SR)
    assert np.all(gate.process(_silence(0.1)) == 0.0)

    gate.process(_tone(0.1))
    assert gate.envelope > 0.0
    gate.reset()
    assert gate.envelope == 0.0


def test_vad_finds_nothing_in_silence() -> None:
    vad = VoiceActivityDetector(sample_rate=SR)
    assert vad.detect_speech_segments(_silence(1.0)) == []
    assert vad.detect_speech_segments(np.zeros(0, dtype=np.float32)) == []
    assert vad.contains_speech(_silence(1.0)) is False


def test_vad_pads_single_speech_region() -> None:
    samples = np.concatenate([_silence(0.5), _tone(1.0), _silence(0.5)])
    tone_start, tone_end = int(0.5 * SR), int(1.5 * SR)
    padding = int(0.2 * SR)

    segments = VoiceActivityDetector(sample_rate=SR).detect_speech_segments(samples)

    assert len(segments) == 1
    seg = segments[0]
    assert tone_start - padding - 2048 <= seg.start_sample <= tone_start - padding
    assert tone_end + padding <= seg.end_sample <= tone_end + padding + 512


def test_vad_drops_bursts_shorter_than_minimum() -> None:
    samples = np.concatenate([_silence(1.0), _tone(1024 / SR), _silence(1.0)])
    vad = VoiceActivityDetector(sample_rate=SR)
    assert vad.detect_speech_segments(samples) == []
    assert vad.contains_speech(samples) is False


def test_vad_keeps_separate_regions_apart() -> None:
    samples = np.concatenate([_silence(0.2), _tone(0.4), _silence(1.0), _tone(0.4), _silence(0.5)])
    segments = VoiceActivityDetector(sample_rate=SR).detect_speech_segments(samples)
    assert len(segments) == 2
    assert segments[0].end_sample < segments[1].start_sample


def test_vad_merges_regions_joined_by_padding() -> None:
    samples = np.concatenate([_silence(0.3), _tone(0.4), _silence(0.25), _tone(0.4), _silence(0.5)])
    segments = VoiceActivityDetector(sample_rate=SR).detect_speech_segments(samples)
    assert len(segments) == 1


def test_vad_speech_running_to_end_ends_at_last_sample() -> None:
    samples = np.concatenate([_silence(0.5), _tone(0.5)])
    segments = VoiceActivityDetector(sample_rate=SR).detect_speech_segments(samples)
    assert len(segments) == 1
    assert segments[0].end_sample == samples.size


def _captured(samples: np.ndarray) -> CapturedAudio:
    return CapturedAudio(data=float32_to_pcm16(samples), sample_rate=float(SR))


def test_processor_returns_empty_for_no_audio() -> None:
    result = AudioProcessor(ConfigurationManager()).process(CapturedAudio.empty())
    assert result.is_empty
    assert result.audio_data == b""


def test_processor_returns_empty_for_silence() -> None:
    result = AudioProcessor(ConfigurationManager()).process(_captured(_silence(1.0)))
    assert result.is_empty


def test_processor_encodes_speech_as_wav() -> None:
    samples = np.concatenate([_silence(0.5), _tone(1.0), _silence(1.0)])
    result = AudioProcessor(ConfigurationManager()).process(_captured(samples))

    assert result.is_empty is False
    assert result.content_type == "audio/wav"
    assert result.audio_data[:4] == b"RIFF"
    with wave.open(io.BytesIO(result.audio_data), "rb") as wf:
        assert wf.getframerate() == SR
        assert wf.getnchannels() == 1
        assert 0 < wf.getnframes() < samples.size


def test_processor_bypass_keeps_everything() -> None:
    manager = ConfigurationManager()
    manager.update(bypass_audio_processing=True)
    samples = _silence(0.5)

    result = AudioProcessor(manager).process(_captured(samples))

    assert result.is_empty is False
    with wave.open(io.BytesIO(result.audio_data), "rb") as wf:
        assert wf.getnframes() == samples.size


def test_processor_writes_debug_stages(tmp_path) -> None:
    samples = np.concatenate([_silence(0.5), _tone(1.0), _silence(0.5)])
    AudioProcessor(ConfigurationManager(), debug_dir=tmp_path).process(_captured(samples))

    names = sorted(p.name.split("_", 1)[1] for p in tmp_path.glob("*.wav"))
    assert names == ["1_raw.wav", "2_after_noisegate.wav", "3_final_speech.wav"]

    raw = next(tmp_path.glob("*_1_raw.wav"))
    pcm, rate = load_wav_pcm16(raw)
    assert rate == SR
    assert len(pcm) == samples.size * 2
