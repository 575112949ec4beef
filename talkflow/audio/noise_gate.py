from __future__ import annotations

import math

import numpy as np

# Keeps the gain finite when the threshold is extremely low.
_MIN_THRESHOLD_LINEAR = 1e-5


class NoiseGate:
    """Envelope-following gate that attenuates audio below a dB threshold.

    The envelope rises with the attack time constant and decays with the
    release one. While it sits below the threshold each sample is scaled by
    ``envelope / threshold``, so quiet passages fade rather than cut.
    The envelope carries across ``process`` calls until ``reset``.
    """

    def __init__(
        self,
        threshold_db: float = -50.0,
        attack_ms: float = 5.0,
        release_ms: float = 50.0,
        sample_rate: float = 44100.0,
    ):
        self.threshold_db = float(threshold_db)
        self.attack_ms = float(attack_ms)
        self.release_ms = float(release_ms)
        self.sample_rate = float(sample_rate)
        self._envelope = 0.0

    @property
    def envelope(self) -> float:
        return self._envelope

    def process(self, samples: np.ndarray) -> np.ndarray:
        audio = np.asarray(samples, dtype=np.float32)
        if audio.size == 0:
            return audio.copy()

        attack = math.exp(-1.0 / (self.attack_ms * self.sample_rate / 1000.0))
        release = math.exp(-1.0 / (self.release_ms * self.sample_rate / 1000.0))
        threshold = 10.0 ** (self.threshold_db / 20.0)
        divisor = max(threshold, _MIN_THRESHOLD_LINEAR)

        out = audio.tolist()
        envelope = self._envelope
        for i, value in enumerate(out):
            level = abs(value)
            if level > envelope:
                envelope = attack * envelope + (1.0 - attack) * level
            else:
                envelope = release * envelope + (1.0 - release) * level
            if envelope < threshold:
                out[i] = value * (envelope / divisor)
        self._envelope = envelope
        return np.asarray(out, dtype=np.float32)

    def reset(self) -> None:
        self._envelope = 0.0
