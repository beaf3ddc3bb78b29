"""
Synthetic guitar-like signals for demos and tests.

We simulate a plucked string by stacking harmonics on a fundamental:
  1. A fundamental frequency (the note's pitch)
  2. Harmonics (integer multiples of the fundamental, each quieter than the
     last; this is what gives a string its timbre)
  3. Gaussian noise (simulates a real room and microphone)

ToneSource wraps this as a frame source so a TuningSession can be driven
without a microphone: a run of noise-only frames first (for noise-profile
learning), then the tone.
"""

import numpy as np

from guitartuner.config import FRAME_SIZE, SAMPLE_RATE


def generate_harmonic_tone(f0, n_samples, sr=SAMPLE_RATE, n_harmonics=5, amplitude=0.5,
                           noise_level=0.0, start=0, rng=None):
    """
    Generate samples of a plucked-string-like tone.

    Args:
        f0: Fundamental frequency in Hz
        n_samples: Number of samples to generate
        sr: Sample rate
        n_harmonics: Number of partials including the fundamental.
                     1 gives a pure sine.
        amplitude: Peak amplitude after normalization
        noise_level: Standard deviation of added gaussian noise
        start: Index of the first sample, so consecutive calls continue the
               same waveform without a phase jump
        rng: numpy Generator for the noise

    Returns:
        float32 numpy array of length n_samples
    """
    t = (np.arange(n_samples) + start) / sr
    signal = np.zeros(n_samples)

    # Each harmonic is softer: 1, 1/2, 1/3, ...
    for h in range(1, n_harmonics + 1):
        signal += np.sin(2 * np.pi * f0 * h * t) / h

    # Normalize by the theoretical peak so every chunk gets the same scale
    signal *= amplitude / sum(1.0 / h for h in range(1, n_harmonics + 1))

    if noise_level > 0:
        rng = rng if rng is not None else np.random.default_rng()
        signal += noise_level * rng.standard_normal(n_samples)

    return signal.astype(np.float32)


def noise_frame(n_samples=FRAME_SIZE, noise_level=0.003, rng=None):
    rng = rng if rng is not None else np.random.default_rng()
    return (noise_level * rng.standard_normal(n_samples)).astype(np.float32)


class ToneSource:
    """
    Frame source that plays background noise, then a steady tone.

    Args:
        f0: Tone frequency in Hz
        lead_in: Number of noise-only frames before the tone starts
        noise_level: Background noise standard deviation (present throughout)
        seed: Seed for the noise generator
    """

    def __init__(self, f0, frame_size=FRAME_SIZE, sample_rate=SAMPLE_RATE, lead_in=20,
                 n_harmonics=5, amplitude=0.5, noise_level=0.003, seed=None):
        self.f0 = f0
        self.frame_size = frame_size
        self.sample_rate = sample_rate
        self.lead_in = lead_in
        self.n_harmonics = n_harmonics
        self.amplitude = amplitude
        self.noise_level = noise_level
        self.seed = seed
        self._rng = None
        self._frames = 0

    def open(self):
        self._rng = np.random.default_rng(self.seed)
        self._frames = 0

    def get_next_frame(self):
        if self._frames < self.lead_in:
            frame = noise_frame(self.frame_size, self.noise_level, rng=self._rng)
        else:
            start = (self._frames - self.lead_in) * self.frame_size
            frame = generate_harmonic_tone(
                self.f0,
                self.frame_size,
                sr=self.sample_rate,
                n_harmonics=self.n_harmonics,
                amplitude=self.amplitude,
                noise_level=self.noise_level,
                start=start,
                rng=self._rng,
            )
        self._frames += 1
        return frame, self.sample_rate

    def close(self):
        self._rng = None
