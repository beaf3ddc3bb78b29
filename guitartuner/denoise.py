"""
Spectral-subtraction denoiser with a learned noise profile.

WHY DENOISE BEFORE YIN?
YIN looks for a repeating period in the waveform. Fan hum, room hiss and
mic self-noise add energy that does not repeat, which raises the normalized
difference at the true period and drags confidence below the acceptance
threshold. Subtracting a learned noise spectrum gives YIN a cleaner signal.

LIFECYCLE:
  1. Learning: the first NOISE_LEARN_FRAMES frames (taken before / between
     plucks) are windowed, transformed, and their magnitude spectra summed.
  2. Learned: the average becomes the noise profile. It never changes for
     the rest of the session; a new session learns a new one.
  3. Every later frame: subtract the profile from each bin's magnitude,
     keep the noisy phase, transform back.

Subtracting too hard zeroes bins at random and leaves isolated spikes
("musical noise"), so each bin keeps at least SPECTRAL_FLOOR of its input
magnitude and magnitudes are smoothed across frames.
"""

import logging

import numpy as np

from guitartuner.config import (
    FRAME_SIZE,
    NOISE_LEARN_FRAMES,
    OVERSUBTRACTION,
    SPECTRAL_FLOOR,
    SPECTRAL_SMOOTHING,
)
from guitartuner.fft import RadixTwoFFT

logger = logging.getLogger(__name__)


class SpectralDenoiser:
    def __init__(
        self,
        frame_size=FRAME_SIZE,
        learn_target=NOISE_LEARN_FRAMES,
        oversubtraction=OVERSUBTRACTION,
        spectral_floor=SPECTRAL_FLOOR,
        smoothing=SPECTRAL_SMOOTHING,
    ):
        self.frame_size = frame_size
        self.learn_target = learn_target
        self.oversubtraction = oversubtraction
        self.spectral_floor = spectral_floor
        self.smoothing = smoothing

        self._fft = RadixTwoFFT(frame_size)
        self._window = np.hanning(frame_size)
        self._n_bins = frame_size // 2 + 1

        self._accumulator = np.zeros(self._n_bins)
        self._frames_learned = 0
        self._noise_profile = None
        self._prev_magnitude = np.zeros(self._n_bins)

    @property
    def learned(self):
        return self._noise_profile is not None

    @property
    def frames_learned(self):
        return self._frames_learned

    @property
    def noise_profile(self):
        if self._noise_profile is None:
            return None
        profile = self._noise_profile.view()
        profile.flags.writeable = False
        return profile

    def _half_spectrum(self, frame):
        frame = np.asarray(frame, dtype=np.float64)
        if frame.shape != (self.frame_size,):
            raise ValueError(f"expected a frame of {self.frame_size} samples, got shape {frame.shape}")
        return self._fft.forward(frame * self._window)[: self._n_bins]

    def learn_frame(self, frame):
        """
        Add one frame to the noise estimate.

        Returns:
            True on the call that completes learning, False otherwise
            (including any call after learning has finished).
        """
        if self.learned:
            return False

        self._accumulator += np.abs(self._half_spectrum(frame))
        self._frames_learned += 1
        if self._frames_learned < self.learn_target:
            return False

        self._noise_profile = self._accumulator / self._frames_learned
        self._accumulator = None
        logger.info(
            "Noise profile learned from %d frames (mean magnitude %.5f)",
            self._frames_learned,
            float(np.mean(self._noise_profile)),
        )
        return True

    def process(self, frame):
        """
        Denoise one frame. Frames pass through untouched until the profile is learned.

        Returns:
            The cleaned (windowed) time-domain frame, same length as the input.
        """
        if not self.learned:
            return frame

        half = self._half_spectrum(frame)
        magnitude = np.abs(half)
        phase = np.angle(half)

        clean = np.maximum(
            magnitude - self.oversubtraction * self._noise_profile,
            self.spectral_floor * magnitude,
        )
        smoothed = self.smoothing * self._prev_magnitude + (1.0 - self.smoothing) * clean
        self._prev_magnitude = smoothed

        n = self.frame_size
        spectrum = np.empty(n, dtype=np.complex128)
        spectrum[: self._n_bins] = smoothed * np.exp(1j * phase)
        # Bins above Nyquist mirror bins 1..n/2-1; DC and Nyquist stay single
        spectrum[self._n_bins :] = np.conj(spectrum[1 : n // 2][::-1])

        return self._fft.inverse(spectrum).real
