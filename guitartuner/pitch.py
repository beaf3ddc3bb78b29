"""
Pitch estimation: turns one audio frame into (frequency, confidence).

Two estimators:
  1. YinEstimator: the YIN algorithm (de Cheveigné & Kawahara, 2002). Fast,
     deterministic, no model weights. This is what the tuner runs by default.
  2. CrepeEstimator: the pre-trained CREPE network via torchcrepe. Heavier,
     but robust on noisy input.

Both expose the same .estimate(frame, sample_rate) interface so the session
can swap between them.
"""

from dataclasses import dataclass

import numpy as np

from guitartuner.config import (
    CREPE_FMAX,
    CREPE_FMIN,
    CREPE_HOP_LENGTH,
    CREPE_MODEL,
    YIN_THRESHOLD,
)


@dataclass(frozen=True)
class DetectionResult:
    frequency_hz: float
    confidence: float

    @property
    def has_pitch(self):
        return self.frequency_hz > 0


# What noise, silence or an unpitched thump looks like. Not an error.
NO_PITCH = DetectionResult(frequency_hz=-1.0, confidence=0.0)


class YinEstimator:
    """
    YIN pitch detection on a single frame.

    THE IDEA:
    A periodic signal looks the same when shifted by one period. For each lag
    tau we measure how different the frame is from itself shifted by tau:

        d(tau) = sum_i (x[i] - x[i + tau])^2

    d dips toward 0 at the period (and its multiples). Dividing by the running
    mean of d ("cumulative mean normalized difference") makes the curve ~1 for
    noise and close to 0 at the true period, so one fixed threshold works for
    loud and quiet signals alike.

    We take the FIRST lag that dips under the threshold (walking down to the
    bottom of that dip), not the global minimum, which avoids picking a
    multiple of the period (an octave too low).
    """

    def __init__(self, threshold=YIN_THRESHOLD):
        self.threshold = threshold
        self._cmnd = None  # scratch buffer, sized on first use

    def _scratch(self, half):
        if self._cmnd is None or self._cmnd.shape[0] != half:
            self._cmnd = np.empty(half)
        return self._cmnd

    def difference(self, frame):
        """
        Cumulative mean normalized difference for lags 0..N/2-1.

        Index 0 is the sentinel 1.0. Lags whose running sum is still zero
        (an all-zero frame) also get 1.0, i.e. "no periodicity".
        """
        x = np.asarray(frame, dtype=np.float64)
        half = x.shape[0] // 2
        cmnd = self._scratch(half)

        # d(tau) = sum x[i]^2 + sum x[i+tau]^2 - 2 * sum x[i] x[i+tau], i < half
        energy = np.concatenate(([0.0], np.cumsum(x * x)))
        lags = np.arange(1, half)
        head = energy[half]
        shifted = energy[lags + half] - energy[lags]
        cross = np.correlate(x[: 2 * half - 1], x[:half], mode="valid")[1:half]
        diff = np.maximum(head + shifted - 2.0 * cross, 0.0)

        running = np.cumsum(diff)
        cmnd[0] = 1.0
        with np.errstate(divide="ignore", invalid="ignore"):
            cmnd[1:] = np.where(running > 0, diff * lags / running, 1.0)
        return cmnd

    def estimate(self, frame, sample_rate):
        """
        Estimate the fundamental of one frame.

        Args:
            frame: 1D array of samples (length N)
            sample_rate: Sample rate in Hz

        Returns:
            DetectionResult. NO_PITCH (-1 Hz, confidence 0) when the threshold
            is never crossed.
        """
        cmnd = self.difference(frame)
        half = cmnd.shape[0]

        below = np.flatnonzero(cmnd[2:] < self.threshold)
        if below.size == 0:
            return NO_PITCH

        tau = int(below[0]) + 2
        # Walk to the bottom of this dip
        while tau + 1 < half and cmnd[tau + 1] < cmnd[tau]:
            tau += 1

        confidence = float(np.clip(1.0 - cmnd[tau], 0.0, 1.0))
        better_tau = self._refine(cmnd, tau)
        return DetectionResult(frequency_hz=float(sample_rate / better_tau), confidence=confidence)

    @staticmethod
    def _refine(cmnd, tau):
        """Parabolic interpolation around tau for a sub-sample period."""
        half = cmnd.shape[0]
        x0 = tau if tau < 1 else tau - 1
        x2 = tau + 1 if tau + 1 < half else tau

        if x0 == tau:
            return tau if cmnd[tau] <= cmnd[x2] else x2
        if x2 == tau:
            return tau if cmnd[tau] <= cmnd[x0] else x0

        s0, s1, s2 = cmnd[x0], cmnd[tau], cmnd[x2]
        denom = 2.0 * (2.0 * s1 - s2 - s0)
        if denom == 0:
            if s0 < s2:
                return x0
            if s2 < s0:
                return x2
            return tau
        return tau + (s2 - s0) / denom


class CrepeEstimator:
    """
    Pitch estimation using CREPE (Convolutional Representation for Pitch Estimation).

    CREPE is a 6-layer CNN trained on millions of audio samples. It takes raw
    audio and outputs a probability distribution over 360 pitch bins spanning
    C1 to B7 (20 cents each). torchcrepe also returns a "periodicity" score,
    which we use as the confidence.

    We use the 'tiny' model variant by default for speed.
    """

    def __init__(self, model_capacity=CREPE_MODEL, fmin=CREPE_FMIN, fmax=CREPE_FMAX):
        import torch

        self.device = torch.device("cuda" if torch.cuda.is_available() else "cpu")
        self.model_capacity = model_capacity
        self.fmin = fmin
        self.fmax = fmax

    def estimate(self, frame, sample_rate):
        import torch
        import torchcrepe

        audio_tensor = torch.as_tensor(np.asarray(frame, dtype=np.float32)).unsqueeze(0).to(self.device)

        # torchcrepe resamples to 16kHz internally
        frequency, periodicity = torchcrepe.predict(
            audio_tensor,
            sample_rate,
            hop_length=CREPE_HOP_LENGTH,
            fmin=self.fmin,
            fmax=self.fmax,
            model=self.model_capacity,
            batch_size=1,
            device=self.device,
            return_periodicity=True,
        )

        # Filter out low-periodicity frames and take the median
        freq_np = frequency.squeeze(0).cpu().numpy()
        conf_np = periodicity.squeeze(0).cpu().numpy()
        mask = conf_np > 0.5
        if not mask.any():
            return NO_PITCH

        return DetectionResult(
            frequency_hz=float(np.median(freq_np[mask])),
            confidence=float(np.clip(np.mean(conf_np[mask]), 0.0, 1.0)),
        )
