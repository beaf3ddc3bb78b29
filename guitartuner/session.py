"""
Tuning session: the per-frame pipeline and its state machine.

    IDLE --start()--> LEARNING --20 frames--> DETECTING --stop()--> IDLE

While LEARNING, every frame (silent or not) trains the noise profile and no
pitch is reported. While DETECTING, each non-silent frame is denoised, run
through the pitch estimator, gated on frequency range and confidence, and
turned into smoothed tuning feedback.

The session never schedules itself. A driver (the Streamlit app, a test)
calls tick() or process_frame() once per frame.
"""

import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np

from guitartuner.config import (
    CENTS_SMOOTHING,
    CLOSE_CENTS,
    CONFIDENCE_THRESHOLD,
    FRAME_SIZE,
    GAUGE_RANGE_CENTS,
    HISTORY_LENGTH,
    IN_TUNE_CENTS,
    SILENCE_RMS,
)
from guitartuner.denoise import SpectralDenoiser
from guitartuner.pitch import YinEstimator
from guitartuner.tuning import Note, TuningModel

logger = logging.getLogger(__name__)


class TunerError(Exception):
    pass


class CaptureUnavailableError(TunerError):
    """The audio input could not be opened (no device, permission denied)."""


class SessionState(Enum):
    IDLE = "idle"
    LEARNING = "learning"
    DETECTING = "detecting"


class TuningStatus(Enum):
    IN_TUNE = "in-tune"
    CLOSE = "close"
    FAR = "far"


class FrameOutcome(Enum):
    IDLE = "idle"
    SILENT = "silent"
    LEARNING = "learning"
    NO_PITCH = "no-pitch"
    LOW_CONFIDENCE = "low-confidence"
    OUT_OF_BOUNDS = "out-of-bounds"
    ACCEPTED = "accepted"


def classify(cents):
    """Both boundaries are inclusive: exactly 5 cents is in tune, exactly 15 is close."""
    distance = abs(cents)
    if distance <= IN_TUNE_CENTS:
        return TuningStatus.IN_TUNE
    if distance <= CLOSE_CENTS:
        return TuningStatus.CLOSE
    return TuningStatus.FAR


def rms(frame):
    frame = np.asarray(frame, dtype=np.float64)
    return float(np.sqrt(np.mean(frame * frame)))


@dataclass(frozen=True)
class TuningFeedback:
    detected_note: str
    octave: int
    frequency_hz: float
    cents: float
    smoothed_cents: float
    status: TuningStatus
    in_tune_edge: bool
    string_index: int
    chromatic: Optional[Note] = None

    @property
    def direction(self):
        """Which way to turn the peg: negative cents is flat, so tune up."""
        if self.status is TuningStatus.IN_TUNE:
            return None
        return "up" if self.smoothed_cents < 0 else "down"

    @property
    def message(self):
        if self.status is TuningStatus.IN_TUNE:
            return "In tune!"
        if self.status is TuningStatus.CLOSE:
            return f"Almost, tune {self.direction} slightly"
        return f"Tune {self.direction}"

    @property
    def gauge_position(self):
        """Needle position in [0, 1]; 0.5 is centre, the ends are +/- GAUGE_RANGE_CENTS."""
        clamped = max(-GAUGE_RANGE_CENTS, min(GAUGE_RANGE_CENTS, self.smoothed_cents))
        return 0.5 + clamped / (2 * GAUGE_RANGE_CENTS)


@dataclass(frozen=True)
class FrameReport:
    outcome: FrameOutcome
    confidence: Optional[float] = None
    feedback: Optional[TuningFeedback] = None

    @property
    def accepted(self):
        return self.outcome is FrameOutcome.ACCEPTED


class TuningSession:
    """
    Owns the session lifecycle, the denoiser, and the smoothing state.

    Args:
        model: Shared TuningModel (tuning + calibration)
        source: Optional frame source with open() / get_next_frame() / close().
                Needed for tick(); tests usually call process_frame() directly.
        estimator: Anything with estimate(frame, sample_rate). Defaults to YIN.
        frame_size: Samples per frame, must be a power of two
    """

    def __init__(self, model=None, source=None, estimator=None, frame_size=FRAME_SIZE):
        self.model = model if model is not None else TuningModel()
        self.source = source
        self.estimator = estimator if estimator is not None else YinEstimator()
        self.frame_size = frame_size

        self._state = SessionState.IDLE
        self._denoiser = None
        self._smoothed_cents = 0.0
        self._was_in_tune = False
        self._locked_string = None
        self._history = deque(maxlen=HISTORY_LENGTH)

    @property
    def state(self):
        return self._state

    @property
    def smoothed_cents(self):
        return self._smoothed_cents

    @property
    def locked_string(self):
        return self._locked_string

    @property
    def history(self):
        return list(self._history)

    @property
    def running(self):
        return self._state is not SessionState.IDLE

    # --- Inputs from the presentation layer ---

    def set_tuning(self, profile):
        self.model.set_tuning(profile)

    def set_calibration(self, hz):
        return self.model.set_calibration(hz)

    def lock_string(self, index):
        """Compare against one string (0 = lowest) instead of auto-detecting. None unlocks."""
        if index is not None:
            self.model.string_at(index)
        self._locked_string = index

    def start(self):
        if self.running:
            logger.warning("Tuning session is already running")
            return

        # Built before the source is opened so a bad frame size leaves nothing open
        denoiser = SpectralDenoiser(self.frame_size)

        if self.source is not None:
            try:
                self.source.open()
            except CaptureUnavailableError as e:
                logger.error("Audio capture unavailable: %s", e)
                raise

        self._reset()
        self._denoiser = denoiser
        self._state = SessionState.LEARNING
        logger.info(
            "Tuning session started (%s, A4=%.1f Hz), learning noise profile",
            self.model.tuning_name or "custom tuning",
            self.model.a4_reference,
        )

    def stop(self):
        try:
            if self.source is not None and self.running:
                self.source.close()
        finally:
            self._reset()
            self._denoiser = None
            if self._state is not SessionState.IDLE:
                logger.info("Tuning session stopped")
            self._state = SessionState.IDLE

    def _reset(self):
        self._smoothed_cents = 0.0
        self._was_in_tune = False
        self._history.clear()

    # --- Per-frame pipeline ---

    def tick(self):
        """Pull one frame from the source and process it."""
        if not self.running:
            return FrameReport(FrameOutcome.IDLE)
        if self.source is None:
            raise RuntimeError("tick() needs a frame source; use process_frame() instead")
        frame, sample_rate = self.source.get_next_frame()
        return self.process_frame(frame, sample_rate)

    def process_frame(self, frame, sample_rate):
        if self._state is SessionState.IDLE:
            return FrameReport(FrameOutcome.IDLE)

        silent = rms(frame) < SILENCE_RMS

        if self._state is SessionState.LEARNING:
            if self._denoiser.learn_frame(frame):
                self._state = SessionState.DETECTING
                logger.info("Noise profile ready, detecting pitch")
            return FrameReport(FrameOutcome.SILENT if silent else FrameOutcome.LEARNING)

        if silent:
            return FrameReport(FrameOutcome.SILENT)

        cleaned = self._denoiser.process(frame)
        result = self.estimator.estimate(cleaned, sample_rate)

        if not result.has_pitch:
            return FrameReport(FrameOutcome.NO_PITCH, confidence=result.confidence)
        if not self.model.frequency_bounds().contains(result.frequency_hz):
            logger.debug("Rejected %.2f Hz: outside string range", result.frequency_hz)
            return FrameReport(FrameOutcome.OUT_OF_BOUNDS, confidence=result.confidence)
        if result.confidence < CONFIDENCE_THRESHOLD:
            logger.debug("Rejected %.2f Hz: confidence %.2f", result.frequency_hz, result.confidence)
            return FrameReport(FrameOutcome.LOW_CONFIDENCE, confidence=result.confidence)

        feedback = self._feedback(result.frequency_hz)
        return FrameReport(FrameOutcome.ACCEPTED, confidence=result.confidence, feedback=feedback)

    def _feedback(self, freq):
        if self._locked_string is not None:
            target = self.model.string_at(self._locked_string)
        else:
            target = self.model.nearest_string(freq)

        cents = self.model.cents_offset(freq, target)
        # Fixed-weight exponential smoothing keeps the needle from jittering
        self._smoothed_cents = self._smoothed_cents * CENTS_SMOOTHING + cents * (1.0 - CENTS_SMOOTHING)
        self._history.append(self._smoothed_cents)

        status = classify(self._smoothed_cents)
        in_tune = status is TuningStatus.IN_TUNE
        edge = in_tune and not self._was_in_tune
        self._was_in_tune = in_tune

        return TuningFeedback(
            detected_note=target.name,
            octave=target.octave,
            frequency_hz=freq,
            cents=cents,
            smoothed_cents=self._smoothed_cents,
            status=status,
            in_tune_edge=edge,
            string_index=target.display_index,
            chromatic=self.model.note_for_frequency(freq),
        )
