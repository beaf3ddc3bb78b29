"""
Microphone frame source built on sounddevice.

Behaves like a browser AnalyserNode: every get_next_frame() returns the
newest FRAME_SIZE samples, so consecutive frames overlap when the driver
ticks faster than FRAME_SIZE / SAMPLE_RATE seconds (~93ms).
"""

import logging

import numpy as np
import sounddevice as sd

from guitartuner.config import FRAME_SIZE, SAMPLE_RATE
from guitartuner.session import CaptureUnavailableError

logger = logging.getLogger(__name__)


class MicrophoneSource:
    def __init__(self, frame_size=FRAME_SIZE, sample_rate=SAMPLE_RATE, device=None, min_read=None):
        self.frame_size = frame_size
        self.sample_rate = sample_rate
        self.device = device
        # Block for at least one display refresh worth of audio per tick
        self.min_read = min_read if min_read is not None else sample_rate // 60
        self._stream = None
        self._buffer = np.zeros(frame_size, dtype=np.float32)

    @property
    def is_open(self):
        return self._stream is not None

    def open(self):
        if self._stream is not None:
            return
        try:
            stream = sd.InputStream(
                device=self.device,
                samplerate=self.sample_rate,
                channels=1,
                dtype="float32",
            )
            stream.start()
        except (sd.PortAudioError, ValueError) as e:
            raise CaptureUnavailableError(f"could not open audio input: {e}") from e

        self._stream = stream
        self._buffer[:] = 0.0
        logger.info(
            "Microphone opened (device=%s, %d Hz, %d-sample frames)",
            self.device if self.device is not None else "default",
            self.sample_rate,
            self.frame_size,
        )

    def get_next_frame(self):
        """
        Returns:
            (frame, sample_rate): the newest frame_size samples as float32.
        """
        if self._stream is None:
            raise CaptureUnavailableError("audio input is not open")

        n = max(self._stream.read_available, self.min_read)
        data, overflowed = self._stream.read(n)
        if overflowed:
            logger.debug("Input overflow, %d samples requested", n)

        chunk = data[:, 0]
        if chunk.shape[0] >= self.frame_size:
            self._buffer[:] = chunk[-self.frame_size :]
        else:
            self._buffer = np.concatenate((self._buffer[chunk.shape[0] :], chunk))
        return self._buffer.copy(), self.sample_rate

    def close(self):
        if self._stream is None:
            return
        self._stream.stop()
        self._stream.close()
        self._stream = None
        logger.info("Microphone closed")
