"""
Tuning model: which strings we are tuning to, and how far off a pitch is.

Every string is stored as a semitone offset from A4, never as a frequency.
The frequency is derived from the calibration reference:

    freq = a4_reference * 2 ** (semitone / 12)

so moving the calibration dial from 440 Hz to 442 Hz shifts all six strings
together. Derived frequencies are memoized and thrown away whenever the
tuning or the reference changes.

CENTS:
  Musicians measure pitch distance in cents. 100 cents = 1 semitone,
  1200 cents = 1 octave. cents = 1200 * log2(f / target).
  Positive = sharp (too high), negative = flat (too low).
"""

import logging
import math
from dataclasses import dataclass

import librosa

from guitartuner.config import (
    A4_MAX,
    A4_MIN,
    BOUNDS_HIGH_FACTOR,
    BOUNDS_LOW_FACTOR,
    DEFAULT_A4,
    DEFAULT_TUNING,
    NUM_STRINGS,
    TUNINGS,
)

logger = logging.getLogger(__name__)

# MIDI number of A4, the calibration reference
A4_MIDI = 69


@dataclass(frozen=True)
class StringDefinition:
    name: str
    octave: int
    semitone: int  # offset from A4


@dataclass(frozen=True)
class ActiveString:
    name: str
    octave: int
    semitone: int
    freq: float
    display_index: int

    @property
    def label(self):
        return f"{self.name}{self.octave}"


@dataclass(frozen=True)
class FrequencyBounds:
    low: float
    high: float

    def contains(self, freq):
        return self.low < freq < self.high


@dataclass(frozen=True)
class Note:
    """Nearest chromatic note to a frequency."""

    name: str
    octave: int
    cents: float
    midi: int


def string_from_note(note):
    """
    Build a StringDefinition from a note name like "E2", "F#3" or "Eb4".

    librosa does the name -> MIDI parsing (it understands sharps and flats),
    and the semitone offset is just the MIDI distance to A4.
    """
    midi = int(round(librosa.note_to_midi(note)))
    return StringDefinition(name=note[:-1], octave=int(note[-1]), semitone=midi - A4_MIDI)


def build_profiles(tunings=TUNINGS):
    return {key: tuple(string_from_note(n) for n in notes) for key, notes in tunings.items()}


PROFILES = build_profiles()


def clamp_calibration(hz):
    """Clamp to the calibration dial; NaN falls back to the default reference."""
    hz = float(hz)
    if math.isnan(hz):
        return DEFAULT_A4
    return min(max(hz, A4_MIN), A4_MAX)


def cents_between(freq, reference_freq):
    if freq <= 0:
        raise ValueError(f"frequency must be positive, got {freq}")
    return 1200.0 * math.log2(freq / reference_freq)


def note_for_frequency(freq, a4_reference=DEFAULT_A4):
    """
    Find the chromatic note closest to a frequency.

    Args:
        freq: Frequency in Hz (must be positive)
        a4_reference: Calibrated A4 in Hz

    Returns:
        Note with name (e.g. "C#"), octave, cents from that note and MIDI number
    """
    midi = A4_MIDI + int(round(12 * math.log2(freq / a4_reference)))
    exact = a4_reference * 2 ** ((midi - A4_MIDI) / 12)
    name = librosa.midi_to_note(midi, octave=False, unicode=False)
    return Note(name=name, octave=midi // 12 - 1, cents=cents_between(freq, exact), midi=midi)


class _StringCache:
    """Memoized ActiveStringSet for one (profile, a4_reference) pair."""

    def __init__(self):
        self.dirty = True
        self.strings = ()

    def invalidate(self):
        self.dirty = True

    def recompute(self, profile, a4_reference):
        self.strings = tuple(
            ActiveString(
                name=s.name,
                octave=s.octave,
                semitone=s.semitone,
                freq=a4_reference * 2 ** (s.semitone / 12),
                display_index=i,
            )
            for i, s in enumerate(profile)
        )
        self.dirty = False
        return self.strings


class TuningModel:
    """
    Current tuning profile plus calibration, and the string math built on them.

    Shared read-only between the session and the presentation layer. Only
    set_tuning() and set_calibration() change it.
    """

    def __init__(self, tuning=DEFAULT_TUNING, a4_reference=DEFAULT_A4):
        self._cache = _StringCache()
        self._profile = ()
        self._tuning_name = None
        self._a4 = DEFAULT_A4
        self.set_tuning(tuning)
        self.set_calibration(a4_reference)

    @property
    def tuning_name(self):
        return self._tuning_name

    @property
    def profile(self):
        return self._profile

    @property
    def a4_reference(self):
        return self._a4

    def set_tuning(self, profile):
        """
        Select a tuning.

        Args:
            profile: A key of config.TUNINGS ("Drop D", ...) or a sequence of
                     six StringDefinitions, lowest string first.
        """
        if isinstance(profile, str):
            if profile not in PROFILES:
                raise KeyError(f"unknown tuning {profile!r}")
            self._tuning_name = profile
            profile = PROFILES[profile]
        else:
            profile = tuple(profile)
            self._tuning_name = None
        if len(profile) != NUM_STRINGS:
            raise ValueError(f"a tuning needs {NUM_STRINGS} strings, got {len(profile)}")
        self._profile = profile
        self._cache.invalidate()

    def set_calibration(self, hz):
        """Set the A4 reference, clamped to the calibration dial. Returns the value used."""
        value = clamp_calibration(hz)
        if value != hz:
            logger.debug("Calibration %.2f Hz clamped to %.2f Hz", hz, value)
        self._a4 = value
        self._cache.invalidate()
        return value

    def active_strings(self):
        if self._cache.dirty:
            return self._cache.recompute(self._profile, self._a4)
        return self._cache.strings

    def string_at(self, index):
        strings = self.active_strings()
        if not 0 <= index < len(strings):
            raise IndexError(f"string index {index} out of range")
        return strings[index]

    def frequency_bounds(self):
        freqs = [s.freq for s in self.active_strings()]
        return FrequencyBounds(low=min(freqs) * BOUNDS_LOW_FACTOR, high=max(freqs) * BOUNDS_HIGH_FACTOR)

    def nearest_string(self, freq):
        """
        Closest active string to a frequency, measured in cents (not Hz).

        Cents distance is what the ear hears: 5 Hz off at 82 Hz is far worse
        than 5 Hz off at 330 Hz. Ties go to the lowest string.
        """
        closest = None
        min_cents = math.inf
        for s in self.active_strings():
            distance = abs(cents_between(freq, s.freq))
            if distance < min_cents:
                min_cents = distance
                closest = s
        return closest

    @staticmethod
    def cents_offset(freq, target):
        return cents_between(freq, target.freq)

    def note_for_frequency(self, freq):
        return note_for_frequency(freq, self._a4)
