import os

# Tuning profiles: note names per string, low to high.
# Frequencies are never stored here; they are derived from the calibrated A4
# so the whole table moves when the reference changes.
TUNINGS = {
    "Standard": ("E2", "A2", "D3", "G3", "B3", "E4"),
    "Drop D": ("D2", "A2", "D3", "G3", "B3", "E4"),
    "Open G": ("D2", "G2", "D3", "G3", "B3", "D4"),
    "DADGAD": ("D2", "A2", "D3", "G3", "A3", "D4"),
    "Half-Step Down": ("Eb2", "Ab2", "Db3", "Gb3", "Bb3", "Eb4"),
    "Open D": ("D2", "A2", "D3", "F#3", "A3", "D4"),
}

DEFAULT_TUNING = "Standard"
NUM_STRINGS = 6

# Calibration (A4 reference) in Hz. Values outside the dial are clamped.
DEFAULT_A4 = 440.0
A4_MIN = 432.0
A4_MAX = 446.0

# Audio settings
# 4096 samples at 44.1kHz is ~93ms, long enough for two periods of low E (82Hz)
SAMPLE_RATE = 44100
FRAME_SIZE = 4096

# Frames below this RMS are treated as silence (no string ringing)
SILENCE_RMS = 0.008

# YIN absolute threshold on the cumulative mean normalized difference
YIN_THRESHOLD = 0.15

# Estimates below this confidence only update the confidence meter
CONFIDENCE_THRESHOLD = 0.85

# Plausible range around the active strings, rejects octave errors
BOUNDS_LOW_FACTOR = 0.5
BOUNDS_HIGH_FACTOR = 2.0

# Spectral subtraction
NOISE_LEARN_FRAMES = 20     # frames averaged into the noise profile
OVERSUBTRACTION = 2.0       # noise estimate multiplier
SPECTRAL_FLOOR = 0.002      # minimum kept magnitude, relative to input
SPECTRAL_SMOOTHING = 0.8    # weight of the previous frame's magnitude

# Display smoothing and classification (in cents)
CENTS_SMOOTHING = 0.6       # weight of the previous smoothed value
IN_TUNE_CENTS = 5.0
CLOSE_CENTS = 15.0
GAUGE_RANGE_CENTS = 50.0    # gauge needle is clamped to +/- this

# Number of accepted readings kept for the history chart
HISTORY_LENGTH = 120

# CREPE settings (alternative estimator)
CREPE_MODEL = "tiny"
CREPE_FMIN = 40.0
CREPE_FMAX = 700.0
CREPE_HOP_LENGTH = 512

LOG_LEVEL = os.environ.get("GTUNER_LOG_LEVEL", "INFO")
