from __future__ import annotations

import numpy as np
import pytest

from guitartuner.dataset import generate_harmonic_tone, noise_frame
from guitartuner.pitch import NO_PITCH, DetectionResult, YinEstimator

SAMPLE_RATE = 44_100
N = 4096


def _sine(freq: float, amplitude: float = 0.5) -> np.ndarray:
    t = np.arange(N) / SAMPLE_RATE
    return amplitude * np.sin(2 * np.pi * freq * t)


def test_pure_sine_at_a2() -> None:
    result = YinEstimator().estimate(_sine(110.0), SAMPLE_RATE)
    assert abs(result.frequency_hz - 110.0) < 0.5
    assert result.confidence >= 0.85
    assert result.has_pitch


@pytest.mark.parametrize("freq", [82.41, 146.83, 196.0, 246.94, 329.63])
def test_harmonic_tones_on_open_strings(freq: float) -> None:
    frame = generate_harmonic_tone(freq, N, sr=SAMPLE_RATE, n_harmonics=5)
    result = YinEstimator().estimate(frame, SAMPLE_RATE)
    assert abs(1200 * np.log2(result.frequency_hz / freq)) < 5
    assert result.confidence >= 0.85


def test_silence_has_no_pitch() -> None:
    result = YinEstimator().estimate(np.zeros(N), SAMPLE_RATE)
    assert result == NO_PITCH
    assert result == DetectionResult(-1.0, 0.0)
    assert not result.has_pitch


def test_white_noise_has_no_pitch() -> None:
    frame = noise_frame(N, 0.2, np.random.default_rng(0))
    assert YinEstimator().estimate(frame, SAMPLE_RATE) == NO_PITCH


def test_quiet_and_loud_give_same_pitch() -> None:
    estimator = YinEstimator()
    quiet = estimator.estimate(_sine(196.0, 0.02), SAMPLE_RATE)
    loud = estimator.estimate(_sine(196.0, 0.9), SAMPLE_RATE)
    assert quiet.frequency_hz == pytest.approx(loud.frequency_hz, rel=1e-6)


def test_difference_matches_direct_definition() -> None:
    frame = generate_harmonic_tone(150.0, 512, noise_level=0.01, rng=np.random.default_rng(5))
    x = frame.astype(np.float64)
    half = 256
    expected = np.ones(half)
    running = 0.0
    for tau in range(1, half):
        d = float(np.sum((x[:half] - x[tau : tau + half]) ** 2))
        running += d
        expected[tau] = d * tau / running
    np.testing.assert_allclose(YinEstimator().difference(frame), expected, rtol=1e-6, atol=1e-9)


def test_scratch_buffer_is_reused() -> None:
    estimator = YinEstimator()
    first = estimator.difference(_sine(110.0))
    second = estimator.difference(_sine(220.0))
    assert first is second


def test_refine_edges_and_flat_neighbours() -> None:
    cmnd = np.array([1.0, 0.5, 0.1, 0.1, 0.1])
    # Interior with equal neighbours: denominator is zero, integer lag kept
    assert YinEstimator._refine(cmnd, 3) == 3
    # Right edge: compare with the left neighbour
    assert YinEstimator._refine(cmnd, 4) == 4
    cmnd = np.array([1.0, 0.5, 0.1, 0.3, 0.05])
    assert YinEstimator._refine(cmnd, 4) == 4
    assert YinEstimator._refine(np.array([1.0, 0.9, 0.2, 0.1]), 3) == 3


def test_refine_parabola_vertex() -> None:
    # Samples of (x - 2.25)^2 around x = 2
    cmnd = np.array([(x - 2.25) ** 2 for x in range(5)])
    assert YinEstimator._refine(cmnd, 2) == pytest.approx(2.25)


def test_crepe_estimator_detects_sine() -> None:
    pytest.importorskip("torchcrepe")
    from guitartuner.pitch import CrepeEstimator

    result = CrepeEstimator().estimate(_sine(220.0), SAMPLE_RATE)
    assert result.has_pitch
    assert result.confidence > 0.5
    assert abs(1200 * np.log2(result.frequency_hz / 220.0)) < 50
