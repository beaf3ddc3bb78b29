from __future__ import annotations

import numpy as np
import pytest

from guitartuner.dataset import generate_harmonic_tone, noise_frame
from guitartuner.denoise import SpectralDenoiser


def _rms(x: np.ndarray) -> float:
    return float(np.sqrt(np.mean(np.square(x, dtype=np.float64))))


def test_learning_completes_exactly_on_twentieth_frame() -> None:
    rng = np.random.default_rng(0)
    denoiser = SpectralDenoiser(4096)
    results = [denoiser.learn_frame(noise_frame(4096, 0.01, rng)) for _ in range(20)]
    assert results == [False] * 19 + [True]
    assert denoiser.learned
    assert denoiser.frames_learned == 20
    # Learning is one-shot
    assert denoiser.learn_frame(noise_frame(4096, 0.01, rng)) is False


def test_noise_profile_shape_and_sign() -> None:
    rng = np.random.default_rng(1)
    denoiser = SpectralDenoiser(1024)
    assert denoiser.noise_profile is None
    for _ in range(20):
        denoiser.learn_frame(noise_frame(1024, 0.01, rng))
    profile = denoiser.noise_profile
    assert profile.shape == (513,)
    assert np.all(profile >= 0)
    with pytest.raises(ValueError):
        profile[0] = 1.0


def test_process_is_passthrough_before_learning() -> None:
    frame = noise_frame(1024, 0.1, np.random.default_rng(2))
    denoiser = SpectralDenoiser(1024)
    assert denoiser.process(frame) is frame


def test_process_reduces_stationary_noise() -> None:
    rng = np.random.default_rng(3)
    denoiser = SpectralDenoiser(4096)
    for _ in range(20):
        denoiser.learn_frame(noise_frame(4096, 0.02, rng))

    inputs = [noise_frame(4096, 0.02, rng) for _ in range(10)]
    outputs = [denoiser.process(f) for f in inputs]
    assert np.mean([_rms(o) for o in outputs]) < np.mean([_rms(i) for i in inputs])


def test_process_keeps_tone_above_noise() -> None:
    rng = np.random.default_rng(4)
    n = 4096
    denoiser = SpectralDenoiser(n)
    for _ in range(20):
        denoiser.learn_frame(noise_frame(n, 0.005, rng))

    for i in range(10):
        frame = generate_harmonic_tone(196.0, n, n_harmonics=1, noise_level=0.005, start=i * n, rng=rng)
        out = denoiser.process(frame)

    assert out.shape == (n,)
    spectrum = np.abs(np.fft.rfft(out))
    peak_hz = np.argmax(spectrum) * 44100 / n
    assert abs(peak_hz - 196.0) < 44100 / n


def test_rejects_wrong_frame_length() -> None:
    denoiser = SpectralDenoiser(1024)
    with pytest.raises(ValueError):
        denoiser.learn_frame(np.zeros(512))


def test_process_matches_subtraction_formula() -> None:
    rng = np.random.default_rng(6)
    n = 1024
    window = np.hanning(n)
    denoiser = SpectralDenoiser(n)
    learn = [noise_frame(n, 0.01, rng) for _ in range(20)]
    for frame in learn:
        denoiser.learn_frame(frame)
    profile = np.mean([np.abs(np.fft.rfft(f * window)) for f in learn], axis=0)
    np.testing.assert_allclose(denoiser.noise_profile, profile, atol=1e-10)

    prev = np.zeros(n // 2 + 1)
    for i in range(3):
        frame = generate_harmonic_tone(300.0, n, noise_level=0.01, start=i * n, rng=rng)
        half = np.fft.rfft(frame * window)
        magnitude = np.abs(half)
        clean = np.maximum(magnitude - 2.0 * profile, 0.002 * magnitude)
        prev = 0.8 * prev + 0.2 * clean
        expected = np.fft.irfft(prev * np.exp(1j * np.angle(half)), n)
        np.testing.assert_allclose(denoiser.process(frame), expected, atol=1e-10)
