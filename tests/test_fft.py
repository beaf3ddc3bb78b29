from __future__ import annotations

import numpy as np
import pytest

from guitartuner.fft import RadixTwoFFT, bit_reversal_permutation, is_power_of_two


def test_bit_reversal_permutation() -> None:
    assert bit_reversal_permutation(8).tolist() == [0, 4, 2, 6, 1, 5, 3, 7]


@pytest.mark.parametrize("n", [2, 8, 64, 4096])
def test_forward_matches_numpy(n: int) -> None:
    rng = np.random.default_rng(n)
    x = rng.standard_normal(n)
    np.testing.assert_allclose(RadixTwoFFT(n).forward(x), np.fft.fft(x), atol=1e-9)


def test_inverse_restores_signal() -> None:
    rng = np.random.default_rng(1)
    x = rng.standard_normal(1024)
    fft = RadixTwoFFT(1024)
    np.testing.assert_allclose(fft.inverse(fft.forward(x)).real, x, atol=1e-12)


def test_rejects_non_power_of_two() -> None:
    assert not is_power_of_two(1000)
    assert not is_power_of_two(1)
    with pytest.raises(ValueError):
        RadixTwoFFT(1000)


def test_rejects_wrong_length() -> None:
    with pytest.raises(ValueError):
        RadixTwoFFT(16).forward(np.zeros(8))
