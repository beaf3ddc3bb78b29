"""
Radix-2 FFT with tables built once per frame size.

The denoiser transforms every frame twice (forward and inverse), so the
bit-reversal permutation and the twiddle factors for each butterfly stage
are computed in the constructor and reused.

HOW IT WORKS (iterative decimation in time):
  1. Reorder the input by bit-reversed index. After this, each adjacent
     pair of samples is a length-2 DFT problem.
  2. For block sizes 2, 4, 8, ... N, combine the two half-blocks:
         X[k]        = E[k] + w^k * O[k]
         X[k + size/2] = E[k] - w^k * O[k]
     where w = exp(-2*pi*i / size). Each stage is one vectorized numpy op
     over all blocks.
"""

import numpy as np


def is_power_of_two(n):
    return n >= 2 and n & (n - 1) == 0


def bit_reversal_permutation(n):
    bits = n.bit_length() - 1
    idx = np.arange(n)
    rev = np.zeros(n, dtype=np.intp)
    for b in range(bits):
        rev |= ((idx >> b) & 1) << (bits - 1 - b)
    return rev


class RadixTwoFFT:
    def __init__(self, n):
        if not is_power_of_two(n):
            raise ValueError(f"FFT size must be a power of two, got {n}")
        self.n = n
        self._perm = bit_reversal_permutation(n)

        twiddles = np.exp(-2j * np.pi * np.arange(n // 2) / n)
        # One twiddle slice per stage: w_size^k == w_n^(k * n / size)
        self._stages = []
        size = 2
        while size <= n:
            self._stages.append((size, twiddles[:: n // size][: size // 2]))
            size *= 2

    def forward(self, x):
        x = np.asarray(x)
        if x.shape != (self.n,):
            raise ValueError(f"expected {self.n} samples, got shape {x.shape}")
        a = x[self._perm].astype(np.complex128)
        for size, tw in self._stages:
            half = size // 2
            blocks = a.reshape(-1, size)
            even = blocks[:, :half]
            odd = blocks[:, half:] * tw
            a = np.concatenate((even + odd, even - odd), axis=1).ravel()
        return a

    def inverse(self, spectrum):
        # IFFT(X) = conj(FFT(conj(X))) / N
        return np.conj(self.forward(np.conj(np.asarray(spectrum)))) / self.n
