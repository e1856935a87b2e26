"""
Synthetic problems with a known dictionary, for sanity checks and sweeps.
"""
from collections import namedtuple
import math

import torch

SyntheticData = namedtuple("SyntheticData", ["signals", "dictionary", "coefficients"])


def sine_dictionary(K, W):
    """
    K x W dictionary whose k-th atom is a sinusoid of frequency k+1 over the
    window, scaled by 1/sqrt(W).
    """
    j = torch.arange(W, dtype=torch.float64)
    freqs = torch.arange(1, K + 1, dtype=torch.float64)[:, None]
    return torch.sin(freqs * 2 * math.pi / W * j) / math.sqrt(W)


def sparse_coefficients(S, K, generator, n_active=(2, 3)):
    """
    S x K coefficients with between n_active[0] and n_active[1] nonzero
    entries per row, each Uniform[-1, 1).
    """
    lo, hi = n_active
    lo, hi = min(lo, K), min(hi, K)
    C = torch.zeros(S, K, dtype=torch.float64)
    for s in range(S):
        n = int(torch.randint(lo, hi + 1, (), generator=generator))
        active = torch.randperm(K, generator=generator)[:n]
        C[s, active] = (
            torch.rand(n, generator=generator, dtype=torch.float64) * 2 - 1)
    return C


def make_synthetic(S, K, W, noise_std=0.1, seed=42, generator=None):
    """
    Y = C @ D + N(0, noise_std^2) noise, with D the sine dictionary.
    """
    if generator is None:
        generator = torch.Generator().manual_seed(int(seed))
    D = sine_dictionary(K, W)
    C = sparse_coefficients(S, K, generator)
    noise = torch.randn(S, W, generator=generator, dtype=torch.float64)
    Y = C @ D + noise_std * noise
    return SyntheticData(signals=Y, dictionary=D, coefficients=C)
