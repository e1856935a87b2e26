"""
Pytest Configuration and Fixtures
"""
import matplotlib
matplotlib.use("Agg")

import pytest
import torch

from bayes_dict.synthetic import make_synthetic
from bayes_dict.vmp import Hyperparameters, build, initialize


@pytest.fixture
def seed():
    return 42


@pytest.fixture
def small_data():
    """30 signals of width 16 from 4 sine atoms."""
    return make_synthetic(30, 4, 16, noise_std=0.1, seed=1)


@pytest.fixture
def make_state():
    """Factory for a built, seeded and observed state."""
    def _make(data, K=None, seed=42, hyperparameters=None, true_init=False):
        S, W = data.signals.shape
        K = data.dictionary.shape[0] if K is None else K
        state = build(S, K, W, hyperparameters=hyperparameters)
        initialize(
            state, seed=seed,
            custom_dictionary_means=data.dictionary if true_init else None)
        state.set_observed(data.signals)
        return state
    return _make


@pytest.fixture
def small_state(small_data, make_state):
    return make_state(small_data)


@pytest.fixture
def dense_hp():
    return Hyperparameters(sparse=False)


@pytest.fixture
def gen():
    return torch.Generator().manual_seed(0)
