"""
Building and seeding the factor graph.
"""
import typing

import pytest
import torch

from bayes_dict.vmp import (
    Hyperparameters, InvalidDimension, DimensionMismatch, NumericalInstability,
    build, initialize)
from bayes_dict.vmp.model import initial_draw


class TestHyperparameters:

    def test_sparse_defaults(self):
        hp = Hyperparameters()
        assert (hp.a, hp.b) == (0.5, 3e-6)

    def test_dense_defaults(self):
        hp = Hyperparameters(sparse=False)
        assert (hp.a, hp.b) == (1.0, 1.0)

    def test_explicit_values_win(self):
        hp = Hyperparameters(sparse=False, a=2.0)
        assert (hp.a, hp.b) == (2.0, 1.0)

    @pytest.mark.parametrize("a,b", [(0.0, 1.0), (1.0, -1.0), (float("inf"), 1.0)])
    def test_rejects_bad_prior(self, a, b):
        with pytest.raises(ValueError):
            Hyperparameters(a=a, b=b)

    def test_with_prior_copies(self):
        hp = Hyperparameters()
        other = hp.with_prior(a=3.0)
        assert other.a == 3.0 and other.b == hp.b
        assert hp.a == 0.5

    def test_prior_overrides_are_optional(self):
        hints = typing.get_type_hints(Hyperparameters.__init__)
        assert hints["a"] == typing.Optional[float]
        assert hints["b"] == typing.Optional[float]


class TestBuild:

    def test_shapes_and_priors(self):
        state = build(5, 3, 7, a=0.5, b=3e-6)
        assert state.coefficients.shape == (5, 3)
        assert state.coefficient_precisions.shape == (5, 3)
        assert state.dictionary.shape == (3, 7)
        assert state.dictionary_means.shape == (3, 7)
        assert state.dictionary_precisions.shape == (3, 7)
        assert state.noise_precision.shape == ()
        assert torch.all(state.coefficient_precisions.alpha == 0.5)
        assert torch.all(state.coefficient_precisions.rate == 3e-6)
        assert torch.all(state.dictionary_precisions.e() == 10.0)
        assert float(state.noise_precision.e()) == 1.0
        assert not state.initialized

    @pytest.mark.parametrize("dims,name", [
        ((0, 3, 4), "numSignals"),
        ((2, 0, 4), "numBases"),
        ((2, 3, -1), "signalWidth"),
        ((2, 2.5, 4), "numBases"),
    ])
    def test_invalid_dimension(self, dims, name):
        with pytest.raises(InvalidDimension) as info:
            build(*dims)
        assert info.value.name == name

    def test_prior_override(self):
        state = build(2, 2, 2, a=1.0, b=1.0, hyperparameters=Hyperparameters())
        assert state.hyperparameters.a == 1.0
        assert torch.all(state.coefficient_precisions.e() == 1.0)


class TestInitialize:

    def test_same_seed_same_draw(self):
        s1 = initialize(build(6, 3, 5), seed=7)
        s2 = initialize(build(6, 3, 5), seed=7)
        assert torch.equal(s1.coefficients.e(), s2.coefficients.e())
        assert torch.equal(s1.dictionary_means.e(), s2.dictionary_means.e())

    def test_draw_order_and_range(self):
        state = initialize(build(6, 3, 5), seed=7)
        g = torch.Generator().manual_seed(7)
        expected_d = initial_draw((3, 5), g)
        expected_c = initial_draw((6, 3), g)
        assert torch.equal(state.dictionary_means.e(), expected_d)
        assert torch.equal(state.dictionary.e(), expected_d)
        assert torch.equal(state.coefficients.e(), expected_c)
        assert state.coefficients.e().abs().max() <= 0.1
        assert torch.all(state.coefficients.prec == 10.0)
        assert state.initialized

    def test_custom_dictionary_keeps_coefficient_stream(self):
        custom = torch.ones(3, 5)
        plain = initialize(build(6, 3, 5), seed=7)
        state = initialize(build(6, 3, 5), seed=7, custom_dictionary_means=custom)
        assert torch.equal(state.dictionary_means.e(), custom.double())
        assert torch.equal(state.dictionary.e(), custom.double())
        assert torch.equal(state.coefficients.e(), plain.coefficients.e())

    def test_custom_coefficients(self):
        custom = torch.arange(18.).reshape(6, 3)
        state = initialize(build(6, 3, 5), seed=7, custom_coefficients=custom)
        assert torch.equal(state.coefficients.e(), custom.double())

    def test_wrong_custom_dictionary_shape(self):
        with pytest.raises(DimensionMismatch) as info:
            initialize(build(6, 3, 5), custom_dictionary_means=torch.zeros(2, 5))
        assert info.value.name == "dictionary initialization"
        assert info.value.expected == (3, 5)
        assert info.value.received == (2, 5)

    def test_wrong_custom_coefficient_shape(self):
        with pytest.raises(DimensionMismatch) as info:
            initialize(build(6, 3, 5), custom_coefficients=torch.zeros(6, 4))
        assert info.value.name == "coefficient initialization"


class TestObserved:

    def test_set_observed(self, small_data):
        state = build(30, 4, 16)
        state.set_observed(small_data.signals)
        assert torch.equal(state.signals, small_data.signals)

    def test_wrong_shape(self):
        state = build(3, 2, 4)
        with pytest.raises(DimensionMismatch):
            state.set_observed(torch.zeros(3, 5))

    def test_empty_signals(self):
        state = build(3, 2, 4)
        with pytest.raises(InvalidDimension) as info:
            state.set_observed(torch.zeros(0, 4))
        assert info.value.name == "numSignals"

    @pytest.mark.parametrize("bad", [float("nan"), float("inf")])
    def test_non_finite_signals_rejected(self, bad):
        state = build(3, 2, 4)
        Y = torch.zeros(3, 4)
        Y[1, 2] = bad
        with pytest.raises(NumericalInstability) as info:
            state.set_observed(Y)
        assert info.value.name == "signals"
        assert info.value.index == (1, 2)
        assert "signals[1, 2]" in str(info.value)
        assert state.signals is None

    def test_snapshot_restore(self, small_state):
        saved = small_state.snapshot()
        small_state.coefficients.mean[0, 0] = 99.0
        small_state.noise_precision.rate.fill_(5.0)
        small_state.restore(saved)
        assert small_state.coefficients.e()[0, 0] != 99.0
        assert float(small_state.noise_precision.rate) == float(saved["noise_precision"].rate)

    def test_clone_is_independent(self, small_state):
        other = small_state.clone()
        other.coefficients.mean[0, 0] = 99.0
        assert small_state.coefficients.e()[0, 0] != 99.0
        assert other.hyperparameters is small_state.hyperparameters
