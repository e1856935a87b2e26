import math

import pytest
import torch

from bayes_dict.metrics import reconstruction_metrics, sparsity_fraction, atom_recovery
from bayes_dict.synthetic import sine_dictionary, sparse_coefficients, make_synthetic


class TestReconstructionMetrics:

    def test_known_values(self):
        Y = torch.tensor([[1.0, 2.0], [3.0, 4.0]])
        Yhat = torch.tensor([[1.0, 2.0], [3.0, 2.0]])
        m = reconstruction_metrics(Y, Yhat)
        assert m["mse"] == pytest.approx(1.0)
        assert m["rmse"] == pytest.approx(1.0)
        assert m["mae"] == pytest.approx(0.5)
        assert m["relative_error"] == pytest.approx(math.sqrt(4.0 / 30.0))
        assert m["snr_db"] == pytest.approx(10 * math.log10(30.0 / 4.0))

    def test_perfect_reconstruction(self):
        Y = torch.ones(3, 3)
        m = reconstruction_metrics(Y, Y)
        assert m["mse"] == 0.0
        assert m["snr_db"] == math.inf

    def test_shape_mismatch(self):
        with pytest.raises(ValueError):
            reconstruction_metrics(torch.zeros(2, 3), torch.zeros(3, 2))


class TestSparsity:

    def test_fraction(self):
        C = torch.tensor([[0.0, 0.01, 0.5], [-0.04, -1.0, 0.06]])
        assert sparsity_fraction(C) == pytest.approx(0.5)
        assert sparsity_fraction(C, threshold=0.7) == pytest.approx(5 / 6)


class TestAtomRecovery:

    def test_permuted_and_flipped_atoms_recover(self):
        D = sine_dictionary(4, 32)
        learned = -3.0 * D[[2, 0, 3, 1]]
        assert torch.allclose(atom_recovery(D, learned), torch.ones(4, dtype=torch.float64))

    def test_width_mismatch(self):
        with pytest.raises(ValueError):
            atom_recovery(torch.ones(2, 3), torch.ones(2, 4))


class TestSynthetic:

    def test_sine_atoms_unit_norm(self):
        D = sine_dictionary(8, 64)
        assert D.shape == (8, 64)
        # sin^2 averages to 1/2 over whole periods
        assert torch.allclose(D.norm(dim=1) ** 2, torch.full((8,), 0.5, dtype=torch.float64))

    def test_two_or_three_active(self, gen):
        C = sparse_coefficients(50, 8, gen)
        active = (C != 0).sum(1)
        assert torch.all((active >= 2) & (active <= 3))
        assert torch.all(C.abs() <= 1.0)

    def test_few_bases(self, gen):
        C = sparse_coefficients(10, 1, gen)
        assert torch.all((C != 0).sum(1) <= 1)

    def test_reproducible(self):
        a = make_synthetic(20, 4, 16, seed=3)
        b = make_synthetic(20, 4, 16, seed=3)
        assert torch.equal(a.signals, b.signals)
        assert torch.equal(a.coefficients, b.coefficients)

    def test_noise_level(self):
        data = make_synthetic(400, 4, 32, noise_std=0.1, seed=0)
        resid = data.signals - data.coefficients @ data.dictionary
        assert float(resid.std()) == pytest.approx(0.1, rel=0.05)
