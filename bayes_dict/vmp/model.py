"""
The dictionary learning factor graph.

The topology never changes, so there is no graph interpreter here: the
"graph" is a fixed set of belief arrays, one per latent matrix, wired
together by the closed-form updates in `updates.py`.

    signals   Y     S x W   observed
    coefficients C  S x K   Gaussian
    coefficient_precisions tau_c  S x K  Gamma
    dictionary D    K x W   Gaussian
    dictionary_means mu_d   K x W   Gaussian
    dictionary_precisions tau_d  K x W  Gamma
    noise_precision beta    scalar  Gamma
"""
import torch

from ..beliefs import GaussianBeliefs, GammaBeliefs
from ..utils import as_matrix, first_index
from ._base import (
    InvalidDimension, DimensionMismatch, NumericalInstability, _check_dim)
from .hyperparameters import Hyperparameters


class PosteriorState:
    """
    Mutable store of every approximate posterior for one inference run.
    """
    def __init__(
            self, S, K, W,
            coefficients, coefficient_precisions,
            dictionary, dictionary_means, dictionary_precisions,
            noise_precision, signals=None, hyperparameters=None):
        self.S = S
        self.K = K
        self.W = W
        self.coefficients = coefficients
        self.coefficient_precisions = coefficient_precisions
        self.dictionary = dictionary
        self.dictionary_means = dictionary_means
        self.dictionary_precisions = dictionary_precisions
        self.noise_precision = noise_precision
        self.signals = signals
        self.hyperparameters = (
            hyperparameters if hyperparameters is not None else Hyperparameters())
        self.initialized = False

    def __repr__(self):
        return f"{type(self).__name__}(S={self.S}, K={self.K}, W={self.W})"

    def set_observed(self, signals):
        """
        Attach the observed S x W signal matrix.
        """
        signals = as_matrix(signals, "signals")
        S, W = signals.shape
        if S == 0:
            raise InvalidDimension("numSignals", S)
        if W == 0:
            raise InvalidDimension("signalWidth", W)
        if (S, W) != (self.S, self.W):
            raise DimensionMismatch("signals", (self.S, self.W), (S, W))
        idx = first_index(~torch.isfinite(signals))
        if idx is not None:
            raise NumericalInstability("signals", idx)
        self.signals = signals
        return self

    def beliefs_d(self):
        """
        dict of every belief array, by name
        """
        return dict(
            coefficients=self.coefficients,
            coefficient_precisions=self.coefficient_precisions,
            dictionary=self.dictionary,
            dictionary_means=self.dictionary_means,
            dictionary_precisions=self.dictionary_precisions,
            noise_precision=self.noise_precision,
        )

    def check(self):
        """
        Validate the invariants on every belief.
        """
        for name, bel in self.beliefs_d().items():
            if isinstance(bel, GaussianBeliefs):
                bel.check_finite(name)
            else:
                bel.check_positive(name)

    def snapshot(self):
        return {k: v.clone() for k, v in self.beliefs_d().items()}

    def restore(self, snapshot):
        """
        Put back every belief array saved by `snapshot`.
        """
        for k, v in snapshot.items():
            setattr(self, k, v.clone())

    def clone(self):
        state = type(self)(
            self.S, self.K, self.W,
            **{k: v.clone() for k, v in self.beliefs_d().items()},
            signals=self.signals, hyperparameters=self.hyperparameters)
        state.initialized = self.initialized
        return state

    def diagnosis(self):
        return dict(
            S=self.S, K=self.K, W=self.W,
            initialized=self.initialized,
            observed=self.signals is not None,
            hyperparameters=self.hyperparameters.diagnosis(),
            **{k: v.diagnosis() for k, v in self.beliefs_d().items()},
        )


def build(S, K, W, a=None, b=None, hyperparameters=None):
    """
    Allocate every belief of the graph at its prior.

    `a`, `b` override the coefficient precision prior of `hyperparameters`.
    """
    S = _check_dim("numSignals", S)
    K = _check_dim("numBases", K)
    W = _check_dim("signalWidth", W)
    if hyperparameters is None:
        hp = Hyperparameters(a=a, b=b)
    else:
        hp = hyperparameters.with_prior(a, b)

    return PosteriorState(
        S, K, W,
        coefficients=GaussianBeliefs.full((S, K), 0.0, hp.init_precision),
        coefficient_precisions=GammaBeliefs.full((S, K), hp.a, hp.b),
        dictionary=GaussianBeliefs.full((K, W), 0.0, hp.init_precision),
        dictionary_means=GaussianBeliefs.full(
            (K, W), 0.0, hp.dictionary_mean_precision),
        dictionary_precisions=GammaBeliefs.full(
            (K, W), hp.dictionary_precision_shape, hp.dictionary_precision_rate),
        noise_precision=GammaBeliefs.full(
            (), hp.noise_shape, hp.noise_rate),
        hyperparameters=hp,
    )


def initial_draw(shape, generator, halfwidth=0.1):
    """
    Uniform draw on [-halfwidth, halfwidth), row-major from `generator`.
    """
    u = torch.rand(shape, generator=generator, dtype=torch.float64)
    return (u - 0.5) * (2.0 * halfwidth)


def initialize(
        state, seed=42,
        custom_dictionary_means=None,
        custom_coefficients=None,
        generator=None,
        hyperparameters=None):
    """
    Seed the coefficient, dictionary and dictionary-mean beliefs.

    The generator is always advanced by one K x W draw and then one S x K
    draw, in that order, whether or not custom values replace them; reruns
    with the same seed are therefore bit-identical.
    The dictionary draw (or `custom_dictionary_means`) seeds both the
    dictionary means and the dictionary itself.
    """
    hp = hyperparameters if hyperparameters is not None else state.hyperparameters
    if generator is None:
        generator = torch.Generator().manual_seed(int(seed))
    S, K, W = state.S, state.K, state.W

    dict_init = initial_draw((K, W), generator, hp.init_halfwidth)
    coef_init = initial_draw((S, K), generator, hp.init_halfwidth)

    if custom_dictionary_means is not None:
        custom = as_matrix(custom_dictionary_means, "dictionary initialization")
        if tuple(custom.shape) != (K, W):
            raise DimensionMismatch(
                "dictionary initialization", (K, W), tuple(custom.shape))
        dict_init = custom.clone()
    if custom_coefficients is not None:
        custom = as_matrix(custom_coefficients, "coefficient initialization")
        if tuple(custom.shape) != (S, K):
            raise DimensionMismatch(
                "coefficient initialization", (S, K), tuple(custom.shape))
        coef_init = custom.clone()

    prec = hp.init_precision
    state.dictionary_means = GaussianBeliefs(
        dict_init, torch.full((K, W), prec, dtype=torch.float64))
    state.dictionary = GaussianBeliefs(
        dict_init.clone(), torch.full((K, W), prec, dtype=torch.float64))
    state.coefficients = GaussianBeliefs(
        coef_init, torch.full((S, K), prec, dtype=torch.float64))
    state.initialized = True
    return state
