"""
Variational message passing for Bayesian sparse dictionary learning.

Signals Y (S x W) are modelled as Y ~ C @ D + noise, with an ARD
(automatic relevance determination) Gamma prior on the precision of every
coefficient, which pushes most coefficients to zero.

see also
Winn & Bishop, "Variational Message Passing", JMLR 2005.

There are several data structure of note:

1. beliefs are arrays of independent scalar posteriors, one per matrix entry,
   held as (mean, precision) for Gaussians and (shape, rate) for Gammas
2. methods that end in `_d` return dictionaries keyed by belief name
3. updates mutate a `PosteriorState` in place; the controller owns the loop

The coefficient precision prior Gamma(a, b) sets the sparsity: the default
a=0.5, b=3e-6 is strongly sparsity-promoting, a=b=1 is not.
"""

from ._base import (
    BayesDictError, InvalidDimension, DimensionMismatch,
    NumericalInstability, NotReady, RunState)
from .hyperparameters import Hyperparameters
from .model import PosteriorState, build, initialize
from .updates import sweep
from .elbo import elbo
from .controller import InferenceController
from .extraction import Posterior, extract, reconstruct_signals
from ..utils import as_matrix


def fit(signals, K, hyperparameters=None, seed=42,
        custom_dictionary_means=None, custom_coefficients=None,
        **settings):
    """
    Build, seed and solve in one call; return the controller.
    """
    signals = as_matrix(signals, "signals")
    S, W = signals.shape
    if S == 0:
        raise InvalidDimension("numSignals", S)
    if W == 0:
        raise InvalidDimension("signalWidth", W)
    state = build(S, K, W, hyperparameters=hyperparameters)
    initialize(
        state, seed=seed,
        custom_dictionary_means=custom_dictionary_means,
        custom_coefficients=custom_coefficients)
    state.set_observed(signals)
    controller = InferenceController(state, **settings)
    controller.solve()
    return controller
