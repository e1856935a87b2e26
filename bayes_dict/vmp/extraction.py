from collections import namedtuple

import torch

from ._base import NotReady, DimensionMismatch
from ..utils import as_matrix

Posterior = namedtuple(
    "Posterior", [
        "coefficients",
        "dictionary",
        "dictionary_means",
        "noise_shape",
        "noise_rate",
        "noise_precision",
        "status",
        "n_iterations",
    ])


def extract(controller):
    """
    Point estimates from a finished run: posterior means of C, D and mu_d
    and the noise precision belief.
    An aborted run can still be extracted, for post-mortems; check `status`.
    """
    if not controller.is_terminal():
        raise NotReady(controller.run_state)
    state = controller.state
    beta = state.noise_precision
    return Posterior(
        coefficients=state.coefficients.e().clone(),
        dictionary=state.dictionary.e().clone(),
        dictionary_means=state.dictionary_means.e().clone(),
        noise_shape=float(beta.alpha),
        noise_rate=float(beta.rate),
        noise_precision=float(beta.e()),
        status=controller.run_state,
        n_iterations=controller.iteration,
    )


def reconstruct_signals(coefficients, dictionary):
    """
    Noise-free reconstruction C @ D of the observed signals.
    """
    C = as_matrix(coefficients, "coefficients")
    D = as_matrix(dictionary, "dictionary")
    if C.shape[1] != D.shape[0]:
        raise DimensionMismatch(
            "dictionary", (C.shape[1], D.shape[1]), tuple(D.shape))
    return torch.matmul(C, D)
