"""
Evidence lower bound of the mean-field posterior.

    ELBO = E_q[log p(Y, C, tau_c, D, mu_d, tau_d, beta)] + H[q]

With the serial schedule every update is an exact coordinate ascent step, so
this never decreases from one sweep to the next; it is the natural
convergence monitor.
"""
import math

from ..beliefs import LOG_2PI
from .updates import expected_sq_residual


def _gaussian_loglik(elog_prec, e_prec, e_sq_dev):
    """
    E[log N(x; m, 1/tau)] given E[log tau], E[tau] and E[(x - m)^2]
    """
    return 0.5 * elog_prec - 0.5 * LOG_2PI - 0.5 * e_prec * e_sq_dev


def _gamma_logprior(bel, shape, rate):
    """
    E[log Gamma(x; shape, rate)] under the belief `bel`
    """
    return (
        shape * math.log(rate) - math.lgamma(shape)
        + (shape - 1.0) * bel.elog() - rate * bel.e())


def elbo_terms(state, hyperparameters=None):
    """
    Per-factor contributions to the ELBO, as python floats.
    Expected log densities first, then the entropy of each belief array.
    """
    hp = hyperparameters if hyperparameters is not None else state.hyperparameters
    if state.signals is None:
        raise ValueError("no observed signals; call set_observed first")
    C, tau_c = state.coefficients, state.coefficient_precisions
    D, mu_d, tau_d = state.dictionary, state.dictionary_means, state.dictionary_precisions
    beta = state.noise_precision

    likelihood = _gaussian_loglik(
        beta.elog(), beta.e(), expected_sq_residual(state)).sum()
    coefficients = _gaussian_loglik(tau_c.elog(), tau_c.e(), C.e2()).sum()
    dictionary = _gaussian_loglik(
        tau_d.elog(), tau_d.e(),
        D.e2() - 2.0 * D.e() * mu_d.e() + mu_d.e2()).sum()
    p0 = hp.dictionary_mean_precision
    dictionary_means = (
        0.5 * math.log(p0) - 0.5 * LOG_2PI - 0.5 * p0 * mu_d.e2()).sum()

    terms = dict(
        likelihood=likelihood,
        coefficients=coefficients,
        coefficient_precisions=_gamma_logprior(tau_c, hp.a, hp.b).sum(),
        dictionary=dictionary,
        dictionary_means=dictionary_means,
        dictionary_precisions=_gamma_logprior(
            tau_d, hp.dictionary_precision_shape,
            hp.dictionary_precision_rate).sum(),
        noise_precision=_gamma_logprior(
            beta, hp.noise_shape, hp.noise_rate).sum(),
    )
    for name, bel in state.beliefs_d().items():
        terms[f"entropy_{name}"] = bel.entropy().sum()
    return {k: float(v) for k, v in terms.items()}


def elbo(state, hyperparameters=None):
    return math.fsum(elbo_terms(state, hyperparameters).values())
