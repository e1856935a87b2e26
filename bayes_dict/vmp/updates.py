"""
Closed-form VMP updates.

Each function recomputes one belief array from the expected sufficient
statistics of its Markov blanket, holding everything else fixed, and writes
the result back into the state. `sweep` applies them in the fixed order

    coefficients -> dictionary -> dictionary means
        -> coefficient precisions [-> dictionary precisions] -> noise precision

Later steps read the freshly written output of earlier ones.

Within one step the "parallel" schedule reads a snapshot of the step's own
array taken before the step, so every entry could be computed concurrently;
this is what the vectorised expressions below do. The "serial" schedule
instead walks the bases one at a time, each reading the freshest values of
the others, which makes every single update an exact coordinate ascent step.
"""
import torch

from ..math_helpers import clamp_floor

SCHEDULES = ("parallel", "serial")


def _hp(state, hp):
    return state.hyperparameters if hp is None else hp


def _check_schedule(schedule):
    if schedule not in SCHEDULES:
        raise ValueError(f"unknown schedule {schedule!r}; expected one of {SCHEDULES}")


def _set_gaussian(bel, mean, prec, name):
    # checked before it replaces the old belief
    type(bel)(mean, prec).check_finite(name)
    bel.set(mean, prec)


def _set_gamma(bel, alpha, rate, name):
    type(bel)(alpha, rate).check_positive(name)
    bel.set(alpha, rate)


def expected_sq_residual(state):
    """
    Per-entry E[(y - sum_k c d)^2] under the factorised posterior.

    The clean signal is a sum of products of independent Gaussians, so besides
    the squared residual of the means it carries the variance
    sum_k (E[c^2] E[d^2] - E[c]^2 E[d]^2).
    """
    C, D = state.coefficients, state.dictionary
    mC, mD = C.e(), D.e()
    resid = state.signals - mC @ mD
    var_clean = C.e2() @ D.e2() - (mC ** 2) @ (mD ** 2)
    return resid ** 2 + var_clean


def update_coefficients(state, hp=None, schedule="parallel"):
    hp = _hp(state, hp)
    _check_schedule(schedule)
    Y = state.signals
    C, D = state.coefficients, state.dictionary
    Eb = state.noise_precision.e()
    mD = D.e()

    prec = state.coefficient_precisions.e() + Eb * D.e2().sum(1)
    prec = clamp_floor(prec, hp.floor, "coefficients.precision")

    mC = C.e()
    if schedule == "parallel":
        resid = Y - mC @ mD
        # add back each basis' own contribution: the explaining-away residual
        proj = resid @ mD.T + mC * (mD ** 2).sum(1)
        mean = Eb * proj / prec
    else:
        mean = mC.clone()
        resid = Y - mean @ mD
        for k in range(state.K):
            r_k = resid + torch.outer(mean[:, k], mD[k])
            mean[:, k] = Eb * (r_k @ mD[k]) / prec[:, k]
            resid = r_k - torch.outer(mean[:, k], mD[k])
    _set_gaussian(C, mean, prec, "coefficients")


def update_dictionary(state, hp=None, schedule="parallel"):
    hp = _hp(state, hp)
    _check_schedule(schedule)
    Y = state.signals
    C, D = state.coefficients, state.dictionary
    Eb = state.noise_precision.e()
    Etd = state.dictionary_precisions.e()
    mMu = state.dictionary_means.e()
    mC = C.e()

    prec = Etd + Eb * C.e2().sum(0)[:, None]
    prec = clamp_floor(prec, hp.floor, "dictionary.precision")

    mD = D.e()
    if schedule == "parallel":
        resid = Y - mC @ mD
        proj = mC.T @ resid + (mC ** 2).sum(0)[:, None] * mD
        mean = (Etd * mMu + Eb * proj) / prec
    else:
        mean = mD.clone()
        resid = Y - mC @ mean
        for k in range(state.K):
            r_k = resid + torch.outer(mC[:, k], mean[k])
            mean[k] = (Etd[k] * mMu[k] + Eb * (mC[:, k] @ r_k)) / prec[k]
            resid = r_k - torch.outer(mC[:, k], mean[k])
    _set_gaussian(D, mean, prec, "dictionary")


def update_dictionary_means(state, hp=None):
    """
    Gaussian prior N(0, 1/p0) on a Gaussian mean observed through D.
    """
    hp = _hp(state, hp)
    Etd = state.dictionary_precisions.e()
    prec = hp.dictionary_mean_precision + Etd
    prec = clamp_floor(prec, hp.floor, "dictionary_means.precision")
    mean = Etd * state.dictionary.e() / prec
    _set_gaussian(state.dictionary_means, mean, prec, "dictionary_means")


def update_coefficient_precisions(state, hp=None):
    hp = _hp(state, hp)
    C2 = state.coefficients.e2()
    alpha = torch.full_like(C2, hp.a + 0.5)
    rate = clamp_floor(hp.b + 0.5 * C2, hp.floor, "coefficient_precisions.rate")
    _set_gamma(state.coefficient_precisions, alpha, rate, "coefficient_precisions")


def update_dictionary_precisions(state, hp=None):
    """
    Optional; by default tau_d stays at its prior.
    """
    hp = _hp(state, hp)
    D, Mu = state.dictionary, state.dictionary_means
    sq_dev = D.e2() - 2.0 * D.e() * Mu.e() + Mu.e2()
    alpha = torch.full_like(sq_dev, hp.dictionary_precision_shape + 0.5)
    rate = clamp_floor(
        hp.dictionary_precision_rate + 0.5 * sq_dev, hp.floor,
        "dictionary_precisions.rate")
    _set_gamma(state.dictionary_precisions, alpha, rate, "dictionary_precisions")


def update_noise_precision(state, hp=None):
    hp = _hp(state, hp)
    n_obs = state.S * state.W
    alpha = torch.as_tensor(hp.noise_shape + 0.5 * n_obs, dtype=torch.float64)
    rate = hp.noise_rate + 0.5 * expected_sq_residual(state).sum()
    rate = clamp_floor(rate, hp.floor, "noise_precision.rate")
    _set_gamma(state.noise_precision, alpha, rate, "noise_precision")


def prime(state, hp=None):
    """
    Refresh the precision beliefs from the seeded Gaussians, so the first
    sweep sees coefficient precisions consistent with the initialization
    rather than the raw prior mean a/b.
    """
    hp = _hp(state, hp)
    update_coefficient_precisions(state, hp)
    if hp.update_dictionary_precisions:
        update_dictionary_precisions(state, hp)
    update_noise_precision(state, hp)


def sweep(state, hp=None, schedule="parallel"):
    """
    One full pass over every variable in the fixed order.
    """
    hp = _hp(state, hp)
    if state.signals is None:
        raise ValueError("no observed signals; call set_observed first")
    update_coefficients(state, hp, schedule=schedule)
    update_dictionary(state, hp, schedule=schedule)
    update_dictionary_means(state, hp)
    update_coefficient_precisions(state, hp)
    if hp.update_dictionary_precisions:
        update_dictionary_precisions(state, hp)
    update_noise_precision(state, hp)
