import math
import warnings

import torch


def clamp_floor(x, floor, name=""):
    """
    Clamp a tensor of precisions or rates to be at least `floor`.
    NaNs pass through untouched so the caller can still detect them.
    """
    low = x < floor
    if torch.any(low):
        warnings.warn(
            f"{name}: {int(low.sum())} value(s) below {floor:g} clamped",
            RuntimeWarning, stacklevel=3)
        x = torch.where(low, torch.as_tensor(floor, dtype=x.dtype), x)
    return x


def mean_sq_change(old, new):
    return float(((new - old) ** 2).mean())


def relative_change(old, new):
    """
    |new - old| / |old|, used for ELBO convergence.
    """
    if not (math.isfinite(old) and math.isfinite(new)):
        return math.inf
    if old == 0.0:
        return abs(new - old)
    return abs(new - old) / abs(old)
