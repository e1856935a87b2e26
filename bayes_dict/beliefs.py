"""
Arrays of independent scalar beliefs.

The mean-field posterior factorises over every matrix entry, so a whole
matrix of beliefs is kept as a pair of same-shaped tensors rather than as
per-entry objects:

* Gaussian beliefs are held in mean/precision form (never variance), which
  keeps the natural-parameter arithmetic of the updates to adds and products.
* Gamma beliefs are held as shape/rate, with mean shape/rate.

Both offer the expected sufficient statistics their neighbours in the graph
need, and nothing else.
"""
import math

import torch
from torch.distributions import Gamma
from torch.special import digamma

from .utils import first_index

LOG_2PI = math.log(2 * math.pi)


class GaussianBeliefs:
    def __init__(self, mean: torch.Tensor, prec: torch.Tensor) -> None:
        self.mean = torch.as_tensor(mean, dtype=torch.float64)
        self.prec = torch.as_tensor(prec, dtype=torch.float64).expand_as(self.mean).clone()

    @classmethod
    def full(cls, shape, mean=0.0, prec=1.0):
        return cls(
            torch.full(shape, float(mean), dtype=torch.float64),
            torch.full(shape, float(prec), dtype=torch.float64))

    @property
    def shape(self):
        return self.mean.shape

    def e(self) -> torch.Tensor:
        return self.mean

    def var(self) -> torch.Tensor:
        return 1.0 / self.prec

    def e2(self) -> torch.Tensor:
        """
        E[x^2] = mean^2 + 1/precision
        """
        return self.mean ** 2 + 1.0 / self.prec

    def entropy(self) -> torch.Tensor:
        return 0.5 * (1.0 + LOG_2PI - torch.log(self.prec))

    def set(self, mean, prec) -> None:
        self.mean = mean
        self.prec = prec

    def clone(self) -> "GaussianBeliefs":
        return type(self)(self.mean.clone(), self.prec.clone())

    def check_finite(self, name):
        """
        Raise NumericalInstability on the first non-finite mean or a
        precision that is not strictly positive and finite.
        """
        from .vmp._base import NumericalInstability

        idx = first_index(~torch.isfinite(self.mean))
        if idx is not None:
            raise NumericalInstability(f"{name}.mean", idx)
        idx = first_index(~(torch.isfinite(self.prec) & (self.prec > 0.0)))
        if idx is not None:
            raise NumericalInstability(
                f"{name}.precision", idx, detail="non-positive or non-finite")

    def diagnosis(self):
        return dict(
            shape=tuple(self.shape),
            mean_abs_max=float(self.mean.abs().max()) if self.mean.numel() else 0.0,
            prec_min=float(self.prec.min()) if self.prec.numel() else 0.0,
            prec_max=float(self.prec.max()) if self.prec.numel() else 0.0,
        )

    def __repr__(self):
        return f"{type(self).__name__}(shape={tuple(self.shape)})"


class GammaBeliefs:
    def __init__(self, alpha: torch.Tensor, rate: torch.Tensor) -> None:
        self.alpha = torch.as_tensor(alpha, dtype=torch.float64)
        self.rate = torch.as_tensor(rate, dtype=torch.float64).expand_as(self.alpha).clone()

    @classmethod
    def full(cls, shape, alpha=1.0, rate=1.0):
        return cls(
            torch.full(shape, float(alpha), dtype=torch.float64),
            torch.full(shape, float(rate), dtype=torch.float64))

    @property
    def shape(self):
        return self.alpha.shape

    def e(self) -> torch.Tensor:
        return self.alpha / self.rate

    def elog(self) -> torch.Tensor:
        """
        E[log x] = digamma(shape) - log(rate)
        """
        return digamma(self.alpha) - torch.log(self.rate)

    def entropy(self) -> torch.Tensor:
        return Gamma(self.alpha, self.rate, validate_args=False).entropy()

    def set(self, alpha, rate) -> None:
        self.alpha = alpha
        self.rate = rate

    def clone(self) -> "GammaBeliefs":
        return type(self)(self.alpha.clone(), self.rate.clone())

    def check_positive(self, name):
        from .vmp._base import NumericalInstability

        for label, t in (("shape", self.alpha), ("rate", self.rate)):
            idx = first_index(~(torch.isfinite(t) & (t > 0.0)))
            if idx is not None:
                raise NumericalInstability(
                    f"{name}.{label}", idx, detail="non-positive or non-finite")

    def diagnosis(self):
        e = self.e()
        return dict(
            shape=tuple(self.shape),
            mean_min=float(e.min()) if e.numel() else 0.0,
            mean_max=float(e.max()) if e.numel() else 0.0,
        )

    def __repr__(self):
        return f"{type(self).__name__}(shape={tuple(self.shape)})"
