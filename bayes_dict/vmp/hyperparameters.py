import copy
import math
from typing import Optional

from ._base import PRECISION_FLOOR


class Hyperparameters:
    """
    Fixed prior constants of the dictionary learning model.

    Only the coefficient precision prior Gamma(a, b) is user-facing;
    `sparse` picks its default. The rest are the fixed priors of the graph:

        tau_c[s, k] ~ Gamma(a, b)
        c[s, k]     ~ N(0, 1/tau_c[s, k])
        mu_d[k, w]  ~ N(0, 1)
        tau_d[k, w] ~ Gamma(1, 0.1)
        d[k, w]     ~ N(mu_d[k, w], 1/tau_d[k, w])
        beta        ~ Gamma(1, 1)
        y[s, w]     ~ N(sum_k c[s, k] d[k, w], 1/beta)
    """
    SPARSE_SHAPE = 0.5
    SPARSE_RATE = 3e-6
    DENSE_SHAPE = 1.0
    DENSE_RATE = 1.0

    def __init__(self,
                 sparse: bool = True,
                 a: Optional[float] = None,
                 b: Optional[float] = None,
                 update_dictionary_precisions: bool = False,
                 noise_shape: float = 1.0,
                 noise_rate: float = 1.0,
                 dictionary_precision_shape: float = 1.0,
                 dictionary_precision_rate: float = 0.1,
                 dictionary_mean_precision: float = 1.0,
                 init_precision: float = 10.0,
                 init_halfwidth: float = 0.1,
                 floor: float = PRECISION_FLOOR) -> None:
        self.sparse = bool(sparse)
        if a is None:
            a = self.SPARSE_SHAPE if self.sparse else self.DENSE_SHAPE
        if b is None:
            b = self.SPARSE_RATE if self.sparse else self.DENSE_RATE
        self.a = float(a)
        self.b = float(b)
        # tau_d is held at its prior unless asked otherwise
        self.update_dictionary_precisions = bool(update_dictionary_precisions)
        self.noise_shape = float(noise_shape)
        self.noise_rate = float(noise_rate)
        self.dictionary_precision_shape = float(dictionary_precision_shape)
        self.dictionary_precision_rate = float(dictionary_precision_rate)
        self.dictionary_mean_precision = float(dictionary_mean_precision)
        self.init_precision = float(init_precision)
        self.init_halfwidth = float(init_halfwidth)
        self.floor = float(floor)
        self._validate()

    def _validate(self):
        for name in (
                "a", "b", "noise_shape", "noise_rate",
                "dictionary_precision_shape", "dictionary_precision_rate",
                "dictionary_mean_precision", "init_precision", "floor"):
            value = getattr(self, name)
            if not (math.isfinite(value) and value > 0.0):
                raise ValueError(
                    f"hyperparameter {name}={value} must be positive and finite")
        if not (math.isfinite(self.init_halfwidth) and self.init_halfwidth >= 0.0):
            raise ValueError(
                f"hyperparameter init_halfwidth={self.init_halfwidth} must be non-negative")

    def with_prior(self, a=None, b=None):
        """
        Copy with the coefficient precision prior replaced where given.
        """
        hp = copy.copy(self)
        if a is not None:
            hp.a = float(a)
        if b is not None:
            hp.b = float(b)
        hp._validate()
        return hp

    def __repr__(self):
        return (
            f"{type(self).__name__}(sparse={self.sparse}, a={self.a}, b={self.b}, "
            f"update_dictionary_precisions={self.update_dictionary_precisions})")

    def diagnosis(self):
        return dict(vars(self))
