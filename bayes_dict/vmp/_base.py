from enum import Enum

# Below this any precision or rate is treated as zero.
PRECISION_FLOOR = 1e-12


class BayesDictError(Exception):
    pass


class InvalidDimension(BayesDictError, ValueError):
    """
    A model dimension (numSignals S, numBases K, signalWidth W) is
    non-positive, or observed data has the wrong shape.
    """
    def __init__(self, name, value, message=None):
        self.name = name
        self.value = value
        if message is None:
            message = f"dimension {name}={value!r} must be a positive integer"
        super().__init__(message)


class DimensionMismatch(InvalidDimension):
    """
    A supplied matrix disagrees with the shape the model expects.
    """
    def __init__(self, name, expected, received):
        self.expected = tuple(expected)
        self.received = tuple(received)
        super().__init__(
            name, self.received,
            f"{name} has shape {self.received}, expected {self.expected}")


class NumericalInstability(BayesDictError, ArithmeticError):
    """
    A belief parameter went non-finite even after clamping.
    `index` is the first offending entry, `iteration` the sweep that produced
    it (None if raised outside a controller).
    """
    def __init__(self, name, index=None, iteration=None, detail="non-finite"):
        self.name = name
        self.index = index
        self.iteration = iteration
        self.detail = detail
        super().__init__(self._message())

    def _message(self):
        where = self.name
        if self.index is not None:
            where += str(list(self.index))
        msg = f"{self.detail} value in {where}"
        if self.iteration is not None:
            msg += f" at iteration {self.iteration}"
        return msg

    def at_iteration(self, iteration):
        self.iteration = iteration
        self.args = (self._message(),)
        return self


class NotReady(BayesDictError, RuntimeError):
    def __init__(self, run_state):
        self.run_state = run_state
        super().__init__(
            f"posterior requested while inference is {run_state.value}")


class RunState(Enum):
    INITIALIZED = "initialized"
    RUNNING = "running"
    CONVERGED = "converged"
    MAX_ITERATIONS_REACHED = "max_iterations_reached"
    ABORTED = "aborted"

    def is_terminal(self):
        return self in (
            RunState.CONVERGED,
            RunState.MAX_ITERATIONS_REACHED,
            RunState.ABORTED)


def _check_dim(name, value):
    """
    Positive python or torch integer, else InvalidDimension.
    """
    if isinstance(value, bool):
        raise InvalidDimension(name, value)
    try:
        ivalue = int(value)
    except (TypeError, ValueError):
        raise InvalidDimension(name, value) from None
    if ivalue != value or ivalue <= 0:
        raise InvalidDimension(name, value)
    return ivalue
