import math
import warnings

from ._base import NumericalInstability, RunState
from .elbo import elbo
from .updates import prime, sweep, expected_sq_residual, SCHEDULES
from ..math_helpers import mean_sq_change, relative_change

CVG_METRICS = ("elbo", "moments")


class InferenceController:
    """
    InferenceController objects enforce a sane inference cycle on one
    `PosteriorState`: a priming step, then sweeps of the fixed update order
    until convergence or the iteration budget runs out.

        INITIALIZED -> RUNNING -> CONVERGED
                               -> MAX_ITERATIONS_REACHED
                               -> ABORTED
    """
    def __init__(self, state, hyperparameters=None, **settings):
        if state.signals is None:
            raise ValueError("no observed signals; call set_observed first")
        self.state = state
        self.hyperparameters = (
            hyperparameters if hyperparameters is not None
            else state.hyperparameters)
        self._settings = settings
        self._settings.setdefault("max_iterations", 100)
        self._settings.setdefault("cvg_tol", None)
        self._settings.setdefault("cvg_metric", "elbo")
        self._settings.setdefault("cvg_patience", 3)
        self._settings.setdefault("schedule", "parallel")
        self._settings.setdefault("prime", True)
        self._settings.setdefault("track_elbo", False)
        self._settings.setdefault("verbose", 0)
        self._settings.setdefault("log_every", 10)
        self._settings.setdefault("callback", lambda i, ctl: None)
        self._settings.setdefault("DEBUG_MODE", False)
        self._check_settings()

        self.run_state = RunState.INITIALIZED
        self.iteration = 0
        self.elbo_trace = []
        self.mse_trace = []
        self.failure = None
        self._callback_log = []
        self._n_below_tol = 0
        self._elbo = None

    def _check_settings(self):
        if self.get_setting("schedule") not in SCHEDULES:
            raise ValueError(
                f"unknown schedule {self.get_setting('schedule')!r}; "
                f"expected one of {SCHEDULES}")
        if self.get_setting("cvg_metric") not in CVG_METRICS:
            raise ValueError(
                f"unknown cvg_metric {self.get_setting('cvg_metric')!r}; "
                f"expected one of {CVG_METRICS}")
        max_iterations = self.get_setting("max_iterations")
        if int(max_iterations) != max_iterations or max_iterations < 0:
            raise ValueError(
                f"max_iterations={max_iterations} must be a non-negative integer")
        if self.get_setting("cvg_patience") < 1:
            raise ValueError("cvg_patience must be at least 1")

    def __repr__(self):
        return (
            f"{type(self).__name__}({self.state!r}, "
            f"run_state={self.run_state.value}, iteration={self.iteration})")

    def is_debug(self):
        return self.get_setting('DEBUG_MODE', False)

    def get_settings(self):
        return self._settings

    def get_setting(self, key, *fallbackarg):
        if len(fallbackarg) > 0:
            return self._settings.get(key, fallbackarg[0])
        return self._settings[key]

    def set_settings(self, **settings):
        self._settings.update(settings)
        self._check_settings()

    @property
    def callback_log(self):
        return self._callback_log

    def is_terminal(self):
        return self.run_state.is_terminal()

    def _tracks_elbo(self):
        return (
            self.get_setting("track_elbo")
            or (self.get_setting("cvg_tol") is not None
                and self.get_setting("cvg_metric") == "elbo"))

    def _start(self):
        if self.is_terminal():
            raise RuntimeError(
                f"inference already finished ({self.run_state.value}); "
                "build a new controller to run again")
        if self.run_state is RunState.INITIALIZED:
            self.run_state = RunState.RUNNING
            if self.get_setting("prime"):
                # "first" step; just refresh precisions from the seed
                self._guarded(prime, self.state, self.hyperparameters)
            if self._tracks_elbo():
                self._elbo = elbo(self.state, self.hyperparameters)

    def _guarded(self, fn, *args, **kwargs):
        """
        Run one update pass; on failure the state is rolled back to what it
        was before the pass, so an aborted run holds the last good sweep.
        """
        snapshot = self.state.snapshot()
        try:
            return fn(*args, **kwargs)
        except NumericalInstability as e:
            self.state.restore(snapshot)
            self.run_state = RunState.ABORTED
            self.failure = e.at_iteration(self.iteration + 1)
            raise

    def _measure(self, prev_C, prev_D):
        """
        Record traces; return the convergence statistic of the last sweep.
        """
        self.mse_trace.append(
            float(expected_sq_residual(self.state).mean()))
        delta = None
        if self._tracks_elbo():
            prev_elbo = self._elbo
            self._elbo = elbo(self.state, self.hyperparameters)
            self.elbo_trace.append(self._elbo)
            if self._elbo < prev_elbo - 1e-8 * abs(prev_elbo):
                if self.is_debug() or self.get_setting("schedule") == "serial":
                    warnings.warn(
                        f"ELBO decreased at iteration {self.iteration}: "
                        f"{prev_elbo} -> {self._elbo}")
            if self.get_setting("cvg_metric") == "elbo":
                delta = relative_change(prev_elbo, self._elbo)
        if self.get_setting("cvg_metric") == "moments":
            delta = max(
                mean_sq_change(prev_C, self.state.coefficients.e()),
                mean_sq_change(prev_D, self.state.dictionary.e()))
        return delta

    def step(self):
        """
        A single sweep.
        broken into its own method so we can watch convergence interactively.
        Returns the run state afterwards.
        """
        self._start()
        if self.iteration >= self.get_setting("max_iterations"):
            self.run_state = RunState.MAX_ITERATIONS_REACHED
            return self.run_state
        prev_C = self.state.coefficients.e().clone()
        prev_D = self.state.dictionary.e().clone()
        self._guarded(
            sweep, self.state, self.hyperparameters,
            schedule=self.get_setting("schedule"))
        self.iteration += 1
        delta = self._measure(prev_C, prev_D)
        self._log(delta)
        self.get_setting("callback")(self.iteration, self)

        cvg_tol = self.get_setting("cvg_tol")
        if cvg_tol is not None and delta is not None and delta < cvg_tol:
            self._n_below_tol += 1
        else:
            self._n_below_tol = 0
        if self._n_below_tol >= self.get_setting("cvg_patience"):
            self.run_state = RunState.CONVERGED
        elif self.iteration >= self.get_setting("max_iterations"):
            self.run_state = RunState.MAX_ITERATIONS_REACHED
        return self.run_state

    def _log(self, delta):
        verbose = self.get_setting("verbose")
        if not verbose:
            return
        i = self.iteration
        if i == 1 or i % self.get_setting("log_every") == 0:
            msg = f"Iteration {i}/{self.get_setting('max_iterations')}"
            msg += f" --- MSE {self.mse_trace[-1]:.6g}"
            if self.elbo_trace:
                msg += f" --- ELBO {self.elbo_trace[-1]:.6g}"
            if verbose > 1 and delta is not None:
                msg += f" --- delta {delta:.3g}"
            print(msg)

    def solve(self, callback=lambda i, ctl: None):
        """
        Complete inference loop.
        This is how we would usually invoke it;
        but we break out `step` so we can analyse the convergence.
        """
        self._start()
        while not self.is_terminal():
            self.step()
            callback_rtn = callback(self.iteration, self)
            if callback_rtn is not None:
                self._callback_log.append(callback_rtn)
        if self.get_setting("verbose"):
            print(
                f"inference {self.run_state.value} after {self.iteration} iterations")
        return self.run_state

    def current_elbo(self):
        if self._elbo is None or not self._tracks_elbo():
            return elbo(self.state, self.hyperparameters)
        return self._elbo

    def diagnosis(self):
        """
        Return a dict of diagnostic information about the run.
        """
        settings = {
            k: v for k, v in self._settings.items() if k != "callback"}
        last_elbo = self.elbo_trace[-1] if self.elbo_trace else math.nan
        return dict(
            settings=settings,
            run_state=self.run_state.value,
            iteration=self.iteration,
            last_elbo=last_elbo,
            last_mse=self.mse_trace[-1] if self.mse_trace else math.nan,
            failure=None if self.failure is None else str(self.failure),
            state=self.state.diagnosis(),
        )
