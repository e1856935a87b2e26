"""
Replicated experiments over the dictionary learner.

A trial is `n_replicates` runs of one parameter setting with seeds
0..n_replicates-1, submitted through a submitit executor; a sweep is a list
of trials over values of one parameter. Everything that crosses a process
boundary is saved with bz2 + cloudpickle.
"""
import bz2
import os
import time
import warnings
from collections import defaultdict
from pprint import pprint

import cloudpickle
import numpy as np
import submitit
from memory_profiler import memory_usage

from .metrics import reconstruction_metrics, sparsity_fraction, atom_recovery
from .synthetic import make_synthetic
from .vmp import Hyperparameters, build, initialize, InferenceController, extract
from .vmp.extraction import reconstruct_signals


def run_experiment(
        S=200, K=8, W=64,
        sparse=True, a=None, b=None,
        noise_std=0.1,
        max_iterations=100,
        schedule="parallel",
        init="random",
        update_dictionary_precisions=False,
        measure_memory=False,
        seed=0,
        **settings):
    """
    Fit one synthetic problem end to end; return a flat dict of floats.

    `init="true"` seeds the dictionary at the generating atoms, which isolates
    the coefficient model from the much harder dictionary search.
    """
    data = make_synthetic(S, K, W, noise_std=noise_std, seed=seed)
    hp = Hyperparameters(
        sparse=sparse, a=a, b=b,
        update_dictionary_precisions=update_dictionary_precisions)

    if measure_memory:
        peak_memory_start = memory_usage(max_usage=True)
    start_time = time.time()

    state = build(S, K, W, hyperparameters=hp)
    initialize(
        state, seed=seed,
        custom_dictionary_means=data.dictionary if init == "true" else None)
    state.set_observed(data.signals)
    controller = InferenceController(
        state,
        max_iterations=max_iterations,
        schedule=schedule,
        **settings)
    controller.solve()
    posterior = extract(controller)

    elapsed_time = time.time() - start_time
    if measure_memory:
        peak_memory_usage = memory_usage(max_usage=True) - peak_memory_start
    else:
        peak_memory_usage = np.nan

    reconstructed = reconstruct_signals(posterior.coefficients, posterior.dictionary)
    result = reconstruction_metrics(data.signals, reconstructed)
    result.update(
        sparsity=sparsity_fraction(posterior.coefficients),
        true_sparsity=sparsity_fraction(data.coefficients),
        atom_recovery=float(
            atom_recovery(data.dictionary, posterior.dictionary).mean()),
        noise_precision=posterior.noise_precision,
        elbo=controller.current_elbo(),
        n_iterations=float(posterior.n_iterations),
        time=elapsed_time,
        memory=peak_memory_usage,
    )
    return result


def compute_percentiles(results, percentiles=(0.025, 0.5, 0.975)):
    """
    Per-key nan-percentiles over a list of result dicts sharing keys.
    """
    if len(results) == 0:
        raise ValueError("no results to summarise")
    qs = [p * 100 for p in percentiles]
    summary = {}
    for key in results[0].keys():
        try:
            summary[key] = np.nanpercentile([r[key] for r in results], qs)
        except Exception as e:
            # re-raise but tell us which key failed.
            raise ValueError(f"Failed to compute percentiles for key {key}") from e
    return summary


def run_trial(fn, trial_params, n_replicates, executor, batch=False):
    """
    Submit `n_replicates` calls of `fn(**trial_params, seed=i)`.
    """
    def _submit_all():
        return [
            executor.submit(fn, **trial_params, seed=seed)
            for seed in range(n_replicates)]

    if batch:
        with executor.batch():
            jobs = _submit_all()
    else:
        jobs = _submit_all()
    return jobs


def reduce_trial_jobs(jobs, reducer):
    """
    Wait on every job, warn about the failures and reduce the rest.
    """
    results = []
    for job in jobs:
        job.wait()
        if job.state in ('DONE', 'COMPLETED'):
            results.append(job.result())
        else:
            warnings.warn(f"job {job.job_id} not completed: {job.state}")
            print(job.stdout())
            print(job.stderr())

    if len(results) == 0:
        raise ValueError("empty trial")
    return reducer(results)


def sweep_params(
        fn, base_kwargs, sweep_param, sweep_values, n_replicates,
        executor, experiment_name, log_dir, batch=False):
    """
    One trial per value of `sweep_param`; the job handles are saved to
    `log_dir` so the sweep can be reduced from another session.
    """
    executor.update_parameters(name=experiment_name)
    trials = []
    for value in sweep_values:
        trial_params = dict(base_kwargs, **{sweep_param: value})
        trials.append(dict(
            params=trial_params,
            jobs=run_trial(fn, trial_params, n_replicates, executor, batch=batch)))
    save_artefact(trials, experiment_name + ".experiment", log_dir)
    return trials


def reduce_experiment(trials, reducer):
    experiment_results = []
    for trial in trials:
        try:
            stats = reduce_trial_jobs(trial['jobs'], reducer)
        except ValueError:
            warnings.warn("Null trial")
            pprint(trial['params'])
            continue
        experiment_results.append(dict(params=trial['params'], results=stats))
    return experiment_results


def prepare_data_for_plotting(experiment_results, sweep_param):
    """
    {metric: {quantile_index: array of (param value, quantile value)}}
    """
    plot_data = defaultdict(lambda: defaultdict(list))
    for trial in experiment_results:
        param_value = trial['params'][sweep_param]
        for key, quantiles in trial['results'].items():
            for qi, q in enumerate(quantiles):
                plot_data[key][qi].append((param_value, q))
    return {
        key: {qi: np.array(v) for qi, v in by_q.items()}
        for key, by_q in plot_data.items()}


def plot_experiment_results(
        ax, sweep_param, y_key, experiment_results, label,
        **kwargs):
    """
    Median with error bars to the outer percentiles, per sweep value.
    Assumes three percentiles, as `compute_percentiles` defaults to.
    """
    plot_data = prepare_data_for_plotting(experiment_results, sweep_param)
    if y_key not in plot_data:
        raise ValueError(f"y_key '{y_key}' not found in experiment results.")

    param_values, lower = plot_data[y_key][0].T
    _, medians = plot_data[y_key][1].T
    _, upper = plot_data[y_key][2].T
    ax.errorbar(
        param_values, medians, yerr=[medians - lower, upper - medians],
        fmt='_', label=label, **kwargs)
    return ax


def save_artefact(artefact, artefact_name, output_dir):
    "zipped pickler, defaulting to an output directory"
    os.makedirs(output_dir, exist_ok=True)
    file_path = os.path.join(output_dir, artefact_name + ".pkl.bz2")
    with bz2.open(file_path, "wb") as f:
        cloudpickle.dump(artefact, f)
    return file_path


def load_artefact(artefact_name, output_dir):
    "zipped unpickler"
    file_path = os.path.join(output_dir, artefact_name + ".pkl.bz2")
    with bz2.open(file_path, "rb") as f:
        return cloudpickle.load(f)


def make_executor(log_dir=None, cluster=None, **parameters):
    """
    submitit executor logging under $LOG_DIR; `cluster="local"` or "debug"
    runs without slurm.
    """
    if log_dir is None:
        log_dir = os.getenv("LOG_DIR", "_logs")
    executor = submitit.AutoExecutor(folder=log_dir, cluster=cluster)
    parameters.setdefault("timeout_min", 59)
    if os.getenv('SLURM_ACCOUNT'):
        parameters.setdefault("slurm_account", os.getenv('SLURM_ACCOUNT'))
    executor.update_parameters(**parameters)
    return executor
