# %%
"""
How much sparsity does the coefficient precision prior buy us?
Sweep the noise level for the sparse Gamma(0.5, 3e-6) and dense Gamma(1, 1)
priors, replicated over seeds.
"""
# %load_ext autoreload
# %autoreload 2

import os
from pprint import pprint

import numpy as np
import torch
from dotenv import load_dotenv
import matplotlib.pyplot as plt
from tueplots import bundles, figsizes

from bayes_dict.jobs import (
    run_experiment, sweep_params, reduce_experiment, compute_percentiles,
    plot_experiment_results, make_executor, save_artefact, load_artefact)

load_dotenv()

LOG_DIR = os.getenv("LOG_DIR", "_logs")
OUTPUT_DIR = os.getenv("OUTPUT_DIR", "outputs")
FIG_DIR = os.getenv("FIG_DIR", "fig")

torch.set_default_dtype(torch.float64)
import lovely_tensors as lt
lt.monkey_patch()

plt.rcParams.update(bundles.iclr2024())
plt.rcParams.update(figsizes.iclr2024(nrows=1, ncols=2))

exp_prefix = "dl_sparse_dense"
sweep_param = 'noise_std'
sweep_values = np.geomspace(0.01, 1.0, num=9)
n_replicates = 20

#%% sweep some params
base_kwargs = dict(
    S=200,
    K=8,
    W=64,
    max_iterations=100,
    schedule="parallel",
    init="true",
    measure_memory=True,
)

executor = make_executor(
    LOG_DIR,
    # cluster="debug",
    slurm_array_parallelism=40,
    slurm_mem=4*1024,
)

exps = {}
for sparse in [True, False]:
    exp_name = f"{exp_prefix}_{'sparse' if sparse else 'dense'}"
    exps[exp_name] = sweep_params(
        run_experiment, {**base_kwargs, 'sparse': sparse},
        sweep_param, sweep_values, n_replicates,
        executor, exp_name, LOG_DIR, batch=True)

#%% Resume experiment
results = {}
for exp_name in exps:
    trials = load_artefact(exp_name + ".experiment", LOG_DIR)
    results[exp_name] = reduce_experiment(
        trials,
        lambda rs: compute_percentiles(rs, percentiles=[0.025, 0.5, 0.975]))
save_artefact(results, exp_prefix, OUTPUT_DIR)
pprint(results)

#%%
fig, axs = plt.subplots(1, 2)
for exp_name, res in results.items():
    plot_experiment_results(axs[0], sweep_param, 'snr_db', res, label=exp_name)
    plot_experiment_results(axs[1], sweep_param, 'sparsity', res, label=exp_name)
for ax, y in zip(axs, ['SNR (dB)', 'fraction |c| < 0.05']):
    ax.set_xscale('log')
    ax.set_xlabel('noise sd')
    ax.set_ylabel(y)
axs[0].legend()
os.makedirs(FIG_DIR, exist_ok=True)
fig.savefig(os.path.join(FIG_DIR, f"{exp_prefix}.pdf"))
plt.show()

# %%
