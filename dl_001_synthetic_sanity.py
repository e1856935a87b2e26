# %%
"""
sanity check the dictionary learner on the sine-atom problem

Y = C D + noise, S signals of width W, K atoms;
each signal uses 2-3 atoms.
"""
# %load_ext autoreload
# %autoreload 2

import os
from pprint import pprint

import torch
from dotenv import load_dotenv
import matplotlib.pyplot as plt
from tueplots import bundles

from bayes_dict import vmp
from bayes_dict.synthetic import make_synthetic
from bayes_dict.metrics import reconstruction_metrics, sparsity_fraction, atom_recovery
from bayes_dict.plots import atom_plot, multi_heatmap, trace_plot
from bayes_dict.jobs import save_artefact

load_dotenv()

# Intermediate results we do not wish to vesion
LOG_DIR = os.getenv("LOG_DIR", "_logs")
# Outputs we wish to keep
OUTPUT_DIR = os.getenv("OUTPUT_DIR", "outputs")
# Figures we wish to keep
FIG_DIR = os.getenv("FIG_DIR", "fig")

torch.set_default_dtype(torch.float64)
import lovely_tensors as lt
lt.monkey_patch()

plt.rcParams.update(bundles.iclr2024())

S, K, W = 200, 8, 64
# init = "random"
init = "true"
schedule = "parallel"
# schedule = "serial"
SAVE_FIGURES = True

#%%
data = make_synthetic(S, K, W, noise_std=0.1, seed=42)
print(data.signals)

hp = vmp.Hyperparameters(sparse=True)
state = vmp.build(S, K, W, hyperparameters=hp)
vmp.initialize(
    state, seed=42,
    custom_dictionary_means=data.dictionary if init == "true" else None)
state.set_observed(data.signals)

ctl = vmp.InferenceController(
    state,
    max_iterations=100,
    schedule=schedule,
    track_elbo=True,
    verbose=1,
)
ctl.solve()
post = vmp.extract(ctl)
pprint(ctl.diagnosis()["state"]["noise_precision"])

#%%
recon = vmp.reconstruct_signals(post.coefficients, post.dictionary)
metrics = reconstruction_metrics(data.signals, recon)
metrics["sparsity"] = sparsity_fraction(post.coefficients)
metrics["true_sparsity"] = sparsity_fraction(data.coefficients)
metrics["atom_recovery"] = atom_recovery(data.dictionary, post.dictionary)
pprint(metrics)

#%%
figs = dict(
    atoms=atom_plot(post.dictionary, truth=data.dictionary),
    coefficients=multi_heatmap(
        [post.coefficients[:40], data.coefficients[:40]],
        names=['learned', 'true']),
    trace=trace_plot(ctl),
)
if SAVE_FIGURES:
    os.makedirs(FIG_DIR, exist_ok=True)
    for name, fig in figs.items():
        fig.savefig(os.path.join(FIG_DIR, f"dl_001_{init}_{schedule}_{name}.pdf"))
save_artefact(
    dict(metrics=metrics, posterior=post, diagnosis=ctl.diagnosis()),
    f"dl_001_{init}_{schedule}", OUTPUT_DIR)
plt.show()

# %%
