from matplotlib import pyplot as plt
from math import ceil
import numpy as np
from matplotlib.colors import Normalize
from einops import asnumpy


def multi_heatmap(xs, names=None, crange=None, base_size=3.0, dpi=100):
    """
    Side-by-side heatmaps on a shared symmetric colour scale.
    """
    xs = [asnumpy(x) for x in xs]
    n_ims = len(xs)
    if names is None:
        names = range(n_ims)
    fig, axs = plt.subplots(
        1, n_ims, figsize=(base_size*n_ims, base_size),
        dpi=dpi)
    if crange is None:
        vmax = max([np.abs(x).max() for x in xs])
        vmin = -vmax
    else:
        vmin = -crange
        vmax = crange
    ims = []
    norm = Normalize(vmin=vmin, vmax=vmax)
    cmap = plt.get_cmap('RdBu')
    if n_ims == 1:
        # ffs matplotlib "helps" by flattening the array. single subplot is not a thing.
        iter_axs = [axs]
    else:
        iter_axs = axs

    for x, name, ax in zip(xs, names, iter_axs):
        ax.set_axis_off()
        ax.set_title(name)
        im = ax.imshow(x, interpolation='nearest', aspect='auto', norm=norm, cmap=cmap)
        ims.append(im)

    fig.colorbar(ims[0], ax=axs, orientation='vertical', shrink = 0.6)
    return fig


def dictionary_heatmap(learned, truth=None, **kwargs):
    if truth is None:
        return multi_heatmap([learned], names=['learned'], **kwargs)
    return multi_heatmap(
        [learned, truth],
        names=['learned', 'true'],
        **kwargs)


def atom_plot(dictionary, truth=None, n_cols=4, base_size=2.0):
    """
    One small panel per atom (row of the dictionary); truth dashed if given.
    """
    dictionary = asnumpy(dictionary)
    K, W = dictionary.shape
    n_cols = min(n_cols, K)
    n_rows = ceil(K / n_cols)
    fig, axes = plt.subplots(
        n_rows, n_cols,
        figsize=(base_size * n_cols, base_size * n_rows),
        squeeze=False, sharex=True)
    axes = axes.flatten()
    for ax in axes[K:]:
        ax.set_axis_off()
    x = np.arange(W)
    for k in range(K):
        ax = axes[k]
        ax.plot(x, dictionary[k], color='red', lw=1, label='learned')
        if truth is not None:
            ax.plot(
                x, asnumpy(truth)[k], color='black', alpha=0.5,
                linestyle='dashed', lw=1, label='truth')
        ax.set_title(f'atom {k}')
    if truth is not None:
        axes[0].legend()
    return fig


def trace_plot(controller, ax=None):
    """
    Per-iteration MSE, and ELBO on a twin axis where it was tracked.
    """
    if ax is None:
        fig, ax = plt.subplots()
    else:
        fig = ax.figure
    its = np.arange(1, len(controller.mse_trace) + 1)
    ax.semilogy(its, controller.mse_trace, color='red', label='MSE')
    ax.set_xlabel('iteration')
    ax.set_ylabel('E[residual^2]')
    if controller.elbo_trace:
        ax2 = ax.twinx()
        ax2.plot(
            np.arange(1, len(controller.elbo_trace) + 1),
            controller.elbo_trace, color='black', label='ELBO')
        ax2.set_ylabel('ELBO')
    ax.set_title(f'{controller.run_state.value} after {controller.iteration} iterations')
    return fig
