import matplotlib.pyplot as plt
import pytest
import torch

from bayes_dict.plots import multi_heatmap, dictionary_heatmap, atom_plot, trace_plot
from bayes_dict.synthetic import sine_dictionary
from bayes_dict.vmp import InferenceController


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close("all")


class TestPlots:

    def test_multi_heatmap_single_and_many(self):
        fig = multi_heatmap([torch.randn(4, 5)])
        assert len(fig.axes) == 2  # image + colorbar
        fig = multi_heatmap([torch.randn(4, 5), torch.randn(4, 5)], names=["a", "b"])
        assert [ax.get_title() for ax in fig.axes[:2]] == ["a", "b"]

    def test_dictionary_heatmap(self):
        D = sine_dictionary(3, 16)
        fig = dictionary_heatmap(D, truth=D)
        assert fig.axes[0].get_title() == "learned"

    def test_atom_plot_panels(self):
        D = sine_dictionary(5, 16)
        fig = atom_plot(D, truth=D, n_cols=4)
        # 2 x 4 grid, 3 spare panels switched off
        assert len(fig.axes) == 8
        assert sum(ax.axison for ax in fig.axes) == 5

    def test_trace_plot(self, small_state):
        ctl = InferenceController(small_state, max_iterations=3, track_elbo=True)
        ctl.solve()
        fig = trace_plot(ctl)
        assert len(fig.axes) == 2
        assert len(fig.axes[0].lines[0].get_xdata()) == 3
