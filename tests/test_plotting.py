"""Smoke tests for plotting functions on the Agg backend."""

import matplotlib.pyplot as plt
import numpy as np
import pytest

import scanpy_lvm as sl


@pytest.fixture(autouse=True)
def _close_figures():
    yield
    plt.close("all")


@pytest.fixture
def corrected_adata(decomposed_adata):
    sl.tl.corrected_expression(decomposed_adata)
    sl.tl.project_pca(decomposed_adata, mask_var="corrected", key_added="pca_uncorrected")
    sl.tl.project_pca(
        decomposed_adata,
        layer="corrected",
        mask_var="corrected",
        key_added="pca_corrected",
    )
    return decomposed_adata


class TestConfigure:
    """Tests for pl.configure."""

    @pytest.mark.parametrize("kind", ["article", "poster"])
    def test_font_size(self, kind):
        sl.pl.configure(type=kind)
        expected = 16.0 if kind == "poster" else 6.0
        assert plt.rcParams["font.size"] == expected


class TestTechnicalNoisePlot:
    def test_returns_axes(self, noise_adata):
        ax = sl.pl.technical_noise(noise_adata, show=False)
        assert ax.get_xscale() == "log"
        assert len(ax.get_lines()) == 1

    def test_requires_fit(self, normalized_adata):
        with pytest.raises(KeyError):
            sl.pl.technical_noise(normalized_adata, show=False)


class TestFactorPlots:
    def test_kernel(self, decomposed_adata):
        ax = sl.pl.kernel(decomposed_adata, key="cell_cycle", groupby="phase", show=False)
        assert len(ax.get_images()) == 1
        assert "phase_colors" in decomposed_adata.uns

    def test_kernel_on_given_axes(self, decomposed_adata):
        _, ax = plt.subplots()
        ret = sl.pl.kernel(decomposed_adata, groupby=None, ax=ax, show=False)
        assert ret is ax

    def test_factor_variance(self, noise_adata):
        sl.tl.fit_latent_factor(
            noise_adata, sl.datasets.GO_CELL_CYCLE, n_factors=5, ard=True
        )
        ax = sl.pl.factor_variance(noise_adata, show=False)
        assert len(ax.collections[0].get_offsets()) == 5

    def test_factor_variance_missing(self, noise_adata):
        with pytest.raises(KeyError):
            sl.pl.factor_variance(noise_adata, show=False)


class TestVarianceComponentsPlot:
    @pytest.mark.parametrize("kind", ["pie", "box"])
    def test_kinds(self, decomposed_adata, kind):
        ax = sl.pl.variance_components(decomposed_adata, kind=kind, show=False)
        assert ax is not None

    def test_invalid_kind(self, decomposed_adata):
        with pytest.raises(ValueError):
            sl.pl.variance_components(decomposed_adata, kind="bar", show=False)


class TestPcaPlot:
    def test_two_panels(self, corrected_adata):
        axs = sl.pl.pca(corrected_adata, show=False)
        assert np.asarray(axs).size == 2
        assert axs[0][0].get_title() == "pca_uncorrected"

    def test_single_basis(self, corrected_adata):
        ax = sl.pl.pca(corrected_adata, bases="pca_corrected", groupby=None, show=False)
        assert ax.get_xlabel().startswith("PC1")

    def test_missing_basis(self, corrected_adata):
        with pytest.raises(KeyError):
            sl.pl.pca(corrected_adata, bases="umap", show=False)
