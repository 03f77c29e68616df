"""Tests for the ARD factor model and latent factor fitting."""

import numpy as np
import pytest

import scanpy_lvm as sl


class TestARDFactorModel:
    """Tests for ARDFactorModel on synthetic rank-1 data."""

    def test_recovers_factor(self, rank1_data):
        model = sl.tl.ARDFactorModel(n_factors=1).fit(rank1_data["Y"])
        assert model.converged_
        r = np.corrcoef(model.latent_[:, 0], rank1_data["x"])[0, 1]
        assert abs(r) > 0.95
        assert model.latent_.shape == (120, 1)
        assert model.loadings_.shape == (40, 1)
        assert model.alpha_ is None

    def test_ard_shrinks_surplus_factors(self, rank1_data):
        """Factors beyond the true rank explain little variance under ARD."""
        model = sl.tl.ARDFactorModel(n_factors=5, ard=True, max_iter=2000).fit(
            rank1_data["Y"]
        )
        ve = model.variance_explained_
        assert np.all(np.diff(ve) <= 1e-12)
        assert ve[0] > 0.5
        assert np.all(ve[1:] < 0.05 * ve[0])
        assert model.alpha_.shape == (5,)
        assert model.alpha_[0] < model.alpha_[1:].min()

    def test_kernel_scaling(self, rank1_data):
        model = sl.tl.ARDFactorModel(n_factors=1).fit(rank1_data["Y"])
        K = model.kernel()
        n = K.shape[0]
        assert K.shape == (n, n)
        assert np.allclose(K, K.T)
        H = np.eye(n) - 1.0 / n
        assert np.trace(H @ K @ H) / (n - 1) == pytest.approx(1.0)
        assert np.linalg.eigvalsh(K).min() > -1e-8

    def test_too_many_factors(self, rank1_data):
        with pytest.raises(ValueError):
            sl.tl.ARDFactorModel(n_factors=41).fit(rank1_data["Y"])

    def test_invalid_n_factors(self):
        with pytest.raises(ValueError):
            sl.tl.ARDFactorModel(n_factors=0)

    def test_constant_data(self):
        with pytest.raises(ValueError, match="zero variance"):
            sl.tl.ARDFactorModel().fit(np.ones((10, 4)))


class TestFitLatentFactor:
    """Tests for fit_latent_factor on the bundled data."""

    def test_outputs(self, noise_adata):
        genes = sl.datasets.GO_CELL_CYCLE
        sl.tl.fit_latent_factor(noise_adata, genes, mask_var="variable")
        n = noise_adata.n_obs
        assert noise_adata.obsp["cell_cycle"].shape == (n, n)
        assert noise_adata.obsm["X_cell_cycle"].shape == (n, 1)
        loadings = noise_adata.varm["cell_cycle_loadings"]
        assert loadings.shape == (noise_adata.n_vars, 1)
        info = noise_adata.uns["cell_cycle"]
        used = noise_adata.var_names.isin(info["genes"])
        assert np.all(loadings[~used] == 0)
        assert set(info["genes"]) <= set(genes)
        assert noise_adata.var.loc[info["genes"], "variable"].all()
        assert "alpha" not in info

    def test_kernel_groups_phases(self, noise_adata):
        """Cells of the same phase are more similar than cells of different phases."""
        sl.tl.fit_latent_factor(noise_adata, sl.datasets.GO_CELL_CYCLE)
        K = np.asarray(noise_adata.obsp["cell_cycle"])
        phase = noise_adata.obs["phase"].to_numpy()
        same = phase[:, None] == phase[None, :]
        np.fill_diagonal(same, False)
        diff = phase[:, None] != phase[None, :]
        assert K[same].mean() > K[diff].mean()

    def test_refit_replaces_state(self, noise_adata):
        genes = sl.datasets.GO_CELL_CYCLE
        sl.tl.fit_latent_factor(noise_adata, genes, n_factors=5, ard=True)
        assert noise_adata.obsm["X_cell_cycle"].shape[1] == 5
        assert "alpha" in noise_adata.uns["cell_cycle"]
        sl.tl.fit_latent_factor(noise_adata, genes, n_factors=1)
        assert noise_adata.obsm["X_cell_cycle"].shape[1] == 1
        assert "alpha" not in noise_adata.uns["cell_cycle"]

    def test_missing_genes_skipped(self, noise_adata):
        genes = list(sl.datasets.GO_CELL_CYCLE) + ["NotAGene1", "NotAGene2"]
        sl.tl.fit_latent_factor(noise_adata, genes)
        assert "NotAGene1" not in noise_adata.uns["cell_cycle"]["genes"]

    def test_too_few_genes(self, noise_adata):
        with pytest.raises(ValueError, match="at least"):
            sl.tl.fit_latent_factor(noise_adata, ["Cdk1"], n_factors=2)

    def test_not_inplace(self, noise_adata):
        model = sl.tl.fit_latent_factor(
            noise_adata, sl.datasets.GO_CELL_CYCLE, inplace=False
        )
        assert isinstance(model, sl.tl.ARDFactorModel)
        assert "cell_cycle" not in noise_adata.obsp
