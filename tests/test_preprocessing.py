"""Tests for size factors, technical noise fitting and variable genes."""

import numpy as np
import pandas as pd
import pytest

import scanpy_lvm as sl
from scanpy_lvm.preprocessing._trend_fit import weighted_median


class TestSizeFactors:
    """Tests for size_factors."""

    def test_deseq(self, raw_adata):
        """Median-of-ratios size factors are positive and centered near one."""
        sl.pp.size_factors(raw_adata, method="deseq")
        sf = raw_adata.obs["size_factors"].to_numpy()
        assert np.all(sf > 0)
        assert 0.5 < np.exp(np.mean(np.log(sf))) < 2.0
        assert "normalized" in raw_adata.layers

    def test_total(self, raw_adata):
        """Total count size factors have mean one and normalize totals."""
        sl.pp.size_factors(raw_adata, method="total", layer_added="norm")
        sf = raw_adata.obs["size_factors"].to_numpy()
        assert np.isclose(sf.mean(), 1.0)
        totals = np.asarray(raw_adata.layers["norm"]).sum(axis=1)
        assert np.allclose(totals, totals[0], rtol=1e-4)

    def test_invalid_method(self, raw_adata):
        with pytest.raises(ValueError):
            sl.pp.size_factors(raw_adata, method="median")

    def test_missing_layer(self, raw_adata):
        with pytest.raises(KeyError):
            sl.pp.size_factors(raw_adata, layer="spliced")

    def test_deseq_requires_ubiquitous_gene(self, raw_adata):
        """A cell without counts leaves no gene for the median of ratios."""
        raw_adata.X[0, :] = 0
        with pytest.raises(ValueError, match="expressed in every cell"):
            sl.pp.size_factors(raw_adata, method="deseq")

    @pytest.mark.parametrize("method", ["deseq", "total"])
    def test_source_unchanged(self, raw_adata, method):
        X = np.array(raw_adata.X, copy=True)
        sl.pp.size_factors(raw_adata, method=method)
        assert np.array_equal(np.asarray(raw_adata.X), X)


class TestWeightedMedian:
    """Tests for weighted_median."""

    def test_unweighted_odd(self):
        assert weighted_median(np.array([3.0, 1.0, 2.0])) == 2.0

    def test_unweighted_even(self):
        assert weighted_median(np.array([1.0, 2.0, 3.0, 4.0])) == 2.5

    def test_weights(self):
        """Heavy weight pulls the median to its value."""
        x = np.array([1.0, 2.0, 3.0])
        w = np.array([1.0, 1.0, 10.0])
        assert weighted_median(x, w) == 3.0

    def test_na_rm(self):
        assert weighted_median(np.array([1.0, np.nan, 3.0, 5.0]), na_rm=True) == 3.0


class TestTechnicalNoiseFit:
    """Tests for the mean to technical CV² curve."""

    @pytest.fixture
    def poisson_like(self):
        rng = np.random.default_rng(0)
        means = np.exp(rng.uniform(np.log(0.5), np.log(500.0), size=300))
        cv2 = (0.1 + 1.0 / means) * np.exp(rng.normal(scale=0.1, size=300))
        return means, cv2

    def test_invalid_flavor(self):
        with pytest.raises(ValueError):
            sl.pp.TechnicalNoiseFit(flavor="spline")

    def test_too_few_genes(self):
        with pytest.raises(ValueError):
            sl.pp.TechnicalNoiseFit().fit(np.array([1.0, 2.0]), np.array([1.0, 0.5]))

    @pytest.mark.parametrize("flavor", ["log", "loess", "counts"])
    def test_fit_predict(self, poisson_like, flavor):
        """Every flavor follows a decreasing mean-CV² trend."""
        means, cv2 = poisson_like
        tfit = sl.pp.TechnicalNoiseFit(flavor=flavor).fit(means, cv2)
        pred = tfit.predict(np.array([1.0, 10.0, 100.0]))
        assert np.all(np.isfinite(pred))
        assert np.all(pred > 0)
        assert pred[0] > pred[1] > pred[2]
        assert flavor in repr(tfit)

    def test_counts_recovers_params(self, poisson_like):
        """The gamma GLM recovers the generating coefficients."""
        means, cv2 = poisson_like
        tfit = sl.pp.TechnicalNoiseFit(flavor="counts").fit(means, cv2)
        assert tfit.params_["a0"] == pytest.approx(0.1, rel=0.2)
        assert tfit.params_["a1"] == pytest.approx(1.0, rel=0.2)

    def test_predict_invalid_means(self, poisson_like):
        tfit = sl.pp.TechnicalNoiseFit(flavor="log").fit(*poisson_like)
        pred = tfit.predict(np.array([0.0, np.nan, 5.0]))
        assert np.isnan(pred[0]) and np.isnan(pred[1])
        assert np.isfinite(pred[2])


class TestFitTechnicalNoise:
    """Tests for fit_technical_noise."""

    @pytest.mark.parametrize("flavor", ["log", "loess", "counts"])
    def test_columns(self, normalized_adata, flavor):
        sl.pp.fit_technical_noise(normalized_adata, flavor=flavor)
        for col in ["means", "cv2", "cv2_tech", "tech_noise", "ercc"]:
            assert col in normalized_adata.var.columns
        assert normalized_adata.uns["technical_noise"]["flavor"] == flavor
        fitted = normalized_adata.var["cv2_tech"].notna()
        assert fitted.sum() > 100
        assert np.all(normalized_adata.var.loc[fitted, "tech_noise"] > 0)

    def test_low_mean_genes_unfitted(self, normalized_adata):
        sl.pp.fit_technical_noise(normalized_adata, min_mean=1.0)
        low = normalized_adata.var["means"] < 1.0
        assert normalized_adata.var.loc[low, "cv2_tech"].isna().all()

    def test_not_inplace(self, normalized_adata):
        df = sl.pp.fit_technical_noise(normalized_adata, inplace=False)
        assert isinstance(df, pd.DataFrame)
        assert df.shape[0] == normalized_adata.n_vars
        assert "cv2_tech" not in normalized_adata.var.columns

    def test_invalid_flavor(self, normalized_adata):
        with pytest.raises(ValueError):
            sl.pp.fit_technical_noise(normalized_adata, flavor="poisson")

    def test_ercc_missing(self, normalized_adata):
        """Spike-in fitting without spike-ins raises ValueError."""
        with pytest.raises(ValueError, match="spike-in"):
            sl.pp.fit_technical_noise(normalized_adata, use_ercc=True)

    def test_tech_noise_delta_method(self, normalized_adata):
        sl.pp.fit_technical_noise(normalized_adata)
        var = normalized_adata.var.dropna(subset=["cv2_tech"])
        expected = var["cv2_tech"] * var["means"] ** 2 / (1 + var["means"]) ** 2
        assert np.allclose(var["tech_noise"], expected)


class TestVariableGenes:
    """Tests for variable_genes."""

    def test_fit_method(self, noise_adata):
        """Most cell-cycle genes exceed the technical noise."""
        var = noise_adata.var
        assert var["variable"].dtype == bool
        assert 0 < var["variable"].sum() < noise_adata.n_vars
        cc = var.loc[var["go_cell_cycle"], "variable"]
        assert cc.mean() >= 0.5
        assert noise_adata.uns["variable_genes"]["threshold"] == 0.1

    def test_fit_threshold_monotone(self, noise_adata):
        low = sl.pp.variable_genes(noise_adata, threshold=0.05, inplace=False)
        high = sl.pp.variable_genes(noise_adata, threshold=0.5, inplace=False)
        assert high["variable"].sum() <= low["variable"].sum()
        assert not (high["variable"] & ~low["variable"]).any()

    def test_fdr_method(self, noise_adata):
        df = sl.pp.variable_genes(noise_adata, method="fdr", inplace=False)
        for col in ["pvals", "pvals_adj", "variable", "cv2_residual"]:
            assert col in df.columns
        valid = df["pvals"].notna()
        assert np.all(df.loc[valid, "pvals_adj"] >= df.loc[valid, "pvals"] - 1e-12)
        assert df["variable"].sum() > 0

    def test_invalid_method(self, noise_adata):
        with pytest.raises(ValueError):
            sl.pp.variable_genes(noise_adata, method="dispersion")

    def test_requires_noise_fit(self, normalized_adata):
        with pytest.raises(KeyError, match="fit_technical_noise"):
            sl.pp.variable_genes(normalized_adata)
