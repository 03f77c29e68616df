"""Pytest configuration and shared fixtures for scanpy_lvm tests."""

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest
import scanpy as sc

import scanpy_lvm as sl


# ============================================================================
# Bundled data fixtures
# ============================================================================


@pytest.fixture(scope="session", autouse=True)
def _settings():
    sc.settings.verbosity = 1
    sc.settings.n_jobs = 1
    sc.settings.autoshow = False


@pytest.fixture
def raw_adata() -> sc.AnnData:
    """Bundled counts, freshly loaded."""
    return sl.datasets.mesc_cell_cycle()


def _normalize(adata: sc.AnnData) -> sc.AnnData:
    sl.pp.size_factors(adata, method="deseq")
    adata.X = adata.layers["normalized"].copy()
    sc.pp.log1p(adata)
    return adata


@pytest.fixture(scope="session")
def _decomposed_adata() -> sc.AnnData:
    adata = _normalize(sl.datasets.mesc_cell_cycle())
    sl.pp.fit_technical_noise(adata, flavor="log")
    sl.pp.variable_genes(adata, method="fit")
    sl.tl.fit_latent_factor(
        adata, sl.datasets.GO_CELL_CYCLE, n_factors=1, mask_var="variable"
    )
    sl.tl.variance_decomposition(adata, key="cell_cycle", n_jobs=1)
    return adata


@pytest.fixture
def normalized_adata() -> sc.AnnData:
    """Size factor normalized, log1p transformed bundled data."""
    return _normalize(sl.datasets.mesc_cell_cycle())


@pytest.fixture
def noise_adata(normalized_adata) -> sc.AnnData:
    """Normalized data with technical noise and variable genes."""
    sl.pp.fit_technical_noise(normalized_adata, flavor="log")
    sl.pp.variable_genes(normalized_adata, method="fit")
    return normalized_adata


@pytest.fixture
def decomposed_adata(_decomposed_adata) -> sc.AnnData:
    """Data after cell-cycle factor fit and variance decomposition."""
    return _decomposed_adata.copy()


# ============================================================================
# Synthetic data fixtures
# ============================================================================


@pytest.fixture
def rank1_data() -> dict:
    """Cells x genes matrix driven by a single latent factor plus noise."""
    rng = np.random.default_rng(42)
    n_obs, n_vars = 120, 40
    x = rng.normal(size=n_obs)
    w = rng.normal(loc=1.0, scale=0.5, size=n_vars)
    Y = np.outer(x, w) + rng.normal(scale=0.3, size=(n_obs, n_vars))
    return {"Y": Y, "x": x, "w": w}


@pytest.fixture
def rank1_adata(rank1_data) -> sc.AnnData:
    """`AnnData` wrapping :func:`rank1_data` with flat technical noise."""
    adata = sc.AnnData(rank1_data["Y"].astype(np.float32))
    adata.obs_names = [f"cell{i:03d}" for i in range(adata.n_obs)]
    adata.var_names = [f"gene{i:02d}" for i in range(adata.n_vars)]
    adata.var["tech_noise"] = 0.05
    adata.var["variable"] = True
    return adata
