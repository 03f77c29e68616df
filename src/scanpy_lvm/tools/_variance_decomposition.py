"""
Decomposition of gene expression variance into a latent factor, residual
biological variation and technical noise.

For every gene the centered log expression is modeled as

    y = f + psi + eps,   f ~ N(0, s2_f K),  psi ~ N(0, s2_b I),  eps ~ N(0, tau I)

where ``K`` is the cell-cell similarity of the latent factor and ``tau`` the
technical noise of the gene, held fixed. ``s2_f`` and ``s2_b`` are estimated
by restricted maximum likelihood in the eigenbasis of ``K`` projected
orthogonally to the mean [Buettner15]_.
"""

from collections.abc import Iterable
from typing import Optional, Union

import numpy as np
import pandas as pd
import scanpy as sc
from joblib import Parallel, delayed
from scanpy import logging as logg
from scanpy.get import _get_obs_rep
from scipy.sparse import issparse
from tqdm import tqdm

from .._utilities import resolve_n_jobs, tqdm_joblib
from .._validate import (
    validate_layer,
    validate_mask_var,
    validate_obsp_key,
    validate_var_keys,
)
from ..get import VD_CONVERGED, VD_PREFIX, VD_RESIDUAL, VD_TECHNICAL

DENOM_FLOOR = 1e-10


def kernel_eigenbasis(K: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """\
    Orthonormal basis of the kernel restricted to the complement of the mean.

    Returns the ``n_cells x (n_cells - 1)`` rotation ``R`` with ``R^T 1 = 0``
    and the eigenvalues ``s`` of ``R^T K R``.
    """
    from scipy.linalg import eigh, null_space

    n_obs = K.shape[0]
    Q = null_space(np.ones((1, n_obs)))
    s, U = eigh(Q.T @ K @ Q)
    return Q @ U, np.clip(s, 0.0, None)


def _nll(theta: np.ndarray, s: np.ndarray, z2: np.ndarray, tau: float):
    sf, sb = theta
    d = np.maximum(sf * s + sb + tau, DENOM_FLOOR)
    r = z2 / np.square(d)
    nll = 0.5 * np.sum(np.log(d) + z2 / d)
    grad = 0.5 * np.array([np.sum(s / d - s * r), np.sum(1.0 / d - r)])
    return nll, grad


def _fit_gene(y_rot: np.ndarray, s: np.ndarray, tau: float) -> tuple[float, float, bool]:
    from scipy.optimize import minimize

    v = np.mean(np.square(y_rot))
    if not (np.isfinite(v) and v > 0.0 and np.isfinite(tau) and tau >= 0.0):
        return np.nan, np.nan, False
    # optimize in units of the observed variance
    z2 = np.square(y_rot) / v
    t = tau / v
    x0 = np.full(2, max(0.5 * (1.0 - t), 0.05))
    res = minimize(
        _nll,
        x0,
        args=(s, z2, t),
        jac=True,
        method="L-BFGS-B",
        bounds=[(0.0, None), (0.0, None)],
    )
    sf, sb = res.x * v
    converged = bool(res.success) and np.isfinite(sf) and np.isfinite(sb)
    return float(sf), float(sb), converged


def _fit_genes(
    Y_rot: np.ndarray, s: np.ndarray, tau: np.ndarray
) -> list[tuple[float, float, bool]]:
    return [_fit_gene(Y_rot[:, i], s, tau[i]) for i in range(Y_rot.shape[1])]


def _get_dense(adata: sc.AnnData, layer: Optional[str]) -> np.ndarray:
    X = _get_obs_rep(adata, layer=layer)
    # always a copy, callers write into the result
    return np.array(X.toarray() if issparse(X) else X, dtype=np.float64)


def variance_decomposition(
    adata: sc.AnnData,
    key: str = "cell_cycle",
    mask_var: Optional[Union[str, Iterable[bool]]] = "variable",
    layer: Optional[str] = None,
    tech_noise_key: str = "tech_noise",
    n_jobs: Optional[int] = None,
    inplace: bool = True,
) -> Optional[pd.DataFrame]:
    """\
    Decompose the variance of each gene into latent factor, residual biological
    and technical components.

    Parameters
    ----------
    adata
        Annotated data matrix with log expression.
    key
        Latent factor fitted by :func:`scanpy_lvm.tl.fit_latent_factor`.
    mask_var
        Boolean `.var` key or mask of genes to decompose, all genes if `None`.
    layer
        Layer holding log expression, `.X` if `None`.
    tech_noise_key
        `.var` key of the technical noise variance per gene.
    n_jobs
        Number of parallel workers, `scanpy.settings.n_jobs` if `None`.
    inplace
        Write to `.var` or return a DataFrame.

    Returns
    -------
    Depending on `inplace`, updates `adata.var` with

    `vd_<key>`, `vd_residual`, `vd_technical`
        variance fractions, summing to one for converged genes.
    `vd_converged`
        whether the fit converged, NA for genes not decomposed.
    `vd_sigma2_<key>`, `vd_sigma2_residual`
        variance estimates of the latent factor and residual components.

    or returns them as a DataFrame indexed by the decomposed genes.
    """
    validate_obsp_key(adata, key, caller="tl.fit_latent_factor")
    validate_var_keys(adata, tech_noise_key, caller="pp.fit_technical_noise")
    mask = validate_mask_var(adata, mask_var)
    genes = adata.var_names if mask is None else adata.var_names[mask.to_numpy()]
    if len(genes) == 0:
        raise ValueError("No genes selected for variance decomposition.")
    _n_jobs = resolve_n_jobs(n_jobs)

    start = logg.info(
        f"decomposing variance of {len(genes)} genes with latent factor {key!r}"
    )
    R, s = kernel_eigenbasis(np.asarray(adata.obsp[key], dtype=np.float64))
    Y_rot = R.T @ _get_dense(adata[:, genes], validate_layer(adata, layer))
    tau = adata.var.loc[genes, tech_noise_key].to_numpy(dtype=np.float64)

    chunks = [c for c in np.array_split(np.arange(len(genes)), _n_jobs * 4) if len(c)]
    with tqdm_joblib(tqdm(total=len(chunks), mininterval=0.5, miniters=1)) as _:
        res = Parallel(n_jobs=_n_jobs)(
            delayed(_fit_genes)(Y_rot[:, c], s, tau[c]) for c in chunks
        )
    res = [x for chunk in res for x in chunk]

    sigma2_f = np.array([x[0] for x in res])
    sigma2_b = np.array([x[1] for x in res])
    converged = np.array([x[2] for x in res], dtype=bool)
    total = sigma2_f + sigma2_b + tau
    with np.errstate(divide="ignore", invalid="ignore"):
        fractions = np.stack([sigma2_f, sigma2_b, tau], axis=1) / total[:, None]
    fractions[~converged] = np.nan

    components = [key, VD_RESIDUAL, VD_TECHNICAL]
    df = pd.DataFrame(fractions, index=genes, columns=components)
    df[VD_CONVERGED] = converged
    df[f"sigma2_{key}"] = np.where(converged, sigma2_f, np.nan)
    df[f"sigma2_{VD_RESIDUAL}"] = np.where(converged, sigma2_b, np.nan)

    n_failed = int((~converged).sum())
    if n_failed > 0:
        logg.warning(f"{n_failed} genes did not converge and are excluded downstream")
    logg.info("    finished", time=start)

    if not inplace:
        return df

    adata.uns["variance_decomposition"] = {
        "key": key,
        "components": components,
        "params": {
            "mask_var": mask_var if isinstance(mask_var, str) else None,
            "layer": layer,
            "tech_noise_key": tech_noise_key,
        },
    }
    for col in df.columns:
        if col == VD_CONVERGED:
            values = pd.Series(pd.NA, index=adata.var_names, dtype="boolean")
        else:
            values = pd.Series(np.nan, index=adata.var_names, dtype=np.float64)
        values.loc[genes] = df[col]
        adata.var[f"{VD_PREFIX}{col}"] = values
    logg.hint(
        "added\n"
        + "".join(f"    '{VD_PREFIX}{c}', float vector (adata.var)\n" for c in components)
        + f"    '{VD_PREFIX}{VD_CONVERGED}', boolean vector (adata.var)"
    )
