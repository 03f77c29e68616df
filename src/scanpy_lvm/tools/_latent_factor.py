from collections.abc import Iterable
from typing import Optional, Union

import numpy as np
import scanpy as sc
from scanpy import logging as logg
from scanpy.get import _get_obs_rep
from scipy.sparse import issparse

from .._utilities import gene_liftover
from .._validate import validate_layer, validate_mask_var
from ._factor_model import ARDFactorModel


def _select_genes(
    adata: sc.AnnData,
    gene_list: Iterable[str],
    mask_var: Optional[Union[str, Iterable[bool]]] = None,
) -> list[str]:
    genes = gene_liftover(adata, gene_list)
    mask = validate_mask_var(adata, mask_var)
    if mask is not None:
        genes = [g for g in genes if mask[g]]
    return genes


def fit_latent_factor(
    adata: sc.AnnData,
    gene_list: Iterable[str],
    n_factors: int = 1,
    ard: bool = False,
    layer: Optional[str] = None,
    mask_var: Optional[Union[str, Iterable[bool]]] = None,
    key_added: str = "cell_cycle",
    max_iter: int = 1000,
    tol: float = 1e-6,
    inplace: bool = True,
) -> Optional[ARDFactorModel]:
    """\
    Fit a latent factor on a gene set and derive a cell-cell similarity.

    Parameters
    ----------
    adata
        Annotated data matrix with log expression.
    gene_list
        Genes characterizing the factor, e.g. cell-cycle genes. Genes missing
        from `adata.var_names` are skipped.
    n_factors
        Rank of the factor model.
    ard
        Use automatic relevance determination priors. Fit with a generous
        `n_factors`, inspect the variance explained per factor with
        :func:`scanpy_lvm.pl.factor_variance` and refit with the chosen rank.
    layer
        Layer holding log expression, `.X` if `None`.
    mask_var
        Boolean `.var` key or mask further restricting the genes, e.g.
        ``'variable'``.
    key_added
        Name of the factor. Refitting with the same name replaces the
        stored state.
    max_iter, tol
        EM iterations and relative tolerance.
    inplace
        Write to `adata` or return the fitted model.

    Returns
    -------
    Depending on `inplace`, updates `adata` with

    `.obsp[key_added]`
        cell-cell similarity matrix of the factor.
    `.obsm['X_' + key_added]`
        latent factor coordinates.
    `.varm[key_added + '_loadings']`
        factor loadings, zero for genes not used.
    `.uns[key_added]`
        parameters, used genes and variance explained per factor.

    or returns the fitted :class:`ARDFactorModel`.
    """
    genes = _select_genes(adata, gene_list, mask_var)
    if len(genes) < n_factors:
        raise ValueError(
            f"Only {len(genes)} genes of the gene set are available, "
            f"need at least {n_factors}."
        )

    start = logg.info(
        f"fitting {n_factors} latent factor(s) {key_added!r} on {len(genes)} genes"
        + (" with ARD" if ard else "")
    )
    X = _get_obs_rep(adata[:, genes], layer=validate_layer(adata, layer))
    X = X.toarray() if issparse(X) else np.asarray(X)

    model = ARDFactorModel(n_factors=n_factors, ard=ard, max_iter=max_iter, tol=tol)
    model.fit(X)
    if not model.converged_:
        logg.warning(
            f"latent factor {key_added!r} did not converge in {model.n_iter_} iterations"
        )
    logg.debug(
        "variance explained per factor: "
        + ", ".join(f"{x:.3f}" for x in model.variance_explained_)
    )

    if not inplace:
        logg.info("    finished", time=start)
        return model

    adata.obsp[key_added] = model.kernel()
    adata.obsm[f"X_{key_added}"] = model.latent_
    loadings = np.zeros((adata.n_vars, n_factors), dtype=np.float64)
    loadings[adata.var_names.get_indexer(genes)] = model.loadings_
    adata.varm[f"{key_added}_loadings"] = loadings
    adata.uns[key_added] = {
        "params": {
            "n_factors": n_factors,
            "ard": ard,
            "layer": layer,
            "max_iter": max_iter,
            "tol": tol,
        },
        "genes": list(genes),
        "variance_explained": model.variance_explained_,
        "noise_variance": model.noise_variance_,
        "converged": model.converged_,
        "n_iter": model.n_iter_,
    }
    if ard:
        adata.uns[key_added]["alpha"] = model.alpha_

    logg.info(
        "    finished",
        time=start,
        deep=(
            "added\n"
            f"    {key_added!r}, cell-cell similarity (adata.obsp)\n"
            f"    'X_{key_added}', latent factors (adata.obsm)\n"
            f"    '{key_added}_loadings', factor loadings (adata.varm)\n"
            f"    {key_added!r}, variance explained and parameters (adata.uns)"
        ),
    )
