from collections.abc import Iterable
from typing import Optional, Union

import numpy as np
import scanpy as sc
from scanpy import logging as logg

from .._validate import validate_layer, validate_mask_var
from ._variance_decomposition import _get_dense


def project_pca(
    adata: sc.AnnData,
    layer: Optional[str] = None,
    mask_var: Optional[Union[str, Iterable[bool]]] = None,
    n_comps: int = 2,
    zero_center: bool = True,
    key_added: str = "pca",
) -> None:
    """\
    Principal component projection of a gene subset.

    The projection always has `n_comps` columns; components beyond the rank
    of the selected data are zero.

    Parameters
    ----------
    adata
        Annotated data matrix.
    layer
        Layer to project, e.g. ``'corrected'``, `.X` if `None`.
    mask_var
        Boolean `.var` key or mask of genes to use, all genes if `None`.
    n_comps
        Number of principal components.
    zero_center
        Center genes before projecting.
    key_added
        Stored as `.obsm['X_' + key_added]`, `.varm[key_added + '_PCs']` and
        `.uns[key_added]`.
    """
    from sklearn.decomposition import PCA

    assert n_comps >= 1, f"'n_comps' must be at least 1: {n_comps}"
    mask = validate_mask_var(adata, mask_var)
    genes = adata.var_names if mask is None else adata.var_names[mask.to_numpy()]
    if len(genes) == 0:
        raise ValueError("No genes selected for PCA.")

    logg_start = logg.info(
        f"computing PCA with {n_comps} components on {len(genes)} genes"
    )
    X = _get_dense(adata[:, genes], validate_layer(adata, layer))
    if zero_center:
        X = X - X.mean(axis=0)

    n_fit = min(n_comps, X.shape[0], X.shape[1])
    if n_fit < n_comps:
        logg.warning(
            f"data supports only {n_fit} components, remaining components are zero"
        )
    pca = PCA(n_components=n_fit, svd_solver="full")
    # PCA centers internally; undo for uncentered projections
    pca.fit(X)
    X_pca = (X - (pca.mean_ if zero_center else 0.0)) @ pca.components_.T

    coords = np.zeros((adata.n_obs, n_comps), dtype=np.float32)
    coords[:, :n_fit] = X_pca
    variance = np.zeros(n_comps)
    variance[:n_fit] = pca.explained_variance_
    variance_ratio = np.zeros(n_comps)
    variance_ratio[:n_fit] = pca.explained_variance_ratio_
    loadings = np.zeros((adata.n_vars, n_comps))
    loadings[adata.var_names.get_indexer(genes), :n_fit] = pca.components_.T

    key_obsm, key_varm, key_uns = f"X_{key_added}", f"{key_added}_PCs", key_added
    adata.obsm[key_obsm] = coords
    adata.varm[key_varm] = loadings
    adata.uns[key_uns] = {
        "params": {
            "zero_center": zero_center,
            "layer": layer,
            "mask_var": mask_var if isinstance(mask_var, str) else None,
        },
        "variance": variance,
        "variance_ratio": variance_ratio,
    }

    logg.info("    finished", time=logg_start)
    logg.debug(
        "and added\n"
        f"    {key_obsm!r}, the PCA coordinates (adata.obsm)\n"
        f"    {key_varm!r}, the loadings (adata.varm)\n"
        f"    'variance', the variance / eigenvalues (adata.uns[{key_uns!r}])\n"
        f"    'variance_ratio', the variance ratio (adata.uns[{key_uns!r}])"
    )
    return
