from typing import Optional

import numpy as np
import pandas as pd
import scanpy as sc
from scanpy import logging as logg

from .._validate import validate_layer, validate_obsp_key, validate_var_keys
from ..get import VD_CONVERGED, VD_PREFIX, VD_RESIDUAL
from ._variance_decomposition import _get_dense, kernel_eigenbasis


def corrected_expression(
    adata: sc.AnnData,
    key: Optional[str] = None,
    layer: Optional[str] = None,
    layer_added: str = "corrected",
    tech_noise_key: Optional[str] = None,
    inplace: bool = True,
) -> Optional[pd.DataFrame]:
    """\
    Remove the latent factor contribution from log expression.

    For each gene with a converged variance decomposition the posterior mean
    of the factor component, ``s2_f K (s2_f K + (s2_b + tau) I)^-1 (y - mean(y))``,
    is subtracted from the observed expression.

    Parameters
    ----------
    adata
        Annotated data matrix after :func:`scanpy_lvm.tl.variance_decomposition`.
    key
        Latent factor to remove, the decomposed factor if `None`.
    layer
        Layer holding log expression, the layer of the decomposition if `None`.
    layer_added
        Layer for the corrected expression.
    tech_noise_key
        `.var` key of the technical noise, as used for the decomposition
        if `None`.
    inplace
        Write to `adata` or return a DataFrame.

    Returns
    -------
    Depending on `inplace`, updates `adata` with

    `.layers[layer_added]`
        corrected expression; genes without converged decomposition are
        copied unchanged.
    `.var['corrected']`
        whether a gene was corrected.

    or returns the corrected expression of the converged genes as a
    cells x genes DataFrame.
    """
    if "variance_decomposition" not in adata.uns.keys():
        raise KeyError(
            "Could not find 'variance_decomposition' in .uns. "
            "Run `tl.variance_decomposition` first."
        )
    vd_info = adata.uns["variance_decomposition"]
    _key = vd_info["key"] if key is None else key
    _tech_key = (
        vd_info["params"]["tech_noise_key"] if tech_noise_key is None else tech_noise_key
    )
    validate_obsp_key(adata, _key, caller="tl.fit_latent_factor")
    sf_col = f"{VD_PREFIX}sigma2_{_key}"
    sb_col = f"{VD_PREFIX}sigma2_{VD_RESIDUAL}"
    conv_col = f"{VD_PREFIX}{VD_CONVERGED}"
    validate_var_keys(adata, [sf_col, sb_col, conv_col, _tech_key])
    _layer = validate_layer(
        adata, vd_info["params"].get("layer") if layer is None else layer
    )

    corrected = adata.var[conv_col].fillna(False).to_numpy(dtype=bool)
    genes = adata.var_names[corrected]
    start = logg.info(f"removing latent factor {_key!r} from {len(genes)} genes")

    R, s = kernel_eigenbasis(np.asarray(adata.obsp[_key], dtype=np.float64))
    Y = _get_dense(adata[:, genes], _layer)
    sf = adata.var.loc[genes, sf_col].to_numpy(dtype=np.float64)
    se = adata.var.loc[genes, sb_col].to_numpy(dtype=np.float64) + adata.var.loc[
        genes, _tech_key
    ].to_numpy(dtype=np.float64)

    # shrinkage of each eigen direction, eigenvalues x genes
    signal = np.outer(s, sf)
    with np.errstate(divide="ignore", invalid="ignore"):
        shrink = np.where(signal > 0.0, signal / (signal + se[None, :]), 0.0)
    Y_corr = Y - R @ (shrink * (R.T @ Y))

    logg.info("    finished", time=start)

    if not inplace:
        return pd.DataFrame(Y_corr, index=adata.obs_names, columns=genes)

    X = _get_dense(adata, _layer)
    X[:, corrected] = Y_corr
    adata.layers[layer_added] = X.astype(np.float32)
    adata.var["corrected"] = corrected
    logg.hint(
        "added\n"
        f"    {layer_added!r}, corrected expression (adata.layers)\n"
        "    'corrected', boolean vector (adata.var)"
    )
