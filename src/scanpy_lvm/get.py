from collections.abc import Iterable
from typing import Optional, Union

import pandas as pd
import scanpy as sc

from ._validate import isiterable, validate_layer

VD_PREFIX = "vd_"
VD_RESIDUAL = "residual"
VD_TECHNICAL = "technical"
VD_CONVERGED = "converged"


def obs_categories(
    adata: sc.AnnData,
    key: str,
) -> Iterable[str]:
    return list(
        adata.obs[key].cat.categories
        if isinstance(adata.obs[key].dtype, pd.CategoricalDtype)
        else adata.obs[key].unique()
    )


def obs_data(
    adata: sc.AnnData,
    keys: Union[str, Iterable[str]],
    layer: Optional[str] = None,
) -> Union[pd.Series, pd.DataFrame]:
    """\
    `.obs` columns or gene expression values per cell.

    A single key is returned as a Series, several keys as a DataFrame.
    """
    from scanpy.get import obs_df

    feats = list(keys) if isiterable(keys) else [keys]
    df = obs_df(adata, feats, layer=validate_layer(adata, layer))
    return df[feats[0]] if len(feats) == 1 else df


def variance_components(
    adata: sc.AnnData,
    converged_only: bool = True,
) -> pd.DataFrame:
    """\
    Per-gene variance fractions from :func:`scanpy_lvm.tl.variance_decomposition`.

    Parameters
    ----------
    adata
        Annotated data matrix with a stored variance decomposition.
    converged_only
        Drop genes whose fit did not converge.

    Returns
    -------
    DataFrame indexed by gene with one column per variance component
    (latent factor, residual biological, technical) and, unless filtered,
    a boolean ``converged`` column.
    """
    if "variance_decomposition" not in adata.uns.keys():
        raise KeyError(
            "Could not find 'variance_decomposition' in .uns. "
            "Run `tl.variance_decomposition` first."
        )
    components = list(adata.uns["variance_decomposition"]["components"])
    cols = [f"{VD_PREFIX}{c}" for c in components]
    conv_col = f"{VD_PREFIX}{VD_CONVERGED}"
    # NA marks genes that were not part of the decomposition
    decomposed = adata.var[conv_col].notna()
    df = adata.var.loc[decomposed, cols + [conv_col]].copy()
    df.columns = components + [VD_CONVERGED]
    df[VD_CONVERGED] = df[VD_CONVERGED].astype(bool)
    if converged_only:
        df = df.loc[df[VD_CONVERGED], components]
    return df


__all__ = [
    "obs_categories",
    "obs_data",
    "variance_components",
]
