from typing import Literal, Optional

import numpy as np
import pandas as pd
import scanpy as sc
from scanpy import logging as logg

from .._validate import validate_var_keys

METHODS = ("fit", "fdr")


def _chi2_test(
    cv2: np.ndarray, cv2_null: np.ndarray, n_obs: int
) -> tuple[np.ndarray, np.ndarray]:
    from scipy.stats import chi2
    from statsmodels.stats import multitest

    df = n_obs - 1
    pvals = np.full_like(cv2, np.nan, dtype=np.float64)
    valid = np.isfinite(cv2) & np.isfinite(cv2_null) & (cv2_null > 0.0)
    pvals[valid] = chi2.sf(df * cv2[valid] / cv2_null[valid], df)
    pvals_adj = np.full_like(pvals, np.nan)
    if valid.any():
        pvals_adj[valid] = multitest.multipletests(
            pvals[valid], method="fdr_bh", is_sorted=False
        )[1]
    return pvals, pvals_adj


def variable_genes(
    adata: sc.AnnData,
    method: Literal["fit", "fdr"] = "fit",
    threshold: Optional[float] = None,
    min_bio_cv2: float = 0.0,
    inplace: bool = True,
) -> Optional[pd.DataFrame]:
    """\
    Flag genes with variability above the technical noise.

    Requires :func:`scanpy_lvm.pp.fit_technical_noise`.

    Parameters
    ----------
    adata
        Annotated data matrix.
    method
        ``'fit'`` flags genes whose log10 CV² lies more than `threshold` above
        the technical noise curve. ``'fdr'`` tests CV² against the technical
        CV² plus `min_bio_cv2` with a chi-squared test [Brennecke13]_ and flags
        genes below the Benjamini-Hochberg adjusted `threshold`.
    threshold
        Defaults to 0.1 for both methods.
    min_bio_cv2
        Minimum biological CV² under the null hypothesis of ``'fdr'``.
    inplace
        Write to `.var` or return a DataFrame.
    """
    if method not in METHODS:
        raise ValueError(f"Unrecognized method: {method}")
    validate_var_keys(adata, ["cv2", "cv2_tech"], caller="pp.fit_technical_noise")
    _threshold = 0.1 if threshold is None else threshold
    assert min_bio_cv2 >= 0.0, f"'min_bio_cv2' must be non-negative: {min_bio_cv2}"

    start = logg.info(f"extracting variable genes using method {method!r}")
    cv2 = adata.var["cv2"].to_numpy(dtype=np.float64)
    cv2_tech = adata.var["cv2_tech"].to_numpy(dtype=np.float64)
    fitted = np.isfinite(cv2) & np.isfinite(cv2_tech) & (cv2 > 0.0) & (cv2_tech > 0.0)

    residual = np.full_like(cv2, np.nan)
    residual[fitted] = np.log10(cv2[fitted]) - np.log10(cv2_tech[fitted])
    df = pd.DataFrame(dict(cv2_residual=residual), index=adata.var_names)

    if method == "fit":
        df["variable"] = fitted & (residual > _threshold)
    else:
        pvals, pvals_adj = _chi2_test(cv2, cv2_tech + min_bio_cv2, adata.n_obs)
        df["pvals"] = pvals
        df["pvals_adj"] = pvals_adj
        df["variable"] = fitted & (np.nan_to_num(pvals_adj, nan=1.0) < _threshold)

    n_var = int(df["variable"].sum())
    if n_var == 0:
        logg.warning("no gene exceeds the technical noise")
    logg.info(f"    finished ({n_var} variable genes)", time=start)

    if not inplace:
        return df

    adata.uns["variable_genes"] = {
        "method": method,
        "threshold": _threshold,
        "min_bio_cv2": min_bio_cv2,
    }
    logg.hint(
        "added\n"
        "    'variable', boolean vector (adata.var)\n"
        "    'cv2_residual', float vector (adata.var)"
        + (
            "\n    'pvals', float vector (adata.var)\n"
            "    'pvals_adj', float vector (adata.var)"
            if method == "fdr"
            else ""
        )
    )
    for k in df.columns:
        adata.var[k] = df[k]
