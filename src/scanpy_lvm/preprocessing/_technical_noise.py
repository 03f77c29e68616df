"""
Technical noise modeling for single-cell RNA sequencing counts.

Without spike-in controls the technical noise is estimated from the
endogenous genes: the mean-CV² relationship across genes is dominated by
sampling noise, so a smooth curve through all genes serves as the expected
technical CV² of a gene given its mean expression.
"""

from typing import Literal, Optional

import numpy as np
import pandas as pd
import scanpy as sc
from scanpy import logging as logg
from scanpy.get import _get_obs_rep
from scipy.sparse import issparse

from .._validate import validate_layer
from ._trend_fit import TechnicalNoiseFit

INFO_COLS = ["means", "cv2", "cv2_tech", "tech_noise"]


def _get_mean_cv2(X) -> tuple[np.ndarray, np.ndarray]:
    from scanpy.preprocessing._utils import _get_mean_var

    means, variances = _get_mean_var(X)
    means = np.asarray(means, dtype=np.float64)
    variances = np.asarray(variances, dtype=np.float64)
    with np.errstate(divide="ignore", invalid="ignore"):
        cv2 = np.where(means > 0.0, variances / np.square(means), np.nan)
    return means, cv2


def log_technical_variance(means: np.ndarray, cv2_tech: np.ndarray) -> np.ndarray:
    """Technical variance of ``log1p`` expression by the delta method."""
    _means = np.asarray(means, dtype=np.float64)
    return np.asarray(cv2_tech) * np.square(_means) / np.square(1.0 + _means)


def size_factors(
    adata: sc.AnnData,
    method: Literal["deseq", "total"] = "deseq",
    layer: Optional[str] = None,
    key_added: str = "size_factors",
    layer_added: Optional[str] = "normalized",
) -> None:
    """\
    Estimate cell-specific size factors and normalize counts.

    Parameters
    ----------
    adata
        Annotated data matrix of read counts.
    method
        ``'deseq'`` uses the median of ratios to the per-gene geometric mean
        over genes expressed in every cell [Anders10]_. ``'total'`` uses the
        total counts per cell scaled to mean one.
    layer
        Layer holding the counts, `.X` if `None`.
    key_added
        Key in `.obs` for the size factors.
    layer_added
        Layer for the normalized counts, skipped if `None`.
    """
    if method not in ("deseq", "total"):
        raise ValueError(f"Unrecognized size factor method: {method}")

    start = logg.info(f"computing size factors using method {method!r}")
    X = _get_obs_rep(adata, layer=validate_layer(adata, layer))
    X = X.toarray() if issparse(X) else np.asarray(X)
    X = X.astype(np.float64, copy=False)

    if method == "deseq":
        expressed = np.all(X > 0.0, axis=0)
        if not expressed.any():
            raise ValueError(
                "No gene is expressed in every cell; use method='total' instead."
            )
        log_X = np.log(X[:, expressed])
        log_geo_means = log_X.mean(axis=0)
        sf = np.exp(np.median(log_X - log_geo_means, axis=1))
        logg.debug(f"used {expressed.sum()} genes expressed in every cell")
    else:
        totals = X.sum(axis=1)
        sf = totals / np.mean(totals)

    adata.obs[key_added] = sf
    if layer_added is not None:
        adata.layers[layer_added] = (X / sf[:, None]).astype(np.float32)

    logg.info(
        "    finished",
        time=start,
        deep=(
            f"added\n    {key_added!r}, size factors (adata.obs)"
            + (
                f"\n    {layer_added!r}, normalized counts (adata.layers)"
                if layer_added is not None
                else ""
            )
        ),
    )


def fit_technical_noise(
    adata: sc.AnnData,
    flavor: Literal["log", "loess", "counts"] = "log",
    use_ercc: bool = False,
    ercc_prefix: str = "ERCC-",
    layer: Optional[str] = "normalized",
    min_mean: float = 0.1,
    span: float = 0.8,
    use_density_weights: bool = True,
    inplace: bool = True,
) -> Optional[pd.DataFrame]:
    """\
    Fit the technical noise of each gene from its mean expression.

    Parameters
    ----------
    adata
        Annotated data matrix of (size factor normalized) counts.
    flavor
        Family of the mean-CV² curve, see :class:`TechnicalNoiseFit`.
    use_ercc
        Fit the curve on spike-in genes instead of endogenous genes.
    ercc_prefix
        Prefix of spike-in gene names.
    layer
        Layer holding normalized counts, `.X` if `None`.
    min_mean
        Genes with lower mean are not used for fitting.
    span
        LOESS span for ``flavor='loess'``.
    inplace
        Write to `.var` and `.uns` or return a DataFrame.

    Returns
    -------
    Depending on `inplace`, updates `adata.var` with

    `means`, `cv2`
        observed mean and squared coefficient of variation.
    `cv2_tech`
        CV² expected from technical noise.
    `tech_noise`
        technical variance of log1p expression.

    or returns them as a DataFrame.
    """
    if not isinstance(adata, sc.AnnData):
        raise ValueError(
            "`pp.fit_technical_noise` expects an `AnnData` argument, "
            "pass `inplace=False` if you want to return a `pd.DataFrame`."
        )
    tfit = TechnicalNoiseFit(
        flavor=flavor, span=span, use_density_weights=use_density_weights
    )

    start = logg.info(
        f"fitting technical noise with flavor {flavor!r}"
        + (" on spike-ins" if use_ercc else " without spike-ins")
    )
    X = _get_obs_rep(adata, layer=validate_layer(adata, layer))
    means, cv2 = _get_mean_cv2(X)

    is_ercc = adata.var_names.str.startswith(ercc_prefix)
    if use_ercc:
        if not is_ercc.any():
            raise ValueError(f"No spike-in genes with prefix {ercc_prefix!r} found.")
        fit_idx = is_ercc
    else:
        fit_idx = ~is_ercc
    fit_idx = fit_idx & np.isfinite(cv2) & (cv2 > 0.0) & (means >= min_mean)
    logg.debug(f"fitting on {fit_idx.sum()} genes")

    tfit.fit(means[fit_idx], cv2[fit_idx])
    logg.debug(f"fitted {tfit!r}")

    cv2_tech = tfit.predict(means)
    cv2_tech[means < min_mean] = np.nan
    df = pd.DataFrame(
        dict(
            means=means,
            cv2=cv2,
            cv2_tech=cv2_tech,
            tech_noise=log_technical_variance(means, cv2_tech),
        ),
        index=adata.var_names,
    )

    logg.info("    finished", time=start)

    if not inplace:
        return df

    adata.uns["technical_noise"] = {
        "flavor": flavor,
        "use_ercc": use_ercc,
        "min_mean": min_mean,
        "params": dict(tfit.params_),
        "n_fit_genes": int(fit_idx.sum()),
        "std_dev": float(tfit.std_dev(means[fit_idx], cv2[fit_idx])),
    }
    logg.hint(
        "added\n"
        "    'means', float vector (adata.var)\n"
        "    'cv2', float vector (adata.var)\n"
        "    'cv2_tech', float vector (adata.var)\n"
        "    'tech_noise', float vector (adata.var)"
    )
    for x in INFO_COLS:
        adata.var[x] = df[x]
    adata.var["ercc"] = is_ercc
