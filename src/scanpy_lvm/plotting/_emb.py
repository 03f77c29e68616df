from collections.abc import Iterable
from typing import Optional, Union

import matplotlib as mpl
import numpy as np
import scanpy as sc
from matplotlib.lines import Line2D

from .._validate import isiterable, validate_groupby
from ._baseplot import MultiPanelFigure
from ._helper import get_marker_size, get_palette


def _process_basis(adata: sc.AnnData, basis: str) -> str:
    for b in [basis, f"X_{basis}"]:
        if b in adata.obsm.keys():
            return b
    raise KeyError(f"Key {basis} not in .obsm.")


def pca(
    adata: sc.AnnData,
    bases: Union[str, Iterable[str]] = ("pca_uncorrected", "pca_corrected"),
    groupby: Optional[str] = "phase",
    titles: Optional[Iterable[str]] = None,
    shuffle_order: bool = True,
    ax: Optional[mpl.axes.Axes] = None,
    fig: Optional[mpl.figure.Figure] = None,
    **kwargs,
) -> Optional[Union[mpl.axes.Axes, np.ndarray]]:
    """\
    Scatter of the first two principal components, one panel per basis.

    Parameters
    ----------
    adata
        Annotated data matrix after :func:`scanpy_lvm.tl.project_pca`.
    bases
        `.obsm` keys, with or without the ``X_`` prefix.
    groupby
        Categorical `.obs` key coloring the cells, e.g. ``'phase'``.
    titles
        Panel titles, the bases if `None`.
    shuffle_order
        Draw cells in random order so no group is hidden below another.
    ax, fig
        Axes (single basis) or figure to draw on.
    **kwargs
        Passed to :class:`MultiPanelFigure`, e.g. `show`, `save` and `ncols`.
    """
    _bases = [_process_basis(adata, b) for b in (bases if isiterable(bases) else [bases])]
    _titles = (
        [b[2:] if b.startswith("X_") else b for b in _bases]
        if titles is None
        else list(titles)
    )
    assert len(_titles) == len(_bases), "Length of titles and bases is not equal."

    mpfig = MultiPanelFigure(**kwargs)
    mpfig.create_fig(_bases, ax=ax, fig=fig)

    if groupby is not None:
        validate_groupby(adata, groupby)
        palette = get_palette(adata, groupby, mpfig.palette)
        labels = adata.obs[groupby].astype(str).to_numpy()
        colors = np.array([palette[x] for x in labels])
    else:
        colors = np.full(adata.n_obs, mpfig.edge_color)
    order = (
        np.random.default_rng(mpfig.random_state).permutation(adata.n_obs)
        if shuffle_order
        else np.arange(adata.n_obs)
    )
    size = (
        get_marker_size(adata.n_obs, mpfig.figsize)
        if mpfig.size is None
        else mpfig.size
    )

    for i, (basis, title) in enumerate(zip(_bases, _titles)):
        cur_ax = mpfig.get_ax(i)
        coords = np.asarray(adata.obsm[basis])
        if coords.shape[1] < 2:
            raise ValueError(f"Basis {basis} has fewer than 2 components.")
        cur_ax.scatter(
            coords[order, 0],
            coords[order, 1],
            c=colors[order],
            s=size,
            rasterized=True,
        )
        key_uns = basis[2:] if basis.startswith("X_") else basis
        ratio = adata.uns.get(key_uns, {}).get("variance_ratio")
        xlab, ylab = "PC1", "PC2"
        if ratio is not None:
            xlab += f" ({ratio[0] * 100:.1f}%)"
            ylab += f" ({ratio[1] * 100:.1f}%)"
        cur_ax.set_xlabel(xlab)
        cur_ax.set_ylabel(ylab)
        cur_ax.set_title(title)
        cur_ax.set_xticks([])
        cur_ax.set_yticks([])

    if groupby is not None:
        handles = [
            Line2D(
                [], [], marker="o", ls="", color=c, label=k, markersize=4
            )
            for k, c in palette.items()
        ]
        mpfig.get_ax(len(_bases) - 1).legend(
            handles=handles, title=groupby, **mpfig.legend_params
        )
    mpfig.cleanup()

    return mpfig.save_or_show("pca")
