from typing import Optional

import matplotlib as mpl
import numpy as np
import scanpy as sc
from matplotlib.patches import Rectangle

from .._validate import validate_groupby, validate_obsp_key
from ._baseplot import MultiPanelFigure
from ._helper import get_palette


def kernel(
    adata: sc.AnnData,
    key: str = "cell_cycle",
    groupby: Optional[str] = "phase",
    ax: Optional[mpl.axes.Axes] = None,
    **kwargs,
) -> Optional[mpl.axes.Axes]:
    """\
    Heatmap of the cell-cell similarity of a latent factor.

    Cells are ordered by the categories of `groupby`, marked by a color bar
    along the left edge.
    """
    validate_obsp_key(adata, key, caller="tl.fit_latent_factor")
    mpfig = MultiPanelFigure(**kwargs)
    mpfig.create_fig([None], ax=ax)
    cur_ax = mpfig.get_ax(0)

    K = np.asarray(adata.obsp[key])
    if groupby is not None:
        validate_groupby(adata, groupby)
        codes = adata.obs[groupby].astype("category").cat.codes.to_numpy()
        order = np.argsort(codes, kind="stable")
    else:
        order = np.arange(adata.n_obs)
    vmax = np.quantile(np.abs(K), 0.99)
    img = cur_ax.imshow(
        K[np.ix_(order, order)],
        cmap="RdBu_r" if mpfig.color_map is None else mpfig.color_map,
        vmin=-vmax,
        vmax=vmax,
        interpolation="nearest",
        aspect="equal",
    )
    cur_ax.set_xticks([])
    cur_ax.set_yticks([])
    cur_ax.grid(visible=False)
    mpfig.fig.colorbar(img, ax=cur_ax, shrink=0.6, label="Similarity")

    if groupby is not None:
        palette = get_palette(adata, groupby, mpfig.palette)
        labels = adata.obs[groupby].astype(str).to_numpy()[order]
        bounds = np.flatnonzero(labels[1:] != labels[:-1]) + 1
        starts = np.concatenate([[0], bounds])
        ends = np.concatenate([bounds, [len(labels)]])
        for s, e in zip(starts, ends):
            cur_ax.add_patch(
                Rectangle(
                    (-0.5 - 0.04 * len(labels), s - 0.5),
                    0.03 * len(labels),
                    e - s,
                    color=palette[labels[s]],
                    clip_on=False,
                    label=labels[s],
                )
            )
            cur_ax.axhline(e - 0.5, c="w", lw=mpfig.edge_linewidth)
            cur_ax.axvline(e - 0.5, c="w", lw=mpfig.edge_linewidth)
        cur_ax.legend(title=groupby, **mpfig.legend_params)
    cur_ax.set_title(f"{key} similarity")

    return mpfig.save_or_show("kernel")


def factor_variance(
    adata: sc.AnnData,
    key: str = "cell_cycle",
    ax: Optional[mpl.axes.Axes] = None,
    **kwargs,
) -> Optional[mpl.axes.Axes]:
    """\
    Variance explained by each factor of :func:`scanpy_lvm.tl.fit_latent_factor`.

    With ARD, factors beyond the rank the data support explain close to no
    variance; choose the rank from this plot and refit.
    """
    if key not in adata.uns.keys() or "variance_explained" not in adata.uns[key]:
        raise KeyError(
            f"Could not find variance explained of {key!r} in .uns. "
            "Run `tl.fit_latent_factor` first."
        )
    import seaborn as sns

    mpfig = MultiPanelFigure(**kwargs)
    mpfig.create_fig([None], ax=ax)
    cur_ax = mpfig.get_ax(0)

    ve = np.asarray(adata.uns[key]["variance_explained"])
    sns.scatterplot(
        x=np.arange(1, len(ve) + 1),
        y=ve,
        color="k",
        ec="w",
        s=2 + np.log2(mpl.rcParams["font.size"]) * 4,
        ax=cur_ax,
    )
    cur_ax.set_xlabel("Factor")
    cur_ax.set_ylabel("Variance explained")
    cur_ax.set_title(key + (" (ARD)" if adata.uns[key]["params"].get("ard") else ""))
    cur_ax.xaxis.set_major_locator(mpl.ticker.MaxNLocator(integer=True))
    mpfig.set_xy_lim(cur_ax, clip_zero=True)
    cur_ax.grid(visible=True, which="major")

    return mpfig.save_or_show("factor_variance")
