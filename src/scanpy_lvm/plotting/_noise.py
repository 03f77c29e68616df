from typing import Optional

import matplotlib as mpl
import numpy as np
import scanpy as sc

from .._validate import validate_var_keys
from ._baseplot import MultiPanelFigure
from ._helper import get_marker_size
from .colors import BACKGROUND_COLOR, HIGHLIGHT_COLOR


def technical_noise(
    adata: sc.AnnData,
    highlight: Optional[str] = "variable",
    n_grid: int = 200,
    ax: Optional[mpl.axes.Axes] = None,
    **kwargs,
) -> Optional[mpl.axes.Axes]:
    """\
    Mean against CV² of every gene with the technical noise curve.

    Parameters
    ----------
    adata
        Annotated data matrix after :func:`scanpy_lvm.pp.fit_technical_noise`.
    highlight
        Boolean `.var` key of genes drawn in color, e.g. ``'variable'``.
    n_grid
        Number of points along the drawn curve.
    ax
        Axes to draw on.
    **kwargs
        Passed to :class:`MultiPanelFigure`, e.g. `show` and `save`.
    """
    validate_var_keys(adata, ["means", "cv2", "cv2_tech"], caller="pp.fit_technical_noise")
    mpfig = MultiPanelFigure(**kwargs)
    mpfig.create_fig([None], ax=ax)
    cur_ax = mpfig.get_ax(0)

    df = adata.var.loc[
        (adata.var["means"] > 0.0) & (adata.var["cv2"] > 0.0),
        ["means", "cv2", "cv2_tech"],
    ].copy()
    is_hl = (
        adata.var.loc[df.index, highlight].fillna(False).to_numpy(dtype=bool)
        if highlight is not None and highlight in adata.var.columns
        else np.zeros(df.shape[0], dtype=bool)
    )
    size = (
        get_marker_size(df.shape[0], mpfig.figsize, 0.5)
        if mpfig.size is None
        else mpfig.size
    )
    cur_ax.scatter(
        df.loc[~is_hl, "means"],
        df.loc[~is_hl, "cv2"],
        s=size,
        c=BACKGROUND_COLOR,
        rasterized=True,
        label="other",
    )
    if is_hl.any():
        cur_ax.scatter(
            df.loc[is_hl, "means"],
            df.loc[is_hl, "cv2"],
            s=size,
            c=HIGHLIGHT_COLOR,
            rasterized=True,
            label=highlight,
        )

    fitted = df.loc[df["cv2_tech"].notna()].sort_values("means")
    if fitted.shape[0] > 1:
        grid = np.geomspace(fitted["means"].iloc[0], fitted["means"].iloc[-1], n_grid)
        curve = np.interp(
            np.log(grid), np.log(fitted["means"]), np.log(fitted["cv2_tech"])
        )
        cur_ax.plot(grid, np.exp(curve), c=mpfig.edge_color, label="technical")

    cur_ax.set_xscale("log")
    cur_ax.set_yscale("log")
    cur_ax.set_xlabel("Mean expression")
    cur_ax.set_ylabel(r"$CV^2$")
    flavor = adata.uns.get("technical_noise", {}).get("flavor")
    if flavor is not None:
        cur_ax.set_title(f"Technical noise ({flavor})")
    cur_ax.legend(**mpfig.legend_params)
    cur_ax.grid(visible=True, which="major")

    return mpfig.save_or_show("technical_noise")
