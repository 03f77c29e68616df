from typing import Literal, Optional

import matplotlib as mpl
import pandas as pd
import scanpy as sc

from ..get import variance_components as get_variance_components
from ._baseplot import MultiPanelFigure
from .colors import COMPONENT_COLORS

COMPONENT_LABELS = {
    "residual": "Residual biological",
    "technical": "Technical",
}


def _component_labels(components: list[str]) -> list[str]:
    return [COMPONENT_LABELS.get(c, c.replace("_", " ").capitalize()) for c in components]


def variance_components(
    adata: sc.AnnData,
    kind: Literal["pie", "box"] = "pie",
    ax: Optional[mpl.axes.Axes] = None,
    **kwargs,
) -> Optional[mpl.axes.Axes]:
    """\
    Composition of gene expression variance over converged genes.

    Parameters
    ----------
    adata
        Annotated data matrix after :func:`scanpy_lvm.tl.variance_decomposition`.
    kind
        ``'pie'`` draws the average fraction of each component, ``'box'`` the
        distribution of fractions across genes.
    ax
        Axes to draw on.
    **kwargs
        Passed to :class:`MultiPanelFigure`, e.g. `show` and `save`.
    """
    if kind not in ("pie", "box"):
        raise ValueError(f"Unrecognized kind: {kind}")
    df = get_variance_components(adata, converged_only=True)
    if df.shape[0] == 0:
        raise ValueError("No converged genes to plot.")
    components = list(df.columns)
    labels = _component_labels(components)

    mpfig = MultiPanelFigure(**kwargs)
    mpfig.create_fig([None], ax=ax)
    cur_ax = mpfig.get_ax(0)
    colors = COMPONENT_COLORS if mpfig.palette is None else list(mpfig.palette)

    if kind == "pie":
        cur_ax.pie(
            df.mean(axis=0).to_numpy(),
            labels=labels,
            colors=colors[: len(components)],
            autopct="%1.0f%%",
            startangle=90,
            counterclock=False,
            wedgeprops=dict(
                edgecolor=mpfig.edge_color, linewidth=mpfig.edge_linewidth
            ),
        )
        cur_ax.set_aspect("equal")
        cur_ax.set_title(f"Variance composition ({df.shape[0]:,} genes)")
    else:
        import seaborn as sns

        long_df = pd.melt(
            df.rename(columns=dict(zip(components, labels))),
            var_name="component",
            value_name="fraction",
        )
        sns.boxplot(
            data=long_df,
            x="component",
            y="fraction",
            hue="component",
            palette=colors[: len(components)],
            linewidth=mpfig.edge_linewidth,
            fliersize=1.0,
            legend=False,
            ax=cur_ax,
        )
        cur_ax.set_xlabel("")
        cur_ax.set_ylabel("Fraction of variance")
        cur_ax.set_ylim(-0.02, 1.02)
        cur_ax.tick_params(axis="x", labelrotation=90)
        cur_ax.grid(visible=True, which="major", axis="y")

    return mpfig.save_or_show("variance_components")
