"""Matplotlib and seaborn style parameters for figures of scanpy_lvm.

Article and poster styles share one layout and differ in scale: font sizes,
line widths and the figure size of a single panel.
"""

from typing import Any, Dict, Tuple

DEFAULT_DPI_ARTICLE = 150
DEFAULT_DPI_POSTER = 72
SAVE_DPI = 300

GRID_COLOR = "#ababab"
SANS_SERIF_FONTS = ["Helvetica", "Liberation Sans", "DejaVu Sans"]

ARTICLE_SCALE = dict(fontsize=6.0, linewidth=0.5, figsize=(1.75, 1.75))
POSTER_SCALE = dict(fontsize=16.0, linewidth=1.5, figsize=(3.84, 3.84))


def _mpl_params(
    fontsize: float, linewidth: float, figsize: Tuple[float, float]
) -> Dict[str, Any]:
    title = fontsize * 1.25
    pad = fontsize / 144
    return {
        "font.family": "sans-serif",
        "font.sans-serif": SANS_SERIF_FONTS,
        "font.size": fontsize,
        "mathtext.default": "regular",
        "lines.linewidth": linewidth,
        "lines.markeredgewidth": 0.0,
        "patch.linewidth": linewidth,
        "axes.linewidth": linewidth,
        "axes.titlesize": title,
        "axes.titlepad": title / 2,
        "axes.labelsize": title,
        "axes.labelpad": fontsize / 3,
        "axes.axisbelow": True,
        "xtick.major.size": linewidth * 4,
        "xtick.major.width": linewidth,
        "xtick.labelsize": fontsize,
        "ytick.major.size": linewidth * 4,
        "ytick.major.width": linewidth,
        "ytick.labelsize": fontsize,
        "grid.color": GRID_COLOR,
        "grid.linewidth": linewidth,
        "legend.fontsize": fontsize,
        "legend.title_fontsize": fontsize,
        "legend.markerscale": 0.5,
        "legend.handlelength": 1.0,
        "figure.figsize": figsize,
        "figure.constrained_layout.use": True,
        "figure.constrained_layout.h_pad": pad,
        "figure.constrained_layout.w_pad": pad,
        "scatter.edgecolors": "none",
        # similarity heatmaps are centered at zero
        "image.cmap": "RdBu_r",
        "savefig.bbox": "tight",
        "savefig.transparent": True,
        "savefig.dpi": SAVE_DPI,
        "pdf.fonttype": 42,
        "ps.fonttype": 42,
    }


ARTICLE_MPL_PARAMS = _mpl_params(**ARTICLE_SCALE)
POSTER_MPL_PARAMS = _mpl_params(**POSTER_SCALE)

SEABORN_STYLE_PARAMS = {
    "axes.facecolor": "white",
    "axes.edgecolor": "black",
    "axes.grid": False,
    "axes.labelcolor": "black",
    "figure.facecolor": "white",
    "grid.color": GRID_COLOR,
    "grid.linestyle": ":",
    "text.color": "black",
    "xtick.color": "black",
    "ytick.color": "black",
    "xtick.direction": "out",
    "ytick.direction": "out",
}

__all__ = [
    "ARTICLE_MPL_PARAMS",
    "POSTER_MPL_PARAMS",
    "SEABORN_STYLE_PARAMS",
    "DEFAULT_DPI_ARTICLE",
    "DEFAULT_DPI_POSTER",
    "SAVE_DPI",
]
