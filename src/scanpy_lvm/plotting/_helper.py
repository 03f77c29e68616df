"""Helper functions shared by the plotting functions."""

from collections.abc import Iterable, Mapping
from typing import Optional, Union

import matplotlib as mpl
import matplotlib.pyplot as plt
import numpy as np
import scanpy as sc

from .._validate import isiterable
from ..get import obs_categories
from .colors import PHASE_COLORS

DEFAULT_SIZE_MULTIPLIER = 10.0


def _get_scaled_marker_size(
    n_points: int,
    figsize: Optional[tuple[float, float]] = None,
    scale: float = 1.0,
) -> float:
    """Marker size from the number of points and the figure area.

    Parameters
    ----------
    n_points
        Number of points to be plotted.
    figsize
        Figure size as (width, height), default from rcParams if `None`.
    scale
        Additional scaling factor.
    """
    figsize = figsize if figsize is not None else plt.rcParams["figure.figsize"]
    area = figsize[0] * figsize[1]
    fontsize = plt.rcParams["font.size"]

    min_size = fontsize / area
    scaled_size = (fontsize * DEFAULT_SIZE_MULTIPLIER * area) / np.sqrt(
        max(n_points, 1)
    )
    return max(min_size, scaled_size) * scale


def _extract_colors_from_colormap(
    cmap: mpl.colors.Colormap, n_colors: int
) -> list[str]:
    if isinstance(cmap, mpl.colors.ListedColormap):
        colors = [cmap(i % cmap.N) for i in range(n_colors)]
    elif n_colors == 1:
        colors = [cmap(0.5)]
    else:
        colors = [cmap(i / (n_colors - 1)) for i in range(n_colors)]
    return [mpl.colors.to_hex(color) for color in colors]


def _create_color_palette(
    palette: Union[str, Iterable[str], mpl.colors.Colormap, None],
    categories: list[str],
) -> list[str]:
    n_colors = len(categories)
    if palette is None:
        if all(c in PHASE_COLORS for c in categories):
            return [PHASE_COLORS[c] for c in categories]
        cycle = plt.rcParams["axes.prop_cycle"].by_key()["color"]
        return [cycle[i % len(cycle)] for i in range(n_colors)]
    if isinstance(palette, Mapping):
        return [mpl.colors.to_hex(palette[c]) for c in categories]
    if isinstance(palette, str):
        return _extract_colors_from_colormap(mpl.colormaps[palette], n_colors)
    if isinstance(palette, mpl.colors.Colormap):
        return _extract_colors_from_colormap(palette, n_colors)
    if isiterable(palette):
        colors = list(palette)
        return [mpl.colors.to_hex(colors[i % len(colors)]) for i in range(n_colors)]
    raise TypeError(f"Unrecognized palette: {palette!r}")


def _get_color_palette(
    adata: sc.AnnData,
    key: str,
    palette: Optional[Union[str, Iterable[str], Mapping, mpl.colors.Colormap]] = None,
) -> dict[str, str]:
    """Category to color mapping of an `.obs` key, stored in `.uns[key + '_colors']`.

    Colors already stored in `.uns` are reused unless a palette is given.
    """
    categories = [str(c) for c in obs_categories(adata, key)]
    color_key = f"{key}_colors"
    if (
        palette is None
        and color_key in adata.uns
        and len(adata.uns[color_key]) >= len(categories)
    ):
        colors = list(adata.uns[color_key])[: len(categories)]
    else:
        colors = _create_color_palette(palette, categories)
        adata.uns[color_key] = colors
    return dict(zip(categories, colors))


get_marker_size = _get_scaled_marker_size
get_palette = _get_color_palette
