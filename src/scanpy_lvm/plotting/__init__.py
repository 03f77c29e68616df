from numbers import Real
from typing import Literal, Optional

import matplotlib as mpl
import scanpy as sc
import seaborn as sns

from ._baseplot import MultiPanelFigure
from ._emb import pca
from ._factor import factor_variance, kernel
from ._helper import get_marker_size, get_palette
from ._noise import technical_noise
from ._var_decomp import variance_components
from .colors import COMPONENT_COLORS, PHASE_COLORS


def configure(
    dpi: Optional[Real] = None, type: Literal["article", "poster"] = "article"
) -> None:
    from .config import (
        ARTICLE_MPL_PARAMS,
        DEFAULT_DPI_ARTICLE,
        DEFAULT_DPI_POSTER,
        POSTER_MPL_PARAMS,
        SAVE_DPI,
        SEABORN_STYLE_PARAMS,
    )

    _mpl_params = POSTER_MPL_PARAMS if type == "poster" else ARTICLE_MPL_PARAMS
    _dpi = (
        dpi
        if dpi is not None
        else DEFAULT_DPI_POSTER
        if type == "poster"
        else DEFAULT_DPI_ARTICLE
    )
    sc.settings.set_figure_params(
        dpi=_dpi,
        dpi_save=SAVE_DPI,
        vector_friendly=True,
        fontsize=_mpl_params["font.size"],
        format="pdf",
        facecolor="white",
        transparent=True,
    )
    mpl.rcParams.update(**_mpl_params)
    sns.set_style(style=SEABORN_STYLE_PARAMS, rc=_mpl_params)


__all__ = [
    "configure",
    "MultiPanelFigure",
    "COMPONENT_COLORS",
    "PHASE_COLORS",
    "factor_variance",
    "get_marker_size",
    "get_palette",
    "kernel",
    "pca",
    "technical_noise",
    "variance_components",
]
