from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Optional, Tuple, Union

import matplotlib as mpl
import matplotlib.pyplot as plt
import numpy as np


@dataclass
class MultiPanelFigure:
    # Axis settings
    n_ticks: int = 3
    axis_pad: float = 2.5e-2
    x_lim: Optional[Tuple[float, float]] = None
    y_lim: Optional[Tuple[float, float]] = None

    # Visual settings
    color_map: Optional[Union[str, mpl.colors.Colormap]] = None
    palette: Optional[Any] = None
    edge_color: str = "black"
    edge_linewidth: float = field(
        default_factory=lambda: plt.rcParams["patch.linewidth"]
    )
    legend_params: Dict[str, Any] = field(
        default_factory=lambda: dict(
            loc="upper left",
            bbox_to_anchor=(1.02, 1.0),
            frameon=False,
            fontsize=plt.rcParams["legend.fontsize"],
            markerscale=plt.rcParams["legend.markerscale"],
            title_fontsize=plt.rcParams["legend.fontsize"],
        )
    )

    # Size settings
    figsize: Tuple[float, float] = field(
        default_factory=lambda: tuple(plt.rcParams["figure.figsize"])
    )
    size: Optional[float] = None

    # Multi-panel layout
    ncols: Optional[int] = None
    wspace: float = 5e-2
    hspace: float = 2.5e-2

    random_state: int = 0

    # Save settings
    show: Optional[bool] = None
    save: Optional[Union[bool, str]] = None

    def __post_init__(self):
        self.fig = None
        self.axs = None
        self._nrows = 1
        self._ncols = 1
        self._npanels = 1

    def create_fig(
        self,
        panels: Iterable[Any],
        ax: Optional[mpl.axes.Axes] = None,
        fig: Optional[mpl.figure.Figure] = None,
    ) -> None:
        self._npanels = len(list(panels))
        self._ncols = (
            min(self._npanels, self.ncols)
            if self.ncols is not None
            else min(4, self._npanels)
        )
        self._nrows = int(np.ceil(self._npanels / self._ncols))

        if ax is not None and self._npanels == 1:
            self.fig = ax.get_figure()
            self.axs = np.array([[ax]])
            return

        fw = ((1 + self.wspace) * self._ncols - self.wspace) * self.figsize[0]
        fh = ((1 + self.hspace) * self._nrows - self.hspace) * self.figsize[1]
        subplot_params = dict(
            nrows=self._nrows,
            ncols=self._ncols,
            squeeze=False,
            subplot_kw=dict(axisbelow=True),
        )
        if fig is None:
            self.fig, self.axs = plt.subplots(figsize=(fw, fh), **subplot_params)
        else:
            self.fig = fig
            self.axs = fig.subplots(**subplot_params)

    def get_ax(self, idx: int) -> mpl.axes.Axes:
        return self.axs[idx // self._ncols][idx % self._ncols]

    def cleanup(self) -> None:
        for idx in range(self._npanels, self._nrows * self._ncols):
            self.get_ax(idx).remove()

    def set_axis_lim(
        self,
        ax: mpl.axes.Axes,
        which: Literal["x", "y"] = "x",
        clip_zero: bool = False,
    ) -> None:
        axis_lim = self.x_lim if which == "x" else self.y_lim
        if axis_lim is None:
            data_lim = ax.dataLim.get_points()
            lo, hi = (
                (data_lim[0][0], data_lim[1][0])
                if which == "x"
                else (data_lim[0][1], data_lim[1][1])
            )
            pad = (hi - lo) * self.axis_pad
            axis_lim = (lo if (clip_zero and lo == 0) else lo - pad, hi + pad)
        (ax.set_xlim if which == "x" else ax.set_ylim)(*axis_lim)

    def set_xy_lim(self, ax: mpl.axes.Axes, clip_zero: bool = False) -> None:
        self.set_axis_lim(ax, which="x", clip_zero=clip_zero)
        self.set_axis_lim(ax, which="y", clip_zero=clip_zero)

    def set_xy_tickloc(self, ax: mpl.axes.Axes, simple_steps: bool = False) -> None:
        steps = [1, 2, 2.5, 5, 10] if simple_steps else [1, 2, 2.5, 3, 4, 5, 10]
        for axis in (ax.xaxis, ax.yaxis):
            if axis.get_scale() != "linear":
                continue
            axis.set_major_locator(
                mpl.ticker.MaxNLocator(
                    nbins=self.n_ticks * 2, steps=steps, min_n_ticks=self.n_ticks
                )
            )
        ax.grid(visible=True, which="major")

    def save_or_show(
        self, plot_name: str
    ) -> Optional[Union[mpl.axes.Axes, np.ndarray]]:
        from scanpy.plotting._utils import savefig_or_show

        savefig_or_show(plot_name, show=self.show, save=self.save)
        if isinstance(self.show, bool) and not self.show:
            return self.axs[0][0] if (self._npanels == 1) else self.axs
