from typing import Any, Dict, Literal, Optional, Union

import numba
import numpy as np

FLAVORS = ("log", "loess", "counts")


@numba.njit()
def _weighted_median(
    x: np.ndarray,
    w: np.ndarray,
) -> float:
    sorted_idx = np.argsort(x)
    x_sorted = x[sorted_idx]
    w_cum = np.cumsum(w[sorted_idx])
    w_total = w_cum[-1]

    med_idx = np.searchsorted(w_cum, (w_total / 2))
    if med_idx >= (len(x) - 1):
        return x_sorted[-1]
    elif w_cum[med_idx] == (w_total / 2):
        return np.mean(x_sorted[med_idx : med_idx + 2])
    else:
        return x_sorted[med_idx]


def weighted_median(
    x: np.ndarray, w: Optional[np.ndarray] = None, na_rm: bool = False
) -> float:
    _x = np.asarray(x, dtype=np.float64)
    _w = np.ones_like(_x) if w is None else np.asarray(w, dtype=np.float64)
    if na_rm:
        mask = ~np.isnan(_x)
        _x = _x[mask]
        _w = _w[mask]

    return _weighted_median(_x, _w)


def inverse_density_weights(
    x: np.ndarray,
    bw_method: Union[Literal["scott", "silverman"], float] = "silverman",
) -> np.ndarray:
    from scipy.stats import gaussian_kde

    _x = np.asarray(x)
    density = gaussian_kde(_x, bw_method=bw_method)(_x)
    w = 1.0 / np.clip(density, a_min=1e-10, a_max=None)
    return w / np.mean(w)


def weighted_lowess(
    x: np.ndarray,
    y: np.ndarray,
    w: Optional[np.ndarray] = None,
    span: float = 0.8,
    iter: int = 3,
) -> Dict[str, Any]:
    from skmisc import loess

    _x = np.asarray(x, dtype=np.float64)
    _y = np.asarray(y, dtype=np.float64)
    _w = None if w is None else np.asarray(w, dtype=np.float64)
    params = dict(weights=_w, span=span, degree=1, iterations=iter)

    model = loess.loess(_x, _y, **params)
    model.fit()
    fitted = model.predict(_x, stderror=False).values

    return {
        "fitted": fitted,
        "residual": _y - fitted,
        "x": _x,
        "y": _y,
        "weights": _w,
    }


class TechnicalNoiseFit:
    """Mean to technical CV² curve.

    ``log``
        log-linear least squares, ``log10 CV² = a + b log10 mean``.
    ``loess``
        density weighted LOESS of ``log CV²`` on ``log mean``, interpolated
        monotonically between fitted means and held constant outside them.
    ``counts``
        gamma GLM with identity link, ``CV² = a0 + a1 / mean`` [Brennecke13]_.
    """

    flavor: str = "log"
    span: float = 0.8
    use_density_weights: bool = True

    def __init__(
        self,
        flavor: Literal["log", "loess", "counts"] = "log",
        span: float = 0.8,
        use_density_weights: bool = True,
    ):
        if flavor not in FLAVORS:
            raise ValueError(f"invalid 'flavor' provided: {flavor}.")
        assert (span > 0.0) and (span <= 1.0), f"'span' must be between 0 and 1: {span}"
        self.flavor = flavor
        self.span = span
        self.use_density_weights = use_density_weights
        self.params_: Dict[str, float] = dict()
        self._loess_x: Optional[np.ndarray] = None
        self._loess_y: Optional[np.ndarray] = None
        self.fitted_ = False

    def __repr__(self) -> str:
        params = ", ".join(f"{k}={v:.4g}" for k, v in self.params_.items())
        return f"TechnicalNoiseFit(flavor={self.flavor!r}{', ' if params else ''}{params})"

    def _fit_log(self, means: np.ndarray, cv2: np.ndarray) -> None:
        from scipy.stats import linregress

        res = linregress(np.log10(means), np.log10(cv2))
        self.params_ = dict(intercept=res.intercept, slope=res.slope)

    def _fit_counts(self, means: np.ndarray, cv2: np.ndarray) -> None:
        import statsmodels.api as sm

        design = sm.add_constant(1.0 / means, has_constant="add")
        glm = sm.GLM(
            cv2,
            design,
            family=sm.families.Gamma(link=sm.families.links.Identity()),
        )
        res = glm.fit()
        a0, a1 = res.params
        self.params_ = dict(a0=float(a0), a1=float(a1))

    def _fit_loess(self, means: np.ndarray, cv2: np.ndarray) -> None:
        from scipy.interpolate import PchipInterpolator

        log_means = np.log(means)
        w = (
            inverse_density_weights(log_means, bw_method=1.0)
            if self.use_density_weights
            else None
        )
        lfit = weighted_lowess(log_means, np.log(cv2), w=w, span=self.span)
        order = np.argsort(log_means)
        _x = log_means[order]
        _y = lfit["fitted"][order]
        # collapse ties so the interpolator sees strictly increasing x
        _x, idx = np.unique(_x, return_index=True)
        _y = np.array([np.mean(v) for v in np.split(_y, idx[1:])])
        self._loess_x = _x
        self._loess_y = _y
        self._interp = PchipInterpolator(_x, _y, extrapolate=False)

        # adjust for the scale shift of fitting on log values
        leftovers = cv2 / np.exp(self._interp(log_means))
        self.params_ = dict(
            scale=weighted_median(leftovers, w, na_rm=True),
            span=self.span,
        )

    def fit(self, means: np.ndarray, cv2: np.ndarray) -> "TechnicalNoiseFit":
        _means = np.asarray(means, dtype=np.float64)
        _cv2 = np.asarray(cv2, dtype=np.float64)
        if len(_means) < 3:
            raise ValueError(
                f"need at least 3 genes for technical noise fitting: {len(_means)}."
            )
        if self.flavor == "log":
            self._fit_log(_means, _cv2)
        elif self.flavor == "counts":
            self._fit_counts(_means, _cv2)
        else:
            self._fit_loess(_means, _cv2)
        self.fitted_ = True
        return self

    def predict(self, means: np.ndarray) -> np.ndarray:
        assert self.fitted_, "TechnicalNoiseFit has not been fitted."
        _means = np.asarray(means, dtype=np.float64)
        ret = np.full_like(_means, np.nan)
        valid = np.isfinite(_means) & (_means > 0.0)
        m = _means[valid]
        if self.flavor == "log":
            ret[valid] = np.power(
                10.0, self.params_["intercept"] + self.params_["slope"] * np.log10(m)
            )
        elif self.flavor == "counts":
            ret[valid] = self.params_["a0"] + self.params_["a1"] / m
        else:
            log_m = np.clip(np.log(m), self._loess_x[0], self._loess_x[-1])
            ret[valid] = np.exp(self._interp(log_m)) * self.params_["scale"]
        return ret

    def std_dev(self, means: np.ndarray, cv2: np.ndarray) -> float:
        """Robust spread of observed around fitted CV², as scaled MAD."""
        ratio = np.asarray(cv2) / self.predict(means)
        return weighted_median(np.abs(ratio - 1.0), na_rm=True) * 1.4826
