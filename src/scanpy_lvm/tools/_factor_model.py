"""
Linear latent factor model with automatic relevance determination.

Cells are modeled as ``y_n = W x_n + e_n`` with ``x_n ~ N(0, I_k)`` and
``e_n ~ N(0, s2 I_d)``. With ARD every column ``w_j`` of the loadings gets a
prior ``N(0, 1 / alpha_j)`` whose precision is re-estimated, which shrinks
factors the data do not support towards zero [Bishop99]_. Without ARD the
model is probabilistic PCA [Tipping99]_. Both are fitted by EM.
"""

from typing import Optional

import numpy as np


class ARDFactorModel:
    """Probabilistic PCA, optionally with ARD priors on the factor loadings.

    Attributes after :meth:`fit`
    ----------------------------
    latent_
        Posterior mean of the factors, cells x factors.
    loadings_
        Factor loadings, genes x factors.
    noise_variance_
        Residual variance per gene.
    alpha_
        ARD precision per factor, `None` without ARD.
    variance_explained_
        Fraction of the total variance reconstructed by each factor.
    converged_, n_iter_
        Convergence status of EM.
    """

    def __init__(
        self,
        n_factors: int = 1,
        ard: bool = False,
        max_iter: int = 1000,
        tol: float = 1e-6,
    ):
        if n_factors < 1:
            raise ValueError(f"'n_factors' must be at least 1: {n_factors}")
        self.n_factors = n_factors
        self.ard = ard
        self.max_iter = max_iter
        self.tol = tol
        self.latent_: Optional[np.ndarray] = None
        self.loadings_: Optional[np.ndarray] = None
        self.noise_variance_: Optional[float] = None
        self.alpha_: Optional[np.ndarray] = None
        self.variance_explained_: Optional[np.ndarray] = None
        self.converged_ = False
        self.n_iter_ = 0

    def _init_params(self, Y: np.ndarray, var_floor: float) -> tuple[np.ndarray, float]:
        n_obs, n_vars = Y.shape
        k = self.n_factors
        _, s, vt = np.linalg.svd(Y, full_matrices=False)
        eig = np.square(s) / n_obs
        noise = eig[k:].sum() / (n_vars - k) if n_vars > k else var_floor
        noise = max(noise, var_floor)
        W = vt[:k].T * np.sqrt(np.maximum(eig[:k] - noise, var_floor))
        return W, noise

    def _e_step(
        self, Y: np.ndarray, W: np.ndarray, noise: float
    ) -> tuple[np.ndarray, np.ndarray]:
        k = W.shape[1]
        M_inv = np.linalg.inv(W.T @ W + noise * np.eye(k))
        Ex = Y @ W @ M_inv
        Sxx = Y.shape[0] * noise * M_inv + Ex.T @ Ex
        return Ex, Sxx

    def fit(self, Y: np.ndarray) -> "ARDFactorModel":
        """Fit the model to a cells x genes matrix; columns are centered."""
        Y = np.asarray(Y, dtype=np.float64)
        n_obs, n_vars = Y.shape
        if self.n_factors > min(n_obs - 1, n_vars):
            raise ValueError(
                f"Cannot fit {self.n_factors} factors to {n_obs} cells and {n_vars} genes."
            )
        Y = Y - Y.mean(axis=0)
        total_ss = np.sum(np.square(Y))
        if total_ss <= 0.0:
            raise ValueError("Expression matrix has zero variance.")
        var_floor = 1e-8 * total_ss / (n_obs * n_vars)
        norm_floor = 1e-12 * total_ss / n_obs

        W, noise = self._init_params(Y, var_floor)
        alpha = n_vars / np.maximum(np.sum(np.square(W), axis=0), norm_floor)

        self.converged_ = False
        for it in range(1, self.max_iter + 1):
            Ex, Sxx = self._e_step(Y, W, noise)
            prior = noise * np.diag(alpha) if self.ard else 0.0
            W_new = (Y.T @ Ex) @ np.linalg.inv(Sxx + prior)
            noise_new = (
                total_ss
                - 2.0 * np.sum(Ex * (Y @ W_new))
                + np.trace(Sxx @ W_new.T @ W_new)
            ) / (n_obs * n_vars)
            noise_new = max(noise_new, var_floor)
            if self.ard:
                alpha = n_vars / np.maximum(np.sum(np.square(W_new), axis=0), norm_floor)

            dW = np.max(np.abs(W_new - W)) / max(np.max(np.abs(W_new)), var_floor)
            dnoise = abs(noise_new - noise) / noise_new
            W, noise = W_new, noise_new
            self.n_iter_ = it
            if max(dW, dnoise) < self.tol:
                self.converged_ = True
                break

        Ex, _ = self._e_step(Y, W, noise)
        ve = np.sum(np.square(Ex), axis=0) * np.sum(np.square(W), axis=0) / total_ss
        order = np.argsort(-ve, kind="stable")
        self.latent_ = Ex[:, order]
        self.loadings_ = W[:, order]
        self.noise_variance_ = noise
        self.alpha_ = alpha[order] if self.ard else None
        self.variance_explained_ = ve[order]
        return self

    def kernel(self) -> np.ndarray:
        """\
        Cell-cell similarity of the low-rank reconstruction ``F = X W^T``.

        ``K = F F^T / n_genes``, rescaled so that the centered kernel has unit
        mean variance, ``trace(K_c) / (n_cells - 1) = 1``.
        """
        assert self.latent_ is not None, "ARDFactorModel has not been fitted."
        X = self.latent_
        W = self.loadings_
        K = X @ (W.T @ W) @ X.T / W.shape[0]
        K = 0.5 * (K + K.T)
        n_obs = K.shape[0]
        Kc = K - K.mean(axis=0) - K.mean(axis=1)[:, None] + K.mean()
        scale = np.trace(Kc) / (n_obs - 1)
        if scale <= 0.0:
            raise ValueError("Latent factors carry no variance; cannot scale kernel.")
        return K / scale
