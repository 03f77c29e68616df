from ._correction import corrected_expression
from ._factor_model import ARDFactorModel
from ._latent_factor import fit_latent_factor
from ._pca import project_pca
from ._variance_decomposition import variance_decomposition

__all__ = [
    "ARDFactorModel",
    "corrected_expression",
    "fit_latent_factor",
    "project_pca",
    "variance_decomposition",
]
