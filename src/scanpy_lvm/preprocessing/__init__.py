from ._technical_noise import fit_technical_noise, size_factors
from ._trend_fit import TechnicalNoiseFit
from ._variable_genes import variable_genes

__all__ = [
    "TechnicalNoiseFit",
    "fit_technical_noise",
    "size_factors",
    "variable_genes",
]
