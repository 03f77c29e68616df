import sys

from . import datasets, get, queries
from . import plotting as pl
from . import preprocessing as pp
from . import tools as tl
from ._utilities import gene_liftover, session_info, set_env, tqdm_joblib

sys.modules.update({f"{__name__}.{m}": globals()[m] for m in ["pp", "tl", "pl"]})

__version__ = "0.1.0"

__all__ = [
    "datasets",
    "gene_liftover",
    "get",
    "pl",
    "pp",
    "queries",
    "session_info",
    "set_env",
    "tl",
    "tqdm_joblib",
]
