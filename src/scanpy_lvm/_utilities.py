import contextlib
from collections.abc import Iterable
from typing import Optional

import joblib
import scanpy as sc


def session_info() -> None:
    import datetime
    import platform
    import sys

    print("*" * 64)
    print(f"Execution date and time: {datetime.datetime.now()}")
    print("*" * 64)
    print(f"Processor: {platform.processor() or platform.machine()}")
    print("*" * 64)
    print(f"Python: {sys.version.split()[0]} ({sys.executable})")
    print(f"scanpy: {sc.__version__}")
    print("*" * 64)


def set_env(verbosity: int = 4, n_jobs: int = 8, print_info: bool = True) -> None:
    sc.settings.verbosity = verbosity
    sc.settings.n_jobs = n_jobs
    if print_info:
        session_info()


def resolve_n_jobs(n_jobs: Optional[int] = None) -> int:
    _n_jobs = sc.settings.n_jobs if n_jobs is None else n_jobs
    if _n_jobs is None or _n_jobs == 0:
        return 1
    return joblib.effective_n_jobs(_n_jobs)


@contextlib.contextmanager
def tqdm_joblib(tqdm_object):
    """Context manager to patch joblib to report into tqdm progress bar given as argument"""

    def tqdm_print_progress(self):
        if self.n_completed_tasks > tqdm_object.n:
            n_completed = self.n_completed_tasks - tqdm_object.n
            tqdm_object.update(n=n_completed)

    original_print_progress = joblib.parallel.Parallel.print_progress
    joblib.parallel.Parallel.print_progress = tqdm_print_progress

    try:
        yield tqdm_object
    finally:
        joblib.parallel.Parallel.print_progress = original_print_progress
        tqdm_object.close()


def gene_liftover(
    adata: sc.AnnData,
    gene_list: Iterable[str],
    gene_alias_dict: Optional[dict[str, Iterable[str]]] = None,
) -> list[str]:
    """\
    Genes of `gene_list` present in ``adata.var_names``, unique and in order.

    A gene missing from `adata` is replaced by those of its aliases in
    `gene_alias_dict` that are present.
    """
    from scanpy import logging as logg

    aliases = dict() if gene_alias_dict is None else gene_alias_dict
    var_names = set(adata.var_names)
    selected = dict()
    missing = list()
    for gene in gene_list:
        if gene in var_names:
            selected.setdefault(gene, None)
            continue
        hits = [a for a in aliases.get(gene, []) if a in var_names]
        for a in hits:
            logg.warning(f"Using alias {a} for {gene}")
            selected.setdefault(a, None)
        if len(hits) == 0:
            missing.append(gene)
    if len(missing) > 0:
        logg.warning(f"{len(missing)} genes of the gene set are not present in .var_names")
        logg.debug(f"missing genes: {', '.join(map(str, missing))}")
    return list(selected)


__all__ = [
    "session_info",
    "set_env",
    "resolve_n_jobs",
    "tqdm_joblib",
    "gene_liftover",
]
