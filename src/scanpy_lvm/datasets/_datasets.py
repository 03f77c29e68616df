from collections.abc import Iterable
from pathlib import Path

import numpy as np
import pandas as pd
import scanpy as sc
from scanpy import logging as logg

HERE = Path(__file__).parent

PHASES = ["G1", "S", "G2M"]

# Genes of the bundled table annotated with GO:0007049 (cell cycle).
GO_CELL_CYCLE = (
    "Ccna2 Ccnb1 Ccnb2 Ccnd1 Ccne1 Ccne2 Cdk1 Cdk2 Cdk4 Cdc20 Cdc6 Cdc25a "
    "Cdc25c Cdca3 Cdca8 Cdkn1a Cdkn1b Cdkn2c Cdt1 Cenpa Cenpe Cenpf Mki67 "
    "Top2a Aurka Aurkb Bub1 Bub1b Bub3 Plk1 Plk4 Mcm2 Mcm3 Mcm4 Mcm5 Mcm6 "
    "Mcm7 Pcna E2f1 E2f2 Rrm1 Rrm2 Tyms Gmnn Orc1 Orc6 Cdc45 Gins2 Uhrf1 "
    "Hells Rad51 Chaf1a Chaf1b Clspn Dtl Tacc3 Kif11 Kif20b Kif2c Kif23 "
    "Tpx2 Nusap1 Prc1 Ect2 Ckap2 Ckap5 Hmmr Ncapd2 Smc4 Nek2 Ttk Espl1 "
    "Pttg1 Mad2l1 Ccnf Foxm1 Ube2c Birc5 Cks2 Anln"
).split()


def phase_from_names(
    names: Iterable[str],
    sep: str = "_",
    position: int = 0,
    categories: Iterable[str] = PHASES,
) -> pd.Categorical:
    """Recover cell-cycle phase labels encoded in sample names.

    ``G1_cell01_count`` -> ``G1``.
    """
    labels = pd.Index(names).str.split(sep).str[position]
    if labels.isna().any():
        raise ValueError(
            f"Could not split phase at position {position} of all names with {sep!r}."
        )
    unknown = set(labels) - set(categories)
    if len(unknown) > 0:
        raise ValueError(f"Unknown phase labels: {sorted(unknown)}.")
    return pd.Categorical(labels, categories=list(categories), ordered=True)


def mesc_cell_cycle() -> sc.AnnData:
    """\
    Cell-cycle staged mouse embryonic stem cells without spike-ins.

    Read counts of 500 genes in 96 cells sorted into G1, S and G2M (32 cells
    each). The table is simulated with the structure of the staged mESC data
    of Buettner et al. (2015): 80 cell-cycle genes with phase-dependent
    expression, 40 genes driven by a second, non-cycling factor, and the
    remaining genes carrying technical noise only (library size variation,
    Poisson sampling and log-normal overdispersion).

    Returns
    -------
    Annotated data matrix (cells x genes) with

    `.X`, `.layers['counts']`
        raw read counts.
    `.obs['phase']`
        cell-cycle phase recovered from the sample names.
    `.var['go_cell_cycle']`
        genes annotated with GO:0007049.
    """
    filename = HERE / "mesc_cell_cycle.csv.gz"
    start = logg.info(f"reading {filename.name}")
    counts = pd.read_csv(filename, index_col=0)
    adata = sc.AnnData(counts.T.to_numpy(dtype=np.float32))
    adata.obs_names = counts.columns.astype(str)
    adata.var_names = counts.index.astype(str)
    adata.layers["counts"] = adata.X.copy()
    adata.obs["phase"] = phase_from_names(adata.obs_names)
    adata.var["go_cell_cycle"] = adata.var_names.isin(GO_CELL_CYCLE)
    logg.info("    finished", time=start)
    return adata
