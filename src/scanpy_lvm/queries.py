import re
from collections.abc import Iterable
from typing import Optional

import scanpy as sc
from scanpy import logging as logg

from ._utilities import gene_liftover

GO_TERM_PATTERN = re.compile(r"^GO:\d{7}$")


def go_genes(
    go_term: str = "GO:0007049",
    org: str = "mmusculus",
    gene_attr: str = "external_gene_name",
    host: str = "www.ensembl.org",
    use_cache: bool = False,
) -> list[str]:
    """\
    Genes annotated with a Gene Ontology term, retrieved from BioMart.

    Parameters
    ----------
    go_term
        Gene Ontology identifier, e.g. ``'GO:0007049'`` (cell cycle).
    org
        Organism to query, e.g. ``'mmusculus'`` or ``'hsapiens'``.
    gene_attr
        BioMart attribute used as gene identifier, e.g. ``'external_gene_name'``
        or ``'ensembl_gene_id'``.
    host
        BioMart host.
    use_cache
        Whether pybiomart should cache the query.

    Returns
    -------
    Ordered list of unique gene identifiers.
    """
    if not isinstance(go_term, str) or GO_TERM_PATTERN.match(go_term) is None:
        raise ValueError(f"Malformed Gene Ontology term: {go_term!r}.")

    start = logg.info(f"querying genes annotated with {go_term}")
    annot = sc.queries.biomart_annotations(
        org, [gene_attr, "go_id"], host=host, use_cache=use_cache
    )
    genes = (
        annot.loc[annot["go_id"] == go_term, gene_attr].dropna().astype(str).unique()
    )
    genes = [g for g in genes if len(g) > 0]
    if len(genes) == 0:
        logg.warning(f"no genes found for {go_term}")
    logg.info(f"    finished ({len(genes)} genes)", time=start)
    return genes


def intersect_genes(
    adata: sc.AnnData,
    genes: Iterable[str],
    gene_alias_dict: Optional[dict[str, Iterable[str]]] = None,
) -> list[str]:
    """Genes of a gene set present in ``adata.var_names``, resolving aliases."""
    return gene_liftover(adata, genes, gene_alias_dict)


__all__ = [
    "go_genes",
    "intersect_genes",
]
