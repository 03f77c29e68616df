"""Tests for gene set queries; BioMart is stubbed."""

import pandas as pd
import pytest
import scanpy as sc

import scanpy_lvm as sl


@pytest.fixture
def biomart_stub(monkeypatch):
    calls = []

    def _annotations(org, attrs, host=None, use_cache=False):
        calls.append(dict(org=org, attrs=list(attrs), host=host, use_cache=use_cache))
        return pd.DataFrame(
            {
                attrs[0]: ["Ccnb1", "Cdk1", "Cdk1", "Actb", "Top2a", None, ""],
                "go_id": [
                    "GO:0007049",
                    "GO:0007049",
                    "GO:0007049",
                    "GO:0005737",
                    "GO:0007049",
                    "GO:0007049",
                    "GO:0007049",
                ],
            }
        )

    monkeypatch.setattr(sc.queries, "biomart_annotations", _annotations)
    return calls


class TestGoGenes:
    """Tests for go_genes."""

    def test_filters_term(self, biomart_stub):
        """Only genes of the term are returned, unique and in order."""
        genes = sl.queries.go_genes("GO:0007049")
        assert genes == ["Ccnb1", "Cdk1", "Top2a"]

    def test_query_arguments(self, biomart_stub):
        sl.queries.go_genes("GO:0007049", org="hsapiens", gene_attr="ensembl_gene_id")
        assert biomart_stub[0]["org"] == "hsapiens"
        assert biomart_stub[0]["attrs"] == ["ensembl_gene_id", "go_id"]

    def test_unknown_term(self, biomart_stub):
        assert sl.queries.go_genes("GO:0000001") == []

    @pytest.mark.parametrize("term", ["cell cycle", "GO:7049", "go:0007049", 7049])
    def test_malformed_term(self, biomart_stub, term):
        with pytest.raises(ValueError, match="Malformed"):
            sl.queries.go_genes(term)
        assert len(biomart_stub) == 0


class TestIntersectGenes:
    """Tests for intersect_genes."""

    def test_present_genes(self, raw_adata):
        genes = sl.queries.intersect_genes(raw_adata, ["Cdk1", "Nope1", "Top2a", "Cdk1"])
        assert genes == ["Cdk1", "Top2a"]

    def test_alias(self, raw_adata):
        genes = sl.queries.intersect_genes(
            raw_adata, ["Cdc2"], gene_alias_dict={"Cdc2": ["Cdk1"]}
        )
        assert genes == ["Cdk1"]
