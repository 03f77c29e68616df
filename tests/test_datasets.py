"""Tests for the bundled dataset and phase parsing."""

import numpy as np
import pandas as pd
import pytest

import scanpy_lvm as sl


class TestMescCellCycle:
    """Tests for the bundled staged mESC counts."""

    def test_shape(self, raw_adata):
        """The table holds 96 cells and 500 genes."""
        assert raw_adata.shape == (96, 500)

    def test_phase_counts(self, raw_adata):
        """Every phase has 32 cells, in G1, S, G2M order."""
        phase = raw_adata.obs["phase"]
        assert isinstance(phase.dtype, pd.CategoricalDtype)
        assert list(phase.cat.categories) == ["G1", "S", "G2M"]
        assert phase.value_counts().to_dict() == {"G1": 32, "S": 32, "G2M": 32}

    def test_counts_layer(self, raw_adata):
        """Counts are non-negative integers, duplicated in a layer."""
        X = np.asarray(raw_adata.X)
        assert np.all(X >= 0)
        assert np.allclose(X, np.round(X))
        assert np.array_equal(X, np.asarray(raw_adata.layers["counts"]))

    def test_go_annotation(self, raw_adata):
        """All bundled cell-cycle genes are flagged."""
        flagged = raw_adata.var_names[raw_adata.var["go_cell_cycle"]]
        assert set(flagged) == set(sl.datasets.GO_CELL_CYCLE)
        assert len(flagged) == 80


class TestPhaseFromNames:
    """Tests for phase_from_names."""

    def test_default_layout(self):
        """Phase is the first underscore separated field."""
        phase = sl.datasets.phase_from_names(["G1_a_count", "S_b_count", "G2M_c_count"])
        assert list(phase) == ["G1", "S", "G2M"]

    def test_custom_position(self):
        """Phase can sit at another position with another separator."""
        phase = sl.datasets.phase_from_names(["cell1.S", "cell2.G1"], sep=".", position=1)
        assert list(phase) == ["S", "G1"]

    def test_unknown_label(self):
        """Labels outside the categories raise ValueError."""
        with pytest.raises(ValueError, match="Unknown phase"):
            sl.datasets.phase_from_names(["G0_cell01_count"])

    def test_missing_field(self):
        """Names without the requested field raise ValueError."""
        with pytest.raises(ValueError):
            sl.datasets.phase_from_names(["G1"], position=2)
