from ._datasets import GO_CELL_CYCLE, PHASES, mesc_cell_cycle, phase_from_names

__all__ = [
    "GO_CELL_CYCLE",
    "PHASES",
    "mesc_cell_cycle",
    "phase_from_names",
]
