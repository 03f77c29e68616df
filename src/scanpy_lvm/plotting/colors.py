"""Color palettes for cell-cycle phases and variance components."""

PHASE_COLORS = {
    "G1": "#4E79A7",
    "S": "#F28E2B",
    "G2M": "#59A14F",
}

COMPONENT_COLORS = [
    "#E15759",  # latent factor
    "#76B7B2",  # residual biological
    "#BAB0AC",  # technical
]

HIGHLIGHT_COLOR = "#E15759"
BACKGROUND_COLOR = "lightgray"

__all__ = [
    "PHASE_COLORS",
    "COMPONENT_COLORS",
    "HIGHLIGHT_COLOR",
    "BACKGROUND_COLOR",
]
