"""Output of level vectors: gnuplot patches and matplotlib figures."""

from .gnuplot import output_gpl, write_gnuplot_patches
from .levels import level_vector_dataframe, plot_level_vectors

__all__ = [
    "level_vector_dataframe",
    "output_gpl",
    "plot_level_vectors",
    "write_gnuplot_patches",
]
