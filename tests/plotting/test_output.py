"""Tests for gnuplot and figure output of level vectors."""

import io

import numpy as np

from dofs import distribute_dofs
from multigrid.transfer import build_matrices, initialize_by_component
from shared.plotting import level_vector_dataframe, output_gpl, plot_level_vectors, write_gnuplot_patches


def level_vectors(triangulation, fe):
    numbering = distribute_dofs(triangulation, fe)
    transfer = build_matrices(triangulation, numbering, [set()] * triangulation.n_levels())
    return numbering, transfer.copy_to_mg(initialize_by_component(numbering))


class TestGnuplot:
    """Tests for gnuplot output."""

    def test_patch_format(self):
        patch = np.array([[0.0, 0.0, 1.0], [1.0, 0.0, 1.0], [0.0, 1.0, 1.0], [1.0, 1.0, 1.0]])
        stream = io.StringIO()
        write_gnuplot_patches([patch, patch], stream, n_subdivisions=1, n_components=1)
        lines = stream.getvalue().split("\n")
        assert lines[0] == "# <x> <y> <v0>"
        # Two rows of two points, blank after each row, extra blank per patch
        assert lines[1:8] == ["0 0 1", "1 0 1", "", "0 1 1", "1 1 1", "", ""]

    def test_files_per_level(self, local_mesh, q1_system, tmp_path):
        numbering, levels = level_vectors(local_mesh, q1_system)
        paths = output_gpl(local_mesh, numbering, levels, tmp_path)
        assert [p.name for p in paths] == ["mg-0.gpl", "mg-1.gpl", "mg-2.gpl", "mg-3.gpl"]
        assert all(p.exists() for p in paths)

        renumbered = output_gpl(local_mesh, numbering, levels, tmp_path, renumbered=True)
        assert renumbered[0].name == "mg_renumbered-0.gpl"


class TestLevelPlots:
    """Tests for matplotlib level plots."""

    def test_dataframe(self, global_mesh, q1_system):
        numbering, levels = level_vectors(global_mesh, q1_system)
        df = level_vector_dataframe(numbering, levels, 1)
        assert len(df) == 18
        assert set(df["value"]) == {1.0, 2.0}

    def test_plot_files(self, global_mesh, q1_system, tmp_path):
        numbering, levels = level_vectors(global_mesh, q1_system)
        paths = plot_level_vectors(numbering, levels, tmp_path, prefix="levels")
        assert [p.name for p in paths] == ["levels-0.pdf", "levels-1.pdf"]
        assert all(p.exists() for p in paths)
