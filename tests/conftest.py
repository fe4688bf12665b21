"""Pytest configuration and fixtures for the multilevel transfer tests."""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


def refine_near_origin(triangulation, radius=0.25 / np.pi):
    """Refine active cells with a vertex closer than ``radius`` to the origin."""

    def near(cell):
        vertices = triangulation.cell_vertices(cell)
        return bool(np.any(np.linalg.norm(vertices, axis=1) < radius))

    return triangulation.refine(near)


@pytest.fixture
def unit_cell():
    """Single cell on [-1, 1]^2."""
    from meshing import hyper_cube

    return hyper_cube(-1.0, 1.0)


@pytest.fixture
def global_mesh():
    """[-1, 1]^2 refined globally once: 2 levels, 4 active cells."""
    from meshing import hyper_cube

    tria = hyper_cube(-1.0, 1.0)
    tria.refine_global(1)
    return tria


@pytest.fixture
def local_mesh():
    """Two local refinement cycles around the origin.

    Levels 0..3; level 3 covers [-0.5, 0.5]^2, so the active mesh has
    hanging nodes along the border of that square.
    """
    from meshing import hyper_cube

    tria = hyper_cube(-1.0, 1.0)
    tria.refine_global(1)
    refine_near_origin(tria)
    refine_near_origin(tria)
    return tria


@pytest.fixture
def on_boundary():
    from meshing import hyper_cube_boundary

    return hyper_cube_boundary(-1.0, 1.0)


@pytest.fixture
def q1_system():
    """FESystem[FE_Q(1)^2]."""
    from fe import create_fe

    return create_fe(degree=1, n_components=2)


@pytest.fixture
def q2_system():
    """FESystem[FE_Q(2)^2]."""
    from fe import create_fe

    return create_fe(degree=2, n_components=2)
