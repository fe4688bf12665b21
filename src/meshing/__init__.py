"""Quadrilateral cell hierarchy (mesh collaborator)."""

from meshing.triangulation import (
    CHILD_OFFSETS,
    FACE_VERTICES,
    CellIndex,
    Triangulation,
)
from meshing.grid_generator import hyper_cube, hyper_cube_boundary

__all__ = [
    "CHILD_OFFSETS",
    "FACE_VERTICES",
    "CellIndex",
    "Triangulation",
    "hyper_cube",
    "hyper_cube_boundary",
]
