"""Coarse grid generators and geometric boundary predicates."""

from typing import Callable

import numpy as np

from meshing.triangulation import Triangulation


def hyper_cube(left: float = -1.0, right: float = 1.0) -> Triangulation:
    """Create a triangulation of the square [left, right]^2 with one cell.

    Parameters
    ----------
    left, right : float
        Lower and upper coordinate bound in both directions

    Returns
    -------
    Triangulation
        Hierarchy with a single level-0 cell
    """
    if not right > left:
        raise ValueError(f"hyper_cube requires left < right, got [{left}, {right}]")

    vertices = np.array(
        [
            [left, left],
            [right, left],
            [left, right],
            [right, right],
        ]
    )
    triangulation = Triangulation()
    triangulation.create_coarse_grid(vertices, [(0, 1, 2, 3)])
    return triangulation


def hyper_cube_boundary(
    left: float = -1.0, right: float = 1.0, tol: float = 1e-12
) -> Callable[[np.ndarray], bool]:
    """Return a predicate telling whether a point lies on the square's boundary."""
    scale = tol * max(1.0, abs(left), abs(right))

    def on_boundary(point: np.ndarray) -> bool:
        x, y = point[0], point[1]
        return bool(
            abs(x - left) <= scale
            or abs(x - right) <= scale
            or abs(y - left) <= scale
            or abs(y - right) <= scale
        )

    return on_boundary
