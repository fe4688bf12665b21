"""Cell loop over one level, evaluating a level vector at sample points.

Used for output: a worker receives one ``CellInfo`` per cell and returns rows
of data (for example point coordinates followed by component values).
"""

from dataclasses import dataclass
from typing import Callable, List, Optional

import numpy as np

from dofs.numbering import DoFNumbering
from meshing.triangulation import CellIndex, Triangulation


@dataclass(frozen=True)
class CellInfo:
    """Geometry and field values of one cell.

    Attributes
    ----------
    cell : CellIndex
        Cell the data belongs to
    vertices : np.ndarray
        Vertex coordinates, shape (4, 2)
    points : np.ndarray
        Real sample points, shape (Q, 2)
    values : np.ndarray
        Field values at the sample points, shape (Q, n_components)
    """

    cell: CellIndex
    vertices: np.ndarray
    points: np.ndarray
    values: np.ndarray


CellWorker = Callable[[CellInfo], np.ndarray]


def sample_points(n_subdivisions: int) -> np.ndarray:
    """Lexicographic grid of (n + 1)^2 reference points on [0, 1]^2 (x fastest)."""
    t = np.linspace(0.0, 1.0, n_subdivisions + 1)
    x, y = np.meshgrid(t, t, indexing="xy")
    return np.column_stack([x.ravel(), y.ravel()])


def loop_level(
    triangulation: Triangulation,
    numbering: DoFNumbering,
    level: int,
    vector: np.ndarray,
    worker: CellWorker,
    n_subdivisions: Optional[int] = None,
) -> List[np.ndarray]:
    """Apply ``worker`` to every cell of ``level``.

    Parameters
    ----------
    triangulation : Triangulation
        Cell hierarchy
    numbering : DoFNumbering
        Numbering of ``vector``
    level : int
        Level to loop over
    vector : np.ndarray
        Level vector, shape (n_dofs(level),)
    worker : callable
        Called once per cell with its ``CellInfo``
    n_subdivisions : int, optional
        Sample points per direction minus one; defaults to the element degree

    Returns
    -------
    list of np.ndarray
        Worker results in cell order
    """
    numbering.check_current(triangulation)
    fe = numbering.fe
    if len(vector) != numbering.n_dofs(level):
        raise ValueError(
            f"Level {level} vector has {len(vector)} entries, "
            f"expected {numbering.n_dofs(level)}"
        )

    reference = sample_points(n_subdivisions or fe.degree)
    shape = fe.base.shape_values(reference)

    results = []
    for cell in triangulation.cells(level):
        local = vector[numbering.cell_mg_dof_indices(cell)]
        # Node-major local layout: one row per base node, one column per component
        values = shape @ local.reshape(-1, fe.n_components)
        info = CellInfo(
            cell=cell,
            vertices=triangulation.cell_vertices(cell),
            points=triangulation.map_to_real(cell, reference),
            values=values,
        )
        results.append(worker(info))
    return results


def sample_points_worker(info: CellInfo) -> np.ndarray:
    """Rows of ``x y value_0 ... value_{n-1}``."""
    return np.hstack([info.points, info.values])
