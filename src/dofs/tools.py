"""Per-level DoF sets derived from the mesh: boundary and refinement-edge DoFs."""

import logging
from typing import Callable, FrozenSet, List, Optional, Sequence

import numpy as np

from dofs.numbering import DoFNumbering
from meshing.triangulation import FACES_PER_CELL, CellIndex, Triangulation

log = logging.getLogger(__name__)

BoundaryPredicate = Callable[[np.ndarray], bool]

# Face midpoints on the reference square, in face order
_FACE_MIDPOINTS = np.array([[0.0, 0.5], [1.0, 0.5], [0.5, 0.0], [0.5, 1.0]])


def face_at_boundary(
    triangulation: Triangulation,
    cell: CellIndex,
    face: int,
    on_boundary: BoundaryPredicate,
) -> bool:
    """A face lies on the boundary if both its vertices and its midpoint do."""
    a, b = triangulation.face_vertex_indices(cell, face)
    midpoint = triangulation.map_to_real(cell, _FACE_MIDPOINTS[face : face + 1])[0]
    return (
        on_boundary(triangulation.vertex(a))
        and on_boundary(triangulation.vertex(b))
        and on_boundary(midpoint)
    )


def make_boundary_list(
    numbering: DoFNumbering,
    triangulation: Triangulation,
    on_boundary: BoundaryPredicate,
    component_mask: Optional[Sequence[bool]] = None,
) -> List[FrozenSet[int]]:
    """Collect the level DoFs on boundary faces, for every level.

    Parameters
    ----------
    numbering : DoFNumbering
        Numbering whose level indices are collected
    triangulation : Triangulation
        Hierarchy the numbering was built for
    on_boundary : callable
        Predicate on real points, True on the Dirichlet boundary
    component_mask : sequence of bool, optional
        Components to include; all components if None

    Returns
    -------
    list of frozenset
        Boundary level DoF indices, one set per level
    """
    numbering.check_current(triangulation)
    fe = numbering.fe
    if component_mask is not None and len(component_mask) != fe.n_components:
        raise ValueError(
            f"component_mask has {len(component_mask)} entries, "
            f"element has {fe.n_components} components"
        )

    face_dofs = []
    for face in range(FACES_PER_CELL):
        dofs = fe.face_dofs(face)
        if component_mask is not None:
            dofs = [i for i in dofs if component_mask[fe.system_to_component_index(i)[0]]]
        face_dofs.append(np.array(dofs, dtype=np.int64))

    boundary = []
    for level in range(triangulation.n_levels()):
        indices = set()
        for cell in triangulation.cells(level):
            mg_dofs = numbering.cell_mg_dof_indices(cell)
            for face in range(FACES_PER_CELL):
                if face_at_boundary(triangulation, cell, face, on_boundary):
                    indices.update(int(i) for i in mg_dofs[face_dofs[face]])
        boundary.append(frozenset(indices))
    return boundary


def extract_inner_interface_dofs(
    numbering: DoFNumbering,
    triangulation: Triangulation,
    on_boundary: BoundaryPredicate,
) -> List[np.ndarray]:
    """Flag level DoFs on refinement edges.

    A refinement edge of level ``l`` is a face of a level-``l`` cell that has
    no level-``l`` neighbour and is not on the boundary, i.e. the level mesh
    ends there because the active mesh is coarser on the other side.

    Returns
    -------
    list of np.ndarray
        Boolean mask over the level DoFs, one per level
    """
    numbering.check_current(triangulation)
    fe = numbering.fe
    masks = []
    for level in range(triangulation.n_levels()):
        cells = list(triangulation.cells(level))

        face_count = {}
        for cell in cells:
            for face in range(FACES_PER_CELL):
                a, b = triangulation.face_vertex_indices(cell, face)
                key = (min(a, b), max(a, b))
                face_count[key] = face_count.get(key, 0) + 1

        mask = np.zeros(numbering.n_dofs(level), dtype=bool)
        for cell in cells:
            mg_dofs = numbering.cell_mg_dof_indices(cell)
            for face in range(FACES_PER_CELL):
                a, b = triangulation.face_vertex_indices(cell, face)
                if face_count[(min(a, b), max(a, b))] > 1:
                    continue
                if face_at_boundary(triangulation, cell, face, on_boundary):
                    continue
                mask[mg_dofs[fe.face_dofs(face)]] = True
        masks.append(mask)
    return masks


def log_interface_dofs(
    numbering: DoFNumbering,
    triangulation: Triangulation,
    interface_dofs: Sequence[np.ndarray],
) -> None:
    """Log, per level and cell, which local DoFs sit on a refinement edge."""
    for level, mask in enumerate(interface_dofs):
        log.debug(f"Level {level}: {int(mask.sum())} interface DoFs")
        for cell in triangulation.cells(level):
            flags = "".join(str(int(f)) for f in mask[numbering.cell_mg_dof_indices(cell)])
            log.debug(f"  {cell.level}.{cell.index}: {flags}")
