"""Multilevel DoF numbering over a cell hierarchy.

``distribute_dofs`` assigns global indices to the degrees of freedom of an
``FESystem`` twice over the same hierarchy:

- per level: every cell of level ``l`` gets indices in ``[0, n_dofs(l))``
- active: every active (leaf) cell gets indices in ``[0, n_dofs())``

DoFs are identified through the geometric entity that carries them (vertex,
line interior, cell interior) and their component. Neighbouring cells
therefore share vertex and line DoFs, and hanging nodes of the active mesh
keep their own indices.

A ``DoFNumbering`` is immutable. Renumbering returns a new instance, so two
independent numberings of the same hierarchy can be held side by side.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, Hashable, List, Optional, Sequence, Tuple

import numpy as np

from fe.elements import FESystem
from meshing.triangulation import CellIndex, Triangulation
from multigrid.errors import NumberingInconsistencyError, StaleNumberingError

log = logging.getLogger(__name__)


# =============================================================================
# Entity keys
# =============================================================================


def _dof_keys(
    triangulation: Triangulation, fe: FESystem, cell: CellIndex
) -> List[Hashable]:
    """Global identity (entity key, component) of every local DoF of ``cell``."""
    vertices = triangulation.cell_vertex_indices(cell)
    p = fe.degree
    keys = []
    for i in range(fe.dofs_per_cell):
        component, _ = fe.system_to_component_index(i)
        entity = fe.entity(i)
        if entity[0] == "vertex":
            key = ("v", vertices[entity[1]])
        elif entity[0] == "line":
            a, b = triangulation.face_vertex_indices(cell, entity[1])
            t = entity[2]
            key = ("l", min(a, b), max(a, b), t if a < b else p - t)
        else:
            key = ("q", cell.level, cell.index, entity[1])
        keys.append((key, component))
    return keys


def _number_cells(
    triangulation: Triangulation, fe: FESystem, cells: Sequence[CellIndex]
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Number the DoFs of ``cells`` in first-touch order.

    Returns
    -------
    indices : np.ndarray
        Global index of every (cell, local DoF), shape (n_cells, dofs_per_cell)
    components : np.ndarray
        Component of every global DoF, shape (n_dofs,)
    support_points : np.ndarray
        Real support point of every global DoF, shape (n_dofs, 2)
    """
    numbers: Dict[Hashable, int] = {}
    indices = np.zeros((len(cells), fe.dofs_per_cell), dtype=np.int64)
    components: List[int] = []
    points: List[np.ndarray] = []
    local_components = fe.component_of()

    for row, cell in enumerate(cells):
        real_points = triangulation.map_to_real(cell, fe.support_points)
        for i, key in enumerate(_dof_keys(triangulation, fe, cell)):
            if key not in numbers:
                numbers[key] = len(numbers)
                components.append(local_components[i])
                points.append(real_points[i])
            indices[row, i] = numbers[key]

    support_points = np.array(points) if points else np.zeros((0, 2))
    return indices, np.array(components, dtype=np.int64), support_points


def _read_only(array: np.ndarray) -> np.ndarray:
    array.setflags(write=False)
    return array


# =============================================================================
# DoFNumbering
# =============================================================================


@dataclass(frozen=True, eq=False)
class DoFNumbering:
    """Level and active index tables of one numbering instance.

    Attributes
    ----------
    fe : FESystem
        Element the DoFs belong to
    generation : int
        Hierarchy generation the tables were built for
    level_dof_indices : tuple of np.ndarray
        Per level, shape (n_cells(level), dofs_per_cell)
    active_cells : tuple of CellIndex
        Active cells in hierarchy order
    active_dof_indices : np.ndarray
        Shape (n_active_cells, dofs_per_cell)
    """

    fe: FESystem
    generation: int

    level_dof_indices: Tuple[np.ndarray, ...]
    level_components: Tuple[np.ndarray, ...]
    level_support_points: Tuple[np.ndarray, ...]

    active_cells: Tuple[CellIndex, ...]
    active_dof_indices: np.ndarray
    active_components: np.ndarray
    active_support_points: np.ndarray

    _active_row: Dict[CellIndex, int] = field(default_factory=dict, repr=False, compare=False)

    def __post_init__(self):
        if not self._active_row:
            rows = {cell: row for row, cell in enumerate(self.active_cells)}
            object.__setattr__(self, "_active_row", rows)

    # -------------------------------------------------------------------------
    # Sizes
    # -------------------------------------------------------------------------

    @property
    def n_levels(self) -> int:
        return len(self.level_dof_indices)

    def n_dofs(self, level: Optional[int] = None) -> int:
        """Number of DoFs on ``level``, or of the active mesh if level is None."""
        return len(self.dof_components(level))

    # -------------------------------------------------------------------------
    # Index queries
    # -------------------------------------------------------------------------

    def cell_dof_indices(self, cell: CellIndex) -> np.ndarray:
        """Active-level indices of the local DoFs of an active cell."""
        row = self._active_row.get(cell)
        if row is None:
            raise ValueError(f"Cell {cell} is not active; it has no active DoF indices")
        return self.active_dof_indices[row]

    def cell_mg_dof_indices(self, cell: CellIndex) -> np.ndarray:
        """Level indices of the local DoFs of any cell, on the cell's own level."""
        if not 0 <= cell.level < self.n_levels:
            raise ValueError(f"Cell {cell} lies outside the numbered levels")
        return self.level_dof_indices[cell.level][cell.index]

    def dof_index_table(self, level: Optional[int] = None) -> np.ndarray:
        """Index table of ``level`` (or of the active cells if level is None)."""
        if level is None:
            return self.active_dof_indices
        return self.level_dof_indices[level]

    def dof_components(self, level: Optional[int] = None) -> np.ndarray:
        if level is None:
            return self.active_components
        return self.level_components[level]

    def support_points(self, level: Optional[int] = None) -> np.ndarray:
        if level is None:
            return self.active_support_points
        return self.level_support_points[level]

    # -------------------------------------------------------------------------
    # Renumbering and validity
    # -------------------------------------------------------------------------

    def renumber(self, new_numbers: np.ndarray, level: Optional[int] = None) -> "DoFNumbering":
        """Return a copy with the DoFs of ``level`` (or the active DoFs) renumbered.

        Parameters
        ----------
        new_numbers : np.ndarray
            Permutation with ``new_numbers[old_index] = new_index``
        level : int, optional
            Level to renumber; the active numbering if None
        """
        new_numbers = np.asarray(new_numbers, dtype=np.int64)
        n = self.n_dofs(level)
        if new_numbers.shape != (n,) or not np.array_equal(
            np.sort(new_numbers), np.arange(n)
        ):
            raise NumberingInconsistencyError(
                f"Renumbering of {'active' if level is None else f'level {level}'} "
                f"DoFs is not a permutation of [0, {n})"
            )

        indices = _read_only(new_numbers[self.dof_index_table(level)])
        components = np.empty_like(self.dof_components(level))
        components[new_numbers] = self.dof_components(level)
        points = np.empty_like(self.support_points(level))
        points[new_numbers] = self.support_points(level)

        if level is None:
            return replace(
                self,
                active_dof_indices=indices,
                active_components=_read_only(components),
                active_support_points=_read_only(points),
                _active_row=dict(self._active_row),
            )

        def swap(tables, value):
            return tuple(value if l == level else t for l, t in enumerate(tables))

        return replace(
            self,
            level_dof_indices=swap(self.level_dof_indices, indices),
            level_components=swap(self.level_components, _read_only(components)),
            level_support_points=swap(self.level_support_points, _read_only(points)),
            _active_row=dict(self._active_row),
        )

    def check_current(self, triangulation: Triangulation) -> None:
        """Raise StaleNumberingError if the hierarchy changed since numbering."""
        if triangulation.generation != self.generation:
            raise StaleNumberingError(
                f"Numbering built for hierarchy generation {self.generation}, "
                f"hierarchy is at generation {triangulation.generation}"
            )


def distribute_dofs(triangulation: Triangulation, fe: FESystem) -> DoFNumbering:
    """Number the DoFs of ``fe`` on every level and on the active mesh."""
    level_tables = [
        _number_cells(triangulation, fe, list(triangulation.cells(level)))
        for level in range(triangulation.n_levels())
    ]
    active_cells = triangulation.active_cells()
    active_indices, active_components, active_points = _number_cells(
        triangulation, fe, active_cells
    )

    numbering = DoFNumbering(
        fe=fe,
        generation=triangulation.generation,
        level_dof_indices=tuple(_read_only(t[0]) for t in level_tables),
        level_components=tuple(_read_only(t[1]) for t in level_tables),
        level_support_points=tuple(_read_only(t[2]) for t in level_tables),
        active_cells=tuple(active_cells),
        active_dof_indices=_read_only(active_indices),
        active_components=_read_only(active_components),
        active_support_points=_read_only(active_points),
    )
    log.debug(
        f"Distributed {numbering.n_dofs()} active DoFs of {fe.name} over "
        f"{triangulation.n_levels()} levels"
    )
    return numbering


# =============================================================================
# Verification
# =============================================================================


def _check_index_space(table: np.ndarray, n_dofs: int, what: str) -> None:
    if table.size == 0:
        if n_dofs != 0:
            raise NumberingInconsistencyError(f"{what}: no cells but {n_dofs} DoFs")
        return
    if table.min() < 0 or table.max() >= n_dofs:
        raise NumberingInconsistencyError(
            f"{what}: indices outside [0, {n_dofs}) "
            f"(found {table.min()}..{table.max()})"
        )
    if len(np.unique(table)) != n_dofs:
        raise NumberingInconsistencyError(
            f"{what}: index space [0, {n_dofs}) is not fully used"
        )
    for row in table:
        if len(np.unique(row)) != len(row):
            raise NumberingInconsistencyError(
                f"{what}: a cell references the same DoF in two local slots: {row}"
            )


def verify_numbering(numbering: DoFNumbering, triangulation: Triangulation) -> None:
    """Check that a numbering is current, contiguous and stable under re-query.

    Raises
    ------
    StaleNumberingError
        If the hierarchy was refined after the numbering was built
    NumberingInconsistencyError
        If two queries for the same (cell, slot) disagree, the index space of a
        level is not contiguous, or the tables do not match the hierarchy
    """
    numbering.check_current(triangulation)

    if numbering.n_levels != triangulation.n_levels():
        raise NumberingInconsistencyError(
            f"Numbering has {numbering.n_levels} levels, "
            f"hierarchy has {triangulation.n_levels()}"
        )

    for level in range(triangulation.n_levels()):
        cells = list(triangulation.cells(level))
        table = numbering.dof_index_table(level)
        if len(table) != len(cells):
            raise NumberingInconsistencyError(
                f"Level {level}: {len(table)} numbered cells, hierarchy has {len(cells)}"
            )
        for cell in cells:
            first = np.array(numbering.cell_mg_dof_indices(cell))
            second = np.array(numbering.cell_mg_dof_indices(cell))
            if not np.array_equal(first, second):
                raise NumberingInconsistencyError(
                    f"Level {level}: cell {cell} returned {first} and then {second}"
                )
        _check_index_space(table, numbering.n_dofs(level), f"Level {level}")

    active = triangulation.active_cells()
    if list(numbering.active_cells) != active:
        raise NumberingInconsistencyError("Active cells differ from the hierarchy's")
    for cell in active:
        first = np.array(numbering.cell_dof_indices(cell))
        second = np.array(numbering.cell_dof_indices(cell))
        if not np.array_equal(first, second):
            raise NumberingInconsistencyError(
                f"Active cell {cell} returned {first} and then {second}"
            )
    _check_index_space(numbering.dof_index_table(None), numbering.n_dofs(), "Active")
