"""Multilevel quadrilateral cell hierarchy for adaptive refinement.

Cells are stored in an arena, one table per level. A cell is addressed by its
``CellIndex(level, index)``; parent and child relations are stored as plain
indices into the neighbouring level tables, so the hierarchy holds no object
cycles.

Conventions follow the usual tensor-product quadrilateral layout:

- Vertices are ordered lexicographically: 0=(x0,y0), 1=(x1,y0), 2=(x0,y1), 3=(x1,y1)
- Faces: 0=left (0,2), 1=right (1,3), 2=bottom (0,1), 3=top (2,3)
- Children are ordered lexicographically: 0=SW, 1=SE, 2=NW, 3=NE

Refinement is append-only. Every call to ``execute_coarsening_and_refinement``
that refines at least one cell increments ``generation``; numberings and
transfer operators remember the generation they were built for.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, NamedTuple, Optional, Tuple

import numpy as np

from multigrid.errors import MalformedHierarchyError

log = logging.getLogger(__name__)

VERTICES_PER_CELL = 4
CHILDREN_PER_CELL = 4
FACES_PER_CELL = 4
FACE_VERTICES = ((0, 2), (1, 3), (0, 1), (2, 3))

# Corners of each child in the parent's reference square [0, 1]^2
CHILD_OFFSETS = np.array(
    [
        [0.0, 0.0],
        [0.5, 0.0],
        [0.0, 0.5],
        [0.5, 0.5],
    ]
)


class CellIndex(NamedTuple):
    """Address of a cell in the arena: (level, position on that level)."""

    level: int
    index: int


@dataclass
class _LevelCells:
    """Cell table of one level (parallel lists, one entry per cell)."""

    vertices: List[Tuple[int, int, int, int]] = field(default_factory=list)
    parent: List[int] = field(default_factory=list)
    first_child: List[int] = field(default_factory=list)
    refine_flag: List[bool] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.vertices)

    def append(self, vertices: Tuple[int, int, int, int], parent: int) -> int:
        self.vertices.append(vertices)
        self.parent.append(parent)
        self.first_child.append(-1)
        self.refine_flag.append(False)
        return len(self.vertices) - 1


class Triangulation:
    """Graded hierarchy of quadrilateral cells.

    The level difference of vertex-adjacent active cells is limited to one
    (``limit_level_difference_at_vertices``); refinement flags are smoothed
    accordingly before cells are refined.
    """

    def __init__(self):
        self._vertices: List[Tuple[float, float]] = []
        self._levels: List[_LevelCells] = []
        self._midpoints: Dict[Tuple[int, int], int] = {}
        self.generation = 0

    # =========================================================================
    # Construction
    # =========================================================================

    def create_coarse_grid(
        self,
        vertices: np.ndarray,
        cells: List[Tuple[int, int, int, int]],
    ) -> None:
        """Create level 0 from vertex coordinates and cell-vertex lists."""
        if self._levels:
            raise MalformedHierarchyError("Coarse grid has already been created")
        if len(cells) == 0:
            raise MalformedHierarchyError("Coarse grid must contain at least one cell")

        vertices = np.asarray(vertices, dtype=float)
        self._vertices = [(float(x), float(y)) for x, y in vertices]
        level0 = _LevelCells()
        for cell_vertices in cells:
            if any(v < 0 or v >= len(self._vertices) for v in cell_vertices):
                raise MalformedHierarchyError(
                    f"Cell {tuple(cell_vertices)} references an unknown vertex"
                )
            level0.append(tuple(int(v) for v in cell_vertices), parent=-1)
        self._levels = [level0]
        self.generation += 1

    # =========================================================================
    # Queries
    # =========================================================================

    def n_levels(self) -> int:
        return len(self._levels)

    def n_cells(self, level: int) -> int:
        return len(self._levels[level])

    def n_vertices(self) -> int:
        return len(self._vertices)

    def cells(self, level: int) -> Iterator[CellIndex]:
        """Iterate over all cells of one level, in storage order."""
        for index in range(len(self._levels[level])):
            yield CellIndex(level, index)

    def active_cells(self) -> List[CellIndex]:
        """Active (leaf) cells, ordered by level and then by position."""
        return [
            cell
            for level in range(self.n_levels())
            for cell in self.cells(level)
            if self.is_active(cell)
        ]

    def n_active_cells(self) -> int:
        return len(self.active_cells())

    def is_active(self, cell: CellIndex) -> bool:
        return self._levels[cell.level].first_child[cell.index] < 0

    def parent(self, cell: CellIndex) -> Optional[CellIndex]:
        """Parent of ``cell``, or None for a level-0 cell."""
        parent = self._levels[cell.level].parent[cell.index]
        if parent < 0:
            return None
        return CellIndex(cell.level - 1, parent)

    def children(self, cell: CellIndex) -> List[CellIndex]:
        """Children of ``cell`` in lexicographic order (empty if active)."""
        first = self._levels[cell.level].first_child[cell.index]
        if first < 0:
            return []
        return [CellIndex(cell.level + 1, first + c) for c in range(CHILDREN_PER_CELL)]

    def vertex(self, vertex_index: int) -> np.ndarray:
        return np.array(self._vertices[vertex_index])

    def cell_vertex_indices(self, cell: CellIndex) -> Tuple[int, int, int, int]:
        return self._levels[cell.level].vertices[cell.index]

    def cell_vertices(self, cell: CellIndex) -> np.ndarray:
        """Vertex coordinates of ``cell``, shape (4, 2)."""
        return np.array([self._vertices[v] for v in self.cell_vertex_indices(cell)])

    def face_vertex_indices(self, cell: CellIndex, face: int) -> Tuple[int, int]:
        vertices = self.cell_vertex_indices(cell)
        a, b = FACE_VERTICES[face]
        return vertices[a], vertices[b]

    def map_to_real(self, cell: CellIndex, points: np.ndarray) -> np.ndarray:
        """Bilinear map of reference points in [0, 1]^2 to real coordinates.

        Parameters
        ----------
        cell : CellIndex
            Cell whose geometry defines the map
        points : np.ndarray
            Reference points, shape (n, 2)

        Returns
        -------
        np.ndarray
            Real coordinates, shape (n, 2)
        """
        points = np.atleast_2d(points)
        xi, eta = points[:, 0], points[:, 1]
        weights = np.stack(
            [
                (1 - xi) * (1 - eta),
                xi * (1 - eta),
                (1 - xi) * eta,
                xi * eta,
            ],
            axis=1,
        )
        return weights @ self.cell_vertices(cell)

    def cell_center(self, cell: CellIndex) -> np.ndarray:
        return self.map_to_real(cell, np.array([[0.5, 0.5]]))[0]

    # =========================================================================
    # Refinement
    # =========================================================================

    def set_refine_flag(self, cell: CellIndex) -> None:
        if not self.is_active(cell):
            raise MalformedHierarchyError(f"Cannot flag non-active cell {cell}")
        self._levels[cell.level].refine_flag[cell.index] = True

    def refine_flag_set(self, cell: CellIndex) -> bool:
        return self._levels[cell.level].refine_flag[cell.index]

    def clear_refine_flags(self) -> None:
        for level in self._levels:
            level.refine_flag = [False] * len(level)

    def prepare_coarsening_and_refinement(self) -> int:
        """Add refine flags until the refined mesh is graded at vertices.

        Returns
        -------
        int
            Number of flags added by the smoothing
        """
        added = 0
        active = self.active_cells()
        while True:
            # Level each vertex will carry after refinement
            vertex_level = np.full(self.n_vertices(), -1, dtype=int)
            for cell in active:
                future = cell.level + int(self.refine_flag_set(cell))
                for v in self.cell_vertex_indices(cell):
                    vertex_level[v] = max(vertex_level[v], future)

            changed = False
            for cell in active:
                if self.refine_flag_set(cell):
                    continue
                vertices = self.cell_vertex_indices(cell)
                if np.max(vertex_level[list(vertices)]) > cell.level + 1:
                    self.set_refine_flag(cell)
                    added += 1
                    changed = True
            if not changed:
                break

        if added:
            log.debug(f"Graded smoothing added {added} refine flag(s)")
        return added

    def execute_coarsening_and_refinement(self) -> int:
        """Refine all flagged cells (after smoothing) and clear the flags.

        Returns
        -------
        int
            Number of cells that were refined
        """
        self.prepare_coarsening_and_refinement()

        flagged = [
            cell
            for level in range(self.n_levels())
            for cell in self.cells(level)
            if self.refine_flag_set(cell)
        ]
        for cell in flagged:
            self._refine_cell(cell)
        self.clear_refine_flags()

        if flagged:
            self.generation += 1
            log.debug(
                f"Refined {len(flagged)} cell(s); {self.n_levels()} levels, "
                f"{self.n_active_cells()} active cells"
            )
        return len(flagged)

    def refine(self, predicate: Callable[[CellIndex], bool]) -> int:
        """Flag every active cell for which ``predicate`` holds and refine.

        Returns
        -------
        int
            Number of cells that were refined (including smoothing)
        """
        for cell in self.active_cells():
            if predicate(cell):
                self.set_refine_flag(cell)
        return self.execute_coarsening_and_refinement()

    def refine_global(self, times: int = 1) -> None:
        for _ in range(times):
            self.refine(lambda cell: True)

    def _midpoint(self, a: int, b: int) -> int:
        key = (min(a, b), max(a, b))
        if key not in self._midpoints:
            xa, ya = self._vertices[a]
            xb, yb = self._vertices[b]
            self._vertices.append((0.5 * (xa + xb), 0.5 * (ya + yb)))
            self._midpoints[key] = len(self._vertices) - 1
        return self._midpoints[key]

    def _refine_cell(self, cell: CellIndex) -> None:
        v0, v1, v2, v3 = self.cell_vertex_indices(cell)
        bottom = self._midpoint(v0, v1)
        top = self._midpoint(v2, v3)
        left = self._midpoint(v0, v2)
        right = self._midpoint(v1, v3)

        center = self.cell_center(cell)
        self._vertices.append((float(center[0]), float(center[1])))
        c = len(self._vertices) - 1

        if cell.level + 1 == self.n_levels():
            self._levels.append(_LevelCells())
        child_level = self._levels[cell.level + 1]

        first = child_level.append((v0, bottom, left, c), parent=cell.index)
        child_level.append((bottom, v1, c, right), parent=cell.index)
        child_level.append((left, c, v2, top), parent=cell.index)
        child_level.append((c, right, top, v3), parent=cell.index)
        self._levels[cell.level].first_child[cell.index] = first

    # =========================================================================
    # Validation
    # =========================================================================

    def check_graded(self) -> None:
        """Verify the structural invariants of the hierarchy.

        Raises
        ------
        MalformedHierarchyError
            If a level above 0 is empty, a parent/child reference does not
            point to the adjacent level, or vertex-adjacent active cells differ
            by more than one level.
        """
        if self.n_levels() == 0:
            raise MalformedHierarchyError("Hierarchy has no levels")

        for level in range(1, self.n_levels()):
            if self.n_cells(level) == 0:
                raise MalformedHierarchyError(f"Level {level} contains no cells")
            for cell in self.cells(level):
                parent = self.parent(cell)
                if parent is None or parent.index >= self.n_cells(level - 1):
                    raise MalformedHierarchyError(
                        f"Cell {cell} has no valid parent on level {level - 1}"
                    )
                if cell not in self.children(parent):
                    raise MalformedHierarchyError(
                        f"Cell {cell} is not listed as a child of {parent}"
                    )

        vertex_min = np.full(self.n_vertices(), np.iinfo(int).max)
        vertex_max = np.full(self.n_vertices(), -1)
        for cell in self.active_cells():
            for v in self.cell_vertex_indices(cell):
                vertex_min[v] = min(vertex_min[v], cell.level)
                vertex_max[v] = max(vertex_max[v], cell.level)
        used = vertex_max >= 0
        jumps = np.nonzero(used & (vertex_max - vertex_min > 1))[0]
        if len(jumps) > 0:
            v = int(jumps[0])
            raise MalformedHierarchyError(
                f"Active cells at vertex {v} {tuple(self._vertices[v])} span levels "
                f"{vertex_min[v]}..{vertex_max[v]}"
            )
