"""Prebuilt multilevel transfer operators and fine-to-level copy.

For every level ``l >= 1`` the prolongation ``P_l`` (level ``l - 1`` to level
``l``) is assembled from the element's child embedding matrices:

    P_l[child_dofs[a], parent_dofs[b]] = E_c[a, b]

Several (parent, child) pairs reach the same matrix entry when a child DoF is
shared between children or between neighbouring parents. All contributions
to one entry are combined as their exact-sum mean, so the assembled matrices
do not depend on the order in which cells are visited. Columns belonging to
boundary DoFs of the coarse level are zeroed, and the restriction is the
transpose ``R_l = P_l^T``. A restricted vector is therefore exactly zero on
every coarse boundary DoF.

``copy_to_mg`` distributes an active-mesh vector onto all levels. Every level
DoF takes the value of exactly one active DoF: the one at the same location
on an active cell of that level, or otherwise the one reached by descending
into the first child that shares the location.
"""

import logging
import math
import warnings
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

import numpy as np
import scipy.sparse as sp

from dofs.numbering import DoFNumbering
from fe.elements import FESystem
from meshing.triangulation import CHILD_OFFSETS, CellIndex, Triangulation
from multigrid.errors import (
    MalformedHierarchyError,
    NumberingInconsistencyError,
    StaleNumberingError,
    TransferOrderDependenceWarning,
)
from multigrid.level_object import MGLevelObject

log = logging.getLogger(__name__)

CellOrder = Callable[[List[CellIndex]], List[CellIndex]]


# =============================================================================
# Level transfer
# =============================================================================


@dataclass(frozen=True)
class LevelTransfer:
    """Transfer matrices between level ``level - 1`` (coarse) and ``level`` (fine).

    Attributes
    ----------
    level : int
        Fine level
    embedding : sp.csr_matrix
        Unconstrained prolongation, shape (n_dofs(level), n_dofs(level - 1))
    prolongation : sp.csr_matrix
        Embedding with coarse boundary columns removed
    restriction : sp.csr_matrix
        Transpose of ``prolongation``
    """

    level: int
    embedding: sp.csr_matrix
    prolongation: sp.csr_matrix
    restriction: sp.csr_matrix

    @property
    def n_fine(self) -> int:
        return self.prolongation.shape[0]

    @property
    def n_coarse(self) -> int:
        return self.prolongation.shape[1]

    def prolongate(self, u_coarse: np.ndarray) -> np.ndarray:
        return self.prolongation @ u_coarse

    def restrict(self, u_fine: np.ndarray) -> np.ndarray:
        return self.restriction @ u_fine


def _refined_cells(triangulation: Triangulation, level: int) -> List[CellIndex]:
    return [cell for cell in triangulation.cells(level) if not triangulation.is_active(cell)]


def _assemble_embedding(
    triangulation: Triangulation,
    numbering: DoFNumbering,
    level: int,
    cell_order: Optional[CellOrder],
) -> sp.csr_matrix:
    """Assemble the unconstrained prolongation from level ``level - 1`` to ``level``."""
    fe = numbering.fe
    nonzeros = [np.nonzero(fe.embedding(c)) for c in range(len(CHILD_OFFSETS))]

    parents = _refined_cells(triangulation, level - 1)
    if cell_order is not None:
        parents = cell_order(parents)

    contributions: Dict[Tuple[int, int], List[float]] = defaultdict(list)
    for parent in parents:
        parent_dofs = numbering.cell_mg_dof_indices(parent)
        for c, child in enumerate(triangulation.children(parent)):
            child_dofs = numbering.cell_mg_dof_indices(child)
            a, b = nonzeros[c]
            weights = fe.embedding(c)[a, b]
            for row, col, w in zip(child_dofs[a], parent_dofs[b], weights):
                contributions[(int(row), int(col))].append(float(w))

    keys = sorted(contributions)
    rows = np.array([k[0] for k in keys], dtype=np.int64)
    cols = np.array([k[1] for k in keys], dtype=np.int64)
    data = np.array(
        [math.fsum(contributions[k]) / len(contributions[k]) for k in keys], dtype=float
    )
    shape = (numbering.n_dofs(level), numbering.n_dofs(level - 1))
    return sp.csr_matrix((data, (rows, cols)), shape=shape)


def _constrain_columns(embedding: sp.csr_matrix, columns: Set[int]) -> sp.csr_matrix:
    keep = np.ones(embedding.shape[1])
    if columns:
        keep[np.fromiter(columns, dtype=np.int64)] = 0.0
    prolongation = (embedding @ sp.diags(keep)).tocsr()
    prolongation.eliminate_zeros()
    return prolongation


def build_level_transfer(
    triangulation: Triangulation,
    numbering: DoFNumbering,
    level: int,
    coarse_boundary: Set[int],
    cell_order: Optional[CellOrder] = None,
) -> LevelTransfer:
    """Build the transfer between levels ``level - 1`` and ``level``."""
    embedding = _assemble_embedding(triangulation, numbering, level, cell_order)
    prolongation = _constrain_columns(embedding, coarse_boundary)
    return LevelTransfer(
        level=level,
        embedding=embedding,
        prolongation=prolongation,
        restriction=prolongation.T.tocsr(),
    )


# =============================================================================
# Copy-down sources
# =============================================================================


def child_slot_map(fe: FESystem) -> np.ndarray:
    """Local slot of every child DoF that coincides with a parent DoF.

    Returns
    -------
    np.ndarray
        ``m[c, i]`` is the slot of child ``c`` at the location and component of
        parent slot ``i``, or -1 if child ``c`` does not contain that location.
        Shape (4, dofs_per_cell).
    """
    base = fe.base
    p = base.degree
    n = fe.n_components
    parent_points = {tuple(2 * node): k for k, node in enumerate(base.lattice)}

    slots = np.full((len(CHILD_OFFSETS), fe.dofs_per_cell), -1, dtype=np.int64)
    for c, offset in enumerate(CHILD_OFFSETS):
        shift = np.rint(offset * 2 * p).astype(int)
        for j, node in enumerate(base.lattice):
            k = parent_points.get(tuple(shift + node))
            if k is not None:
                slots[c, k * n : (k + 1) * n] = j * n + np.arange(n)
    return slots


def _assign(sources: np.ndarray, dofs: np.ndarray, values: np.ndarray, where: str) -> None:
    current = sources[dofs]
    clash = (current >= 0) & (current != values)
    if np.any(clash):
        i = int(np.nonzero(clash)[0][0])
        raise NumberingInconsistencyError(
            f"{where}: level DoF {dofs[i]} traced to active DoFs {current[i]} and {values[i]}"
        )
    sources[dofs] = values


def _copy_sources(triangulation: Triangulation, numbering: DoFNumbering) -> List[np.ndarray]:
    """For every level, the active DoF each level DoF is copied from."""
    slots = child_slot_map(numbering.fe)
    n_levels = triangulation.n_levels()
    sources: List[Optional[np.ndarray]] = [None] * n_levels

    for level in reversed(range(n_levels)):
        level_sources = np.full(numbering.n_dofs(level), -1, dtype=np.int64)
        refined = []
        for cell in triangulation.cells(level):
            if triangulation.is_active(cell):
                _assign(
                    level_sources,
                    numbering.cell_mg_dof_indices(cell),
                    numbering.cell_dof_indices(cell),
                    f"Level {level}, active cell {cell}",
                )
            else:
                refined.append(cell)

        # Refined cells only fill level DoFs no active cell of this level owns
        from_children = np.full_like(level_sources, -1)
        for cell in refined:
            mg_dofs = numbering.cell_mg_dof_indices(cell)
            children = triangulation.children(cell)
            values = np.empty(len(mg_dofs), dtype=np.int64)
            for i in range(len(mg_dofs)):
                c = int(np.nonzero(slots[:, i] >= 0)[0][0])
                child_dofs = numbering.cell_mg_dof_indices(children[c])
                values[i] = sources[level + 1][child_dofs[slots[c, i]]]
            open_slots = level_sources[mg_dofs] < 0
            _assign(
                from_children,
                mg_dofs[open_slots],
                values[open_slots],
                f"Level {level}, refined cell {cell}",
            )
        filled = from_children >= 0
        level_sources[filled] = from_children[filled]

        missing = np.nonzero(level_sources < 0)[0]
        if len(missing) > 0:
            raise NumberingInconsistencyError(
                f"Level {level}: {len(missing)} level DoF(s) have no active source, "
                f"first {missing[:5].tolist()}"
            )
        sources[level] = level_sources
    return sources


# =============================================================================
# MGTransferPrebuilt
# =============================================================================


class MGTransferPrebuilt:
    """Transfer operators of one numbering on one hierarchy snapshot.

    Use ``build_matrices`` to construct. The object refuses to operate once the
    hierarchy has been refined again.
    """

    def __init__(
        self,
        triangulation: Triangulation,
        numbering: DoFNumbering,
        level_transfers: Sequence[LevelTransfer],
        copy_sources: Sequence[np.ndarray],
    ):
        self.triangulation = triangulation
        self.numbering = numbering
        self.generation = numbering.generation
        self._transfers = {t.level: t for t in level_transfers}
        self._copy_sources = list(copy_sources)

        active_rows = numbering.active_dof_indices
        self._active_targets = np.array(
            [
                (cell.level, int(active), int(mg))
                for cell, row in zip(numbering.active_cells, active_rows)
                for active, mg in zip(row, numbering.cell_mg_dof_indices(cell))
            ],
            dtype=np.int64,
        ).reshape(-1, 3)

    @property
    def n_levels(self) -> int:
        return len(self._copy_sources)

    def _check_current(self) -> None:
        if self.triangulation.generation != self.generation:
            raise StaleNumberingError(
                f"Transfer built for hierarchy generation {self.generation}, "
                f"hierarchy is at generation {self.triangulation.generation}"
            )

    def copy_source(self, level: int) -> np.ndarray:
        """Active DoF that every DoF of ``level`` is copied from."""
        return self._copy_sources[level]

    def level_transfer(self, level: int) -> LevelTransfer:
        if level not in self._transfers:
            raise IndexError(f"No transfer into level {level} (levels 1..{self.n_levels - 1})")
        return self._transfers[level]

    def prolongation_matrix(self, level: int) -> sp.csr_matrix:
        return self.level_transfer(level).prolongation

    def restriction_matrix(self, level: int) -> sp.csr_matrix:
        return self.level_transfer(level).restriction

    def prolongate(self, level: int, dst: np.ndarray, src: np.ndarray) -> None:
        """dst = P_level src, with ``src`` on level - 1 and ``dst`` on level."""
        self._check_current()
        dst[:] = self.level_transfer(level).prolongate(src)

    def restrict_and_add(self, level: int, dst: np.ndarray, src: np.ndarray) -> None:
        """dst += R_level src, with ``src`` on level and ``dst`` on level - 1."""
        self._check_current()
        dst += self.level_transfer(level).restrict(src)

    def copy_to_mg(self, src: np.ndarray) -> MGLevelObject:
        """Distribute an active-mesh vector onto every level."""
        self._check_current()
        src = np.asarray(src, dtype=float)
        n = self.numbering.n_dofs()
        if src.shape != (n,):
            raise ValueError(f"Source vector has shape {src.shape}, expected ({n},)")

        dst = MGLevelObject(0, self.n_levels - 1)
        for level, sources in enumerate(self._copy_sources):
            dst[level] = src[sources]
        return dst

    def copy_from_mg(self, src: MGLevelObject) -> np.ndarray:
        """Gather an active-mesh vector from the level vectors of active cells."""
        self._check_current()
        dst = np.zeros(self.numbering.n_dofs())
        for level, active, mg in self._active_targets:
            dst[active] = src[int(level)][mg]
        return dst


def _validate_hierarchy(
    triangulation: Triangulation,
    numbering: DoFNumbering,
    boundary_indices: Sequence[Set[int]],
) -> None:
    numbering.check_current(triangulation)
    triangulation.check_graded()
    if numbering.n_levels != triangulation.n_levels():
        raise MalformedHierarchyError(
            f"Numbering covers {numbering.n_levels} levels, "
            f"hierarchy has {triangulation.n_levels()}"
        )
    if len(boundary_indices) != triangulation.n_levels():
        raise ValueError(
            f"Expected one boundary set per level ({triangulation.n_levels()}), "
            f"got {len(boundary_indices)}"
        )
    for level, indices in enumerate(boundary_indices):
        n = numbering.n_dofs(level)
        bad = [i for i in indices if not 0 <= i < n]
        if bad:
            raise NumberingInconsistencyError(
                f"Level {level}: boundary indices {sorted(bad)[:5]} outside [0, {n})"
            )


def build_matrices(
    triangulation: Triangulation,
    numbering: DoFNumbering,
    boundary_indices: Sequence[Set[int]],
    cell_order: Optional[CellOrder] = None,
) -> MGTransferPrebuilt:
    """Build the prolongation and restriction of every level.

    Parameters
    ----------
    triangulation : Triangulation
        Graded cell hierarchy
    numbering : DoFNumbering
        Current numbering of the hierarchy
    boundary_indices : sequence of set of int
        Boundary level DoFs, one set per level
    cell_order : callable, optional
        Reorders the list of refined cells visited on each level; the result
        does not depend on it

    Returns
    -------
    MGTransferPrebuilt
        Transfer operators bound to this hierarchy snapshot

    Raises
    ------
    MalformedHierarchyError
        If the hierarchy is not graded or its parent/child links are broken
    StaleNumberingError
        If the numbering predates the current hierarchy
    """
    _validate_hierarchy(triangulation, numbering, boundary_indices)

    transfers = [
        build_level_transfer(
            triangulation, numbering, level, set(boundary_indices[level - 1]), cell_order
        )
        for level in range(1, triangulation.n_levels())
    ]
    for t in transfers:
        log.debug(
            f"Level {t.level}: prolongation {t.n_fine}x{t.n_coarse}, "
            f"{t.prolongation.nnz} nonzeros"
        )
    sources = _copy_sources(triangulation, numbering)
    return MGTransferPrebuilt(triangulation, numbering, transfers, sources)


# =============================================================================
# Order independence
# =============================================================================


def _same_matrix(a: sp.csr_matrix, b: sp.csr_matrix) -> bool:
    if a.shape != b.shape:
        return False
    a, b = a.tocsr(), b.tocsr()
    a.sort_indices()
    b.sort_indices()
    return (
        np.array_equal(a.indptr, b.indptr)
        and np.array_equal(a.indices, b.indices)
        and np.array_equal(a.data, b.data)
    )


def check_order_independence(
    triangulation: Triangulation,
    numbering: DoFNumbering,
    boundary_indices: Sequence[Set[int]],
    reference: Optional[MGTransferPrebuilt] = None,
    seed: int = 0,
) -> bool:
    """Rebuild the transfer with reversed and shuffled cell visits and compare.

    Emits ``TransferOrderDependenceWarning`` and returns False if any level
    matrix differs bit-wise from the reference build.
    """
    if reference is None:
        reference = build_matrices(triangulation, numbering, boundary_indices)
    rng = np.random.default_rng(seed)
    orders = {
        "reversed": lambda cells: cells[::-1],
        "shuffled": lambda cells: [cells[i] for i in rng.permutation(len(cells))],
    }

    independent = True
    for name, order in orders.items():
        for level in range(1, triangulation.n_levels()):
            rebuilt = build_level_transfer(
                triangulation, numbering, level, set(boundary_indices[level - 1]), order
            )
            if not _same_matrix(rebuilt.prolongation, reference.prolongation_matrix(level)):
                independent = False
                warnings.warn(
                    f"Level {level} prolongation changes with {name} cell order",
                    TransferOrderDependenceWarning,
                    stacklevel=2,
                )
    return independent


# =============================================================================
# Vector initializers
# =============================================================================


def initialize_by_component(numbering: DoFNumbering) -> np.ndarray:
    """Active-mesh vector holding ``component + 1`` at every DoF."""
    return numbering.dof_components().astype(float) + 1.0


def initialize_level0_counter(numbering: DoFNumbering) -> MGLevelObject:
    """Level vectors that are zero except on level 0.

    Level 0 holds a running counter over the local slots of the level-0 cells,
    so its values depend on cell geometry and slot, not on the numbering.
    """
    vectors = MGLevelObject(0, numbering.n_levels - 1)
    for level in vectors:
        vectors[level] = np.zeros(numbering.n_dofs(level))

    counter = 0
    for mg_dofs in numbering.dof_index_table(0):
        for i in mg_dofs:
            counter += 1
            vectors[0][i] = counter
    return vectors
