"""DoF renumbering strategies.

A strategy computes a permutation ``new_numbers[old_index] = new_index`` for
the DoFs of one level (or of the active mesh) and hands it to
``DoFNumbering.renumber``, which returns a new numbering. The input
numbering is left untouched.

Besides the identity, three strategies are supported:
- component_wise: group DoFs by vector component, keeping the first-touch
  order of a cell traversal inside every component (stable)
- cuthill_mckee: bandwidth reduction on the cell-coupling graph
- random: seeded random permutation, the harshest test of index independence
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional, Sequence

import numpy as np
import scipy.sparse as sp
from scipy.sparse.csgraph import reverse_cuthill_mckee

from dofs.numbering import DoFNumbering


class RenumberingMethod(Enum):
    """Available renumbering methods."""

    NONE = "none"
    COMPONENT_WISE = "component_wise"
    CUTHILL_MCKEE = "cuthill_mckee"
    RANDOM = "random"


def _first_touch_order(table: np.ndarray, n_dofs: int) -> np.ndarray:
    """Position at which every DoF is first met when walking the cells in order."""
    dofs, first = np.unique(table.ravel(), return_index=True)
    order = np.empty(n_dofs, dtype=np.int64)
    order[dofs] = first
    return order


# =============================================================================
# Abstract Base Class
# =============================================================================


class Renumbering(ABC):
    """Abstract base class for DoF renumbering strategies."""

    @abstractmethod
    def permutation(self, numbering: DoFNumbering, level: Optional[int] = None) -> np.ndarray:
        """Compute ``new_numbers`` for the DoFs of ``level``.

        Parameters
        ----------
        numbering : DoFNumbering
            Numbering to be permuted
        level : int, optional
            Level to renumber; the active DoFs if None

        Returns
        -------
        np.ndarray
            Permutation of ``[0, n_dofs(level))`` indexed by old DoF index
        """
        pass

    def apply(self, numbering: DoFNumbering, level: Optional[int] = None) -> DoFNumbering:
        """Return a renumbered copy of ``numbering`` (one level, or active)."""
        return numbering.renumber(self.permutation(numbering, level), level)

    def apply_all_levels(
        self, numbering: DoFNumbering, levels: Optional[Sequence[int]] = None
    ) -> DoFNumbering:
        """Renumber every level (or ``levels``) of ``numbering``."""
        if levels is None:
            levels = range(numbering.n_levels)
        for level in levels:
            numbering = self.apply(numbering, level)
        return numbering


# =============================================================================
# Strategies
# =============================================================================


class IdentityRenumbering(Renumbering):
    """Keep the numbering as distributed."""

    def permutation(self, numbering: DoFNumbering, level: Optional[int] = None) -> np.ndarray:
        return np.arange(numbering.n_dofs(level))


class ComponentWiseRenumbering(Renumbering):
    """Sort DoFs by component, then by first appearance in the cell traversal.

    Parameters
    ----------
    component_order : sequence of int, optional
        Target block of every component; defaults to the identity. Components
        mapped to the same block are interleaved in traversal order.
    """

    def __init__(self, component_order: Optional[Sequence[int]] = None):
        self.component_order = None if component_order is None else list(component_order)

    def permutation(self, numbering: DoFNumbering, level: Optional[int] = None) -> np.ndarray:
        n = numbering.n_dofs(level)
        components = numbering.dof_components(level)
        if self.component_order is not None:
            if len(self.component_order) != numbering.fe.n_components:
                raise ValueError(
                    f"component_order has {len(self.component_order)} entries, "
                    f"element has {numbering.fe.n_components} components"
                )
            components = np.asarray(self.component_order)[components]

        first_touch = _first_touch_order(numbering.dof_index_table(level), n)
        # lexsort sorts by the last key first
        order = np.lexsort((first_touch, components))
        new_numbers = np.empty(n, dtype=np.int64)
        new_numbers[order] = np.arange(n)
        return new_numbers


class CuthillMcKeeRenumbering(Renumbering):
    """Cuthill-McKee ordering of the graph of DoFs sharing a cell.

    Parameters
    ----------
    reverse : bool
        Use the reverse ordering (scipy's native result) if True
    """

    def __init__(self, reverse: bool = False):
        self.reverse = reverse

    @staticmethod
    def coupling_graph(numbering: DoFNumbering, level: Optional[int] = None) -> sp.csr_matrix:
        """Symmetric adjacency of DoFs that share at least one cell."""
        table = numbering.dof_index_table(level)
        n = numbering.n_dofs(level)
        k = table.shape[1]
        rows = np.repeat(table, k, axis=1).ravel()
        cols = np.tile(table, (1, k)).ravel()
        data = np.ones(len(rows), dtype=np.int32)
        graph = sp.coo_matrix((data, (rows, cols)), shape=(n, n)).tocsr()
        graph.data[:] = 1
        return graph

    def permutation(self, numbering: DoFNumbering, level: Optional[int] = None) -> np.ndarray:
        graph = self.coupling_graph(numbering, level)
        # order[new] = old
        order = np.asarray(reverse_cuthill_mckee(graph, symmetric_mode=True), dtype=np.int64)
        if not self.reverse:
            order = order[::-1]
        new_numbers = np.empty(len(order), dtype=np.int64)
        new_numbers[order] = np.arange(len(order))
        return new_numbers


class RandomRenumbering(Renumbering):
    """Seeded random permutation; a different one on every level."""

    def __init__(self, seed: int = 0):
        self.seed = seed

    def permutation(self, numbering: DoFNumbering, level: Optional[int] = None) -> np.ndarray:
        # Stream 0 is the active numbering, stream l + 1 level l
        rng = np.random.default_rng((self.seed, 0 if level is None else level + 1))
        return rng.permutation(numbering.n_dofs(level))


# =============================================================================
# Factory
# =============================================================================


def create_renumbering(method: str = "component_wise", **kwargs) -> Renumbering:
    """Create a renumbering strategy from configuration.

    Parameters
    ----------
    method : str
        "none", "component_wise", "cuthill_mckee" or "random"
    **kwargs
        Forwarded to the strategy (``component_order``, ``reverse``, ``seed``)

    Returns
    -------
    Renumbering
        Configured strategy
    """
    try:
        method = RenumberingMethod(method)
    except ValueError:
        raise ValueError(f"Unknown renumbering method: {method}") from None

    if method is RenumberingMethod.NONE:
        return IdentityRenumbering()
    elif method is RenumberingMethod.COMPONENT_WISE:
        return ComponentWiseRenumbering(component_order=kwargs.get("component_order"))
    elif method is RenumberingMethod.CUTHILL_MCKEE:
        return CuthillMcKeeRenumbering(reverse=kwargs.get("reverse", False))
    return RandomRenumbering(seed=kwargs.get("seed", 0))
