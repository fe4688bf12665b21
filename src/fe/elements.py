"""Continuous Lagrange elements on quadrilaterals.

Provides the finite-element collaborator used by the DoF numbering and the
transfer builder:

- ``FE_Q``: scalar tensor-product Lagrange element of arbitrary degree
- ``FESystem``: several copies of a scalar element, one per vector component

Local node ordering (scalar element)
------------------------------------
vertices (0, 1, 2, 3) -> line interiors (faces 0..3, along the face from its
first to its second vertex) -> cell interior (lexicographic).

Local DoF ordering (system)
---------------------------
Node-major, component-minor: system DoF ``i`` is base node ``i // n_components``
of component ``i % n_components``.
"""

from typing import List, Tuple

import numpy as np

from fe.basis import lagrange_basis, lagrange_nodes
from meshing.triangulation import CHILD_OFFSETS, FACE_VERTICES

# Node entity descriptors: ("vertex", k), ("line", face, t), ("quad", k)
Entity = Tuple


class FE_Q:
    """Scalar continuous Lagrange element Q_p on the reference square [0, 1]^2.

    Parameters
    ----------
    degree : int
        Polynomial degree p >= 1 in each coordinate direction
    """

    def __init__(self, degree: int = 1):
        if int(degree) != degree or degree < 1:
            raise ValueError(f"FE_Q requires an integer degree >= 1, got {degree}")
        self.degree = int(degree)
        self.n_components = 1

        lattice, entities = self._build_nodes(self.degree)
        self.lattice = lattice
        self.entities = entities
        self.nodes_1d = lagrange_nodes(self.degree)
        self.support_points = lattice / self.degree
        self.dofs_per_cell = len(lattice)
        self._embeddings = [self._compute_embedding(c) for c in range(len(CHILD_OFFSETS))]

    @property
    def name(self) -> str:
        return f"FE_Q({self.degree})"

    def __repr__(self) -> str:
        return self.name

    @staticmethod
    def _build_nodes(p: int) -> Tuple[np.ndarray, List[Entity]]:
        lattice: List[Tuple[int, int]] = [(0, 0), (p, 0), (0, p), (p, p)]
        entities: List[Entity] = [("vertex", k) for k in range(4)]

        # Face f runs from vertex FACE_VERTICES[f][0] to FACE_VERTICES[f][1]
        line_nodes = {
            0: [(0, t) for t in range(1, p)],
            1: [(p, t) for t in range(1, p)],
            2: [(t, 0) for t in range(1, p)],
            3: [(t, p) for t in range(1, p)],
        }
        for face in range(4):
            for t, node in enumerate(line_nodes[face], start=1):
                lattice.append(node)
                entities.append(("line", face, t))

        k = 0
        for j in range(1, p):
            for i in range(1, p):
                lattice.append((i, j))
                entities.append(("quad", k))
                k += 1

        return np.array(lattice, dtype=int), entities

    def shape_values(self, points: np.ndarray) -> np.ndarray:
        """Shape function values at reference points.

        Parameters
        ----------
        points : np.ndarray
            Reference points in [0, 1]^2, shape (Q, 2)

        Returns
        -------
        np.ndarray
            Values, shape (Q, dofs_per_cell)
        """
        points = np.atleast_2d(points)
        psi_x = lagrange_basis(self.nodes_1d, points[:, 0])
        psi_y = lagrange_basis(self.nodes_1d, points[:, 1])
        i, j = self.lattice[:, 0], self.lattice[:, 1]
        return (psi_x[i] * psi_y[j]).T

    def _compute_embedding(self, child: int) -> np.ndarray:
        # Work on the lattice of the child (spacing 1 / (2p)) so that support
        # points coinciding with parent nodes give exact zeros and ones.
        p = self.degree
        offset = np.rint(CHILD_OFFSETS[child] * 2 * p).astype(int)
        child_points = offset + self.lattice
        parent_nodes = 2.0 * np.arange(p + 1)

        psi_x = lagrange_basis(parent_nodes, child_points[:, 0])
        psi_y = lagrange_basis(parent_nodes, child_points[:, 1])
        i, j = self.lattice[:, 0], self.lattice[:, 1]
        return (psi_x[i] * psi_y[j]).T

    def embedding(self, child: int) -> np.ndarray:
        """Embedding matrix of ``child``: E[a, b] = phi_b(x_a).

        Row ``a`` is a child DoF, column ``b`` a parent DoF, and ``x_a`` the
        child support point expressed in parent reference coordinates.
        """
        return self._embeddings[child]

    def face_nodes(self, face: int) -> List[int]:
        """Local nodes located on ``face`` (its two vertices and line interior)."""
        a, b = FACE_VERTICES[face]
        nodes = [a, b]
        nodes += [
            n
            for n, entity in enumerate(self.entities)
            if entity[0] == "line" and entity[1] == face
        ]
        return nodes


class FESystem:
    """Vector-valued element made of ``n_components`` copies of a scalar element.

    Parameters
    ----------
    base : FE_Q
        Scalar base element
    n_components : int
        Number of vector components
    """

    def __init__(self, base: FE_Q, n_components: int = 1):
        if n_components < 1:
            raise ValueError(f"FESystem needs at least one component, got {n_components}")
        self.base = base
        self.n_components = int(n_components)
        self.degree = base.degree
        self.dofs_per_cell = base.dofs_per_cell * self.n_components

        n = self.n_components
        self.support_points = np.repeat(base.support_points, n, axis=0)
        self._embeddings = [
            np.kron(base.embedding(c), np.eye(n)) for c in range(len(CHILD_OFFSETS))
        ]

    @property
    def name(self) -> str:
        return f"FESystem[{self.base.name}^{self.n_components}]"

    def __repr__(self) -> str:
        return self.name

    def system_to_component_index(self, i: int) -> Tuple[int, int]:
        """Return (component, base node) of system DoF ``i``."""
        if not 0 <= i < self.dofs_per_cell:
            raise IndexError(f"Local DoF {i} out of range [0, {self.dofs_per_cell})")
        return i % self.n_components, i // self.n_components

    def component_of(self) -> np.ndarray:
        """Component of every local DoF, shape (dofs_per_cell,)."""
        return np.arange(self.dofs_per_cell) % self.n_components

    def entity(self, i: int) -> Entity:
        return self.base.entities[i // self.n_components]

    def embedding(self, child: int) -> np.ndarray:
        """Block-expanded embedding matrix of ``child`` (see ``FE_Q.embedding``)."""
        return self._embeddings[child]

    def face_dofs(self, face: int) -> List[int]:
        """Local system DoFs located on ``face``."""
        n = self.n_components
        return [node * n + c for node in self.base.face_nodes(face) for c in range(n)]


def create_fe(degree: int = 1, n_components: int = 1) -> FESystem:
    """Create ``FESystem(FE_Q(degree), n_components)``."""
    return FESystem(FE_Q(degree), n_components)
