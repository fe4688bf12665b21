"""One-dimensional Lagrange basis on equispaced nodes."""

import numpy as np


def lagrange_nodes(degree: int) -> np.ndarray:
    """Return the ``degree + 1`` equispaced nodes on [0, 1]."""
    return np.arange(degree + 1) / degree


def lagrange_basis(nodes: np.ndarray, x: np.ndarray) -> np.ndarray:
    """Evaluate the Lagrange polynomials of ``nodes`` at the points ``x``.

    Parameters
    ----------
    nodes : np.ndarray
        Interpolation nodes, shape (P,)
    x : np.ndarray
        Evaluation points, shape (Q,)

    Returns
    -------
    np.ndarray
        Basis values, shape (P, Q). psi[i, l] = L_i(x[l]).

    Notes
    -----
    The product form is used directly, so a point that coincides exactly with
    a node yields exact zeros and ones. Callers that need exact embedding
    weights pass nodes and points scaled to integers.
    """
    nodes = np.asarray(nodes, dtype=float)
    x = np.atleast_1d(np.asarray(x, dtype=float))
    P = len(nodes)

    psi = np.ones((P, len(x)))
    for i in range(P):
        for j in range(P):
            if i != j:
                psi[i] *= (x - nodes[j]) / (nodes[i] - nodes[j])
    return psi
