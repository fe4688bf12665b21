"""Finite-element collaborator: Lagrange elements and their embeddings."""

from fe.basis import lagrange_basis, lagrange_nodes
from fe.elements import FE_Q, FESystem, create_fe

__all__ = ["FE_Q", "FESystem", "create_fe", "lagrange_basis", "lagrange_nodes"]
