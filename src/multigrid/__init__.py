"""Multilevel transfer: level vectors, transfer operators, copy-down and checks.

Submodules are imported directly (``multigrid.transfer``,
``multigrid.level_object``, ``multigrid.consistency``, ``multigrid.mesh_worker``);
only the error classes are re-exported here because ``meshing`` depends on them.
"""

from multigrid.errors import (
    ConsistencyMismatch,
    MalformedHierarchyError,
    MultigridError,
    NumberingInconsistencyError,
    StaleNumberingError,
    TransferOrderDependenceWarning,
)

__all__ = [
    "ConsistencyMismatch",
    "MalformedHierarchyError",
    "MultigridError",
    "NumberingInconsistencyError",
    "StaleNumberingError",
    "TransferOrderDependenceWarning",
]
