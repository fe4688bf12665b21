"""Error classes for the multilevel transfer machinery.

Structural errors (malformed hierarchy, inconsistent numbering) abort the
current refinement cycle. Comparison mismatches are collected over all levels
and raised once with the full list of offending DoFs.
"""

from typing import List


class MultigridError(Exception):
    """Base class for all errors raised by the multilevel transfer code."""

    pass


class MalformedHierarchyError(MultigridError):
    """
    Error class indicating a hierarchy that violates the graded invariant,
    contains an empty level above level 0 or a parent on a non-adjacent level
    """

    pass


class NumberingInconsistencyError(MultigridError):
    """
    Error class indicating a DoF numbering that is not internally consistent
    (repeated queries disagree, or the index space is not contiguous)
    """

    pass


class StaleNumberingError(NumberingInconsistencyError):
    """
    Error class indicating a numbering or transfer used after the hierarchy
    it was built for has been refined
    """

    pass


class TransferOrderDependenceWarning(UserWarning):
    """Rebuilding a transfer operator in a different cell order changed it."""

    pass


class ConsistencyMismatch(MultigridError):
    """Nonzero differences between level vectors of two numberings.

    Parameters
    ----------
    mismatches : list of DoFMismatch
        Every offending entry, over all checked levels and cycles
    """

    def __init__(self, mismatches: List):
        self.mismatches = list(mismatches)
        levels = sorted({m.level for m in self.mismatches})
        super().__init__(
            f"{len(self.mismatches)} nonzero level-vector differences "
            f"on level(s) {levels}"
        )
