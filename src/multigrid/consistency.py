"""Compare level vectors produced under two numberings of the same hierarchy.

For every level the difference vector is indexed by the first numbering:

    d[ia[k]] = u[ia[k]] - v[ib[k]]

where ``ia`` and ``ib`` are the level DoF indices of the same (cell, slot)
under numbering A and numbering B. Every level DoF whose difference exceeds
the tolerance is recorded; nothing is raised until all levels are compared.
"""

import logging
from dataclasses import dataclass, field
from typing import List

import numpy as np
import pandas as pd

from dofs.numbering import DoFNumbering
from meshing.triangulation import CellIndex, Triangulation
from multigrid.errors import ConsistencyMismatch, NumberingInconsistencyError
from multigrid.level_object import MGLevelObject

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class DoFMismatch:
    """One level DoF whose values differ between the two numberings."""

    level: int
    cell: CellIndex
    slot: int
    component: int
    dof_index: int
    value_a: float
    value_b: float

    @property
    def magnitude(self) -> float:
        return abs(self.value_a - self.value_b)

    def __str__(self) -> str:
        return (
            f"level {self.level}, cell {self.cell.level}.{self.cell.index}, slot {self.slot} "
            f"(component {self.component}, DoF {self.dof_index}): "
            f"{self.value_a} vs {self.value_b}"
        )


@dataclass
class LevelComparison:
    """Norms and difference vector of one level."""

    level: int
    n_dofs: int
    norm_a: float
    norm_b: float
    norm_difference: float
    difference: np.ndarray = field(repr=False)
    mismatches: List[DoFMismatch] = field(default_factory=list)


@dataclass
class ConsistencyReport:
    """Outcome of comparing two sets of level vectors."""

    levels: List[LevelComparison] = field(default_factory=list)

    @property
    def mismatches(self) -> List[DoFMismatch]:
        return [m for level in self.levels for m in level.mismatches]

    @property
    def passed(self) -> bool:
        return not self.mismatches

    @property
    def difference(self) -> MGLevelObject:
        result = MGLevelObject(0, max(len(self.levels) - 1, 0))
        for comparison in self.levels:
            result[comparison.level] = comparison.difference
        return result

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(
            [
                {
                    "level": c.level,
                    "n_dofs": c.n_dofs,
                    "norm_a": c.norm_a,
                    "norm_b": c.norm_b,
                    "norm_difference": c.norm_difference,
                    "n_mismatches": len(c.mismatches),
                }
                for c in self.levels
            ]
        )

    def mismatches_dataframe(self) -> pd.DataFrame:
        columns = ["level", "cell_level", "cell_index", "slot", "component", "dof_index",
                   "value_a", "value_b", "magnitude"]
        return pd.DataFrame(
            [
                (m.level, m.cell.level, m.cell.index, m.slot, m.component, m.dof_index,
                 m.value_a, m.value_b, m.magnitude)
                for m in self.mismatches
            ],
            columns=columns,
        )

    def raise_for_mismatches(self) -> None:
        if not self.passed:
            raise ConsistencyMismatch(self.mismatches)


def compare_level_vectors(
    triangulation: Triangulation,
    numbering_a: DoFNumbering,
    numbering_b: DoFNumbering,
    u: MGLevelObject,
    v: MGLevelObject,
    tolerance: float = 0.0,
) -> ConsistencyReport:
    """Compare ``u`` (numbering A) against ``v`` (numbering B) level by level.

    Parameters
    ----------
    triangulation : Triangulation
        Hierarchy both numberings were built for
    numbering_a, numbering_b : DoFNumbering
        The two numberings
    u, v : MGLevelObject
        Level vectors in numbering A and numbering B
    tolerance : float
        Differences with magnitude above this value are mismatches

    Returns
    -------
    ConsistencyReport
        Per-level norms and all mismatches

    Raises
    ------
    NumberingInconsistencyError
        If the numberings do not describe the same DoFs (a DoF of A meets two
        different DoFs of B, or the level sizes differ)
    """
    numbering_a.check_current(triangulation)
    numbering_b.check_current(triangulation)
    components = numbering_a.fe.component_of()

    report = ConsistencyReport()
    for level in range(triangulation.n_levels()):
        n = numbering_a.n_dofs(level)
        if numbering_b.n_dofs(level) != n:
            raise NumberingInconsistencyError(
                f"Level {level}: numberings have {n} and {numbering_b.n_dofs(level)} DoFs"
            )
        for name, vector in (("u", u), ("v", v)):
            if len(vector[level]) != n:
                raise ValueError(
                    f"Level {level}: {name} has {len(vector[level])} entries, expected {n}"
                )

        difference = np.zeros(n)
        partner = np.full(n, -1, dtype=np.int64)
        mismatches = []
        for cell in triangulation.cells(level):
            ia = numbering_a.cell_mg_dof_indices(cell)
            ib = numbering_b.cell_mg_dof_indices(cell)
            for slot, (i, j) in enumerate(zip(ia, ib)):
                if partner[i] >= 0:
                    if partner[i] != j:
                        raise NumberingInconsistencyError(
                            f"Level {level}: DoF {i} of the first numbering matches DoFs "
                            f"{partner[i]} and {j} of the second"
                        )
                    continue
                partner[i] = j
                difference[i] = u[level][i] - v[level][j]
                if not abs(difference[i]) <= tolerance:
                    mismatches.append(
                        DoFMismatch(
                            level=level,
                            cell=cell,
                            slot=slot,
                            component=int(components[slot]),
                            dof_index=int(i),
                            value_a=float(u[level][i]),
                            value_b=float(v[level][j]),
                        )
                    )

        report.levels.append(
            LevelComparison(
                level=level,
                n_dofs=n,
                norm_a=float(np.linalg.norm(u[level])),
                norm_b=float(np.linalg.norm(v[level])),
                norm_difference=float(np.linalg.norm(difference)),
                difference=difference,
                mismatches=mismatches,
            )
        )
        for m in mismatches:
            log.warning(f"Mismatch at {m}")
    return report
