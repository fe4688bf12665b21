"""Data structures for the renumbering experiment.

Structure:
- Parameters: Input configuration (logged to MLflow at start)
- LevelMetrics: Norms of one level in one cycle
- CycleMetrics: Output results of one refinement cycle (logged to MLflow per cycle)
"""

import math
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional, Tuple

import pandas as pd


# ========================================================
# Parameters (Input Configuration)
# ========================================================


@dataclass
class Parameters:
    """Experiment parameters."""

    degree: int = 1
    n_components: int = 2
    domain: Tuple[float, float] = (-1.0, 1.0)
    initial_global_refinements: int = 1
    n_cycles: int = 6
    refine_center: Tuple[float, float] = (0.0, 0.0)
    refine_radius: float = 0.25 / math.pi
    renumbering: str = "component_wise"
    renumber_levels: bool = True
    seed: int = 0
    check_order_independence: bool = True
    check_prolongation: bool = True
    difference_threshold: float = 1e-10
    tolerance: float = 0.0
    output_dir: Optional[str] = None
    write_gnuplot: bool = False
    plot_levels: bool = False

    def __post_init__(self):
        if int(self.n_cycles) != self.n_cycles or self.n_cycles < 1:
            raise ValueError(f"n_cycles must be an integer >= 1, got {self.n_cycles}")
        self.domain = tuple(float(x) for x in self.domain)
        self.refine_center = tuple(float(x) for x in self.refine_center)

    def to_dataframe(self):
        return pd.DataFrame([asdict(self)])

    def to_mlflow(self) -> Dict[str, str]:
        """Flat string parameters for ``mlflow.log_params`` (tuples as ``a,b``)."""
        params = {}
        for key, value in asdict(self).items():
            if value is None:
                continue
            if isinstance(value, tuple):
                value = ",".join(str(x) for x in value)
            params[key] = str(value)
        return params


# ========================================================
# Metrics (Output Results)
# ========================================================


@dataclass
class LevelMetrics:
    """Norms of the level vectors of one level."""

    cycle: int
    level: int
    n_dofs: int
    norm_u: float
    norm_v: float
    norm_difference: float
    level_mismatches: int = 0


@dataclass
class CycleMetrics:
    """Results of one refinement cycle."""

    cycle: int
    n_levels: int
    n_active_cells: int
    n_active_dofs: int
    used_global_fallback: bool = False
    order_independent: Optional[bool] = None
    n_mismatches: int = 0
    levels: List[LevelMetrics] = field(default_factory=list)

    def to_dataframe(self) -> pd.DataFrame:
        """One row per level, cycle-wide fields repeated."""
        summary = {k: v for k, v in asdict(self).items() if k != "levels"}
        rows = [{**summary, **asdict(level)} for level in self.levels]
        return pd.DataFrame(rows or [summary])

    def to_mlflow(self) -> Dict[str, float]:
        """Numeric metrics of the cycle, logged with ``step=cycle``.

        Per-level values are flattened to ``level_<l>/<name>``.
        """
        metrics = {
            "n_levels": float(self.n_levels),
            "n_active_cells": float(self.n_active_cells),
            "n_active_dofs": float(self.n_active_dofs),
            "used_global_fallback": float(self.used_global_fallback),
            "n_mismatches": float(self.n_mismatches),
        }
        if self.order_independent is not None:
            metrics["order_independent"] = float(self.order_independent)
        for level in self.levels:
            prefix = f"level_{level.level}"
            metrics[f"{prefix}/n_dofs"] = float(level.n_dofs)
            metrics[f"{prefix}/norm_u"] = level.norm_u
            metrics[f"{prefix}/norm_v"] = level.norm_v
            metrics[f"{prefix}/norm_difference"] = level.norm_difference
            metrics[f"{prefix}/mismatches"] = float(level.level_mismatches)
        return metrics
