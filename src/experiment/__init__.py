"""Renumbering experiment: refinement cycles comparing two DoF numberings."""

from .datastructures import CycleMetrics, LevelMetrics, Parameters
from .renumbering_check import RenumberingExperiment

__all__ = ["CycleMetrics", "LevelMetrics", "Parameters", "RenumberingExperiment"]
