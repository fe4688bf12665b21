"""Numbering-independence check of multilevel transfer on a locally refined mesh.

Each cycle refines the mesh around a point, distributes DoFs twice (once as
distributed, once renumbered), builds the transfer for both numberings and
copies the same semantic fine vector down to every level. The level vectors
of both numberings must agree DoF by DoF once mapped through the cells.
"""

import logging
from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np

from dofs.numbering import DoFNumbering, distribute_dofs, verify_numbering
from dofs.renumbering import create_renumbering
from dofs.tools import extract_inner_interface_dofs, log_interface_dofs, make_boundary_list
from fe.elements import create_fe
from meshing.grid_generator import hyper_cube, hyper_cube_boundary
from meshing.triangulation import Triangulation
from multigrid.consistency import ConsistencyReport, DoFMismatch, compare_level_vectors
from multigrid.errors import ConsistencyMismatch
from multigrid.level_object import MGLevelObject
from multigrid.transfer import (
    MGTransferPrebuilt,
    build_matrices,
    check_order_independence,
    initialize_by_component,
    initialize_level0_counter,
)

from .datastructures import CycleMetrics, LevelMetrics, Parameters

log = logging.getLogger(__name__)


class RenumberingExperiment:
    """Refinement cycles comparing two numberings of the same hierarchy.

    Parameters
    ----------
    params : Parameters, optional
        Parameters object. If not provided, kwargs are used to create params.
    **kwargs
        Configuration parameters passed to Parameters if params is None.
    """

    def __init__(self, params: Optional[Parameters] = None, **kwargs):
        if params is None:
            params = Parameters(**kwargs)
        self.params = params

        self.fe = create_fe(params.degree, params.n_components)
        self.renumbering = create_renumbering(params.renumbering, seed=params.seed)
        self.on_boundary = hyper_cube_boundary(*params.domain)

        self.triangulation: Optional[Triangulation] = None
        self.numbering: Optional[DoFNumbering] = None
        self.numbering_renumbered: Optional[DoFNumbering] = None

        self.metrics: List[CycleMetrics] = []
        self.mismatches: List[DoFMismatch] = []

    # =========================================================================
    # Mesh
    # =========================================================================

    def refine_local(self) -> bool:
        """Refine active cells with a vertex near the refinement center.

        Falls back to global refinement if no cell qualifies.

        Returns
        -------
        bool
            True if the global fallback was used
        """
        center = np.asarray(self.params.refine_center)
        radius = self.params.refine_radius

        flagged = 0
        for cell in self.triangulation.active_cells():
            distances = np.linalg.norm(self.triangulation.cell_vertices(cell) - center, axis=1)
            if np.any(distances < radius):
                self.triangulation.set_refine_flag(cell)
                flagged += 1

        fallback = flagged == 0
        if fallback:
            log.info("No cell near the refinement center, refining globally")
            for cell in self.triangulation.active_cells():
                self.triangulation.set_refine_flag(cell)

        self.triangulation.execute_coarsening_and_refinement()
        return fallback

    # =========================================================================
    # Setup
    # =========================================================================

    def setup_system(self) -> None:
        """Distribute DoFs twice and renumber the second copy."""
        tria = self.triangulation
        self.numbering = distribute_dofs(tria, self.fe)

        renumbered = self.renumbering.apply(distribute_dofs(tria, self.fe))
        if self.params.renumber_levels:
            renumbered = self.renumbering.apply_all_levels(renumbered)
        self.numbering_renumbered = renumbered

        verify_numbering(self.numbering, tria)
        verify_numbering(self.numbering_renumbered, tria)

        level_counts = "   ".join(
            f"L{l}: {self.numbering.n_dofs(l)}" for l in range(tria.n_levels())
        )
        log.info(f"Number of degrees of freedom: {self.numbering.n_dofs()}   {level_counts}")

        interface_dofs = extract_inner_interface_dofs(self.numbering, tria, self.on_boundary)
        log_interface_dofs(self.numbering, tria, interface_dofs)

    def build_transfer(self, numbering: DoFNumbering) -> Tuple[MGTransferPrebuilt, Optional[bool]]:
        """Build the transfer of ``numbering``; optionally check visit-order independence."""
        boundary = make_boundary_list(numbering, self.triangulation, self.on_boundary)
        transfer = build_matrices(self.triangulation, numbering, boundary)
        independent = None
        if self.params.check_order_independence:
            independent = check_order_independence(
                self.triangulation, numbering, boundary, reference=transfer, seed=self.params.seed
            )
        return transfer, independent

    # =========================================================================
    # Test
    # =========================================================================

    def _prolongated_counter(
        self, transfer: MGTransferPrebuilt, numbering: DoFNumbering
    ) -> MGLevelObject:
        # Level 0 is all boundary on a single coarse cell, so use the embedding
        vectors = initialize_level0_counter(numbering)
        for level in range(1, transfer.n_levels):
            vectors[level] = transfer.level_transfer(level).embedding @ vectors[level - 1]
        return vectors

    def test(self, cycle: int = 0) -> CycleMetrics:
        """Copy the component vector down under both numberings and compare."""
        tria = self.triangulation
        transfer, independent = self.build_transfer(self.numbering)
        transfer_renumbered, independent_renumbered = self.build_transfer(
            self.numbering_renumbered
        )
        if independent is None:
            order_independent = None
        else:
            order_independent = independent and independent_renumbered

        u = transfer.copy_to_mg(initialize_by_component(self.numbering))
        v = transfer_renumbered.copy_to_mg(initialize_by_component(self.numbering_renumbered))
        report = compare_level_vectors(
            tria, self.numbering, self.numbering_renumbered, u, v, self.params.tolerance
        )
        self._log_report(report)

        if self.params.check_prolongation:
            prolongation_report = compare_level_vectors(
                tria,
                self.numbering,
                self.numbering_renumbered,
                self._prolongated_counter(transfer, self.numbering),
                self._prolongated_counter(transfer_renumbered, self.numbering_renumbered),
                self.params.difference_threshold,
            )
            if not prolongation_report.passed:
                log.error(
                    f"Prolongated level-0 counter differs at "
                    f"{len(prolongation_report.mismatches)} DoF(s)"
                )
            self.mismatches.extend(prolongation_report.mismatches)

        self.mismatches.extend(report.mismatches)
        self._write_output(report, u)

        return CycleMetrics(
            cycle=cycle,
            n_levels=tria.n_levels(),
            n_active_cells=tria.n_active_cells(),
            n_active_dofs=self.numbering.n_dofs(),
            order_independent=order_independent,
            n_mismatches=len(report.mismatches),
            levels=[
                LevelMetrics(
                    cycle=cycle,
                    level=c.level,
                    n_dofs=c.n_dofs,
                    norm_u=c.norm_a,
                    norm_v=c.norm_b,
                    norm_difference=c.norm_difference,
                    level_mismatches=len(c.mismatches),
                )
                for c in report.levels
            ],
        )

    def _log_report(self, report: ConsistencyReport) -> None:
        threshold = self.params.difference_threshold

        def fmt(x: float) -> str:
            return f"{0.0 if abs(x) < threshold else x:.4g}"

        for c in report.levels:
            log.info(f"{c.level} {fmt(c.norm_a)}\t{fmt(c.norm_b)}\t{fmt(c.norm_difference)}")
            for i in np.nonzero(c.difference)[0]:
                log.info(f"{i} {fmt(c.difference[i])}")

    def _write_output(self, report: ConsistencyReport, u: MGLevelObject) -> None:
        if self.params.output_dir is None:
            return
        output_dir = Path(self.params.output_dir)

        if self.params.write_gnuplot:
            from shared.plotting import output_gpl

            output_gpl(self.triangulation, self.numbering, report.difference, output_dir)
        if self.params.plot_levels:
            from shared.plotting import plot_level_vectors

            plot_level_vectors(self.numbering, u, output_dir, prefix="mg")

    # =========================================================================
    # Run
    # =========================================================================

    def run(self) -> List[CycleMetrics]:
        """Run all refinement cycles.

        Raises
        ------
        ConsistencyMismatch
            After the last cycle, if any level DoF differed between numberings
        """
        self.metrics = []
        self.mismatches = []
        for cycle in range(self.params.n_cycles):
            log.info(f"Cycle {cycle}")
            if cycle == 0:
                self.triangulation = hyper_cube(*self.params.domain)
                self.triangulation.refine_global(self.params.initial_global_refinements)

            fallback = self.refine_local()
            self.setup_system()
            metrics = self.test(cycle)
            metrics.used_global_fallback = fallback
            self.metrics.append(metrics)

        if self.mismatches:
            for m in self.mismatches:
                log.error(f"Mismatch: {m}")
            raise ConsistencyMismatch(self.mismatches)
        return self.metrics
