"""Tests for prebuilt multilevel transfer and the fine-to-level copy.

Tests:
- Matrix shapes, boundary zeroing, restriction = prolongation transpose
- Independence of cell visit order and of the DoF numbering
- copy_to_mg / copy_from_mg on meshes with hanging nodes
- Validation of stale numberings and malformed hierarchies
"""

import warnings

import numpy as np
import pytest

from dofs import RandomRenumbering, distribute_dofs, make_boundary_list
from meshing import CellIndex
from meshing.triangulation import _LevelCells
from multigrid.errors import (
    MalformedHierarchyError,
    StaleNumberingError,
    TransferOrderDependenceWarning,
)
from multigrid.transfer import (
    build_matrices,
    check_order_independence,
    child_slot_map,
    initialize_by_component,
    initialize_level0_counter,
)


@pytest.fixture
def numbering(local_mesh, q1_system):
    return distribute_dofs(local_mesh, q1_system)


@pytest.fixture
def boundary(numbering, local_mesh, on_boundary):
    return make_boundary_list(numbering, local_mesh, on_boundary)


@pytest.fixture
def transfer(local_mesh, numbering, boundary):
    return build_matrices(local_mesh, numbering, boundary)


class TestTransferMatrices:
    """Tests for the per-level prolongation and restriction."""

    def test_shapes(self, transfer):
        assert transfer.n_levels == 4
        assert transfer.prolongation_matrix(1).shape == (18, 8)
        assert transfer.prolongation_matrix(2).shape == (50, 18)
        assert transfer.prolongation_matrix(3).shape == (50, 50)
        assert transfer.restriction_matrix(3).shape == (50, 50)
        with pytest.raises(IndexError):
            transfer.level_transfer(0)

    def test_restriction_is_transpose(self, transfer):
        for level in range(1, transfer.n_levels):
            diff = transfer.restriction_matrix(level) - transfer.prolongation_matrix(level).T
            assert diff.nnz == 0 or np.all(diff.data == 0)

    def test_embedding_reproduces_constants(self, transfer, numbering):
        for level in range(1, transfer.n_levels):
            coarse = numbering.dof_components(level - 1) + 1.0
            fine = transfer.level_transfer(level).embedding @ coarse
            np.testing.assert_allclose(fine, numbering.dof_components(level) + 1.0, atol=1e-14)

    def test_restriction_zero_on_boundary(self, transfer, numbering, boundary):
        rng = np.random.default_rng(0)
        for level in range(1, transfer.n_levels):
            coarse = np.ones(numbering.n_dofs(level - 1))
            transfer.restrict_and_add(level, coarse, rng.standard_normal(numbering.n_dofs(level)))
            indices = sorted(boundary[level - 1])
            assert np.all(coarse[indices] == 1.0)

    def test_restrict_and_add_accumulates(self, transfer):
        src = np.arange(50, dtype=float)
        dst = np.ones(50)
        transfer.restrict_and_add(3, dst, src)
        np.testing.assert_allclose(dst, 1.0 + transfer.restriction_matrix(3) @ src)

    def test_prolongate(self, transfer):
        src = np.linspace(0.0, 1.0, 18)
        dst = np.zeros(50)
        transfer.prolongate(2, dst, src)
        np.testing.assert_allclose(dst, transfer.prolongation_matrix(2) @ src)

    def test_visit_order_does_not_matter(self, local_mesh, numbering, boundary, transfer):
        shuffled = build_matrices(
            local_mesh, numbering, boundary, cell_order=lambda cells: cells[::-1]
        )
        for level in range(1, transfer.n_levels):
            a = transfer.prolongation_matrix(level).toarray()
            b = shuffled.prolongation_matrix(level).toarray()
            np.testing.assert_array_equal(a, b)

    def test_check_order_independence(self, local_mesh, numbering, boundary, transfer):
        with warnings.catch_warnings():
            warnings.simplefilter("error", TransferOrderDependenceWarning)
            assert check_order_independence(
                local_mesh, numbering, boundary, reference=transfer, seed=4
            )

    def test_order_dependence_warns(self, local_mesh, numbering, boundary):
        unconstrained = build_matrices(
            local_mesh, numbering, [set() for _ in range(local_mesh.n_levels())]
        )
        with pytest.warns(TransferOrderDependenceWarning):
            independent = check_order_independence(
                local_mesh, numbering, boundary, reference=unconstrained
            )
        assert not independent

    def test_numbering_independence(self, local_mesh, numbering, transfer, on_boundary):
        renumbering = RandomRenumbering(seed=11)
        renumbered = renumbering.apply_all_levels(numbering)
        transfer_renumbered = build_matrices(
            local_mesh, renumbered, make_boundary_list(renumbered, local_mesh, on_boundary)
        )
        for level in range(1, transfer.n_levels):
            fine = renumbering.permutation(numbering, level)
            coarse = renumbering.permutation(numbering, level - 1)
            a = transfer.prolongation_matrix(level).toarray()
            b = transfer_renumbered.prolongation_matrix(level).toarray()
            np.testing.assert_array_equal(b[np.ix_(fine, coarse)], a)


class TestCopyToMg:
    """Tests for copying an active-mesh vector onto the levels."""

    def test_component_vector(self, transfer, numbering):
        levels = transfer.copy_to_mg(initialize_by_component(numbering))
        assert levels.sizes() == {0: 8, 1: 18, 2: 50, 3: 50}
        for level, vector in levels.items():
            np.testing.assert_array_equal(vector, numbering.dof_components(level) + 1.0)

    def test_geometric_vector(self, transfer, numbering):
        def f(points):
            return points[:, 0] + 2.0 * points[:, 1]

        levels = transfer.copy_to_mg(f(numbering.support_points()))
        for level, vector in levels.items():
            np.testing.assert_allclose(vector, f(numbering.support_points(level)))

    def test_idempotent(self, transfer, numbering):
        src = np.random.default_rng(1).standard_normal(numbering.n_dofs())
        first = transfer.copy_to_mg(src)
        second = transfer.copy_to_mg(src)
        for level in first:
            np.testing.assert_array_equal(first[level], second[level])

    @pytest.mark.parametrize("system", ["q1_system", "q2_system"])
    def test_round_trip(self, local_mesh, on_boundary, system, request):
        numbering = distribute_dofs(local_mesh, request.getfixturevalue(system))
        transfer = build_matrices(
            local_mesh, numbering, make_boundary_list(numbering, local_mesh, on_boundary)
        )
        src = np.random.default_rng(2).standard_normal(numbering.n_dofs())
        np.testing.assert_array_equal(transfer.copy_from_mg(transfer.copy_to_mg(src)), src)

    def test_level0_from_single_root(self, transfer, numbering):
        src = np.random.default_rng(3).standard_normal(numbering.n_dofs())
        level0 = transfer.copy_to_mg(src)[0]
        # Root corners coincide with active vertices
        sources = transfer.copy_source(0)
        np.testing.assert_array_equal(level0, src[sources])
        np.testing.assert_allclose(
            numbering.support_points()[sources], numbering.support_points(0)
        )

    def test_wrong_size(self, transfer):
        with pytest.raises(ValueError):
            transfer.copy_to_mg(np.zeros(3))

    def test_child_slot_map(self, q1_system, q2_system):
        slots = child_slot_map(q1_system)
        np.testing.assert_array_equal(slots[0], [0, 1, -1, -1, -1, -1, -1, -1])
        np.testing.assert_array_equal(slots[3], [-1, -1, -1, -1, -1, -1, 6, 7])
        # Every parent slot is found in at least one child
        assert np.all(np.max(child_slot_map(q2_system), axis=0) >= 0)


class TestValidation:
    """Tests for hierarchy and numbering validation."""

    def test_stale_numbering(self, local_mesh, numbering, boundary):
        local_mesh.refine_global(1)
        with pytest.raises(StaleNumberingError):
            build_matrices(local_mesh, numbering, boundary)

    def test_transfer_not_reused_after_refinement(self, local_mesh, numbering, transfer):
        local_mesh.refine_global(1)
        with pytest.raises(StaleNumberingError):
            transfer.copy_to_mg(initialize_by_component(numbering))

    def test_malformed_hierarchy(self, global_mesh, q1_system):
        global_mesh._refine_cell(CellIndex(1, 0))
        global_mesh._refine_cell(CellIndex(2, 3))
        numbering = distribute_dofs(global_mesh, q1_system)
        with pytest.raises(MalformedHierarchyError):
            build_matrices(global_mesh, numbering, [set(), set(), set(), set()])

    def test_empty_level_rejected(self, unit_cell, q1_system):
        unit_cell.refine_global(1)
        unit_cell._levels.append(_LevelCells())
        numbering = distribute_dofs(unit_cell, q1_system)
        with pytest.raises(MalformedHierarchyError):
            build_matrices(unit_cell, numbering, [set(), set(), set()])

    def test_boundary_list_length(self, local_mesh, numbering):
        with pytest.raises(ValueError):
            build_matrices(local_mesh, numbering, [set()])


class TestInitializers:
    """Tests for the vector initializers."""

    def test_by_component(self, numbering):
        vector = initialize_by_component(numbering)
        assert vector.shape == (numbering.n_dofs(),)
        assert set(np.unique(vector)) == {1.0, 2.0}

    def test_level0_counter(self, numbering):
        levels = initialize_level0_counter(numbering)
        np.testing.assert_array_equal(np.sort(levels[0]), np.arange(1, 9))
        np.testing.assert_array_equal(
            levels[0][numbering.cell_mg_dof_indices(CellIndex(0, 0))], np.arange(1, 9)
        )
        for level in range(1, numbering.n_levels):
            assert np.all(levels[level] == 0.0)
