"""Tests for Lagrange elements and their child embeddings."""

import numpy as np
import pytest

from fe import FE_Q, FESystem, create_fe, lagrange_basis, lagrange_nodes


class TestLagrangeBasis:
    """Tests for the 1D Lagrange basis."""

    @pytest.mark.parametrize("degree", [1, 2, 3])
    def test_kronecker_property(self, degree):
        nodes = lagrange_nodes(degree)
        np.testing.assert_allclose(lagrange_basis(nodes, nodes), np.eye(degree + 1), atol=1e-14)

    @pytest.mark.parametrize("degree", [1, 2, 4])
    def test_partition_of_unity(self, degree):
        x = np.linspace(0.0, 1.0, 11)
        psi = lagrange_basis(lagrange_nodes(degree), x)
        np.testing.assert_allclose(psi.sum(axis=0), 1.0, atol=1e-13)


class TestFE_Q:
    """Tests for the scalar element."""

    @pytest.mark.parametrize("degree,n_dofs", [(1, 4), (2, 9), (3, 16)])
    def test_dofs_per_cell(self, degree, n_dofs):
        assert FE_Q(degree).dofs_per_cell == n_dofs

    @pytest.mark.parametrize("degree", [0, -1, 1.5])
    def test_invalid_degree(self, degree):
        with pytest.raises(ValueError):
            FE_Q(degree)

    def test_node_order(self):
        fe = FE_Q(2)
        np.testing.assert_array_equal(
            fe.lattice,
            [[0, 0], [2, 0], [0, 2], [2, 2], [0, 1], [2, 1], [1, 0], [1, 2], [1, 1]],
        )
        assert fe.entities[4] == ("line", 0, 1)
        assert fe.entities[8] == ("quad", 0)

    @pytest.mark.parametrize("degree", [1, 2, 3])
    def test_shape_values_at_support_points(self, degree):
        fe = FE_Q(degree)
        np.testing.assert_allclose(
            fe.shape_values(fe.support_points), np.eye(fe.dofs_per_cell), atol=1e-13
        )

    @pytest.mark.parametrize("degree", [1, 2, 3])
    @pytest.mark.parametrize("child", [0, 1, 2, 3])
    def test_embedding_partition_of_unity(self, degree, child):
        E = FE_Q(degree).embedding(child)
        np.testing.assert_allclose(E.sum(axis=1), 1.0, atol=1e-13)

    def test_q1_embedding_weights(self):
        E = FE_Q(1).embedding(0)
        np.testing.assert_array_equal(E[0], [1.0, 0.0, 0.0, 0.0])
        np.testing.assert_array_equal(E[1], [0.5, 0.5, 0.0, 0.0])
        np.testing.assert_array_equal(E[3], [0.25, 0.25, 0.25, 0.25])

    def test_exact_weights_at_coinciding_nodes(self):
        """Child nodes on parent nodes get exact unit rows."""
        fe = FE_Q(2)
        E = fe.embedding(3)
        # NE child: vertex 0 is the parent center (node 8), vertex 3 is parent vertex 3
        np.testing.assert_array_equal(E[0], np.eye(9)[8])
        np.testing.assert_array_equal(E[3], np.eye(9)[3])

    def test_face_nodes(self):
        assert FE_Q(1).face_nodes(0) == [0, 2]
        assert FE_Q(2).face_nodes(2) == [0, 1, 6]


class TestFESystem:
    """Tests for the vector-valued element."""

    def test_sizes(self, q1_system):
        assert q1_system.dofs_per_cell == 8
        assert q1_system.n_components == 2
        assert q1_system.name == "FESystem[FE_Q(1)^2]"

    def test_component_index(self, q1_system):
        assert q1_system.system_to_component_index(0) == (0, 0)
        assert q1_system.system_to_component_index(5) == (1, 2)
        np.testing.assert_array_equal(q1_system.component_of(), [0, 1] * 4)
        with pytest.raises(IndexError):
            q1_system.system_to_component_index(8)

    def test_invalid_components(self):
        with pytest.raises(ValueError):
            FESystem(FE_Q(1), 0)

    def test_embedding_does_not_mix_components(self, q2_system):
        components = q2_system.component_of()
        for child in range(4):
            rows, cols = np.nonzero(q2_system.embedding(child))
            np.testing.assert_array_equal(components[rows], components[cols])

    def test_face_dofs(self, q1_system):
        assert q1_system.face_dofs(0) == [0, 1, 4, 5]
        assert q1_system.face_dofs(3) == [4, 5, 6, 7]

    def test_create_fe(self):
        fe = create_fe(degree=3, n_components=1)
        assert fe.dofs_per_cell == 16
