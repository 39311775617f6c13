from __future__ import annotations

import numpy as np
import pytest

from incsvd.baselines import StandardBrokenArrowSVD
from incsvd.config import DecompositionConfig
from incsvd.errors import UnsupportedOperationError
from incsvd.incremental_svd import IncrementalSVD
from incsvd.metrics import orth_error, relative_error


def random_matrix(rng, rows: int, columns: int, ratio: float = 1.0) -> np.ndarray:
    weights = ratio ** np.arange(1, columns + 1)
    return (rng.uniform(size=(rows, columns)) - 0.5) * weights


class TestIncrementalSVD:
    def test_simple_columns(self):
        svd = IncrementalSVD(want_v=True)
        svd.add_column([1.0, 1.0])
        U = svd.compute_u()
        assert U.shape == (2, 1)
        np.testing.assert_allclose(U[:, 0], [1 / np.sqrt(2)] * 2)

        svd.add_column([2.0, 2.0])
        U = svd.compute_u()
        assert U.shape == (2, 1)
        np.testing.assert_allclose(np.abs(U[:, 0]), [1 / np.sqrt(2)] * 2, atol=1e-7)

        svd.add_column([1.0, 0.0])
        U = svd.compute_u()
        assert U.shape == (2, 2)
        np.testing.assert_allclose(np.abs(U[:, 0]), [0.7414525, 0.6710053], atol=1e-7)
        np.testing.assert_allclose(np.abs(U[:, 1]), [0.6710053, 0.7414525], atol=1e-7)
        assert U[0, 1] * U[1, 1] < 0

    @pytest.mark.parametrize("rows,columns", [(5, 10), (10, 100), (8, 3)])
    def test_reconstruction(self, rng, rows, columns):
        A = random_matrix(rng, rows, columns)
        svd = IncrementalSVD(want_v=True)
        for j in range(columns):
            svd.add_column(A[:, j])
            if j + 1 in (1, 2, columns // 2, columns):
                U, S, V = svd.compute_u(), svd.sigma, svd.compute_v()
                assert V.shape == (j + 1, svd.rank)
                assert relative_error(A[:, :j + 1], U, S, V.T) < 1e-10

        assert svd.rank == min(rows, columns)
        assert svd.n_columns == columns
        np.testing.assert_allclose(svd.sigma, np.linalg.svd(A, compute_uv=False)[:svd.rank],
                                   atol=1e-10)
        np.testing.assert_allclose(svd.matrix_squared_norm, np.sum(A * A))
        assert orth_error(svd.compute_u()) < 1e-9

    def test_singular_values_without_v(self, rng):
        A = random_matrix(rng, 6, 20, ratio=0.9)
        svd = IncrementalSVD()
        for a in A.T:
            svd.add_column(a)
        np.testing.assert_allclose(svd.sigma, np.linalg.svd(A, compute_uv=False), atol=1e-10)
        with pytest.raises(UnsupportedOperationError):
            svd.compute_v()

    def test_dense_solver(self, rng):
        A = random_matrix(rng, 4, 8)
        svd = IncrementalSVD(want_v=True, solver=StandardBrokenArrowSVD(want_u=True, want_v=True))
        for a in A.T:
            svd.add_column(a)
        assert relative_error(A, svd.compute_u(), svd.sigma, svd.compute_v().T) < 1e-10

    def test_maximum_rank(self, rng):
        A = random_matrix(rng, 8, 12)
        svd = IncrementalSVD(want_v=True, max_rank=3)
        for a in A.T:
            svd.add_column(a)
        U, V = svd.compute_u(), svd.compute_v()
        assert svd.rank == 3
        assert U.shape == (8, 3)
        assert V.shape == (12, 3)
        assert orth_error(U) < 1e-9

    def test_null_columns(self, rng):
        A = random_matrix(rng, 4, 6)
        A[:, 0] = 0.0
        A[:, 3] = 0.0
        svd = IncrementalSVD(want_v=True)
        for a in A.T:
            svd.add_column(a)
        V = svd.compute_v()
        assert V.shape == (6, 4)
        np.testing.assert_allclose(V[[0, 3]], 0.0, atol=1e-14)
        assert relative_error(A, svd.compute_u(), svd.sigma, V.T) < 1e-10

    def test_columns_of_different_sizes(self, rng):
        svd = IncrementalSVD()
        columns = [rng.standard_normal(3), rng.standard_normal(5), rng.standard_normal(4)]
        for a in columns:
            svd.add_column(a)
        A = np.zeros((5, 3))
        for j, a in enumerate(columns):
            A[:a.shape[0], j] = a
        assert svd.nb_rows == 5
        np.testing.assert_allclose(svd.sigma, np.linalg.svd(A, compute_uv=False), atol=1e-10)

    def test_compute_u_column(self, rng):
        A = random_matrix(rng, 5, 7)
        svd = IncrementalSVD()
        for a in A.T:
            svd.add_column(a)
        columns = np.column_stack([svd.compute_u_column(j) for j in range(svd.rank)])
        np.testing.assert_allclose(columns, svd.compute_u(), atol=1e-14)

    def test_trim_matrices(self, rng):
        A = random_matrix(rng, 5, 3)
        svd = IncrementalSVD()
        for a in A.T:
            svd.add_column(a)
        svd.trim_matrices()
        assert svd.u2 is None
        assert svd.u1.shape == (5, 3)

    # The third column makes the 1e-14 direction negligible: the numerical
    # rank goes down from 2 to 1
    RANK_DROP = [np.array([1.0, 0.0]), np.array([0.0, 1e-14]), np.array([1e4, 0.0, 0.0])]

    def test_rank_decrease(self):
        svd = IncrementalSVD()
        for a in self.RANK_DROP[:2]:
            svd.add_column(a)
        assert svd.rank == 2
        svd.add_column(self.RANK_DROP[2])

        A = np.array([[1.0, 0.0, 1e4], [0.0, 1e-14, 0.0], [0.0, 0.0, 0.0]])
        U = svd.compute_u()
        assert svd.rank == 1
        assert U.shape == (3, 1)
        assert orth_error(U) < 1e-12
        np.testing.assert_allclose(svd.sigma, np.linalg.svd(A, compute_uv=False)[:1], rtol=1e-12)
        np.testing.assert_allclose(np.abs(U[:, 0]), [1.0, 0.0, 0.0], atol=1e-12)

    def test_rank_decrease_with_v_is_unsupported(self):
        svd = IncrementalSVD(want_v=True)
        for a in self.RANK_DROP[:2]:
            svd.add_column(a)
        sigma = svd.sigma.copy()
        squared_norm = svd.matrix_squared_norm

        with pytest.raises(UnsupportedOperationError):
            svd.add_column(self.RANK_DROP[2])

        assert svd.rank == 2
        assert svd.n_columns == 2
        assert svd.nb_rows == 2
        assert svd.matrix_squared_norm == squared_norm
        np.testing.assert_array_equal(svd.sigma, sigma)
        assert svd.compute_u().shape == (2, 2)
        assert svd.compute_v().shape == (2, 2)

        # The decomposition is still usable
        svd.add_column([0.5, 0.5, 1.0])
        A = np.array([[1.0, 0.0, 0.5], [0.0, 1e-14, 0.5], [0.0, 0.0, 1.0]])
        assert svd.rank == 3
        assert relative_error(A, svd.compute_u(), svd.sigma, svd.compute_v().T) < 1e-10

    def test_from_config(self, rng):
        svd = IncrementalSVD.from_config(DecompositionConfig(want_v=True, max_rank=2, order="F"))
        for a in random_matrix(rng, 4, 5).T:
            svd.add_column(a)
        assert svd.rank == 2
        assert svd.compute_v().shape == (5, 2)


class TestRemoveRows:
    def test_relocation_without_v(self, rng):
        A = random_matrix(rng, 5, 4)
        A[1] = 0.0
        svd = IncrementalSVD()
        for a in A.T:
            svd.add_column(a)
        changes = []
        svd.remove_rows(lambda source, target: changes.append((source, target)))
        assert changes == [(4, 1)]
        assert svd.nb_rows == 4
        np.testing.assert_allclose(svd.sigma, np.linalg.svd(A, compute_uv=False)[:svd.rank],
                                   atol=1e-10)

    def test_trailing_rows_with_v(self, rng):
        A = random_matrix(rng, 5, 3)
        A[4] = 0.0
        svd = IncrementalSVD(want_v=True)
        for a in A.T:
            svd.add_column(a)
        changes = []
        svd.remove_rows(lambda source, target: changes.append((source, target)))
        assert changes == [(-1, 4)]
        assert relative_error(A[:4], svd.compute_u(), svd.sigma, svd.compute_v().T) < 1e-10

    def test_relocation_with_v_is_unsupported(self, rng):
        A = random_matrix(rng, 5, 3)
        A[0] = 0.0
        svd = IncrementalSVD(want_v=True)
        for a in A.T:
            svd.add_column(a)
        changes = []
        with pytest.raises(UnsupportedOperationError):
            svd.remove_rows(lambda source, target: changes.append((source, target)))
        assert changes == []
        assert svd.nb_rows == 5
