from __future__ import annotations

import numpy as np
import pytest

from incsvd.errors import ConfigError, DimensionMismatchError, PreconditionError
from incsvd.linalg import (MatrixFactory, SwapBuffer, as_vector, diagonal,
                           identity_added_post_multiplication, inner_product, multiply,
                           rank_one_update)


class TestOperations:
    def test_as_vector(self):
        np.testing.assert_array_equal(as_vector([[1], [2]]), [1.0, 2.0])
        with pytest.raises(PreconditionError):
            as_vector(np.ones((2, 2)))

    def test_diagonal(self):
        np.testing.assert_array_equal(diagonal(np.diag([3.0, 1.0])), [3.0, 1.0])
        np.testing.assert_array_equal(diagonal([2.0, 1.0]), [2.0, 1.0])
        with pytest.raises(PreconditionError):
            diagonal(np.ones((2, 3)))

    @pytest.mark.parametrize("transpose_a", [False, True])
    @pytest.mark.parametrize("transpose_b", [False, True])
    def test_multiply(self, rng, transpose_a, transpose_b):
        A = rng.standard_normal((3, 4))
        B = rng.standard_normal((4, 2))
        A = A.T if transpose_a else A
        B = B.T if transpose_b else B
        C = multiply(A, B, transpose_a=transpose_a, transpose_b=transpose_b)
        expected = (A.T if transpose_a else A) @ (B.T if transpose_b else B)
        np.testing.assert_allclose(C, expected)

    def test_multiply_accumulates(self, rng):
        A, B = rng.standard_normal((3, 3)), rng.standard_normal((3, 3))
        C = np.ones((3, 3))
        out = multiply(A, B, C, alpha=2.0, beta=-1.0)
        assert out is C
        np.testing.assert_allclose(C, 2.0 * A @ B - 1.0)

    def test_multiply_vector(self, rng):
        A, x = rng.standard_normal((3, 2)), rng.standard_normal(3)
        np.testing.assert_allclose(multiply(A, x, transpose_a=True), A.T @ x)

    def test_multiply_mismatch(self):
        with pytest.raises(DimensionMismatchError):
            multiply(np.ones((2, 3)), np.ones((2, 3)))
        with pytest.raises(DimensionMismatchError):
            multiply(np.ones((2, 3)), np.ones((3, 3)), np.ones((3, 3)))

    def test_inner_product(self):
        assert inner_product(np.array([1.0, 2.0]), np.array([3.0, 4.0])) == 11.0
        with pytest.raises(DimensionMismatchError):
            inner_product(np.ones(2), np.ones(3))

    def test_rank_one_update(self):
        A = np.zeros((2, 3))
        rank_one_update(2.0, A, np.array([1.0, 2.0]), np.array([1.0, 0.0, -1.0]))
        np.testing.assert_array_equal(A, [[2.0, 0.0, -2.0], [4.0, 0.0, -4.0]])
        with pytest.raises(DimensionMismatchError):
            rank_one_update(1.0, A, np.ones(3), np.ones(3))

    def test_identity_added_post_multiplication(self, rng):
        A, B = rng.standard_normal((4, 3)), rng.standard_normal((4, 2))
        block = np.zeros((5, 4))
        block[:4, :3] = A
        block[4, 3] = 1.0
        np.testing.assert_allclose(identity_added_post_multiplication(A, B), block @ B)
        with pytest.raises(DimensionMismatchError):
            identity_added_post_multiplication(A, np.ones((3, 2)))

    def test_identity_added_reuses_output(self, rng):
        A, B = rng.standard_normal((2, 2)), rng.standard_normal((3, 3))
        out = np.empty((3, 3))
        assert identity_added_post_multiplication(A, B, out) is out
        assert identity_added_post_multiplication(A, B, np.empty((2, 2))) is not out


class TestMatrixFactory:
    def test_order(self):
        assert MatrixFactory("F").create(3, 2).flags.f_contiguous
        assert MatrixFactory().create(3, 2).flags.c_contiguous
        with pytest.raises(ConfigError):
            MatrixFactory("X")

    def test_resize(self):
        factory = MatrixFactory("F")
        A = np.arange(6.0).reshape(2, 3)
        B = factory.resize(A, 3, 2)
        np.testing.assert_array_equal(B, [[0.0, 1.0], [3.0, 4.0], [0.0, 0.0]])
        assert B.flags.f_contiguous
        np.testing.assert_array_equal(factory.resize(None, 1, 1), [[0.0]])


class TestSwapBuffer:
    def test_spare_is_recycled(self, rng):
        buffer = SwapBuffer()
        first = np.eye(3)
        buffer.install(first)
        B = rng.standard_normal((3, 3))
        second = buffer.multiply_into(first, B)
        assert buffer.spare is first

        # The spare is the output of the next product
        third = buffer.multiply_into(second, B)
        assert third is first
        assert buffer.spare is second
        np.testing.assert_allclose(third, B @ B)

    def test_without_recycling(self, rng):
        buffer = SwapBuffer(recycle=False)
        buffer.install(np.eye(2))
        buffer.multiply_into(buffer.current, rng.standard_normal((2, 2)))
        assert buffer.spare is None
        buffer.clear()
        assert buffer.current is None
        assert buffer.spare is None

    def test_clear_keeps_spare(self):
        buffer = SwapBuffer()
        current = np.eye(2)
        buffer.install(current)
        buffer.clear()
        assert buffer.current is None
        assert buffer.spare is current
        buffer.install(np.ones((2, 2)))
        assert buffer.spare is current
        buffer.reset()
        assert buffer.spare is None

    def test_identity_added_into(self, rng):
        buffer = SwapBuffer()
        buffer.install(rng.standard_normal((2, 2)))
        A = buffer.current
        C = rng.standard_normal((3, 3))
        result = buffer.identity_added_into(A, C)
        np.testing.assert_allclose(result, identity_added_post_multiplication(A, C))
        assert buffer.current is result
        assert buffer.spare is A
