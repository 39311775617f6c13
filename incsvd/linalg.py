"""Matrix operations consumed by the incremental decompositions.

The engines only need a handful of dense operations on top of NumPy arrays:

* :func:`multiply` – ``C = alpha op(A) op(B) + beta C`` with optional
  transposition of either operand;
* :func:`inner_product` and :func:`rank_one_update` (``A += alpha x y^T``);
* :func:`identity_added_post_multiplication` – the product ``[A 0; 0 1] B``
  used when the rank of a factorisation grows by one;
* :class:`MatrixFactory` – allocation with a fixed storage order (row-major
  ``"C"`` or column-major ``"F"``);
* :class:`SwapBuffer` – a live matrix plus a spare one that is recycled as
  the output of the next product.

Shapes are checked eagerly and reported with
:class:`~incsvd.errors.DimensionMismatchError`.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .errors import ConfigError, DimensionMismatchError, PreconditionError


def as_vector(x) -> np.ndarray:
    """Return ``x`` as a one dimensional float array."""
    v = np.asarray(x, dtype=float)
    if v.ndim == 2 and 1 in v.shape:
        v = v.ravel()
    if v.ndim != 1:
        raise PreconditionError(f"expected a vector, got an array of shape {v.shape}")
    return v


def diagonal(D) -> np.ndarray:
    """Return the diagonal of ``D`` as a vector.

    ``D`` is either a vector holding the diagonal entries or a square
    two dimensional matrix (only its diagonal is read).
    """
    arr = np.asarray(D, dtype=float)
    if arr.ndim == 1:
        return arr
    if arr.ndim == 2 and arr.shape[0] == arr.shape[1]:
        return np.diag(arr).copy()
    raise PreconditionError(f"cannot read a diagonal from an array of shape {arr.shape}")


def multiply(A: np.ndarray,
             B: np.ndarray,
             C: np.ndarray | None = None,
             alpha: float = 1.0,
             beta: float = 0.0,
             transpose_a: bool = False,
             transpose_b: bool = False) -> np.ndarray:
    """Compute ``C = alpha op(A) op(B) + beta C``.

    Parameters
    ----------
    A : ndarray of shape (p, r)
        Left operand (transposed first if ``transpose_a``).
    B : ndarray of shape (r, q) or (r,)
        Right operand; a vector gives a matrix-vector product.
    C : ndarray, optional
        Output.  When ``None`` a new array is returned (and ``beta`` is
        ignored), otherwise ``C`` is updated in place and returned.
    alpha, beta : float
        Scaling factors.
    transpose_a, transpose_b : bool
        Whether to use the transpose of ``A`` (resp. ``B``).

    Returns
    -------
    C : ndarray
    """
    opA = A.T if transpose_a else A
    opB = B.T if (transpose_b and B.ndim == 2) else B
    if opA.ndim != 2:
        raise DimensionMismatchError(f"left operand must be a matrix, got shape {A.shape}")
    if opA.shape[1] != opB.shape[0]:
        raise DimensionMismatchError(
            f"cannot multiply {opA.shape} by {opB.shape}")

    product = opA @ opB
    if alpha != 1.0:
        product *= alpha
    if C is None:
        return product
    if C.shape != product.shape:
        raise DimensionMismatchError(
            f"output has shape {C.shape}, product has shape {product.shape}")
    if beta == 0.0:
        C[...] = product
    else:
        C *= beta
        C += product
    return C


def inner_product(x: np.ndarray, y: np.ndarray) -> float:
    """Return ``x . y``."""
    if x.shape != y.shape:
        raise DimensionMismatchError(f"inner product of {x.shape} and {y.shape}")
    return float(np.dot(x, y))


def rank_one_update(alpha: float, A: np.ndarray, x: np.ndarray, y: np.ndarray) -> np.ndarray:
    """In place ``A += alpha x y^T``; returns ``A``."""
    if A.shape != (x.shape[0], y.shape[0]):
        raise DimensionMismatchError(
            f"cannot update a {A.shape} matrix with vectors of size {x.shape[0]} and {y.shape[0]}")
    A += alpha * np.outer(x, y)
    return A


def identity_added_post_multiplication(A: np.ndarray,
                                       B: np.ndarray,
                                       out: np.ndarray | None = None) -> np.ndarray:
    """Compute ``[A 0; 0 1] B`` without forming the block matrix.

    Writing ``B = [B'; b]`` with ``b`` its last row, the product is
    ``[A B'; b]``.

    Parameters
    ----------
    A : ndarray of shape (p, r)
    B : ndarray of shape (r + 1, q)
    out : ndarray of shape (p + 1, q), optional
        Buffer receiving the result.  Ignored when its shape does not match
        or when it shares memory with an operand.

    Returns
    -------
    C : ndarray of shape (p + 1, q)
    """
    p, r = A.shape
    if B.shape[0] != r + 1:
        raise DimensionMismatchError(f"{r + 1} is different from {B.shape[0]}")
    q = B.shape[1]
    if not _usable_output(out, (p + 1, q), A, B):
        out = np.empty((p + 1, q))
    np.matmul(A, B[:r], out=out[:p])
    out[p] = B[r]
    return out


def _usable_output(out: np.ndarray | None, shape: tuple[int, ...], *operands: np.ndarray) -> bool:
    if out is None or out.shape != shape or not out.flags.writeable:
        return False
    return not any(np.shares_memory(out, op) for op in operands)


@dataclass(frozen=True)
class MatrixFactory:
    """Allocate matrices with a fixed storage order.

    Parameters
    ----------
    order : {"C", "F"}
        ``"C"`` for row-major storage, ``"F"`` for column-major storage.
    """

    order: str = "C"

    def __post_init__(self) -> None:
        if self.order not in ("C", "F"):
            raise ConfigError(f"unknown storage order {self.order!r}")

    def create(self, rows: int, columns: int) -> np.ndarray:
        return np.zeros((rows, columns), order=self.order)

    def resize(self, A: np.ndarray | None, rows: int, columns: int) -> np.ndarray:
        """Return a ``rows x columns`` copy of ``A``, zero padded or truncated."""
        B = self.create(rows, columns)
        if A is not None:
            r = min(rows, A.shape[0])
            c = min(columns, A.shape[1])
            B[:r, :c] = A[:r, :c]
        return B


class SwapBuffer:
    """A live matrix and a spare one, swapped after every product.

    The spare slot holds the previous matrix so that the next product can be
    written into it instead of allocating.  A spare is never used as an
    output when it shares memory with one of the operands, and it is dropped
    altogether when ``recycle`` is false.

    The buffer belongs to a single owner: two decompositions must not share
    a buffer, nor call into the same one concurrently.
    """

    def __init__(self, recycle: bool = True) -> None:
        self.recycle = recycle
        self.current: np.ndarray | None = None
        self._spare: np.ndarray | None = None

    @property
    def spare(self) -> np.ndarray | None:
        return self._spare

    def install(self, value: np.ndarray | None) -> None:
        """Make ``value`` current; the old current matrix becomes the spare."""
        old = self.current
        self.current = value
        if not self.recycle:
            self._spare = None
        elif old is not None:
            self._spare = old

    def clear(self) -> None:
        """Forget the current matrix, keeping the spare for later reuse."""
        if self.recycle and self.current is not None:
            self._spare = self.current
        self.current = None

    def reset(self) -> None:
        self.current = None
        self._spare = None

    def multiply_into(self, A: np.ndarray, B: np.ndarray) -> np.ndarray:
        """Install ``A @ B`` as the current matrix, reusing the spare slot."""
        if A.shape[1] != B.shape[0]:
            raise DimensionMismatchError(f"cannot multiply {A.shape} by {B.shape}")
        shape = (A.shape[0], B.shape[1])
        out = self._spare if _usable_output(self._spare, shape, A, B) else None
        result = np.matmul(A, B, out=out)
        self.install(result)
        return result

    def identity_added_into(self, A: np.ndarray, B: np.ndarray) -> np.ndarray:
        """Install ``[A 0; 0 1] B`` as the current matrix."""
        result = identity_added_post_multiplication(A, B, out=self._spare)
        self.install(result)
        return result
