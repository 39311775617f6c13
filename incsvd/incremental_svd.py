"""Incremental SVD under column appends.

This module maintains a thin singular value decomposition

    A ≈ U diag(S) V^T

of a matrix that grows one column at a time, ``A <- [A a]``.  Each update
costs a broken arrow SVD of size ``(r+1) x (r+1)`` plus ``O(n r)``
operations, following [Brand, 2006]:

* ``U = U1 U2`` with ``U1`` (``n x p``) only extended when the rank grows
  and the small ``U2`` (``p x r``) absorbing the rotations;
* ``V = V1 V2`` where ``V1`` gains one row per column.  Adding a row
  requires the pseudo-inverse of ``V2``, whose transpose ``V2PT`` is
  tracked alongside.

Example
-------

```python
import numpy as np
from incsvd import IncrementalSVD

svd = IncrementalSVD(want_v=True)
for a in A.T:
    svd.add_column(a)

U, S, V = svd.compute_u(), svd.sigma, svd.compute_v()
# A ≈ U @ np.diag(S) @ V.T
```
"""

from __future__ import annotations

import logging
import math

import numpy as np

from .broken_arrow import FastBrokenArrowSVD
from .config import DecompositionConfig
from .errors import NumericalError, UnsupportedOperationError
from .linalg import (MatrixFactory, SwapBuffer, as_vector, identity_added_post_multiplication,
                     inner_product, multiply, rank_one_update)
from .rows import remove_zero_rows
from .secular import DEFAULT_GAMMA, EPSILON

logger = logging.getLogger(__name__)

#: Threshold on the leftover row of the rotation of U
EPSILON_SVD = 10 * EPSILON


class IncrementalSVD:
    """Incremental SVD of a matrix built column by column.

    Parameters
    ----------
    want_v : bool
        Keep track of the row space ``V``.
    solver : object, optional
        Broken arrow SVD solver (default: :class:`FastBrokenArrowSVD`).  It
        must compute ``V`` and, if ``want_v``, ``U``.
    max_rank : int, optional
        Maximum rank of the decomposition.
    recycle_memory : bool
        Reuse the previous ``U2`` to store the next one.
    gamma : float
        Safety factor of the default solver.
    order : {"C", "F"}
        Storage order of the allocated matrices.
    """

    def __init__(self,
                 want_v: bool = False,
                 *,
                 solver=None,
                 max_rank: int | None = None,
                 recycle_memory: bool = True,
                 gamma: float = DEFAULT_GAMMA,
                 order: str = "C") -> None:
        self.want_v = want_v
        self.factory = MatrixFactory(order)
        if solver is None:
            solver = FastBrokenArrowSVD(want_u=want_v, want_v=True, gamma=gamma, factory=self.factory)
        self.solver = solver
        self.max_rank = max_rank

        self._u1: np.ndarray | None = None
        self._u2 = SwapBuffer(recycle_memory)
        self._v1: np.ndarray | None = None
        self._v2: np.ndarray | None = None
        self._v2pt: np.ndarray | None = None
        self._s: np.ndarray | None = None
        self._rank = 0
        self._nb_rows = 0
        self._n_columns = 0
        self._matrix_squared_norm = 0.0

    @classmethod
    def from_config(cls, config: DecompositionConfig) -> "IncrementalSVD":
        return cls(config.want_v,
                   max_rank=config.max_rank,
                   recycle_memory=config.recycle_memory,
                   gamma=config.gamma,
                   order=config.order)

    # ------------------------------------------------------------------
    # Accessors

    @property
    def rank(self) -> int:
        return self._rank

    @property
    def nb_rows(self) -> int:
        return self._nb_rows

    @property
    def n_columns(self) -> int:
        """Number of columns added so far."""
        return self._n_columns

    @property
    def matrix_squared_norm(self) -> float:
        """Squared Frobenius norm of the columns added so far."""
        return self._matrix_squared_norm

    @property
    def sigma(self) -> np.ndarray:
        """Singular values, in decreasing order."""
        if self._s is None:
            return np.zeros(0)
        return self._s

    @property
    def u1(self) -> np.ndarray | None:
        return self._u1

    @property
    def u2(self) -> np.ndarray | None:
        return self._u2.current

    @property
    def v1(self) -> np.ndarray | None:
        return self._v1

    @property
    def v2(self) -> np.ndarray | None:
        return self._v2

    # ------------------------------------------------------------------
    # Update

    def add_column(self, a) -> None:
        """Append the column ``a`` to the decomposed matrix.

        Parameters
        ----------
        a : array_like of shape (n,)
            New column.  Longer columns add rows to ``U``, shorter ones are
            padded with zeros.

        Raises
        ------
        UnsupportedOperationError
            If ``V`` is tracked and the rank would decrease.  The
            decomposition is left as it was before the call.
        """
        a = as_vector(a)
        n_columns = self._n_columns + 1
        a_sqr_norm = inner_product(a, a)
        logger.debug("*** New vector for incremental SVD (column %d, size %d) ***",
                     n_columns, a.shape[0])

        if self._rank == 0:
            self._n_columns = n_columns
            self._matrix_squared_norm += a_sqr_norm
            if a_sqr_norm == 0:
                logger.debug("Null column before initialisation")
                return
            self._initialise(a, a_sqr_norm)
            return

        # Adjust the size of U1 or of a; nothing is stored before the
        # solver has accepted the update
        U1 = self._u1
        nb_rows = self._nb_rows
        if a.shape[0] > nb_rows:
            nb_rows = a.shape[0]
            U1 = self.factory.resize(U1, nb_rows, U1.shape[1])
        elif a.shape[0] < nb_rows:
            a = np.concatenate([a, np.zeros(nb_rows - a.shape[0])])

        U2 = self._u2.current
        r = self._rank

        # m <- U^T a = U2^T U1^T a
        mp = np.zeros(r + 1)
        m = mp[:r]
        if U2 is not None:
            m[:] = multiply(U2, multiply(U1, a, transpose_a=True), transpose_a=True)
        else:
            multiply(U1, a, m, transpose_a=True)

        # p <- a - U m (residual of the projection)
        p = a.copy()
        multiply(U1, multiply(U2, m) if U2 is not None else m, p, alpha=-1.0, beta=1.0)
        p_norm = math.sqrt(inner_product(p, p))
        if math.isnan(p_norm):
            logger.warning("p-norm is NaN for the %dth vector", n_columns)
        mp[r] = p_norm

        # The SVD is computed on K^T = [S 0; m^T ||p||], so that the rotation
        # of U is given by its right singular vectors and the one of V by its
        # left singular vectors
        result = self.solver.compute_svd(self._s, mp, min(a.shape[0], n_columns))
        new_rank = result.rank
        C = result.V
        D = result.U if self.want_v else None
        logger.debug("Old rank is %d, new rank is %d", r, new_rank)

        can_grow = (r < new_rank
                    and (self.max_rank is None or r < self.max_rank)
                    and r < nb_rows
                    and r < n_columns)
        if not can_grow and new_rank < r and self.want_v:
            raise UnsupportedOperationError(
                f"rank decrease ({r} to {new_rank}) is not supported when V is tracked")

        self._u1 = U1
        self._nb_rows = nb_rows
        self._n_columns = n_columns
        self._matrix_squared_norm += a_sqr_norm

        if can_grow:
            self._grow(C, D, p, p_norm)
            self._s = result.S
            self._rank = new_rank
        else:
            k = min(r, new_rank)
            self._hold(C, D, r, k, p, p_norm)
            self._s = result.S[:k]
            self._rank = k

    def _initialise(self, a: np.ndarray, a_sqr_norm: float) -> None:
        a_norm = math.sqrt(a_sqr_norm)
        self._rank = 1
        self._nb_rows = a.shape[0]
        self._u2.reset()
        self._u1 = self.factory.create(self._nb_rows, 1)
        self._u1[:, 0] = a / a_norm
        self._s = np.array([a_norm])

        if self.want_v:
            # The null columns added so far are zero rows of V1
            self._v1 = self.factory.create(self._n_columns, 1)
            self._v1[-1, 0] = 1.0
            self._v2 = np.ones((1, 1))
            self._v2pt = np.ones((1, 1))

    def _hold(self, C, D, r, k, p, p_norm) -> None:
        if k < r:
            logger.info("Rank is going down from %d to %d", r, k)

        # U2 <- U2 Cr
        Cr = C[:r, :k]
        if self._u2.current is not None:
            self._u2.multiply_into(self._u2.current, Cr)
        else:
            self._u2.install(Cr)

        # U1 <- U1 U2 + p x^T / ||p|| where C = [Cr; x^T]
        x = C[r, :k]
        if p_norm > 0 and k > 0:
            error = math.sqrt(inner_product(x, x) / k)
            if error > EPSILON_SVD:
                logger.debug("Rank one update of U1 is necessary (error %e)", error)
                self._collapse()
                rank_one_update(1.0 / p_norm, self._u1, p, x)

        if self.want_v:
            self._update_v(D[:r, :r], D[r, :r])

    def _update_v(self, W: np.ndarray, w: np.ndarray) -> None:
        # V2 <- V2 W
        self._v2 = multiply(self._v2, W)

        # V2PT <- V2PT WPT with WPT = W + W w^T w / (1 - ||w||^2), the
        # transpose of the inverse of W
        w_sqr_norm = inner_product(w, w)
        WPT = multiply(W, np.outer(w, w), alpha=1.0 / (1.0 - w_sqr_norm))
        WPT += W
        if not np.isfinite(WPT).all():
            raise NumericalError(f"cannot invert the rotation of V (||w||^2 = {w_sqr_norm:e})",
                                 int(np.isnan(WPT).sum()))
        self._v2pt = multiply(self._v2pt, WPT)

        # V1 <- [V1; w V2PT^T]
        q = self._v1.shape[0]
        self._v1 = self.factory.resize(self._v1, q + 1, self._v1.shape[1])
        multiply(w[None, :], self._v2pt, self._v1[q:q + 1], transpose_b=True)

    def _grow(self, C, D, p, p_norm) -> None:
        # U1 <- [U1 p/||p||]
        columns = self._u1.shape[1]
        self._u1 = self.factory.resize(self._u1, self._nb_rows, columns + 1)
        self._u1[:, columns] = p / p_norm

        # U2 <- [U2 0; 0 1] C
        if self._u2.current is not None:
            self._u2.identity_added_into(self._u2.current, C)
        else:
            self._u2.install(C)

        if self.want_v:
            # V1 <- [V1 0; 0 1]
            q, v_columns = self._v1.shape
            self._v1 = self.factory.resize(self._v1, q + 1, v_columns + 1)
            self._v1[q, v_columns] = 1.0
            # V2 <- [V2 0; 0 1] D and V2PT <- [V2PT 0; 0 1] D
            self._v2 = identity_added_post_multiplication(self._v2, D)
            self._v2pt = identity_added_post_multiplication(self._v2pt, D)

    def _collapse(self) -> None:
        U2 = self._u2.current
        if U2 is not None:
            self._u1 = multiply(self._u1, U2)
            self._u2.clear()

    # ------------------------------------------------------------------
    # Other operations

    def compute_u(self) -> np.ndarray | None:
        """Return ``U``, collapsing ``U1 U2`` into ``U1``."""
        self._collapse()
        return self._u1

    def compute_u_column(self, j: int) -> np.ndarray:
        U2 = self._u2.current
        if U2 is not None:
            return multiply(self._u1, U2[:, j])
        return self._u1[:, j]

    def compute_v(self) -> np.ndarray:
        """Return ``V = V1 V2`` (one row per added column)."""
        if not self.want_v:
            raise UnsupportedOperationError("V is not tracked (want_v=False)")
        if self._v1 is None:
            return np.zeros((self._n_columns, 0))
        return multiply(self._v1, self._v2)

    def trim_matrices(self) -> None:
        """Collapse ``U`` and release the unused memory."""
        self._collapse()
        self._u2.reset()
        if self._u1 is not None:
            self._u1 = self.factory.resize(self._u1, self._nb_rows, self._rank)

    def remove_rows(self, listener, max_value: float = 0.0) -> None:
        """Remove the (nearly) zero rows of ``U``.

        See :func:`~incsvd.rows.remove_zero_rows`.  When ``V`` is tracked,
        only trailing rows can be removed.

        Raises
        ------
        UnsupportedOperationError
            If ``V`` is tracked and a row would have to be moved.
        """
        self._collapse()
        if self._u1 is None:
            return
        self._nb_rows = remove_zero_rows(self._u1, self._s, self._nb_rows, listener, max_value,
                                         relocate=not self.want_v)
        self._u1 = self._u1[:self._nb_rows, :self._rank]
