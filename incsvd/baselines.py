"""Reference solvers built on dense LAPACK routines.

This module provides drop-in alternatives to the secular equation solvers,
against which they can be compared.  These include:

* :class:`StandardBrokenArrowSVD`, which forms the ``(n+1) x (n+1)`` broken
  arrow matrix explicitly and calls :func:`scipy.linalg.svd`;
* :class:`DenseRankOneUpdate`, which forms ``D + rho z z^T`` and calls
  :func:`scipy.linalg.eigh`.

Both cost ``O(N^3)`` instead of ``O(N^2)`` but are robust, and therefore
useful to cross-check the fast solvers.
"""

from __future__ import annotations

import logging

import numpy as np
from scipy.linalg import eigh, svd

from .broken_arrow import SVDResult
from .errors import DimensionMismatchError
from .linalg import as_vector, diagonal
from .rank_one_update import EigenResult
from .secular import EPSILON
from .selector import ArrayEigenList

logger = logging.getLogger(__name__)


class StandardBrokenArrowSVD:
    """Broken arrow SVD through a dense SVD.

    Parameters
    ----------
    want_u, want_v : bool
        Return the left (resp. right) singular vectors.
    """

    def __init__(self, want_u: bool = True, want_v: bool = True) -> None:
        self.want_u = want_u
        self.want_v = want_v

    def compute_svd(self, D, z, max_rank: int | None = None) -> SVDResult:
        d = diagonal(D)
        z = as_vector(z)
        N = d.shape[0] + 1
        if z.shape[0] != N:
            raise DimensionMismatchError(
                f"D ({N - 1} entries) and z ({z.shape[0]} entries) are not compatible in broken arrow SVD")

        K = np.zeros((N, N))
        K[np.arange(N - 1), np.arange(N - 1)] = d
        K[N - 1] = z

        U, s, Vt = svd(K)

        # Numerical rank (same rule as LAPACK's pseudo-inverse)
        tolerance = N * s[0] * EPSILON
        rank = max(1, int(np.count_nonzero(s > tolerance)))
        if max_rank is not None:
            rank = min(rank, max_rank)
        logger.debug("Dense broken arrow SVD: rank %d out of %d", rank, N)

        return SVDResult(U[:, :rank] if self.want_u else None,
                         s[:rank].copy(),
                         Vt[:rank].T.copy() if self.want_v else None)


class DenseRankOneUpdate:
    """Eigen-decomposition of ``D + rho z z^T`` through a dense EVD."""

    def rank_one_update(self, D, rho: float, z, compute_vectors: bool = True,
                        selector=None, keep: bool = True) -> EigenResult:
        d = diagonal(D)
        z = as_vector(z)
        N = z.shape[0]
        if d.shape[0] > N:
            raise DimensionMismatchError(
                f"D ({d.shape[0]} entries) and z ({N} entries) are not compatible in rank-one update")

        A = np.zeros((N, N))
        A[np.arange(d.shape[0]), np.arange(d.shape[0])] = d
        A += rho * np.outer(z, z)

        if compute_vectors:
            w, Q = eigh(A)
            Q = Q[:, ::-1]
        else:
            w = eigh(A, eigvals_only=True)
        w = w[::-1]

        keep_index = np.arange(N)
        if selector is not None:
            eigen_list = ArrayEigenList(w)
            selector(eigen_list)
            keep_index = np.flatnonzero(~eigen_list.removed)
            logger.debug("After the selector was applied, our rank is %d (it was %d)",
                         keep_index.size, N)

        result = EigenResult(w[keep_index].copy())
        if compute_vectors:
            Q = Q[:, keep_index]
            if not keep and result.rank < N:
                Q = Q[:result.rank]
            result.eigenvectors = np.ascontiguousarray(Q)
        return result
