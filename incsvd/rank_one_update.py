"""Eigen-decomposition of a rank-one modified diagonal matrix.

Given a diagonal ``D`` and a vector ``z``, :class:`FastRankOneUpdate`
computes the eigenvalues and eigenvectors of

    D + rho z z^T

in ``O(N^2)`` operations using the secular equation machinery of
:mod:`incsvd.secular`.  ``D`` may have fewer entries than ``z``: the missing
entries are zeros, inserted at their sorted position.

Example
-------

```python
import numpy as np
from incsvd.rank_one_update import FastRankOneUpdate

result = FastRankOneUpdate().rank_one_update(np.array([4.0, 1.0]), 1.0, np.array([1.0, 1.0]))
Q, lam = result.eigenvectors, result.eigenvalues
# Q @ np.diag(lam) @ Q.T == np.diag([4, 1]) + np.outer([1, 1], [1, 1])
```
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import numpy as np

from .errors import DimensionMismatchError
from .linalg import MatrixFactory, as_vector, diagonal
from .secular import DEFAULT_GAMMA, EPSILON, IndexedValue, SecularSolver, sort_by_value

logger = logging.getLogger(__name__)


@dataclass
class EigenResult:
    """Eigenvalues (decreasing order) and, optionally, the eigenvectors.

    Attributes
    ----------
    eigenvalues : ndarray of shape (rank,)
    eigenvectors : ndarray of shape (N, rank), optional
        ``(rank, rank)`` when the solver was asked not to keep the full size.
    """

    eigenvalues: np.ndarray
    eigenvectors: np.ndarray | None = None

    @property
    def rank(self) -> int:
        return int(self.eigenvalues.shape[0])


class EigenValues:
    """:class:`~incsvd.selector.EigenList` over the solver entries."""

    def __init__(self, values: list[IndexedValue]) -> None:
        self.values = values
        self.rank = len(values)
        self.min_removed = len(values)

    def __len__(self) -> int:
        return len(self.values)

    def __getitem__(self, index: int) -> float:
        return self.values[index].value

    def remove(self, index: int) -> None:
        v = self.values[index]
        if not v.removed:
            v.removed = True
            self.rank -= 1
            self.min_removed = min(self.min_removed, index)

    def is_selected(self, index: int) -> bool:
        return not self.values[index].removed


def finite_direction(x: np.ndarray) -> np.ndarray:
    """Return ``x``, or the direction of its infinite entries if any.

    A root clamped onto a pole of the secular function produces infinite
    components; the vector is then the unit vector(s) of that pole.
    """
    if np.isfinite(x).all():
        return x
    return np.where(np.isinf(x), np.sign(x), 0.0)


class FastRankOneUpdate(SecularSolver):
    """Rank-one update of a diagonal eigen-decomposition (Gu & Eisenstat).

    Parameters
    ----------
    gamma : float
        Safety factor of the deflation and stopping thresholds.
    factory : MatrixFactory, optional
        Allocator of the eigenvector matrix.
    """

    def __init__(self, gamma: float = DEFAULT_GAMMA, factory: MatrixFactory | None = None) -> None:
        super().__init__(gamma)
        self.factory = factory or MatrixFactory()

    @staticmethod
    def _gap(x, y):
        return x - y

    @staticmethod
    def _secular_denominator(d, middle, nu):
        return (d - middle) - nu

    def rank_one_update(self, D, rho: float, z, compute_vectors: bool = True,
                        selector=None, keep: bool = True) -> EigenResult:
        """Compute the eigen-decomposition of ``D + rho z z^T``.

        Parameters
        ----------
        D : ndarray of shape (n,) or (n, n)
            Diagonal entries, sorted in decreasing order.
        rho : float
            Update weight; may be negative.
        z : ndarray of shape (N,), ``N >= n``
            Update vector.
        compute_vectors : bool
            Also compute the eigenvectors.
        selector : callable, optional
            Eigenvalue selector, called with an :class:`EigenValues` list.
        keep : bool
            When false and the selector lowered the rank, only the leading
            ``rank x rank`` block of the eigenvectors is returned.

        Returns
        -------
        result : EigenResult
            Eigenvalues in decreasing order; eigenvector rows follow the
            ordering of ``z``.

        Raises
        ------
        DimensionMismatchError
            If ``D`` has more entries than ``z``.
        NumericalError
            If some eigenvalue is NaN.
        """
        d = diagonal(D)
        z = as_vector(z)
        N = z.shape[0]
        rank_d = d.shape[0]
        if rank_d > N:
            raise DimensionMismatchError(
                f"D ({rank_d} entries) and z ({N} entries) are not compatible in rank-one update")

        logger.debug("Initialisation for a rank-1 update of a %d x %d diagonal matrix (rho=%e, d(D)=%d)",
                     N, N, rho, rank_d)

        # Solve with a positive rho, on the opposite diagonal if necessary
        negative_update = rho < 0
        scale = math.sqrt(abs(rho))

        d_full = np.zeros(N)
        d_full[:rank_d] = -d if negative_update else d
        if np.any(np.diff(d) > 0):
            logger.debug("Diagonal matrix is not sorted: sorting it")
        order = np.argsort(-d_full, kind="stable")
        values = [IndexedValue(int(k), float(d_full[k]), scale * float(z[k])) for k in order]

        tau = self.gamma * EPSILON * float(np.linalg.norm(d))
        logger.debug("tau = %e", tau)

        M, mz_norm, rotations = self._deflate(values, tau)
        self._find_roots(values, M, mz_norm)
        self._recompute_z(values, M, tau)

        if negative_update:
            for v in values:
                v.d = -v.d
                v.value = -v.value

        self._check_nan(values, "eigen")
        sort_by_value(values)

        rank = N
        if selector is not None:
            eigen_list = EigenValues(values)
            selector(eigen_list)
            logger.debug("After the selector was applied, our rank is %d (it was %d)",
                         eigen_list.rank, rank)
            rank = eigen_list.rank
            if rank < N and eigen_list.min_removed != rank:
                logger.debug("Re-ordering since %d != %d", eigen_list.min_removed, rank)
                sort_by_value(values, eigen_list.min_removed)

        for i, v in enumerate(values[:rank]):
            v.new_position = i
        eigenvalues = np.array([v.value for v in values[:rank]])
        result = EigenResult(eigenvalues)

        if not compute_vectors:
            return result

        selected = [v for v in values if v.selected]
        logger.debug("Number of selected values: %d out of %d", len(selected), rank)
        rows = np.array([v.position for v in selected], dtype=int)
        sel_d = np.array([v.d for v in selected])
        sel_z = np.array([v.z for v in selected])

        Q = self.factory.create(N, rank)
        with np.errstate(divide="ignore", invalid="ignore"):
            for j, vj in enumerate(values[:rank]):
                if not vj.selected:
                    Q[vj.position, j] = 1.0
                    continue
                x = finite_direction(sel_z / (sel_d - vj.value))
                Q[rows, j] = x / np.linalg.norm(x)

        self._apply_rotations(Q, rotations, lambda v: v.position)

        if not keep and rank < N:
            Q = Q[:rank, :rank]
        result.eigenvectors = Q
        return result
