"""SVD of a broken arrow matrix.

A broken arrow matrix of size ``N = n + 1`` is a diagonal matrix whose last
row has been replaced by a vector ``z``::

    [ d_1                 0  ]
    [      ...            :  ]
    [           d_n       0  ]
    [ z_1  ...  z_n  z_{n+1} ]

Its squared singular values are the eigenvalues of ``diag(d, 0)^2 + z z^T``,
so that they can be computed with the same deflation/bisection scheme as the
symmetric rank-one update, using the secular function

    f(w) = 1 + sum_i z_i^2 / ((d_i - w) (d_i + w)).

The implementation follows Gu & Eisenstat ("A divide-and-conquer algorithm
for the bidiagonal SVD", 1995).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from .errors import DimensionMismatchError, PreconditionError
from .linalg import MatrixFactory, as_vector, diagonal
from .rank_one_update import finite_direction
from .secular import DEFAULT_GAMMA, EPSILON, SYNTHETIC, IndexedValue, SecularSolver

logger = logging.getLogger(__name__)

#: Relative clamping distance above which a drift is reported as a warning
RELATIVE_DRIFT = 1e-10


@dataclass
class SVDResult:
    """Thin SVD ``B = U diag(S) V^T`` of a broken arrow matrix.

    Attributes
    ----------
    U : ndarray of shape (N, rank), optional
        Left singular vectors (the last row corresponds to ``z``).
    S : ndarray of shape (rank,)
        Singular values in decreasing order.
    V : ndarray of shape (N, rank), optional
        Right singular vectors.
    """

    U: np.ndarray | None
    S: np.ndarray
    V: np.ndarray | None

    @property
    def rank(self) -> int:
        return int(self.S.shape[0])


class FastBrokenArrowSVD(SecularSolver):
    """Broken arrow SVD in ``O(N^2)``.

    Parameters
    ----------
    want_u, want_v : bool
        Compute the left (resp. right) singular vectors.
    gamma : float
        Safety factor of the deflation and stopping thresholds.
    factory : MatrixFactory, optional
        Allocator of ``U`` and ``V``.
    """

    def __init__(self,
                 want_u: bool = True,
                 want_v: bool = True,
                 gamma: float = DEFAULT_GAMMA,
                 factory: MatrixFactory | None = None) -> None:
        super().__init__(gamma)
        self.want_u = want_u
        self.want_v = want_v
        self.factory = factory or MatrixFactory()

    @staticmethod
    def _gap(x, y):
        return (x + y) * (x - y)

    @staticmethod
    def _secular_denominator(d, middle, nu):
        return ((d - middle) - nu) * ((d + middle) + nu)

    def _first_bracket(self, mz_norm: float) -> float:
        # w_0^2 <= d_0^2 + ||z||^2
        return float(np.sqrt(mz_norm))

    def _is_large_drift(self, delta: float, root: float) -> bool:
        return delta > RELATIVE_DRIFT * abs(root)

    def compute_svd(self, D, z, max_rank: int | None = None) -> SVDResult:
        """Compute the SVD of the broken arrow matrix ``[D 0; z^T]``.

        Parameters
        ----------
        D : ndarray of shape (n,) or (n, n)
            Diagonal, sorted in decreasing order.
        z : ndarray of shape (n + 1,)
            Last row of the matrix.
        max_rank : int, optional
            Maximum rank of the returned decomposition.

        Returns
        -------
        result : SVDResult

        Raises
        ------
        DimensionMismatchError
            If ``z`` does not have ``n + 1`` entries.
        PreconditionError
            If ``D`` is not sorted.
        """
        d = diagonal(D)
        z = as_vector(z)
        N = d.shape[0] + 1
        if z.shape[0] != N:
            raise DimensionMismatchError(
                f"D ({N - 1} entries) and z ({z.shape[0]} entries) are not compatible in broken arrow SVD")
        unsorted = np.flatnonzero(np.diff(d) > 0)
        if unsorted.size > 0:
            i = int(unsorted[0])
            raise PreconditionError(f"D[{i + 1}] = {d[i + 1]:e} > {d[i]:e} = D[{i}]")

        logger.debug("Initialisation of a %d x %d broken arrow SVD", N, N)
        values = [IndexedValue(i, float(d[i]), float(z[i])) for i in range(N - 1)]
        values.append(IndexedValue(SYNTHETIC, 0.0, float(z[N - 1])))

        tau = self.gamma * EPSILON * float(np.linalg.norm(d))
        logger.debug("tau = %e", tau)

        M, mz_norm, rotations = self._deflate(values, tau)
        self._find_roots(values, M, mz_norm)
        self._recompute_z(values, M, tau)
        self._check_nan(values, "singular")

        values.sort(key=lambda v: -v.value)

        # Numerical rank
        tolerance = (N + 1) * values[0].value * EPSILON
        rank = 1
        while rank < N and values[rank].value > tolerance:
            rank += 1
        if max_rank is not None:
            rank = min(rank, max_rank)
        logger.debug("New matrix rank: %d (tolerance %e)", rank, tolerance)

        head = values[:rank]
        for i, v in enumerate(head):
            v.new_position = i
        S = np.array([v.value for v in head])

        selected = [v for v in values if v.selected]
        logger.debug("Number of selected values: %d out of %d", len(selected), rank)
        sel_d = np.array([v.d for v in selected])
        sel_z = np.array([v.z for v in selected])

        # The synthetic entry maps to the last row of V, and to an extra row
        # of U that is dropped at the end (its components are all zero)
        def u_row(v: IndexedValue) -> int:
            return N if v.position == SYNTHETIC else v.position

        def v_row(v: IndexedValue) -> int:
            return N - 1 if v.position == SYNTHETIC else v.position

        U = V = None
        with np.errstate(divide="ignore", invalid="ignore"):
            if self.want_u:
                U = self.factory.create(N + 1, rank)
                rows = np.array([u_row(v) for v in selected] + [N - 1], dtype=int)
                for j, vj in enumerate(head):
                    if not vj.selected:
                        U[u_row(vj), j] = -1.0 if vj.z < 0 else 1.0
                        continue
                    # Lemma 2.1, eq. 2.3
                    x = np.append(sel_z * sel_d / self._gap(sel_d, vj.value), -1.0)
                    x = finite_direction(x)
                    U[rows, j] = x / np.linalg.norm(x)
                self._apply_rotations(U, rotations, u_row)
                U = self.factory.resize(U, N, rank)

            if self.want_v:
                V = self.factory.create(N, rank)
                rows = np.array([v_row(v) for v in selected], dtype=int)
                for j, vj in enumerate(head):
                    if not vj.selected:
                        V[v_row(vj), j] = -1.0 if vj.z < 0 else 1.0
                        continue
                    # Lemma 2.1, eq. 2.5
                    x = finite_direction(sel_z / self._gap(sel_d, vj.value))
                    V[rows, j] = x / np.linalg.norm(x)
                self._apply_rotations(V, rotations, v_row)

        return SVDResult(U, S, V)
