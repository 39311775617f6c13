"""Incremental eigen-decomposition under symmetric rank-one updates.

The decomposition ``A = U diag(S) U^T`` is updated by ``A <- A + rho a a^T``
following Brand ("Fast low-rank modifications of the thin singular value
decomposition", 2006).  ``U`` is kept in the factored form ``U = U1 U2``:
``U1`` (``n x p``) only changes when the rank grows, while the small ``U2``
(``p x r``) absorbs the rotations computed by the secular equation solver.

Example
-------

```python
import numpy as np
from incsvd import IncrementalSymmetricED

ed = IncrementalSymmetricED()
for a in np.eye(3):
    ed.update(1.0, a)
U, S = ed.compute_u(), ed.sigma
```
"""

from __future__ import annotations

import logging
import math

import numpy as np

from .config import DecompositionConfig
from .linalg import MatrixFactory, SwapBuffer, as_vector, inner_product, multiply, rank_one_update
from .rank_one_update import FastRankOneUpdate
from .rows import remove_zero_rows
from .secular import DEFAULT_GAMMA, EPSILON
from .selector import ChainSelector, MaximumRankSelector
from .utils import timer

logger = logging.getLogger(__name__)

#: Looser precision used to decide whether the residual is significant
EPSILON_ED = 10 * EPSILON


class IncrementalSymmetricED:
    """Incremental eigen-decomposition ``A = U diag(S) U^T``.

    Parameters
    ----------
    selector : callable, optional
        Eigenvalue selector applied at each update (see
        :mod:`incsvd.selector`).  Without selector, the rank never decreases.
    solver : object, optional
        Rank-one update solver (default: :class:`FastRankOneUpdate`).
    min_ratio : float
        ``U1`` and ``U2`` are collapsed when ``cols(U2) / rows(U2)`` drops
        below this ratio.
    recycle_memory : bool
        Reuse the previous ``U2`` to store the next one.
    max_rank : int, optional
        Maximum rank; chained after ``selector``.  The eigenvalues with the
        largest absolute values are kept.
    gamma : float
        Safety factor of the default solver.
    order : {"C", "F"}
        Storage order of ``U1``.
    """

    def __init__(self,
                 selector=None,
                 *,
                 solver=None,
                 min_ratio: float = 0.5,
                 recycle_memory: bool = True,
                 max_rank: int | None = None,
                 gamma: float = DEFAULT_GAMMA,
                 order: str = "C") -> None:
        self.factory = MatrixFactory(order)
        self.solver = solver if solver is not None else FastRankOneUpdate(gamma, self.factory)
        if max_rank is not None:
            selector = ChainSelector(selector, MaximumRankSelector(max_rank, absolute=True))
        self.selector = selector
        self.max_rank = max_rank
        self.min_ratio = float(min_ratio)

        self._u1: np.ndarray | None = None
        self._u2 = SwapBuffer(recycle_memory)
        self._s: np.ndarray | None = None
        self._rank = 0
        self._nb_rows = 0
        self._number_of_updates = 0

    @classmethod
    def from_config(cls, config: DecompositionConfig, selector=None) -> "IncrementalSymmetricED":
        return cls(selector,
                   min_ratio=config.min_ratio,
                   recycle_memory=config.recycle_memory,
                   max_rank=config.max_rank,
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
    def number_of_updates(self) -> int:
        return self._number_of_updates

    @property
    def u1(self) -> np.ndarray | None:
        return self._u1

    @property
    def u2(self) -> np.ndarray | None:
        """``None`` when ``U2`` is the identity."""
        return self._u2.current

    @property
    def sigma(self) -> np.ndarray:
        """Eigenvalues, in decreasing order."""
        if self._s is None:
            return np.zeros(0)
        return self._s

    @property
    def recycle_memory(self) -> bool:
        return self._u2.recycle

    # ------------------------------------------------------------------
    # Update

    def update(self, rho: float, a) -> None:
        """Update the decomposition with ``rho a a^T``.

        Parameters
        ----------
        rho : float
            Weight of the update (may be negative).
        a : array_like of shape (n,)
            Update vector.  Longer vectors add rows to ``U``, shorter ones
            are padded with zeros.
        """
        a = as_vector(a)
        a_sqr_norm = inner_product(a, a)

        # ---- First update
        if self._rank == 0:
            if a_sqr_norm == 0:
                logger.debug("Ignoring a null vector before initialisation")
                return
            self._number_of_updates += 1
            self._initialise(rho, a, a_sqr_norm)
            return

        logger.debug("*** New rank one update (%d) ***", self._number_of_updates + 1)
        self._number_of_updates += 1

        # Adjust the size of U1 or of a
        if a.shape[0] > self._nb_rows:
            self._u1 = self.factory.resize(self._u1, a.shape[0], self._u1.shape[1])
            self._nb_rows = a.shape[0]
        elif a.shape[0] < self._nb_rows:
            a = np.concatenate([a, np.zeros(self._nb_rows - a.shape[0])])

        U1 = self._u1
        U2 = self._u2.current
        rank = self._rank

        # m <- U^T a = U2^T U1^T a
        mp = np.zeros(rank + 1)
        m = mp[:rank]
        if U2 is not None:
            m[:] = multiply(U2, multiply(U1, a, transpose_a=True), transpose_a=True)
        else:
            multiply(U1, a, m, transpose_a=True)

        # p <- a - U m (residual of the projection)
        p = a.copy()
        multiply(U1, multiply(U2, m) if U2 is not None else m, p, alpha=-1.0, beta=1.0)
        p_norm = math.sqrt(inner_product(p, p))
        mp[rank] = p_norm

        extra_dimension = (self._nb_rows > rank
                           and self._number_of_updates > rank
                           and p_norm > 0
                           and p_norm >= math.sqrt(a_sqr_norm) * EPSILON_ED)
        logger.debug("Extra dimension: %s (||p||=%e, ||a||*epsilon=%e)",
                     extra_dimension, p_norm, math.sqrt(a_sqr_norm) * EPSILON_ED)

        result = self.solver.rank_one_update(self._s, rho, mp if extra_dimension else m,
                                             True, self.selector, True)
        new_rank = result.rank
        X = result.eigenvectors
        eigen_rank = X.shape[0]
        logger.debug("Old rank is %d, eigen rank is %d, new rank is %d", rank, eigen_rank, new_rank)
        self._s = result.eigenvalues

        if new_rank <= rank:
            self._hold(X, rank, new_rank, eigen_rank, extra_dimension, p, p_norm)
        else:
            self._grow(X, p, p_norm)
        self._rank = new_rank

    def _initialise(self, rho: float, a: np.ndarray, a_sqr_norm: float) -> None:
        self._rank = 1
        self._nb_rows = a.shape[0]
        self._u2.reset()
        self._u1 = self.factory.create(self._nb_rows, 1)
        self._u1[:, 0] = a / math.sqrt(a_sqr_norm)
        self._s = np.array([rho * a_sqr_norm])

    def _hold(self, X, rank, new_rank, eigen_rank, extra_dimension, p, p_norm) -> None:
        # U2 <- U2 X1
        if self._u2.current is not None:
            self._u2.multiply_into(self._u2.current, X[:rank, :new_rank])
        else:
            self._u2.install(X[:self._u1.shape[1], :new_rank])

        if extra_dimension:
            # The extra dimension was not retained: fold its component into U1
            x = X[eigen_rank - 1, :new_rank]
            inner_x = inner_product(x, x)
            error = math.sqrt(inner_x / x.shape[0]) if x.shape[0] > 0 else 0.0
            logger.debug("Rank is going from %d to %d [||x||=%e and error is %e]",
                         rank, new_rank, math.sqrt(inner_x), error)
            if error > EPSILON_ED:
                # U1 <- U1 U2 + p x^T / ||p||
                self._collapse()
                rank_one_update(1.0 / p_norm, self._u1, p, x)
        else:
            U2 = self._u2.current
            ratio = U2.shape[1] / U2.shape[0]
            if ratio < self.min_ratio:
                logger.debug("Ratio cols(U2)/rows(U2) = %e < %e, resetting U2", ratio, self.min_ratio)
                self._collapse()

        if new_rank < rank:
            logger.info("Rank is going down from %d to %d", rank, new_rank)

    def _grow(self, X, p, p_norm) -> None:
        # U1 <- [U1 p/||p||]
        columns = self._u1.shape[1]
        self._u1 = self.factory.resize(self._u1, self._nb_rows, columns + 1)
        self._u1[:, columns] = p / p_norm

        # U2 <- [U2 0; 0 1] X
        if self._u2.current is not None:
            self._u2.identity_added_into(self._u2.current, X)
        else:
            self._u2.install(X)

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

    def trim_matrices(self) -> None:
        """Collapse ``U`` and release the unused memory."""
        self._collapse()
        self._u2.reset()
        if self._u1 is not None:
            self._u1 = self.factory.resize(self._u1, self._nb_rows, self._rank)

    def reorthogonalise(self) -> None:
        """Rebuild the decomposition from its own eigenvectors.

        Each column ``u_i`` is replayed as the update ``s_i u_i u_i^T``,
        which restores the orthogonality lost to rounding errors.  The
        number of updates is preserved.
        """
        if self._rank == 0:
            return
        U = self.compute_u().copy()
        S = self._s.copy()
        logger.info("Reorthogonalise U (%d x %d) and S", U.shape[0], U.shape[1])

        number_of_updates = self._number_of_updates
        self._u1 = self._s = None
        self._u2.reset()
        self._rank = 0
        self._number_of_updates = 0
        with timer("reorthogonalisation", logger):
            for i in range(S.shape[0]):
                self.update(S[i], U[:, i])
        self._number_of_updates = number_of_updates

    def remove_rows(self, listener, max_value: float = 0.0) -> None:
        """Remove the (nearly) zero rows of ``U``.

        Parameters
        ----------
        listener : callable
            Called with ``(source, target)``, see
            :func:`~incsvd.rows.remove_zero_rows`.
        max_value : float
            Rows with ``sum_j |s_j| U_ij^2 <= max_value`` are removed.  With
            a positive value, :meth:`reorthogonalise` should be called
            afterwards.
        """
        self._collapse()
        if self._u1 is None:
            return
        self._nb_rows = remove_zero_rows(self._u1, self._s, self._nb_rows, listener, max_value)
        self._u1 = self._u1[:self._nb_rows, :self._rank]

    def set_rank(self, new_rank: int) -> None:
        """Truncate the decomposition (nothing happens if ``new_rank >= rank``)."""
        if self._rank > new_rank:
            self._collapse()
            self._u1 = self._u1[:, :new_rank]
            self._s = self._s[:new_rank]
            self._rank = new_rank
