"""Removal of the (nearly) zero rows of a column space.

When some dimensions disappear from a low-rank approximation, the
corresponding rows of ``U`` become zero and can be removed.  The rows are
compacted in place, and a listener is notified of every change so that the
caller can keep its own row-indexed structures in sync.
"""

from __future__ import annotations

import logging
from typing import Protocol

import numpy as np

from .errors import UnsupportedOperationError

logger = logging.getLogger(__name__)


class ChangeListener(Protocol):
    def __call__(self, source: int, target: int) -> None:
        """Row ``source`` moved to ``target``; ``source == -1`` means ``target`` was deleted."""


def row_weights(U: np.ndarray, weights: np.ndarray) -> np.ndarray:
    """Return ``sum_j |w_j| U_ij^2`` for every row ``i``."""
    return (U * U) @ np.abs(weights)


def remove_zero_rows(U: np.ndarray,
                     weights: np.ndarray,
                     nb_rows: int,
                     listener: ChangeListener,
                     max_value: float = 0.0,
                     relocate: bool = True) -> int:
    """Compact the rows of ``U`` whose weighted square sum is at most ``max_value``.

    Each zero row is filled with the last non-zero row.  The listener
    receives ``(-1, i)`` for every deleted row ``i`` and ``(j, i)`` when row
    ``j`` is moved to ``i``; every row is reported at most once.

    Parameters
    ----------
    U : ndarray of shape (n, r)
        Matrix modified in place (only its first ``nb_rows`` rows are used).
    weights : ndarray of shape (r,)
        Column weights (singular values or eigenvalues).
    nb_rows : int
        Number of rows in use.
    listener : callable
        Called with ``(source, target)`` for every change.
    max_value : float
        Rows with a weighted square sum below or equal to this value are
        removed.  Anything above 0 breaks the orthogonality of ``U``.
    relocate : bool
        If false, moving a row raises :class:`UnsupportedOperationError`
        (before any change is made).

    Returns
    -------
    new_rows : int
        Number of remaining rows.
    """
    exceeds = row_weights(U[:nb_rows], weights) > max_value

    if not relocate:
        zeros = np.flatnonzero(~exceeds)
        if zeros.size > 0 and exceeds[zeros[0]:].any():
            raise UnsupportedOperationError("removing rows would move some rows of U")

    new_rows = nb_rows
    i = 0
    while i < new_rows:
        if not exceeds[i]:
            # Fill the hole with the last non zero row
            while True:
                new_rows -= 1
                if new_rows <= i:
                    break
                if exceeds[new_rows]:
                    U[i] = U[new_rows]
                    exceeds[i] = True
                    listener(new_rows, i)
                    break
                listener(-1, new_rows)
            if new_rows == i:
                listener(-1, i)
        i += 1

    logger.debug("Reduced the number of rows from %d to %d", nb_rows, new_rows)
    return new_rows
