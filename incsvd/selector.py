"""Eigenvalue selectors.

A selector receives the eigenvalues of a decomposition, sorted in decreasing
order, and removes some of them so that the decomposition becomes thin.
Anything callable with an :class:`EigenList` can be used as a selector; the
classes below cover the usual policies.
"""

from __future__ import annotations

import heapq
import logging
from typing import Protocol

import numpy as np

logger = logging.getLogger(__name__)


class EigenList(Protocol):
    """Mutable view over an ordered list of eigenvalues."""

    def __len__(self) -> int:
        """Number of eigenvalues (removed ones included)."""

    def __getitem__(self, index: int) -> float:
        """Eigenvalue at ``index``."""

    def remove(self, index: int) -> None:
        """Remove an eigenvalue from the selection."""

    @property
    def rank(self) -> int:
        """Number of eigenvalues still selected."""

    def is_selected(self, index: int) -> bool:
        """Whether the eigenvalue at ``index`` is still selected."""


class ArrayEigenList:
    """:class:`EigenList` over a vector of eigenvalues."""

    def __init__(self, values: np.ndarray) -> None:
        self.values = np.asarray(values, dtype=float)
        self.removed = np.zeros(self.values.shape[0], dtype=bool)

    def __len__(self) -> int:
        return self.values.shape[0]

    def __getitem__(self, index: int) -> float:
        return float(self.values[index])

    def remove(self, index: int) -> None:
        self.removed[index] = True

    @property
    def rank(self) -> int:
        return int((~self.removed).sum())

    def is_selected(self, index: int) -> bool:
        return not self.removed[index]


class Selector:
    """Base class of eigenvalue selectors."""

    def selection(self, eigenvalues: EigenList) -> None:
        raise NotImplementedError

    def __call__(self, eigenvalues: EigenList) -> None:
        self.selection(eigenvalues)


class ThresholdSelector(Selector):
    """Remove the eigenvalues below ``(n + 1) * epsilon * max``.

    Parameters
    ----------
    epsilon : float
        Relative threshold (default: double precision).
    absolute : bool
        Compare absolute values, the maximum being the largest absolute value
        of the first and last eigenvalues.  Otherwise the signed values are
        compared to ``|first|``.
    """

    DEFAULT_EPSILON = 2.0 ** -52

    def __init__(self, epsilon: float = DEFAULT_EPSILON, absolute: bool = True) -> None:
        self.epsilon = float(epsilon)
        self.absolute = absolute

    def selection(self, eigenvalues: EigenList) -> None:
        n = len(eigenvalues)
        if n == 0:
            return
        if self.absolute:
            top = max(abs(eigenvalues[0]), abs(eigenvalues[n - 1]))
        else:
            top = abs(eigenvalues[0])
        tolerance = (n + 1.0) * top * self.epsilon

        for i in range(n - 1, -1, -1):
            value = abs(eigenvalues[i]) if self.absolute else eigenvalues[i]
            if value < tolerance:
                logger.debug("Removing %d with l=%e [< %e]", i, eigenvalues[i], tolerance)
                eigenvalues.remove(i)


class MaximumRankSelector(Selector):
    """Keep at most ``max_rank`` eigenvalues, the highest ones.

    Parameters
    ----------
    max_rank : int
        Maximum number of eigenvalues kept.
    absolute : bool
        Rank the eigenvalues by absolute value.
    """

    def __init__(self, max_rank: int, absolute: bool = False) -> None:
        self.max_rank = int(max_rank)
        self.absolute = absolute

    def selection(self, eigenvalues: EigenList) -> None:
        delta = eigenvalues.rank - self.max_rank
        if delta <= 0:
            logger.debug("Not removing eigenvalue since current rank (%d) <= max rank (%d)",
                         eigenvalues.rank, self.max_rank)
            return

        logger.debug("Removing %d eigenvalues out of %d [max rank is %d]",
                     delta, eigenvalues.rank, self.max_rank)
        candidates = []
        for i in range(len(eigenvalues)):
            if eigenvalues.is_selected(i):
                value = abs(eigenvalues[i]) if self.absolute else eigenvalues[i]
                candidates.append((value, i))

        for value, i in heapq.nsmallest(delta, candidates):
            logger.debug("Removing %d with l=%g", i, value)
            eigenvalues.remove(i)


class ChainSelector(Selector):
    """Apply several selectors in turn."""

    def __init__(self, *selectors) -> None:
        self.selectors = [s for s in selectors if s is not None]

    def selection(self, eigenvalues: EigenList) -> None:
        for s in self.selectors:
            s(eigenvalues)
