"""Deflation and root finding shared by the broken arrow solvers.

Both solvers reduce their problem to a diagonal ``D`` (sorted in decreasing
order) and a vector ``z``, and look for the roots of the secular equation

    f(x) = 1 + sum_i z_i^2 / g(d_i, x)

with ``g(d, x) = d - x`` for the symmetric rank-one update ``D + z z^T`` and
``g(d, x) = d^2 - x^2`` for the SVD of the broken arrow matrix ``[D 0; z^T]``.
The procedure follows Gu & Eisenstat ("A stable and efficient algorithm for
the rank-one modification of the symmetric eigenproblem", 1994) and
G.W. Stewart, *Matrix Algorithms* vol. 2, pp. 174-176:

1. deflation – components of ``z`` below ``tau = gamma * eps * ||D||`` are
   dropped, and pairs of (nearly) equal diagonal entries are merged with a
   Givens rotation;
2. bisection – each root is searched between two consecutive diagonal
   entries, starting from the middle of the bracket;
3. the components of ``z`` are recomputed from the roots (Löwner's lemma) so
   that the vectors built from them are numerically orthogonal;
4. the rotations are replayed, in reverse order, on the vectors.

``gamma`` is a tunable safety margin (default 10).
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import numpy as np

from .errors import NumericalError

logger = logging.getLogger(__name__)

#: Double precision (2^-52)
EPSILON = float(np.finfo(np.float64).eps)

DEFAULT_GAMMA = 10.0

#: Clamping a root by less than this is considered rounding noise
MINOR_DRIFT = 1e-14

#: Position of an entry that has no counterpart in the original matrix
SYNTHETIC = -1


@dataclass(eq=False)
class IndexedValue:
    """One diagonal entry with its update component.

    Attributes
    ----------
    position : int
        Index in the original ordering, or :data:`SYNTHETIC`.
    d : float
        Original diagonal value.
    z : float
        Corresponding (rotated, deflated) component of the update vector.
    value : float
        New eigen/singular value (initialised to ``d``).
    selected : bool
        Part of the deflated secular problem.
    removed : bool
        Removed by the eigenvalue selector.
    new_position : int
        Column in the final decomposition.
    """

    position: int
    d: float
    z: float
    value: float = math.nan
    selected: bool = False
    removed: bool = False
    new_position: int = -1

    def __post_init__(self) -> None:
        self.value = self.d

    def __repr__(self) -> str:
        return (f"(rank={self.new_position}, position={self.position}, value={self.value:e}, "
                f"d={self.d:e}, z={self.z:e}, s={self.selected}, r={self.removed})")


@dataclass(frozen=True, eq=False)
class Rotation:
    """Givens rotation ``[c -s; s c]`` merging ``vj`` into ``vi``."""

    c: float
    s: float
    vi: IndexedValue
    vj: IndexedValue


@dataclass
class DriftCounter:
    """Number of roots clamped back into their bracket."""

    minor: int = 0
    large: int = 0

    @property
    def total(self) -> int:
        return self.minor + self.large


def sort_by_value(values: list[IndexedValue], start: int = 0) -> None:
    """Sort ``values[start:]`` by decreasing value, removed entries last."""
    values[start:] = sorted(values[start:], key=lambda v: (v.removed, -v.value))


class SecularSolver:
    """Common part of the rank-one EVD and broken arrow SVD solvers.

    Subclasses define the secular function through :meth:`_gap` and
    :meth:`_secular_denominator`.

    Parameters
    ----------
    gamma : float
        Safety factor for the deflation and stopping thresholds.
    """

    def __init__(self, gamma: float = DEFAULT_GAMMA) -> None:
        self.gamma = float(gamma)
        self.drift = DriftCounter()

    # --- Secular function

    @staticmethod
    def _gap(x, y):
        """``g(x, y)`` such that the secular terms are ``z^2 / g(d, root)``."""
        raise NotImplementedError

    @staticmethod
    def _secular_denominator(d: np.ndarray, middle: float, nu: float) -> np.ndarray:
        """``g(d, middle + nu)``, evaluated relative to ``middle``."""
        raise NotImplementedError

    def _first_bracket(self, mz_norm: float) -> float:
        """Width of the bracket of the largest root."""
        return mz_norm

    def _is_large_drift(self, delta: float, root: float) -> bool:
        return delta > MINOR_DRIFT

    # --- Steps

    def _deflate(self, values: list[IndexedValue], tau: float) -> tuple[int, float, list[Rotation]]:
        """Deflate and move the selected entries first (order preserved).

        Returns the number ``M`` of selected entries, the squared norm of
        their ``z`` components and the list of rotations.
        """
        rotations: list[Rotation] = []
        M = 0
        last: IndexedValue | None = None
        for i, vi in enumerate(values):
            zi = vi.z
            if abs(zi) <= tau:
                logger.debug("Deflating column %d (z_%d=%e close to 0)", vi.position, i, zi)
            elif last is not None and last.d - vi.d <= tau:
                r = math.hypot(last.z, zi)
                rotations.append(Rotation(last.z / r, zi / r, last, vi))
                last.z = r
                vi.z = 0.0
                logger.debug("Deflating column %d with rotation with column %d",
                             vi.position, last.position)
            else:
                last = vi
                M += 1
                vi.selected = True

        logger.debug("Matrix deflation finished: %d to %d (%d rotations)",
                     len(values), M, len(rotations))

        values[:] = [v for v in values if v.selected] + [v for v in values if not v.selected]
        mz_norm = math.fsum(v.z * v.z for v in values[:M])
        return M, mz_norm, rotations

    def _find_roots(self, values: list[IndexedValue], M: int, mz_norm: float) -> None:
        """Bisection on the secular equation for the first ``M`` entries."""
        if M == 0:
            return
        d = np.array([v.d for v in values[:M]])
        z2 = np.array([v.z for v in values[:M]]) ** 2
        first = self._first_bracket(mz_norm)

        # Stopping criterion from Gu & Eisenstat
        e = self.gamma * EPSILON * M

        logger.debug("Searching %d roots (bisection)", M)
        with np.errstate(divide="ignore", invalid="ignore"):
            for j in range(M):
                dj = float(d[j])
                upper = dj + first if j == 0 else float(d[j - 1])
                interval = (upper - dj) / 2
                middle = dj + interval
                logger.debug("Searching for root between %e and %e (interval %e)",
                             dj, upper, interval)

                # The root is searched relative to the middle of the bracket
                nu = -interval
                f = -1.0
                while True:
                    old_nu = nu
                    if f < 0:
                        nu += interval
                    else:
                        nu -= interval
                    if nu == old_nu:
                        logger.debug("Stopping since we don't change f anymore")
                        break

                    terms = z2 / self._secular_denominator(d, middle, nu)
                    psi = float(terms[j:].sum())
                    phi = float(terms[:j].sum())
                    f = 1.0 + psi + phi
                    interval /= 2
                    if not (math.isinf(f) or abs(f) > (1 + abs(psi) + abs(phi)) * e):
                        break

                values[j].value = self._clamp(j, middle + nu, dj, upper)
                logger.debug("Found root %d (%e) with f=%e", j + 1, values[j].value, f)

    def _clamp(self, j: int, root: float, lower: float, upper: float) -> float:
        # Rounding can push the root slightly out of its bracket
        if root < lower:
            return self._drifted(j, root, lower, "below")
        if root > upper:
            return self._drifted(j, root, upper, "above")
        return root

    def _drifted(self, j: int, root: float, bound: float, where: str) -> float:
        delta = abs(root - bound)
        if self._is_large_drift(delta, root):
            self.drift.large += 1
            level = logging.WARNING
        else:
            self.drift.minor += 1
            level = logging.DEBUG
        logger.log(level, "root_%d (%e) %s its bound (%e), delta=%e; clamping to bound",
                   j, root, where, bound, delta)
        return bound

    def _recompute_z(self, values: list[IndexedValue], M: int, tau: float) -> None:
        """Recompute the selected ``z`` from the roots (Löwner's lemma).

        Components that become smaller than ``tau`` are unselected.
        """
        if M == 0:
            return
        d = np.array([v.d for v in values[:M]])
        roots = np.array([v.value for v in values[:M]])
        gap = self._gap

        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            for i in range(M):
                vi = values[i]
                di = d[i]
                product = gap(roots[0], di)
                # roots below d_i
                if i + 1 < M:
                    product *= np.prod(gap(roots[i + 1:], di) / gap(d[i + 1:], di))
                # roots above d_i
                if i > 0:
                    product *= np.prod(gap(roots[1:i + 1], di) / gap(d[:i], di))

                if product < 0:
                    logger.debug("Product for z_%d is negative (%e), using 0", i, product)
                    product = 0.0
                newz = float(np.sqrt(product))
                if vi.z < 0:
                    newz = -newz
                logger.debug("z_%d goes from %e to %e (delta=%e)", i, vi.z, newz, abs(vi.z - newz))

                if abs(newz) < tau:
                    vi.selected = False
                    logger.debug("z_%d has been removed from selection [too low]", i)
                vi.z = newz

    @staticmethod
    def _check_nan(values: list[IndexedValue], kind: str) -> None:
        nan_count = sum(1 for v in values if math.isnan(v.value))
        if nan_count > 0:
            raise NumericalError(f"We had {nan_count} {kind} value(s) that is/are NaN", nan_count)

    @staticmethod
    def _apply_rotations(matrix: np.ndarray, rotations: list[Rotation], row_of) -> None:
        """Replay the rotations, last one first, on the rows of ``matrix``."""
        for rot in reversed(rotations):
            i = row_of(rot.vi)
            j = row_of(rot.vj)
            x = matrix[i].copy()
            y = matrix[j].copy()
            matrix[i] = x * rot.c - y * rot.s
            matrix[j] = x * rot.s + y * rot.c
