"""Incremental singular value and eigen decompositions.

This package maintains thin decompositions of matrices that are modified one
rank-one update (or one column) at a time.  The main components include:

* :mod:`secular` – deflation and bisection on the secular equation (Gu & Eisenstat);
* :mod:`rank_one_update` – eigen-decomposition of ``D + rho z z^T``;
* :mod:`broken_arrow` – SVD of broken arrow matrices;
* :mod:`baselines` – dense LAPACK versions of both solvers, for cross-checking;
* :mod:`incremental_ed` – incremental eigen-decomposition under symmetric rank-one updates;
* :mod:`incremental_svd` – incremental SVD under column appends, with optional row space;
* :mod:`selector` – eigenvalue selectors controlling the rank;
* :mod:`rows` – removal of the zero rows of a column space;
* :mod:`linalg` – the dense matrix operations used by the engines;
* :mod:`config`, :mod:`errors`, :mod:`metrics` and :mod:`utils` – configuration
  (YAML), exceptions, error metrics and miscellaneous helpers.

The top-level API exports the two incremental engines and the solvers for
convenience.

"""

import logging

from .broken_arrow import FastBrokenArrowSVD, SVDResult  # noqa: F401
from .config import DecompositionConfig, load_config  # noqa: F401
from .errors import (DecompositionError, DimensionMismatchError, NumericalError,  # noqa: F401
                     PreconditionError, UnsupportedOperationError)
from .incremental_ed import IncrementalSymmetricED  # noqa: F401
from .incremental_svd import IncrementalSVD  # noqa: F401
from .rank_one_update import EigenResult, FastRankOneUpdate  # noqa: F401
from .selector import ChainSelector, MaximumRankSelector, ThresholdSelector  # noqa: F401

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "IncrementalSymmetricED",
    "IncrementalSVD",
    "FastRankOneUpdate",
    "FastBrokenArrowSVD",
    "EigenResult",
    "SVDResult",
    "ThresholdSelector",
    "MaximumRankSelector",
    "ChainSelector",
    "DecompositionConfig",
    "load_config",
    "DecompositionError",
    "PreconditionError",
    "DimensionMismatchError",
    "NumericalError",
    "UnsupportedOperationError",
]
