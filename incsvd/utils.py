"""Miscellaneous helpers."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager

import numpy as np

logger = logging.getLogger(__name__)


def set_seed(seed: int | None) -> np.random.Generator:
    """Return a NumPy random generator for ``seed``.

    Parameters
    ----------
    seed : int or None
        Seed for the random number generator.  If ``None``, a random seed is
        drawn from the operating system.

    Returns
    -------
    rng : numpy.random.Generator
        A NumPy random number generator initialised with the given seed.
    """
    if seed is None:
        seed = np.random.SeedSequence().entropy
    return np.random.default_rng(seed)


@contextmanager
def timer(message: str | None = None, log: logging.Logger | None = None):
    """A context manager timing a block of code.

    Parameters
    ----------
    message : str, optional
        If provided, this string is logged (DEBUG) together with the elapsed
        time upon exit.
    log : logging.Logger, optional
        Logger to use; defaults to this module's logger.
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        if message:
            (log or logger).debug("%s: %.3f s", message, elapsed)
