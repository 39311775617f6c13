"""Exceptions raised by the decomposition engines."""

from __future__ import annotations


class DecompositionError(Exception):
    """Base class for all errors raised by :mod:`incsvd`."""


class PreconditionError(DecompositionError, ValueError):
    """An input violates a documented precondition (shape, ordering...)."""


class DimensionMismatchError(PreconditionError):
    """Two operands have incompatible dimensions."""


class NumericalError(DecompositionError, ArithmeticError):
    """A decomposition produced invalid values.

    Parameters
    ----------
    message : str
        Human readable description.
    nan_count : int, optional
        Number of eigen/singular values that were NaN.
    """

    def __init__(self, message: str, nan_count: int = 0) -> None:
        super().__init__(message)
        self.nan_count = nan_count


class UnsupportedOperationError(DecompositionError, NotImplementedError):
    """The requested combination of options is not supported."""


class ConfigError(DecompositionError, ValueError):
    """Invalid configuration value."""
