"""Accuracy measures for the incremental decompositions."""

from __future__ import annotations

import numpy as np
from numpy.linalg import norm


def relative_error(A: np.ndarray,
                   U: np.ndarray,
                   s: np.ndarray,
                   Vt: np.ndarray) -> float:
    """Relative Frobenius error of ``A ≈ U diag(s) Vt``.

    Parameters
    ----------
    A : ndarray of shape (m, n)
        Matrix accumulated from the updates.
    U : ndarray of shape (m, r)
        Column space.
    s : ndarray of shape (r,)
        Singular values (or eigenvalues).
    Vt : ndarray of shape (r, n)
        Row space, transposed.

    Returns
    -------
    rel_err : float
        ``||A - U diag(s) Vt||_F / max(1, ||A||_F)``, so that nearly zero
        matrices are compared in absolute terms.
    """
    residual = A - (U * s) @ Vt
    return norm(residual, 'fro') / max(1.0, norm(A, 'fro'))


def symmetric_error(A: np.ndarray, U: np.ndarray, s: np.ndarray) -> float:
    """Relative Frobenius error of ``A ≈ U diag(s) U^T``."""
    return relative_error(A, U, s, U.T)


def orth_error(U: np.ndarray) -> float:
    """Loss of orthogonality ``||I - U^T U||_F`` of the columns of ``U``."""
    return norm(np.eye(U.shape[1]) - U.T @ U, 'fro')
