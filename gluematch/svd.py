"""Singular value decomposition and Moore-Penrose pseudo-inverse."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


class SvdConvergenceError(ArithmeticError):
    """Raised when the decomposition does not converge."""


@dataclass(frozen=True)
class SvdResult:
    """Decomposition ``matrix = u @ sigma @ vt`` with descending singular values."""

    u: np.ndarray
    singular_values: np.ndarray
    vt: np.ndarray

    @property
    def sigma(self) -> np.ndarray:
        """The m x n diagonal matrix of singular values."""
        m, n = self.u.shape[0], self.vt.shape[0]
        out = np.zeros((m, n))
        k = len(self.singular_values)
        out[np.arange(k), np.arange(k)] = self.singular_values
        return out

    @property
    def rank(self) -> int:
        """Number of leading non-zero singular values."""
        nonzero = self.singular_values != 0.0
        return len(nonzero) if nonzero.all() else int(np.argmin(nonzero))


def svd(matrix, eps: float = 1e-4) -> SvdResult:
    """Decompose ``matrix``; singular values below ``eps`` times the largest become zero."""
    a = np.array(matrix, dtype=np.float64)
    if a.ndim != 2 or a.size == 0:
        raise ValueError("Expected a non-empty two-dimensional matrix")
    try:
        u, s, vt = np.linalg.svd(a, full_matrices=True)
    except np.linalg.LinAlgError as exc:
        raise SvdConvergenceError(str(exc)) from exc
    if s.size and s[0] > 0.0:
        s = np.where(s <= eps * s[0], 0.0, s)
    return SvdResult(u=u, singular_values=s, vt=vt)


def pseudo_inverse(matrix, eps: float = 1e-4) -> np.ndarray:
    """Return the n x m generalised inverse of an m x n matrix."""
    result = svd(matrix, eps)
    k = result.rank
    right = result.vt[:k].T / result.singular_values[:k]
    return right @ result.u[:, :k].T