"""Polynomial bases and quadrature on the reference interval [-1, 1].

Cell unknowns use a tensor-product Legendre basis. Face (trace) unknowns use
either a modal Legendre basis or a nodal Lagrange basis on Gauss-Lobatto
points, selected by name.
"""

from __future__ import annotations

import numpy as np
from numpy.polynomial import legendre

from .datastructures import FACE_BASIS_TYPES


def gauss_quadrature(n_points: int) -> tuple[np.ndarray, np.ndarray]:
    """Gauss-Legendre points and weights on [-1, 1]."""
    return legendre.leggauss(n_points)


def gauss_lobatto_points(p: int) -> np.ndarray:
    """The p + 1 Gauss-Lobatto points on [-1, 1] (midpoint for p = 0)."""
    if p == 0:
        return np.zeros(1)
    interior = legendre.Legendre.basis(p).deriv().roots()
    return np.concatenate([[-1.0], np.sort(interior.real), [1.0]])


def legendre_1d(p: int, x: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Legendre polynomials P_0..P_p and their derivatives at x.

    Returns
    -------
    values, derivatives : np.ndarray
        Arrays of shape (len(x), p + 1)
    """
    x = np.asarray(x, dtype=np.float64)
    values = legendre.legvander(x, p)
    derivatives = np.zeros_like(values)
    for k in range(1, p + 1):
        derivatives[:, k] = legendre.legval(x, legendre.legder(np.eye(p + 1)[k]))
    return values, derivatives


def lagrange_1d(p: int, x: np.ndarray) -> np.ndarray:
    """Nodal Lagrange basis on the Gauss-Lobatto points, shape (len(x), p + 1)."""
    x = np.asarray(x, dtype=np.float64)
    nodes = gauss_lobatto_points(p)
    values = np.ones((x.size, p + 1))
    for k in range(p + 1):
        for m in range(p + 1):
            if m != k:
                values[:, k] *= (x - nodes[m]) / (nodes[k] - nodes[m])
    return values


def face_basis(family: str, p: int, s: np.ndarray) -> np.ndarray:
    """Evaluate the degree-p face basis of the given family at points s.

    Raises
    ------
    ValueError
        If family is not one of FACE_BASIS_TYPES
    """
    if family == "legendre":
        return legendre_1d(p, s)[0]
    if family == "lagrange":
        return lagrange_1d(p, s)
    raise ValueError(
        f"Unknown face basis '{family}'. Available bases: {list(FACE_BASIS_TYPES)}"
    )


def cell_basis(p: int, xi: np.ndarray, eta: np.ndarray):
    """Tensor-product Legendre basis on the reference square.

    Basis function k = a * (p + 1) + b is P_a(xi) P_b(eta).

    Parameters
    ----------
    p : int
        Degree per direction
    xi, eta : np.ndarray
        Reference coordinates of the evaluation points, same length

    Returns
    -------
    phi, dphi_dxi, dphi_deta : np.ndarray
        Arrays of shape (len(xi), (p + 1)**2)
    """
    vx, dx = legendre_1d(p, xi)
    vy, dy = legendre_1d(p, eta)
    n_points = len(vx)
    phi = (vx[:, :, None] * vy[:, None, :]).reshape(n_points, -1)
    dphi_dxi = (dx[:, :, None] * vy[:, None, :]).reshape(n_points, -1)
    dphi_deta = (vx[:, :, None] * dy[:, None, :]).reshape(n_points, -1)
    return phi, dphi_dxi, dphi_deta
