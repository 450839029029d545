"""Computational kernels for the element-local post-solve.

Interior unknowns of every element are recovered from its trace values as

    X_e = S_e - R λ_e

with S_e = A⁻¹ F_e the element load response and R = A⁻¹ C the trace
response, shared by all elements of a uniform mesh. These are pure functions
with no class dependencies, so the loop version compiles with numba.
"""

from __future__ import annotations

import numpy as np
from numba import njit, prange


def recover_interior_numpy(
    loads: np.ndarray,
    recovery: np.ndarray,
    traces: np.ndarray,
) -> np.ndarray:
    """Recover interior unknowns of all elements with pure numpy.

    Parameters
    ----------
    loads : np.ndarray
        Element load responses S_e, shape (n_elements, n_unknowns)
    recovery : np.ndarray
        Trace response R, shape (n_unknowns, n_traces)
    traces : np.ndarray
        Element trace values λ_e, shape (n_elements, n_traces)

    Returns
    -------
    np.ndarray
        Element unknowns X_e, shape (n_elements, n_unknowns)

    """
    return loads - traces @ recovery.T


@njit(parallel=True, cache=True)
def recover_interior_numba(
    loads: np.ndarray,
    recovery: np.ndarray,
    traces: np.ndarray,
) -> np.ndarray:
    """Recover interior unknowns with an explicit element loop (prange).

    Same contract as recover_interior_numpy. Elements are independent, so the
    loop runs in parallel without synchronization.
    """
    n_elements, n_unknowns = loads.shape
    n_traces = traces.shape[1]
    out = np.empty_like(loads)

    for e in prange(n_elements):
        for i in range(n_unknowns):
            acc = loads[e, i]
            for k in range(n_traces):
                acc -= recovery[i, k] * traces[e, k]
            out[e, i] = acc

    return out
