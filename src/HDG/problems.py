"""Manufactured solutions for the mixed diffusion problem.

Each problem solves

    q + ∇u = 0,   ∇·q = f   in Ω = [0, 1]²
    u = g                    on ∂Ω

with g the trace of the exact solution u, so that the discrete error can be
measured against a known field.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

import numpy as np


Field = Callable[[np.ndarray, np.ndarray], np.ndarray]


@dataclass(frozen=True)
class ManufacturedProblem:
    """Exact solution, flux and source term of a test problem."""
    name: str
    u: Field
    qx: Field
    qy: Field
    f: Field

    def q(self, x: np.ndarray, y: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        return self.qx(x, y), self.qy(x, y)


def linear_problem() -> ManufacturedProblem:
    """u = x + y with f = 0.

    Lies in every discrete space with degree >= 1, so the HDG solution is
    exact up to the solver tolerance.

    Examples
    --------
    >>> problem = linear_problem()
    >>> float(problem.u(np.array(0.25), np.array(0.5)))
    0.75
    """
    return ManufacturedProblem(
        name="linear",
        u=lambda x, y: x + y,
        qx=lambda x, y: -np.ones_like(x),
        qy=lambda x, y: -np.ones_like(y),
        f=lambda x, y: np.zeros_like(x),
    )


def sinusoidal_problem() -> ManufacturedProblem:
    """u = sin(πx) sin(πy) with f = 2π² sin(πx) sin(πy) and zero boundary data."""
    pi = np.pi
    return ManufacturedProblem(
        name="sinusoidal",
        u=lambda x, y: np.sin(pi * x) * np.sin(pi * y),
        qx=lambda x, y: -pi * np.cos(pi * x) * np.sin(pi * y),
        qy=lambda x, y: -pi * np.sin(pi * x) * np.cos(pi * y),
        f=lambda x, y: 2 * pi**2 * np.sin(pi * x) * np.sin(pi * y),
    )


PROBLEMS: dict[str, Callable[[], ManufacturedProblem]] = {
    "linear": linear_problem,
    "sinusoidal": sinusoidal_problem,
}


def get_problem(name: str) -> ManufacturedProblem:
    """Look up a manufactured problem by name.

    Raises
    ------
    ValueError
        If name is not registered
    """
    if name not in PROBLEMS:
        raise ValueError(
            f"Unknown problem '{name}'. "
            f"Available problems: {list(PROBLEMS.keys())}"
        )
    return PROBLEMS[name]()
