"""Element-local recovery of the interior unknowns from the trace solution."""

from __future__ import annotations

import numpy as np
from mpi4py import MPI

from .discretization import HDGDiscretization
from .dofs import DofLayout
from .kernels import recover_interior_numba, recover_interior_numpy


class LocalPostSolver:
    """Recovers (q, u) on every owned element from the scattered traces.

    Needs no communication: each element only reads its own traces. The
    single reduction in l2_errors is the only collective.

    Parameters
    ----------
    discretization : HDGDiscretization
        Element-local operators
    layout : DofLayout
        DOF layout the local trace array was scattered with
    use_numba : bool, default True
        Use the numba element loop instead of the numpy kernel
    comm : MPI.Comm, optional
        Communicator for the error reduction
    """

    def __init__(self, discretization: HDGDiscretization, layout: DofLayout,
                 use_numba: bool = True, comm=None):
        self.discretization = discretization
        self.layout = layout
        self.comm = comm if comm is not None else MPI.COMM_WORLD
        self._recover = recover_interior_numba if use_numba else recover_interior_numpy
        self.unknowns: np.ndarray | None = None

    def element_traces(self, local_solution: np.ndarray) -> np.ndarray:
        """Trace values of every owned element, boundary data on Dirichlet faces."""
        local_solution = np.asarray(local_solution)
        if local_solution.size != self.layout.num_local_DOFs_on_this_rank:
            raise ValueError(
                f"Local solution has {local_solution.size} entries, expected "
                f"{self.layout.num_local_DOFs_on_this_rank}"
            )
        traces = self.discretization.dirichlet_traces(self.layout.owned_elements)
        local_dofs = self.layout.element_local_dofs
        interior = local_dofs >= 0
        traces[interior] = local_solution[local_dofs[interior]]
        return traces

    def calculate_internal_unknowns(self, local_solution: np.ndarray) -> np.ndarray:
        """Recover element unknowns, shape (n_owned_elements, 3 (p + 1)²)."""
        traces = self.element_traces(local_solution)
        loads = self.discretization.element_loads(self.layout.owned_elements)
        self.unknowns = self._recover(
            np.ascontiguousarray(loads),
            np.ascontiguousarray(self.discretization.recovery_matrix),
            np.ascontiguousarray(traces),
        )
        return self.unknowns

    def l2_errors(self) -> tuple[float, float]:
        """Global L2 errors of u and q against the exact solution (collective)."""
        if self.unknowns is None:
            raise RuntimeError("calculate_internal_unknowns() must run first")
        u_sq, q_sq = self.discretization.squared_l2_errors(
            self.layout.owned_elements, self.unknowns
        )
        totals = np.array([u_sq, q_sq])
        self.comm.Allreduce(MPI.IN_PLACE, totals, op=MPI.SUM)
        return float(np.sqrt(totals[0])), float(np.sqrt(totals[1]))
