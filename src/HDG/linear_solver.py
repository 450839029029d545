"""Distributed trace system: allocation, finalization and Krylov solve.

All calls in this module are collective over the driver's communicator.
"""

from __future__ import annotations

from dataclasses import dataclass

from petsc4py import PETSc

from .datastructures import KrylovResult, RuntimeConfig
from .dofs import DofLayout
from .exceptions import DofCountError


def apply_petsc_options(args) -> None:
    """Insert command-line style PETSc options, e.g. ['-ksp_type', 'gmres']."""
    if args:
        PETSc.Options().insertString(" ".join(args))


@dataclass
class GlobalSystem:
    """Distributed matrix and vectors of one solve.

    All four objects share the row layout of the DOF ownership ranges and live
    only for the duration of a single solve_linear_system call.
    """
    global_mat: PETSc.Mat
    RHS_vec: PETSc.Vec
    solution_vec: PETSc.Vec
    exact_solution: PETSc.Vec
    finalized: bool = False

    def destroy(self) -> None:
        for obj in (self.global_mat, self.RHS_vec, self.solution_vec, self.exact_solution):
            obj.destroy()


class LinearSolveDriver:
    """Allocates, finalizes and solves the distributed trace system.

    Parameters
    ----------
    config : RuntimeConfig
        Solver type, preconditioner and tolerances. Anything set here can be
        overridden at run time through the PETSc options database.
    comm : MPI.Comm, optional
        Communicator of the rank group
    """

    def __init__(self, config: RuntimeConfig, comm=None):
        self.config = config
        self.comm = comm if comm is not None else PETSc.COMM_WORLD

    def create_system(self, layout: DofLayout) -> GlobalSystem:
        """Allocate the preallocated SPD matrix and the three vectors."""
        n_owned = layout.num_global_DOFs_on_this_rank
        n_total = layout.num_global_DOFs_on_all_ranks

        global_mat = PETSc.Mat().createAIJ(
            size=((n_owned, n_total), (n_owned, n_total)),
            nnz=(
                layout.n_local_DOFs_connected_to_DOF.astype(PETSc.IntType),
                layout.n_nonlocal_DOFs_connected_to_DOF.astype(PETSc.IntType),
            ),
            comm=self.comm,
        )
        rows_owned_lo, rows_owned_hi = global_mat.getOwnershipRange()
        if (rows_owned_lo, rows_owned_hi) != (layout.rows_owned_lo, layout.rows_owned_hi):
            global_mat.destroy()
            raise DofCountError(
                f"Matrix owns rows [{rows_owned_lo}, {rows_owned_hi}) but the DOF "
                f"count assigned [{layout.rows_owned_lo}, {layout.rows_owned_hi})"
            )
        global_mat.setOption(PETSc.Mat.Option.SPD, True)

        RHS_vec = PETSc.Vec().createMPI((n_owned, n_total), comm=self.comm)
        RHS_vec.setOption(PETSc.Vec.Option.IGNORE_NEGATIVE_INDICES, True)
        solution_vec = RHS_vec.duplicate()
        exact_solution = RHS_vec.duplicate()
        for vec in (RHS_vec, solution_vec, exact_solution):
            vec.zeroEntries()

        return GlobalSystem(global_mat, RHS_vec, solution_vec, exact_solution)

    def finalize(self, system: GlobalSystem) -> float:
        """Final assembly of matrix and vectors. Returns ||RHS||₂.

        No values may be inserted into the system afterwards.
        """
        system.global_mat.assemblyBegin(PETSc.Mat.AssemblyType.FINAL)
        system.global_mat.assemblyEnd(PETSc.Mat.AssemblyType.FINAL)
        for vec in (system.RHS_vec, system.exact_solution):
            vec.assemblyBegin()
            vec.assemblyEnd()
        system.finalized = True
        return system.RHS_vec.norm(PETSc.NormType.NORM_2)

    def create_ksp(self, system: GlobalSystem) -> PETSc.KSP:
        """Krylov solver with defaults from the config, then the options database."""
        cfg = self.config
        ksp = PETSc.KSP().create(comm=self.comm)
        ksp.setTolerances(rtol=cfg.rtol, max_it=cfg.max_iter)
        ksp.setOperators(system.global_mat, system.global_mat)
        ksp.setType(cfg.ksp_type)

        pc = ksp.getPC()
        pc.setType(cfg.pc_type)
        if pc.getType() == PETSc.PC.Type.GAMG:
            pc.setGAMGType(cfg.gamg_type)
            pc.setGAMGSmooths(cfg.gamg_smooths)

        ksp.setFromOptions()
        return ksp

    def solve(self, system: GlobalSystem) -> KrylovResult:
        """Solve the finalized system.

        A non-converged solve is reported through the result, never raised;
        the solution vector holds whatever the solver returned.
        """
        if not system.finalized:
            raise RuntimeError("System must be finalized before solving")

        ksp = self.create_ksp(system)
        try:
            ksp.solve(system.RHS_vec, system.solution_vec)
            result = KrylovResult(
                converged_reason=int(ksp.getConvergedReason()),
                iterations=int(ksp.getIterationNumber()),
                residual_norm=float(ksp.getResidualNorm()),
            )
        finally:
            ksp.destroy()

        result.rhs_norm = float(system.RHS_vec.norm(PETSc.NormType.NORM_2))
        result.solution_norm = float(system.solution_vec.norm(PETSc.NormType.NORM_2))

        difference = system.exact_solution.copy()
        difference.axpy(-1.0, system.solution_vec)
        result.error_norm = float(difference.norm(PETSc.NormType.NORM_2))
        difference.destroy()

        return result
