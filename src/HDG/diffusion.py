"""HDG solver for the mixed diffusion problem on a partitioned quad mesh."""

import socket
from pathlib import Path

import numpy as np
from mpi4py import MPI

from .assembly import GlobalAssembler
from .base import HDGSolver
from .datastructures import ConvergenceRecord, KrylovResult, PerRankResults, Phase
from .discretization import HDGDiscretization
from .dofs import DofCounter
from .events import EventLog
from .exceptions import PhaseError, SolverDivergedError
from .linear_solver import GlobalSystem, LinearSolveDriver
from .mesh import StructuredQuadMesh
from .postsolve import LocalPostSolver
from .problems import get_problem
from .scatter import Redistributor


class Diffusion(HDGSolver):
    """One polynomial degree of the convergence study.

    The instance keeps the mesh, communicator and thread settings across
    refinement levels. Each level runs setup_system(level), then
    solve_linear_system(), then visualize(). Every stage is collective and
    checks that the previous stage has completed.

    Parameters
    ----------
    degree : int
        Polynomial degree of the cell and face spaces
    config : RuntimeConfig, optional
        Runtime configuration
    comm : MPI.Comm, optional
        Communicator of the rank group
    event_log : EventLog, optional
        Sink for execution-time milestones
    convergence_log : EventLog, optional
        Sink for one results line per solve
    """

    def __init__(self, degree, config=None, comm=None, event_log=None,
                 convergence_log=None, **kwargs):
        super().__init__(config=config, comm=comm, **kwargs)
        self.degree = degree
        self.problem = get_problem(self.config.problem)
        self.event_log = event_log if event_log is not None else EventLog(comm=self.comm)
        self.convergence_log = convergence_log

        self.counter = DofCounter(self.comm)
        self.driver = LinearSolveDriver(self.config, self.comm)
        self.redistributor = Redistributor()

        self.mesh = None
        self.layout = None
        self.discretization = None
        self.post_solver = None
        self.refn_cycle = 0

        # Results of the latest solve
        self.krylov_result = None
        self.local_solution = None
        self.record = None

    # ============================================================================
    # Setup
    # ============================================================================

    def setup_system(self, refinement: int) -> None:
        """Refine the mesh to the given level and count the DOFs (collective).

        Any layout, scatter map or local data of an earlier setup becomes
        invalid.

        Raises
        ------
        PhaseError
            If refinement is below the current level
        """
        if self.mesh is not None and refinement < self.mesh.level:
            raise PhaseError(
                f"Refinement must not decrease: current level {self.mesh.level}, "
                f"requested {refinement}"
            )
        log = self.event_log
        log.milestone(f"Rank {self.rank:5d} is in cycle {self.refn_cycle:5d} and entering refinement")
        if self.mesh is None:
            self.mesh = StructuredQuadMesh(refinement)
        else:
            self.mesh.refine(refinement)
        log.milestone(f"Rank {self.rank:5d} is in cycle {self.refn_cycle:5d} and has exited  refinement")

        log.milestone(f"Rank {self.rank:5d} is in cycle {self.refn_cycle:5d} and is entering counter")
        self.layout = self.counter.count(self.mesh, self.degree)
        log.milestone(f"Rank {self.rank:5d} is in cycle {self.refn_cycle:5d} and has exited  counter")
        log.flush()

        self.discretization = HDGDiscretization(
            self.mesh, self.degree, self.problem,
            face_basis_type=self.config.face_basis, tau=self.config.tau,
        )
        self.post_solver = None
        self.local_solution = None
        self.refn_cycle += 1
        self._advance(Phase.COUNTED)

    # ============================================================================
    # Pipeline stages
    # ============================================================================

    def assemble_globals(self, system: GlobalSystem) -> None:
        self._require_phase(Phase.COUNTED)
        GlobalAssembler(self.discretization, self.layout).assemble(system)
        self._advance(Phase.ASSEMBLED)

    def solve(self, system: GlobalSystem) -> KrylovResult:
        """Finalize the assembled system and run the Krylov solver."""
        self._require_phase(Phase.ASSEMBLED)
        self.driver.finalize(system)
        result = self.driver.solve(system)
        self._advance(Phase.SOLVED)
        return result

    def scatter_solution(self, system: GlobalSystem) -> np.ndarray:
        self._require_phase(Phase.SOLVED)
        local = self.redistributor.scatter(system.solution_vec, self.layout.scatter_map, self.layout)
        self._advance(Phase.SCATTERED)
        return local

    def calculate_internal_unknowns(self, local_solution: np.ndarray) -> np.ndarray:
        self._require_phase(Phase.SCATTERED)
        self.post_solver = LocalPostSolver(
            self.discretization, self.layout, use_numba=self.config.use_numba, comm=self.comm
        )
        unknowns = self.post_solver.calculate_internal_unknowns(local_solution)
        self._advance(Phase.POST_SOLVED)
        return unknowns

    # ============================================================================
    # Solve
    # ============================================================================

    def solve_linear_system(self) -> ConvergenceRecord:
        """Assemble, solve, scatter and post-solve the current level (collective).

        The distributed matrix and vectors exist only inside this call.

        Returns
        -------
        ConvergenceRecord
            Metrics of this solve, identical on all ranks

        Raises
        ------
        SolverDivergedError
            If the solver did not converge and fail_on_non_convergence is set
        """
        self._require_phase(Phase.COUNTED)
        log = self.event_log
        system = self.driver.create_system(self.layout)
        try:
            log.milestone("Entering assembly")
            t11 = MPI.Wtime()
            self.assemble_globals(system)
            t21 = MPI.Wtime()
            log.milestone("Has finished assembly")

            log.milestone("Entering solver")
            t12 = MPI.Wtime()
            result = self.solve(system)
            log.write(f"Converged reason is: {result.converged_reason}")
            log.write(f"Number of iterations is: {result.iterations}")
            log.milestone("Finished solver")
            log.flush()
            self.krylov_result = result
            if not result.converged and self.config.fail_on_non_convergence:
                raise SolverDivergedError(result.converged_reason, result.iterations)

            self.local_solution = self.scatter_solution(system)
            t22 = MPI.Wtime()

            log.milestone("Entering local solver")
            t13 = MPI.Wtime()
            self.calculate_internal_unknowns(self.local_solution)
            t23 = MPI.Wtime()
            log.milestone("Finished local solver")
            log.flush()
        finally:
            system.destroy()

        u_error, q_error = self.post_solver.l2_errors()
        timings = np.array([t21 - t11, t22 - t12, t23 - t13])
        self.comm.Allreduce(MPI.IN_PLACE, timings, op=MPI.MAX)
        self.record = self._build_record(result, u_error, q_error, timings)
        self._gather_per_rank_results(t21 - t11, t22 - t12, t23 - t13)

        if self.rank == 0:
            self.global_timeseries.records.append(self.record)
        if self.convergence_log is not None:
            r = self.record
            self.convergence_log.write(
                f"{r.degree} {r.level} {r.n_elements} {r.n_dofs} {r.iterations} "
                f"{r.converged_reason} {r.error_norm:.6e} {r.u_l2_error:.6e} {r.q_l2_error:.6e}"
            )
            self.convergence_log.flush()
        self.print_summary(self.record)
        return self.record

    def _build_record(self, result, u_error, q_error, timings) -> ConvergenceRecord:
        return ConvergenceRecord(
            degree=self.degree,
            level=self.mesh.level,
            n_elements=self.mesh.n_elements,
            n_dofs=self.layout.num_global_DOFs_on_all_ranks,
            mpi_size=self.size,
            face_basis=self.config.face_basis,
            converged=result.converged,
            converged_reason=result.converged_reason,
            iterations=result.iterations,
            residual_norm=result.residual_norm,
            rhs_norm=result.rhs_norm,
            solution_norm=result.solution_norm,
            error_norm=result.error_norm,
            u_l2_error=u_error,
            q_l2_error=q_error,
            assembly_time=float(timings[0]),
            solve_time=float(timings[1]),
            local_solve_time=float(timings[2]),
        )

    def _gather_per_rank_results(self, assembly_time, solve_time, local_solve_time):
        per_rank = PerRankResults(
            mpi_rank=self.rank,
            hostname=socket.gethostname(),
            n_owned_elements=int(self.layout.owned_elements.size),
            n_owned_dofs=self.layout.num_global_DOFs_on_this_rank,
            n_local_dofs=self.layout.num_local_DOFs_on_this_rank,
            assembly_time=assembly_time,
            solve_time=solve_time,
            local_solve_time=local_solve_time,
        )
        all_per_rank = self.comm.gather(per_rank, root=0)
        if self.rank == 0:
            self.all_per_rank_results.extend(all_per_rank)

    # ============================================================================
    # Output
    # ============================================================================

    def gather_element_means(self):
        """Cell averages of u over the whole mesh on rank 0, None elsewhere."""
        self._require_phase(Phase.POST_SOLVED)
        means = self.discretization.element_means(self.post_solver.unknowns)
        all_means = self.comm.gather((self.layout.owned_elements, means), root=0)
        if self.rank != 0:
            return None
        field = np.zeros(self.mesh.n_elements)
        for elements, values in all_means:
            field[elements] = values
        return field.reshape(self.mesh.n, self.mesh.n)

    def visualize(self):
        """Write the cell averages of u for this (degree, level) to a PNG (collective).

        Returns the written path on rank 0, None elsewhere or when disabled.
        """
        self._require_phase(Phase.POST_SOLVED)
        if not self.config.visualize:
            return None
        field = self.gather_element_means()
        if self.rank != 0:
            return None

        from utils.plotting import plot_element_field

        output = Path(self.config.output_dir) / f"solution-p{self.degree}-h{self.mesh.level}.png"
        plot_element_field(
            field, output,
            title=f"{self.problem.name}: p = {self.degree}, level = {self.mesh.level}",
        )
        return output
