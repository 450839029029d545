"""Data structures for solver configuration and results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum


FACE_BASIS_TYPES = ("legendre", "lagrange")


@dataclass
class RuntimeConfig:
    """Global runtime configuration (same for all ranks)."""
    # Convergence study ranges, half-open
    p_start: int = 1
    p_end: int = 2
    h_start: int = 0
    h_end: int = 1
    adaptive: bool = False

    # Discretization
    problem: str = "linear"
    face_basis: str = "legendre"
    tau: float = 1.0

    # Krylov solver (overridable through the PETSc options database)
    ksp_type: str = "cg"
    pc_type: str = "gamg"
    gamg_type: str = "agg"
    gamg_smooths: int = 1
    rtol: float = 1e-8
    max_iter: int | None = None
    fail_on_non_convergence: bool = False

    # Specs
    mpi_size: int = 1
    num_threads: int = 1
    use_numba: bool = True

    # Output
    output_dir: str = "."
    execution_log: str = "Execution_Time.txt"
    convergence_log: str = "Convergence_Result.txt"
    visualize: bool = True
    mlflow_experiment: str | None = None
    verbose: bool = True


class Phase(IntEnum):
    """Pipeline stage reached by a solver instance.

    Every rank walks through the same sequence, so checking the phase at each
    collective call turns an out-of-order call into an error instead of a hang.
    """
    UNINITIALIZED = 0
    COUNTED = 1
    ASSEMBLED = 2
    SOLVED = 3
    SCATTERED = 4
    POST_SOLVED = 5


@dataclass
class KrylovResult:
    """Outcome of one distributed solve."""
    converged_reason: int = 0
    iterations: int = 0
    residual_norm: float = 0.0
    rhs_norm: float = 0.0
    solution_norm: float = 0.0
    error_norm: float = 0.0

    @property
    def converged(self) -> bool:
        return self.converged_reason > 0


@dataclass
class ConvergenceRecord:
    """Metrics of a single (degree, level) solve (same for all ranks)."""
    degree: int = 0
    level: int = 0
    n_elements: int = 0
    n_dofs: int = 0
    mpi_size: int = 1
    face_basis: str = "legendre"

    # Krylov solve
    converged: bool = False
    converged_reason: int = 0
    iterations: int = 0
    residual_norm: float = 0.0
    rhs_norm: float = 0.0
    solution_norm: float = 0.0
    error_norm: float = 0.0

    # Recovered interior unknowns
    u_l2_error: float = 0.0
    q_l2_error: float = 0.0

    # Timings (max over ranks)
    assembly_time: float = 0.0
    solve_time: float = 0.0
    local_solve_time: float = 0.0


@dataclass
class PerRankResults:
    """Per-rank performance results."""
    mpi_rank: int = 0
    hostname: str = ""
    n_owned_elements: int = 0
    n_owned_dofs: int = 0
    n_local_dofs: int = 0
    assembly_time: float = 0.0
    solve_time: float = 0.0
    local_solve_time: float = 0.0


@dataclass
class TimeSeriesGlobal:
    """Records accumulated on rank 0 across the whole sweep."""
    records: list[ConvergenceRecord] = field(default_factory=list)
