"""Base class for HDG solvers."""

from dataclasses import asdict

import numba
from mpi4py import MPI
import mlflow
import pandas as pd

from .datastructures import ConvergenceRecord, Phase, RuntimeConfig, TimeSeriesGlobal
from .exceptions import PhaseError


class HDGSolver:
    """Shared bookkeeping for HDG solvers.

    Holds the configuration, the communicator and the pipeline phase, pins
    the element-level thread pool, and takes care of reporting, experiment
    tracking and saving of results. Subclasses implement the pipeline stages.

    Parameters
    ----------
    config : RuntimeConfig, optional
        Runtime configuration. Built from the remaining keyword arguments
        when omitted
    comm : MPI.Comm, optional
        Communicator of the rank group, MPI.COMM_WORLD by default
    """

    def __init__(self, config=None, comm=None, **kwargs):
        # MPI setup
        self.comm = comm if comm is not None else MPI.COMM_WORLD
        self.rank = self.comm.Get_rank()
        self.size = self.comm.Get_size()

        # global Configuration
        self.config = config if config is not None else RuntimeConfig(**kwargs)
        self.config.mpi_size = self.size
        numba.set_num_threads(max(1, min(self.config.num_threads, numba.config.NUMBA_NUM_THREADS)))
        self.config.num_threads = numba.get_num_threads()

        self.phase = Phase.UNINITIALIZED
        self.all_per_rank_results = []
        if self.rank == 0:
            self.global_timeseries = TimeSeriesGlobal()

    @property
    def verbose(self) -> bool:
        return self.config.verbose and self.rank == 0

    # ============================================================================
    # Phase bookkeeping
    # ============================================================================

    def _require_phase(self, *allowed: Phase) -> None:
        if self.phase not in allowed:
            expected = " or ".join(p.name for p in allowed)
            raise PhaseError(
                f"Rank {self.rank}: stage requires phase {expected}, "
                f"solver is in phase {self.phase.name}"
            )

    def _advance(self, phase: Phase) -> None:
        self.phase = phase

    # ============================================================================
    # Reporting
    # ============================================================================

    def print_summary(self, record: ConvergenceRecord) -> None:
        """Print a summary of one solve (rank 0 only)."""
        if not self.verbose:
            return
        print(f"p = {record.degree}, level = {record.level}, "
              f"{record.n_elements} elements, {record.n_dofs} trace DOFs, {record.mpi_size} ranks")
        print(f"Assembly time = {record.assembly_time:.6f} s")
        print(f"Solve time = {record.solve_time:.6f} s")
        print(f"Local solve time = {record.local_solve_time:.6f} s")
        print(f"Converged reason = {record.converged_reason}, iterations = {record.iterations}")
        print(f"||RHS|| = {record.rhs_norm:.6e}, ||x|| = {record.solution_norm:.6e}, "
              f"||x_exact - x|| = {record.error_norm:.6e}")
        print(f"L2 error u = {record.u_l2_error:.6e}, L2 error q = {record.q_l2_error:.6e}")

    def mlflow_start_log(self, experiment_name, run_name=None):
        """Start an MLflow run for this solver instance and log its config."""
        if self.rank != 0:
            return
        mlflow.set_experiment(experiment_name)
        mlflow.start_run(run_name=run_name)
        mlflow.log_params(asdict(self.config))

    def mlflow_log_record(self, record: ConvergenceRecord):
        """Log the scalar metrics of one solve, stepped by refinement level."""
        if self.rank != 0:
            return
        metrics = {k: float(v) for k, v in asdict(record).items()
                   if isinstance(v, (int, float)) and not isinstance(v, bool)}
        mlflow.log_metrics(metrics, step=record.level)

    def mlflow_end_log(self):
        if self.rank != 0:
            return
        if self.all_per_rank_results:
            per_rank_dicts = [asdict(pr) for pr in self.all_per_rank_results]
            mlflow.log_table(pd.DataFrame(per_rank_dicts), "per_rank_results.json")
        if self.global_timeseries.records:
            mlflow.log_table(self.results_dataframe(), "convergence_records.json")
        mlflow.end_run()

    def results_dataframe(self) -> pd.DataFrame:
        """Convergence records gathered so far as a DataFrame (rank 0)."""
        return pd.DataFrame([asdict(r) for r in self.global_timeseries.records])

    def per_rank_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame([asdict(pr) for pr in self.all_per_rank_results])
