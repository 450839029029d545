"""Outer convergence-study loop over polynomial degree and refinement level.

Run with e.g.

    mpiexec -n 4 hdg-diffusion -p_0 1 -p_n 3 -h_0 0 -h_n 5 -pc_type hypre

Options the parser does not know are handed to the PETSc options database.
"""

from __future__ import annotations

import sys
from dataclasses import asdict

import pandas as pd
from mpi4py import MPI

from utils.cli import create_parser
from utils.io import ensure_output_dir, save_simulation_data

from .datastructures import FACE_BASIS_TYPES, RuntimeConfig
from .diffusion import Diffusion
from .events import EventLog
from .linear_solver import apply_petsc_options

CONVERGENCE_HEADER = "# p level elements dofs iterations reason error_norm u_l2_error q_l2_error"


def resolve_face_basis(requested, current: str = "legendre", rank: int = 0) -> str:
    """Validate a requested face basis family.

    An unknown name is reported on rank 0 only and the current value is kept.
    """
    if requested is None:
        return current
    if requested in FACE_BASIS_TYPES:
        return requested
    if rank == 0:
        print(f"Unknown face basis type '{requested}': it should be either "
              f"<lagrange> (nodal) or <legendre> (modal). Keeping '{current}'.")
    return current


def config_from_options(options, rank: int = 0) -> RuntimeConfig:
    """Build the runtime configuration from parsed command-line options."""
    config = RuntimeConfig(
        p_start=options.p_0,
        p_end=options.p_n,
        h_start=options.h_0,
        h_end=options.h_n,
        adaptive=bool(options.amr),
        problem=options.problem,
        tau=options.tau,
        rtol=options.tolerance,
        fail_on_non_convergence=options.strict,
        num_threads=options.threads,
        use_numba=not options.no_numba,
        output_dir=options.output_dir,
        visualize=not options.no_vtk,
        mlflow_experiment=options.mlflow,
        verbose=not options.quiet,
    )
    config.face_basis = resolve_face_basis(options.face_basis, config.face_basis, rank)
    return config


def run_convergence_study(config: RuntimeConfig, comm=None):
    """Run setup -> solve -> visualize for every (degree, level) pair.

    One Diffusion instance per degree; levels increase monotonically within
    a degree. Both logs are truncated once here and appended to for the rest
    of the sweep. A failure at any (degree, level) ends the sweep.

    Returns
    -------
    list[ConvergenceRecord]
        One record per (degree, level), in sweep order, on every rank
    """
    comm = comm if comm is not None else MPI.COMM_WORLD
    rank = comm.Get_rank()

    output_dir = ensure_output_dir(config.output_dir)
    event_log = EventLog(output_dir / config.execution_log, comm)
    convergence_log = EventLog(output_dir / config.convergence_log, comm)
    convergence_log.write(CONVERGENCE_HEADER)

    records = []
    per_rank_tables = []
    with event_log, convergence_log:
        for degree in range(config.p_start, config.p_end):
            diff0 = Diffusion(degree, config, comm, event_log, convergence_log)
            if config.mlflow_experiment:
                diff0.mlflow_start_log(config.mlflow_experiment, run_name=f"p{degree}")

            for level in range(config.h_start, config.h_end):
                diff0.setup_system(level)
                record = diff0.solve_linear_system()
                diff0.visualize()
                if config.mlflow_experiment:
                    diff0.mlflow_log_record(record)
                records.append(record)

            if config.mlflow_experiment:
                diff0.mlflow_end_log()
            if rank == 0:
                per_rank_tables.append(diff0.per_rank_dataframe())

    if rank == 0 and records:
        save_simulation_data(
            pd.DataFrame([asdict(r) for r in records]), output_dir / "convergence.parquet"
        )
        save_simulation_data(
            pd.concat(per_rank_tables, ignore_index=True), output_dir / "per_rank.parquet"
        )
    return records


def main(argv=None) -> int:
    """CLI entry point. Aborts every rank if any rank fails."""
    comm = MPI.COMM_WORLD
    rank = comm.Get_rank()

    parser = create_parser()
    options, petsc_args = parser.parse_known_args(argv)
    apply_petsc_options(petsc_args)
    config = config_from_options(options, rank)

    try:
        run_convergence_study(config, comm)
    except Exception as exc:
        if comm.Get_size() > 1:
            # Peers would block forever in their next collective call
            print(f"Rank {rank}: fatal error: {exc!r}", file=sys.stderr, flush=True)
            comm.Abort(1)
        raise
    return 0


if __name__ == "__main__":
    sys.exit(main())
