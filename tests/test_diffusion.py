import numpy as np
import pandas as pd
import pytest

from HDG import Diffusion, Phase, PhaseError, RuntimeConfig, SolverDivergedError
from HDG.events import EventLog
from HDG.sweep import run_convergence_study


def make_solver(config, comm, degree=1):
    return Diffusion(degree, config, comm, event_log=EventLog(comm=comm))


# ============================================================================
# Single solves
# ============================================================================


def test_linear_problem_is_reproduced(config, comm):
    diff0 = make_solver(config, comm)
    diff0.setup_system(0)
    record = diff0.solve_linear_system()

    assert diff0.phase == Phase.POST_SOLVED
    assert record.converged
    assert record.converged_reason > 0
    assert record.iterations > 0
    assert record.error_norm < 1e-6
    assert record.u_l2_error < 1e-6
    assert record.q_l2_error < 1e-6
    assert record.n_elements == 4
    assert record.n_dofs == 8
    assert record.mpi_size == comm.Get_size()

    if comm.Get_rank() == 0:
        df = diff0.results_dataframe()
        assert df.loc[0, "n_dofs"] == 8
        assert len(diff0.per_rank_dataframe()) == comm.Get_size()


def test_milestones_are_logged(config, comm):
    diff0 = make_solver(config, comm)
    diff0.setup_system(0)
    diff0.solve_linear_system()
    if comm.Get_rank() != 0:
        return
    text = "\n".join(diff0.event_log.lines)
    for message in ("entering refinement", "is entering counter", "Entering assembly",
                    "Has finished assembly", "Entering solver", "Converged reason is:",
                    "Number of iterations is:", "Finished local solver"):
        assert message in text


@pytest.mark.parametrize("face_basis", ["legendre", "lagrange"])
def test_sinusoidal_error_decreases(config, comm, face_basis):
    config.problem = "sinusoidal"
    config.face_basis = face_basis
    diff0 = make_solver(config, comm)

    errors, trace_errors = [], []
    for level in range(3):
        diff0.setup_system(level)
        record = diff0.solve_linear_system()
        errors.append(record.u_l2_error)
        trace_errors.append(record.error_norm)
    assert errors[0] > errors[1] > errors[2]
    assert trace_errors[2] < trace_errors[0]
    # Second order for p = 1: halving h should cut the error well below half
    assert errors[2] < 0.4 * errors[1]


def test_numpy_and_numba_kernels_agree(config, comm):
    config.problem = "sinusoidal"
    results = []
    for use_numba in (True, False):
        config.use_numba = use_numba
        diff0 = make_solver(config, comm)
        diff0.setup_system(1)
        diff0.solve_linear_system()
        results.append(diff0.post_solver.unknowns)
    np.testing.assert_allclose(results[0], results[1], rtol=1e-10, atol=1e-12)


# ============================================================================
# Non-convergence policy
# ============================================================================


def starved_config(config):
    config.problem = "sinusoidal"
    config.pc_type = "none"
    config.max_iter = 1
    config.rtol = 1e-14
    return config


def test_non_convergence_is_reported(config, comm):
    diff0 = make_solver(starved_config(config), comm)
    diff0.setup_system(1)
    record = diff0.solve_linear_system()
    assert not record.converged
    assert record.converged_reason < 0
    assert diff0.phase == Phase.POST_SOLVED


def test_non_convergence_is_fatal_when_strict(config, comm):
    config = starved_config(config)
    config.fail_on_non_convergence = True
    diff0 = make_solver(config, comm)
    diff0.setup_system(1)
    with pytest.raises(SolverDivergedError) as excinfo:
        diff0.solve_linear_system()
    assert excinfo.value.reason < 0


# ============================================================================
# Phase ordering
# ============================================================================


def test_solve_before_setup(config, comm):
    diff0 = make_solver(config, comm)
    with pytest.raises(PhaseError):
        diff0.solve_linear_system()


def test_visualize_before_solve(config, comm):
    diff0 = make_solver(config, comm)
    diff0.setup_system(0)
    with pytest.raises(PhaseError):
        diff0.visualize()


def test_refinement_must_not_decrease(config, comm):
    diff0 = make_solver(config, comm)
    diff0.setup_system(1)
    with pytest.raises(PhaseError):
        diff0.setup_system(0)


def test_setup_after_solve_resets_phase(config, comm):
    diff0 = make_solver(config, comm)
    diff0.setup_system(0)
    diff0.solve_linear_system()
    diff0.setup_system(1)
    assert diff0.phase == Phase.COUNTED
    assert diff0.layout.generation == 2


def test_unknown_problem_rejected(comm):
    with pytest.raises(ValueError):
        Diffusion(1, RuntimeConfig(problem="nope", verbose=False), comm)


# ============================================================================
# Convergence study
# ============================================================================


def test_convergence_study_outputs(tmp_path, comm):
    config = RuntimeConfig(
        p_start=1, p_end=3, h_start=0, h_end=2,
        problem="sinusoidal", output_dir=str(tmp_path), verbose=False,
    )
    records = run_convergence_study(config, comm)

    assert [(r.degree, r.level) for r in records] == [(1, 0), (1, 1), (2, 0), (2, 1)]
    assert all(r.converged for r in records)
    if comm.Get_rank() != 0:
        return

    df = pd.read_parquet(tmp_path / "convergence.parquet")
    assert len(df) == 4
    assert {"degree", "level", "iterations", "u_l2_error", "solve_time"} <= set(df.columns)
    assert (tmp_path / "per_rank.parquet").exists()

    convergence_lines = (tmp_path / "Convergence_Result.txt").read_text().splitlines()
    assert convergence_lines[0].startswith("#")
    assert len(convergence_lines) == 5
    assert convergence_lines[1].split()[:2] == ["1", "0"]

    execution = (tmp_path / "Execution_Time.txt").read_text()
    assert execution.count("Entering assembly") == 4

    for degree in (1, 2):
        for level in (0, 1):
            assert (tmp_path / f"solution-p{degree}-h{level}.png").exists()


def test_higher_degree_converges_faster(tmp_path, comm):
    config = RuntimeConfig(
        p_start=1, p_end=3, h_start=1, h_end=2,
        problem="sinusoidal", output_dir=str(tmp_path), visualize=False, verbose=False,
    )
    p1, p2 = run_convergence_study(config, comm)
    assert p2.u_l2_error < p1.u_l2_error
