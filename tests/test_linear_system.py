import numpy as np
import pytest
from petsc4py import PETSc

from HDG import DofCounter, RuntimeConfig, StructuredQuadMesh, linear_problem
from HDG.assembly import GlobalAssembler
from HDG.discretization import HDGDiscretization
from HDG.linear_solver import LinearSolveDriver
from HDG.scatter import Redistributor


@pytest.fixture
def setup(comm):
    mesh = StructuredQuadMesh(1)
    layout = DofCounter(comm).count(mesh, 1)
    disc = HDGDiscretization(mesh, 1, linear_problem())
    driver = LinearSolveDriver(RuntimeConfig(verbose=False), comm)
    return mesh, layout, disc, driver


def assembled(driver, layout, disc):
    system = driver.create_system(layout)
    GlobalAssembler(disc, layout).assemble(system)
    driver.finalize(system)
    return system


def test_ownership_matches_layout(setup):
    _, layout, _, driver = setup
    system = driver.create_system(layout)
    try:
        assert system.global_mat.getOwnershipRange() == (layout.rows_owned_lo, layout.rows_owned_hi)
        assert system.RHS_vec.getSize() == layout.num_global_DOFs_on_all_ranks
        assert system.RHS_vec.getLocalSize() == layout.num_global_DOFs_on_this_rank
    finally:
        system.destroy()


def test_preallocation_covers_assembled_pattern(setup):
    _, layout, disc, driver = setup
    system = assembled(driver, layout, disc)
    try:
        ai, _, _ = system.global_mat.getValuesCSR()
        row_nnz = np.diff(ai)
        allowed = layout.n_local_DOFs_connected_to_DOF + layout.n_nonlocal_DOFs_connected_to_DOF
        assert np.all(row_nnz <= allowed)
        assert system.global_mat.getInfo()["mallocs"] == 0
    finally:
        system.destroy()


def test_assembled_matrix_is_symmetric(setup):
    _, layout, disc, driver = setup
    system = assembled(driver, layout, disc)
    try:
        assert system.global_mat.isSymmetric(tol=1e-10)
    finally:
        system.destroy()


def test_assembly_is_repeatable(setup):
    _, layout, disc, driver = setup
    first = assembled(driver, layout, disc)
    second = assembled(driver, layout, disc)
    try:
        for a, b in zip(first.global_mat.getValuesCSR(), second.global_mat.getValuesCSR()):
            np.testing.assert_array_equal(a, b)
        np.testing.assert_array_equal(first.RHS_vec.getArray(), second.RHS_vec.getArray())
    finally:
        first.destroy()
        second.destroy()


def test_insert_after_finalize_rejected(setup):
    _, layout, disc, driver = setup
    system = assembled(driver, layout, disc)
    try:
        with pytest.raises(RuntimeError):
            GlobalAssembler(disc, layout).assemble(system)
    finally:
        system.destroy()


def test_solve_requires_finalize(setup):
    _, layout, _, driver = setup
    system = driver.create_system(layout)
    try:
        with pytest.raises(RuntimeError):
            driver.solve(system)
    finally:
        system.destroy()


def test_degree_mismatch_rejected(setup):
    mesh, layout, _, _ = setup
    with pytest.raises(ValueError):
        GlobalAssembler(HDGDiscretization(mesh, 2, linear_problem()), layout)


def test_linear_solution_matches_face_projection(setup):
    _, layout, disc, driver = setup
    system = assembled(driver, layout, disc)
    try:
        result = driver.solve(system)
    finally:
        system.destroy()
    assert result.converged
    assert result.iterations > 0
    assert result.rhs_norm > 0
    assert result.error_norm < 1e-6


def test_scatter_round_trip(setup):
    _, layout, _, driver = setup
    system = driver.create_system(layout)
    try:
        vec = system.solution_vec
        rows = layout.owned_rows
        vec.setValues(rows.astype(PETSc.IntType), rows.astype(np.float64))
        vec.assemblyBegin()
        vec.assemblyEnd()

        local = Redistributor().scatter(vec, layout.scatter_map, layout)
        assert local.shape == (layout.num_local_DOFs_on_this_rank,)
        expected = np.empty_like(local)
        expected[layout.scatter_map.scatter_to] = layout.scatter_map.scatter_from
        np.testing.assert_array_equal(local, expected)
    finally:
        system.destroy()
