import numpy as np
import pytest

from HDG import DofCounter, ScatterMap, ScatterMapError, StaleScatterError, StructuredQuadMesh
from HDG.dofs import check_partition, coupling_counts, partition_faces
from HDG.exceptions import DofCountError
from HDG.scatter import Redistributor


def n_interior_dofs(mesh, degree):
    return int(np.count_nonzero(~mesh.face_is_boundary)) * (degree + 1)


# ============================================================================
# Ownership partition
# ============================================================================


@pytest.mark.parametrize("size", [1, 2, 3, 4])
@pytest.mark.parametrize("degree", [0, 1, 2])
def test_partition_tiles_global_range(size, degree):
    mesh = StructuredQuadMesh(1)
    partition = partition_faces(mesh, degree, size)

    check_partition(partition, n_interior_dofs(mesh, degree))
    assert partition.dof_counts.sum() == partition.n_global_dofs
    np.testing.assert_array_equal(np.diff(partition.offsets), partition.dof_counts)

    # Every owned face lands in its owner's row range
    nf = degree + 1
    for face in np.flatnonzero(partition.face_first_dof >= 0):
        r = partition.face_owner[face]
        first = partition.face_first_dof[face]
        assert partition.offsets[r] <= first
        assert first + nf <= partition.offsets[r + 1]


def test_boundary_faces_are_eliminated(mesh):
    partition = partition_faces(mesh, 1, 2)
    np.testing.assert_array_equal(
        partition.face_first_dof[mesh.face_is_boundary], -1
    )


def test_check_partition_rejects_wrong_total(mesh):
    partition = partition_faces(mesh, 1, 2)
    with pytest.raises(DofCountError):
        check_partition(partition, partition.n_global_dofs + 2)


@pytest.mark.parametrize("size", [2, 3, 4])
def test_coupling_counts_independent_of_rank_count(mesh, size):
    degree = 1
    serial = partition_faces(mesh, degree, 1)
    faces = np.flatnonzero(serial.face_first_dof >= 0)
    d_serial, o_serial = coupling_counts(mesh, serial, 0, faces)
    assert not o_serial.any()

    partition = partition_faces(mesh, degree, size)
    total = 0
    for rank in range(size):
        owned = np.flatnonzero((partition.face_owner == rank) & (partition.face_first_dof >= 0))
        d_nnz, o_nnz = coupling_counts(mesh, partition, rank, owned)
        total += int((d_nnz + o_nnz).sum())
    assert total == int(d_serial.sum())


def test_coupling_counts_interior_face(mesh):
    # A face between two interior elements couples to 7 faces
    partition = partition_faces(mesh, 2, 1)
    e = 5
    face = mesh.element_faces[e, 1]
    d_nnz, o_nnz = coupling_counts(mesh, partition, 0, np.array([face]))
    assert d_nnz[0] == 7 * 3
    assert o_nnz[0] == 0


# ============================================================================
# DofCounter (single rank)
# ============================================================================


def test_counter_layout_single_rank(mesh, comm):
    if comm.Get_size() != 1:
        pytest.skip("single-rank layout")
    counter = DofCounter(comm)
    layout = counter.count(mesh, 1)

    n_dofs = n_interior_dofs(mesh, 1)
    assert layout.num_global_DOFs_on_all_ranks == n_dofs
    assert layout.num_global_DOFs_on_this_rank == n_dofs
    assert layout.num_local_DOFs_on_this_rank == n_dofs
    assert (layout.rows_owned_lo, layout.rows_owned_hi) == (0, n_dofs)
    assert layout.n_local_DOFs_connected_to_DOF.shape == (n_dofs,)
    assert not layout.n_nonlocal_DOFs_connected_to_DOF.any()
    assert layout.element_global_dofs.shape == (mesh.n_elements, 8)
    np.testing.assert_array_equal(layout.scatter_map.scatter_from, np.arange(n_dofs))


def test_counter_bumps_generation(mesh, comm):
    counter = DofCounter(comm)
    first = counter.count(mesh, 1)
    mesh.refine(2)
    second = counter.count(mesh, 1)
    assert second.generation == first.generation + 1
    assert second.scatter_map.generation == second.generation


def test_element_dofs_mark_dirichlet_faces(mesh, comm):
    layout = DofCounter(comm).count(mesh, 1)
    faces = mesh.element_faces[layout.owned_elements]
    on_boundary = np.repeat(mesh.face_is_boundary[faces], 2, axis=1)
    assert np.all(layout.element_global_dofs[on_boundary] == -1)
    assert np.all(layout.element_local_dofs[on_boundary] == -1)
    assert np.all(layout.element_global_dofs[~on_boundary] >= 0)


# ============================================================================
# ScatterMap
# ============================================================================


def test_scatter_map_accepts_permutation():
    smap = ScatterMap(np.array([7, 3, 5]), np.array([2, 0, 1]), generation=4)
    assert len(smap) == 3
    assert smap.generation == 4


@pytest.mark.parametrize(
    "scatter_from,scatter_to",
    [
        ([0, 1, 2], [0, 1]),        # lengths differ
        ([0, 1, 1], [0, 1, 2]),     # duplicate source
        ([0, -1, 2], [0, 1, 2]),    # negative source
        ([0, 1, 2], [0, 0, 2]),     # target not a permutation
        ([0, 1, 2], [1, 2, 3]),     # target out of range
    ],
)
def test_scatter_map_rejects_non_bijection(scatter_from, scatter_to):
    with pytest.raises(ScatterMapError):
        ScatterMap(np.array(scatter_from), np.array(scatter_to))


def test_scatter_map_is_read_only():
    smap = ScatterMap(np.arange(3), np.arange(3))
    with pytest.raises(ValueError):
        smap.scatter_from[0] = 5


def test_stale_scatter_map_is_rejected(mesh, comm):
    counter = DofCounter(comm)
    old = counter.count(mesh, 1)
    mesh.refine(2)
    new = counter.count(mesh, 1)
    with pytest.raises(StaleScatterError):
        Redistributor().scatter(None, old.scatter_map, new)
