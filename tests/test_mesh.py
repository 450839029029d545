import numpy as np
import pytest

from HDG import StructuredQuadMesh
from HDG.mesh import BOTTOM, LEFT, RIGHT, TOP, decompose_range


@pytest.mark.parametrize("level", [0, 1, 2])
def test_mesh_sizes(level):
    mesh = StructuredQuadMesh(level)
    n = 2 ** (level + 1)
    assert mesh.n == n
    assert mesh.n_elements == n * n
    assert mesh.n_faces == 2 * n * (n + 1)
    assert mesh.element_faces.shape == (n * n, 4)
    assert np.count_nonzero(mesh.face_is_boundary) == 4 * n


def test_element_faces_level_zero():
    mesh = StructuredQuadMesh(0)
    # n = 2, six vertical faces come first
    np.testing.assert_array_equal(mesh.element_faces[0], [0, 1, 6, 8])
    np.testing.assert_array_equal(mesh.element_faces[3], [4, 5, 9, 11])
    np.testing.assert_array_equal(mesh.face_elements[1], [0, 1])
    np.testing.assert_array_equal(mesh.face_elements[0], [-1, 0])


def test_face_element_adjacency_is_consistent(mesh):
    for e, faces in enumerate(mesh.element_faces):
        for face in faces:
            assert e in mesh.face_elements[face]
    interior = ~mesh.face_is_boundary
    assert np.all(mesh.face_elements[interior] >= 0)


def test_shared_face_has_same_geometry_from_both_sides(mesh):
    e = 5
    right_neighbour = e + 1
    top_neighbour = e + mesh.n
    assert mesh.element_faces[e, RIGHT] == mesh.element_faces[right_neighbour, LEFT]
    assert mesh.element_faces[e, TOP] == mesh.element_faces[top_neighbour, BOTTOM]

    face = mesh.element_faces[e, RIGHT]
    np.testing.assert_allclose(
        mesh.face_origin[face], mesh.element_origin[e] + [mesh.h, 0.0]
    )
    np.testing.assert_allclose(mesh.face_tangent[face], [0.0, 1.0])


def test_refine_never_coarsens(mesh):
    mesh.refine(2)
    assert mesh.n == 8
    with pytest.raises(ValueError):
        mesh.refine(1)


@pytest.mark.parametrize("n_items,size", [(16, 1), (16, 3), (5, 4), (3, 4)])
def test_decompose_range_tiles_items(n_items, size):
    ranges = [decompose_range(n_items, size, r) for r in range(size)]
    assert ranges[0][0] == 0
    assert ranges[-1][1] == n_items
    for (_, end), (start, _) in zip(ranges, ranges[1:]):
        assert end == start
    lengths = [end - start for start, end in ranges]
    assert max(lengths) - min(lengths) <= 1


def test_face_owner_is_lowest_neighbour_rank():
    mesh = StructuredQuadMesh(0)
    owner = mesh.face_owner(2)
    element_owner = mesh.element_owner(2)
    np.testing.assert_array_equal(element_owner, [0, 0, 1, 1])
    # Horizontal face between element 0 (rank 0) and element 2 (rank 1)
    shared = mesh.element_faces[0, TOP]
    assert owner[shared] == 0
    # Top boundary of element 3 only touches rank 1
    assert owner[mesh.element_faces[3, TOP]] == 1
