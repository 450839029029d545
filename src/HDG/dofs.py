"""Trace DOF counting, ownership partition and scatter maps.

Only faces in the interior of the domain carry global unknowns; Dirichlet
faces are eliminated and get index -1, which the distributed matrix and
right-hand side ignore on insertion.

A face belongs to the lowest rank among its neighbouring elements. Each
rank numbers its owned faces in increasing face order, and rank r's block of
DOFs starts after the blocks of ranks 0..r-1, so ownership ranges are
contiguous and disjoint.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
from mpi4py import MPI

from .exceptions import DofCountError, ScatterMapError
from .mesh import StructuredQuadMesh


@dataclass(frozen=True)
class ScatterMap:
    """One-to-one map from distributed (global) to sequential (local) indices.

    After a scatter through this map, local[scatter_to[i]] holds
    solution[scatter_from[i]] for every i.

    Parameters
    ----------
    scatter_from : np.ndarray
        Indices into the distributed vector, global numbering
    scatter_to : np.ndarray
        Indices into the local sequential vector, a permutation of range(n)
    generation : int, default 0
        Generation of the DOF layout the map was built for
    """
    scatter_from: np.ndarray
    scatter_to: np.ndarray
    generation: int = 0

    def __post_init__(self):
        src = np.array(self.scatter_from, dtype=np.int64).ravel()
        dst = np.array(self.scatter_to, dtype=np.int64).ravel()
        if src.size != dst.size:
            raise ScatterMapError(
                f"scatter_from has {src.size} entries but scatter_to has {dst.size}"
            )
        if src.size and src.min() < 0:
            raise ScatterMapError("scatter_from contains negative indices")
        if np.unique(src).size != src.size:
            raise ScatterMapError("scatter_from contains duplicate indices")
        if not np.array_equal(np.sort(dst), np.arange(dst.size)):
            raise ScatterMapError(
                "scatter_to must be a permutation of range(len(scatter_from))"
            )
        src.setflags(write=False)
        dst.setflags(write=False)
        object.__setattr__(self, "scatter_from", src)
        object.__setattr__(self, "scatter_to", dst)

    def __len__(self) -> int:
        return self.scatter_from.size


@dataclass
class FacePartition:
    """Deterministic assignment of trace DOFs to ranks."""
    size: int
    n_face_dofs: int
    face_owner: np.ndarray
    face_first_dof: np.ndarray
    dof_counts: np.ndarray
    offsets: np.ndarray

    @property
    def n_global_dofs(self) -> int:
        return int(self.offsets[-1])


def partition_faces(mesh: StructuredQuadMesh, degree: int, size: int) -> FacePartition:
    """Number the trace DOFs of mesh for a group of size ranks.

    Pure function of its arguments: every rank computes the same partition,
    which lets the counter verify its collective result against it.
    """
    nf = degree + 1
    owner = mesh.face_owner(size)
    interior = ~mesh.face_is_boundary
    face_first_dof = np.full(mesh.n_faces, -1, dtype=np.int64)
    dof_counts = np.zeros(size, dtype=np.int64)

    owned_faces = [np.flatnonzero(interior & (owner == r)) for r in range(size)]
    for r, faces in enumerate(owned_faces):
        dof_counts[r] = faces.size * nf
    offsets = np.concatenate([[0], np.cumsum(dof_counts)])
    for r, faces in enumerate(owned_faces):
        face_first_dof[faces] = offsets[r] + np.arange(faces.size) * nf

    return FacePartition(
        size=size,
        n_face_dofs=nf,
        face_owner=owner,
        face_first_dof=face_first_dof,
        dof_counts=dof_counts,
        offsets=offsets,
    )


def check_partition(partition: FacePartition, n_global_dofs: int) -> None:
    """Raise DofCountError unless the ownership ranges tile [0, n_global_dofs)."""
    if np.any(partition.dof_counts < 0):
        raise DofCountError(f"Negative DOF counts: {partition.dof_counts.tolist()}")
    if partition.offsets[0] != 0 or partition.n_global_dofs != n_global_dofs:
        raise DofCountError(
            f"Ownership ranges cover [0, {partition.n_global_dofs}) "
            f"but the mesh has {n_global_dofs} trace DOFs"
        )
    numbered = np.sort(partition.face_first_dof[partition.face_first_dof >= 0])
    expected = np.arange(numbered.size) * partition.n_face_dofs
    if not np.array_equal(numbered, expected):
        raise DofCountError("Face DOF blocks overlap or leave gaps")


def coupling_counts(
    mesh: StructuredQuadMesh, partition: FacePartition, rank: int, faces: np.ndarray
) -> tuple[np.ndarray, np.ndarray]:
    """Per-face number of coupled DOFs owned by rank and by other ranks.

    A face couples to every non-Dirichlet face of its neighbouring elements,
    itself included.
    """
    nf = partition.n_face_dofs
    n_local = np.zeros(faces.size, dtype=np.int32)
    n_nonlocal = np.zeros(faces.size, dtype=np.int32)
    for k, face in enumerate(faces):
        elements = mesh.face_elements[face]
        coupled = np.unique(mesh.element_faces[elements[elements >= 0]])
        coupled = coupled[partition.face_first_dof[coupled] >= 0]
        mine = np.count_nonzero(partition.face_owner[coupled] == rank)
        n_local[k] = mine * nf
        n_nonlocal[k] = (coupled.size - mine) * nf
    return n_local, n_nonlocal


@dataclass
class DofLayout:
    """Result of a DOF count on one rank."""
    degree: int
    generation: int
    rank: int
    size: int
    num_local_DOFs_on_this_rank: int
    num_global_DOFs_on_this_rank: int
    num_global_DOFs_on_all_ranks: int
    rows_owned_lo: int
    rows_owned_hi: int
    n_local_DOFs_connected_to_DOF: np.ndarray
    n_nonlocal_DOFs_connected_to_DOF: np.ndarray
    owned_elements: np.ndarray
    owned_faces: np.ndarray
    element_global_dofs: np.ndarray
    element_local_dofs: np.ndarray
    scatter_map: ScatterMap = field(repr=False)

    @property
    def owned_rows(self) -> np.ndarray:
        return np.arange(self.rows_owned_lo, self.rows_owned_hi, dtype=np.int64)


class DofCounter:
    """Collective DOF counter. Every rank must call count() in the same order.

    Parameters
    ----------
    comm : MPI.Comm
        Communicator of the rank group
    """

    def __init__(self, comm=None):
        self.comm = comm if comm is not None else MPI.COMM_WORLD
        self.rank = self.comm.Get_rank()
        self.size = self.comm.Get_size()
        self.generation = 0

    def count(self, mesh: StructuredQuadMesh, degree: int) -> DofLayout:
        """Count owned/local DOFs and the preallocation pattern of this rank.

        Raises
        ------
        DofCountError
            If the counts gathered from all ranks do not form a partition
        """
        partition = partition_faces(mesh, degree, self.size)
        nf = partition.n_face_dofs
        n_expected = int(np.count_nonzero(~mesh.face_is_boundary)) * nf
        check_partition(partition, n_expected)

        n_owned = int(partition.dof_counts[self.rank])
        all_counts = self.comm.allgather(n_owned)
        if list(all_counts) != partition.dof_counts.tolist():
            raise DofCountError(
                f"Rank {self.rank}: gathered owned counts {all_counts} differ "
                f"from the partition {partition.dof_counts.tolist()}"
            )
        n_total = self.comm.allreduce(n_owned, op=MPI.SUM)
        if n_total != n_expected:
            raise DofCountError(
                f"Owned DOFs sum to {n_total} over ranks, expected {n_expected}"
            )

        self.generation += 1
        owned_elements = mesh.owned_elements(self.size, self.rank)
        owned_faces = np.flatnonzero(
            (partition.face_owner == self.rank) & (partition.face_first_dof >= 0)
        )

        n_local_faces, n_nonlocal_faces = coupling_counts(mesh, partition, self.rank, owned_faces)
        d_nnz = np.repeat(n_local_faces, nf)
        o_nnz = np.repeat(n_nonlocal_faces, nf)

        # Global indices of the element traces, -1 on Dirichlet faces
        element_faces = mesh.element_faces[owned_elements]
        first = partition.face_first_dof[element_faces]
        element_global = np.where(
            first[:, :, None] >= 0, first[:, :, None] + np.arange(nf), -1
        ).reshape(len(owned_elements), 4 * nf)

        # Local sequential numbering of every trace DOF touched by this rank
        local_faces = np.unique(element_faces[partition.face_first_dof[element_faces] >= 0])
        local_first = np.full(mesh.n_faces, -1, dtype=np.int64)
        local_first[local_faces] = np.arange(local_faces.size) * nf
        lf = local_first[element_faces]
        element_local = np.where(
            lf[:, :, None] >= 0, lf[:, :, None] + np.arange(nf), -1
        ).reshape(len(owned_elements), 4 * nf)

        scatter_from = (partition.face_first_dof[local_faces][:, None] + np.arange(nf)).ravel()
        scatter_map = ScatterMap(
            scatter_from=scatter_from,
            scatter_to=np.arange(scatter_from.size),
            generation=self.generation,
        )

        return DofLayout(
            degree=degree,
            generation=self.generation,
            rank=self.rank,
            size=self.size,
            num_local_DOFs_on_this_rank=int(scatter_from.size),
            num_global_DOFs_on_this_rank=n_owned,
            num_global_DOFs_on_all_ranks=n_total,
            rows_owned_lo=int(partition.offsets[self.rank]),
            rows_owned_hi=int(partition.offsets[self.rank + 1]),
            n_local_DOFs_connected_to_DOF=d_nnz.astype(np.int32),
            n_nonlocal_DOFs_connected_to_DOF=o_nnz.astype(np.int32),
            owned_elements=owned_elements,
            owned_faces=owned_faces,
            element_global_dofs=element_global,
            element_local_dofs=element_local,
            scatter_map=scatter_map,
        )
