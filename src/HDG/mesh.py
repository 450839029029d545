"""Structured quadrilateral mesh of the unit square with a block partition.

Elements are numbered row-major, e = j * n + i with i along x. Faces are the
vertical faces (normal along x) followed by the horizontal ones (normal
along y); both neighbours of a face see it with the same orientation, along
increasing x or y.

Local face order of an element is left, right, bottom, top.
"""

from __future__ import annotations

import numpy as np


LEFT, RIGHT, BOTTOM, TOP = 0, 1, 2, 3

# Outward unit normal of each local face
FACE_NORMALS = np.array([[-1.0, 0.0], [1.0, 0.0], [0.0, -1.0], [0.0, 1.0]])


def decompose_range(n_items: int, size: int, rank: int) -> tuple[int, int]:
    """Contiguous block of n_items owned by rank, remainder to the lowest ranks.

    Returns
    -------
    tuple[int, int]
        Half-open range [start, end)
    """
    base_size, remainder = divmod(n_items, size)
    local_n = base_size + (1 if rank < remainder else 0)
    start = rank * local_n if rank < remainder else \
        remainder * (base_size + 1) + (rank - remainder) * base_size
    return start, start + local_n


class StructuredQuadMesh:
    """Uniform n x n quadrilateral mesh on [0, 1]² with n = 2**(level + 1).

    Parameters
    ----------
    level : int, default 0
        Refinement level
    """

    def __init__(self, level: int = 0):
        self.level = -1
        self.refine(level)

    def refine(self, level: int) -> StructuredQuadMesh:
        """Rebuild the mesh at a finer (or equal) level. Never coarsens."""
        if level < self.level:
            raise ValueError(
                f"Cannot coarsen mesh from level {self.level} to level {level}"
            )
        self.level = level
        self.n = 2 ** (level + 1)
        self.h = 1.0 / self.n
        self._build_topology()
        return self

    @property
    def n_elements(self) -> int:
        return self.n * self.n

    @property
    def n_faces(self) -> int:
        return 2 * self.n * (self.n + 1)

    def _build_topology(self):
        n = self.n
        n_vertical = n * (n + 1)
        j, i = np.divmod(np.arange(n * n), n)

        # Element -> faces (left, right, bottom, top)
        self.element_faces = np.stack(
            [
                j * (n + 1) + i,
                j * (n + 1) + i + 1,
                n_vertical + j * n + i,
                n_vertical + (j + 1) * n + i,
            ],
            axis=1,
        )

        # Face -> adjacent elements, -1 where the face lies on the boundary
        self.face_elements = np.full((self.n_faces, 2), -1, dtype=np.int64)
        for local_face, side in ((RIGHT, 0), (LEFT, 1), (TOP, 0), (BOTTOM, 1)):
            self.face_elements[self.element_faces[:, local_face], side] = np.arange(n * n)

        self.face_is_boundary = np.any(self.face_elements < 0, axis=1)

        # Face geometry: start point and unit tangent
        fv = np.arange(n_vertical)
        fj, fi = np.divmod(fv, n + 1)
        fh = np.arange(n * (n + 1))
        hj, hi = np.divmod(fh, n)
        self.face_origin = np.concatenate(
            [np.stack([fi * self.h, fj * self.h], axis=1),
             np.stack([hi * self.h, hj * self.h], axis=1)]
        )
        self.face_tangent = np.concatenate(
            [np.tile([0.0, 1.0], (n_vertical, 1)), np.tile([1.0, 0.0], (n * (n + 1), 1))]
        )
        self.element_origin = np.stack([i * self.h, j * self.h], axis=1)

    # ------------------------------------------------------------------
    # Partition
    # ------------------------------------------------------------------

    def element_owner(self, size: int) -> np.ndarray:
        """Owning rank of every element for a group of size ranks."""
        ranges = [decompose_range(self.n_elements, size, r) for r in range(size)]
        return np.repeat(np.arange(size), [end - start for start, end in ranges])

    def owned_elements(self, size: int, rank: int) -> np.ndarray:
        start, end = decompose_range(self.n_elements, size, rank)
        return np.arange(start, end)

    def face_owner(self, size: int) -> np.ndarray:
        """Owning rank of every face: the lowest rank among its neighbours."""
        owner = self.element_owner(size)
        neighbours = np.where(self.face_elements >= 0, owner[self.face_elements], size)
        return neighbours.min(axis=1)

    def __repr__(self) -> str:
        return f"StructuredQuadMesh(level={self.level}, n={self.n})"
