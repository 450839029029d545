"""Shared fixtures for the HDG test suite.

Tests that need more than one rank are skipped unless the suite is launched
with mpiexec -n 2 python -m pytest.
"""

import pytest
from mpi4py import MPI

from HDG import RuntimeConfig, StructuredQuadMesh


class RankStub:
    """Communicator stand-in reporting a fixed rank; no collectives."""

    def __init__(self, rank=0, size=1):
        self._rank = rank
        self._size = size

    def Get_rank(self):
        return self._rank

    def Get_size(self):
        return self._size


@pytest.fixture
def comm():
    return MPI.COMM_WORLD


@pytest.fixture
def mesh():
    return StructuredQuadMesh(1)


@pytest.fixture
def config(tmp_path):
    """Quiet single-degree configuration writing into a temporary directory."""
    return RuntimeConfig(
        p_start=1,
        p_end=2,
        h_start=0,
        h_end=1,
        output_dir=str(tmp_path),
        visualize=False,
        verbose=False,
    )
