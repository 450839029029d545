"""Hybridizable discontinuous Galerkin solver for the mixed diffusion problem."""

from .base import HDGSolver
from .datastructures import RuntimeConfig, Phase, KrylovResult, ConvergenceRecord, PerRankResults, TimeSeriesGlobal
from .diffusion import Diffusion
from .dofs import DofCounter, DofLayout, ScatterMap, partition_faces
from .events import EventLog
from .exceptions import HDGError, DofCountError, PhaseError, StaleScatterError, SolverDivergedError, ScatterMapError
from .kernels import recover_interior_numpy, recover_interior_numba
from .mesh import StructuredQuadMesh
from .problems import linear_problem, sinusoidal_problem, get_problem
from .sweep import run_convergence_study, main

__all__ = [
    "HDGSolver",
    "RuntimeConfig",
    "Phase",
    "KrylovResult",
    "ConvergenceRecord",
    "PerRankResults",
    "TimeSeriesGlobal",
    "Diffusion",
    "DofCounter",
    "DofLayout",
    "ScatterMap",
    "partition_faces",
    "EventLog",
    "HDGError",
    "DofCountError",
    "PhaseError",
    "StaleScatterError",
    "SolverDivergedError",
    "ScatterMapError",
    "recover_interior_numpy",
    "recover_interior_numba",
    "StructuredQuadMesh",
    "linear_problem",
    "sinusoidal_problem",
    "get_problem",
    "run_convergence_study",
    "main",
]
