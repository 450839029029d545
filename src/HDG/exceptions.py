"""Exceptions raised by the HDG pipeline."""


class HDGError(Exception):
    """Base class for all pipeline errors."""


class DofCountError(HDGError):
    """DOF ownership is inconsistent across ranks.

    Raised when the counted partition overlaps, leaves a gap, or disagrees
    with the ownership range of the distributed matrix. Fatal for the run.
    """


class PhaseError(HDGError):
    """A pipeline stage was invoked out of order."""


class StaleScatterError(HDGError):
    """A scatter map built for an older DOF layout was reused."""


class SolverDivergedError(HDGError):
    """The Krylov solver stopped with a negative converged reason."""

    def __init__(self, reason: int, iterations: int):
        super().__init__(
            f"Krylov solver did not converge (reason {reason}, {iterations} iterations)"
        )
        self.reason = reason
        self.iterations = iterations


class ScatterMapError(HDGError, ValueError):
    """The two index sequences of a scatter map do not form a bijection."""
