"""Append-only event sinks written by rank 0.

An EventLog replaces a process-wide output stream: it is opened (and
truncated) once at the start of a run, handed explicitly to every stage, and
only ever appended to afterwards. Ranks other than 0 hold a silent sink, so
stages can record milestones unconditionally.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from mpi4py import MPI


TIMESTAMP_FORMAT = "%Y-%m-%d.%H:%M:%S"


def current_date_time() -> str:
    """Local wall-clock time in the log timestamp format."""
    return datetime.now().strftime(TIMESTAMP_FORMAT)


class EventLog:
    """Ordered, never-reset log owned by rank 0.

    Parameters
    ----------
    path : Path or str or None
        File to write. None keeps the lines in memory only
    comm : MPI.Comm, optional
        Communicator; only its rank 0 writes
    truncate : bool, default True
        Clear the file when the log is opened
    """

    def __init__(self, path=None, comm=None, truncate: bool = True):
        comm = comm if comm is not None else MPI.COMM_WORLD
        self.active = comm.Get_rank() == 0
        self.path = Path(path) if path is not None else None
        self.lines: list[str] = []
        self._handle = None

        if self.active and self.path is not None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._handle = open(self.path, "w" if truncate else "a")

    def write(self, line: str) -> None:
        """Append a raw line."""
        if not self.active:
            return
        self.lines.append(line)
        if self._handle is not None:
            self._handle.write(line + "\n")

    def milestone(self, message: str) -> None:
        """Append a timestamped milestone, e.g. 'Entering assembly : 2025-...'."""
        self.write(f"{message} : {current_date_time()}")

    def flush(self) -> None:
        if self._handle is not None:
            self._handle.flush()

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False
