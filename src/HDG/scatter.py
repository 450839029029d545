"""Redistribution of the distributed solution into rank-local arrays."""

from __future__ import annotations

import numpy as np
from petsc4py import PETSc

from .dofs import DofLayout, ScatterMap
from .exceptions import StaleScatterError


class Redistributor:
    """Collective scatter of a distributed vector through a ScatterMap.

    Values may come from any rank; the call returns only after both the send
    and the receive phase of the scatter are complete.
    """

    def scatter(self, solution_vec: PETSc.Vec, scatter_map: ScatterMap,
                layout: DofLayout) -> np.ndarray:
        """Copy solution_vec[scatter_from[i]] into local[scatter_to[i]].

        Parameters
        ----------
        solution_vec : PETSc.Vec
            Assembled distributed vector
        scatter_map : ScatterMap
            Index pair built for the current DOF layout
        layout : DofLayout
            Current DOF layout

        Returns
        -------
        np.ndarray
            Local dense array of length num_local_DOFs_on_this_rank

        Raises
        ------
        StaleScatterError
            If scatter_map was built for a different layout generation
        """
        if scatter_map.generation != layout.generation:
            raise StaleScatterError(
                f"Scatter map of generation {scatter_map.generation} used with "
                f"DOF layout of generation {layout.generation}"
            )
        n_local = layout.num_local_DOFs_on_this_rank
        if len(scatter_map) != n_local:
            raise StaleScatterError(
                f"Scatter map has {len(scatter_map)} entries, layout has {n_local} local DOFs"
            )

        x = PETSc.Vec().createSeq(n_local, comm=PETSc.COMM_SELF)
        is_from = PETSc.IS().createGeneral(
            scatter_map.scatter_from.astype(PETSc.IntType), comm=PETSc.COMM_SELF
        )
        is_to = PETSc.IS().createGeneral(
            scatter_map.scatter_to.astype(PETSc.IntType), comm=PETSc.COMM_SELF
        )
        scatter = PETSc.Scatter().create(solution_vec, is_from, x, is_to)
        try:
            scatter.begin(solution_vec, x, addv=PETSc.InsertMode.INSERT_VALUES,
                          mode=PETSc.ScatterMode.FORWARD)
            scatter.end(solution_vec, x, addv=PETSc.InsertMode.INSERT_VALUES,
                        mode=PETSc.ScatterMode.FORWARD)
            local = x.getArray(readonly=True).copy()
        finally:
            for obj in (scatter, is_from, is_to, x):
                obj.destroy()
        return local
