"""Accumulation of element contributions into the distributed trace system."""

from __future__ import annotations

import numpy as np
from petsc4py import PETSc

from .discretization import HDGDiscretization
from .dofs import DofLayout
from .linear_solver import GlobalSystem


class GlobalAssembler:
    """Adds the condensed element systems of the owned elements.

    Every owned element contributes exactly once with ADD_VALUES, so values
    at a shared trace DOF sum over its two elements whatever the order of
    insertion. Dirichlet DOFs carry index -1 and are dropped by PETSc; their
    known values move to the right-hand side beforehand.

    Parameters
    ----------
    discretization : HDGDiscretization
        Element-local operators at the current level and degree
    layout : DofLayout
        DOF numbering produced by the counter for the same mesh
    """

    def __init__(self, discretization: HDGDiscretization, layout: DofLayout):
        if discretization.degree != layout.degree:
            raise ValueError(
                f"Discretization degree {discretization.degree} does not match "
                f"layout degree {layout.degree}"
            )
        self.discretization = discretization
        self.layout = layout

    def element_systems(self) -> tuple[np.ndarray, np.ndarray]:
        """Element matrix (shared) and Dirichlet-corrected element right-hand sides."""
        disc, elements = self.discretization, self.layout.owned_elements
        K = disc.element_matrix
        rhs = disc.element_rhs(elements) - disc.dirichlet_traces(elements) @ K.T
        return K, rhs

    def assemble(self, system: GlobalSystem) -> None:
        """Accumulate all owned elements into global_mat and RHS_vec.

        Also fills the owned rows of exact_solution with the face projection
        of the exact solution.
        """
        if system.finalized:
            raise RuntimeError("Cannot insert into a finalized system")

        K, rhs = self.element_systems()
        mat, vec = system.global_mat, system.RHS_vec
        for dofs, b in zip(self.layout.element_global_dofs, rhs):
            idx = dofs.astype(PETSc.IntType)
            mat.setValues(idx, idx, K, addv=PETSc.InsertMode.ADD_VALUES)
            vec.setValues(idx, b, addv=PETSc.InsertMode.ADD_VALUES)

        self.fill_exact_solution(system.exact_solution)

    def fill_exact_solution(self, exact_solution: PETSc.Vec) -> None:
        disc = self.discretization
        if self.layout.owned_faces.size == 0:
            return
        values = disc.project_on_faces(disc.problem.u, self.layout.owned_faces)
        exact_solution.setValues(
            self.layout.owned_rows.astype(PETSc.IntType),
            values.ravel(),
            addv=PETSc.InsertMode.INSERT_VALUES,
        )
