"""Element-local HDG operators for the mixed diffusion problem.

On every element K the local unknowns (q, u) solve

    (q, r)_K - (u, ∇·r)_K + <λ, r·n>_∂K             = 0
    (∇·q, w)_K + <τ u, w>_∂K - <τ λ, w>_∂K           = (f, w)_K

for a given trace λ, and the trace is fixed by weak flux continuity

    Σ_K <q·n + τ (u - λ), μ>_∂K = 0.

Writing the local problem as A X = F - C λ and the flux functional as
D X - τ G λ, static condensation gives the element contribution to the
trace system

    K_e = D A⁻¹ C + τ G,    b_e = D A⁻¹ F

and the interior unknowns are recovered as X = A⁻¹ F - A⁻¹ C λ.

On the uniform mesh every element has the same geometry, so A, C, D and G
are computed once per level and only the load vectors depend on the element.
"""

from __future__ import annotations

import numpy as np

from .basis import cell_basis, face_basis, gauss_quadrature
from .mesh import BOTTOM, FACE_NORMALS, LEFT, RIGHT, TOP, StructuredQuadMesh
from .problems import ManufacturedProblem


def _face_points(local_face: int, s: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Reference (xi, eta) of the face parameter s on a local face."""
    one = np.ones_like(s)
    if local_face == LEFT:
        return -one, s
    if local_face == RIGHT:
        return one, s
    if local_face == BOTTOM:
        return s, -one
    if local_face == TOP:
        return s, one
    raise ValueError(f"Invalid local face {local_face}")


class HDGDiscretization:
    """Local HDG operators of degree p on a StructuredQuadMesh.

    Parameters
    ----------
    mesh : StructuredQuadMesh
        Mesh at the current refinement level
    degree : int
        Polynomial degree of cell and face spaces
    problem : ManufacturedProblem
        Source term, boundary data and exact solution
    face_basis_type : str, default "legendre"
        Face basis family, "legendre" or "lagrange"
    tau : float, default 1.0
        Stabilization parameter
    """

    def __init__(
        self,
        mesh: StructuredQuadMesh,
        degree: int,
        problem: ManufacturedProblem,
        face_basis_type: str = "legendre",
        tau: float = 1.0,
    ):
        if degree < 0:
            raise ValueError(f"Polynomial degree must be non-negative, got {degree}")
        self.mesh = mesh
        self.degree = degree
        self.problem = problem
        self.face_basis_type = face_basis_type
        self.tau = tau

        self.n_cell_dofs = (degree + 1) ** 2
        self.n_face_dofs = degree + 1
        self.n_element_unknowns = 3 * self.n_cell_dofs
        self.n_element_traces = 4 * self.n_face_dofs

        self._build_quadrature()
        self._build_reference_operators()

    def _build_quadrature(self):
        p, h = self.degree, self.mesh.h
        s, w = gauss_quadrature(p + 3)
        self.s_face, self.w_face = s, w
        self.face_jacobian = h / 2

        xi, eta = (a.ravel() for a in np.meshgrid(s, s, indexing="ij"))
        self.xi_cell, self.eta_cell = xi, eta
        self.w_cell = np.outer(w, w).ravel()
        self.cell_jacobian = (h / 2) ** 2

        self.phi, dphi_dxi, dphi_deta = cell_basis(p, xi, eta)
        self.dphi_dx = dphi_dxi * (2 / h)
        self.dphi_dy = dphi_deta * (2 / h)
        self.mu = face_basis(self.face_basis_type, p, s)

    def _build_reference_operators(self):
        nu, nf, tau = self.n_cell_dofs, self.n_face_dofs, self.tau
        wc = self.w_cell * self.cell_jacobian
        wf = self.w_face * self.face_jacobian

        M = self.phi.T @ (wc[:, None] * self.phi)
        Bx = -self.dphi_dx.T @ (wc[:, None] * self.phi)
        By = -self.dphi_dy.T @ (wc[:, None] * self.phi)

        T = np.zeros((nu, nu))
        C = np.zeros((3 * nu, 4 * nf))
        D = np.zeros((4 * nf, 3 * nu))
        G = np.zeros((4 * nf, 4 * nf))
        face_mass = self.mu.T @ (wf[:, None] * self.mu)

        for local_face in range(4):
            xi, eta = _face_points(local_face, self.s_face)
            phi_f = cell_basis(self.degree, xi, eta)[0]
            nx, ny = FACE_NORMALS[local_face]
            E = phi_f.T @ (wf[:, None] * self.mu)
            cols = slice(local_face * nf, (local_face + 1) * nf)

            T += tau * phi_f.T @ (wf[:, None] * phi_f)
            C[:nu, cols] = nx * E
            C[nu:2 * nu, cols] = ny * E
            C[2 * nu:, cols] = -tau * E
            D[cols, :nu] = nx * E.T
            D[cols, nu:2 * nu] = ny * E.T
            D[cols, 2 * nu:] = tau * E.T
            G[cols, cols] = face_mass

        zero = np.zeros((nu, nu))
        A = np.block([
            [M, zero, Bx],
            [zero, M, By],
            [-Bx.T, -By.T, T],
        ])
        A_inv = np.linalg.inv(A)

        self.face_mass = face_mass
        self.A_inv = A_inv
        self.D = D
        self.recovery_matrix = A_inv @ C
        K = D @ self.recovery_matrix + tau * G
        self.element_matrix = 0.5 * (K + K.T)

    # ------------------------------------------------------------------
    # Element data
    # ------------------------------------------------------------------

    def cell_points(self, elements: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Physical quadrature points of the given elements, shape (n, nq)."""
        origin = self.mesh.element_origin[elements]
        half = self.mesh.h / 2
        x = origin[:, :1] + (self.xi_cell[None, :] + 1) * half
        y = origin[:, 1:] + (self.eta_cell[None, :] + 1) * half
        return x, y

    def element_loads(self, elements: np.ndarray) -> np.ndarray:
        """Local right-hand sides A⁻¹ F of the given elements, shape (n, 3 nu)."""
        x, y = self.cell_points(elements)
        wc = self.w_cell * self.cell_jacobian
        load_u = (self.problem.f(x, y) * wc) @ self.phi
        return load_u @ self.A_inv[:, 2 * self.n_cell_dofs:].T

    def element_rhs(self, elements: np.ndarray, loads: np.ndarray | None = None) -> np.ndarray:
        """Condensed element right-hand sides D A⁻¹ F, shape (n, 4 nf)."""
        if loads is None:
            loads = self.element_loads(elements)
        return loads @ self.D.T

    def project_on_faces(self, func, faces: np.ndarray) -> np.ndarray:
        """L2 projection of func(x, y) onto the face space, shape (n, nf)."""
        origin = self.mesh.face_origin[faces]
        tangent = self.mesh.face_tangent[faces]
        t = (self.s_face[None, :] + 1) * (self.mesh.h / 2)
        x = origin[:, :1] + t * tangent[:, :1]
        y = origin[:, 1:] + t * tangent[:, 1:]
        wf = self.w_face * self.face_jacobian
        moments = (func(x, y) * wf) @ self.mu
        return np.linalg.solve(self.face_mass, moments.T).T

    def dirichlet_traces(self, elements: np.ndarray) -> np.ndarray:
        """Element trace vectors holding the boundary data on Dirichlet faces.

        Interior faces are left at zero. Shape (n, 4 nf).
        """
        nf = self.n_face_dofs
        faces = self.mesh.element_faces[elements]
        traces = np.zeros((len(elements), 4, nf))
        on_boundary = self.mesh.face_is_boundary[faces]
        if np.any(on_boundary):
            traces[on_boundary] = self.project_on_faces(self.problem.u, faces[on_boundary])
        return traces.reshape(len(elements), 4 * nf)

    # ------------------------------------------------------------------
    # Post-processing of recovered unknowns
    # ------------------------------------------------------------------

    def split_unknowns(self, X: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Split element unknowns into (qx, qy, u) coefficient blocks."""
        nu = self.n_cell_dofs
        return X[:, :nu], X[:, nu:2 * nu], X[:, 2 * nu:]

    def squared_l2_errors(self, elements: np.ndarray, X: np.ndarray) -> tuple[float, float]:
        """Sum over elements of ||u - u_h||² and ||q - q_h||²."""
        x, y = self.cell_points(elements)
        wc = self.w_cell * self.cell_jacobian
        qx, qy, u = self.split_unknowns(X)

        u_err = u @ self.phi.T - self.problem.u(x, y)
        qx_err = qx @ self.phi.T - self.problem.qx(x, y)
        qy_err = qy @ self.phi.T - self.problem.qy(x, y)

        u_sq = float(np.sum(u_err**2 * wc))
        q_sq = float(np.sum((qx_err**2 + qy_err**2) * wc))
        return u_sq, q_sq

    def element_means(self, X: np.ndarray) -> np.ndarray:
        """Cell average of the recovered u on each element."""
        u = self.split_unknowns(X)[2]
        wc = self.w_cell * self.cell_jacobian
        return (u @ self.phi.T) @ wc / self.mesh.h**2
