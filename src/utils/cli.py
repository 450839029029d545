"""Command-line interface for the HDG convergence study.

Single-dash long flags follow the PETSc convention (-p_0 1 -p_n 3 ...), so
the same command line can carry PETSc options: parse_known_args() leaves
them in the extras list, to be forwarded to the PETSc options database.
"""

from argparse import ArgumentParser


def create_parser(description: str = "HDG diffusion convergence study") -> ArgumentParser:
    """Create argument parser for the convergence study.

    Parameters
    ----------
    description : str
        Parser description

    Returns
    -------
    ArgumentParser
        Configured argument parser

    Examples
    --------
    >>> parser = create_parser()
    >>> options, petsc_args = parser.parse_known_args(
    ...     ["-p_0", "1", "-p_n", "3", "-ksp_type", "gmres"])
    >>> options.p_0, options.p_n, petsc_args
    (1, 3, ['-ksp_type', 'gmres'])
    """
    parser = ArgumentParser(description=description)

    # Polynomial degree range [p_0, p_n)
    parser.add_argument("-p_0", "--p_0", type=int, default=1, help="Starting polynomial degree.")
    parser.add_argument("-p_n", "--p_n", type=int, default=2, help="Final polynomial degree (exclusive).")

    # Refinement range [h_0, h_n)
    parser.add_argument("-h_0", "--h_0", type=int, default=0, help="Starting refinement level.")
    parser.add_argument("-h_n", "--h_n", type=int, default=1, help="Final refinement level (exclusive).")

    parser.add_argument(
        "-amr",
        "--amr",
        type=int,
        default=0,
        help="Adaptive mesh toggle (0 or 1).",
    )
    parser.add_argument(
        "-face_basis",
        "--face_basis",
        type=str,
        default=None,
        help="Face basis family: legendre (modal, default) or lagrange (nodal).",
    )
    parser.add_argument("--tau", type=float, default=1.0, help="HDG stabilization parameter.")
    parser.add_argument(
        "--problem",
        type=str,
        default="linear",
        help="Manufactured solution: linear (u = x + y) or sinusoidal.",
    )
    parser.add_argument(
        "--tolerance",
        type=float,
        default=1e-8,
        help="Relative residual tolerance of the Krylov solver.",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Abort when the Krylov solver does not converge.",
    )
    parser.add_argument("--threads", type=int, default=1, help="Threads for element-local kernels.")
    parser.add_argument("--no-numba", action="store_true", help="Use the numpy element kernel.")
    parser.add_argument("--no-vtk", action="store_true", help="Skip the per-level solution plots.")
    parser.add_argument(
        "--output-dir",
        type=str,
        default=".",
        help="Directory for logs, results table and plots.",
    )
    parser.add_argument(
        "--mlflow",
        type=str,
        default=None,
        metavar="EXPERIMENT",
        help="Log the sweep to this MLflow experiment.",
    )
    parser.add_argument("--quiet", action="store_true", help="No console summary.")

    return parser
