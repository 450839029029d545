"""Plotting utilities for solution fields and convergence curves.

Automatically applies seaborn style and custom utils.mplstyle on import.
"""

from __future__ import annotations

from pathlib import Path

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np


# Auto-apply plotting styles on import
def _apply_styles():
    """Apply seaborn style and custom utils.mplstyle."""
    plt.style.use("seaborn-v0_8")

    style_path = Path(__file__).parent / "utils.mplstyle"
    if style_path.exists():
        plt.style.use(str(style_path))


_apply_styles()


def plot_element_field(field: np.ndarray, filename: Path | str, title: str = "") -> None:
    """Plot a cell-wise field on the unit square and save it.

    Parameters
    ----------
    field : np.ndarray
        Cell values of shape (n, n), indexed [row (y), column (x)]
    filename : Path or str
        Output image path
    title : str, optional
        Figure title

    """
    filename = Path(filename)
    filename.parent.mkdir(parents=True, exist_ok=True)

    fig, ax = plt.subplots(figsize=(6, 5))
    im = ax.imshow(field, origin="lower", extent=(0, 1, 0, 1), cmap="RdBu_r")
    fig.colorbar(im, ax=ax)
    ax.set_xlabel("x")
    ax.set_ylabel("y")
    if title:
        ax.set_title(title)
    fig.tight_layout()
    fig.savefig(filename)
    plt.close(fig)


def convergence_rates(h: np.ndarray, errors: np.ndarray) -> np.ndarray:
    """Observed orders log(e_k / e_{k+1}) / log(h_k / h_{k+1}) between levels."""
    h = np.asarray(h, dtype=np.float64)
    errors = np.asarray(errors, dtype=np.float64)
    return np.log(errors[:-1] / errors[1:]) / np.log(h[:-1] / h[1:])
