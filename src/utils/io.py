"""I/O utilities for loading and saving convergence results."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

import pandas as pd


def load_simulation_data(
    data_dir: Path | str,
    filename_base: str,
    prefer: Literal["parquet", "pickle"] = "parquet",
) -> pd.DataFrame:
    """Load a results table, falling back to the other format if needed.

    Parameters
    ----------
    data_dir : Path or str
        Directory containing the data files
    filename_base : str
        Base filename without extension (e.g., 'convergence')
    prefer : {'parquet', 'pickle'}
        Preferred format to try first

    Raises
    ------
    FileNotFoundError
        If neither parquet nor pickle file exists

    """
    data_dir = Path(data_dir)
    candidates = {
        "parquet": (data_dir / f"{filename_base}.parquet", pd.read_parquet),
        "pickle": (data_dir / f"{filename_base}.pkl", pd.read_pickle),
    }
    order = [prefer] + [fmt for fmt in candidates if fmt != prefer]

    for fmt in order:
        path, loader = candidates[fmt]
        if path.exists():
            print(f"Loading {fmt} data: {path}")
            return loader(path)

    raise FileNotFoundError(
        f"No dataset found at {data_dir / filename_base}.{{parquet,pkl}}. "
        f"Run the convergence study first."
    )


def save_simulation_data(
    df: pd.DataFrame,
    output_path: Path | str,
    format: Literal["parquet", "pickle"] = "parquet",
) -> None:
    """Save a results table to disk.

    Parameters
    ----------
    df : pd.DataFrame
        DataFrame to save
    output_path : Path or str
        Output file path (should include extension)
    format : {'parquet', 'pickle'}
        Output format

    """
    output_path = Path(output_path)

    if format == "parquet":
        df.to_parquet(output_path, index=False)
    elif format == "pickle":
        df.to_pickle(output_path)
    else:
        raise ValueError(f"Unsupported format: {format}")

    print(f"Saved {format} data → {output_path} ({df.shape})")


def ensure_output_dir(path: Path | str) -> Path:
    """Create the directory if needed and return it as a Path."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_repo_root() -> Path:
    """Repository root: the first parent holding a pyproject.toml."""
    current = Path(__file__).resolve().parent
    for parent in [current] + list(current.parents):
        if (parent / "pyproject.toml").exists():
            return parent

    # Fallback: src/utils -> repo root
    return current.parent.parent


def get_experiment_dir(kind: str, experiment: str, create: bool = True) -> Path:
    """Per-experiment output directory, e.g. repo_root/data/convergence/.

    Parameters
    ----------
    kind : str
        Top-level output kind, "data" or "figures"
    experiment : str
        Experiment name (subdirectory of Experiments/)
    create : bool, default True
        Whether to create the directory if it doesn't exist

    """
    path = get_repo_root() / kind / experiment
    if create:
        path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir(experiment: str, create: bool = True) -> Path:
    return get_experiment_dir("data", experiment, create)


def get_figures_dir(experiment: str, create: bool = True) -> Path:
    return get_experiment_dir("figures", experiment, create)
