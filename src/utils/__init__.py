"""Utility modules for I/O, command-line parsing and plotting."""

from .io import (
    ensure_output_dir,
    load_simulation_data,
    save_simulation_data,
    get_repo_root,
    get_data_dir,
    get_figures_dir,
)
from .cli import create_parser

__all__ = [
    # I/O
    "ensure_output_dir",
    "load_simulation_data",
    "save_simulation_data",
    "get_repo_root",
    "get_data_dir",
    "get_figures_dir",
    # CLI
    "create_parser",
]
