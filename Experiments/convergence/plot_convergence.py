#!/usr/bin/env python3
"""
Plot results from the HDG convergence study.

Reads the tables written by compute_convergence.py and plots the L2 errors of
u and q against the mesh size, with the observed orders in the legend.
"""

from pathlib import Path

import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns

from utils import get_data_dir, get_figures_dir, load_simulation_data
from utils.plotting import convergence_rates

# Set seaborn style
sns.set_theme(style="whitegrid")

data_dir = get_data_dir("convergence")
figures_dir = get_figures_dir("convergence")


def plot_errors(df: pd.DataFrame, output_dir: Path) -> None:
    """Log-log plot of the L2 errors per degree."""
    df = df.assign(h=1.0 / 2.0 ** (df["level"] + 1))

    fig, axes = plt.subplots(1, 2, figsize=(12, 5), sharex=True)
    for ax, column, label in ((axes[0], "u_l2_error", "u"), (axes[1], "q_l2_error", "q")):
        for degree, group in df.groupby("degree"):
            group = group.sort_values("h", ascending=False)
            rates = convergence_rates(group["h"].to_numpy(), group[column].to_numpy())
            rate = f", rate {rates[-1]:.2f}" if rates.size else ""
            ax.loglog(group["h"], group[column], "o-", label=f"p = {degree}{rate}")
        ax.set_title(f"L2 error of {label}")
        ax.set_xlabel("h")
        ax.set_ylabel("error")
        ax.legend()

    plt.tight_layout()
    output_file = output_dir / "convergence.pdf"
    plt.savefig(output_file)
    plt.close()
    print(f"Convergence plot saved to: {output_file}")


def plot_iterations(df: pd.DataFrame, output_dir: Path) -> None:
    """Krylov iterations against the number of trace DOFs."""
    fig, ax = plt.subplots(figsize=(7, 5))
    sns.lineplot(data=df, x="n_dofs", y="iterations", hue="degree", marker="o", ax=ax)
    ax.set_xscale("log")
    ax.set_title("Krylov iterations")
    ax.set_xlabel("Trace DOFs")
    plt.tight_layout()
    output_file = output_dir / "iterations.pdf"
    plt.savefig(output_file)
    plt.close()
    print(f"Iteration plot saved to: {output_file}")


if __name__ == "__main__":
    df = load_simulation_data(data_dir, "convergence")
    plot_errors(df, figures_dir)
    plot_iterations(df, figures_dir)
