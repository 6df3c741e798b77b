"""
Plotting utilities for dolfinx-pans.

Convergence history and wall-normal closure profiles, read back from the
CSV files written by the driver. Rank 0 only.
"""

import csv
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
from mpi4py import MPI


def _read_csv_columns(path: Path) -> dict[str, np.ndarray]:
    with open(path) as f:
        rows = list(csv.DictReader(f))
    if not rows:
        return {}
    return {key: np.array([float(r[key]) for r in rows]) for key in rows[0]}


def plot_convergence(history_file: Path, save_path: Path | None = None):
    """Plot convergence history from CSV file.

    Residuals of k and omega on the left y-axis (log), fK range on the right.
    """
    if MPI.COMM_WORLD.rank != 0:
        return

    data = _read_csv_columns(history_file)
    if not data:
        return
    iters = data["iter"]

    fig, ax = plt.subplots(figsize=(10, 5))
    ax.semilogy(iters, data["res_k"], "r-", linewidth=1.2, label="TKE (k)")
    ax.semilogy(iters, data["res_w"], "g-", linewidth=1.2, label=r"Omega ($\omega$)")
    ax.set_xlabel("Iteration")
    ax.set_ylabel("Relative change (log)")
    ax.set_title("Closure Convergence")
    ax.grid(True, alpha=0.3, which="both")
    ax.set_ylim(bottom=1e-12)

    ax2 = ax.twinx()
    ax2.plot(iters, data["fK_min"], "k--", linewidth=0.8, alpha=0.6, label=r"$f_K$ min")
    ax2.plot(iters, data["fK_max"], "k:", linewidth=0.8, alpha=0.6, label=r"$f_K$ max")
    ax2.set_ylabel(r"$f_K$")
    ax2.set_ylim(0.0, 1.05)

    lines1, labels1 = ax.get_legend_handles_labels()
    lines2, labels2 = ax2.get_legend_handles_labels()
    ax.legend(lines1 + lines2, labels1 + labels2, loc="upper right", fontsize=9)

    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches="tight")
        print(f"  Saved convergence plot: {save_path}")
    plt.close(fig)


def plot_profiles(profiles_file: Path, save_path: Path | None = None):
    """Four panels versus y+: u+, k, nu_t/nu and the PANS ratios fK, fOmega."""
    if MPI.COMM_WORLD.rank != 0:
        return

    data = _read_csv_columns(profiles_file)
    if not data:
        return
    mask = data["y_plus"] > 0.0
    y_plus = data["y_plus"][mask]

    fig, axes = plt.subplots(2, 2, figsize=(11, 8), sharex=True)
    panels = [
        (axes[0, 0], "u_plus", r"$u^+$"),
        (axes[0, 1], "k", r"$k$"),
        (axes[1, 0], "nu_t_over_nu", r"$\nu_t/\nu$"),
    ]
    for ax, key, label in panels:
        ax.semilogx(y_plus, data[key][mask], "b-", linewidth=1.2)
        ax.set_ylabel(label)
        ax.grid(True, alpha=0.3, which="both")

    ax = axes[1, 1]
    ax.semilogx(y_plus, data["fK"][mask], "r-", linewidth=1.2, label=r"$f_K$")
    ax.semilogx(y_plus, data["fOmega"][mask], "g--", linewidth=1.2, label=r"$f_\omega$")
    ax.set_ylabel("PANS ratios")
    ax.legend(fontsize=9)
    ax.grid(True, alpha=0.3, which="both")

    for ax in axes[1]:
        ax.set_xlabel(r"$y^+$")
    fig.suptitle("Wall-normal closure profiles")
    fig.tight_layout()

    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches="tight")
        print(f"  Saved profile plot: {save_path}")
    plt.close(fig)
