"""
Plotting helpers for the robustness analysis.

These functions only read the written catalog table (results/analysis);
they never recompute fragility or robustness.
"""

import logging
from pathlib import Path

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import polars as pl

logger = logging.getLogger(__name__)


def _type_groups(frame: pl.DataFrame):
    types = frame["web_type"].fill_null("NA")
    for web_type in sorted(set(types.to_list())):
        yield web_type, frame.filter(types == web_type)


def plot_robustness_vs_fragility(
    catalog_df: pl.DataFrame,
    output_path: str | Path,
    c: float = 0.5,
    corrected: bool = False,
) -> None:
    """
    Scatter simulated robustness against the analytical prediction 1 - f.

    Parameters
    ----------
    catalog_df : pl.DataFrame
        Catalog table with f_<c>, fstar_<c>, robustness_<c>, web_type
    output_path : str or Path
        Path to save figure
    c : float
        Quantile to plot
    corrected : bool
        Use the dispersion-corrected fragility f* instead of f
    """
    f_col = f"fstar_{c:g}" if corrected else f"f_{c:g}"
    r_col = f"robustness_{c:g}"
    df = catalog_df.drop_nulls([f_col, r_col])

    fig, ax = plt.subplots(figsize=(7, 7))
    for web_type, group in _type_groups(df):
        ax.scatter(
            1.0 - group[f_col].to_numpy(),
            group[r_col].to_numpy(),
            label=web_type,
            alpha=0.7,
            edgecolors="k",
            linewidth=0.5,
        )
    ax.plot([0, 1], [0, 1], "k--", linewidth=1)

    label = "1 - f*" if corrected else "1 - f"
    ax.set_xlabel(f"{label} (c={c:g})", fontsize=12)
    ax.set_ylabel(f"Simulated robustness (quantile {c:g})", fontsize=12)
    ax.set_xlim(0, 1)
    ax.set_ylim(0, 1)
    ax.set_title(f"Robustness vs {label}", fontsize=14)
    ax.legend(title="Web type", fontsize=9)
    ax.grid(True, alpha=0.3)

    plt.tight_layout()
    plt.savefig(output_path, dpi=300)
    plt.close(fig)

    logger.info(f"Saved robustness scatter: {output_path}")


def plot_residuals_vs_dispersion(
    catalog_df: pl.DataFrame,
    output_path: str | Path,
    lam: float,
    c: float = 0.5,
) -> None:
    """
    Normalized residuals against log10 dispersion with the fitted line.

    Parameters
    ----------
    catalog_df : pl.DataFrame
        Catalog table with normalized_residual_<c> and log10_dispersion
    output_path : str or Path
        Path to save figure
    lam : float
        Fitted slope for quantile c
    c : float
        Quantile to plot
    """
    y_col = f"normalized_residual_{c:g}"
    df = catalog_df.drop_nulls([y_col, "log10_dispersion"])

    fig, ax = plt.subplots(figsize=(8, 6))
    for web_type, group in _type_groups(df):
        ax.scatter(
            group["log10_dispersion"].to_numpy(),
            group[y_col].to_numpy(),
            label=web_type,
            alpha=0.7,
            edgecolors="k",
            linewidth=0.5,
        )

    if df.height:
        x = df["log10_dispersion"].to_numpy()
        xs = np.linspace(min(x.min(), 0.0), max(x.max(), 0.0), 50)
        ax.plot(xs, lam * xs, "r-", label=f"lambda = {lam:.3g}")

    ax.axhline(0, color="k", linewidth=0.5)
    ax.axvline(0, color="k", linewidth=0.5)
    ax.set_xlabel("log10(dispersion)", fontsize=12)
    ax.set_ylabel("(R - (1 - f)) / (f (1 - f))", fontsize=12)
    ax.set_title(f"Normalized residuals (c={c:g})", fontsize=14)
    ax.legend(fontsize=9)
    ax.grid(True, alpha=0.3)

    plt.tight_layout()
    plt.savefig(output_path, dpi=300)
    plt.close(fig)

    logger.info(f"Saved residual plot: {output_path}")
