#!/usr/bin/env python
"""
Script 02: Figures from the written catalog.

Reads results/analysis/web_catalog.parquet and correction_model.json and
writes scatter and residual plots under results/figures.

Usage:
    python scripts/02_make_figures.py
"""
import json
import sys
from pathlib import Path

import polars as pl
import yaml

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from src.utils.logging import get_script_logger
from src.utils.paths import RunPaths, config_file
from src.viz.plotting import plot_residuals_vs_dispersion, plot_robustness_vs_fragility

SCRIPT_NAME = "02_make_figures"


def main():
    """Make all figures."""
    with open(config_file()) as f:
        paths = RunPaths.from_config(yaml.safe_load(f))
    logger = get_script_logger(SCRIPT_NAME, paths.results_dir)

    catalog_path = paths.catalog_path
    model_path = paths.model_path
    if not catalog_path.exists() or not model_path.exists():
        logger.error(f"Catalog outputs not found under {paths.analysis_dir}")
        logger.error("Run scripts/01_run_robustness.py first")
        sys.exit(1)

    catalog_df = pl.read_parquet(catalog_path)
    with open(model_path) as f:
        model = json.load(f)

    figures_dir = paths.figures_dir
    figures_dir.mkdir(parents=True, exist_ok=True)

    for c in model["quantiles"]:
        tag = f"{c:g}"
        plot_robustness_vs_fragility(catalog_df, figures_dir / f"robustness_vs_f_{tag}.png", c=c)
        plot_robustness_vs_fragility(
            catalog_df, figures_dir / f"robustness_vs_fstar_{tag}.png", c=c, corrected=True
        )
        plot_residuals_vs_dispersion(
            catalog_df,
            figures_dir / f"residuals_vs_dispersion_{tag}.png",
            lam=model["correction"][tag]["lambda"],
            c=c,
        )

    logger.info(f"Figures written to {figures_dir}")


if __name__ == "__main__":
    main()
