#!/usr/bin/env python
"""
Script 01: Robustness, fragility and dispersion correction for all webs.

Loads every matrix under data.webs_dir, filters degenerate webs, computes
fragility and dispersion, simulates random-extinction robustness (or reads
the cached samples), fits the dispersion correction and writes:
- results/analysis/web_catalog.parquet, results/tables/web_catalog.csv
- results/analysis/correction_model.json
- results/tables/filtered_webs.csv
- results/logs/01_run_robustness_manifest.json

Usage:
    python scripts/01_run_robustness.py [--reuse-cache] [--trials N] [--workers N]
"""
import argparse
import sys
from pathlib import Path

import yaml

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from src.analysis.catalog import CatalogConfig, WebCatalog, write_catalog_outputs
from src.utils.errors import CacheMismatchError, InsufficientDataError
from src.utils.logging import get_script_logger
from src.utils.manifests import create_run_manifest
from src.utils.paths import RunPaths, config_file, find_project_root
from src.webs.loader import DEFAULT_TYPE_SLICE, WEB_TYPES, load_webs_from_dir

SCRIPT_NAME = "01_run_robustness"


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--reuse-cache", action="store_true", help="Read cached samples instead of simulating")
    parser.add_argument("--trials", type=int, default=None, help="Override simulation.n_trials")
    parser.add_argument("--workers", type=int, default=None, help="Override simulation.n_workers")
    return parser.parse_args()


def main():
    """Run the robustness analysis."""
    args = parse_args()
    root = find_project_root()
    config_path = config_file(root)
    with open(config_path) as f:
        config = yaml.safe_load(f)
    paths = RunPaths.from_config(config, root)
    logger = get_script_logger(SCRIPT_NAME, paths.results_dir)

    logger.info("=" * 80)
    logger.info("SCRIPT 01: WEB ROBUSTNESS ANALYSIS")
    logger.info("=" * 80)
    logger.info(f"Loaded config from {config_path}")

    sim = config.setdefault("simulation", {})
    if args.reuse_cache:
        sim["run_simulation"] = False
    if args.trials is not None:
        sim["n_trials"] = args.trials
    if args.workers is not None:
        sim["n_workers"] = args.workers

    # Load webs
    data_cfg = config.get("data", {})
    webs, load_failures = load_webs_from_dir(
        paths.webs_dir,
        pattern=data_cfg.get("pattern", "*.csv"),
        has_header=data_cfg.get("has_header", True),
        row_labels=data_cfg.get("row_labels", True),
        type_slice=data_cfg.get("web_type_slice", DEFAULT_TYPE_SLICE),
        known_types=data_cfg.get("web_types", WEB_TYPES),
    )
    if not webs:
        logger.error(f"No readable webs under {paths.webs_dir}")
        sys.exit(1)

    catalog_cfg = CatalogConfig.from_config(config, root=root)
    logger.info(f"Catalog config: {catalog_cfg}")

    catalog = WebCatalog(webs, catalog_cfg, load_failures=load_failures)
    try:
        result = catalog.run()
    except (InsufficientDataError, CacheMismatchError) as e:
        logger.error(f"Run aborted: {e}")
        sys.exit(1)

    for c in result.quantiles:
        logger.info(f"lambda(c={c:g}) = {result.model.lam(c):.6g}")
    for report in result.prediction_reports():
        logger.info(f"Prediction c={report['c']:g}: {report}")

    overwrite = config.get("outputs", {}).get("overwrite", False)
    output_paths = write_catalog_outputs(result, paths.results_dir, overwrite=overwrite)

    manifest_path = paths.manifest_path(SCRIPT_NAME)
    create_run_manifest(
        script_name=SCRIPT_NAME,
        config=config,
        catalog_cfg=catalog_cfg,
        webs=webs,
        result=result,
        output_files=[Path(p) for p in output_paths.values()],
        manifest_path=manifest_path,
    )
    logger.info(f"Wrote manifest: {manifest_path}")

    logger.info("=" * 80)
    logger.info("SCRIPT 01: Complete")
    logger.info("=" * 80)


if __name__ == "__main__":
    main()
