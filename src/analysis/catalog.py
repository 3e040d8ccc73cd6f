"""
WebCatalog: runs the robustness analysis over a collection of webs.

Phase 1 computes everything that depends on a single web:
- structure (S, N, links, row-sum statistics) and the degeneracy filter
- fragility per quantile and the dispersion index
- robustness samples (simulated in parallel, or read from the cache)

Phase 2 starts only when every web of phase 1 is done: it fits one
correction slope per quantile over the whole catalog and writes the
corrected fragility back into each record.
"""
import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import polars as pl

from src.analysis.correction import (
    CorrectionModel,
    fit_correction_model,
    prediction_report,
    residuals,
)
from src.analysis.dispersion import dispersion, row_sum_stats
from src.analysis.fragility import DEFAULT_QUANTILES, fragility_profile
from src.analysis.records import FilteredWeb, NetworkRecord, filtered_to_frame, records_to_frame
from src.analysis.robustness import simulate_webs, summarize_robustness, robustness_column
from src.io.results_cache import load_robustness_cache, save_robustness_cache
from src.utils.errors import DomainError, InvalidInput
from src.utils.paths import resolve_path
from src.webs.binary_matrix import BinaryMatrix
from src.webs.loader import LoadedWeb

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CatalogConfig:
    """Configuration for a catalog run."""
    n_trials: int = 1000
    quantiles: Tuple[float, ...] = DEFAULT_QUANTILES
    n_workers: int = 1
    seed: Optional[int] = 42
    run_simulation: bool = True           # False -> read samples from cache_path
    cache_path: Optional[str] = None
    method: str = "vectorized"            # "vectorized" or "incremental"

    @classmethod
    def from_config(cls, config: Dict[str, Any], root: Optional[Path] = None) -> "CatalogConfig":
        """Build from the parsed config.yaml (missing keys keep their defaults)."""
        sim = config.get("simulation", {}) or {}
        cache_path = sim.get("cache_path")
        if cache_path is not None and root is not None:
            cache_path = str(resolve_path(cache_path, root))
        return cls(
            n_trials=int(sim.get("n_trials", cls.n_trials)),
            quantiles=tuple(float(c) for c in sim.get("quantiles", cls.quantiles)),
            n_workers=int(sim.get("n_workers", cls.n_workers)),
            seed=config.get("seed", cls.seed),
            run_simulation=bool(sim.get("run_simulation", cls.run_simulation)),
            cache_path=cache_path,
            method=sim.get("method", cls.method),
        )


@dataclass
class RunSummary:
    n_input: int = 0
    n_processed: int = 0
    filtered: List[FilteredWeb] = field(default_factory=list)
    failed: List[FilteredWeb] = field(default_factory=list)

    @property
    def n_filtered(self) -> int:
        return len(self.filtered)

    @property
    def n_failed(self) -> int:
        return len(self.failed)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "n_input": self.n_input,
            "n_processed": self.n_processed,
            "n_filtered": self.n_filtered,
            "n_failed": self.n_failed,
            "filtered": [asdict(f) for f in self.filtered],
            "failed": [asdict(f) for f in self.failed],
        }


@dataclass
class CatalogResult:
    records: List[NetworkRecord]
    model: CorrectionModel
    summary: RunSummary
    quantiles: Tuple[float, ...]

    def to_frame(self) -> pl.DataFrame:
        return records_to_frame(self.records, self.quantiles)

    def prediction_reports(self) -> List[Dict[str, Any]]:
        frame = self.to_frame()
        return [prediction_report(frame, c) for c in self.quantiles]


def describe_web(identifier: str, matrix: BinaryMatrix, web_type: Optional[str] = None) -> NetworkRecord:
    """Structural part of a record (no fragility, dispersion or robustness yet)."""
    stats = row_sum_stats(matrix)
    return NetworkRecord(
        identifier=identifier,
        web_type=web_type,
        S=matrix.S,
        N=matrix.N,
        sum_A=matrix.n_links,
        min_S_per_N=stats.min_S_per_N,
        mean_S_per_N=stats.mean_S_per_N,
        var_S_per_N=stats.var_S_per_N,
        est_p=matrix.connectance,
    )


def degeneracy_reason(record: NetworkRecord) -> Optional[str]:
    """Why a web is left out of the analysis by policy, or None to keep it."""
    if record.N == 1:
        return "single-trait web (N=1)"
    if record.var_S_per_N is None or record.var_S_per_N == 0:
        return "zero row-sum variance"
    return None


class WebCatalog:
    """
    Two-phase robustness analysis over a set of webs.

    Parameters
    ----------
    webs : dict
        identifier -> LoadedWeb
    config : CatalogConfig
    load_failures : list of (identifier, reason), optional
        Files the loader could not read; reported in the run summary
    """

    def __init__(
        self,
        webs: Dict[str, LoadedWeb],
        config: Optional[CatalogConfig] = None,
        load_failures: Optional[List[Tuple[str, str]]] = None,
    ):
        self.webs = dict(sorted(webs.items()))
        self.config = config or CatalogConfig()
        self.summary = RunSummary(n_input=len(self.webs) + len(load_failures or []))
        for identifier, reason in load_failures or []:
            self.summary.filtered.append(FilteredWeb(identifier, "load", reason))
        self.records: Dict[str, NetworkRecord] = {}

    @classmethod
    def from_matrices(
        cls,
        matrices: Dict[str, BinaryMatrix],
        config: Optional[CatalogConfig] = None,
        web_types: Optional[Dict[str, str]] = None,
    ) -> "WebCatalog":
        web_types = web_types or {}
        webs = {
            identifier: LoadedWeb(identifier, Path(identifier), web_types.get(identifier), matrix)
            for identifier, matrix in matrices.items()
        }
        return cls(webs, config)

    def _filter(self, identifier: str, stage: str, reason: str) -> None:
        logger.warning(f"Excluding {identifier} ({stage}): {reason}")
        self.summary.filtered.append(FilteredWeb(identifier, stage, reason))

    # -----------------------------
    # Phase 1
    # -----------------------------

    def compute_structure(self) -> None:
        """Structure, degeneracy filter, fragility and dispersion for every web."""
        for identifier, web in self.webs.items():
            record = describe_web(identifier, web.matrix, web.web_type)
            reason = degeneracy_reason(record)
            if reason is not None:
                self._filter(identifier, "filter", reason)
                continue
            try:
                record.fragility = fragility_profile(web.matrix, self.config.quantiles)
                record.dispersion = dispersion(web.matrix)
            except (DomainError, InvalidInput) as e:
                self._filter(identifier, "structure", f"{type(e).__name__}: {e}")
                continue
            self.records[identifier] = record

        logger.info(f"Structure stage: {len(self.records)} webs kept, {self.summary.n_filtered} filtered")

    def compute_robustness(self, should_stop: Optional[Callable[[], bool]] = None) -> None:
        """Fill robustness samples, summaries and residuals of the kept webs."""
        cfg = self.config
        matrices = {identifier: self.webs[identifier].matrix for identifier in self.records}

        if cfg.run_simulation:
            samples, errors = simulate_webs(
                matrices,
                n_trials=cfg.n_trials,
                base_seed=cfg.seed,
                n_workers=cfg.n_workers,
                method=cfg.method,
                should_stop=should_stop,
            )
            if cfg.cache_path is not None:
                save_robustness_cache(samples, cfg.cache_path)
        else:
            if cfg.cache_path is None:
                raise ValueError("run_simulation is false but no cache_path is configured")
            samples = load_robustness_cache(cfg.cache_path, matrices.keys(), n_trials=cfg.n_trials)
            errors = {}

        for identifier, message in errors.items():
            logger.warning(f"Dropping {identifier}: simulation failed ({message})")
            self.summary.failed.append(FilteredWeb(identifier, "simulation", message))
            del self.records[identifier]

        for identifier, record in self.records.items():
            record.samples = samples[identifier]
            summary = summarize_robustness(record.samples, cfg.quantiles)
            record.robustness_mean = summary["robustness_mean"]
            record.robustness_std = summary["robustness_std"]
            for c in cfg.quantiles:
                record.robustness_q[c] = summary[robustness_column(c)]
                residual, normalized = residuals(record.fragility[c], record.robustness_q[c])
                record.residual[c] = residual
                record.normalized_residual[c] = normalized

    # -----------------------------
    # Phase 2
    # -----------------------------

    def fit_correction(self) -> CorrectionModel:
        """Fit lambda per quantile over the whole catalog and apply it to every record."""
        records = list(self.records.values())
        model = fit_correction_model(records, self.config.quantiles)
        for record in records:
            model.apply(record)
        return model

    def run(self, should_stop: Optional[Callable[[], bool]] = None) -> CatalogResult:
        """
        Run both phases.

        Raises
        ------
        InsufficientDataError
            Fewer than two webs usable for the correction fit.
        CacheMismatchError
            Cached samples do not cover the kept webs.
        SimulationCancelled
            should_stop returned True between networks.
        """
        self.compute_structure()
        self.compute_robustness(should_stop=should_stop)
        model = self.fit_correction()

        self.summary.n_processed = len(self.records)
        logger.info(
            f"Run summary: {self.summary.n_input} webs, {self.summary.n_processed} processed, "
            f"{self.summary.n_filtered} filtered, {self.summary.n_failed} failed"
        )
        for item in self.summary.filtered + self.summary.failed:
            logger.info(f"  {item.identifier} [{item.stage}]: {item.reason}")

        return CatalogResult(
            records=list(self.records.values()),
            model=model,
            summary=self.summary,
            quantiles=tuple(self.config.quantiles),
        )


def write_catalog_outputs(
    result: CatalogResult,
    output_dir: str | Path,
    overwrite: bool = False,
) -> Dict[str, str]:
    """
    Write the catalog table, correction model and filter report.

    Parameters
    ----------
    result : CatalogResult
    output_dir : str or Path
        Base output directory (results/)
    overwrite : bool
        Whether to overwrite existing files

    Returns
    -------
    dict
        Paths to written files
    """
    output_dir = Path(output_dir)
    analysis_dir = output_dir / "analysis"
    tables_dir = output_dir / "tables"
    analysis_dir.mkdir(parents=True, exist_ok=True)
    tables_dir.mkdir(parents=True, exist_ok=True)

    frame = result.to_frame()
    model_payload = {
        "quantiles": list(result.quantiles),
        "correction": result.model.to_dict(),
        "prediction": result.prediction_reports(),
        "summary": result.summary.as_dict(),
    }

    writers = {
        "catalog_parquet": (analysis_dir / "web_catalog.parquet", frame.write_parquet),
        "catalog_csv": (tables_dir / "web_catalog.csv", frame.write_csv),
        "filtered_csv": (
            tables_dir / "filtered_webs.csv",
            filtered_to_frame(result.summary.filtered + result.summary.failed).write_csv,
        ),
    }

    paths = {}
    for key, (path, write) in writers.items():
        if path.exists() and not overwrite:
            logger.warning(f"{path} exists; skipping (overwrite=False)")
            continue
        write(path)
        logger.info(f"Wrote {path}")
        paths[key] = str(path)

    model_path = analysis_dir / "correction_model.json"
    if not model_path.exists() or overwrite:
        with open(model_path, "w") as f:
            json.dump(model_payload, f, indent=2)
        logger.info(f"Wrote {model_path}")
        paths["correction_model"] = str(model_path)
    else:
        logger.warning(f"{model_path} exists; skipping (overwrite=False)")

    return paths
