"""
Per-network result records and their tabular form.

A NetworkRecord is filled stage by stage (structure, fragility, dispersion,
simulation, correction) by the WebCatalog and is final once the correction
model has been applied.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np
import polars as pl

from src.analysis.robustness import robustness_column


def fragility_column(c: float) -> str:
    return f"f_{c:g}"


def fstar_column(c: float) -> str:
    return f"fstar_{c:g}"


@dataclass
class NetworkRecord:
    identifier: str
    web_type: Optional[str]
    S: int
    N: int
    sum_A: int
    min_S_per_N: int
    mean_S_per_N: float
    var_S_per_N: Optional[float]
    est_p: float
    dispersion: Optional[float] = None
    fragility: Dict[float, float] = field(default_factory=dict)
    samples: Optional[np.ndarray] = field(default=None, repr=False)
    robustness_mean: Optional[float] = None
    robustness_std: Optional[float] = None
    robustness_q: Dict[float, float] = field(default_factory=dict)
    residual: Dict[float, float] = field(default_factory=dict)
    normalized_residual: Dict[float, Optional[float]] = field(default_factory=dict)
    fstar: Dict[float, Optional[float]] = field(default_factory=dict)
    fit_excluded: Dict[float, str] = field(default_factory=dict)

    @property
    def log10_dispersion(self) -> Optional[float]:
        if self.dispersion is None or not self.dispersion > 0:
            return None
        return float(np.log10(self.dispersion))


@dataclass(frozen=True)
class FilteredWeb:
    """A network left out of the catalog, with the stage that rejected it."""
    identifier: str
    stage: str  # "load", "filter", "structure", "simulation"
    reason: str


def records_to_frame(records: Sequence[NetworkRecord], quantiles: Sequence[float]) -> pl.DataFrame:
    """
    One row per network with structure, fragility, robustness and correction columns.

    Parameters
    ----------
    records : sequence of NetworkRecord
    quantiles : sequence of float
        Quantiles whose per-c columns are emitted

    Returns
    -------
    pl.DataFrame
    """
    rows: List[dict] = []
    for rec in records:
        row = {
            "identifier": rec.identifier,
            "web_type": rec.web_type,
            "S": rec.S,
            "N": rec.N,
            "sum_A": rec.sum_A,
            "min_S_per_N": rec.min_S_per_N,
            "mean_S_per_N": rec.mean_S_per_N,
            "var_S_per_N": rec.var_S_per_N,
            "est_p": rec.est_p,
            "dispersion": rec.dispersion,
            "log10_dispersion": rec.log10_dispersion,
            "robustness_mean": rec.robustness_mean,
            "robustness_std": rec.robustness_std,
        }
        for c in quantiles:
            row[fragility_column(c)] = rec.fragility.get(c)
            row[robustness_column(c)] = rec.robustness_q.get(c)
            row[f"residual_{c:g}"] = rec.residual.get(c)
            row[f"normalized_residual_{c:g}"] = rec.normalized_residual.get(c)
            row[fstar_column(c)] = rec.fstar.get(c)
        rows.append(row)

    schema = {
        "identifier": pl.Utf8,
        "web_type": pl.Utf8,
        "S": pl.Int64,
        "N": pl.Int64,
        "sum_A": pl.Int64,
        "min_S_per_N": pl.Int64,
    }
    float_cols = [k for k in (rows[0] if rows else {}) if k not in schema]
    schema.update({k: pl.Float64 for k in float_cols})
    return pl.DataFrame(rows, schema=schema if rows else None, strict=False)


def filtered_to_frame(filtered: Sequence[FilteredWeb]) -> pl.DataFrame:
    return pl.DataFrame(
        {
            "identifier": [f.identifier for f in filtered],
            "stage": [f.stage for f in filtered],
            "reason": [f.reason for f in filtered],
        },
        schema={"identifier": pl.Utf8, "stage": pl.Utf8, "reason": pl.Utf8},
    )
