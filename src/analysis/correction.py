"""
Dispersion correction of analytical fragility.

Simulated robustness R deviates from the binomial prediction 1 - f in
proportion to f (1 - f) and to log10 of the dispersion index d. With

    residual            = R_c - (1 - f_c)
    normalized_residual = residual / (f_c (1 - f_c))

a single slope lambda_c is fitted across all webs by least squares through
the origin, normalized_residual ~ lambda_c * log10(d). Setting
R_c = 1 - f*_c and substituting the fitted residual gives

    f*_c = f_c * (1 + (1 - f_c) * (-lambda_c * log10(d)))

The correction term is therefore -lambda_c * log10(d), not the bare
-lambda_c: lambda_c is a slope per unit of log10(d), and a web with d = 1
keeps its binomial fragility. The two readings agree only at d = 10.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import polars as pl

from src.analysis.dispersion import has_dispersion_signal
from src.analysis.records import NetworkRecord, fragility_column, fstar_column
from src.analysis.robustness import robustness_column
from src.utils.errors import InsufficientDataError

logger = logging.getLogger(__name__)

MIN_WEBS_FOR_FIT = 2


def residuals(f: float, robustness: float) -> Tuple[float, Optional[float]]:
    """Raw residual and, when f is in (0, 1), the residual normalized by f(1-f)."""
    residual = robustness - (1.0 - f)
    if not 0.0 < f < 1.0:
        return residual, None
    return residual, residual / (f * (1.0 - f))


def fit_slope_through_origin(x: np.ndarray, y: np.ndarray) -> float:
    """Ordinary least squares slope of y ~ lam * x with no intercept."""
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    if x.size < MIN_WEBS_FOR_FIT:
        raise InsufficientDataError(
            f"Need at least {MIN_WEBS_FOR_FIT} webs for the correction fit, got {x.size}"
        )
    sxx = float(np.dot(x, x))
    if sxx == 0.0:
        raise InsufficientDataError("All usable webs have log10(d) = 0; slope is undefined")
    return float(np.dot(x, y)) / sxx


def corrected_fragility(f: float, d: float, lam: float) -> float:
    return f * (1.0 + (1.0 - f) * (-lam * np.log10(d)))


@dataclass(frozen=True)
class CorrectionFit:
    c: float
    lam: float
    n_used: int
    excluded: Tuple[Tuple[str, str], ...] = ()


def _fit_exclusion(record: NetworkRecord, c: float) -> Optional[str]:
    f = record.fragility.get(c)
    if f is None:
        return "fragility undefined"
    if not 0.0 < f < 1.0:
        return f"fragility {f:.6g} outside (0, 1)"
    if record.robustness_q.get(c) is None:
        return "no robustness sample"
    if not has_dispersion_signal(record.dispersion):
        return "no dispersion signal"
    return None


def fit_correction(records: Iterable[NetworkRecord], c: float) -> CorrectionFit:
    """
    Fit lambda_c over every usable record.

    Records whose fragility is not strictly inside (0, 1), that have no
    robustness quantile, or whose dispersion cannot enter log10 are flagged
    in `fit_excluded` and listed in the result.

    Raises
    ------
    InsufficientDataError
        Fewer than two usable records, or no spread in log10(d).
    """
    xs: List[float] = []
    ys: List[float] = []
    excluded: List[Tuple[str, str]] = []

    for rec in records:
        reason = _fit_exclusion(rec, c)
        if reason is not None:
            rec.fit_excluded[c] = reason
            excluded.append((rec.identifier, reason))
            continue
        _, norm = residuals(rec.fragility[c], rec.robustness_q[c])
        xs.append(rec.log10_dispersion)
        ys.append(norm)

    if excluded:
        logger.warning(f"Correction fit c={c:g}: {len(excluded)} web(s) excluded")
        for identifier, reason in excluded:
            logger.debug(f"  {identifier}: {reason}")

    lam = fit_slope_through_origin(np.array(xs), np.array(ys))
    logger.info(f"Correction fit c={c:g}: lambda={lam:.6g} from {len(xs)} webs")
    return CorrectionFit(c=c, lam=lam, n_used=len(xs), excluded=tuple(excluded))


@dataclass(frozen=True)
class CorrectionModel:
    """Global lambda per quantile, shared by every web."""
    fits: Dict[float, CorrectionFit]

    @property
    def quantiles(self) -> Tuple[float, ...]:
        return tuple(sorted(self.fits))

    def lam(self, c: float) -> float:
        return self.fits[c].lam

    def apply(self, record: NetworkRecord) -> None:
        """Fill record.fstar for every fitted quantile (None where undefined)."""
        for c, fit in self.fits.items():
            f = record.fragility.get(c)
            if f is None or not has_dispersion_signal(record.dispersion):
                record.fstar[c] = None
                continue
            record.fstar[c] = corrected_fragility(f, record.dispersion, fit.lam)

    def to_dict(self) -> dict:
        return {
            f"{c:g}": {
                "lambda": fit.lam,
                "n_used": fit.n_used,
                "excluded": [{"identifier": i, "reason": r} for i, r in fit.excluded],
            }
            for c, fit in sorted(self.fits.items())
        }


def fit_correction_model(records: Sequence[NetworkRecord], quantiles: Sequence[float]) -> CorrectionModel:
    return CorrectionModel(fits={c: fit_correction(records, c) for c in quantiles})


def prediction_report(frame: pl.DataFrame, c: float) -> Dict[str, Optional[float]]:
    """
    How well 1 - f and 1 - f* predict simulated robustness at quantile c.

    Returns Pearson correlation and mean absolute error for both predictors,
    computed over rows where all three columns are present.
    """
    r_col, f_col, fs_col = robustness_column(c), fragility_column(c), fstar_column(c)
    sub = frame.select([r_col, f_col, fs_col]).drop_nulls()
    n = sub.height
    out: Dict[str, Optional[float]] = {"c": c, "n": n}
    if n == 0:
        out.update({"r_f": None, "mae_f": None, "r_fstar": None, "mae_fstar": None})
        return out

    observed = sub[r_col].to_numpy()
    for key, col in (("f", f_col), ("fstar", fs_col)):
        predicted = 1.0 - sub[col].to_numpy()
        out[f"mae_{key}"] = float(np.mean(np.abs(observed - predicted)))
        if n > 1 and np.std(observed) > 0 and np.std(predicted) > 0:
            out[f"r_{key}"] = float(np.corrcoef(observed, predicted)[0, 1])
        else:
            out[f"r_{key}"] = None
    return out
