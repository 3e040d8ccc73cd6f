"""
Row-sum statistics and the dispersion index of a web.

Under the binomial null model each trait's degree r_i ~ Binomial(S, p), so
var(r) / mean(r) = 1 - p. The dispersion index

    d = (var_r / mean_r) / (1 - p)

is therefore 1 for a binomial web, above 1 for over-dispersed degree
distributions and exactly 0 when every trait has the same degree.
Variance is the population variance (divisor N).
"""
from dataclasses import dataclass
from typing import Optional

import numpy as np

from src.utils.errors import DomainError
from src.webs.binary_matrix import BinaryMatrix


@dataclass(frozen=True)
class RowSumStats:
    min_S_per_N: int
    mean_S_per_N: float
    var_S_per_N: Optional[float]  # None when N == 1


def row_sum_stats(matrix: BinaryMatrix) -> RowSumStats:
    """Minimum, mean and population variance of trait degrees."""
    r = matrix.row_sums.astype(float)
    var = float(np.var(r, ddof=0)) if matrix.N > 1 else None
    return RowSumStats(
        min_S_per_N=int(r.min()),
        mean_S_per_N=float(r.mean()),
        var_S_per_N=var,
    )


def dispersion(matrix: BinaryMatrix) -> float:
    """
    Dispersion index of trait degrees relative to the binomial expectation.

    Raises
    ------
    DomainError
        If the mean row sum is 0, connectance is 1, or there is a single row
        (no row-sum variance).
    """
    stats = row_sum_stats(matrix)
    if stats.var_S_per_N is None:
        raise DomainError("Dispersion undefined for a single-trait web (N=1)")
    if stats.mean_S_per_N == 0:
        raise DomainError("Dispersion undefined: mean row sum is 0")

    p = matrix.connectance
    if p >= 1.0:
        raise DomainError("Dispersion undefined for connectance p=1")

    return (stats.var_S_per_N / stats.mean_S_per_N) * (1.0 / (1.0 - p))


def has_dispersion_signal(d: Optional[float]) -> bool:
    """True when d can enter log10(d), i.e. it is defined, finite and positive."""
    return d is not None and np.isfinite(d) and d > 0
