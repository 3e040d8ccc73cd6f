"""
Analytical fragility of a bipartite web.

Under a binomial-link null model (each trait linked to each species with
probability p), the fraction f of species that must *remain* for all N
traits to keep at least one link with probability 1 - c solves

    ((1 - q^(S f)) / (1 - q^S))^N = 1 - c,     q = 1 - p

which gives

    f = log(1 - (1 - q^S) (1 - c)^(1/N)) / (S log q).

Simulated robustness at quantile c is then expected to be close to 1 - f.
"""
import math
from typing import Dict, Sequence

import numpy as np

from src.utils.errors import DomainError
from src.webs.binary_matrix import BinaryMatrix

DEFAULT_QUANTILES = (0.25, 0.5, 0.75)


def fragility_from_params(S: int, N: int, p: float, c: float) -> float:
    """
    Closed-form fragility for given dimensions and connectance.

    Parameters
    ----------
    S : int
        Number of species (columns)
    N : int
        Number of traits (rows)
    p : float
        Connectance, strictly between 0 and 1
    c : float
        Target quantile, strictly between 0 and 1

    Returns
    -------
    float
        Positive, finite fragility

    Raises
    ------
    DomainError
        If p or c lies outside (0, 1), or the formula is not finite.
    """
    if not 0.0 < p < 1.0:
        raise DomainError(f"Fragility undefined for connectance p={p}")
    if not 0.0 < c < 1.0:
        raise DomainError(f"Quantile c must lie in (0, 1), got {c}")
    if S < 1 or N < 1:
        raise DomainError(f"Fragility needs S>=1 and N>=1, got S={S}, N={N}")

    q = 1.0 - p
    inner = 1.0 - (1.0 - q ** S) * (1.0 - c) ** (1.0 / N)
    if not 0.0 < inner < 1.0:
        raise DomainError(f"Fragility undefined: log argument {inner} outside (0, 1)")

    f = math.log(inner) / (S * math.log(q))
    if not np.isfinite(f) or f <= 0:
        raise DomainError(f"Fragility evaluated to non-positive or non-finite value {f}")
    return f


def fragility(matrix: BinaryMatrix, c: float) -> float:
    """Fragility of a web at quantile c (see module docstring)."""
    return fragility_from_params(matrix.S, matrix.N, matrix.connectance, c)


def fragility_profile(
    matrix: BinaryMatrix,
    quantiles: Sequence[float] = DEFAULT_QUANTILES,
) -> Dict[float, float]:
    """Fragility for each quantile; f decreases as c increases."""
    return {c: fragility(matrix, c) for c in quantiles}
