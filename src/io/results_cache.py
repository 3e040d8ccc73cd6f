"""
Cache of per-network robustness samples.

Simulation is the expensive stage, so its raw output is written to a single
parquet file in long format (identifier, trial, robustness). With
simulation.run_simulation set to false the pipeline reads this file instead
of re-simulating.
"""
import logging
from pathlib import Path
from typing import Dict, Iterable, Optional

import numpy as np
import polars as pl

from src.utils.errors import CacheMismatchError

logger = logging.getLogger(__name__)


def save_robustness_cache(samples: Dict[str, np.ndarray], cache_path: str | Path) -> Path:
    """
    Write robustness samples to parquet.

    Args:
        samples: identifier -> per-trial robustness values
        cache_path: Output parquet path (parent directories are created)

    Returns:
        The path written
    """
    cache_path = Path(cache_path)
    cache_path.parent.mkdir(parents=True, exist_ok=True)

    frames = [
        pl.DataFrame({
            "identifier": [identifier] * len(values),
            "trial": np.arange(len(values), dtype=np.int64),
            "robustness": np.asarray(values, dtype=float),
        })
        for identifier, values in samples.items()
    ]
    if frames:
        df = pl.concat(frames)
    else:
        df = pl.DataFrame(schema={"identifier": pl.Utf8, "trial": pl.Int64, "robustness": pl.Float64})

    df.write_parquet(cache_path)
    logger.info(f"Wrote robustness cache: {cache_path} ({len(samples)} webs, {len(df)} rows)")
    return cache_path


def load_robustness_cache(
    cache_path: str | Path,
    identifiers: Iterable[str],
    n_trials: Optional[int] = None,
) -> Dict[str, np.ndarray]:
    """
    Read cached samples for the given networks.

    Args:
        cache_path: Parquet written by save_robustness_cache
        identifiers: Networks the current run needs
        n_trials: Expected trials per network; checked when given

    Returns:
        identifier -> robustness sample (trial order), for `identifiers` only

    Raises:
        CacheMismatchError: If the file is missing, lacks any identifier, or
            holds a different number of trials than `n_trials`
    """
    cache_path = Path(cache_path)
    if not cache_path.exists():
        raise CacheMismatchError(
            f"No robustness cache at {cache_path}; set simulation.run_simulation: true"
        )

    wanted = list(identifiers)
    df = pl.read_parquet(cache_path).filter(pl.col("identifier").is_in(wanted))
    present = set(df["identifier"].unique().to_list())
    missing = sorted(set(wanted) - present)
    if missing:
        preview = ", ".join(missing[:5])
        raise CacheMismatchError(
            f"Robustness cache {cache_path} lacks {len(missing)} web(s): {preview}"
        )

    samples: Dict[str, np.ndarray] = {}
    for (identifier,), group in df.sort(["identifier", "trial"]).group_by(["identifier"], maintain_order=True):
        samples[identifier] = group["robustness"].to_numpy()

    if n_trials is not None:
        off = [i for i, v in samples.items() if len(v) != n_trials]
        if off:
            preview = ", ".join(f"{i} ({len(samples[i])})" for i in off[:5])
            raise CacheMismatchError(
                f"Robustness cache {cache_path} holds a trial count other than {n_trials} for "
                f"{len(off)} web(s): {preview}; rerun with simulation.run_simulation: true"
            )

    logger.info(f"Loaded cached robustness samples for {len(samples)} webs from {cache_path}")
    return {identifier: samples[identifier] for identifier in wanted}
