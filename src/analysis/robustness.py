"""
Random-extinction robustness simulation for bipartite webs.

A trial draws a uniformly random order of the S species and removes them one
at a time. It stops as soon as some trait has lost all of its species (or
when every species is gone) and reports nn / S, where nn counts the species
removed up to and including the one that caused the first trait loss.
A web in which some trait has no species at all scores 0.

Two engines give identical results for the same random stream:
- incremental: removes columns one by one and updates row sums
- vectorized: for each trait, the loss step is the removal position of its
  last linked species; nn is the minimum of that over traits

Networks are independent, so the catalog stage fans them out over a
multiprocessing pool with one derived seed per network.
"""
import logging
import time
from multiprocessing import Pool
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

import numpy as np

from src.utils.errors import InvalidInput, SimulationCancelled
from src.utils.seeds import get_derived_seed, make_rng
from src.webs.binary_matrix import BinaryMatrix

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 256
# Cap on the (batch x N x S) int32 intermediate of the vectorized engine
DEFAULT_MEMORY_BUDGET = 64 * 2**20


def _as_matrix(matrix) -> BinaryMatrix:
    if isinstance(matrix, BinaryMatrix):
        return matrix
    return BinaryMatrix(np.asarray(matrix))


def _removal_steps_incremental(values: np.ndarray, order: np.ndarray) -> int:
    """Number of species removed (in `order`) until the first trait is lost."""
    remaining = values.sum(axis=1, dtype=np.int64)
    if (remaining == 0).any():
        return 0

    nn = 0
    for col in order:
        remaining -= values[:, col]
        nn += 1
        if (remaining == 0).any():
            break
    return nn


def _removal_steps_vectorized(values: np.ndarray, orders: np.ndarray) -> np.ndarray:
    """
    Removal steps for a batch of orders (shape: trials x S).

    position[t, j] is the 1-based step at which species j is removed in
    trial t; a trait is lost at the largest position among its species.
    """
    positions = np.argsort(orders, axis=1).astype(np.int32) + 1
    loss_step = (values[np.newaxis, :, :] * positions[:, np.newaxis, :]).max(axis=2)
    return loss_step.min(axis=1)


def single_trial(matrix: BinaryMatrix, rng: Optional[np.random.Generator] = None) -> float:
    """Run one extinction trial and return nn / S."""
    matrix = _as_matrix(matrix)
    rng = rng if rng is not None else make_rng()
    order = rng.permutation(matrix.S)
    return _removal_steps_incremental(matrix.values, order) / matrix.S


def sample_robustness(
    matrix: BinaryMatrix,
    trials: int,
    rng: Optional[np.random.Generator] = None,
    seed: Optional[int] = None,
    method: str = "vectorized",
    batch_size: int = DEFAULT_BATCH_SIZE,
    memory_budget: int = DEFAULT_MEMORY_BUDGET,
) -> np.ndarray:
    """
    Robustness values of `trials` independent extinction trials.

    Parameters
    ----------
    matrix : BinaryMatrix
        Web to simulate (array-likes are validated into a BinaryMatrix)
    trials : int
        Number of trials, at least 1
    rng : np.random.Generator, optional
        Random source; takes precedence over `seed`
    seed : int, optional
        Seed for a fresh Generator when `rng` is not given
    method : str
        "vectorized" (default) or "incremental"
    batch_size : int
        Upper bound on trials per vectorized batch
    memory_budget : int
        Bytes allowed for one batch's N x S working array; large webs get
        smaller batches (down to one trial at a time)

    Returns
    -------
    np.ndarray
        Float array of length `trials` with values in [0, 1]
    """
    matrix = _as_matrix(matrix)
    if trials < 1:
        raise InvalidInput(f"trials must be >= 1, got {trials}")
    if rng is None:
        rng = make_rng(seed)

    S = matrix.S
    values = matrix.values
    steps = np.empty(trials, dtype=np.int64)

    if method == "incremental":
        for t in range(trials):
            steps[t] = _removal_steps_incremental(values, rng.permutation(S))
    elif method == "vectorized":
        bytes_per_trial = 4 * matrix.N * S
        batch_size = max(1, min(batch_size, memory_budget // bytes_per_trial))
        logger.debug(f"Vectorized engine: {batch_size} trials per batch for a {matrix.N}x{S} web")
        for start in range(0, trials, batch_size):
            stop = min(start + batch_size, trials)
            orders = np.stack([rng.permutation(S) for _ in range(stop - start)])
            steps[start:stop] = _removal_steps_vectorized(values, orders)
    else:
        raise ValueError(f"Unknown simulation method: {method}")

    return steps / float(S)


def robustness_column(c: float) -> str:
    return f"robustness_{c:g}"


def summarize_robustness(samples: np.ndarray, quantiles: Sequence[float]) -> Dict[str, float]:
    """Mean, standard deviation and quantiles of a robustness sample."""
    samples = np.asarray(samples, dtype=float)
    if samples.size == 0:
        raise InvalidInput("Cannot summarize an empty robustness sample")

    out = {
        "robustness_mean": float(samples.mean()),
        "robustness_std": float(samples.std(ddof=1)) if samples.size > 1 else 0.0,
    }
    for c, value in zip(quantiles, np.quantile(samples, list(quantiles))):
        out[robustness_column(c)] = float(value)
    return out


# -----------------------------
# Catalog-level simulation
# -----------------------------

def _simulate_one(task: Tuple[int, str, BinaryMatrix, int, Optional[int], str]) -> Dict[str, Any]:
    """Worker: simulate one network and report errors instead of raising."""
    index, identifier, matrix, n_trials, seed, method = task
    t0 = time.time()
    try:
        samples = sample_robustness(matrix, n_trials, seed=seed, method=method)
        error = None
    except (ValueError, MemoryError) as e:
        samples = None
        error = f"{type(e).__name__}: {str(e)[:200]}"
    return {
        "index": index,
        "identifier": identifier,
        "samples": samples,
        "runtime": time.time() - t0,
        "error": error,
    }


def simulate_webs(
    matrices: Dict[str, BinaryMatrix],
    n_trials: int,
    base_seed: Optional[int] = None,
    n_workers: int = 1,
    method: str = "vectorized",
    should_stop: Optional[Callable[[], bool]] = None,
) -> Tuple[Dict[str, np.ndarray], Dict[str, str]]:
    """
    Simulate every web, in parallel when n_workers > 1.

    Network k (in mapping order) uses seed get_derived_seed(base_seed, k),
    so samples do not depend on the worker count or completion order.
    `should_stop` is polled between networks.

    Returns
    -------
    samples : dict
        identifier -> robustness sample
    errors : dict
        identifier -> error message for networks whose simulation failed
    """
    tasks = [
        (
            k,
            identifier,
            matrix,
            n_trials,
            get_derived_seed(base_seed, k) if base_seed is not None else None,
            method,
        )
        for k, (identifier, matrix) in enumerate(matrices.items())
    ]
    n_total = len(tasks)
    logger.info(f"Simulating {n_total} webs: {n_trials} trials each, {n_workers} worker(s)")

    results = []
    progress_every = max(1, n_total // 10)

    def _collect(result: Dict[str, Any]) -> None:
        results.append(result)
        if result["error"] is not None:
            logger.warning(f"Simulation failed for {result['identifier']}: {result['error']}")
        if len(results) % progress_every == 0:
            logger.info(f"Robustness simulation: {len(results)}/{n_total} webs complete")

    if n_workers <= 1:
        for task in tasks:
            if should_stop is not None and should_stop():
                raise SimulationCancelled(f"Cancelled after {len(results)}/{n_total} webs")
            _collect(_simulate_one(task))
    else:
        with Pool(processes=n_workers) as pool:
            for result in pool.imap_unordered(_simulate_one, tasks):
                _collect(result)
                if should_stop is not None and should_stop() and len(results) < n_total:
                    pool.terminate()
                    raise SimulationCancelled(f"Cancelled after {len(results)}/{n_total} webs")

    results.sort(key=lambda r: r["index"])
    samples = {r["identifier"]: r["samples"] for r in results if r["error"] is None}
    errors = {r["identifier"]: r["error"] for r in results if r["error"] is not None}
    return samples, errors
