"""
Generate small synthetic webs for testing the robustness pipeline.

Each web is a traits x species 0/1 matrix. The random webs are built so
that trait degrees are heterogeneous (one generalist trait, one trait with
a single species), which keeps the dispersion index defined and positive.
"""

from pathlib import Path
from typing import Dict

import numpy as np
import polars as pl


def heterogeneous_web(n_traits: int, n_species: int, p: float, seed: int) -> np.ndarray:
    rng = np.random.default_rng(seed)
    m = (rng.random((n_traits, n_species)) < p).astype(int)
    m[0, :] = 1
    m[1, :] = 0
    m[1, 0] = 1
    return m


def generate_toy_webs() -> Dict[str, np.ndarray]:
    """
    Six usable webs plus three degenerate ones.

    Returns
    -------
    dict
        file stem -> matrix; stems encode the web type at [7:9]
    """
    webs = {
        "matrix_PL_001": heterogeneous_web(6, 12, 0.25, seed=1),
        "matrix_PL_002": heterogeneous_web(8, 15, 0.35, seed=2),
        "matrix_SD_003": heterogeneous_web(5, 10, 0.30, seed=3),
        "matrix_HP_004": heterogeneous_web(7, 9, 0.45, seed=4),
        "matrix_PA_005": heterogeneous_web(10, 20, 0.20, seed=5),
        "matrix_AF_006": heterogeneous_web(4, 8, 0.50, seed=6),
        # degenerate
        "matrix_PL_101": np.ones((1, 6), dtype=int),          # single trait
        "matrix_PL_102": np.array([[1, 0, 1], [0, 1, 1]]),    # constant row sums
        "matrix_PL_103": np.ones((3, 4), dtype=int),          # connectance 1
    }
    return webs


def write_web_csv(matrix: np.ndarray, path: Path) -> Path:
    """Write a matrix with a header row of species and a column of trait labels."""
    n_traits, n_species = matrix.shape
    data = {"trait": [f"t{i}" for i in range(n_traits)]}
    for j in range(n_species):
        data[f"sp{j}"] = matrix[:, j].tolist()
    pl.DataFrame(data).write_csv(path)
    return path


def write_toy_webs(out_dir: Path) -> Dict[str, Path]:
    out_dir.mkdir(parents=True, exist_ok=True)
    return {
        stem: write_web_csv(matrix, out_dir / f"{stem}.csv")
        for stem, matrix in generate_toy_webs().items()
    }
