"""
Deterministic seeding utility for reproducibility.

Every simulation draws from an explicit numpy Generator. Per-network
generators are seeded with get_derived_seed so results do not depend on
how networks are distributed over workers.
"""
from typing import Optional

import numpy as np


def get_derived_seed(base_seed: int, offset: int) -> int:
    """
    Generate a derived seed for sub-processes or parallel tasks.

    Args:
        base_seed: Base seed value
        offset: Integer offset (e.g., network index in the catalog)

    Returns:
        Derived seed value
    """
    return (base_seed + offset) % (2**31 - 1)


def make_rng(seed: Optional[int] = None) -> np.random.Generator:
    """Return a numpy Generator; unseeded when seed is None."""
    return np.random.default_rng(seed)
