"""
Binary association matrix for a bipartite interaction network.

Rows are traits (upper level, N), columns are species (lower level, S).
Entries are exactly 0 or 1; raw abundance/frequency matrices are
thresholded with from_counts before they reach the analysis modules.
"""
from dataclasses import dataclass

import numpy as np

from src.utils.errors import InvalidInput


@dataclass(frozen=True, eq=False)
class BinaryMatrix:
    """Immutable 0/1 matrix with traits as rows and species as columns."""

    values: np.ndarray

    def __post_init__(self):
        arr = np.asarray(self.values)
        if arr.ndim != 2:
            raise InvalidInput(f"Expected a 2D matrix, got {arr.ndim} dimension(s)")
        if arr.shape[0] < 1 or arr.shape[1] < 1:
            raise InvalidInput(f"Matrix must have N>=1 rows and S>=1 columns, got shape {arr.shape}")
        if not np.isin(arr, (0, 1)).all():
            raise InvalidInput("Matrix entries must be 0 or 1; threshold raw data with from_counts")

        arr = arr.astype(np.int8, copy=True)
        arr.setflags(write=False)
        object.__setattr__(self, "values", arr)

    @classmethod
    def from_counts(cls, raw) -> "BinaryMatrix":
        """
        Threshold a nonnegative numeric matrix into a BinaryMatrix.

        Positive entries become 1; zero, negative and missing entries become 0.
        """
        arr = np.asarray(raw, dtype=float)
        arr = np.nan_to_num(arr, nan=0.0)
        return cls(np.where(arr > 0, 1, 0))

    @property
    def S(self) -> int:
        """Number of species (columns)."""
        return int(self.values.shape[1])

    @property
    def N(self) -> int:
        """Number of traits (rows)."""
        return int(self.values.shape[0])

    @property
    def shape(self) -> tuple:
        return self.values.shape

    @property
    def n_links(self) -> int:
        return int(self.values.sum(dtype=np.int64))

    @property
    def row_sums(self) -> np.ndarray:
        """Number of species linked to each trait."""
        return self.values.sum(axis=1, dtype=np.int64)

    @property
    def connectance(self) -> float:
        """Fraction of the S*N possible links that are realized."""
        return self.n_links / float(self.S * self.N)

    def __repr__(self) -> str:
        return f"BinaryMatrix(N={self.N}, S={self.S}, links={self.n_links})"
