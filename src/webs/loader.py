"""
Loading of interaction matrices from a directory of CSV files.

Each file holds one rectangular matrix (rows = traits, columns = species),
optionally with a header row of species labels and a first column of trait
labels. Entries are thresholded to {0, 1}.
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import polars as pl

from src.utils.errors import InvalidInput
from src.webs.binary_matrix import BinaryMatrix

logger = logging.getLogger(__name__)

WEB_TYPES = ("AF", "HP", "PA", "PH", "PL", "SD")
DEFAULT_TYPE_SLICE = (7, 9)


@dataclass(frozen=True)
class LoadedWeb:
    identifier: str
    path: Path
    web_type: Optional[str]
    matrix: BinaryMatrix


def web_type_from_name(
    name: str,
    type_slice: Sequence[int] = DEFAULT_TYPE_SLICE,
    known_types: Sequence[str] = WEB_TYPES,
) -> Optional[str]:
    """
    Extract the web type tag from a fixed position of a file name.

    Parameters
    ----------
    name : str
        File stem, e.g. "matrix_PL_012"
    type_slice : (int, int)
        0-based [start, stop) slice holding the tag
    known_types : sequence of str
        Enumerated tags; anything else maps to None

    Returns
    -------
    str or None
    """
    start, stop = type_slice
    tag = name[start:stop].upper()
    return tag if tag in known_types else None


def read_matrix_csv(
    path: str | Path,
    has_header: bool = True,
    row_labels: bool = True,
) -> BinaryMatrix:
    """
    Read one CSV matrix and threshold it into a BinaryMatrix.

    Raises
    ------
    InvalidInput
        If the file holds no numeric cells or contains non-numeric values.
    """
    df = pl.read_csv(path, has_header=has_header, infer_schema_length=0)
    if row_labels and df.width > 0:
        df = df.drop(df.columns[0])
    if df.height == 0 or df.width == 0:
        raise InvalidInput(f"{path}: empty matrix")

    numeric = df.select(pl.all().str.strip_chars().cast(pl.Float64, strict=False))
    bad = sum(
        (numeric[col].is_null() & df[col].is_not_null() & (df[col].str.strip_chars() != "")).sum()
        for col in df.columns
    )
    if bad:
        raise InvalidInput(f"{path}: {bad} non-numeric cell(s)")

    return BinaryMatrix.from_counts(numeric.fill_null(0.0).to_numpy())


def load_webs_from_dir(
    webs_dir: str | Path,
    pattern: str = "*.csv",
    has_header: bool = True,
    row_labels: bool = True,
    type_slice: Sequence[int] = DEFAULT_TYPE_SLICE,
    known_types: Sequence[str] = WEB_TYPES,
) -> Tuple[Dict[str, LoadedWeb], List[Tuple[str, str]]]:
    """
    Load every matrix file in a directory.

    Returns
    -------
    webs : dict
        identifier (file stem) -> LoadedWeb, ordered by identifier
    failures : list of (identifier, reason)
        Files that could not be read
    """
    webs_dir = Path(webs_dir)
    if not webs_dir.is_dir():
        raise FileNotFoundError(f"Webs directory not found: {webs_dir}")

    paths = sorted(webs_dir.glob(pattern))
    logger.info(f"Found {len(paths)} matrix files in {webs_dir} (pattern={pattern})")

    webs: Dict[str, LoadedWeb] = {}
    failures: List[Tuple[str, str]] = []
    for path in paths:
        identifier = path.stem
        try:
            matrix = read_matrix_csv(path, has_header=has_header, row_labels=row_labels)
        except (InvalidInput, pl.exceptions.PolarsError, OSError) as e:
            logger.warning(f"Skipping {path.name}: {e}")
            failures.append((identifier, f"{type(e).__name__}: {e}"))
            continue

        web_type = web_type_from_name(identifier, type_slice, known_types)
        if web_type is None:
            logger.warning(f"{identifier}: no known web type at {tuple(type_slice)}")
        webs[identifier] = LoadedWeb(identifier, path, web_type, matrix)

    logger.info(f"Loaded {len(webs)} webs ({len(failures)} unreadable)")
    return webs, failures
