"""
Error types raised by the robustness pipeline.

Per-network errors (DomainError, InvalidInput) are caught by the catalog and
recorded as filtered networks; the remaining ones abort a run.
"""


class DomainError(ValueError):
    """A quantity is undefined for the given matrix (e.g. connectance 0 or 1)."""


class InvalidInput(ValueError):
    """A matrix is empty, non-binary, or otherwise unusable."""


class InsufficientDataError(RuntimeError):
    """Too few usable networks to fit the dispersion correction."""


class CacheMismatchError(RuntimeError):
    """Cached robustness samples do not cover the current network set."""


class SimulationCancelled(RuntimeError):
    """The simulation stage was stopped between networks."""
