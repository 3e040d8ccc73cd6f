"""
Locations of the inputs and outputs of a robustness run.

Relative paths in config.yaml (data.webs_dir, simulation.cache_path,
outputs.results_dir) are taken from the project root, the directory that
holds config/ and src/.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional


def find_project_root(start_path: Optional[Path] = None) -> Path:
    """
    Walk up from `start_path` to the directory containing config/ and src/.

    Args:
        start_path: Starting directory (default: this file's directory)

    Returns:
        Path to project root
    """
    here = Path(__file__).resolve().parent
    current = (start_path or here).resolve()
    for candidate in (current, *current.parents):
        if (candidate / "config").is_dir() and (candidate / "src").is_dir():
            return candidate
    # src/utils/paths.py -> project root
    return here.parent.parent


def resolve_path(path: str | Path, root: Path) -> Path:
    """Resolve a config path against `root` unless it is absolute."""
    path = Path(path)
    return path if path.is_absolute() else root / path


@dataclass(frozen=True)
class RunPaths:
    """Where a run reads webs and cached samples from and writes results to."""
    root: Path
    webs_dir: Path
    results_dir: Path
    cache_path: Optional[Path] = None

    @classmethod
    def from_config(cls, config: Dict[str, Any], root: Optional[Path] = None) -> "RunPaths":
        root = root or find_project_root()
        cache_path = (config.get("simulation") or {}).get("cache_path")
        return cls(
            root=root,
            webs_dir=resolve_path((config.get("data") or {}).get("webs_dir", "data/webs"), root),
            results_dir=resolve_path((config.get("outputs") or {}).get("results_dir", "results"), root),
            cache_path=resolve_path(cache_path, root) if cache_path is not None else None,
        )

    @property
    def analysis_dir(self) -> Path:
        return self.results_dir / "analysis"

    @property
    def figures_dir(self) -> Path:
        return self.results_dir / "figures"

    @property
    def catalog_path(self) -> Path:
        return self.analysis_dir / "web_catalog.parquet"

    @property
    def model_path(self) -> Path:
        return self.analysis_dir / "correction_model.json"

    def manifest_path(self, script_name: str) -> Path:
        return self.results_dir / "logs" / f"{script_name}_manifest.json"


def config_file(root: Optional[Path] = None) -> Path:
    """Path to config/config.yaml under the project root."""
    return (root or find_project_root()) / "config" / "config.yaml"
