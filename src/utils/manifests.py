"""
Run manifest for a catalog run.

Records which webs went in (with file hashes, web type and shape), where
the robustness samples came from, the fitted lambda per quantile, the run
summary counts and the files written, so a catalog can be traced back to
its inputs.
"""
import hashlib
import json
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from src.analysis.catalog import CatalogConfig, CatalogResult
from src.webs.loader import LoadedWeb


def get_git_commit() -> Optional[str]:
    """Current git commit hash, or None outside a git checkout."""
    try:
        result = subprocess.run(["git", "rev-parse", "HEAD"], capture_output=True, text=True, timeout=5)
    except (OSError, subprocess.SubprocessError):
        return None
    return result.stdout.strip() if result.returncode == 0 else None


def hash_file(file_path: Path, length: int = 16) -> str:
    """SHA256 of a file, truncated to `length` hex characters."""
    sha256 = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            sha256.update(chunk)
    return sha256.hexdigest()[:length]


def describe_webs(webs: Mapping[str, LoadedWeb]) -> List[Dict[str, Any]]:
    """One entry per loaded web; the hash is omitted for webs not read from disk."""
    entries = []
    for identifier in sorted(webs):
        web = webs[identifier]
        entry = {
            "identifier": identifier,
            "web_type": web.web_type,
            "N": web.matrix.N,
            "S": web.matrix.S,
            "links": web.matrix.n_links,
            "path": str(web.path),
        }
        if web.path.is_file():
            entry["hash"] = hash_file(web.path)
        entries.append(entry)
    return entries


def describe_samples(catalog_cfg: CatalogConfig) -> Dict[str, Any]:
    """Where the robustness samples of the run came from."""
    cache_path = Path(catalog_cfg.cache_path) if catalog_cfg.cache_path is not None else None
    info = {
        "source": "simulation" if catalog_cfg.run_simulation else "cache",
        "n_trials": catalog_cfg.n_trials,
        "seed": catalog_cfg.seed,
        "method": catalog_cfg.method,
        "cache_path": str(cache_path) if cache_path is not None else None,
    }
    if cache_path is not None and cache_path.is_file():
        info["cache_hash"] = hash_file(cache_path)
    return info


def create_run_manifest(
    script_name: str,
    config: Dict[str, Any],
    catalog_cfg: CatalogConfig,
    webs: Mapping[str, LoadedWeb],
    result: CatalogResult,
    output_files: Iterable[Path],
    manifest_path: Optional[Path] = None,
) -> Dict[str, Any]:
    """
    Build (and optionally save) the manifest of one catalog run.

    Args:
        script_name: Name of the script (e.g., "01_run_robustness")
        config: Parsed config.yaml after command-line overrides
        catalog_cfg: Effective catalog configuration
        webs: Webs handed to the catalog
        result: Finished catalog run
        output_files: Files written by the run (missing ones are skipped)
        manifest_path: Optional path to save manifest JSON

    Returns:
        Manifest dictionary
    """
    manifest = {
        "script": script_name,
        "timestamp": datetime.now().isoformat(),
        "git_commit": get_git_commit(),
        "config_snapshot": config,
        "webs": describe_webs(webs),
        "samples": describe_samples(catalog_cfg),
        "lambda": {f"{c:g}": result.model.lam(c) for c in result.quantiles},
        "summary": result.summary.as_dict(),
        "outputs": [
            {"path": str(path), "size_bytes": path.stat().st_size}
            for path in map(Path, output_files)
            if path.exists()
        ],
    }

    if manifest_path is not None:
        save_json(manifest, manifest_path)

    return manifest


def save_json(data: Dict[str, Any], file_path: Path) -> None:
    """Write a dictionary as indented JSON, creating the parent directory."""
    file_path.parent.mkdir(parents=True, exist_ok=True)
    with open(file_path, "w") as f:
        json.dump(data, f, indent=2)
