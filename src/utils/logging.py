"""
Centralized logging configuration.

Scripts call setup_logging once; library modules only use
logging.getLogger(__name__) and never attach handlers themselves.
"""
import logging
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = '%(asctime)s | %(name)s | %(levelname)s | %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logging(log_file: Optional[Path] = None, level: int = logging.INFO) -> None:
    """
    Setup root logger for a script.

    Args:
        log_file: Optional path to log file (parent directory is created)
        level: Logging level (default: INFO)
    """
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, mode='a', encoding='utf-8'))

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=handlers,
        force=True,
    )


def get_script_logger(script_name: str, results_dir: Path) -> logging.Logger:
    """
    Configure logging for a script and return its logger.

    The log file lands at results/logs/<script_name>.log.

    Args:
        script_name: Name of the script (e.g., "01_run_robustness")
        results_dir: Path to results directory

    Returns:
        Logger named after the script
    """
    log_file = results_dir / "logs" / f"{script_name}.log"
    setup_logging(log_file)
    return logging.getLogger(script_name)
