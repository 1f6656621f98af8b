# =============================================================================
# POLYMARKET LADDER TRADER - LOGGING CONFIGURATION
# =============================================================================
#
# Operational logs (human readable) go to logs/app/ and the console.
# The JSON audit trail (positions, cycle logs, settlements) is written by
# paper_trader and is NOT routed through this module.
#
# =============================================================================

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Union


LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _get_project_root() -> Path:
    """Get the project root directory."""
    # This file is at shared/logging_config.py
    return Path(__file__).parent.parent


def parse_level(level: Union[int, str]) -> int:
    """Accept logging.INFO or "info"/"INFO"."""
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level}")
    return value


def setup_logging(
    level: Union[int, str] = logging.INFO,
    console_output: bool = True,
    file_output: bool = True,
    log_dir: Optional[Path] = None,
) -> Optional[Path]:
    """
    Configure the root logger.

    Args:
        level: Logging level
        console_output: Whether to log to console
        file_output: Whether to log to a timestamped file
        log_dir: Directory for the log file (default logs/app)

    Returns:
        Path of the log file, or None without file output
    """
    level = parse_level(level)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    root = logging.getLogger()
    root.setLevel(level)

    # Remove existing handlers to avoid duplicates
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    if console_output:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)

    log_file = None
    if file_output:
        target_dir = Path(log_dir) if log_dir else _get_project_root() / "logs" / "app"
        target_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = target_dir / f"ladder_trader_{timestamp}.log"

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # Third-party HTTP noise
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    root.info(f"Logging initialized | level={logging.getLevelName(level)} | file={log_file}")
    return log_file
