# =============================================================================
# POLYMARKET LADDER TRADER - TRADING CONFIGURATION LOADER
# =============================================================================
#
# Loads config/trading.yaml and validates it.
#
# The YAML file is the single place where thresholds are tuned. Every key
# has a default in DEFAULT_CONFIG; REQUIRED_CONFIG_KEYS must be present in
# the file itself so that a truncated or empty file fails loudly instead of
# silently trading on defaults.
#
# =============================================================================

import copy
import logging
import os
from numbers import Number
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)


DEFAULT_CONFIG: Dict[str, Any] = {
    "MARKET_CHECK_MINUTES": [0, 10, 20, 30, 40, 50],
    "MARKET_LOOKAHEAD_DAYS": 3,
    "CITY": "london",
    "LATITUDE": 51.5074,
    "LONGITUDE": -0.1278,
    "SIGMA_TABLE": [
        [6, 0.7],
        [12, 1.0],
        [24, 1.5],
        [36, 2.0],
        [48, 2.5],
        [None, 3.0],
    ],
    "EDGE_THRESHOLD": 0.05,
    "TIME_COMPRESSION_REF_HOURS": 24,
    "CONFIRM_CYCLES": 3,
    "ENTRY_MAX_PROXIMITY_C": 0.7,
    "ENTRY_MIN_EDGE": 0.04,
    "POSITION_SIZE": 1,
    "STOP_MAX_PROXIMITY_C": 1.0,
    "STOP_EDGE_FLIP": 0.02,
    "STOP_CONFIRM_CYCLES": 1,
    "MAX_STOPOUTS_PER_DATE": 2,
    "DECIDED_95_THRESHOLD": 0.95,
    "DECIDED_95_STREAK_REQUIRED": 2,
    "MIN_TRADE_LIQUIDITY": 150,
    "MIN_TRADE_VOLUME": 75,
    "DEFAULT_PRICE_EPSILON": 0.002,
    "DEFAULT_PRICE_PAIRS": [[0.495, 0.505], [0.5, 0.5]],
}

REQUIRED_CONFIG_KEYS = [
    "MARKET_CHECK_MINUTES", "EDGE_THRESHOLD", "CONFIRM_CYCLES",
    "ENTRY_MIN_EDGE", "STOP_MAX_PROXIMITY_C", "DECIDED_95_THRESHOLD",
]

NUMERIC_CONFIG_KEYS = [
    "MARKET_LOOKAHEAD_DAYS", "LATITUDE", "LONGITUDE", "EDGE_THRESHOLD",
    "TIME_COMPRESSION_REF_HOURS", "CONFIRM_CYCLES", "ENTRY_MAX_PROXIMITY_C",
    "ENTRY_MIN_EDGE", "POSITION_SIZE", "STOP_MAX_PROXIMITY_C", "STOP_EDGE_FLIP",
    "STOP_CONFIRM_CYCLES", "MAX_STOPOUTS_PER_DATE", "DECIDED_95_THRESHOLD",
    "DECIDED_95_STREAK_REQUIRED", "MIN_TRADE_LIQUIDITY", "MIN_TRADE_VOLUME",
    "DEFAULT_PRICE_EPSILON",
]


def default_config() -> Dict[str, Any]:
    """Fresh copy of DEFAULT_CONFIG (safe to mutate in tests)."""
    return copy.deepcopy(DEFAULT_CONFIG)


def validate_config(config: Any) -> None:
    """
    Validate that trading.yaml contains all required keys with sane values.

    Raises:
        ValueError: If config is None/not a mapping or a check fails.
    """
    if not config or not isinstance(config, dict):
        raise ValueError("trading.yaml is empty or not a mapping")

    errors = []
    for key in REQUIRED_CONFIG_KEYS:
        if key not in config:
            errors.append(f"missing key: {key}")

    for key in NUMERIC_CONFIG_KEYS:
        value = config.get(key)
        if value is not None and (isinstance(value, bool) or not isinstance(value, Number)):
            errors.append(f"{key} must be numeric, got {value!r}")

    minutes = config.get("MARKET_CHECK_MINUTES")
    if minutes is not None:
        if (
            not isinstance(minutes, list)
            or not minutes
            or not all(isinstance(m, int) and 0 <= m <= 59 for m in minutes)
        ):
            errors.append("MARKET_CHECK_MINUTES must be a non-empty list of ints in 0..59")

    if errors:
        raise ValueError(f"trading.yaml validation failed: {', '.join(errors)}")


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load trading configuration from YAML file.

    Values from the file are merged over DEFAULT_CONFIG.

    Args:
        config_path: Path to config file. If None, uses config/trading.yaml.

    Returns:
        Configuration dictionary

    Raises:
        ValueError: If config is invalid or missing required keys.
    """
    if config_path is None:
        config_path = os.path.join(
            os.path.dirname(os.path.dirname(__file__)),
            "config",
            "trading.yaml"
        )

    with open(config_path, "r", encoding="utf-8") as f:
        loaded = yaml.safe_load(f)

    validate_config(loaded)

    config = default_config()
    config.update(loaded)
    config["MARKET_CHECK_MINUTES"] = sorted(set(config["MARKET_CHECK_MINUTES"]))

    logger.debug(f"Config loaded | path={config_path} | keys={len(loaded)}")
    return config
