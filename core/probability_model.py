# =============================================================================
# POLYMARKET LADDER TRADER - BRACKET PROBABILITY MODEL
# =============================================================================
#
# Converts a daily-maximum temperature forecast plus the time left until the
# market resolves into a fair probability for one bracket of a ladder.
#
# MATHEMATICAL MODEL:
# - Realised maximum ~ Normal(mean = forecast, sigma = f(horizon))
# - sigma comes from a step table keyed by hours to resolution
# - P(bracket) = CDF(upper) - CDF(lower) over the half-open interval
#   (lower, upper]
#
# HALF-UNIT PADDING:
# - AT_LEAST(v) -> (v - 0.5, +inf)
# - AT_MOST(v)  -> (-inf, v + 0.5]
# - EXACT(v)    -> (v - 0.5, v + 0.5]
# Adjacent integer brackets tile the real line without gap or overlap, so a
# complete ladder sums to 1.
#
# EXAMPLE:
# Forecast 8.2°C, 22h out -> sigma 1.5
# P(8°C exact) = CDF(8.5) - CDF(7.5) ≈ 0.579 - 0.320 = 0.259
#
# CRITICAL PROPERTIES:
# - Pure functions, no state, no I/O
# - Bad numeric input returns 0 and logs a warning, never raises
#
# =============================================================================

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from shared.enums import BracketType, Signal
from core.market_parser import parse_utc_timestamp

logger = logging.getLogger(__name__)


# [max_hours, sigma]; None = catch-all beyond the last bound
DEFAULT_SIGMA_TABLE: List[Tuple[Optional[float], float]] = [
    (6, 0.7),
    (12, 1.0),
    (24, 1.5),
    (36, 2.0),
    (48, 2.5),
    (None, 3.0),
]

DEFAULT_EDGE_THRESHOLD = 0.05
DEFAULT_TIME_COMPRESSION_REF_HOURS = 24.0

BRACKET_HALF_WIDTH = 0.5


# =============================================================================
# DATA MODELS
# =============================================================================


@dataclass
class EdgeAnalysis:
    """
    Result of comparing a fair probability against a market price.

    effective_edge and time_compression are only set when a horizon was
    supplied to analyze_edge().
    """
    edge: float
    edge_percent: float
    signal: Signal
    effective_edge: Optional[float] = None
    time_compression: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "edge": self.edge,
            "edgePercent": self.edge_percent,
            "signal": self.signal.value,
        }
        if self.effective_edge is not None:
            result["effectiveEdge"] = self.effective_edge
            result["timeCompression"] = self.time_compression
        return result


# =============================================================================
# MATHEMATICAL FUNCTIONS
# =============================================================================


def standard_normal_cdf(x: float) -> float:
    """
    Compute standard normal CDF using error function.

    P(Z <= x) = 0.5 * (1 + erf(x / sqrt(2)))
    """
    return 0.5 * (1 + math.erf(x / math.sqrt(2)))


def normal_cdf(x: float, mean: float, sigma: float) -> float:
    """
    Compute CDF of normal distribution.

    P(X <= x) where X ~ Normal(mean, sigma). Infinite x is allowed.

    Raises:
        ValueError: If sigma is not positive
    """
    if sigma <= 0:
        raise ValueError(f"sigma must be positive, got {sigma}")
    if x == math.inf:
        return 1.0
    if x == -math.inf:
        return 0.0
    return standard_normal_cdf((x - mean) / sigma)


def standard_deviation(
    hours_until_resolution: float,
    sigma_table: Sequence[Sequence[Optional[float]]] = DEFAULT_SIGMA_TABLE,
) -> float:
    """
    Forecast uncertainty for a horizon.

    Returns the sigma of the first table row whose max_hours bound is >= the
    horizon. A negative horizon means the day is already over: sigma 0.
    """
    if hours_until_resolution < 0:
        return 0.0

    for max_hours, sigma in sigma_table:
        if max_hours is None or hours_until_resolution <= max_hours:
            return float(sigma)

    return float(sigma_table[-1][1])


def bracket_probability(
    forecast_value: float,
    hours_until_resolution: float,
    lower_bound: Optional[float],
    upper_bound: Optional[float],
    sigma_table: Sequence[Sequence[Optional[float]]] = DEFAULT_SIGMA_TABLE,
) -> float:
    """
    Probability mass of Normal(forecast, sigma) inside (lower, upper].

    None bounds are unbounded. With sigma 0 the outcome is deterministic:
    1 if the forecast lies in the interval, else 0.

    Returns:
        Probability in [0, 1]; 0 for non-finite forecast or inverted bounds
    """
    if forecast_value is None or not math.isfinite(forecast_value):
        logger.warning(f"Invalid forecast value: {forecast_value}, returning 0")
        return 0.0

    lower = -math.inf if lower_bound is None else lower_bound
    upper = math.inf if upper_bound is None else upper_bound
    sigma = standard_deviation(hours_until_resolution, sigma_table)

    if sigma == 0:
        return 1.0 if lower < forecast_value <= upper else 0.0

    if lower >= upper:
        logger.warning(f"Invalid bracket: lower ({lower}) >= upper ({upper}), returning 0")
        return 0.0

    probability = normal_cdf(upper, forecast_value, sigma) - normal_cdf(lower, forecast_value, sigma)
    return max(0.0, min(1.0, probability))


def bracket_bounds(
    bracket_type: BracketType, bracket_value: float
) -> Tuple[Optional[float], Optional[float]]:
    """Interval (lower, upper] covered by a bracket, None = unbounded."""
    if bracket_type == BracketType.AT_LEAST:
        return bracket_value - BRACKET_HALF_WIDTH, None
    if bracket_type == BracketType.AT_MOST:
        return None, bracket_value + BRACKET_HALF_WIDTH
    if bracket_type == BracketType.EXACT:
        return bracket_value - BRACKET_HALF_WIDTH, bracket_value + BRACKET_HALF_WIDTH
    raise ValueError(f"Unknown bracket type: {bracket_type}")


def market_probability(
    forecast_value: float,
    hours_until_resolution: float,
    bracket_type: BracketType,
    bracket_value: float,
    sigma_table: Sequence[Sequence[Optional[float]]] = DEFAULT_SIGMA_TABLE,
) -> float:
    """Fair YES probability for one bracket market."""
    lower, upper = bracket_bounds(bracket_type, bracket_value)
    return bracket_probability(
        forecast_value, hours_until_resolution, lower, upper, sigma_table
    )


def time_compression(
    hours_to_settlement: float,
    reference_hours: float = DEFAULT_TIME_COMPRESSION_REF_HOURS,
) -> float:
    """
    Discount factor for edges measured far from settlement.

    min(reference / hours, 1); at or past settlement the full edge counts.
    """
    if hours_to_settlement <= 0:
        return 1.0
    return min(reference_hours / hours_to_settlement, 1.0)


def analyze_edge(
    fair_probability: float,
    market_price: float,
    hours_to_settlement: Optional[float] = None,
    edge_threshold: float = DEFAULT_EDGE_THRESHOLD,
    reference_hours: float = DEFAULT_TIME_COMPRESSION_REF_HOURS,
) -> EdgeAnalysis:
    """
    Compare fair probability against market price.

    edge = fair - market. With a horizon, the signal is taken on
    edge * time_compression(horizon). Outputs are rounded (edge to 4,
    edge_percent to 2 decimals) for stable logs.
    """
    edge = fair_probability - market_price
    edge_percent = (edge / market_price) * 100 if market_price > 0 else 0.0

    effective_edge = edge
    compression = None
    if hours_to_settlement is not None:
        compression = time_compression(hours_to_settlement, reference_hours)
        effective_edge = edge * compression

    if effective_edge > edge_threshold:
        signal = Signal.BUY
    elif effective_edge < -edge_threshold:
        signal = Signal.SELL
    else:
        signal = Signal.HOLD

    result = EdgeAnalysis(
        edge=round(edge, 4),
        edge_percent=round(edge_percent, 2),
        signal=signal,
    )
    if compression is not None:
        result.effective_edge = round(effective_edge, 4)
        result.time_compression = round(compression, 4)
    return result


def hours_until_resolution(end_date: Any, now: Optional[datetime] = None) -> float:
    """
    Hours from now until an ISO end timestamp (negative once past).

    Returns 0 and logs a warning for a missing or unparsable end date.
    """
    parsed = parse_utc_timestamp(end_date)
    if parsed is None:
        logger.warning(f"Invalid end date: {end_date!r}, returning 0")
        return 0.0

    now = now or datetime.now(timezone.utc)
    return (parsed - now).total_seconds() / 3600


# =============================================================================
# CONFIGURED MODEL
# =============================================================================


class ProbabilityModel:
    """
    Config-bound facade over the module functions.

    All parameters come from trading.yaml. The model keeps no memory of
    previous cycles.
    """

    def __init__(self, config: Dict[str, Any]):
        self.sigma_table = [
            (row[0], row[1]) for row in config.get("SIGMA_TABLE", DEFAULT_SIGMA_TABLE)
        ]
        self.edge_threshold = config.get("EDGE_THRESHOLD", DEFAULT_EDGE_THRESHOLD)
        self.reference_hours = config.get(
            "TIME_COMPRESSION_REF_HOURS", DEFAULT_TIME_COMPRESSION_REF_HOURS
        )

        logger.debug(
            f"ProbabilityModel initialized | "
            f"sigma_rows={len(self.sigma_table)} | "
            f"edge_threshold={self.edge_threshold} | "
            f"ref_hours={self.reference_hours}"
        )

    def sigma(self, hours: float) -> float:
        return standard_deviation(hours, self.sigma_table)

    def market_probability(
        self,
        forecast_value: float,
        hours: float,
        bracket_type: BracketType,
        bracket_value: float,
    ) -> float:
        return market_probability(
            forecast_value, hours, bracket_type, bracket_value, self.sigma_table
        )

    def time_compression(self, hours: float) -> float:
        return time_compression(hours, self.reference_hours)

    def analyze_edge(
        self,
        fair_probability: float,
        market_price: float,
        hours: Optional[float] = None,
    ) -> EdgeAnalysis:
        return analyze_edge(
            fair_probability,
            market_price,
            hours,
            edge_threshold=self.edge_threshold,
            reference_hours=self.reference_hours,
        )
