# =============================================================================
# POLYMARKET LADDER TRADER - MARKET SNAPSHOT
# =============================================================================
#
# One market as seen by one decision cycle.
#
# An Observation is the raw public state delivered by the collector. A
# MarketSnapshot enriches it with the parsed bracket, the model probability
# for the matching forecast date, the edge/signal and the tradeability
# verdict. Snapshots are rebuilt from scratch every cycle.
#
# TRADEABILITY:
# A market is tradeable only if ALL hold:
# - YES price > 0
# - liquidity >= MIN_TRADE_LIQUIDITY
# - volume >= MIN_TRADE_VOLUME
# - prices are not a known initialization pair (0.5/0.5, 0.495/0.505,
#   either orientation, within DEFAULT_PRICE_EPSILON)
#
# =============================================================================

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from shared.enums import BracketType, PositionSide, Signal
from core.market_parser import (
    ParsedBracket,
    extract_date_from_question,
    extract_date_key,
    extract_temperature_from_question,
    parse_market_question,
    parse_utc_timestamp,
)
from core.probability_model import ProbabilityModel, hours_until_resolution

logger = logging.getLogger(__name__)


# =============================================================================
# DATA MODELS
# =============================================================================


@dataclass(frozen=True)
class Observation:
    """
    One market's public state at a point in time.

    Immutable once captured. Prices are aligned with outcomes.
    """
    market_id: str
    question: str
    outcomes: List[str]
    prices: List[float]
    end_date: str
    volume: float
    liquidity: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.market_id,
            "question": self.question,
            "outcomes": list(self.outcomes),
            "prices": list(self.prices),
            "endDate": self.end_date,
            "volume": self.volume,
            "liquidity": self.liquidity,
        }


@dataclass
class MarketSnapshot:
    """Observation plus everything the cycle derived from it."""
    market_id: str
    question: str
    outcomes: List[str]
    prices: List[float]
    end_date: str
    date_key: Optional[str]
    volume: float
    liquidity: float
    yes_price: Optional[float]
    no_price: Optional[float]
    minutes_to_close: Optional[int] = None
    temperature_value: Optional[float] = None
    bracket: Optional[ParsedBracket] = None
    hours_to_resolution: Optional[float] = None
    model_probability: Optional[float] = None
    edge: Optional[float] = None
    edge_percent: Optional[float] = None
    signal: Optional[Signal] = None
    forecast_error: Optional[float] = None
    is_tradeable: bool = False
    executed: bool = False
    entry_side: Optional[PositionSide] = None
    entry_yes_price: Optional[float] = None
    entry_no_price: Optional[float] = None
    skip_reasons: List[str] = field(default_factory=list)

    def to_observation_dict(self) -> Dict[str, Any]:
        """Raw observation fields for the monitoring log."""
        return {
            "marketId": self.market_id,
            "question": self.question,
            "temperatureValue": self.temperature_value,
            "outcomes": list(self.outcomes),
            "prices": list(self.prices),
            "yesPrice": self.yes_price,
            "endDate": self.end_date,
            "minutesToClose": self.minutes_to_close,
            "volume": self.volume,
            "liquidity": self.liquidity,
            "isTradeable": self.is_tradeable,
        }

    def to_decision_dict(self) -> Dict[str, Any]:
        """Model outputs for the decision log."""
        return {
            "marketId": self.market_id,
            "dateKey": self.date_key,
            "modelProbability": self.model_probability,
            "edge": self.edge,
            "edgePercent": self.edge_percent,
            "signal": self.signal.value if self.signal else None,
            "forecastError": self.forecast_error,
            "executed": self.executed,
            "entrySide": self.entry_side.value if self.entry_side else None,
            "entryYesPrice": self.entry_yes_price,
            "entryNoPrice": self.entry_no_price,
        }


# =============================================================================
# PRICE HELPERS
# =============================================================================


def find_outcome_price(
    outcomes: Sequence[str], prices: Sequence[float], label: str
) -> Optional[float]:
    """Price of the first outcome whose name contains label (case-insensitive)."""
    for index, outcome in enumerate(outcomes):
        if isinstance(outcome, str) and label in outcome.lower() and index < len(prices):
            return prices[index]
    return None


def is_default_price(
    yes_price: Optional[float],
    no_price: Optional[float],
    pairs: Sequence[Sequence[float]],
    epsilon: float,
) -> bool:
    """True if (yes, no) sits on an initialization pair in either orientation."""
    if yes_price is None or no_price is None:
        return False
    for pair_yes, pair_no in pairs:
        if abs(yes_price - pair_yes) <= epsilon and abs(no_price - pair_no) <= epsilon:
            return True
        if abs(yes_price - pair_no) <= epsilon and abs(no_price - pair_yes) <= epsilon:
            return True
    return False


def forecast_error(bracket: ParsedBracket, forecast_max: float) -> float:
    """
    Signed distance between forecast and bracket.

    Positive = harder to reach for the open-ended brackets; plain distance
    for EXACT.
    """
    if bracket.bracket_type == BracketType.AT_LEAST:
        return bracket.value - forecast_max
    if bracket.bracket_type == BracketType.AT_MOST:
        return forecast_max - bracket.value
    return abs(bracket.value - forecast_max)


# =============================================================================
# SNAPSHOT BUILDER
# =============================================================================


class SnapshotBuilder:
    """
    Builds MarketSnapshots from Observations and the current forecasts.

    forecasts_by_date maps YYYY-MM-DD -> forecast max temperature (°C).
    """

    def __init__(self, config: Dict[str, Any], model: Optional[ProbabilityModel] = None):
        self.model = model or ProbabilityModel(config)
        self.min_liquidity = config["MIN_TRADE_LIQUIDITY"]
        self.min_volume = config["MIN_TRADE_VOLUME"]
        self.price_epsilon = config["DEFAULT_PRICE_EPSILON"]
        self.default_pairs = [tuple(p) for p in config["DEFAULT_PRICE_PAIRS"]]

    def build_all(
        self,
        observations: Sequence[Observation],
        forecasts_by_date: Mapping[str, float],
        now: Optional[datetime] = None,
    ) -> List[MarketSnapshot]:
        now = now or datetime.now(timezone.utc)
        snapshots = []
        for observation in observations:
            try:
                snapshots.append(self.build(observation, forecasts_by_date, now))
            except (TypeError, ValueError) as e:
                logger.warning(f"Snapshot build failed | market={observation.market_id} | error={e}")
        return snapshots

    def build(
        self,
        observation: Observation,
        forecasts_by_date: Mapping[str, float],
        now: Optional[datetime] = None,
    ) -> MarketSnapshot:
        now = now or datetime.now(timezone.utc)
        outcomes = list(observation.outcomes)
        prices = [float(p) for p in observation.prices]

        yes_price = find_outcome_price(outcomes, prices, "yes")
        if yes_price is None and prices:
            yes_price = prices[0]
        no_price = find_outcome_price(outcomes, prices, "no")
        if no_price is None and yes_price is not None:
            no_price = 1 - yes_price

        snapshot = MarketSnapshot(
            market_id=observation.market_id,
            question=observation.question,
            outcomes=outcomes,
            prices=prices,
            end_date=observation.end_date,
            date_key=extract_date_key(observation.end_date),
            volume=observation.volume,
            liquidity=observation.liquidity,
            yes_price=yes_price,
            no_price=no_price,
            temperature_value=extract_temperature_from_question(observation.question),
            bracket=parse_market_question(observation.question),
        )

        end_time = parse_utc_timestamp(observation.end_date)
        if end_time is not None:
            snapshot.minutes_to_close = int(round((end_time - now).total_seconds() / 60))

        self._apply_model(snapshot, forecasts_by_date, now)
        self._apply_tradeability(snapshot)
        return snapshot

    def _apply_model(
        self,
        snapshot: MarketSnapshot,
        forecasts_by_date: Mapping[str, float],
        now: datetime,
    ) -> None:
        if snapshot.bracket is None:
            logger.debug(f"Unparsed question | market={snapshot.market_id} | q={snapshot.question[:50]}")
            return

        forecast_date = extract_date_from_question(snapshot.question, now) or snapshot.date_key
        forecast_max = forecasts_by_date.get(forecast_date) if forecast_date else None
        if forecast_max is None or not math.isfinite(forecast_max):
            logger.debug(f"No forecast for market date | market={snapshot.market_id} | date={forecast_date}")
            return

        hours = hours_until_resolution(snapshot.end_date, now) if snapshot.end_date else 0.0
        snapshot.hours_to_resolution = hours
        snapshot.model_probability = self.model.market_probability(
            forecast_max, hours, snapshot.bracket.bracket_type, snapshot.bracket.value
        )
        snapshot.forecast_error = forecast_error(snapshot.bracket, forecast_max)

        if snapshot.yes_price is not None:
            analysis = self.model.analyze_edge(snapshot.model_probability, snapshot.yes_price, hours)
            snapshot.edge = analysis.edge
            snapshot.edge_percent = analysis.edge_percent
            snapshot.signal = analysis.signal

    def _apply_tradeability(self, snapshot: MarketSnapshot) -> None:
        has_valid_price = snapshot.yes_price is not None and snapshot.yes_price > 0
        meets_liquidity = snapshot.liquidity >= self.min_liquidity
        meets_volume = snapshot.volume >= self.min_volume
        default_price = is_default_price(
            snapshot.yes_price, snapshot.no_price, self.default_pairs, self.price_epsilon
        )

        snapshot.is_tradeable = has_valid_price and meets_liquidity and meets_volume and not default_price
        wants_trade = snapshot.signal is not None and snapshot.signal != Signal.HOLD
        snapshot.executed = wants_trade and snapshot.is_tradeable

        if wants_trade and not snapshot.is_tradeable:
            if not has_valid_price:
                snapshot.skip_reasons.append("invalid price")
            if not meets_liquidity:
                snapshot.skip_reasons.append(
                    f"insufficient liquidity (${snapshot.liquidity:.2f} < ${self.min_liquidity})"
                )
            if not meets_volume:
                snapshot.skip_reasons.append(
                    f"insufficient volume (${snapshot.volume:.2f} < ${self.min_volume})"
                )
            if default_price:
                snapshot.skip_reasons.append(
                    f"initialization price ({snapshot.yes_price:.3f}/{snapshot.no_price:.3f})"
                )
            logger.info(
                f"Skipping trade | market={snapshot.market_id[:8]} | "
                f"reasons={', '.join(snapshot.skip_reasons)}"
            )

        if snapshot.executed:
            snapshot.entry_side = PositionSide.YES if snapshot.signal == Signal.BUY else PositionSide.NO
            snapshot.entry_yes_price = snapshot.yes_price
            snapshot.entry_no_price = 1 - snapshot.yes_price


def forecasts_to_map(forecasts: Sequence[Any]) -> Dict[str, float]:
    """date -> max temperature for objects with .date and .max_temperature."""
    return {f.date: f.max_temperature for f in forecasts}
