# =============================================================================
# POLYMARKET LADDER TRADER
# Module: collector/normalizer.py
# Purpose: Normalize raw Gamma API markets into Observations
# =============================================================================
#
# OUTPUT: core.market_snapshot.Observation
#   market_id, question, outcomes, prices, end_date, volume, liquidity
#
# The Gamma API is inconsistent about field names and encodings:
# - outcomes / outcomePrices arrive as a list, a JSON string or a CSV string
# - ids, end dates, volume and liquidity have several spellings
# Unparsable prices become 0, missing volume/liquidity become 0.
#
# DESIGN:
# - Deterministic: same input => same output
# - Never raises on malformed fields
#
# =============================================================================

import json
import logging
from typing import Any, Dict, List, Optional

from core.market_snapshot import Observation

logger = logging.getLogger(__name__)

ID_FIELDS = ("id", "condition_id", "conditionId", "market_id")
QUESTION_FIELDS = ("question", "title", "description")
END_DATE_FIELDS = ("endDateIso", "end_date_iso", "end_date", "endDate", "close_time", "closeTime")
VOLUME_FIELDS = ("volume", "volumeNum", "total_volume")
LIQUIDITY_FIELDS = ("liquidity", "liquidityNum", "total_liquidity")


def _first(raw: Dict[str, Any], names) -> Any:
    for name in names:
        value = raw.get(name)
        if value not in (None, ""):
            return value
    return None


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def parse_list_field(value: Any) -> Optional[List[Any]]:
    """List, JSON-encoded list or comma separated string -> list."""
    if isinstance(value, list):
        return value
    if not isinstance(value, str):
        return None
    try:
        parsed = json.loads(value)
    except ValueError:
        return [part.strip() for part in value.split(",")]
    if isinstance(parsed, list):
        return parsed
    return [parsed]


def parse_outcomes(raw: Dict[str, Any]) -> List[str]:
    outcomes = parse_list_field(raw.get("outcomes"))
    if outcomes is not None:
        return [str(o) if o not in (None, "") else "Unknown" for o in outcomes]

    tokens = raw.get("outcome_tokens")
    if isinstance(tokens, list):
        return [str((t or {}).get("outcome", "Unknown")) for t in tokens]
    return ["Yes", "No"]


def parse_prices(raw: Dict[str, Any], outcome_count: int) -> List[float]:
    prices = parse_list_field(raw.get("outcomePrices"))
    if prices is None and isinstance(raw.get("outcome_prices"), list):
        prices = raw["outcome_prices"]
    if prices is None:
        return [0.0] * outcome_count
    return [_to_float(p) for p in prices]


def extract_end_date(raw: Dict[str, Any]) -> str:
    value = _first(raw, END_DATE_FIELDS)
    return str(value) if value is not None else ""


def normalize_market(raw: Dict[str, Any]) -> Observation:
    """Build an Observation from one raw Gamma market."""
    outcomes = parse_outcomes(raw)
    market_id = _first(raw, ID_FIELDS)
    question = _first(raw, QUESTION_FIELDS)

    return Observation(
        market_id=str(market_id) if market_id is not None else "unknown",
        question=str(question) if question is not None else "Unknown market",
        outcomes=outcomes,
        prices=parse_prices(raw, len(outcomes)),
        end_date=extract_end_date(raw),
        volume=_to_float(_first(raw, VOLUME_FIELDS)),
        liquidity=_to_float(_first(raw, LIQUIDITY_FIELDS)),
    )


def normalize_markets(raw_markets: List[Dict[str, Any]]) -> List[Observation]:
    observations = []
    for raw in raw_markets:
        if not isinstance(raw, dict):
            logger.warning(f"Skipping non-object market entry | type={type(raw).__name__}")
            continue
        observations.append(normalize_market(raw))
    return observations
