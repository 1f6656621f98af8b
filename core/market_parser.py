# =============================================================================
# POLYMARKET LADDER TRADER - MARKET QUESTION PARSER
# =============================================================================
#
# Turns human-readable market questions into typed brackets.
#
# SUPPORTED QUESTION SHAPES:
#   "Will the highest temperature in London be 9°C or higher on March 3?"
#   "Will the highest temperature in London be 3°C or below on March 3?"
#   "Will the highest temperature in London be 8°C on March 3?"
#
# The degree symbol varies between listings (°, º, or missing), so the
# patterns accept any of them.
#
# Also owns timestamp parsing: every dateKey in the system is the UTC
# calendar date of a market's end timestamp.
#
# =============================================================================

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from shared.enums import BracketType

logger = logging.getLogger(__name__)


# =============================================================================
# PATTERNS
# =============================================================================

AT_LEAST_PATTERN = re.compile(r"(\d+(?:\.\d+)?)[°º\s]*C\s+or\s+higher", re.IGNORECASE)
AT_MOST_PATTERN = re.compile(r"(\d+(?:\.\d+)?)[°º\s]*C\s+or\s+below", re.IGNORECASE)
EXACT_PATTERN = re.compile(r"be\s+(\d+(?:\.\d+)?)[°º\s]*C\s+on", re.IGNORECASE)
TEMPERATURE_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*[°º]?\s*C", re.IGNORECASE)
MONTH_DAY_PATTERN = re.compile(
    r"(January|February|March|April|May|June|July|August|September|October|November|December)"
    r"\s+(\d{1,2})",
    re.IGNORECASE,
)

MONTHS = {
    "january": 1, "february": 2, "march": 3, "april": 4,
    "may": 5, "june": 6, "july": 7, "august": 8,
    "september": 9, "october": 10, "november": 11, "december": 12,
}


# =============================================================================
# DATA MODELS
# =============================================================================


@dataclass(frozen=True)
class ParsedBracket:
    """One bracket of a ladder: its type and its integer-ish value in °C."""
    bracket_type: BracketType
    value: float

    def to_dict(self) -> Dict[str, Any]:
        return {"bracketType": self.bracket_type.value, "bracketValue": self.value}


# =============================================================================
# QUESTION PARSING
# =============================================================================


def parse_market_question(question: Optional[str]) -> Optional[ParsedBracket]:
    """
    Parse a market question into a bracket.

    "or higher" wins over "or below", which wins over the exact form.

    Returns:
        ParsedBracket or None if the question matches no known shape
    """
    if not question:
        return None

    match = AT_LEAST_PATTERN.search(question)
    if match:
        return ParsedBracket(BracketType.AT_LEAST, float(match.group(1)))

    match = AT_MOST_PATTERN.search(question)
    if match:
        return ParsedBracket(BracketType.AT_MOST, float(match.group(1)))

    match = EXACT_PATTERN.search(question)
    if match:
        return ParsedBracket(BracketType.EXACT, float(match.group(1)))

    return None


def is_exact_temperature_market(question: Optional[str]) -> bool:
    """True for "be X°C on" questions that are neither open-ended form."""
    if not question:
        return False
    if re.search(r"or\s+higher", question, re.IGNORECASE):
        return False
    if re.search(r"or\s+below", question, re.IGNORECASE):
        return False
    return EXACT_PATTERN.search(question) is not None


def extract_temperature_from_question(question: Optional[str]) -> Optional[float]:
    """First "<number> °C" in the question, or None."""
    if not question:
        return None
    match = TEMPERATURE_PATTERN.search(question)
    return float(match.group(1)) if match else None


def extract_date_from_question(
    question: Optional[str],
    now: Optional[datetime] = None,
) -> Optional[str]:
    """
    Extract "Month Day" from a question as YYYY-MM-DD.

    Uses the current year, or next year if that date has already passed.
    """
    if not question:
        return None

    match = MONTH_DAY_PATTERN.search(question)
    if not match:
        return None

    month = MONTHS[match.group(1).lower()]
    day = int(match.group(2))
    now = now or datetime.now(timezone.utc)

    year = now.year
    try:
        candidate = datetime(year, month, day, tzinfo=timezone.utc)
    except ValueError:
        logger.warning(f"Invalid calendar date in question | month={month} | day={day}")
        return None

    if candidate.date() < now.date():
        year += 1
        try:
            candidate = datetime(year, month, day, tzinfo=timezone.utc)
        except ValueError:
            return None

    return candidate.strftime("%Y-%m-%d")


# =============================================================================
# TIMESTAMPS
# =============================================================================


def parse_utc_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp (or bare date) to an aware UTC datetime.

    Naive values are taken as UTC. Returns None for anything unparsable.
    """
    if not value or not isinstance(value, str):
        return None

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def extract_date_key(end_date: Any) -> Optional[str]:
    """UTC calendar date (YYYY-MM-DD) of an end timestamp, or None."""
    parsed = parse_utc_timestamp(end_date)
    if parsed is None:
        return None
    return parsed.strftime("%Y-%m-%d")


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601."""
    return datetime.now(timezone.utc).isoformat()
