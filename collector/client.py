# =============================================================================
# POLYMARKET LADDER TRADER
# Module: collector/client.py
# Purpose: HTTP client for the Polymarket Gamma API (temperature ladders)
# =============================================================================
#
# DESIGN:
# - Only uses official Polymarket Gamma API endpoints
# - Retries through shared.http_retry (backoff + jitter, Retry-After)
# - READ-ONLY: never places orders
#
# API REFERENCE:
# Base URL: https://gamma-api.polymarket.com
# Endpoints: /events/slug/{slug}, /markets/{id}
#
# Daily temperature events follow the slug pattern
#   highest-temperature-in-<city>-on-<month>-<day>
#
# =============================================================================

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import requests

from core.market_parser import parse_utc_timestamp
from core.market_snapshot import Observation
from collector.normalizer import END_DATE_FIELDS, normalize_markets
from shared.http_retry import get_with_retry

logger = logging.getLogger(__name__)

MONTH_NAMES = [
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
]

RESOLVED_PRICE_THRESHOLD = 0.9
VALID_RESOLUTIONS = ("YES", "NO")


def event_slug(city: str, day: datetime) -> str:
    city_slug = city.strip().lower().replace(" ", "-")
    return f"highest-temperature-in-{city_slug}-on-{MONTH_NAMES[day.month - 1]}-{day.day}"


def upcoming_event_slugs(city: str, now: datetime, days_ahead: int) -> List[str]:
    """Slugs for today and the next days_ahead days."""
    return [event_slug(city, now + timedelta(days=i)) for i in range(days_ahead + 1)]


def _decode_list(value: Any) -> List[Any]:
    if isinstance(value, str):
        decoded = json.loads(value)
        return decoded if isinstance(decoded, list) else [decoded]
    return list(value or [])


def resolved_outcome_from_market(market: Dict[str, Any]) -> Optional[str]:
    """
    "YES"/"NO" for a closed market whose winning price is >= 0.9.

    Anything ambiguous (open, voided, unknown label) is None.
    """
    if not market.get("closed"):
        return None
    try:
        prices = [float(p) for p in _decode_list(market.get("outcomePrices", "[]"))]
        outcomes = [str(o) for o in _decode_list(market.get("outcomes", "[]"))]
    except (TypeError, ValueError):
        return None
    if not prices or not outcomes:
        return None

    max_price = max(prices)
    if max_price < RESOLVED_PRICE_THRESHOLD:
        return None
    winner_idx = prices.index(max_price)
    if winner_idx >= len(outcomes):
        return None
    winner = outcomes[winner_idx].strip().upper()
    return winner if winner in VALID_RESOLUTIONS else None


class PolymarketClient:
    """
    HTTP client for the Polymarket Gamma API.

    Features:
    - Event lookup by slug
    - Single-market resolution lookup
    - Retries with exponential backoff
    """

    BASE_URL = "https://gamma-api.polymarket.com"
    DEFAULT_TIMEOUT = 30  # seconds
    MAX_RETRIES = 3

    def __init__(
        self,
        city: str = "london",
        lookahead_days: int = 3,
        timeout: int = DEFAULT_TIMEOUT,
        max_retries: int = MAX_RETRIES,
        session: Optional[requests.Session] = None,
    ):
        self.city = city
        self.lookahead_days = lookahead_days
        self.timeout = timeout
        self.max_retries = max_retries
        self.session = session or requests.Session()

    def _get(self, endpoint: str) -> requests.Response:
        return get_with_retry(
            f"{self.BASE_URL}{endpoint}",
            timeout=self.timeout,
            max_retries=self.max_retries,
            session=self.session,
        )

    def fetch_event_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        """
        Fetch one event. None if the event does not exist (yet).

        Raises:
            RuntimeError: On exhausted retries or server errors
        """
        response = self._get(f"/events/slug/{slug}")
        if response.status_code == 404:
            logger.debug(f"Event not found | slug={slug}")
            return None
        if response.status_code >= 400:
            raise RuntimeError(f"Event fetch failed: HTTP {response.status_code} for {slug}")
        try:
            data = response.json()
        except ValueError as e:
            raise RuntimeError(f"Invalid JSON for event {slug}: {e}")
        return data if isinstance(data, dict) else None

    def fetch_temperature_markets(self, now: Optional[datetime] = None) -> List[Observation]:
        """
        Markets of the upcoming temperature events that close within the
        lookahead window.

        A failing slug is logged and skipped; the remaining slugs still count.
        """
        now = now or datetime.now(timezone.utc)
        raw_markets: List[Dict[str, Any]] = []
        failures = 0
        slugs = upcoming_event_slugs(self.city, now, self.lookahead_days)

        for slug in slugs:
            try:
                event = self.fetch_event_by_slug(slug)
            except RuntimeError as e:
                failures += 1
                logger.warning(f"Event fetch failed | slug={slug} | error={e}")
                continue
            if event is None:
                continue
            markets = event.get("markets")
            if isinstance(markets, list):
                logger.info(f"Event found | slug={slug} | markets={len(markets)}")
                raw_markets.extend(markets)

        if failures == len(slugs):
            raise RuntimeError(f"All {len(slugs)} event fetches failed")

        horizon = now + timedelta(days=self.lookahead_days)
        in_window = []
        for raw in raw_markets:
            if not isinstance(raw, dict):
                continue
            end = None
            for name in END_DATE_FIELDS:
                if raw.get(name):
                    end = parse_utc_timestamp(str(raw[name]))
                    break
            if end is not None and now <= end <= horizon:
                in_window.append(raw)

        logger.info(
            f"Temperature markets | city={self.city} | found={len(raw_markets)} | "
            f"in_window={len(in_window)}"
        )
        return normalize_markets(in_window)

    def fetch_resolved_outcome(self, market_id: str) -> Optional[str]:
        """
        Official outcome of a market, or None while unresolved.

        Raises:
            RuntimeError: On exhausted retries or server errors
        """
        response = self._get(f"/markets/{market_id}")
        if response.status_code == 404:
            logger.debug(f"Market not found | market={market_id}")
            return None
        if response.status_code >= 400:
            raise RuntimeError(f"Market fetch failed: HTTP {response.status_code} for {market_id}")
        try:
            market = response.json()
        except ValueError as e:
            raise RuntimeError(f"Invalid JSON for market {market_id}: {e}")
        if not isinstance(market, dict):
            return None
        return resolved_outcome_from_market(market)
