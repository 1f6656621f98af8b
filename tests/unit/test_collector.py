# =============================================================================
# POLYMARKET LADDER TRADER - Collector Unit Tests
# =============================================================================
#
# Tests cover:
# - Raw Gamma market normalization (string-encoded lists, field fallbacks)
# - Event slug generation
# - Lookahead window filtering
# - Resolution detection for settled markets
#
# =============================================================================

import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

import pytest

from collector.client import (
    PolymarketClient,
    event_slug,
    resolved_outcome_from_market,
    upcoming_event_slugs,
)
from collector.normalizer import normalize_market, normalize_markets, parse_list_field


NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def raw_market(market_id="501", end="2026-03-03T12:00:00Z", **extra):
    market = {
        "id": market_id,
        "question": "Will the highest temperature in London be 8°C on March 3?",
        "outcomes": '["Yes", "No"]',
        "outcomePrices": '["0.12", "0.88"]',
        "endDate": end,
        "volume": "523.5",
        "liquidity": 1200,
    }
    market.update(extra)
    return market


def response(status, payload=None):
    mock = MagicMock()
    mock.status_code = status
    mock.headers = {}
    mock.json.return_value = payload
    return mock


# =============================================================================
# NORMALIZER
# =============================================================================

class TestNormalizer:

    def test_string_encoded_lists(self):
        observation = normalize_market(raw_market())

        assert observation.market_id == "501"
        assert observation.outcomes == ["Yes", "No"]
        assert observation.prices == [0.12, 0.88]
        assert observation.end_date == "2026-03-03T12:00:00Z"
        assert observation.volume == 523.5
        assert observation.liquidity == 1200.0

    def test_field_fallbacks(self):
        observation = normalize_market({
            "conditionId": "0xabc",
            "title": "Some market",
            "outcomes": ["Yes", "No"],
            "outcome_prices": [0.3, 0.7],
            "end_date_iso": "2026-03-03",
            "volumeNum": 80,
            "liquidityNum": 160,
        })
        assert observation.market_id == "0xabc"
        assert observation.question == "Some market"
        assert observation.prices == [0.3, 0.7]
        assert observation.end_date == "2026-03-03"
        assert observation.volume == 80.0

    def test_missing_fields_get_defaults(self):
        observation = normalize_market({})
        assert observation.market_id == "unknown"
        assert observation.outcomes == ["Yes", "No"]
        assert observation.prices == [0.0, 0.0]
        assert observation.end_date == ""

    def test_unparsable_price_is_zero(self):
        observation = normalize_market(raw_market(outcomePrices='["abc", "0.9"]'))
        assert observation.prices == [0.0, 0.9]

    def test_non_object_entries_skipped(self):
        assert len(normalize_markets([raw_market(), "junk", None])) == 1

    def test_parse_list_field(self):
        assert parse_list_field('["a", "b"]') == ["a", "b"]
        assert parse_list_field("a, b") == ["a", "b"]
        assert parse_list_field(["x"]) == ["x"]
        assert parse_list_field(None) is None


# =============================================================================
# CLIENT
# =============================================================================

class TestSlugs:

    def test_event_slug(self):
        assert event_slug("London", NOW) == "highest-temperature-in-london-on-march-2"
        assert event_slug("New York", NOW) == "highest-temperature-in-new-york-on-march-2"

    def test_upcoming_slugs_include_today(self):
        slugs = upcoming_event_slugs("london", NOW, 2)
        assert slugs == [
            "highest-temperature-in-london-on-march-2",
            "highest-temperature-in-london-on-march-3",
            "highest-temperature-in-london-on-march-4",
        ]


class TestFetchTemperatureMarkets:

    def make_client(self, responses):
        session = MagicMock()
        session.get.side_effect = responses
        return PolymarketClient(city="london", lookahead_days=1, max_retries=0, session=session)

    def test_window_filter(self):
        event = {"markets": [
            raw_market("in", end="2026-03-03T12:00:00Z"),
            raw_market("past", end="2026-03-01T12:00:00Z"),
            raw_market("far", end="2026-03-09T12:00:00Z"),
        ]}
        client = self.make_client([response(200, event), response(404)])

        observations = client.fetch_temperature_markets(NOW)

        assert [o.market_id for o in observations] == ["in"]

    def test_one_failing_slug_is_skipped(self):
        event = {"markets": [raw_market("in")]}
        client = self.make_client([response(500), response(200, event)])
        assert len(client.fetch_temperature_markets(NOW)) == 1

    def test_all_slugs_failing_raises(self):
        client = self.make_client([response(500), response(502)])
        with pytest.raises(RuntimeError):
            client.fetch_temperature_markets(NOW)

    def test_no_events_is_empty(self):
        client = self.make_client([response(404), response(404)])
        assert client.fetch_temperature_markets(NOW) == []


class TestResolution:

    def test_closed_yes(self):
        market = {"closed": True, "outcomes": '["Yes", "No"]', "outcomePrices": '["1", "0"]'}
        assert resolved_outcome_from_market(market) == "YES"

    def test_closed_no(self):
        market = {"closed": True, "outcomes": ["Yes", "No"], "outcomePrices": ["0.02", "0.98"]}
        assert resolved_outcome_from_market(market) == "NO"

    def test_open_market_unresolved(self):
        market = {"closed": False, "outcomes": '["Yes", "No"]', "outcomePrices": '["1", "0"]'}
        assert resolved_outcome_from_market(market) is None

    def test_ambiguous_prices_unresolved(self):
        market = {"closed": True, "outcomes": '["Yes", "No"]', "outcomePrices": '["0.5", "0.5"]'}
        assert resolved_outcome_from_market(market) is None

    def test_unknown_label_unresolved(self):
        market = {"closed": True, "outcomes": '["Up", "Down"]', "outcomePrices": '["1", "0"]'}
        assert resolved_outcome_from_market(market) is None

    def test_fetch_resolved_outcome(self):
        session = MagicMock()
        session.get.return_value = response(200, {
            "closed": True, "outcomes": json.dumps(["Yes", "No"]), "outcomePrices": json.dumps(["0", "1"]),
        })
        client = PolymarketClient(max_retries=0, session=session)

        assert client.fetch_resolved_outcome("501") == "NO"
        assert session.get.call_args.args[0].endswith("/markets/501")

    def test_fetch_resolved_outcome_missing_market(self):
        session = MagicMock()
        session.get.return_value = response(404)
        client = PolymarketClient(max_retries=0, session=session)
        assert client.fetch_resolved_outcome("501") is None
