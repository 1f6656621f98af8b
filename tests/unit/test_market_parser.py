"""
UNIT TESTS - MARKET QUESTION PARSER
====================================
Tests fuer core/market_parser.py
"""

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from datetime import datetime, timezone

from shared.enums import BracketType
from core.market_parser import (
    ParsedBracket,
    extract_date_from_question,
    extract_date_key,
    extract_temperature_from_question,
    is_exact_temperature_market,
    parse_market_question,
    parse_utc_timestamp,
)


NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# QUESTION PARSING
# =============================================================================

class TestParseMarketQuestion:

    def test_or_higher(self):
        q = "Will the highest temperature in London be 9°C or higher on March 3?"
        assert parse_market_question(q) == ParsedBracket(BracketType.AT_LEAST, 9.0)

    def test_or_below(self):
        q = "Will the highest temperature in London be 3°C or below on March 3?"
        assert parse_market_question(q) == ParsedBracket(BracketType.AT_MOST, 3.0)

    def test_exact(self):
        q = "Will the highest temperature in London be 8°C on March 3?"
        assert parse_market_question(q) == ParsedBracket(BracketType.EXACT, 8.0)

    def test_degree_symbol_variants(self):
        assert parse_market_question("be 8ºC on March 3") == ParsedBracket(BracketType.EXACT, 8.0)
        assert parse_market_question("be 8 C on March 3") == ParsedBracket(BracketType.EXACT, 8.0)
        assert parse_market_question("be 12C or higher on May 1").bracket_type == BracketType.AT_LEAST

    def test_case_insensitive(self):
        parsed = parse_market_question("WILL IT BE 10°C OR HIGHER ON MARCH 3?")
        assert parsed == ParsedBracket(BracketType.AT_LEAST, 10.0)

    def test_unrecognized(self):
        assert parse_market_question("Will it rain in London on March 3?") is None
        assert parse_market_question("") is None
        assert parse_market_question(None) is None


class TestExactMarketDetection:

    def test_exact_market(self):
        assert is_exact_temperature_market("Will the highest temperature in London be 8°C on March 3?")

    def test_open_ended_markets_are_not_exact(self):
        assert not is_exact_temperature_market("be 9°C or higher on March 3")
        assert not is_exact_temperature_market("be 3°C or below on March 3")

    def test_missing_question(self):
        assert not is_exact_temperature_market(None)


def test_extract_temperature():
    assert extract_temperature_from_question("be 8°C on March 3") == 8.0
    assert extract_temperature_from_question("be 10.5°C or higher") == 10.5
    assert extract_temperature_from_question("no number here") is None


# =============================================================================
# DATES
# =============================================================================

class TestExtractDateFromQuestion:

    def test_current_year(self):
        assert extract_date_from_question("be 8°C on March 3?", NOW) == "2026-03-03"

    def test_same_day_is_current_year(self):
        assert extract_date_from_question("be 8°C on March 2?", NOW) == "2026-03-02"

    def test_past_date_rolls_to_next_year(self):
        assert extract_date_from_question("be 8°C on January 5?", NOW) == "2027-01-05"

    def test_invalid_calendar_date(self):
        assert extract_date_from_question("be 8°C on February 30?", NOW) is None

    def test_no_date(self):
        assert extract_date_from_question("be 8°C tomorrow", NOW) is None


class TestTimestamps:

    def test_z_suffix(self):
        parsed = parse_utc_timestamp("2026-03-03T12:00:00Z")
        assert parsed == datetime(2026, 3, 3, 12, 0, tzinfo=timezone.utc)

    def test_offset_converted_to_utc(self):
        parsed = parse_utc_timestamp("2026-03-03T01:00:00+02:00")
        assert parsed == datetime(2026, 3, 2, 23, 0, tzinfo=timezone.utc)

    def test_naive_is_utc(self):
        assert parse_utc_timestamp("2026-03-03").tzinfo == timezone.utc

    def test_unparsable(self):
        assert parse_utc_timestamp("not a date") is None
        assert parse_utc_timestamp(None) is None
        assert parse_utc_timestamp(12345) is None

    def test_date_key_is_utc_calendar_date(self):
        assert extract_date_key("2026-03-03T01:00:00+02:00") == "2026-03-02"
        assert extract_date_key("2026-03-03T12:00:00Z") == "2026-03-03"
        assert extract_date_key("") is None
