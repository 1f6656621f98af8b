"""
INTEGRATION TESTS - SETTLEMENT
===============================
Tests fuer paper_trader/settlement.py mit echtem Repository
"""

import shutil
import sys
import tempfile
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from shared.enums import CloseReason, PositionSide
from paper_trader.models import SettlementRecord
from paper_trader.position_manager import PositionLifecycleEngine
from paper_trader.settlement import (
    SettlementProcessor,
    aggregate_daily_pnl,
    mark_to_market_pnl,
    settlement_pnl,
    summarize_settlements,
)
from paper_trader.storage import PositionsRepository
from tests.mock_data import NOW, make_candidate, make_config


AFTER_RESOLUTION = datetime(2026, 3, 4, 9, 0, tzinfo=timezone.utc)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def temp_dir():
    path = Path(tempfile.mkdtemp())
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def engine(temp_dir):
    return PositionLifecycleEngine(make_config(), PositionsRepository(temp_dir), clock=lambda: NOW)


class FakeResolutions:
    """market_id -> outcome, None, or an exception to raise."""

    def __init__(self, outcomes):
        self.outcomes = outcomes
        self.calls = []

    def __call__(self, market_id):
        self.calls.append(market_id)
        outcome = self.outcomes.get(market_id)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def record(market_id, end_date, pnl, side=PositionSide.YES):
    return SettlementRecord(
        timestamp=AFTER_RESOLUTION.isoformat(),
        market_id=market_id,
        question="q",
        end_date=end_date,
        entry_side=side,
        entry_yes_price=0.2,
        entry_no_price=0.8,
        resolved_outcome="YES",
        trade_pnl=pnl,
    )


# =============================================================================
# FORMULAS
# =============================================================================

class TestPnlFormulas:

    def test_settlement_pnl(self):
        assert abs(settlement_pnl(PositionSide.YES, "YES", 0.12, 0.88) - 0.88) < 1e-9
        assert abs(settlement_pnl(PositionSide.YES, "NO", 0.12, 0.88) - (-0.12)) < 1e-9
        assert abs(settlement_pnl(PositionSide.NO, "NO", 0.12, 0.88) - 0.12) < 1e-9
        assert abs(settlement_pnl(PositionSide.NO, "YES", 0.12, 0.88) - (-0.88)) < 1e-9

    def test_mark_to_market_is_zero_sum(self):
        yes = mark_to_market_pnl(PositionSide.YES, 0.3, 0.7, 0.55)
        no = mark_to_market_pnl(PositionSide.NO, 0.3, 0.7, 0.55)
        assert abs(yes - 0.25) < 1e-9
        assert abs(yes + no) < 1e-9

    def test_mark_to_market_scales_with_size(self):
        assert abs(mark_to_market_pnl(PositionSide.YES, 0.3, 0.7, 0.5, size=4) - 0.8) < 1e-9


class TestAggregation:

    def test_grouped_by_end_date_ascending(self):
        summaries = aggregate_daily_pnl([
            record("a", "2026-03-04T12:00:00Z", 0.5),
            record("b", "2026-03-03T12:00:00Z", -0.2),
            record("c", "2026-03-04T12:00:00Z", 0.1),
        ])

        assert [s.date for s in summaries] == ["2026-03-03", "2026-03-04"]
        assert summaries[1].trades == 2
        assert abs(summaries[1].daily_pnl - 0.6) < 1e-9

    def test_summary_totals(self):
        summary = summarize_settlements([
            record("a", "2026-03-03T12:00:00Z", 0.5),
            record("b", "2026-03-04T12:00:00Z", -0.25),
        ])
        assert summary["total_trades"] == 2
        assert abs(summary["total_pnl"] - 0.25) < 1e-9
        assert summary["days"][0]["dailyPnl"] == 0.5

    def test_record_without_dates_skipped(self):
        assert aggregate_daily_pnl([record("a", "", 1.0)]) == []

    def test_offset_end_date_grouped_by_utc_day(self):
        summaries = aggregate_daily_pnl([
            record("a", "2026-03-03T23:30:00-05:00", 0.5),
            record("b", "2026-03-04T12:00:00Z", 0.1),
        ])

        assert [s.date for s in summaries] == ["2026-03-04"]
        assert summaries[0].trades == 2

    def test_unparseable_end_date_falls_back_to_date_key(self):
        entry = replace(record("a", "soon", 0.5), date_key="2026-03-03")
        assert [s.date for s in aggregate_daily_pnl([entry])] == ["2026-03-03"]


# =============================================================================
# PROCESSOR
# =============================================================================

class TestSettlementProcessor:

    def test_settles_ended_positions(self, engine):
        engine.record_entry(make_candidate(), None, None, NOW)
        resolutions = FakeResolutions({"m8": "YES"})
        processor = SettlementProcessor(engine, resolutions)

        result = processor.run_settlement_pass(AFTER_RESOLUTION)

        assert result.checked == 1
        assert len(result.settled) == 1
        assert abs(result.settled[0].trade_pnl - 0.88) < 1e-9

        position = engine.state.positions["m8"]
        assert position.close_reason == CloseReason.OFFICIAL_SETTLEMENT
        assert position.resolved_outcome == "YES"
        assert not position.is_open
        assert position.is_settled

    def test_settlement_overrides_mark_to_market(self, engine):
        engine.record_entry(make_candidate(), None, None, NOW)
        engine.state.positions["m8"].realized_pnl = 0.5
        engine.state.positions["m8"].is_open = False

        SettlementProcessor(engine, FakeResolutions({"m8": "NO"})).run_settlement_pass(AFTER_RESOLUTION)

        assert abs(engine.state.positions["m8"].realized_pnl - (-0.12)) < 1e-9

    def test_future_end_date_not_checked(self, engine):
        engine.record_entry(make_candidate(), None, None, NOW)
        resolutions = FakeResolutions({"m8": "YES"})

        result = SettlementProcessor(engine, resolutions).run_settlement_pass(NOW)

        assert result.checked == 0
        assert resolutions.calls == []

    def test_pending_and_errors(self, engine):
        engine.record_entry(make_candidate("m8"), None, None, NOW)
        engine.record_entry(make_candidate("m9", strike=9), None, None, NOW)
        resolutions = FakeResolutions({"m8": None, "m9": RuntimeError("HTTP 502")})

        result = SettlementProcessor(engine, resolutions).run_settlement_pass(AFTER_RESOLUTION)

        assert result.checked == 2
        assert result.pending == 1
        assert len(result.errors) == 1
        assert "m9" in result.errors[0]
        assert engine.state.positions["m8"].is_open

    def test_settles_once(self, engine):
        engine.record_entry(make_candidate(), None, None, NOW)
        processor = SettlementProcessor(engine, FakeResolutions({"m8": "YES"}))

        processor.run_settlement_pass(AFTER_RESOLUTION)
        position = engine.state.positions["m8"]

        assert processor.settle_position(position, "NO", AFTER_RESOLUTION) is None
        assert processor.run_settlement_pass(AFTER_RESOLUTION).checked == 0
        assert len(engine.repository.load_settlements()) == 1

    def test_settled_ids_survive_restart(self, engine, temp_dir):
        engine.record_entry(make_candidate(), None, None, NOW)
        SettlementProcessor(engine, FakeResolutions({"m8": "YES"})).run_settlement_pass(AFTER_RESOLUTION)

        restarted = PositionLifecycleEngine(make_config(), PositionsRepository(temp_dir))
        resolutions = FakeResolutions({"m8": "NO"})
        processor = SettlementProcessor(restarted, resolutions)

        assert processor.is_settled("m8")
        assert processor.run_settlement_pass(AFTER_RESOLUTION).checked == 0
        assert resolutions.calls == []

    def test_settled_position_not_resettled_after_log_loss(self, engine, temp_dir):
        engine.record_entry(make_candidate(), None, None, NOW)
        SettlementProcessor(engine, FakeResolutions({"m8": "YES"})).run_settlement_pass(AFTER_RESOLUTION)
        engine.repository.settlement_log_path.write_text("{not json", encoding="utf-8")

        restarted = PositionLifecycleEngine(make_config(), PositionsRepository(temp_dir))
        resolutions = FakeResolutions({"m8": "NO"})
        result = SettlementProcessor(restarted, resolutions).run_settlement_pass(AFTER_RESOLUTION)

        assert result.checked == 0
        assert result.settled == []
        assert resolutions.calls == []
        assert abs(restarted.state.positions["m8"].realized_pnl - 0.88) < 1e-9


class TestSettlementLog:

    def test_corrupt_log_backed_up_before_append(self, temp_dir):
        repository = PositionsRepository(temp_dir)
        repository.settlement_log_path.parent.mkdir(parents=True)
        repository.settlement_log_path.write_text("{not json", encoding="utf-8")

        assert repository.append_settlement(record("m8", "2026-03-03T12:00:00Z", 0.88))

        backups = list(repository.settlement_log_path.parent.glob("settlement_log.json.corrupt-*"))
        assert len(backups) == 1
        assert backups[0].read_text(encoding="utf-8") == "{not json"
        assert [r.market_id for r in repository.load_settlements()] == ["m8"]

    def test_valid_log_appended_in_place(self, temp_dir):
        repository = PositionsRepository(temp_dir)
        repository.append_settlement(record("m8", "2026-03-03T12:00:00Z", 0.88))
        repository.append_settlement(record("m9", "2026-03-03T12:00:00Z", -0.12))

        assert len(repository.load_settlements()) == 2
        assert list(repository.settlement_log_path.parent.glob("*.corrupt-*")) == []
