# =============================================================================
# INTEGRATION TESTS - POSITION LIFECYCLE
# =============================================================================
#
# Real snapshots, real engine, real positions.json in a temp directory:
# - candidate confirmation and entry gating
# - thesis stops (proximity, edge flip, dampening, stop-out cap)
# - DECIDED_95 early resolution with consolidated reports
#
# =============================================================================

import json
import shutil
import sys
import tempfile
from datetime import timedelta
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from shared.enums import CloseReason, DecisionAction, PositionSide, SkipReason
from core.candidate_selector import CandidateSelector
from core.ladder_coherence import LadderStats, compute_ladder_coherence
from core.market_snapshot import SnapshotBuilder
from paper_trader.position_manager import PositionLifecycleEngine
from paper_trader.storage import PositionsRepository
from tests.mock_data import (
    DATE_KEY,
    FORECAST_MAX,
    NOW,
    ladder_observations,
    make_candidate,
    make_config,
)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def temp_dir():
    path = Path(tempfile.mkdtemp())
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def repository(temp_dir):
    return PositionsRepository(temp_dir)


@pytest.fixture
def engine(config, repository):
    return PositionLifecycleEngine(config, repository, clock=lambda: NOW)


def build_snapshots(config, overrides=None, forecast=FORECAST_MAX):
    forecasts = {DATE_KEY: forecast} if forecast is not None else {}
    return SnapshotBuilder(config).build_all(ladder_observations(overrides), forecasts, NOW)


def build_cycle(config, overrides=None, forecast=FORECAST_MAX):
    snapshots = build_snapshots(config, overrides, forecast)
    stats = compute_ladder_coherence(snapshots)
    pool = CandidateSelector(config).build_pool(snapshots, {DATE_KEY: forecast}, NOW)
    return snapshots, stats, pool


def confirm(engine, candidate, cycles):
    state = None
    for i in range(cycles):
        state = engine.update_candidate_state(DATE_KEY, candidate, NOW + timedelta(minutes=10 * i))
    return state


def incoherent_stats():
    return {DATE_KEY: LadderStats(DATE_KEY, 7, 1.6, 0.23, 0.1, 1.0, False)}


# =============================================================================
# CONFIRMATION / ENTRY
# =============================================================================

class TestEntry:

    def test_streak_grows_and_keeps_first_seen(self, engine, config):
        _, _, pool = build_cycle(config)
        best = pool.best_by_date[DATE_KEY]

        state = confirm(engine, best, 3)

        assert state.best_candidate_key == "m8:YES"
        assert state.best_streak_count == 3
        assert state.best_since == NOW.isoformat()

    def test_leader_change_restarts_streak(self, engine):
        confirm(engine, make_candidate("a"), 2)
        state = engine.update_candidate_state(DATE_KEY, make_candidate("b"), NOW)
        assert state.best_candidate_key == "b:YES"
        assert state.best_streak_count == 1

    def test_no_candidate_clears_state(self, engine):
        confirm(engine, make_candidate(), 2)
        state = engine.update_candidate_state(DATE_KEY, None, NOW)
        assert state.best_candidate_key is None
        assert state.best_streak_count == 0

    def test_entry_after_confirm_cycles(self, engine, config, repository):
        _, stats, pool = build_cycle(config)
        best = pool.best_by_date[DATE_KEY]

        state = confirm(engine, best, 2)
        assert engine.decide_action(DATE_KEY, best, state, stats).skip_reason == SkipReason.NOT_CONFIRMED

        state = confirm(engine, best, 1)
        record = engine.decide_action(DATE_KEY, best, state, stats)
        assert record.action == DecisionAction.EXECUTED_ENTRY
        assert record.to_dict()["bestStreakCount"] == 3

        position, reason = engine.try_enter(best, stats, "snap-1", "dec-1", NOW)

        assert reason is None
        assert position.entry_side == PositionSide.YES
        assert position.entry_yes_price == 0.12
        assert abs(position.entry_no_price - 0.88) < 1e-9
        assert position.snapshot_id == "snap-1"
        assert position.decision_id == "dec-1"
        assert position.end_date == "2026-03-03T12:00:00Z"

        reloaded = repository.load_state()
        assert reloaded.positions["m8"].is_open
        assert reloaded.candidate_state[DATE_KEY].best_streak_count == 3

    def test_refusal_does_not_mutate_state(self, engine, config):
        _, stats, pool = build_cycle(config)
        best = pool.best_by_date[DATE_KEY]
        confirm(engine, best, 1)
        before = engine.state.to_dict()

        position, reason = engine.try_enter(best, stats, None, None, NOW)

        assert position is None
        assert reason == SkipReason.NOT_CONFIRMED
        assert engine.state.to_dict() == before

    def test_one_open_position_per_date(self, engine, config):
        _, stats, _ = build_cycle(config)
        engine.record_entry(make_candidate("m7", strike=7), None, None, NOW)

        candidate = make_candidate("m8")
        state = confirm(engine, candidate, 3)

        record = engine.decide_action(DATE_KEY, candidate, state, stats)
        assert record.action == DecisionAction.BLOCKED_LOCK
        assert record.skip_reason == SkipReason.DATEKEY_ALREADY_HAS_POSITION
        assert engine.try_enter(candidate, stats, None, None, NOW) == (
            None, SkipReason.DATEKEY_ALREADY_HAS_POSITION
        )

    def test_incoherent_ladder_holds(self, engine):
        candidate = make_candidate()
        state = confirm(engine, candidate, 3)

        record = engine.decide_action(DATE_KEY, candidate, state, incoherent_stats())

        assert record.action == DecisionAction.HOLD
        assert record.skip_reason == SkipReason.LADDER_INCOHERENT
        assert engine.try_enter(candidate, incoherent_stats(), None, None, NOW)[1] == (
            SkipReason.LADDER_INCOHERENT
        )

    def test_no_candidate_is_plain_hold(self, engine):
        record = engine.decide_action(DATE_KEY, None, engine.update_candidate_state(DATE_KEY, None), {})
        assert record.action == DecisionAction.HOLD
        assert "skipReason" not in record.to_dict()


# =============================================================================
# STOPS
# =============================================================================

class TestStops:

    def test_proximity_stop(self, engine, config, repository):
        engine.record_entry(make_candidate(), None, None, NOW)
        snapshots = build_snapshots(config, {"m8": 0.05}, forecast=10.0)

        exits = engine.evaluate_stops(snapshots, {DATE_KEY: 10.0}, NOW)

        assert len(exits) == 1
        assert exits[0].close_reason == CloseReason.STOP_PROXIMITY
        assert abs(exits[0].proximity_abs_c - 2.0) < 1e-9
        assert abs(exits[0].realized_pnl - (-0.07)) < 1e-9

        position = repository.load_state().positions["m8"]
        assert not position.is_open
        assert position.close_reason == CloseReason.STOP_PROXIMITY
        assert position.exit_yes_price == 0.05
        assert engine.state.stopped_out_dates[DATE_KEY] == 1

    def test_edge_flip_stop(self, engine, config):
        engine.record_entry(make_candidate(), None, None, NOW)
        snapshots = build_snapshots(config, {"m8": 0.40})

        exits = engine.evaluate_stops(snapshots, {DATE_KEY: FORECAST_MAX}, NOW)

        assert exits[0].close_reason == CloseReason.STOP_EDGE_FLIP
        assert exits[0].edge_now < -0.02
        assert abs(exits[0].realized_pnl - 0.28) < 1e-9
        assert exits[0].stop_details()["proximityAbsC"] == exits[0].proximity_abs_c

    def test_thesis_intact_keeps_position(self, engine, config):
        engine.record_entry(make_candidate(), None, None, NOW)
        snapshots = build_snapshots(config)
        assert engine.evaluate_stops(snapshots, {DATE_KEY: FORECAST_MAX}, NOW) == []
        assert engine.state.positions["m8"].is_open

    def test_no_forecast_skips_stop_evaluation(self, engine, config):
        engine.record_entry(make_candidate(), None, None, NOW)
        snapshots = build_snapshots(config, {"m8": 0.40})
        assert engine.evaluate_stops(snapshots, {}, NOW) == []

    def test_stop_dampening(self, config, repository):
        config["STOP_CONFIRM_CYCLES"] = 2
        engine = PositionLifecycleEngine(config, repository, clock=lambda: NOW)
        engine.record_entry(make_candidate(), None, None, NOW)
        snapshots = build_snapshots(config, forecast=10.0)

        assert engine.evaluate_stops(snapshots, {DATE_KEY: 10.0}, NOW) == []
        assert engine.state.positions["m8"].stop_breach_count == 1

        exits = engine.evaluate_stops(snapshots, {DATE_KEY: 10.0}, NOW)
        assert len(exits) == 1

    def test_recovered_condition_resets_breaches(self, config, repository):
        config["STOP_CONFIRM_CYCLES"] = 2
        engine = PositionLifecycleEngine(config, repository, clock=lambda: NOW)
        engine.record_entry(make_candidate(), None, None, NOW)

        engine.evaluate_stops(build_snapshots(config, forecast=10.0), {DATE_KEY: 10.0}, NOW)
        engine.evaluate_stops(build_snapshots(config), {DATE_KEY: FORECAST_MAX}, NOW)

        assert engine.state.positions["m8"].stop_breach_count == 0
        assert engine.state.positions["m8"].is_open

    def test_stopout_cap_and_market_reuse(self, engine, config):
        stopping = build_snapshots(config, forecast=10.0)

        engine.record_entry(make_candidate("m8"), None, None, NOW)
        engine.evaluate_stops(stopping, {DATE_KEY: 10.0}, NOW)
        assert engine.entry_block_reason(DATE_KEY) is None

        state = confirm(engine, make_candidate("m8"), 3)
        record = engine.decide_action(DATE_KEY, make_candidate("m8"), state, {})
        assert record.skip_reason == SkipReason.MARKET_ALREADY_TRADED

        engine.record_entry(make_candidate("m6", strike=6), None, None, NOW)
        engine.evaluate_stops(stopping, {DATE_KEY: 10.0}, NOW)

        assert engine.state.stopped_out_dates[DATE_KEY] == 2
        assert engine.entry_block_reason(DATE_KEY) == SkipReason.STOPOUT_CAP_REACHED
        assert not engine.can_enter(DATE_KEY)


# =============================================================================
# DECIDED_95
# =============================================================================

class TestEarlyResolution:

    def test_two_cycles_close_date(self, engine, config, repository):
        engine.record_entry(make_candidate(yes_price=0.25), None, None, NOW)
        decided = build_snapshots(config, {"m8": 0.95})

        first = engine.process_position_management(decided, {}, NOW)
        assert first.early_close_reports == []
        assert engine.state.decided_dates[DATE_KEY].streak_count == 1

        second = engine.process_position_management(decided, {}, NOW)
        assert len(second.early_close_reports) == 1

        report = second.early_close_reports[0]
        assert report.number_of_positions_closed == 1
        assert abs(report.total_realized_pnl - 0.70) < 1e-9
        assert report.breakdown_by_entry_side["YES"]["count"] == 1
        assert report.decided_market_id == "m8"
        assert report.decided_yes_price == 0.95

        position = engine.state.positions["m8"]
        assert position.close_reason == CloseReason.DECIDED_95
        assert not position.is_open

        assert engine.entry_block_reason(DATE_KEY) == SkipReason.DATE_DECIDED
        assert DATE_KEY in engine.state.reported_dates
        assert len(repository.load_daily_reports()) == 1

    def test_report_written_once(self, engine, config, repository):
        engine.record_entry(make_candidate(yes_price=0.25), None, None, NOW)
        decided = build_snapshots(config, {"m8": 0.95})
        for _ in range(4):
            engine.process_position_management(decided, {}, NOW)
        assert len(repository.load_daily_reports()) == 1

    def test_failed_report_write_retried_next_cycle(self, engine, config, repository):
        # a directory in place of the reports file makes the write fail
        repository.daily_reports_path.mkdir(parents=True)
        engine.record_entry(make_candidate(yes_price=0.25), None, None, NOW)
        decided = build_snapshots(config, {"m8": 0.95})

        engine.process_position_management(decided, {}, NOW)
        second = engine.process_position_management(decided, {}, NOW)

        assert second.early_close_reports == []
        assert DATE_KEY not in engine.state.reported_dates
        assert engine.state.positions["m8"].close_reason == CloseReason.DECIDED_95

        repository.daily_reports_path.rmdir()
        third = engine.process_position_management(decided, {}, NOW)

        assert len(third.early_close_reports) == 1
        assert third.early_close_reports[0].number_of_positions_closed == 1
        assert DATE_KEY in engine.state.reported_dates
        assert len(repository.load_daily_reports()) == 1

        fourth = engine.process_position_management(decided, {}, NOW)
        assert fourth.early_close_reports == []
        assert len(repository.load_daily_reports()) == 1

    def test_interrupted_streak_restarts(self, engine, config):
        engine.record_entry(make_candidate(yes_price=0.25), None, None, NOW)
        engine.process_position_management(build_snapshots(config, {"m8": 0.95}), {}, NOW)
        engine.process_position_management(build_snapshots(config, {"m8": 0.80}), {}, NOW)
        result = engine.process_position_management(build_snapshots(config, {"m8": 0.95}), {}, NOW)

        assert result.early_close_reports == []
        assert engine.state.decided_dates[DATE_KEY].streak_count == 1
        assert engine.state.positions["m8"].is_open

    def test_open_ended_brackets_do_not_decide(self, engine, config):
        engine.record_entry(make_candidate(yes_price=0.25), None, None, NOW)
        decided = build_snapshots(config, {"m11": 0.97})
        for _ in range(3):
            assert engine.process_position_management(decided, {}, NOW).early_close_reports == []

    def test_no_side_loses_what_yes_gains(self, engine, config):
        engine.record_entry(make_candidate("m8", yes_price=0.25), None, None, NOW)
        engine.record_entry(make_candidate("m9", strike=9, yes_price=0.25, side=PositionSide.NO), None, None, NOW)
        decided = build_snapshots(config, {"m8": 0.95, "m9": 0.95})

        engine.process_position_management(decided, {}, NOW)
        report = engine.process_position_management(decided, {}, NOW).early_close_reports[0]

        yes_pnl = report.breakdown_by_entry_side["YES"]["totalPnl"]
        no_pnl = report.breakdown_by_entry_side["NO"]["totalPnl"]
        assert abs(yes_pnl + no_pnl) < 1e-9
        assert report.number_of_positions_closed == 2


# =============================================================================
# PERSISTENCE
# =============================================================================

class TestPersistence:

    def test_state_survives_restart(self, engine, config, repository):
        engine.record_entry(make_candidate(), "s", "d", NOW)
        confirm(engine, make_candidate("m9", strike=9), 2)

        restarted = PositionLifecycleEngine(config, repository, clock=lambda: NOW)

        assert restarted.state.positions["m8"].snapshot_id == "s"
        assert restarted.state.candidate_state[DATE_KEY].best_streak_count == 2
        assert restarted.entry_block_reason(DATE_KEY) == SkipReason.DATEKEY_ALREADY_HAS_POSITION

    def test_legacy_boolean_stopouts(self, config, repository, temp_dir):
        path = temp_dir / "trading" / "positions.json"
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"stoppedOutDates": {DATE_KEY: True, "2026-03-04": False}}))

        state = repository.load_state()

        assert state.stopped_out_dates == {DATE_KEY: 1, "2026-03-04": 0}

    def test_corrupt_file_starts_empty(self, repository, temp_dir):
        path = temp_dir / "trading" / "positions.json"
        path.parent.mkdir(parents=True)
        path.write_text("{not json")

        assert repository.load_state().positions == {}
