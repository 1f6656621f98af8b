# =============================================================================
# POLYMARKET LADDER TRADER - CYCLE ORCHESTRATOR
# =============================================================================
#
# One decision cycle, strictly in this order:
# 1. Markets:     fetch temperature ladders (Gamma API)
# 2. Forecasts:   fetch forecasts for the market dates (change detection)
# 3. Evaluate:    snapshots -> ladder coherence -> candidate pool
# 4. Positions:   thesis stops, then DECIDED_95 early resolution
# 5. Decide:      per date candidate streak update and action
# 6. Log:         monitoring + decision JSONL (snapshotId / decisionId)
# 7. Enter:       open approved positions with both correlation ids
# 8. Settle:      official settlement pass
# 9. Status:      logs/status.json
#
# Every step is isolated: a failing step is recorded as a failed StepResult
# and the cycle continues with whatever data it has.
#
# PAPER TRADING ONLY:
# NO real orders are placed. NO real money is at risk.
#
# =============================================================================

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from shared.enums import DecisionAction
from core.candidate_selector import CandidatePool, CandidateSelector
from core.forecast_sources import DailyForecast, OpenWeatherSource, TomorrowIoSource
from core.ladder_coherence import LadderStats, compute_ladder_coherence
from core.market_parser import extract_date_from_question, extract_date_key
from core.market_snapshot import MarketSnapshot, Observation, SnapshotBuilder, forecasts_to_map
from core.multi_forecast import ForecastTracker, fetch_forecasts_for_dates
from core.probability_model import ProbabilityModel
from core.trading_config import load_config
from paper_trader.logger import CycleLogger
from paper_trader.models import DecisionActionRecord, StopExitInfo
from paper_trader.position_manager import PositionLifecycleEngine, PositionManagementResult
from paper_trader.settlement import SettlementProcessor, summarize_settlements
from paper_trader.storage import PositionsRepository, read_json, write_json_atomic

logger = logging.getLogger(__name__)

MarketFetcher = Callable[[datetime], List[Observation]]
ForecastFetcher = Callable[[List[str]], List[DailyForecast]]
ResolutionFetcher = Callable[[str], Optional[str]]


class RunState(Enum):
    """Cycle run state."""
    OK = "OK"
    DEGRADED = "DEGRADED"
    FAIL = "FAIL"


@dataclass
class StepResult:
    """Result of a single cycle step."""
    name: str
    success: bool
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


@dataclass
class CycleResult:
    """Result of a full decision cycle."""
    state: RunState
    timestamp: str
    cycle_id: str
    steps: List[StepResult] = field(default_factory=list)
    summary: Dict[str, Any] = field(default_factory=dict)
    snapshot_id: Optional[str] = None
    decision_id: Optional[str] = None

    def add_step(self, step: StepResult):
        self.steps.append(step)
        if not step.success and self.state == RunState.OK:
            self.state = RunState.DEGRADED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cycleId": self.cycle_id,
            "timestamp": self.timestamp,
            "state": self.state.value,
            "snapshotId": self.snapshot_id,
            "decisionId": self.decision_id,
            "summary": self.summary,
            "steps": [
                {"name": s.name, "success": s.success, "message": s.message, "error": s.error}
                for s in self.steps
            ],
        }


@dataclass
class CycleContext:
    """Data flowing between the steps of one cycle."""
    now: datetime
    observations: List[Observation] = field(default_factory=list)
    forecasts_by_date: Dict[str, float] = field(default_factory=dict)
    snapshots: List[MarketSnapshot] = field(default_factory=list)
    ladder_stats: Dict[str, LadderStats] = field(default_factory=dict)
    pool: Optional[CandidatePool] = None
    management: PositionManagementResult = field(default_factory=PositionManagementResult)
    actions: List[DecisionActionRecord] = field(default_factory=list)
    snapshot_id: Optional[str] = None
    decision_id: Optional[str] = None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def market_dates(observations: List[Observation], now: datetime) -> List[str]:
    """Dates forecasts are needed for: question dates and end-date keys."""
    dates = set()
    for observation in observations:
        date_key = extract_date_key(observation.end_date)
        if date_key:
            dates.add(date_key)
        question_date = extract_date_from_question(observation.question, now)
        if question_date:
            dates.add(question_date)
    return sorted(dates)


class Orchestrator:
    """
    Ladder trader cycle orchestrator.

    Collaborators are injected as plain callables so a cycle can run
    against fixtures.
    """

    def __init__(
        self,
        config: Dict[str, Any],
        market_fetcher: MarketFetcher,
        forecast_fetcher: ForecastFetcher,
        resolution_fetcher: ResolutionFetcher,
        logs_dir: Optional[Path] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config
        self.logs_dir = Path(logs_dir) if logs_dir else Path(__file__).parent.parent / "logs"
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        self.status_path = self.logs_dir / "status.json"
        self.clock = clock or _utc_now

        self.market_fetcher = market_fetcher
        self.forecast_fetcher = forecast_fetcher

        self.model = ProbabilityModel(config)
        self.snapshot_builder = SnapshotBuilder(config, self.model)
        self.selector = CandidateSelector(config, self.model)
        self.forecast_tracker = ForecastTracker()
        self.cycle_logger = CycleLogger(self.logs_dir)
        self.repository = PositionsRepository(self.logs_dir)
        self.engine = PositionLifecycleEngine(config, self.repository, self.model, clock=self.clock)
        self.settlement = SettlementProcessor(self.engine, resolution_fetcher)

    # =========================================================================
    # CYCLE
    # =========================================================================

    def run_cycle(self, now: Optional[datetime] = None) -> CycleResult:
        """Execute one decision cycle."""
        cycle_start = time.perf_counter()
        ctx = CycleContext(now=now or self.clock())
        cycle_id = f"CYCLE-{ctx.now.strftime('%Y%m%d-%H%M%S')}-{uuid.uuid4().hex[:6]}"
        logger.info(f"=== Cycle START === cycle_id={cycle_id}")

        result = CycleResult(state=RunState.OK, timestamp=ctx.now.isoformat(), cycle_id=cycle_id)

        steps = [
            ("markets", self._step_markets),
            ("forecasts", self._step_forecasts),
            ("evaluate", self._step_evaluate),
            ("position_management", self._step_position_management),
            ("decide", self._step_decide),
            ("cycle_log", self._step_cycle_log),
            ("entries", self._step_entries),
            ("settlement", self._step_settlement),
        ]
        for name, step in steps:
            result.add_step(self._run_step(name, step, ctx))

        if not result.steps[0].success:
            result.state = RunState.FAIL

        result.snapshot_id = ctx.snapshot_id
        result.decision_id = ctx.decision_id
        result.summary = self._build_summary(result, ctx)
        result.summary["duration_seconds"] = round(time.perf_counter() - cycle_start, 2)

        result.add_step(self._write_status(result))
        logger.info(f"=== Cycle END === cycle_id={cycle_id} state={result.state.value}")
        return result

    def _run_step(self, name: str, step: Callable[[CycleContext], StepResult], ctx: CycleContext) -> StepResult:
        try:
            return step(ctx)
        except Exception as e:
            logger.exception(f"Cycle step failed | step={name} | error={e}")
            return StepResult(name=name, success=False, message="Step failed", error=str(e))

    def _step_markets(self, ctx: CycleContext) -> StepResult:
        ctx.observations = list(self.market_fetcher(ctx.now))
        if not ctx.observations:
            logger.info("No temperature markets found")
        return StepResult(
            name="markets",
            success=True,
            message=f"{len(ctx.observations)} markets",
            data={"markets_fetched": len(ctx.observations)},
        )

    def _step_forecasts(self, ctx: CycleContext) -> StepResult:
        dates = market_dates(ctx.observations, ctx.now)
        try:
            if dates:
                forecasts = self.forecast_fetcher(dates)
                self.forecast_tracker.update(forecasts, ctx.now)
        finally:
            # previous forecasts stay in use if the fetch failed
            ctx.forecasts_by_date = forecasts_to_map(self.forecast_tracker.latest)
        return StepResult(
            name="forecasts",
            success=True,
            message=f"{len(ctx.forecasts_by_date)} of {len(dates)} dates",
            data={"forecast_dates": len(ctx.forecasts_by_date)},
        )

    def _step_evaluate(self, ctx: CycleContext) -> StepResult:
        ctx.snapshots = self.snapshot_builder.build_all(ctx.observations, ctx.forecasts_by_date, ctx.now)
        ctx.ladder_stats = compute_ladder_coherence(ctx.snapshots)

        model_temps = {
            s.date_key: ctx.forecasts_by_date[s.date_key]
            for s in ctx.snapshots
            if s.date_key and s.date_key in ctx.forecasts_by_date
        }
        ctx.pool = self.selector.build_pool(ctx.snapshots, model_temps, ctx.now)

        for snapshot in ctx.snapshots:
            if snapshot.model_probability is None or snapshot.yes_price is None:
                continue
            label = f"{snapshot.temperature_value}°C" if snapshot.temperature_value is not None else snapshot.market_id
            logger.info(
                f"Market | {snapshot.date_key} {label} | mkt={snapshot.yes_price * 100:.1f}% | "
                f"model={snapshot.model_probability * 100:.1f}% | "
                f"signal={snapshot.signal.value if snapshot.signal else '-'}"
            )

        tradeable = sum(1 for s in ctx.snapshots if s.is_tradeable)
        incoherent = sum(1 for s in ctx.ladder_stats.values() if not s.ladder_coherent)
        return StepResult(
            name="evaluate",
            success=True,
            message=f"{len(ctx.snapshots)} snapshots, {len(ctx.pool.best_by_date)} best candidates",
            data={
                "snapshots": len(ctx.snapshots),
                "tradeable": tradeable,
                "incoherent_ladders": incoherent,
                "best_candidates": len(ctx.pool.best_by_date),
            },
        )

    def _step_position_management(self, ctx: CycleContext) -> StepResult:
        ctx.management = self.engine.process_position_management(
            ctx.snapshots, ctx.forecasts_by_date, ctx.now
        )
        return StepResult(
            name="position_management",
            success=True,
            message=(
                f"{len(ctx.management.stop_exits)} stop exits, "
                f"{len(ctx.management.early_close_reports)} dates closed early"
            ),
            data={
                "stop_exits": len(ctx.management.stop_exits),
                "early_closes": len(ctx.management.early_close_reports),
            },
        )

    def _step_decide(self, ctx: CycleContext) -> StepResult:
        pool = ctx.pool or CandidatePool({}, {}, {})
        stop_exits: Dict[str, StopExitInfo] = {e.date_key: e for e in ctx.management.stop_exits}
        date_keys = set(pool.model_temps_by_date) | set(pool.best_by_date) | set(stop_exits)

        actions = []
        for date_key in sorted(date_keys):
            best = pool.best_by_date.get(date_key)
            candidate_state = self.engine.update_candidate_state(date_key, best, ctx.now)
            record = self.engine.decide_action(date_key, best, candidate_state, ctx.ladder_stats)

            stop_exit = stop_exits.get(date_key)
            if stop_exit is not None:
                record = DecisionActionRecord(
                    date_key=date_key,
                    action=DecisionAction.STOP_EXIT,
                    selected_best_candidate=best.to_dict() if best is not None else None,
                    best_streak_count=candidate_state.best_streak_count,
                    confirm_cycles=self.engine.confirm_cycles,
                    stop_reason=stop_exit.close_reason,
                    stop_details=stop_exit.stop_details(),
                )
            actions.append(record)

            if record.action != DecisionAction.HOLD or record.skip_reason is not None:
                logger.info(
                    f"Decision | date={date_key} | action={record.action.value} | "
                    f"streak={record.best_streak_count}/{record.confirm_cycles} | "
                    f"reason={(record.skip_reason or record.stop_reason).value if (record.skip_reason or record.stop_reason) else '-'}"
                )

        ctx.actions = actions
        entries = sum(1 for a in actions if a.action == DecisionAction.EXECUTED_ENTRY)
        return StepResult(
            name="decide",
            success=True,
            message=f"{len(actions)} dates, {entries} entries approved",
            data={"dates": len(actions), "entries_approved": entries},
        )

    def _step_cycle_log(self, ctx: CycleContext) -> StepResult:
        pool = ctx.pool or CandidatePool({}, {}, {})
        best = pool.best_sorted()
        ctx.snapshot_id = self.cycle_logger.append_monitoring_snapshot(
            self.forecast_tracker.latest, ctx.snapshots, pool.model_temps_by_date, best, ctx.now
        )
        ctx.decision_id = self.cycle_logger.append_decision_record(
            ctx.snapshot_id, ctx.snapshots, ctx.ladder_stats, best, ctx.actions, ctx.now
        )
        return StepResult(
            name="cycle_log",
            success=True,
            message=f"snapshot {ctx.snapshot_id[:8]}, decision {ctx.decision_id[:8]}",
            data={"snapshot_id": ctx.snapshot_id, "decision_id": ctx.decision_id},
        )

    def _step_entries(self, ctx: CycleContext) -> StepResult:
        pool = ctx.pool or CandidatePool({}, {}, {})
        opened = []
        for action in ctx.actions:
            if action.action != DecisionAction.EXECUTED_ENTRY:
                continue
            candidate = pool.best_by_date.get(action.date_key)
            if candidate is None:
                continue
            position, _ = self.engine.try_enter(
                candidate, ctx.ladder_stats, ctx.snapshot_id, ctx.decision_id, ctx.now
            )
            if position is not None:
                opened.append(position.market_id)
        return StepResult(
            name="entries",
            success=True,
            message=f"{len(opened)} positions opened",
            data={"positions_opened": len(opened), "market_ids": opened},
        )

    def _step_settlement(self, ctx: CycleContext) -> StepResult:
        outcome = self.settlement.run_settlement_pass(ctx.now)
        return StepResult(
            name="settlement",
            success=not outcome.errors,
            message=f"{outcome.checked} checked, {len(outcome.settled)} settled",
            data={
                "checked": outcome.checked,
                "settled": len(outcome.settled),
                "pending": outcome.pending,
            },
            error="; ".join(outcome.errors) if outcome.errors else None,
        )

    # =========================================================================
    # SUMMARY / STATUS
    # =========================================================================

    def _build_summary(self, result: CycleResult, ctx: CycleContext) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for step in result.steps:
            data.update({k: v for k, v in step.data.items() if not isinstance(v, list)})
        data["state"] = result.state.value
        data["open_positions"] = len(self.engine.state.open_positions())
        return data

    def _write_status(self, result: CycleResult) -> StepResult:
        try:
            write_json_atomic(self.status_path, result.to_dict())
            return StepResult(name="status_writer", success=True, message="Status written")
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Status write failed: {e}")
            return StepResult(
                name="status_writer", success=False, message="Failed to write status", error=str(e)
            )

    def get_status(self) -> Dict[str, Any]:
        """Current state without running a cycle."""
        last = read_json(self.status_path, {}) or {}
        status = self.engine.summary()
        status.update({
            "last_run": last.get("timestamp", "Never"),
            "last_state": last.get("state", "UNKNOWN"),
            "settled_count": len(self.settlement.settled_market_ids),
            "logs_path": str(self.logs_dir),
        })
        return status

    def daily_pnl(self) -> Dict[str, Any]:
        return summarize_settlements(self.repository.load_settlements())


# =============================================================================
# FACTORY
# =============================================================================


def create_orchestrator(
    config: Optional[Dict[str, Any]] = None,
    logs_dir: Optional[Path] = None,
) -> Orchestrator:
    """Orchestrator wired to the live Gamma API and forecast providers."""
    from collector.client import PolymarketClient

    config = config or load_config()
    client = PolymarketClient(
        city=config["CITY"],
        lookahead_days=config["MARKET_LOOKAHEAD_DAYS"],
    )
    sources = [
        OpenWeatherSource(config["LATITUDE"], config["LONGITUDE"]),
        TomorrowIoSource(config["LATITUDE"], config["LONGITUDE"]),
    ]

    return Orchestrator(
        config=config,
        market_fetcher=client.fetch_temperature_markets,
        forecast_fetcher=lambda dates: fetch_forecasts_for_dates(dates, sources),
        resolution_fetcher=client.fetch_resolved_outcome,
        logs_dir=logs_dir,
    )


_orchestrator: Optional[Orchestrator] = None


def get_orchestrator() -> Orchestrator:
    """Process-wide orchestrator instance."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = create_orchestrator()
    return _orchestrator


def run_cycle() -> CycleResult:
    return get_orchestrator().run_cycle()


def get_status() -> Dict[str, Any]:
    return get_orchestrator().get_status()
