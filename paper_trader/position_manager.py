# =============================================================================
# POLYMARKET LADDER TRADER - POSITION LIFECYCLE ENGINE
# =============================================================================
#
# Owns the PositionsState and every transition of it.
#
# STATES:
#   none -> open -> closed (terminal, closeReason set, never reopened)
#
# ENTRY GATES (all must hold):
# 1. dateKey has no decidedAt
# 2. dateKey stop-out count < MAX_STOPOUTS_PER_DATE
# 3. no other open position for the dateKey
# 4. ladder for the dateKey is coherent
# 5. the candidate has led for CONFIRM_CYCLES consecutive cycles
# A refused entry leaves the state untouched.
#
# EXITS:
# - STOP_PROXIMITY:  |model temp - strike| > STOP_MAX_PROXIMITY_C
# - STOP_EDGE_FLIP:  side-signed edge < -STOP_EDGE_FLIP
# - DECIDED_95:      the whole date is closed at mark
# - OFFICIAL_SETTLEMENT: applied by the settlement processor
#
# PAPER TRADING ONLY:
# No order is ever sent. Exits are valued at the current market price.
#
# =============================================================================

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from shared.enums import CloseReason, DecisionAction, PositionSide, SkipReason
from core.candidate_selector import CandidateSelection
from core.confirmation import ConfirmationCounter
from core.ladder_coherence import LadderStats, ladder_is_coherent
from core.market_parser import ParsedBracket, parse_market_question
from core.market_snapshot import MarketSnapshot
from core.probability_model import ProbabilityModel, hours_until_resolution
from paper_trader.early_resolution import EarlyResolutionDetector
from paper_trader.models import (
    CandidateState,
    ClosedPositionDetail,
    DecisionActionRecord,
    EarlyCloseReport,
    Position,
    PositionsState,
    StopExitInfo,
)
from paper_trader.settlement import mark_to_market_pnl
from paper_trader.storage import PositionsRepository

logger = logging.getLogger(__name__)

FALLBACK_DECIDED_PRICE = 0.95


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PositionManagementResult:
    """Exits produced by one position-management pass."""
    stop_exits: List[StopExitInfo] = field(default_factory=list)
    early_close_reports: List[EarlyCloseReport] = field(default_factory=list)


class PositionLifecycleEngine:
    """
    Single writer of the paper trading state.

    Every mutation is followed by a save through the repository.
    """

    def __init__(
        self,
        config: Dict[str, Any],
        repository: PositionsRepository,
        model: Optional[ProbabilityModel] = None,
        state: Optional[PositionsState] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.repository = repository
        self.state = state if state is not None else repository.load_state()
        self.model = model or ProbabilityModel(config)
        self.clock = clock or _utc_now

        self.confirm_cycles = config["CONFIRM_CYCLES"]
        self.max_stopouts = config["MAX_STOPOUTS_PER_DATE"]
        self.stop_max_proximity = config["STOP_MAX_PROXIMITY_C"]
        self.stop_edge_flip = config["STOP_EDGE_FLIP"]
        self.position_size = config["POSITION_SIZE"]

        self.candidate_counter = ConfirmationCounter(self.confirm_cycles, name="candidate")
        self.stop_counter = ConfirmationCounter(config["STOP_CONFIRM_CYCLES"], name="stop")
        self.early_resolution = EarlyResolutionDetector(config)

    def save(self) -> bool:
        return self.repository.save_state(self.state)

    # =========================================================================
    # ENTRY GATING
    # =========================================================================

    def entry_block_reason(self, date_key: str) -> Optional[SkipReason]:
        """Reason the date refuses any new entry, or None."""
        decided = self.state.decided_dates.get(date_key)
        if decided is not None and decided.is_decided:
            return SkipReason.DATE_DECIDED
        if self.state.stopped_out_dates.get(date_key, 0) >= self.max_stopouts:
            return SkipReason.STOPOUT_CAP_REACHED
        if self.state.has_open_position_for_date(date_key):
            return SkipReason.DATEKEY_ALREADY_HAS_POSITION
        return None

    def can_enter(self, date_key: str) -> bool:
        return self.entry_block_reason(date_key) is None

    def update_candidate_state(
        self,
        date_key: str,
        candidate: Optional[CandidateSelection],
        now: Optional[datetime] = None,
    ) -> CandidateState:
        """
        Advance the date's leading-candidate streak.

        No candidate clears the state; a new leader restarts at 1.
        """
        now = now or self.clock()
        current = self.state.candidate_state.get(date_key) or CandidateState()
        identity = candidate.candidate_key if candidate is not None else None
        update = self.candidate_counter.observe(
            current.best_candidate_key, current.best_streak_count, identity, candidate
        )

        if update.identity is None:
            new_state = CandidateState()
        elif update.restarted:
            new_state = CandidateState(
                best_candidate_key=update.identity,
                best_score=candidate.score,
                best_streak_count=update.count,
                best_since=now.isoformat(),
            )
        else:
            new_state = CandidateState(
                best_candidate_key=update.identity,
                best_score=candidate.score,
                best_streak_count=update.count,
                best_since=current.best_since,
            )

        self.state.candidate_state[date_key] = new_state
        self.save()
        return new_state

    def decide_action(
        self,
        date_key: str,
        candidate: Optional[CandidateSelection],
        candidate_state: CandidateState,
        ladder_stats: Mapping[str, LadderStats],
    ) -> DecisionActionRecord:
        """Per-date action for this cycle. Does not mutate state."""
        action = DecisionAction.HOLD
        skip_reason = None

        if candidate is not None:
            if candidate_state.best_streak_count < self.confirm_cycles:
                skip_reason = SkipReason.NOT_CONFIRMED
            elif not ladder_is_coherent(ladder_stats, date_key):
                skip_reason = SkipReason.LADDER_INCOHERENT
            else:
                skip_reason = self._candidate_block_reason(date_key, candidate)
                if skip_reason is None:
                    action = DecisionAction.EXECUTED_ENTRY
                else:
                    action = DecisionAction.BLOCKED_LOCK

        return DecisionActionRecord(
            date_key=date_key,
            action=action,
            selected_best_candidate=candidate.to_dict() if candidate is not None else None,
            best_streak_count=candidate_state.best_streak_count,
            confirm_cycles=self.confirm_cycles,
            skip_reason=skip_reason,
        )

    def _candidate_block_reason(
        self, date_key: str, candidate: CandidateSelection
    ) -> Optional[SkipReason]:
        reason = self.entry_block_reason(date_key)
        if reason is not None:
            return reason
        if candidate.market_id in self.state.positions:
            return SkipReason.MARKET_ALREADY_TRADED
        return None

    def try_enter(
        self,
        candidate: CandidateSelection,
        ladder_stats: Mapping[str, LadderStats],
        snapshot_id: Optional[str] = None,
        decision_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Tuple[Optional[Position], Optional[SkipReason]]:
        """
        Open a position if every gate passes.

        Returns (position, None) on success, (None, reason) on refusal.
        """
        date_key = candidate.date_key
        reason = self._candidate_block_reason(date_key, candidate)
        if reason is None and not ladder_is_coherent(ladder_stats, date_key):
            reason = SkipReason.LADDER_INCOHERENT
        if reason is None:
            current = self.state.candidate_state.get(date_key)
            if (
                current is None
                or current.best_candidate_key != candidate.candidate_key
                or current.best_streak_count < self.confirm_cycles
            ):
                reason = SkipReason.NOT_CONFIRMED

        if reason is not None:
            logger.info(
                f"Entry blocked | market={candidate.market_id} | date={date_key} | "
                f"reason={reason.value}"
            )
            return None, reason

        return self.record_entry(candidate, snapshot_id, decision_id, now), None

    def record_entry(
        self,
        candidate: CandidateSelection,
        snapshot_id: Optional[str] = None,
        decision_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Position:
        """Open a position for an already-approved candidate."""
        now = now or self.clock()
        entry_yes = candidate.yes_price
        position = Position(
            market_id=candidate.market_id,
            date_key=candidate.date_key,
            question=candidate.question,
            entry_side=candidate.side,
            entry_yes_price=entry_yes,
            entry_no_price=1 - entry_yes,
            opened_at=now.isoformat(),
            size=self.position_size,
            end_date=candidate.end_date or None,
            entry_strike_temp_c=candidate.strike_temp_c,
            entry_bracket_type=candidate.bracket_type,
            model_probability=candidate.model_probability,
            edge=candidate.edge,
            snapshot_id=snapshot_id,
            decision_id=decision_id,
        )
        self.state.positions[candidate.market_id] = position
        self.save()

        logger.info(
            f"Position opened | market={candidate.market_id} | date={candidate.date_key} | "
            f"side={candidate.side.value} | strike={candidate.strike_temp_c} | "
            f"entry={candidate.entry_price():.3f} | score={candidate.score:.4f}"
        )
        return position

    # =========================================================================
    # EXITS
    # =========================================================================

    def _close(
        self,
        position: Position,
        exit_yes: float,
        reason: CloseReason,
        now: datetime,
    ) -> float:
        pnl = mark_to_market_pnl(
            position.entry_side,
            position.entry_yes_price,
            position.entry_no_price,
            exit_yes,
            position.size,
        )
        position.is_open = False
        position.closed_at = now.isoformat()
        position.exit_yes_price = exit_yes
        position.exit_no_price = 1 - exit_yes
        position.close_reason = reason
        position.realized_pnl = pnl
        return pnl

    def _bracket_for(self, position: Position) -> Optional[ParsedBracket]:
        parsed = parse_market_question(position.question)
        if parsed is not None:
            return parsed
        if position.entry_bracket_type is not None and position.entry_strike_temp_c is not None:
            return ParsedBracket(position.entry_bracket_type, position.entry_strike_temp_c)
        return None

    def stop_reason(self, proximity: float, edge_now: float) -> Optional[CloseReason]:
        """First stop condition that holds, proximity before edge."""
        if proximity > self.stop_max_proximity:
            return CloseReason.STOP_PROXIMITY
        if edge_now < -self.stop_edge_flip:
            return CloseReason.STOP_EDGE_FLIP
        return None

    def evaluate_stops(
        self,
        snapshots: Sequence[MarketSnapshot],
        forecasts_by_date: Mapping[str, float],
        now: Optional[datetime] = None,
    ) -> List[StopExitInfo]:
        """
        Re-price every open position and close those whose thesis broke.

        Positions without a forecast, snapshot or price this cycle are
        skipped and re-evaluated next cycle.
        """
        now = now or self.clock()
        by_market = {s.market_id: s for s in snapshots}
        exits = []
        changed = False

        for position in self.state.open_positions():
            model_temp = forecasts_by_date.get(position.date_key)
            snapshot = by_market.get(position.market_id)
            bracket = self._bracket_for(position)
            if model_temp is None or snapshot is None or bracket is None:
                continue

            yes_price = snapshot.yes_price
            no_price = snapshot.no_price
            if no_price is None and yes_price is not None:
                no_price = 1 - yes_price
            if yes_price is None or no_price is None:
                continue

            hours = hours_until_resolution(snapshot.end_date, now) if snapshot.end_date else 0.0
            probability = self.model.market_probability(
                model_temp, hours, bracket.bracket_type, bracket.value
            )
            proximity = abs(model_temp - bracket.value)
            if position.entry_side == PositionSide.YES:
                edge_now = probability - yes_price
            else:
                edge_now = (1 - probability) - no_price

            reason = self.stop_reason(proximity, edge_now)
            update = self.stop_counter.observe(
                position.market_id if position.stop_breach_count > 0 else None,
                position.stop_breach_count,
                position.market_id if reason is not None else None,
                reason,
            )
            if update.count != position.stop_breach_count:
                position.stop_breach_count = update.count
                changed = True
            if not update.confirmed:
                if reason is not None:
                    logger.info(
                        f"Stop breach pending | market={position.market_id} | "
                        f"reason={reason.value} | breaches={update.count}"
                    )
                continue

            pnl = self._close(position, yes_price, reason, now)
            self.state.stopped_out_dates[position.date_key] = (
                self.state.stopped_out_dates.get(position.date_key, 0) + 1
            )
            changed = True

            exits.append(StopExitInfo(
                date_key=position.date_key,
                market_id=position.market_id,
                close_reason=reason,
                model_temp_c=model_temp,
                proximity_abs_c=proximity,
                edge_now=edge_now,
                yes_price=yes_price,
                no_price=no_price,
                realized_pnl=pnl,
            ))
            logger.info(
                f"STOP_EXIT | market={position.market_id} | date={position.date_key} | "
                f"reason={reason.value} | proximity={proximity:.2f} | edge_now={edge_now:.4f} | "
                f"pnl={pnl:+.4f}"
            )

        if changed:
            self.save()
        return exits

    def close_positions_for_date(
        self,
        date_key: str,
        trigger_snapshot: Optional[MarketSnapshot],
        snapshots: Sequence[MarketSnapshot],
        now: Optional[datetime] = None,
    ) -> Optional[EarlyCloseReport]:
        """
        Close every open position of a decided date at mark, then report it.

        Returns None if the date was already reported or the report could
        not be written yet.
        """
        if date_key in self.state.reported_dates:
            return None

        now = now or self.clock()
        by_market = {s.market_id: s for s in snapshots}
        trigger_yes = trigger_snapshot.yes_price if trigger_snapshot is not None else None

        for position in self.state.open_positions_for_date(date_key):
            current = by_market.get(position.market_id)
            exit_yes = None
            if current is not None:
                exit_yes = current.yes_price
            if exit_yes is None:
                exit_yes = trigger_yes
            if exit_yes is None:
                exit_yes = FALLBACK_DECIDED_PRICE
            self._close(position, exit_yes, CloseReason.DECIDED_95, now)

        self.save()
        return self.report_decided_date(date_key, trigger_snapshot, now)

    def report_decided_date(
        self,
        date_key: str,
        trigger_snapshot: Optional[MarketSnapshot] = None,
        now: Optional[datetime] = None,
    ) -> Optional[EarlyCloseReport]:
        """
        Write the consolidated report for a date closed by DECIDED_95.

        The date is marked reported only after the report was written, so a
        failed write is retried by the next position-management pass.
        """
        if date_key in self.state.reported_dates:
            return None

        now = now or self.clock()
        breakdown = {
            PositionSide.YES.value: {"count": 0, "totalPnl": 0.0},
            PositionSide.NO.value: {"count": 0, "totalPnl": 0.0},
        }
        details = []
        total = 0.0

        for position in self.state.positions.values():
            if position.date_key != date_key or position.close_reason != CloseReason.DECIDED_95:
                continue
            pnl = position.realized_pnl or 0.0
            total += pnl
            breakdown[position.entry_side.value]["count"] += 1
            breakdown[position.entry_side.value]["totalPnl"] += pnl
            details.append(ClosedPositionDetail(
                market_id=position.market_id,
                question=position.question,
                entry_side=position.entry_side,
                entry_yes_price=position.entry_yes_price,
                entry_no_price=position.entry_no_price,
                exit_yes_price=position.exit_yes_price,
                exit_no_price=position.exit_no_price,
                realized_pnl=pnl,
                opened_at=position.opened_at,
                closed_at=position.closed_at,
            ))

        info = self.state.decided_dates.get(date_key)
        trigger_id = trigger_snapshot.market_id if trigger_snapshot is not None else ""
        trigger_question = trigger_snapshot.question if trigger_snapshot is not None else ""
        trigger_yes = trigger_snapshot.yes_price if trigger_snapshot is not None else None
        report = EarlyCloseReport(
            date_key=date_key,
            decided_at=(info.decided_at if info and info.decided_at else now.isoformat()),
            decided_market_id=(info.trigger_market_id if info and info.trigger_market_id
                               else trigger_id),
            decided_question=(info.trigger_question if info and info.trigger_question
                              else trigger_question),
            decided_yes_price=(info.trigger_yes_price if info and info.trigger_yes_price is not None
                               else (trigger_yes if trigger_yes is not None else FALLBACK_DECIDED_PRICE)),
            number_of_positions_closed=len(details),
            total_realized_pnl=total,
            breakdown_by_entry_side=breakdown,
            closed_positions=details,
        )

        if not self.repository.append_daily_report(report):
            logger.warning(f"Daily report not written, retrying next cycle | date={date_key}")
            return None

        self.state.reported_dates.append(date_key)
        self.save()

        logger.info(
            f"Date closed DECIDED_95 | date={date_key} | positions={len(details)} | "
            f"total_pnl={total:+.2f}"
        )
        return report

    def unreported_decided_dates(self) -> List[str]:
        """Decided dates whose closed positions still lack a written report."""
        pending = {
            p.date_key for p in self.state.positions.values()
            if p.close_reason == CloseReason.DECIDED_95
            and p.date_key not in self.state.reported_dates
        }
        return sorted(pending)

    def process_position_management(
        self,
        snapshots: Sequence[MarketSnapshot],
        forecasts_by_date: Mapping[str, float],
        now: Optional[datetime] = None,
    ) -> PositionManagementResult:
        """Stops first, then early resolution of whole dates."""
        now = now or self.clock()
        result = PositionManagementResult()
        result.stop_exits = self.evaluate_stops(snapshots, forecasts_by_date, now)

        for date_key in self.unreported_decided_dates():
            report = self.report_decided_date(date_key, None, now)
            if report is not None:
                result.early_close_reports.append(report)

        triggers = self.early_resolution.detect(snapshots, self.state, now)
        if self.early_resolution.group_exact_markets(snapshots):
            self.save()

        for trigger in triggers:
            if not self.state.has_open_position_for_date(trigger.date_key):
                continue
            report = self.close_positions_for_date(
                trigger.date_key, trigger.trigger_snapshot, snapshots, now
            )
            if report is not None:
                result.early_close_reports.append(report)

        return result

    # =========================================================================
    # SETTLEMENT HOOK
    # =========================================================================

    def apply_settlement(
        self,
        market_id: str,
        resolved_outcome: str,
        pnl: float,
        now: Optional[datetime] = None,
    ) -> Optional[Position]:
        """Override a position's P&L with the official result."""
        position = self.state.positions.get(market_id)
        if position is None:
            return None

        now = now or self.clock()
        if position.is_open:
            position.is_open = False
            position.closed_at = now.isoformat()
        position.close_reason = CloseReason.OFFICIAL_SETTLEMENT
        position.realized_pnl = pnl
        position.resolved_outcome = resolved_outcome
        position.settled_at = now.isoformat()
        self.save()
        return position

    def summary(self) -> Dict[str, Any]:
        open_positions = self.state.open_positions()
        return {
            "open_positions": [p.to_dict() for p in open_positions],
            "open_count": len(open_positions),
            "total_positions": len(self.state.positions),
            "decided_dates": sorted(
                k for k, v in self.state.decided_dates.items() if v.is_decided
            ),
            "stopped_out_dates": dict(self.state.stopped_out_dates),
            "reported_dates": list(self.state.reported_dates),
        }
