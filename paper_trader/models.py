# =============================================================================
# POLYMARKET LADDER TRADER - PAPER TRADING DATA MODELS
# =============================================================================
#
# Persisted and logged records of the position lifecycle.
#
# PAPER TRADING ONLY:
# These models represent SIMULATED positions, not venue orders.
#
# SCHEMA:
# JSON keys are camelCase and match the positions.json / daily_reports.json /
# settlement_log.json files. Every from_dict() applies an explicit default
# per field, so files written by older versions (missing optional fields)
# still load. SCHEMA_VERSION is bumped whenever the shape changes.
#
# MUTABILITY:
# - State records (Position, DecidedDateInfo, CandidateState, PositionsState)
#   are mutable and owned by the PositionLifecycleEngine.
# - Report records (EarlyCloseReport, SettlementRecord, StopExitInfo) are
#   frozen once produced.
#
# =============================================================================

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from shared.enums import BracketType, CloseReason, DecisionAction, PositionSide, SkipReason

logger = logging.getLogger(__name__)


SCHEMA_VERSION = 2


def _enum_or_none(enum_cls, value):
    if value is None or value == "":
        return None
    try:
        return enum_cls(value)
    except ValueError:
        return None


def _float_or_none(value) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _records(section: str, raw: Any, loader) -> Dict[str, Any]:
    """Load a keyed section, skipping entries that are not JSON objects."""
    if not isinstance(raw, dict):
        if raw:
            logger.warning(f"Skipping malformed section | section={section}")
        return {}
    loaded = {}
    for key, value in raw.items():
        if not isinstance(value, dict):
            logger.warning(f"Skipping malformed entry | section={section} | key={key}")
            continue
        loaded[key] = loader(value)
    return loaded


def _value(member) -> Optional[str]:
    return member.value if member is not None else None


# =============================================================================
# POSITION
# =============================================================================


@dataclass
class Position:
    """
    One paper trade on one market.

    Lifecycle: open -> closed (terminal). A closed market id never reopens.
    Entry prices are the favorable price and its complement.
    """
    market_id: str
    date_key: str
    question: str
    entry_side: PositionSide
    entry_yes_price: float
    entry_no_price: float
    opened_at: str
    size: float = 1.0
    end_date: Optional[str] = None
    entry_strike_temp_c: Optional[float] = None
    entry_bracket_type: Optional[BracketType] = None
    model_probability: Optional[float] = None
    edge: Optional[float] = None
    is_open: bool = True
    closed_at: Optional[str] = None
    exit_yes_price: Optional[float] = None
    exit_no_price: Optional[float] = None
    close_reason: Optional[CloseReason] = None
    realized_pnl: Optional[float] = None
    snapshot_id: Optional[str] = None
    decision_id: Optional[str] = None
    stop_breach_count: int = 0
    resolved_outcome: Optional[str] = None
    settled_at: Optional[str] = None

    def entry_price(self) -> float:
        """Price paid for the held side."""
        return self.entry_yes_price if self.entry_side == PositionSide.YES else self.entry_no_price

    @property
    def is_settled(self) -> bool:
        return self.close_reason == CloseReason.OFFICIAL_SETTLEMENT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "marketId": self.market_id,
            "dateKey": self.date_key,
            "question": self.question,
            "entrySide": self.entry_side.value,
            "size": self.size,
            "endDate": self.end_date,
            "entryYesPrice": self.entry_yes_price,
            "entryNoPrice": self.entry_no_price,
            "entryStrikeTempC": self.entry_strike_temp_c,
            "entryBracketType": _value(self.entry_bracket_type),
            "openedAt": self.opened_at,
            "modelProbability": self.model_probability,
            "edge": self.edge,
            "isOpen": self.is_open,
            "closedAt": self.closed_at,
            "exitYesPrice": self.exit_yes_price,
            "exitNoPrice": self.exit_no_price,
            "closeReason": _value(self.close_reason),
            "realizedPnl": self.realized_pnl,
            "snapshotId": self.snapshot_id,
            "decisionId": self.decision_id,
            "stopBreachCount": self.stop_breach_count,
            "resolvedOutcome": self.resolved_outcome,
            "settledAt": self.settled_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Position":
        entry_yes = _float_or_none(data.get("entryYesPrice")) or 0.0
        entry_no = _float_or_none(data.get("entryNoPrice"))
        size = _float_or_none(data.get("size"))
        return cls(
            market_id=str(data.get("marketId", "")),
            date_key=str(data.get("dateKey", "")),
            question=data.get("question", ""),
            entry_side=_enum_or_none(PositionSide, data.get("entrySide")) or PositionSide.YES,
            entry_yes_price=entry_yes,
            entry_no_price=entry_no if entry_no is not None else 1 - entry_yes,
            opened_at=data.get("openedAt", ""),
            size=size if size is not None else 1.0,
            end_date=data.get("endDate"),
            entry_strike_temp_c=_float_or_none(data.get("entryStrikeTempC")),
            entry_bracket_type=_enum_or_none(BracketType, data.get("entryBracketType")),
            model_probability=_float_or_none(data.get("modelProbability")),
            edge=_float_or_none(data.get("edge")),
            is_open=bool(data.get("isOpen", True)),
            closed_at=data.get("closedAt"),
            exit_yes_price=_float_or_none(data.get("exitYesPrice")),
            exit_no_price=_float_or_none(data.get("exitNoPrice")),
            close_reason=_enum_or_none(CloseReason, data.get("closeReason")),
            realized_pnl=_float_or_none(data.get("realizedPnl")),
            snapshot_id=data.get("snapshotId"),
            decision_id=data.get("decisionId"),
            stop_breach_count=int(data.get("stopBreachCount") or 0),
            resolved_outcome=data.get("resolvedOutcome"),
            settled_at=data.get("settledAt"),
        )


# =============================================================================
# PER-DATE STATE
# =============================================================================


@dataclass
class DecidedDateInfo:
    """
    Early-resolution streak for one date.

    decided_at is set once and never cleared.
    """
    streak_count: int = 0
    decided_at: Optional[str] = None
    trigger_market_id: Optional[str] = None
    trigger_question: Optional[str] = None
    trigger_yes_price: Optional[float] = None
    trigger_side: Optional[PositionSide] = None

    @property
    def is_decided(self) -> bool:
        return self.decided_at is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "streakCount": self.streak_count,
            "decidedAt": self.decided_at,
            "triggerMarketId": self.trigger_market_id,
            "triggerQuestion": self.trigger_question,
            "triggerYesPrice": self.trigger_yes_price,
            "triggerSide": _value(self.trigger_side),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DecidedDateInfo":
        return cls(
            streak_count=int(data.get("streakCount") or 0),
            decided_at=data.get("decidedAt"),
            trigger_market_id=data.get("triggerMarketId"),
            trigger_question=data.get("triggerQuestion"),
            trigger_yes_price=_float_or_none(data.get("triggerYesPrice")),
            trigger_side=_enum_or_none(PositionSide, data.get("triggerSide")),
        )


@dataclass
class CandidateState:
    """Leading candidate of a date and how many cycles it has led."""
    best_candidate_key: Optional[str] = None
    best_score: Optional[float] = None
    best_streak_count: int = 0
    best_since: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bestCandidateKey": self.best_candidate_key,
            "bestScore": self.best_score,
            "bestStreakCount": self.best_streak_count,
            "bestSince": self.best_since,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CandidateState":
        return cls(
            best_candidate_key=data.get("bestCandidateKey"),
            best_score=_float_or_none(data.get("bestScore")),
            best_streak_count=int(data.get("bestStreakCount") or 0),
            best_since=data.get("bestSince"),
        )


# =============================================================================
# AGGREGATE ROOT
# =============================================================================


@dataclass
class PositionsState:
    """
    Everything persisted in positions.json.

    Owned exclusively by the PositionLifecycleEngine.
    """
    positions: Dict[str, Position] = field(default_factory=dict)
    decided_dates: Dict[str, DecidedDateInfo] = field(default_factory=dict)
    candidate_state: Dict[str, CandidateState] = field(default_factory=dict)
    stopped_out_dates: Dict[str, int] = field(default_factory=dict)
    reported_dates: List[str] = field(default_factory=list)
    schema_version: int = SCHEMA_VERSION

    def open_positions(self) -> List[Position]:
        return [p for p in self.positions.values() if p.is_open]

    def open_positions_for_date(self, date_key: str) -> List[Position]:
        return [p for p in self.positions.values() if p.is_open and p.date_key == date_key]

    def has_open_position_for_date(self, date_key: str) -> bool:
        return any(p.is_open and p.date_key == date_key for p in self.positions.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schemaVersion": self.schema_version,
            "positions": {k: v.to_dict() for k, v in self.positions.items()},
            "decidedDates": {k: v.to_dict() for k, v in self.decided_dates.items()},
            "candidateState": {k: v.to_dict() for k, v in self.candidate_state.items()},
            "stoppedOutDates": dict(self.stopped_out_dates),
            "reportedDates": list(self.reported_dates),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "PositionsState":
        data = data or {}
        stopped: Dict[str, int] = {}
        raw_stopped = data.get("stoppedOutDates")
        for date_key, count in (raw_stopped if isinstance(raw_stopped, dict) else {}).items():
            # version 1 stored a boolean flag per date
            if isinstance(count, bool):
                stopped[date_key] = 1 if count else 0
            else:
                stopped[date_key] = int(count or 0)

        return cls(
            positions=_records("positions", data.get("positions"), Position.from_dict),
            decided_dates=_records("decidedDates", data.get("decidedDates"), DecidedDateInfo.from_dict),
            candidate_state=_records("candidateState", data.get("candidateState"), CandidateState.from_dict),
            stopped_out_dates=stopped,
            reported_dates=list(data.get("reportedDates") or []),
            schema_version=SCHEMA_VERSION,
        )


# =============================================================================
# CYCLE OUTPUT RECORDS
# =============================================================================


@dataclass(frozen=True)
class StopExitInfo:
    """A position closed by a thesis stop in this cycle."""
    date_key: str
    market_id: str
    close_reason: CloseReason
    model_temp_c: float
    proximity_abs_c: float
    edge_now: float
    yes_price: float
    no_price: float
    realized_pnl: float

    def stop_details(self) -> Dict[str, Any]:
        return {
            "modelTempC": self.model_temp_c,
            "proximityAbsC": self.proximity_abs_c,
            "edgeNow": self.edge_now,
            "yesPrice": self.yes_price,
            "noPrice": self.no_price,
        }


@dataclass(frozen=True)
class ClosedPositionDetail:
    """One line of an early-close report."""
    market_id: str
    question: str
    entry_side: PositionSide
    entry_yes_price: float
    entry_no_price: float
    exit_yes_price: float
    exit_no_price: float
    realized_pnl: float
    opened_at: str
    closed_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "marketId": self.market_id,
            "question": self.question,
            "entrySide": self.entry_side.value,
            "entryYesPrice": self.entry_yes_price,
            "entryNoPrice": self.entry_no_price,
            "exitYesPrice": self.exit_yes_price,
            "exitNoPrice": self.exit_no_price,
            "realizedPnl": self.realized_pnl,
            "openedAt": self.opened_at,
            "closedAt": self.closed_at,
        }


@dataclass(frozen=True)
class EarlyCloseReport:
    """Consolidated report for a date closed by early resolution."""
    date_key: str
    decided_at: str
    decided_market_id: str
    decided_question: str
    decided_yes_price: float
    number_of_positions_closed: int
    total_realized_pnl: float
    breakdown_by_entry_side: Dict[str, Dict[str, float]]
    closed_positions: List[ClosedPositionDetail]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dateKey": self.date_key,
            "decidedAt": self.decided_at,
            "decidedMarketId": self.decided_market_id,
            "decidedQuestion": self.decided_question,
            "decidedYesPrice": self.decided_yes_price,
            "numberOfPositionsClosed": self.number_of_positions_closed,
            "totalRealizedPnl": self.total_realized_pnl,
            "breakdownByEntrySide": self.breakdown_by_entry_side,
            "closedPositions": [p.to_dict() for p in self.closed_positions],
        }


@dataclass(frozen=True)
class SettlementRecord:
    """
    One officially resolved trade.

    Once written, market_id is excluded from re-settlement forever.
    """
    timestamp: str
    market_id: str
    question: str
    end_date: str
    entry_side: PositionSide
    entry_yes_price: float
    entry_no_price: float
    resolved_outcome: str
    trade_pnl: float
    date_key: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "marketId": self.market_id,
            "question": self.question,
            "endDate": self.end_date,
            "dateKey": self.date_key,
            "entrySide": self.entry_side.value,
            "entryYesPrice": self.entry_yes_price,
            "entryNoPrice": self.entry_no_price,
            "resolvedOutcome": self.resolved_outcome,
            "tradePnl": self.trade_pnl,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SettlementRecord":
        return cls(
            timestamp=data.get("timestamp", ""),
            market_id=str(data.get("marketId", "")),
            question=data.get("question", ""),
            end_date=data.get("endDate", ""),
            entry_side=_enum_or_none(PositionSide, data.get("entrySide")) or PositionSide.YES,
            entry_yes_price=_float_or_none(data.get("entryYesPrice")) or 0.0,
            entry_no_price=_float_or_none(data.get("entryNoPrice")) or 0.0,
            resolved_outcome=data.get("resolvedOutcome", ""),
            trade_pnl=_float_or_none(data.get("tradePnl")) or 0.0,
            date_key=data.get("dateKey"),
        )


@dataclass
class DailyPnlSummary:
    """Settled P&L of one resolution date."""
    date: str
    trades: int = 0
    daily_pnl: float = 0.0
    settled_markets: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "trades": self.trades,
            "dailyPnl": self.daily_pnl,
            "settledMarkets": list(self.settled_markets),
        }


@dataclass
class DecisionActionRecord:
    """What the cycle decided for one date."""
    date_key: str
    action: DecisionAction
    selected_best_candidate: Optional[Dict[str, Any]]
    best_streak_count: int
    confirm_cycles: int
    skip_reason: Optional[SkipReason] = None
    stop_reason: Optional[CloseReason] = None
    stop_details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "dateKey": self.date_key,
            "action": self.action.value,
            "selectedBestCandidate": self.selected_best_candidate,
            "bestStreakCount": self.best_streak_count,
            "confirmCycles": self.confirm_cycles,
        }
        if self.skip_reason is not None:
            result["skipReason"] = self.skip_reason.value
        if self.stop_reason is not None:
            result["stopReason"] = self.stop_reason.value
            result["stopDetails"] = self.stop_details
        return result
