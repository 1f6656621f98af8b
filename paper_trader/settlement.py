# =============================================================================
# POLYMARKET LADDER TRADER - SETTLEMENT / P&L AGGREGATION
# =============================================================================
#
# MARK-TO-MARKET (stops, early resolution):
#   YES: (exit_yes - entry_yes) * size
#   NO:  (exit_no  - entry_no)  * size      exit_no = 1 - exit_yes
#
# OFFICIAL SETTLEMENT:
#   payoff (1 if side == outcome else 0) - entry price of the side
#   Overrides any mark-to-market figure.
#
# IDEMPOTENCY:
# A market id in settlement_log.json, or a position already closed as
# OFFICIAL_SETTLEMENT, is never settled again. The set is rebuilt from
# both at startup.
#
# =============================================================================

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from shared.enums import PositionSide
from core.market_parser import extract_date_key, parse_utc_timestamp
from paper_trader.models import DailyPnlSummary, Position, SettlementRecord

logger = logging.getLogger(__name__)


# =============================================================================
# P&L FORMULAS
# =============================================================================


def mark_to_market_pnl(
    side: PositionSide,
    entry_yes_price: float,
    entry_no_price: float,
    exit_yes_price: float,
    size: float = 1.0,
) -> float:
    if side == PositionSide.YES:
        return (exit_yes_price - entry_yes_price) * size
    return ((1 - exit_yes_price) - entry_no_price) * size


def settlement_pnl(
    side: PositionSide,
    resolved_outcome: str,
    entry_yes_price: float,
    entry_no_price: float,
) -> float:
    payoff = 1.0 if side.value == resolved_outcome else 0.0
    entry = entry_yes_price if side == PositionSide.YES else entry_no_price
    return payoff - entry


def settlement_date(record: SettlementRecord) -> Optional[str]:
    """Resolution date (YYYY-MM-DD) a record is aggregated under."""
    if record.end_date:
        return extract_date_key(record.end_date) or record.date_key
    return record.date_key


def aggregate_daily_pnl(records: Iterable[SettlementRecord]) -> List[DailyPnlSummary]:
    """Group settlements by resolution date, ascending."""
    daily: Dict[str, DailyPnlSummary] = OrderedDict()
    for record in records:
        date = settlement_date(record)
        if not date:
            continue
        summary = daily.setdefault(date, DailyPnlSummary(date=date))
        summary.trades += 1
        summary.daily_pnl += record.trade_pnl
        summary.settled_markets.append({
            "marketId": record.market_id,
            "entrySide": record.entry_side.value,
            "resolvedOutcome": record.resolved_outcome,
            "tradePnl": record.trade_pnl,
        })
    return [daily[k] for k in sorted(daily)]


# =============================================================================
# SETTLEMENT PROCESSOR
# =============================================================================


@dataclass
class SettlementPassResult:
    checked: int = 0
    settled: List[SettlementRecord] = field(default_factory=list)
    pending: int = 0
    errors: List[str] = field(default_factory=list)


class SettlementProcessor:
    """
    Resolves paper positions against official outcomes.

    engine: the PositionLifecycleEngine owning the positions.
    resolution_fetcher: market_id -> "YES" / "NO" / None (not resolved yet).
    """

    def __init__(self, engine, resolution_fetcher: Callable[[str], Optional[str]]):
        self.engine = engine
        self.repository = engine.repository
        self.resolution_fetcher = resolution_fetcher
        self.settled_market_ids: Set[str] = set()
        self.reload()

    def reload(self) -> None:
        """Rebuild the idempotency set from the settlement log and positions."""
        logged = {r.market_id for r in self.repository.load_settlements()}
        closed = {p.market_id for p in self.engine.state.positions.values() if p.is_settled}
        self.settled_market_ids = logged | closed
        logger.debug(
            f"Settlement index loaded | settled={len(self.settled_market_ids)} | "
            f"from_log={len(logged)} | from_positions={len(closed)}"
        )

    def is_settled(self, market_id: str) -> bool:
        return market_id in self.settled_market_ids

    def unsettled_positions(self, now: datetime) -> List[Position]:
        """Positions (open or mark-closed) whose market has ended."""
        result = []
        for position in self.engine.state.positions.values():
            if position.is_settled or self.is_settled(position.market_id):
                continue
            end = parse_utc_timestamp(position.end_date) if position.end_date else None
            if end is not None and end > now:
                continue
            result.append(position)
        return result

    def settle_position(
        self,
        position: Position,
        resolved_outcome: str,
        now: Optional[datetime] = None,
    ) -> Optional[SettlementRecord]:
        """Apply an official outcome. No-op for an already settled market."""
        if self.is_settled(position.market_id):
            logger.debug(f"Settlement skipped, already settled | market={position.market_id}")
            return None

        now = now or datetime.now(timezone.utc)
        pnl = settlement_pnl(
            position.entry_side,
            resolved_outcome,
            position.entry_yes_price,
            position.entry_no_price,
        ) * position.size

        record = SettlementRecord(
            timestamp=now.isoformat(),
            market_id=position.market_id,
            question=position.question,
            end_date=position.end_date or "",
            entry_side=position.entry_side,
            entry_yes_price=position.entry_yes_price,
            entry_no_price=position.entry_no_price,
            resolved_outcome=resolved_outcome,
            trade_pnl=pnl,
            date_key=position.date_key,
        )
        if not self.repository.append_settlement(record):
            return None

        self.settled_market_ids.add(position.market_id)
        self.engine.apply_settlement(position.market_id, resolved_outcome, pnl, now)
        logger.info(
            f"SETTLED | market={position.market_id} | outcome={resolved_outcome} | "
            f"side={position.entry_side.value} | pnl={pnl:+.4f}"
        )
        return record

    def run_settlement_pass(self, now: Optional[datetime] = None) -> SettlementPassResult:
        now = now or datetime.now(timezone.utc)
        result = SettlementPassResult()
        candidates = self.unsettled_positions(now)
        if not candidates:
            logger.debug("Settlement pass | no unsettled positions")
            return result

        logger.info(f"Settlement pass | checking={len(candidates)}")
        for position in candidates:
            result.checked += 1
            try:
                outcome = self.resolution_fetcher(position.market_id)
            except (RuntimeError, ValueError) as e:
                result.errors.append(f"{position.market_id}: {e}")
                logger.warning(f"Resolution lookup failed | market={position.market_id} | error={e}")
                continue

            if outcome is None:
                result.pending += 1
                continue

            record = self.settle_position(position, outcome, now)
            if record is not None:
                result.settled.append(record)

        if result.settled:
            log_daily_pnl(aggregate_daily_pnl(self.repository.load_settlements()))
        else:
            logger.info("Settlement pass | no markets resolved yet")
        return result


def log_daily_pnl(summaries: List[DailyPnlSummary]) -> None:
    if not summaries:
        return
    for summary in summaries:
        logger.info(
            f"Daily P&L | date={summary.date} | trades={summary.trades} | "
            f"pnl={summary.daily_pnl:+.4f}"
        )
    total_pnl = sum(s.daily_pnl for s in summaries)
    total_trades = sum(s.trades for s in summaries)
    logger.info(f"Total P&L | trades={total_trades} | pnl={total_pnl:+.4f}")


def summarize_settlements(records: List[SettlementRecord]) -> Dict[str, Any]:
    summaries = aggregate_daily_pnl(records)
    return {
        "days": [s.to_dict() for s in summaries],
        "total_trades": sum(s.trades for s in summaries),
        "total_pnl": sum(s.daily_pnl for s in summaries),
    }
