# =============================================================================
# POLYMARKET LADDER TRADER - EARLY RESOLUTION DETECTOR (DECIDED_95)
# =============================================================================
#
# A date is DECIDED when the highest YES price among its tradeable
# exact-value brackets stays >= DECIDED_95_THRESHOLD for
# DECIDED_95_STREAK_REQUIRED consecutive cycles.
#
# - A non-qualifying cycle resets the streak to 0.
# - decidedAt is set once and never cleared.
# - Reported dates are not evaluated again.
#
# The detector only mutates DecidedDateInfo entries. Closing the date's
# positions is the lifecycle engine's job.
#
# =============================================================================

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Sequence

from shared.enums import PositionSide
from core.confirmation import ConfirmationCounter
from core.market_parser import is_exact_temperature_market
from core.market_snapshot import MarketSnapshot
from paper_trader.models import DecidedDateInfo, PositionsState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecidedTrigger:
    """A date that became DECIDED in this cycle."""
    date_key: str
    trigger_snapshot: MarketSnapshot
    max_yes_price: float


class EarlyResolutionDetector:
    """Tracks the per-date DECIDED_95 streak."""

    def __init__(self, config: Dict[str, Any]):
        self.threshold = config["DECIDED_95_THRESHOLD"]
        self.counter = ConfirmationCounter(
            config["DECIDED_95_STREAK_REQUIRED"],
            predicate=lambda price: price is not None and price >= self.threshold,
            name="decided_95",
        )

    @staticmethod
    def group_exact_markets(snapshots: Sequence[MarketSnapshot]) -> Dict[str, List[MarketSnapshot]]:
        by_date: Dict[str, List[MarketSnapshot]] = {}
        for snapshot in snapshots:
            if not snapshot.is_tradeable or not snapshot.date_key:
                continue
            if not is_exact_temperature_market(snapshot.question):
                continue
            by_date.setdefault(snapshot.date_key, []).append(snapshot)
        return by_date

    def detect(
        self,
        snapshots: Sequence[MarketSnapshot],
        state: PositionsState,
        now: datetime,
    ) -> List[DecidedTrigger]:
        """
        Update streaks from this cycle's snapshots.

        Returns the dates whose streak reached the requirement in this cycle
        and that were not decided before.
        """
        triggers = []
        for date_key, markets in self.group_exact_markets(snapshots).items():
            if date_key in state.reported_dates:
                continue

            trigger = None
            max_yes = 0.0
            for market in markets:
                if market.yes_price is not None and market.yes_price > max_yes:
                    max_yes = market.yes_price
                    trigger = market

            info = state.decided_dates.setdefault(date_key, DecidedDateInfo())
            update = self.counter.observe(
                date_key if info.streak_count > 0 else None,
                info.streak_count,
                date_key if trigger is not None else None,
                max_yes,
            )
            info.streak_count = update.count

            if update.count > 0:
                logger.debug(
                    f"DECIDED_95 streak | date={date_key} | streak={update.count} | "
                    f"max_yes={max_yes:.3f}"
                )

            if update.confirmed and not info.is_decided:
                info.decided_at = now.isoformat()
                info.trigger_market_id = trigger.market_id
                info.trigger_question = trigger.question
                info.trigger_yes_price = max_yes
                info.trigger_side = PositionSide.YES
                triggers.append(DecidedTrigger(date_key, trigger, max_yes))
                logger.info(
                    f"Date DECIDED_95 | date={date_key} | market={trigger.market_id} | "
                    f"yes={max_yes:.3f} | streak={update.count}"
                )

        return triggers
