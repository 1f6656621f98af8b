# =============================================================================
# POLYMARKET LADDER TRADER - LADDER COHERENCE VALIDATOR
# =============================================================================
#
# Sanity check on the family of sibling brackets for one date before any
# new entry is allowed.
#
# COHERENT IFF ALL HOLD:
# - 0.75 <= sum(YES prices) <= 1.25
# - NOT (mean > 0.4 AND stddev < 0.05)   uniformly overpriced ladder
# - max gap between sorted bracket values <= 1   no missing bracket
#
# An incoherent ladder blocks new entries for its date only. Open positions
# are not touched.
#
# =============================================================================

import logging
import math
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)

LADDER_SUM_MIN = 0.75
LADDER_SUM_MAX = 1.25
UNIFORM_MEAN_LIMIT = 0.4
UNIFORM_STD_LIMIT = 0.05
MAX_BRACKET_GAP = 1.0


@dataclass(frozen=True)
class LadderStats:
    """Statistics of one date's ladder."""
    date_key: str
    market_count: int
    ladder_yes_sum: float
    ladder_mean_yes: float
    ladder_std_yes: float
    ladder_max_gap: float
    ladder_coherent: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dateKey": self.date_key,
            "marketCount": self.market_count,
            "ladderYesSum": self.ladder_yes_sum,
            "ladderMeanYes": self.ladder_mean_yes,
            "ladderStdYes": self.ladder_std_yes,
            "ladderMaxGap": self.ladder_max_gap,
            "ladderCoherent": self.ladder_coherent,
        }


def population_std(values: Sequence[float], mean: float) -> float:
    if not values:
        return 0.0
    return math.sqrt(sum((v - mean) ** 2 for v in values) / len(values))


def max_gap(values: Sequence[float]) -> float:
    """Largest difference between adjacent sorted values (0 for < 2 values)."""
    if len(values) < 2:
        return 0.0
    ordered = sorted(values)
    return max(b - a for a, b in zip(ordered, ordered[1:]))


def is_coherent(yes_sum: float, mean: float, std: float, gap: float) -> bool:
    return (
        LADDER_SUM_MIN <= yes_sum <= LADDER_SUM_MAX
        and not (mean > UNIFORM_MEAN_LIMIT and std < UNIFORM_STD_LIMIT)
        and gap <= MAX_BRACKET_GAP
    )


def compute_ladder_coherence(snapshots: Sequence[Any]) -> Dict[str, LadderStats]:
    """
    Ladder statistics per dateKey.

    Snapshots need .date_key, .yes_price and .temperature_value; those
    without a dateKey are ignored, missing prices/values are left out of
    the respective statistic.
    """
    by_date: Dict[str, List[Any]] = OrderedDict()
    for snapshot in snapshots:
        if not snapshot.date_key:
            continue
        by_date.setdefault(snapshot.date_key, []).append(snapshot)

    results: Dict[str, LadderStats] = {}
    for date_key, markets in by_date.items():
        yes_prices = [m.yes_price for m in markets if m.yes_price is not None]
        values = [m.temperature_value for m in markets if m.temperature_value is not None]

        yes_sum = sum(yes_prices)
        mean = yes_sum / len(yes_prices) if yes_prices else 0.0
        std = population_std(yes_prices, mean)
        gap = max_gap(values)

        stats = LadderStats(
            date_key=date_key,
            market_count=len(markets),
            ladder_yes_sum=yes_sum,
            ladder_mean_yes=mean,
            ladder_std_yes=std,
            ladder_max_gap=gap,
            ladder_coherent=is_coherent(yes_sum, mean, std, gap),
        )
        results[date_key] = stats

        if not stats.ladder_coherent:
            logger.info(
                f"Ladder INCOHERENT | date={date_key} | sum={yes_sum:.2f} | "
                f"mean={mean:.2f} | std={std:.3f} | maxGap={gap}"
            )

    return results


def ladder_is_coherent(stats_by_date: Dict[str, LadderStats], date_key: str) -> bool:
    """Coherence for a date; a date without stats has nothing to contradict it."""
    stats: Optional[LadderStats] = stats_by_date.get(date_key)
    return stats.ladder_coherent if stats is not None else True
