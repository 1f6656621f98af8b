# =============================================================================
# POLYMARKET LADDER TRADER - CANDIDATE SELECTOR
# =============================================================================
#
# Ranks sibling brackets of each date and picks one entry candidate.
#
# For every tradeable snapshot with a bracket, a forecast and prices, two
# candidates are considered:
#   YES: raw edge = p - yes_price
#   NO:  raw edge = (1 - p) - no_price
# Both are scaled by time_compression(hours to settlement). A candidate
# survives only if |model temp - strike| <= ENTRY_MAX_PROXIMITY_C and the
# compressed edge >= ENTRY_MIN_EDGE.
#
# RANKING (best first):
#   score (compressed edge) desc, proximity asc, market id asc
#
# Candidates are ephemeral: recomputed every cycle, never persisted except
# as part of the cycle logs.
#
# =============================================================================

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from shared.enums import BracketType, PositionSide
from core.market_snapshot import MarketSnapshot
from core.probability_model import ProbabilityModel, hours_until_resolution

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CandidateSelection:
    """A scored proposal to open a position for a dateKey."""
    date_key: str
    market_id: str
    question: str
    side: PositionSide
    strike_temp_c: float
    bracket_type: BracketType
    yes_price: float
    no_price: float
    model_temp_c: float
    model_probability: float
    market_implied_prob: float
    edge: float
    proximity_abs_c: float
    score: float
    computed_at: str
    end_date: str = ""

    @property
    def candidate_key(self) -> str:
        return candidate_key(self.market_id, self.side)

    def entry_price(self) -> float:
        return self.yes_price if self.side == PositionSide.YES else self.no_price

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dateKey": self.date_key,
            "marketId": self.market_id,
            "question": self.question,
            "side": self.side.value,
            "strikeTempC": self.strike_temp_c,
            "bracketType": self.bracket_type.value,
            "yesPrice": self.yes_price,
            "noPrice": self.no_price,
            "modelTempC": self.model_temp_c,
            "modelProbability": self.model_probability,
            "marketImpliedProb": self.market_implied_prob,
            "edge": self.edge,
            "proximityAbsC": self.proximity_abs_c,
            "score": self.score,
            "computedAt": self.computed_at,
            "endDate": self.end_date,
        }


@dataclass
class CandidatePool:
    """All surviving candidates plus the winner per date."""
    candidates_by_date: Dict[str, List[CandidateSelection]]
    best_by_date: Dict[str, CandidateSelection]
    model_temps_by_date: Dict[str, float]

    def best_sorted(self) -> List[CandidateSelection]:
        return [self.best_by_date[k] for k in sorted(self.best_by_date)]


def candidate_key(market_id: str, side: PositionSide) -> str:
    """Identity of a candidate across cycles."""
    return f"{market_id}:{side.value}"


def ranking_key(candidate: CandidateSelection):
    return (-candidate.score, candidate.proximity_abs_c, candidate.market_id)


def select_best(candidates: Sequence[CandidateSelection]) -> Optional[CandidateSelection]:
    if not candidates:
        return None
    return sorted(candidates, key=ranking_key)[0]


class CandidateSelector:
    """Builds the per-date candidate pool from one cycle's snapshots."""

    def __init__(self, config: Dict[str, Any], model: Optional[ProbabilityModel] = None):
        self.model = model or ProbabilityModel(config)
        self.min_liquidity = config["MIN_TRADE_LIQUIDITY"]
        self.max_proximity = config["ENTRY_MAX_PROXIMITY_C"]
        self.min_edge = config["ENTRY_MIN_EDGE"]

    def build_pool(
        self,
        snapshots: Sequence[MarketSnapshot],
        model_temps_by_date: Mapping[str, float],
        now: Optional[datetime] = None,
    ) -> CandidatePool:
        now = now or datetime.now(timezone.utc)
        computed_at = now.isoformat()
        candidates_by_date: Dict[str, List[CandidateSelection]] = {}

        for snapshot in snapshots:
            for candidate in self._candidates_for(snapshot, model_temps_by_date, now, computed_at):
                candidates_by_date.setdefault(candidate.date_key, []).append(candidate)

        best_by_date = {}
        for date_key, candidates in candidates_by_date.items():
            best = select_best(candidates)
            if best is not None:
                best_by_date[date_key] = best
                logger.debug(
                    f"Best candidate | date={date_key} | key={best.candidate_key} | "
                    f"score={best.score:.4f} | proximity={best.proximity_abs_c:.2f}"
                )

        return CandidatePool(
            candidates_by_date=candidates_by_date,
            best_by_date=best_by_date,
            model_temps_by_date=dict(model_temps_by_date),
        )

    def _candidates_for(
        self,
        snapshot: MarketSnapshot,
        model_temps_by_date: Mapping[str, float],
        now: datetime,
        computed_at: str,
    ) -> List[CandidateSelection]:
        if not snapshot.is_tradeable:
            return []
        if not math.isfinite(snapshot.liquidity) or snapshot.liquidity < self.min_liquidity:
            return []
        if snapshot.bracket is None or not snapshot.date_key:
            return []

        model_temp = model_temps_by_date.get(snapshot.date_key)
        if model_temp is None or not math.isfinite(model_temp):
            return []
        if snapshot.model_probability is None:
            return []
        if snapshot.yes_price is None or snapshot.no_price is None:
            return []

        proximity = abs(model_temp - snapshot.bracket.value)
        if proximity > self.max_proximity:
            return []

        hours = hours_until_resolution(snapshot.end_date, now) if snapshot.end_date else 0.0
        compression = self.model.time_compression(hours)
        p = snapshot.model_probability

        sides = [
            (PositionSide.YES, p - snapshot.yes_price, snapshot.yes_price),
            (PositionSide.NO, (1 - p) - snapshot.no_price, snapshot.no_price),
        ]

        result = []
        for side, raw_edge, implied in sides:
            effective_edge = raw_edge * compression
            if effective_edge < self.min_edge:
                continue
            result.append(CandidateSelection(
                date_key=snapshot.date_key,
                market_id=snapshot.market_id,
                question=snapshot.question,
                side=side,
                strike_temp_c=snapshot.bracket.value,
                bracket_type=snapshot.bracket.bracket_type,
                yes_price=snapshot.yes_price,
                no_price=snapshot.no_price,
                model_temp_c=model_temp,
                model_probability=p,
                market_implied_prob=implied,
                edge=raw_edge,
                proximity_abs_c=proximity,
                score=effective_edge,
                computed_at=computed_at,
                end_date=snapshot.end_date,
            ))
        return result
