# =============================================================================
# POLYMARKET LADDER TRADER - CORE MODULE
# =============================================================================
#
# Pure evaluation logic. No I/O except config loading.
#
# MODULES:
# - trading_config: YAML thresholds with defaults and validation
# - market_parser: question -> bracket, date keys, timestamps
# - probability_model: forecast -> bracket probability, edge, signal
# - market_snapshot: observation -> evaluated snapshot
# - ladder_coherence: per-date ladder health
# - candidate_selector: per-date best candidate
# - confirmation: N-consecutive-cycle streaks
# - multi_forecast / forecast_sources: provider forecasts
#
# =============================================================================

from .trading_config import DEFAULT_CONFIG, load_config, validate_config
from .market_parser import ParsedBracket, parse_market_question
from .probability_model import ProbabilityModel
from .market_snapshot import MarketSnapshot, Observation, SnapshotBuilder
from .ladder_coherence import LadderStats, compute_ladder_coherence
from .candidate_selector import CandidatePool, CandidateSelection, CandidateSelector
from .confirmation import ConfirmationCounter

__all__ = [
    "DEFAULT_CONFIG",
    "load_config",
    "validate_config",
    "ParsedBracket",
    "parse_market_question",
    "ProbabilityModel",
    "MarketSnapshot",
    "Observation",
    "SnapshotBuilder",
    "LadderStats",
    "compute_ladder_coherence",
    "CandidatePool",
    "CandidateSelection",
    "CandidateSelector",
    "ConfirmationCounter",
]
