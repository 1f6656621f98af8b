# =============================================================================
# POLYMARKET LADDER TRADER
# Module: collector/__init__.py
# Purpose: Market observation intake (Gamma API -> Observations)
# =============================================================================
#
# STRICT SEPARATION:
# This package ONLY fetches and normalizes public market state.
# It does NOT compute probabilities, edges or positions.
#
# DESIGN PRINCIPLES:
# - Deterministic: same input => same Observations
# - Errors surface as RuntimeError after bounded retries
#
# =============================================================================

from .client import PolymarketClient, resolved_outcome_from_market, upcoming_event_slugs
from .normalizer import normalize_market, normalize_markets

__all__ = [
    "PolymarketClient",
    "resolved_outcome_from_market",
    "upcoming_event_slugs",
    "normalize_market",
    "normalize_markets",
]
