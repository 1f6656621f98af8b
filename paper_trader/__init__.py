# =============================================================================
# POLYMARKET LADDER TRADER - PAPER TRADING MODULE
# =============================================================================
#
# ╔═══════════════════════════════════════════════════════════════════════════╗
# ║                    PAPER TRADING ONLY - NO LIVE EXECUTION                 ║
# ╠═══════════════════════════════════════════════════════════════════════════╣
# ║  Positions are simulated at observed market prices.                       ║
# ║  NO real orders are placed. NO funds are at risk.                         ║
# ╚═══════════════════════════════════════════════════════════════════════════╝
#
# MODULES:
# - models: positions, per-date state, reports (camelCase JSON)
# - storage: atomic JSON persistence under logs/
# - position_manager: entry gating, stops, DECIDED_95 early close
# - early_resolution: DECIDED_95 streak detection
# - settlement: official outcomes, daily P&L
# - logger: monitoring / decision JSONL
#
# =============================================================================

"""
Paper Trading Module - Position lifecycle for temperature ladders.

WARNING:
    This module does NOT execute real trades.
"""

__version__ = "2.0.0"
__status__ = "PAPER_ONLY"
