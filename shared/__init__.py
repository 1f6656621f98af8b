# =============================================================================
# POLYMARKET LADDER TRADER - SHARED MODULE
# =============================================================================
#
# Shared utilities with no business logic.
#
# CONTENTS:
# - Enums (shared type definitions)
# - Logging setup
# - HTTP retry helper
#
# =============================================================================

from .enums import (
    BracketType,
    CloseReason,
    DecisionAction,
    PositionSide,
    Signal,
    SkipReason,
)
from .logging_config import setup_logging

__all__ = [
    "BracketType",
    "CloseReason",
    "DecisionAction",
    "PositionSide",
    "Signal",
    "SkipReason",
    "setup_logging",
]
