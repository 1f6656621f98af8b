# =============================================================================
# POLYMARKET LADDER TRADER - SHARED ENUMS
# =============================================================================
#
# Shared vocabulary across the system.
# Values are the persisted / logged string forms. Changing a value changes
# the on-disk schema of positions.json and the JSONL logs.
#
# =============================================================================

from enum import Enum


class BracketType(Enum):
    """
    Semantics of one bracket in a date's ladder.

    AT_LEAST: "X°C or higher"
    AT_MOST:  "X°C or below"
    EXACT:    "be X°C on ..."
    """
    AT_LEAST = "AT_LEAST"
    AT_MOST = "AT_MOST"
    EXACT = "EXACT"


class PositionSide(Enum):
    """Side of a paper position. YES is the favorable outcome."""
    YES = "YES"
    NO = "NO"

    def opposite(self) -> "PositionSide":
        return PositionSide.NO if self is PositionSide.YES else PositionSide.YES


class Signal(Enum):
    """Trade signal from edge analysis."""
    BUY = "BUY"    # market underprices YES
    SELL = "SELL"  # market overprices YES
    HOLD = "HOLD"


class CloseReason(Enum):
    """Why a position left the open state."""
    DECIDED_95 = "DECIDED_95"
    STOP_PROXIMITY = "STOP_PROXIMITY"
    STOP_EDGE_FLIP = "STOP_EDGE_FLIP"
    OFFICIAL_SETTLEMENT = "OFFICIAL_SETTLEMENT"


class DecisionAction(Enum):
    """Per-date action recorded in the decision log."""
    HOLD = "HOLD"
    EXECUTED_ENTRY = "EXECUTED_ENTRY"
    BLOCKED_LOCK = "BLOCKED_LOCK"
    STOP_EXIT = "STOP_EXIT"


class SkipReason(Enum):
    """Reason an entry was refused."""
    LADDER_INCOHERENT = "LADDER_INCOHERENT"
    DATEKEY_ALREADY_HAS_POSITION = "DATEKEY_ALREADY_HAS_POSITION"
    DATE_DECIDED = "DATE_DECIDED"
    STOPOUT_CAP_REACHED = "STOPOUT_CAP_REACHED"
    NOT_CONFIRMED = "NOT_CONFIRMED"
    MARKET_ALREADY_TRADED = "MARKET_ALREADY_TRADED"
