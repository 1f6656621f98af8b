"""
UNIT TESTS - PAPER TRADING MODELS
==================================
Tests fuer paper_trader/models.py
"""

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from shared.enums import CloseReason, PositionSide
from paper_trader.models import Position, PositionsState


def position_dict(market_id="m8", **overrides):
    data = {
        "marketId": market_id,
        "dateKey": "2026-03-03",
        "question": "Will the highest temperature in London be 8°C on March 3?",
        "entrySide": "YES",
        "entryYesPrice": 0.12,
        "entryNoPrice": 0.88,
        "openedAt": "2026-03-02T12:00:00+00:00",
        "size": 1.0,
    }
    data.update(overrides)
    return data


# =============================================================================
# POSITION
# =============================================================================

class TestPositionFromDict:

    def test_zero_size_kept(self):
        position = Position.from_dict(position_dict(size=0))
        assert position.size == 0.0
        assert Position.from_dict(position.to_dict()).size == 0.0

    def test_missing_size_defaults_to_one(self):
        data = position_dict()
        del data["size"]
        assert Position.from_dict(data).size == 1.0

    def test_unparseable_size_defaults_to_one(self):
        assert Position.from_dict(position_dict(size="lots")).size == 1.0

    def test_missing_no_price_is_complement(self):
        data = position_dict()
        del data["entryNoPrice"]
        assert abs(Position.from_dict(data).entry_no_price - 0.88) < 1e-9

    def test_unknown_enums_fall_back(self):
        position = Position.from_dict(position_dict(entrySide="MAYBE", closeReason="GONE"))
        assert position.entry_side == PositionSide.YES
        assert position.close_reason is None

    def test_round_trip_keeps_settlement(self):
        data = position_dict(
            isOpen=False,
            closeReason="OFFICIAL_SETTLEMENT",
            realizedPnl=0.88,
            resolvedOutcome="YES",
        )
        position = Position.from_dict(Position.from_dict(data).to_dict())
        assert position.close_reason == CloseReason.OFFICIAL_SETTLEMENT
        assert position.is_settled
        assert not position.is_open


# =============================================================================
# POSITIONS STATE
# =============================================================================

class TestPositionsStateFromDict:

    def test_malformed_position_entry_skipped(self):
        state = PositionsState.from_dict({
            "positions": {
                "m8": position_dict("m8"),
                "m9": "corrupted",
                "m10": None,
            },
        })
        assert list(state.positions) == ["m8"]

    def test_malformed_date_entries_skipped(self):
        state = PositionsState.from_dict({
            "decidedDates": {"2026-03-03": [1, 2], "2026-03-04": {"streakCount": 1}},
            "candidateState": {"2026-03-03": 7},
        })
        assert list(state.decided_dates) == ["2026-03-04"]
        assert state.decided_dates["2026-03-04"].streak_count == 1
        assert state.candidate_state == {}

    def test_non_mapping_sections_load_empty(self):
        state = PositionsState.from_dict({
            "positions": ["m8"],
            "stoppedOutDates": "2026-03-03",
        })
        assert state.positions == {}
        assert state.stopped_out_dates == {}

    def test_boolean_stop_flags_load_as_counts(self):
        state = PositionsState.from_dict({
            "stoppedOutDates": {"2026-03-03": True, "2026-03-04": False, "2026-03-05": 2},
        })
        assert state.stopped_out_dates == {"2026-03-03": 1, "2026-03-04": 0, "2026-03-05": 2}

    def test_empty_input(self):
        state = PositionsState.from_dict(None)
        assert state.positions == {}
        assert state.reported_dates == []
