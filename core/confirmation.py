# =============================================================================
# POLYMARKET LADDER TRADER - CONFIRMATION COUNTER
# =============================================================================
#
# "N consecutive qualifying cycles" gate.
#
# USED BY:
# - Early resolution: a date's max exact-bracket price >= 0.95 for 2 cycles
# - Candidate confirmation: the same best candidate for CONFIRM_CYCLES cycles
# - Stop dampening: a stop condition holding for STOP_CONFIRM_CYCLES cycles
#
# The counter is stateless. Callers own the persisted (identity, count) pair
# and pass it in each cycle, so streaks survive restarts through
# positions.json.
#
# =============================================================================

from dataclasses import dataclass
from typing import Any, Callable, Optional


@dataclass(frozen=True)
class StreakUpdate:
    """Outcome of one observation."""
    identity: Optional[str]
    count: int
    restarted: bool
    confirmed: bool


def _is_present(value: Any) -> bool:
    return value is not None


class ConfirmationCounter:
    """
    Counts consecutive cycles in which the same identity qualifies.

    - identity None or predicate(value) False -> streak resets to 0
    - same identity as last cycle            -> streak + 1
    - different identity                     -> fresh streak of 1
    """

    def __init__(
        self,
        required_streak: int,
        predicate: Callable[[Any], bool] = _is_present,
        name: str = "confirmation",
    ):
        if required_streak < 1:
            raise ValueError(f"required_streak must be >= 1, got {required_streak}")
        self.required_streak = required_streak
        self.predicate = predicate
        self.name = name

    def observe(
        self,
        previous_identity: Optional[str],
        previous_count: int,
        identity: Optional[str],
        value: Any = None,
    ) -> StreakUpdate:
        if identity is None or not self.predicate(value):
            return StreakUpdate(identity=None, count=0, restarted=False, confirmed=False)

        if identity == previous_identity and previous_count > 0:
            count = previous_count + 1
            restarted = False
        else:
            count = 1
            restarted = True

        return StreakUpdate(
            identity=identity,
            count=count,
            restarted=restarted,
            confirmed=self.is_confirmed(count),
        )

    def is_confirmed(self, count: int) -> bool:
        return count >= self.required_streak

    def __repr__(self) -> str:
        return f"ConfirmationCounter(name={self.name!r}, required={self.required_streak})"
