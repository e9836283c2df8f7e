"""
Check-in Engine

Validates one day's weigh-in against the trajectory and decides:
- whether a reflection reason must be collected first
- whether the day's target was met
- whether a coin penalty applies

State machine, one instance per day's check-in:

    AWAITING_WEIGHT --enter_weight--> SUBMITTED
    AWAITING_WEIGHT --enter_weight--> AWAITING_REFLECTION --provide_reflection--> SUBMITTED

The engine only decides. Applying the outcome (storing the log, moving coins,
telling the team) is the caller's job, see services.sync_engine.
"""
import logging
import math
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional

from core.config import settings
from core.exceptions import InvalidCheckInError
from schemas import DailyLog

logger = logging.getLogger(__name__)


class CheckInState(str, Enum):
    AWAITING_WEIGHT = "awaiting-weight"
    AWAITING_REFLECTION = "awaiting-reflection"
    SUBMITTED = "submitted"


# Reasons offered when a reflection is required. Free text is accepted too.
REFLECTION_REASONS = {
    "overate": "Couldn't resist, ate too much",
    "no_exercise": "Too busy to exercise",
    "water": "Water retention / constipation",
    "period": "Menstrual cycle fluctuation",
    "rest": "Normal rest day",
}


@dataclass
class CheckInOutcome:
    """Result of a submitted check-in."""
    log: DailyLog
    today_target: float
    previous_weight: float
    reflection_required: bool
    penalty_coins: int  # 0 when the target was within the allowed deviation


def _reason_text(reflection: Optional[str]) -> Optional[str]:
    if not reflection:
        return None
    return REFLECTION_REASONS.get(reflection, reflection)


def parse_weight(value) -> float:
    """
    Boundary validation for a submitted weight.

    Accepts numbers and numeric strings; rejects anything that would not
    produce a usable DailyLog.
    """
    if isinstance(value, bool) or value is None:
        raise InvalidCheckInError(f"Weight must be a number, got {value!r}")
    try:
        weight = float(value)
    except (TypeError, ValueError):
        raise InvalidCheckInError(f"Weight must be a number, got {value!r}")
    if not math.isfinite(weight) or weight <= 0:
        raise InvalidCheckInError(f"Weight must be a positive number, got {value!r}")
    return weight


def exceeds_by(weight: float, reference: float, margin: float) -> bool:
    """
    True if `weight` is more than `margin` above `reference`.

    Compared on the difference rounded to 6 decimals, so a gain of exactly
    0.2 kg (70.0 -> 70.2) is 0.2 and not 0.20000000000000284.
    """
    return round(weight - reference, 6) > margin


def needs_reflection(
    weight: float,
    today_target: float,
    previous_weight: float,
    threshold: Optional[float] = None,
) -> bool:
    """
    True if the weight is more than `threshold` above today's target, or more
    than `threshold` above the previous recorded weight. Strict comparison.
    """
    if threshold is None:
        threshold = settings.REFLECTION_THRESHOLD_KG
    return exceeds_by(weight, today_target, threshold) or exceeds_by(weight, previous_weight, threshold)


def is_target_met(weight: float, today_target: float, allowed_deviation: Optional[float] = None) -> bool:
    if allowed_deviation is None:
        allowed_deviation = settings.ALLOWED_DEVIATION_KG
    return not exceeds_by(weight, today_target, allowed_deviation)


def penalty_for(
    weight: float,
    today_target: float,
    allowed_deviation: Optional[float] = None,
    penalty_coins: Optional[int] = None,
) -> int:
    """Fixed penalty when the weight exceeds today's target plus the allowed deviation."""
    if penalty_coins is None:
        penalty_coins = settings.PENALTY_COINS
    if is_target_met(weight, today_target, allowed_deviation):
        return 0
    return penalty_coins


def apply_penalty(coins: int, amount: int) -> int:
    """Deduct a penalty from a balance, floored at zero."""
    return max(0, coins - amount)


class CheckInEngine:
    """
    Drives a single day's check-in.

    Example usage:
        engine = CheckInEngine(day=date.today(), today_target=69.0, previous_weight=69.4)
        state = engine.enter_weight(70.1)
        if state is CheckInState.AWAITING_REFLECTION:
            engine.provide_reflection("overate")
        outcome = engine.outcome
    """

    def __init__(
        self,
        day: date,
        today_target: float,
        previous_weight: float,
        *,
        reflection_threshold: Optional[float] = None,
        allowed_deviation: Optional[float] = None,
        penalty_coins: Optional[int] = None,
    ):
        self.day = day
        self.today_target = today_target
        self.previous_weight = previous_weight
        self.reflection_threshold = (
            settings.REFLECTION_THRESHOLD_KG if reflection_threshold is None else reflection_threshold
        )
        self.allowed_deviation = (
            settings.ALLOWED_DEVIATION_KG if allowed_deviation is None else allowed_deviation
        )
        self.penalty_coins = settings.PENALTY_COINS if penalty_coins is None else penalty_coins

        self.state = CheckInState.AWAITING_WEIGHT
        self.weight: Optional[float] = None
        self.photo: Optional[str] = None
        self.note: Optional[str] = None
        self.reflection_required = False
        self.outcome: Optional[CheckInOutcome] = None

    def requires_reflection(self, weight: float) -> bool:
        return needs_reflection(weight, self.today_target, self.previous_weight, self.reflection_threshold)

    def enter_weight(
        self,
        weight,
        photo: Optional[str] = None,
        note: Optional[str] = None,
        reflection: Optional[str] = None,
    ) -> CheckInState:
        """
        Record the weight. Submits straight away unless a reflection is needed.

        A reflection given up front is kept on the log either way.
        """
        if self.state is CheckInState.SUBMITTED:
            raise RuntimeError("Check-in already submitted")

        self.weight = parse_weight(weight)
        self.photo = photo or None
        self.note = note or None
        self.reflection_required = self.requires_reflection(self.weight)

        if self.reflection_required and not reflection:
            self.state = CheckInState.AWAITING_REFLECTION
        else:
            self._submit(reflection=_reason_text(reflection))
        return self.state

    def provide_reflection(self, reflection: str) -> CheckInState:
        if self.state is not CheckInState.AWAITING_REFLECTION:
            raise RuntimeError(f"No reflection expected in state {self.state.value}")
        if not reflection:
            raise ValueError("A reflection reason is required")
        self._submit(reflection=_reason_text(reflection))
        return self.state

    def back_to_weight(self):
        """Abandon the reflection step and re-enter the weight."""
        if self.state is CheckInState.AWAITING_REFLECTION:
            self.state = CheckInState.AWAITING_WEIGHT

    def _submit(self, reflection: Optional[str]):
        log = DailyLog(
            date=self.day,
            weight=self.weight,
            photo=self.photo,
            note=self.note,
            reflection=reflection,
            is_target_met=is_target_met(self.weight, self.today_target, self.allowed_deviation),
        )
        self.outcome = CheckInOutcome(
            log=log,
            today_target=self.today_target,
            previous_weight=self.previous_weight,
            reflection_required=self.reflection_required,
            penalty_coins=penalty_for(
                self.weight, self.today_target, self.allowed_deviation, self.penalty_coins
            ),
        )
        self.state = CheckInState.SUBMITTED
        logger.debug(
            f"Check-in for {self.day} submitted: weight={self.weight} "
            f"target={self.today_target} met={log.is_target_met}"
        )
