"""
Trajectory Calculator

Expected weight for any day of a plan: a straight line from the start weight
on the start day to the target weight on the last day.

Day 0 (the start day itself) is a preparation day and stays at the start
weight. Once the plan duration has elapsed the target weight is returned
exactly, so the line never overshoots below the goal.

The route is accepted and passed through for forward compatibility; today it
only changes the daily diet/workout suggestion, not the numbers.
"""
from datetime import date, datetime
from typing import Optional, Union

from schemas import RouteType

DateLike = Union[date, datetime, str, None]


def to_day(value: DateLike) -> Optional[date]:
    """
    Reduce a date-ish value to a calendar day (time of day discarded).

    Returns None for missing or unparseable input.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            if "T" in text or " " in text:
                return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
            return date.fromisoformat(text)
        except ValueError:
            return None
    return None


def days_between(start: DateLike, current: DateLike) -> Optional[int]:
    """Whole days from start to current, or None if either date is invalid."""
    start_day = to_day(start)
    current_day = to_day(current)
    if start_day is None or current_day is None:
        return None
    return (current_day - start_day).days


def get_days_passed(start_date: DateLike, today: DateLike) -> int:
    """Days since the plan started, never negative (0 on invalid input)."""
    days = days_between(start_date, today)
    if days is None or days < 0:
        return 0
    return days


def calculate_daily_target(
    start_weight: float,
    target_weight: float,
    start_date: DateLike,
    current_date: DateLike,
    route: RouteType,
    total_days: int,
) -> float:
    """
    Expected weight on current_date.

    Args:
        start_weight: Weight on the plan start day (kg)
        target_weight: Goal weight (kg)
        start_date: Plan start day
        current_date: Day to evaluate
        route: Pacing route (does not alter the line)
        total_days: Plan length in days (plan weeks * 7)

    Returns:
        Target weight rounded to 2 decimals

    Examples:
        >>> calculate_daily_target(70, 60, date(2024, 1, 1), date(2024, 1, 8), RouteType.GENTLE, 70)
        69.0
    """
    days_passed = days_between(start_date, current_date)

    if days_passed is None or days_passed <= 0:
        return start_weight
    if days_passed >= total_days:
        return target_weight

    safe_total_days = total_days if total_days > 0 else 1
    loss_per_day = (start_weight - target_weight) / safe_total_days

    return round(start_weight - loss_per_day * days_passed, 2)
