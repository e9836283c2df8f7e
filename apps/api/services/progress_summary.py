"""
Progress Summary Service

Read-only views over the profile and its logs: how far along the plan is,
today's target and suggestion, and the series behind the trajectory chart.
"""
from dataclasses import dataclass
from datetime import date, timedelta
from typing import List, Optional

from schemas import DailyLog, UserProfile
from services.bmi_calculator import bmi_category, calculate_bmi
from services.log_store import LogStore
from services.plan_library import DailyPlan, get_daily_plan
from services.trajectory import calculate_daily_target, get_days_passed


@dataclass
class ProgressSummary:
    days_passed: int
    total_days: int
    today_target: float
    weight_lost: float
    weight_progress_pct: float
    time_progress_pct: float
    has_checked_in_today: bool
    bmi: Optional[float]
    bmi_category: Optional[str]
    today_plan: DailyPlan


@dataclass
class ChartPoint:
    day: date
    weight: Optional[float]
    target: float
    kind: str  # start | log | today | end


def _clamp_pct(value: float) -> float:
    return min(100.0, max(0.0, value))


def target_for(profile: UserProfile, day: date) -> float:
    return calculate_daily_target(
        profile.start_weight,
        profile.target_weight,
        profile.start_date,
        day,
        profile.route,
        profile.total_days,
    )


def weight_progress_pct(profile: UserProfile) -> float:
    total_loss = profile.start_weight - profile.target_weight
    if total_loss == 0:
        return 100.0 if profile.current_weight <= profile.target_weight else 0.0
    return _clamp_pct((profile.start_weight - profile.current_weight) / total_loss * 100)


def build_summary(profile: UserProfile, logs: LogStore, today: date) -> ProgressSummary:
    days_passed = get_days_passed(profile.start_date, today)
    total_days = profile.total_days
    bmi = calculate_bmi(profile.current_weight, profile.height)

    return ProgressSummary(
        days_passed=days_passed,
        total_days=total_days,
        today_target=target_for(profile, today),
        weight_lost=round(profile.start_weight - profile.current_weight, 1),
        weight_progress_pct=round(weight_progress_pct(profile), 1),
        time_progress_pct=round(_clamp_pct(days_passed / total_days * 100), 1),
        has_checked_in_today=logs.get(today) is not None,
        bmi=bmi,
        bmi_category=bmi_category(bmi),
        today_plan=get_daily_plan(profile.route, days_passed),
    )


def build_chart_series(profile: UserProfile, logs: LogStore, today: date) -> List[ChartPoint]:
    """
    Points for the actual-vs-ideal chart, sorted by day.

    start: the plan start at the start weight
    log:   every log on or after the start day, with that day's target
    today: today's target, only while today has no log
    end:   the last plan day at the goal weight
    """
    start = profile.start_date
    points = [ChartPoint(start, profile.start_weight, profile.start_weight, "start")]

    for log in logs.by_date():
        if log.date >= start:
            points.append(ChartPoint(log.date, log.weight, target_for(profile, log.date), "log"))

    if logs.get(today) is None and today >= start:
        points.append(ChartPoint(today, None, target_for(profile, today), "today"))

    end = start + timedelta(days=profile.total_days)
    points.append(ChartPoint(end, None, profile.target_weight, "end"))

    points.sort(key=lambda point: point.day)
    return points


def previous_weight(profile: UserProfile, logs: LogStore) -> float:
    """Weight to compare a new check-in against: the last log, else the start weight."""
    latest: Optional[DailyLog] = logs.latest()
    return latest.weight if latest else profile.start_weight
