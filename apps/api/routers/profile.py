"""
Profile API Router

Onboarding, display edits, plan reset and the read-only progress views for
the local profile.
"""
from datetime import date
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, status
from pydantic import Field

from core.deps import get_engine
from core.exceptions import (
    ConflictError,
    NotFoundError,
    ProfileExistsError,
    ProfileMissingError,
)
from schemas import CamelModel, RouteType, UserProfile
from services.progress_summary import build_chart_series, build_summary
from services.sync_engine import ProgressSyncEngine

router = APIRouter(prefix="/v1/profile", tags=["Profile"])


class OnboardingRequest(CamelModel):
    name: str = Field(min_length=1)
    avatar: str = ""
    gender: Literal["male", "female"] = "female"
    age: int = Field(gt=0, lt=130)
    height: float = Field(gt=0, lt=300)
    current_weight: float = Field(gt=0, lt=500)
    target_weight: float = Field(gt=0, lt=500)
    plan_weeks: int = Field(default=8, ge=1, le=24)


class ProfileUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1)
    avatar: Optional[str] = None


class PlanResetRequest(CamelModel):
    target_weight: float = Field(gt=0, lt=500)
    plan_weeks: int = Field(ge=1, le=24)


class DailyPlanResponse(CamelModel):
    day: int
    title: str
    food: str
    workout: str


class SummaryResponse(CamelModel):
    route: RouteType
    coins: int
    current_weight: float
    target_weight: float
    days_passed: int
    total_days: int
    today_target: float
    weight_lost: float
    weight_progress_pct: float
    time_progress_pct: float
    has_checked_in_today: bool
    bmi: Optional[float] = None
    bmi_category: Optional[str] = None
    today_plan: DailyPlanResponse


class ChartPointResponse(CamelModel):
    day: date
    weight: Optional[float] = None
    target: float
    kind: str


def _require_profile(engine: ProgressSyncEngine) -> UserProfile:
    try:
        return engine.require_profile()
    except ProfileMissingError:
        raise NotFoundError("Profile", "local")


@router.get("", response_model=UserProfile)
async def get_profile(engine: ProgressSyncEngine = Depends(get_engine)):
    return _require_profile(engine)


@router.post("", response_model=UserProfile, status_code=status.HTTP_201_CREATED)
async def onboard(payload: OnboardingRequest, engine: ProgressSyncEngine = Depends(get_engine)):
    """
    Create the local profile.

    The plan starts today, at the current weight, with a route recommended
    from the weekly loss the goal requires.
    """
    try:
        return engine.onboard(**payload.model_dump())
    except ProfileExistsError as e:
        raise ConflictError(str(e))


@router.patch("", response_model=UserProfile)
async def update_profile(payload: ProfileUpdate, engine: ProgressSyncEngine = Depends(get_engine)):
    _require_profile(engine)
    return engine.update_profile(name=payload.name, avatar=payload.avatar)


@router.post("/reset", response_model=UserProfile)
async def reset_plan(payload: PlanResetRequest, engine: ProgressSyncEngine = Depends(get_engine)):
    """
    Restart the plan from today's weight.

    Every check-in log is cleared. Coins are kept.
    """
    _require_profile(engine)
    return engine.reset_plan(target_weight=payload.target_weight, plan_weeks=payload.plan_weeks)


@router.get("/summary", response_model=SummaryResponse)
async def get_summary(engine: ProgressSyncEngine = Depends(get_engine)):
    profile = _require_profile(engine)
    summary = build_summary(profile, engine.logs, engine.today())
    return SummaryResponse(
        route=profile.route,
        coins=profile.coins,
        current_weight=profile.current_weight,
        target_weight=profile.target_weight,
        days_passed=summary.days_passed,
        total_days=summary.total_days,
        today_target=summary.today_target,
        weight_lost=summary.weight_lost,
        weight_progress_pct=summary.weight_progress_pct,
        time_progress_pct=summary.time_progress_pct,
        has_checked_in_today=summary.has_checked_in_today,
        bmi=summary.bmi,
        bmi_category=summary.bmi_category,
        today_plan=DailyPlanResponse(**summary.today_plan.to_dict()),
    )


@router.get("/chart", response_model=List[ChartPointResponse])
async def get_chart(engine: ProgressSyncEngine = Depends(get_engine)):
    profile = _require_profile(engine)
    return [
        ChartPointResponse(day=point.day, weight=point.weight, target=point.target, kind=point.kind)
        for point in build_chart_series(profile, engine.logs, engine.today())
    ]
