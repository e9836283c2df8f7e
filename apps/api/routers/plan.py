"""
Plan API Router

Daily diet/workout suggestions for the profile's route.
"""
from typing import List

from fastapi import APIRouter, Depends

from core.deps import get_engine
from core.exceptions import NotFoundError, ProfileMissingError
from schemas import RouteType
from services.plan_library import get_daily_plan, plan_for_route
from services.sync_engine import ProgressSyncEngine
from services.trajectory import get_days_passed
from routers.profile import DailyPlanResponse

router = APIRouter(prefix="/v1/plan", tags=["Plan"])


@router.get("/today")
async def get_today_plan(engine: ProgressSyncEngine = Depends(get_engine)):
    try:
        profile = engine.require_profile()
    except ProfileMissingError:
        raise NotFoundError("Profile", "local")

    days_passed = get_days_passed(profile.start_date, engine.today())
    plan = get_daily_plan(profile.route, days_passed)
    return {
        "route": profile.route.value,
        "dayIndex": days_passed,
        "plan": DailyPlanResponse(**plan.to_dict()),
    }


@router.get("/{route}", response_model=List[DailyPlanResponse])
async def get_route_plan(route: RouteType):
    """The full 7-day rotation for a route."""
    return [DailyPlanResponse(**day.to_dict()) for day in plan_for_route(route)]
