"""
Check-in API Router

Two-step daily weigh-in:
1. POST /evaluate tells the client whether a reflection reason is needed and
   whether the weight would cost coins. Nothing is recorded.
2. POST / records it. If a reflection is needed but missing the request is
   rejected with REFLECTION_REQUIRED and nothing changes.

Posting again on the same day replaces that day's log. A penalty already
taken is not refunded.
"""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import Field

from core.deps import get_engine
from core.exceptions import (
    InvalidCheckInError,
    NotFoundError,
    ProfileMissingError,
    ReflectionRequiredError,
    ValidationError,
)
from schemas import CamelModel, ChatMessage, DailyLog
from services.checkin_engine import REFLECTION_REASONS
from services.sync_engine import ProgressSyncEngine

router = APIRouter(prefix="/v1/checkin", tags=["Check-in"])


class CheckInEvaluateRequest(CamelModel):
    weight: float = Field(gt=0, lt=500, allow_inf_nan=False)


class CheckInEvaluateResponse(CamelModel):
    weight: float
    today_target: float
    previous_weight: float
    needs_reflection: bool
    target_met: bool
    penalty_coins: int


class CheckInCreate(CamelModel):
    weight: float = Field(gt=0, lt=500, allow_inf_nan=False)
    photo: Optional[str] = None
    reflection: Optional[str] = None
    note: Optional[str] = None


class CheckInResponse(CamelModel):
    log: DailyLog
    today_target: float
    penalty_coins: int
    coins: int
    system_message: Optional[ChatMessage] = None


@router.post("/evaluate", response_model=CheckInEvaluateResponse)
async def evaluate_checkin(payload: CheckInEvaluateRequest, engine: ProgressSyncEngine = Depends(get_engine)):
    try:
        evaluation = engine.evaluate_checkin(payload.weight)
    except ProfileMissingError:
        raise NotFoundError("Profile", "local")
    except InvalidCheckInError as e:
        raise ValidationError(str(e), field="weight")

    return CheckInEvaluateResponse(
        weight=evaluation.weight,
        today_target=evaluation.today_target,
        previous_weight=evaluation.previous_weight,
        needs_reflection=evaluation.needs_reflection,
        target_met=evaluation.target_met,
        penalty_coins=evaluation.penalty_coins,
    )


@router.post("", response_model=CheckInResponse, status_code=status.HTTP_201_CREATED)
async def submit_checkin(payload: CheckInCreate, engine: ProgressSyncEngine = Depends(get_engine)):
    """
    Record today's weigh-in.

    If a check-in already exists for today, it will be replaced.
    """
    try:
        result = engine.submit_checkin(
            payload.weight,
            photo=payload.photo,
            reflection=payload.reflection,
            note=payload.note,
        )
    except ProfileMissingError:
        raise NotFoundError("Profile", "local")
    except InvalidCheckInError as e:
        raise ValidationError(str(e), field="weight")
    except ReflectionRequiredError as e:
        raise ValidationError(str(e), error_code="REFLECTION_REQUIRED")

    return CheckInResponse(
        log=result.outcome.log,
        today_target=result.outcome.today_target,
        penalty_coins=result.outcome.penalty_coins,
        coins=result.coins,
        system_message=result.system_message,
    )


@router.get("/reasons")
async def list_reflection_reasons():
    return [{"id": key, "label": label} for key, label in REFLECTION_REASONS.items()]


@router.get("/logs", response_model=List[DailyLog])
async def list_logs(sort: str = "submitted", engine: ProgressSyncEngine = Depends(get_engine)):
    """All logs, in submission order or (sort=date) by date."""
    if sort == "date":
        return engine.logs.by_date()
    return engine.logs.all()


@router.get("/today", response_model=Optional[DailyLog])
async def get_today_checkin(engine: ProgressSyncEngine = Depends(get_engine)):
    return engine.logs.get(engine.today())


@router.get("/{checkin_date}", response_model=DailyLog)
async def get_checkin_by_date(checkin_date: date, engine: ProgressSyncEngine = Depends(get_engine)):
    log = engine.logs.get(checkin_date)
    if log is None:
        raise NotFoundError("Check-in", checkin_date.isoformat())
    return log
