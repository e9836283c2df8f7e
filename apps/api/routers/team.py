"""
Team API Router

Create / join / leave a team, read the roster and the chat, send messages.
The roster and chat are the locally merged views; they fill in as broadcasts
from teammates arrive.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import Field

from core.deps import get_engine
from core.exceptions import (
    ConflictError,
    InvalidChatMessageError,
    InvalidTeamCodeError,
    NotFoundError,
    ProfileMissingError,
    TeamRequiredError,
    ValidationError,
)
from schemas import CamelModel, ChatMessage, Teammate
from services.sync_engine import ProgressSyncEngine

router = APIRouter(prefix="/v1/team", tags=["Team"])


class JoinTeamRequest(CamelModel):
    code: str


class ChatSendRequest(CamelModel):
    content: str = Field(min_length=1, max_length=1000)


class TeamResponse(CamelModel):
    team_id: Optional[str] = None
    connected: bool
    teammates: List[Teammate]


def _team_response(engine: ProgressSyncEngine) -> TeamResponse:
    return TeamResponse(
        team_id=engine.profile.team_id if engine.profile else None,
        connected=engine.channel is not None and engine.channel.connected,
        teammates=engine.teammates(),
    )


def _require_profile(engine: ProgressSyncEngine):
    try:
        return engine.require_profile()
    except ProfileMissingError:
        raise NotFoundError("Profile", "local")


@router.get("", response_model=TeamResponse)
async def get_team(engine: ProgressSyncEngine = Depends(get_engine)):
    _require_profile(engine)
    return _team_response(engine)


@router.post("", response_model=TeamResponse, status_code=status.HTTP_201_CREATED)
async def create_team(engine: ProgressSyncEngine = Depends(get_engine)):
    """Create a team with a fresh random code and switch to it."""
    _require_profile(engine)
    engine.create_team()
    return _team_response(engine)


@router.post("/join", response_model=TeamResponse)
async def join_team(payload: JoinTeamRequest, engine: ProgressSyncEngine = Depends(get_engine)):
    _require_profile(engine)
    try:
        engine.join_team(payload.code)
    except InvalidTeamCodeError as e:
        raise ValidationError(str(e), field="code")
    return _team_response(engine)


@router.delete("", response_model=TeamResponse)
async def leave_team(engine: ProgressSyncEngine = Depends(get_engine)):
    _require_profile(engine)
    engine.leave_team()
    return _team_response(engine)


@router.get("/chat", response_model=List[ChatMessage])
async def get_chat(engine: ProgressSyncEngine = Depends(get_engine)):
    return engine.chat_history()


@router.post("/chat", response_model=ChatMessage, status_code=status.HTTP_201_CREATED)
async def send_chat(payload: ChatSendRequest, engine: ProgressSyncEngine = Depends(get_engine)):
    _require_profile(engine)
    try:
        return engine.send_chat(payload.content)
    except TeamRequiredError as e:
        raise ConflictError(str(e))
    except InvalidChatMessageError as e:
        raise ValidationError(str(e), field="content")
