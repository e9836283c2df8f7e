"""
Domain and wire models shared by the engine, the store and the team channel.

Field names are snake_case in Python and camelCase on the wire and in the
persisted JSON (`userId`, `weightLost`, `isTargetMet`, ...).
"""
from datetime import date, datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


SYSTEM_USER_ID = "system"


class RouteType(str, Enum):
    GENTLE = "gentle"
    AGGRESSIVE = "aggressive"


class PresenceStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAIL = "fail"


class MessageType(str, Enum):
    TEXT = "text"
    SYSTEM = "system"


Gender = Literal["male", "female"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        """JSON-ready dict using wire (camelCase) names."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


def _coerce_day(value):
    # Older profiles stored the plan start as a full ISO timestamp.
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str) and "T" in value:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    return value


class UserProfile(CamelModel):
    model_config = ConfigDict(validate_assignment=True)

    user_id: str
    name: str = Field(min_length=1)
    avatar: str = ""
    gender: Gender
    age: int = Field(gt=0)
    height: float = Field(gt=0)  # cm
    start_weight: float = Field(gt=0)  # kg
    current_weight: float = Field(gt=0)  # kg
    target_weight: float = Field(gt=0)  # kg
    start_date: date
    plan_weeks: int = Field(ge=1)
    route: RouteType = RouteType.GENTLE
    coins: int = Field(default=0, ge=0)
    team_id: Optional[str] = None

    @field_validator("start_date", mode="before")
    @classmethod
    def coerce_start_date(cls, value):
        return _coerce_day(value)

    @property
    def total_days(self) -> int:
        return self.plan_weeks * 7


class DailyLog(CamelModel):
    date: date
    weight: float = Field(gt=0)
    photo: Optional[str] = None
    note: Optional[str] = None
    reflection: Optional[str] = None
    is_target_met: bool

    @field_validator("date", mode="before")
    @classmethod
    def coerce_date(cls, value):
        return _coerce_day(value)


class Teammate(CamelModel):
    """Presence snapshot; also the wire shape of the presence topic."""
    user_id: str
    name: str
    avatar: str = ""
    status: PresenceStatus
    weight_lost: float
    last_seen: int  # epoch ms, producer clock


class ChatMessage(CamelModel):
    """Chat event; also the wire shape of the chat topic."""
    id: str = Field(min_length=1)
    user_id: str
    user_name: str
    avatar: Optional[str] = None
    content: str
    timestamp: int  # epoch ms, producer clock, not used for ordering
    type: MessageType = MessageType.TEXT
