"""
Progress & Social Sync Engine

The single owner of the local session state:
- profile  (UserProfile, single writer: this process)
- logs     (LogStore)
- chat     (ChatReconciler, merged from every team member)
- roster   (PresenceReconciler, merged from every team member)

All mutation goes through the methods below. Each one updates the in-memory
model completely, then persists, then broadcasts, so a failed write or a
dropped publish never leaves a half-applied change behind.

Nothing here runs in parallel: callers (the API event loop) invoke one
operation at a time, and inbound broker messages are only processed when
`pump()` is called.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, List, Optional

from core.config import settings
from core.events import (
    EventBus,
    EVENT_CHECKIN_CELEBRATE,
    EVENT_CHECKIN_SUBMITTED,
    EVENT_PENALTY_ASSESSED,
    EVENT_PLAN_RESET,
    EVENT_TEAM_CHANGED,
)
from core.exceptions import (
    InvalidChatMessageError,
    ProfileExistsError,
    ProfileMissingError,
    ReflectionRequiredError,
    TeamRequiredError,
)
from core.transport import PubSubTransport
from schemas import (
    SYSTEM_USER_ID,
    ChatMessage,
    MessageType,
    PresenceStatus,
    Teammate,
    UserProfile,
)
from services.chat_reconciler import ChatReconciler
from services.checkin_engine import (
    CheckInEngine,
    CheckInOutcome,
    CheckInState,
    apply_penalty,
    is_target_met,
    needs_reflection,
    parse_weight,
    penalty_for,
)
from services.log_store import LogStore
from services.plan_library import assess_difficulty, recommend_route_for_reset
from services.presence_reconciler import PresenceReconciler
from services.progress_summary import previous_weight, target_for
from services.session_repository import SessionRepository
from services.team_channel import (
    ChatEvent,
    InboundMessage,
    PresenceEvent,
    TeamChannel,
    generate_team_code,
    normalize_team_code,
)

logger = logging.getLogger(__name__)

SYSTEM_USER_NAME = "System"


@dataclass
class CheckInEvaluation:
    """What a weight would mean for today, before anything is recorded."""
    weight: float
    today_target: float
    previous_weight: float
    needs_reflection: bool
    target_met: bool
    penalty_coins: int


@dataclass
class CheckInResult:
    outcome: CheckInOutcome
    coins: int
    system_message: Optional[ChatMessage]


class ProgressSyncEngine:
    """
    Example usage:
        repo = SessionRepository(MemoryKeyValueStore())
        engine = ProgressSyncEngine(repo, transport_factory=RedisPubSubTransport)
        engine.onboard(name="Me", gender="female", age=30, height=165,
                       current_weight=70, target_weight=60, plan_weeks=8)
        engine.join_team("ab12cd")
        engine.submit_checkin(69.4)
    """

    def __init__(
        self,
        repository: SessionRepository,
        transport_factory: Optional[Callable[[], PubSubTransport]] = None,
        *,
        events: Optional[EventBus] = None,
        clock: Callable[[], datetime] = datetime.now,
        broker_url: Optional[str] = None,
        presence_stale_after_s: Optional[int] = None,
    ):
        self.repository = repository
        self.transport_factory = transport_factory
        self.events = events or EventBus()
        self.clock = clock
        self.broker_url = broker_url
        self.presence_stale_after_s = presence_stale_after_s

        snapshot = repository.load()
        self.profile: Optional[UserProfile] = snapshot.profile
        self.logs: LogStore = snapshot.logs
        self.chat: ChatReconciler = snapshot.chat
        self.roster = PresenceReconciler(
            self.profile.user_id if self.profile else "", presence_stale_after_s
        )
        self.channel: Optional[TeamChannel] = None

    # ------------------------------------------------------------------
    # Clock helpers
    # ------------------------------------------------------------------

    def today(self) -> date:
        return self.clock().date()

    def now_ms(self) -> int:
        return int(self.clock().timestamp() * 1000)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self):
        """Connect to the team channel if the profile is already in a team."""
        if self.profile and self.profile.team_id and self.channel is None:
            self._open_channel(self.profile.team_id)

    def close(self):
        self._close_channel()
        self._persist()

    def pump(self, timeout: float = 0.0) -> int:
        """Process pending inbound team messages."""
        if self.channel is None:
            return 0
        return self.channel.pump(timeout)

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def require_profile(self) -> UserProfile:
        if self.profile is None:
            raise ProfileMissingError()
        return self.profile

    def onboard(
        self,
        *,
        name: str,
        gender: str,
        age: int,
        height: float,
        current_weight: float,
        target_weight: float,
        plan_weeks: Optional[int] = None,
        avatar: str = "",
        coins: Optional[int] = None,
    ) -> UserProfile:
        """Create the local profile. The plan starts today at the current weight."""
        if self.profile is not None:
            raise ProfileExistsError("A profile is already set up; reset the plan instead")

        plan_weeks = plan_weeks or settings.DEFAULT_PLAN_WEEKS
        route, difficulty = assess_difficulty(current_weight, target_weight, plan_weeks)
        profile = UserProfile(
            user_id=str(uuid.uuid4()),
            name=name,
            avatar=avatar,
            gender=gender,
            age=age,
            height=height,
            start_weight=current_weight,
            current_weight=current_weight,
            target_weight=target_weight,
            start_date=self.today(),
            plan_weeks=plan_weeks,
            route=route,
            coins=settings.STARTING_COINS if coins is None else coins,
        )

        self.profile = profile
        self.logs.clear()
        self.roster = PresenceReconciler(profile.user_id, self.presence_stale_after_s)
        logger.info(f"Profile created for {profile.user_id}: route={route.value} difficulty={difficulty}")
        self._persist()
        return profile

    def update_profile(self, *, name: Optional[str] = None, avatar: Optional[str] = None) -> UserProfile:
        """Edit display fields. Plan fields only change through reset_plan()."""
        profile = self.require_profile()
        changes = {}
        if name is not None:
            changes["name"] = name
        if avatar is not None:
            changes["avatar"] = avatar
        if changes:
            self.profile = UserProfile.model_validate({**profile.model_dump(), **changes})
            self._persist()
            self._publish_presence()
        return self.profile

    def reset_plan(self, *, target_weight: float, plan_weeks: int) -> UserProfile:
        """
        Start a new plan from today's current weight.

        Clears every log. Coins are kept.
        """
        profile = self.require_profile()
        route = recommend_route_for_reset(profile.current_weight, target_weight, plan_weeks)
        updated = UserProfile.model_validate({
            **profile.model_dump(),
            "start_date": self.today(),
            "start_weight": profile.current_weight,
            "target_weight": target_weight,
            "plan_weeks": plan_weeks,
            "route": route,
        })

        self.profile = updated
        self.logs.clear()
        message = self._system_message(f"Plan reset! {updated.name} has started a new challenge.")
        self.chat.merge(message)
        logger.info(
            f"Plan reset for {updated.user_id}: {updated.start_weight}kg -> "
            f"{updated.target_weight}kg over {updated.plan_weeks} weeks ({route.value})"
        )
        self._persist()
        self.events.emit(EVENT_PLAN_RESET, profile=updated)
        self._publish_chat(message)
        self._publish_presence()
        return updated

    # ------------------------------------------------------------------
    # Check-in
    # ------------------------------------------------------------------

    def today_target(self) -> float:
        return target_for(self.require_profile(), self.today())

    def previous_weight(self) -> float:
        return previous_weight(self.require_profile(), self.logs)

    def begin_checkin(self) -> CheckInEngine:
        """A fresh check-in state machine for today."""
        return CheckInEngine(self.today(), self.today_target(), self.previous_weight())

    def evaluate_checkin(self, weight) -> CheckInEvaluation:
        weight = parse_weight(weight)
        target = self.today_target()
        previous = self.previous_weight()
        return CheckInEvaluation(
            weight=weight,
            today_target=target,
            previous_weight=previous,
            needs_reflection=needs_reflection(weight, target, previous),
            target_met=is_target_met(weight, target),
            penalty_coins=penalty_for(weight, target),
        )

    def submit_checkin(
        self,
        weight,
        *,
        photo: Optional[str] = None,
        reflection: Optional[str] = None,
        note: Optional[str] = None,
    ) -> CheckInResult:
        """
        Record today's weigh-in.

        Raises ReflectionRequiredError when the weight calls for a reflection
        and none was given; nothing is recorded in that case.
        """
        checkin = self.begin_checkin()
        state = checkin.enter_weight(weight, photo=photo, note=note, reflection=reflection)
        if state is CheckInState.AWAITING_REFLECTION:
            raise ReflectionRequiredError(checkin.weight, checkin.today_target)
        return self.apply_checkin(checkin.outcome)

    def apply_checkin(self, outcome: CheckInOutcome) -> CheckInResult:
        """
        Apply a submitted check-in to the session.

        The penalty is one-way: correcting the same day later to a weight that
        meets the target does not refund it.
        """
        profile = self.require_profile()
        system_message = None
        coins = profile.coins

        if outcome.penalty_coins > 0:
            coins = apply_penalty(profile.coins, outcome.penalty_coins)
            system_message = self._system_message(
                f"{profile.name} missed today's target and handed out "
                f"{outcome.penalty_coins} coins to the team!"
            )

        self.profile = UserProfile.model_validate({
            **profile.model_dump(),
            "current_weight": outcome.log.weight,
            "coins": coins,
        })
        self.logs.upsert(outcome.log)
        if system_message is not None:
            self.chat.merge(system_message)
            logger.info(
                f"Penalty of {outcome.penalty_coins} coins for {profile.user_id} "
                f"({outcome.log.weight}kg vs target {outcome.today_target}kg), balance {coins}"
            )

        self._persist()

        self.events.emit(EVENT_CHECKIN_SUBMITTED, log=outcome.log, outcome=outcome)
        if system_message is not None:
            self.events.emit(
                EVENT_PENALTY_ASSESSED,
                amount=outcome.penalty_coins,
                coins=coins,
                banner=f"Missed today's target! {outcome.penalty_coins} coins were sent to your teammates.",
            )
            self._publish_chat(system_message)
        self.events.emit(EVENT_CHECKIN_CELEBRATE, date=outcome.log.date, weight=outcome.log.weight)
        self._publish_presence()

        return CheckInResult(outcome=outcome, coins=coins, system_message=system_message)

    def has_checked_in_today(self) -> bool:
        return self.logs.get(self.today()) is not None

    # ------------------------------------------------------------------
    # Team
    # ------------------------------------------------------------------

    def create_team(self) -> str:
        code = generate_team_code()
        self._set_team(code)
        return code

    def join_team(self, code: str) -> str:
        normalized = normalize_team_code(code)
        self._set_team(normalized)
        return normalized

    def leave_team(self):
        self._set_team(None)

    def send_chat(self, content: str) -> ChatMessage:
        """Append a text message locally, then broadcast it to the team."""
        profile = self.require_profile()
        if not profile.team_id:
            raise TeamRequiredError("Join or create a team before chatting")
        if not content or not content.strip():
            raise InvalidChatMessageError("Message text is empty")

        message = ChatMessage(
            id=str(uuid.uuid4()),
            user_id=profile.user_id,
            user_name=profile.name,
            avatar=profile.avatar or None,
            content=content,
            timestamp=self.now_ms(),
            type=MessageType.TEXT,
        )
        self.chat.merge(message)
        self._persist()
        self._publish_chat(message)
        return message

    def teammates(self) -> List[Teammate]:
        return self.roster.roster(self.now_ms())

    def chat_history(self) -> List[ChatMessage]:
        return self.chat.history()

    def handle_inbound(self, message: InboundMessage):
        """Merge one message from the team channel into the local views."""
        if isinstance(message, PresenceEvent):
            self.roster.merge(message.snapshot)
        elif isinstance(message, ChatEvent):
            if self.chat.merge(message.message):
                self._persist()

    def presence_status(self) -> PresenceStatus:
        log = self.logs.get(self.today())
        if log is None:
            return PresenceStatus.PENDING
        return PresenceStatus.SUCCESS if log.is_target_met else PresenceStatus.FAIL

    def presence_snapshot(self) -> Teammate:
        profile = self.require_profile()
        return Teammate(
            user_id=profile.user_id,
            name=profile.name,
            avatar=profile.avatar,
            status=self.presence_status(),
            weight_lost=round(profile.start_weight - profile.current_weight, 1),
            last_seen=self.now_ms(),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _set_team(self, team_id: Optional[str]):
        profile = self.require_profile()
        self._close_channel()
        self.roster.clear()
        self.profile = UserProfile.model_validate({**profile.model_dump(), "team_id": team_id})
        self._persist()
        self.events.emit(EVENT_TEAM_CHANGED, team_id=team_id)
        if team_id:
            self._open_channel(team_id)

    def _open_channel(self, team_id: str):
        if self.transport_factory is None:
            logger.warning("No broker transport configured; team sync disabled")
            return
        self.channel = TeamChannel(
            self.transport_factory(),
            team_id,
            self.profile.user_id,
            presence_provider=self.presence_snapshot,
            on_message=self.handle_inbound,
            endpoint=self.broker_url,
            clock=lambda: self.clock().timestamp(),
        )
        self.channel.open()

    def _close_channel(self):
        if self.channel is not None:
            self.channel.close()
            self.channel = None

    def _publish_presence(self):
        if self.channel is not None and self.profile is not None:
            self.channel.publish_presence()

    def _publish_chat(self, message: ChatMessage):
        if self.channel is not None:
            self.channel.publish_chat(message)

    def _system_message(self, content: str) -> ChatMessage:
        return ChatMessage(
            id=str(uuid.uuid4()),
            user_id=SYSTEM_USER_ID,
            user_name=SYSTEM_USER_NAME,
            content=content,
            timestamp=self.now_ms(),
            type=MessageType.SYSTEM,
        )

    def _persist(self):
        self.repository.save(self.profile, self.logs, self.chat)
        self.chat.trim()
