"""
Tests for ProgressSyncEngine

Covers:
- Onboarding, route recommendation, persistence across restarts
- Check-in flow: reflection gate, penalty, zero floor, same-day overwrite
- Plan reset
- Team lifecycle and sync between two engines on one broker
"""
from datetime import date

import pytest

from core.events import EVENT_CHECKIN_CELEBRATE, EVENT_PENALTY_ASSESSED, EVENT_PLAN_RESET
from core.exceptions import (
    InvalidChatMessageError,
    InvalidCheckInError,
    InvalidTeamCodeError,
    ProfileExistsError,
    ProfileMissingError,
    ReflectionRequiredError,
    TeamRequiredError,
)
from schemas import SYSTEM_USER_ID, MessageType, PresenceStatus, RouteType
from services.checkin_engine import CheckInState
from services.team_channel import ChatEvent


def _onboard(engine, name="Bo", current=80.0, target=75.0, weeks=8, coins=None):
    return engine.onboard(
        name=name, gender="male", age=35, height=180,
        current_weight=current, target_weight=target, plan_weeks=weeks, coins=coins,
    )


class TestOnboarding:

    def test_profile_defaults(self, onboarded, clock):
        profile = onboarded.profile
        assert profile.coins == 1000
        assert profile.start_weight == profile.current_weight == 70.0
        assert profile.start_date == clock().date()
        assert profile.total_days == 70
        # 1 kg/week
        assert profile.route is RouteType.AGGRESSIVE
        assert profile.team_id is None

    def test_easy_goal_is_gentle(self, engine):
        profile = _onboard(engine, current=80, target=78, weeks=8)
        assert profile.route is RouteType.GENTLE

    def test_default_plan_weeks(self, engine):
        profile = engine.onboard(name="Al", gender="male", age=40, height=175,
                                 current_weight=90, target_weight=85)
        assert profile.plan_weeks == 8

    def test_onboard_twice(self, onboarded):
        with pytest.raises(ProfileExistsError):
            _onboard(onboarded)

    def test_operations_need_profile(self, engine):
        with pytest.raises(ProfileMissingError):
            engine.submit_checkin(70)
        with pytest.raises(ProfileMissingError):
            engine.create_team()

    def test_state_survives_restart(self, onboarded, make_engine, store, clock):
        clock.advance(days=7)
        onboarded.submit_checkin(68.9)

        restored = make_engine(store)
        assert restored.profile == onboarded.profile
        assert restored.logs.all() == onboarded.logs.all()
        assert restored.has_checked_in_today()

    def test_update_profile(self, onboarded):
        profile = onboarded.update_profile(name="Mia R.", avatar="https://img/1.png")
        assert profile.name == "Mia R."
        assert profile.avatar == "https://img/1.png"
        assert profile.coins == 1000


class TestCheckIn:

    def test_targets(self, onboarded, clock):
        assert onboarded.today_target() == 70.0
        clock.advance(days=7)
        assert onboarded.today_target() == 69.0

    def test_on_track(self, onboarded, clock):
        clock.advance(days=7)
        result = onboarded.submit_checkin(68.9, note="easy week")

        assert result.outcome.penalty_coins == 0
        assert result.system_message is None
        assert result.coins == 1000
        assert onboarded.profile.current_weight == 68.9
        assert onboarded.logs.get(date(2024, 3, 8)).note == "easy week"
        assert onboarded.presence_status() is PresenceStatus.SUCCESS

    def test_evaluate_records_nothing(self, onboarded, clock):
        clock.advance(days=7)
        evaluation = onboarded.evaluate_checkin("70.0")
        assert evaluation.needs_reflection is True
        assert evaluation.target_met is False
        assert evaluation.penalty_coins == 50
        assert evaluation.today_target == 69.0
        assert evaluation.previous_weight == 70.0
        assert len(onboarded.logs) == 0
        assert onboarded.presence_status() is PresenceStatus.PENDING

    def test_reflection_required(self, onboarded, clock):
        clock.advance(days=7)
        with pytest.raises(ReflectionRequiredError):
            onboarded.submit_checkin(70.0)
        assert len(onboarded.logs) == 0
        assert onboarded.profile.coins == 1000

    def test_invalid_weight(self, onboarded):
        with pytest.raises(InvalidCheckInError):
            onboarded.submit_checkin("seventy")
        assert len(onboarded.logs) == 0

    def test_miss_costs_coins_and_tells_the_team(self, onboarded, clock):
        banners = []
        onboarded.events.subscribe(EVENT_PENALTY_ASSESSED, lambda **kw: banners.append(kw))
        clock.advance(days=7)

        result = onboarded.submit_checkin(70.0, reflection="overate")

        assert result.outcome.penalty_coins == 50
        assert result.coins == 950
        assert onboarded.profile.coins == 950
        assert result.system_message.user_id == SYSTEM_USER_ID
        assert result.system_message.type is MessageType.SYSTEM
        assert result.system_message.content == "Mia missed today's target and handed out 50 coins to the team!"
        assert onboarded.chat_history()[-1] == result.system_message
        assert banners[0]["amount"] == 50
        assert banners[0]["coins"] == 950
        assert onboarded.presence_status() is PresenceStatus.FAIL

    def test_penalty_floor_at_zero(self, make_engine, clock):
        engine = make_engine()
        _onboard(engine, current=80, target=72, weeks=8, coins=30)
        clock.advance(days=7)
        result = engine.submit_checkin(81.0, reflection="no_exercise")
        assert result.coins == 0
        assert engine.profile.coins == 0

    def test_same_day_overwrite_keeps_penalty(self, onboarded, clock):
        clock.advance(days=7)
        onboarded.submit_checkin(70.0, reflection="water")
        result = onboarded.submit_checkin(68.9)

        assert len(onboarded.logs) == 1
        assert onboarded.logs.get(clock().date()).weight == 68.9
        assert onboarded.logs.get(clock().date()).is_target_met is True
        # no refund
        assert result.coins == 950

    def test_two_step_state_machine(self, onboarded, clock):
        celebrations = []
        onboarded.events.subscribe(EVENT_CHECKIN_CELEBRATE, lambda **kw: celebrations.append(kw))
        clock.advance(days=7)

        checkin = onboarded.begin_checkin()
        assert checkin.enter_weight(70.0) is CheckInState.AWAITING_REFLECTION
        checkin.provide_reflection("period")
        result = onboarded.apply_checkin(checkin.outcome)

        assert result.outcome.log.reflection == "Menstrual cycle fluctuation"
        assert celebrations == [{"date": clock().date(), "weight": 70.0}]

    def test_previous_weight_is_last_log(self, onboarded, clock):
        clock.advance(days=1)
        onboarded.submit_checkin(69.0)
        clock.advance(days=1)
        assert onboarded.previous_weight() == 69.0
        # gained 0.3 since yesterday although still under target
        evaluation = onboarded.evaluate_checkin(69.3)
        assert evaluation.target_met is True
        assert evaluation.needs_reflection is True


class TestPlanReset:

    def test_reset(self, onboarded, clock):
        resets = []
        onboarded.events.subscribe(EVENT_PLAN_RESET, lambda **kw: resets.append(kw))
        clock.advance(days=7)
        onboarded.submit_checkin(70.0, reflection="overate")

        clock.advance(days=1)
        profile = onboarded.reset_plan(target_weight=65.0, plan_weeks=12)

        assert profile.start_date == clock().date()
        assert profile.start_weight == 70.0
        assert profile.target_weight == 65.0
        assert profile.plan_weeks == 12
        assert profile.coins == 950
        # 5 kg over 12 weeks is under 0.6 kg/week
        assert profile.route is RouteType.GENTLE
        assert len(onboarded.logs) == 0
        assert onboarded.chat_history()[-1].content == "Plan reset! Mia has started a new challenge."
        assert onboarded.today_target() == 70.0
        assert resets[0]["profile"] == profile

    def test_reset_steep_goal_is_aggressive(self, onboarded):
        assert onboarded.reset_plan(target_weight=62.0, plan_weeks=8).route is RouteType.AGGRESSIVE


class TestTeamSync:

    def test_chat_needs_team(self, onboarded):
        with pytest.raises(TeamRequiredError):
            onboarded.send_chat("hello")

    def test_invalid_code(self, onboarded):
        with pytest.raises(InvalidTeamCodeError):
            onboarded.join_team("abc")
        assert onboarded.profile.team_id is None

    def test_create_team_announces_presence(self, onboarded, broker):
        code = onboarded.create_team()
        assert len(code) == 6
        assert onboarded.profile.team_id == code
        assert onboarded.channel.connected
        assert f"team/{code}/presence" in broker.retained

    def test_members_see_each_other(self, onboarded, make_engine):
        other = make_engine()
        _onboard(other)
        code = onboarded.create_team()
        other.join_team(code.lower())

        other.pump()
        onboarded.pump()

        assert [m.name for m in other.teammates()] == ["Mia"]
        assert [m.name for m in onboarded.teammates()] == ["Bo"]

    def test_chat_and_penalty_reach_teammates(self, onboarded, make_engine, clock):
        other = make_engine()
        _onboard(other)
        code = onboarded.create_team()
        other.join_team(code)
        other.pump()

        sent = onboarded.send_chat("let's go")
        clock.advance(days=7)
        onboarded.submit_checkin(70.0, reflection="overate")
        other.pump()

        history = other.chat_history()
        assert history[0] == sent
        assert history[1].type is MessageType.SYSTEM
        assert "handed out 50 coins" in history[1].content
        mia = other.teammates()[0]
        assert mia.status is PresenceStatus.FAIL
        assert mia.weight_lost == 0.0

        # persisted on the receiving side too
        saved = other.repository.store.get("slimfit_chat")
        assert [m["id"] for m in saved] == [m.id for m in history]

    def test_replayed_chat_not_duplicated(self, onboarded, make_engine):
        other = make_engine()
        _onboard(other)
        code = onboarded.create_team()
        other.join_team(code)
        message = onboarded.send_chat("once")
        other.pump()

        other.handle_inbound(ChatEvent(message))
        assert [m.id for m in other.chat_history()].count(message.id) == 1

    def test_send_chat_rejects_blank(self, onboarded):
        onboarded.create_team()
        with pytest.raises(InvalidChatMessageError):
            onboarded.send_chat("   ")

    def test_profile_edit_updates_presence(self, onboarded, make_engine):
        other = make_engine()
        _onboard(other)
        code = onboarded.create_team()
        other.join_team(code)
        other.pump()

        onboarded.update_profile(name="Mia R.")
        other.pump()
        assert [m.name for m in other.teammates()] == ["Mia R."]

    def test_switching_team_tears_down_old_channel(self, onboarded, make_engine):
        other = make_engine()
        _onboard(other)
        code = onboarded.create_team()
        other.join_team(code)
        other.pump()
        old_transport = other.channel.transport

        other.join_team("ZZZ999")

        assert old_transport.disconnected
        assert other.profile.team_id == "ZZZ999"
        assert other.teammates() == []
        # traffic on the old team no longer arrives
        onboarded.send_chat("anyone?")
        other.pump()
        assert all(m.content != "anyone?" for m in other.chat_history())

    def test_leave_team(self, onboarded):
        onboarded.create_team()
        onboarded.leave_team()
        assert onboarded.profile.team_id is None
        assert onboarded.channel is None
        assert onboarded.pump() == 0

    def test_start_rejoins_saved_team(self, onboarded, make_engine, store):
        code = onboarded.create_team()
        onboarded.close()

        restored = make_engine(store)
        assert restored.channel is None
        restored.start()
        assert restored.channel.connected
        assert restored.channel.team_id == code

    def test_no_transport_means_local_only(self, onboarded):
        onboarded.transport_factory = None
        code = onboarded.create_team()
        assert onboarded.profile.team_id == code
        assert onboarded.channel is None
        # chat still recorded locally
        onboarded.send_chat("offline")
        assert onboarded.chat_history()[-1].content == "offline"
