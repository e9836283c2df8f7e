"""
Plan Library

Daily diet/workout suggestions for each pacing route and the route
recommendation used at onboarding and on plan reset.

The route only changes what is suggested each day. The numeric trajectory is
the same for both routes (see services.trajectory).
"""
from dataclasses import dataclass, asdict
from typing import Dict, List, Optional, Tuple

from schemas import RouteType


@dataclass(frozen=True)
class DailyPlan:
    day: int
    title: str
    food: str
    workout: str

    def to_dict(self) -> Dict:
        return asdict(self)


AGGRESSIVE_PLAN: List[DailyPlan] = [
    DailyPlan(1, "Liquid day (metabolic kick-start)",
              "Liquids only: skim milk, unsweetened soy milk, black coffee, plenty of water (2000ml+).",
              "HIIT intervals (40 min), burn through glycogen fast"),
    DailyPlan(2, "Low-carb eggs and dairy (fast fat burn)",
              "Breakfast: 2 boiled eggs. Lunch: steamed egg custard + cucumber. Dinner: protein shake or milk.",
              "Jog or incline walk 5 km (heart rate around 140)"),
    DailyPlan(3, "Meat day (protein load)",
              "Meat only (steak, chicken breast, fish) + a few leafy greens. No staples, no fruit.",
              "Core training (20 min) + planks"),
    DailyPlan(4, "High-fibre cleanse",
              "Low-sugar fruit (apple, grapefruit, dragon fruit) + fibrous vegetables (celery, spinach).",
              "Jump rope 2000 reps (in 5 sets)"),
    DailyPlan(5, "Carb cycling burn",
              "Breakfast: 1 slice wholemeal bread. Lunch: chicken breast + broccoli. Dinner: cucumber or tomato.",
              "Full-body fat-burn circuit / burpees (30 min)"),
    DailyPlan(6, "Light fast (autophagy)",
              "Keep the whole day to 500 kcal: vegetable soup, tofu, konjac noodles.",
              "Yoga / pilates (1 hour), gentle stretching"),
    DailyPlan(7, "Cheat meal (break the plateau)",
              "One meal of something you crave (hotpot, barbecue), stop at 70% full, keep the rest light.",
              "Full rest, prioritise sleep"),
]

GENTLE_PLAN: List[DailyPlan] = [
    DailyPlan(1, "Balanced start (adjustment)",
              "Breakfast: oats with milk + egg. Lunch: mixed-grain rice + skinless chicken leg + greens. Dinner: big salad.",
              "Brisk walk 30 min to wake the body up"),
    DailyPlan(2, "Quality carbs (energy)",
              "Staples from corn, sweet potato or purple yam. Pair with lean fish or shrimp. Drink plenty of water.",
              "Spin bike / cycling 40 min"),
    DailyPlan(3, "Sugar control (steady blood sugar)",
              "No refined rice, flour or sugar. Lots of dark vegetables. A small handful of nuts (10g) as a snack.",
              "Home dumbbell routine 25 min"),
    DailyPlan(4, "High protein (build muscle, lose fat)",
              "Raise protein to 1.5g per kg of body weight: lean beef, shrimp, tofu.",
              "Jog 40 min + stretching"),
    DailyPlan(5, "Vitamin day (antioxidants)",
              "Rainbow eating: at least 3 colours of fruit and veg per meal. Little oil, little salt.",
              "Swimming / rowing machine 40 min"),
    DailyPlan(6, "Light day (ease the load)",
              "Finish dinner before 18:00. Easy-to-digest porridge or yoghurt salad.",
              "Outdoor hike / hill walk / long stroll 1 hour"),
    DailyPlan(7, "Rest and reset",
              "Three normal meals, each to 70% full. Eat when you actually feel hungry.",
              "Meditation / foam rolling"),
]

REST_DAY = DailyPlan(0, "Rest", "Balanced diet", "Rest")

# Weekly loss (kg) thresholds used at onboarding: (above, route, difficulty)
ONBOARDING_THRESHOLDS: List[Tuple[float, RouteType, str]] = [
    (1.2, RouteType.AGGRESSIVE, "extreme"),
    (0.8, RouteType.AGGRESSIVE, "hard"),
    (0.5, RouteType.GENTLE, "moderate"),
]

RESET_AGGRESSIVE_WEEKLY_LOSS = 0.6


def plan_for_route(route: Optional[RouteType]) -> List[DailyPlan]:
    return AGGRESSIVE_PLAN if route == RouteType.AGGRESSIVE else GENTLE_PLAN


def get_daily_plan(route: Optional[RouteType], day_index: int) -> DailyPlan:
    """Suggestion for a plan day; the 7-day rotation repeats."""
    plan = plan_for_route(route)
    if not plan:
        return REST_DAY
    if not isinstance(day_index, int) or day_index < 0:
        day_index = 0
    return plan[day_index % 7]


def weekly_loss(current_weight: float, target_weight: float, plan_weeks: int) -> float:
    return (current_weight - target_weight) / (plan_weeks or 1)


def assess_difficulty(current_weight: float, target_weight: float, plan_weeks: int) -> Tuple[RouteType, str]:
    """
    Recommend a route from the weekly loss the plan asks for.

    Returns (route, difficulty label).
    """
    loss = weekly_loss(current_weight, target_weight, plan_weeks)
    for threshold, route, label in ONBOARDING_THRESHOLDS:
        if loss > threshold:
            return route, label
    return RouteType.GENTLE, "easy"


def recommend_route_for_reset(current_weight: float, target_weight: float, plan_weeks: int) -> RouteType:
    if weekly_loss(current_weight, target_weight, plan_weeks) > RESET_AGGRESSIVE_WEEKLY_LOSS:
        return RouteType.AGGRESSIVE
    return RouteType.GENTLE
