"""
BMI Calculation Service

BMI = weight_kg / (height_m)²

Shown on the profile summary next to the plan progress.
"""
from typing import Optional


# Upper bounds (exclusive) for each category, checked in order
BMI_CATEGORIES = [
    (18.5, "underweight"),
    (24.9, "normal"),
    (29.9, "overweight"),
]


def calculate_bmi(weight_kg: Optional[float], height_cm: Optional[float]) -> Optional[float]:
    """
    Calculate BMI from weight (kg) and height (cm).

    Returns:
        BMI rounded to 1 decimal place, or None if inputs are missing or not positive

    Examples:
        >>> calculate_bmi(70, 175)
        22.9
        >>> calculate_bmi(70, None)
    """
    if weight_kg is None or height_cm is None:
        return None

    if weight_kg <= 0 or height_cm <= 0:
        return None

    height_m = float(height_cm) / 100.0
    return round(float(weight_kg) / (height_m ** 2), 1)


def bmi_category(bmi: Optional[float]) -> Optional[str]:
    if bmi is None:
        return None
    for upper, label in BMI_CATEGORIES:
        if bmi < upper:
            return label
    return "obese"
