"""BMR / TDEE estimates.

BMR uses the Mifflin-St Jeor equation:
    men:   10 * kg + 6.25 * cm - 5 * age + 5
    women: 10 * kg + 6.25 * cm - 5 * age - 161
TDEE multiplies BMR by an activity factor.
"""

from __future__ import annotations

from app.types.subscription_contract import Sex

CM_PER_INCH = 2.54
LBS_PER_KG = 2.205

_SEX_MODIFIER = {Sex.MALE: 5, Sex.FEMALE: -161}

ACTIVITY_MULTIPLIERS = {
    "sedentary": 1.2,
    "light": 1.4,
    "moderate": 1.65,
    "heavy": 1.9,
}


def calc_bmr_metric(age: float, sex: Sex | str, cm: float, kg: float) -> int:
    modifier = _SEX_MODIFIER[Sex(sex)]
    return round(10 * kg + 6.25 * cm - 5 * age + modifier)


def calc_bmr_imperial(age: float, sex: Sex | str, feet: float, inches: float, lbs: float) -> int:
    cm = (feet * 12 + inches) * CM_PER_INCH
    kg = lbs / LBS_PER_KG
    return calc_bmr_metric(age, sex, cm, kg)


def calc_tdee(bmr: float, activity_level: str) -> int:
    try:
        multiplier = ACTIVITY_MULTIPLIERS[activity_level]
    except KeyError:
        raise ValueError(f"unknown activity level {activity_level!r}") from None
    return round(bmr * multiplier)
