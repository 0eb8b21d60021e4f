"""
BMI calculation and assessment routing for captured vitals.
BMI <= 25 goes to the general assessment (form A), above 25 to the
overweight assessment (form B).
"""
from dataclasses import dataclass
from typing import Optional, Union

UNDERWEIGHT_BELOW = 18.5
OVERWEIGHT_ABOVE = 25.0


class BmiCategory:
    UNDERWEIGHT = "underweight"
    NORMAL = "normal"
    OVERWEIGHT = "overweight"
    UNKNOWN = "unknown"


class AssessmentRoute:
    GENERAL = "general"
    OVERWEIGHT = "overweight"
    UNKNOWN = "unknown"


@dataclass
class BmiResult:
    bmi: Optional[float]
    category: str
    route: str


def _to_float(value: Union[str, float, None]) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(str(value).strip())
    except ValueError:
        return None


def calculate_bmi(height_cm: Union[str, float, None], weight_kg: Union[str, float, None]) -> BmiResult:
    """BMI = weight(kg) / height(m)^2, with category and assessment route."""
    height = _to_float(height_cm)
    weight = _to_float(weight_kg)
    if height is None or weight is None or height <= 0 or weight <= 0:
        return BmiResult(bmi=None, category=BmiCategory.UNKNOWN, route=AssessmentRoute.UNKNOWN)

    bmi = weight / (height / 100.0) ** 2
    if bmi < UNDERWEIGHT_BELOW:
        category = BmiCategory.UNDERWEIGHT
    elif bmi <= OVERWEIGHT_ABOVE:
        category = BmiCategory.NORMAL
    else:
        category = BmiCategory.OVERWEIGHT
    route = AssessmentRoute.GENERAL if bmi <= OVERWEIGHT_ABOVE else AssessmentRoute.OVERWEIGHT
    return BmiResult(bmi=round(bmi, 2), category=category, route=route)
