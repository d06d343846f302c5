"""
PCOS Portal - Derived Clinical Values
BMI (with category), LH:FSH ratio and HOMA-IR, computed once at form submission.

Every calculation takes optional inputs and returns None when an input is
missing; a missing value is never treated as zero.
"""
from typing import Optional, Tuple

# HOMA-IR = (fasting insulin µU/mL × fasting glucose mg/dL) / 405
HOMA_IR_DIVISOR = 405.0

# Upper bounds (exclusive) of each BMI bucket; anything at or above the last is Obese
BMI_THRESHOLDS = [
    (18.5, "Underweight"),
    (25.0, "Normal"),
    (30.0, "Overweight"),
]
BMI_TOP_CATEGORY = "Obese"


def _raw_bmi(height_cm: Optional[float], weight_kg: Optional[float]) -> Optional[float]:
    if height_cm is None or weight_kg is None or height_cm <= 0:
        return None
    height_m = height_cm / 100
    return weight_kg / (height_m ** 2)


def calculate_bmi(height_cm: Optional[float], weight_kg: Optional[float]) -> Optional[float]:
    """
    Body Mass Index rounded to 2 decimals.
    Formula: weight_kg / (height_cm / 100)^2
    """
    raw = _raw_bmi(height_cm, weight_kg)
    return None if raw is None else round(raw, 2)


def bmi_category(bmi: Optional[float]) -> Optional[str]:
    """Map a BMI to its bucket: <18.5, [18.5, 25), [25, 30), >=30"""
    if bmi is None:
        return None
    for upper, category in BMI_THRESHOLDS:
        if bmi < upper:
            return category
    return BMI_TOP_CATEGORY


def calculate_bmi_with_category(
    height_cm: Optional[float], weight_kg: Optional[float]
) -> Tuple[Optional[float], Optional[str]]:
    """
    Stored BMI (2 decimals) and its category. The category is bucketed on the
    unrounded value, so 18.497 is stored as 18.5 but stays Underweight.
    """
    raw = _raw_bmi(height_cm, weight_kg)
    if raw is None:
        return None, None
    return round(raw, 2), bmi_category(raw)


def calculate_lh_fsh_ratio(lh: Optional[float], fsh: Optional[float]) -> Optional[float]:
    """LH / FSH, only when both are present and FSH is positive"""
    if lh is None or fsh is None or fsh <= 0:
        return None
    return lh / fsh


def calculate_homa_ir(fasting_glucose: Optional[float], fasting_insulin: Optional[float]) -> Optional[float]:
    """HOMA-IR, only when both fasting glucose and fasting insulin are present"""
    if fasting_glucose is None or fasting_insulin is None:
        return None
    return (fasting_insulin * fasting_glucose) / HOMA_IR_DIVISOR


def format_derived(value: Optional[float], placeholder: str = "—") -> str:
    """Display rounding for derived values (2 decimals)"""
    if value is None:
        return placeholder
    return f"{value:.2f}"
