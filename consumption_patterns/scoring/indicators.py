"""
Indicator Calculator

Compares two values and produces a signed indicator with a display value.
Used for every "observed vs baseline" annotation of a pattern report.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

Number = Union[int, float]

MET_LABEL = "MET"
NOT_MET_LABEL = "NOT MET"


@dataclass(frozen=True)
class IndicatorResult:
    """Signed comparison outcome"""
    indicator: int  # -1 loss / not met, 0 neutral, 1 gain / met
    value: str

    @property
    def is_positive(self) -> bool:
        return self.indicator > 0


def round_half_up(value: Number, digits: int = 0) -> Number:
    """
    Round halves away from zero.

    Returns an int for ``digits == 0`` and a float otherwise.
    """
    quantum = Decimal(1).scaleb(-digits)
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    return int(rounded) if digits == 0 else float(rounded)


def safe_divide(numerator: Number, denominator: Number) -> float:
    """Quotient, or 0 when the denominator is zero"""
    if not denominator:
        return 0.0
    return numerator / denominator


def evaluate(value_1: Number, value_2: Number, goal_mode: bool = False) -> IndicatorResult:
    """
    Compare ``value_1`` against ``value_2``.

    In goal mode the result is MET when ``value_1 <= value_2``. Otherwise the
    display value is the percent change of ``value_1`` over ``value_2``,
    e.g. ``(+20%)`` or ``(-20%)``. A zero ``value_2`` counts as a 0% change.

    Example:
        evaluate(120, 100)  # IndicatorResult(indicator=1, value="(+20%)")
    """
    if goal_mode:
        if value_1 <= value_2:
            return IndicatorResult(indicator=1, value=MET_LABEL)
        return IndicatorResult(indicator=-1, value=NOT_MET_LABEL)

    percent = round_half_up(safe_divide((value_1 - value_2) * 100, value_2))
    if value_1 < value_2:
        return IndicatorResult(indicator=-1, value=f"({percent}%)")
    return IndicatorResult(indicator=1, value=f"(+{percent}%)")
