from .math_tools import MathTools
from .calorie_calculator import CalorieCalculator, CalorieConstants, DEFAULT_CONSTANTS
from .date_range import DateRange, parse_day, format_day, shift_day, relative_label

__all__ = [
    "MathTools",
    "CalorieCalculator",
    "CalorieConstants",
    "DEFAULT_CONSTANTS",
    "DateRange",
    "parse_day",
    "format_day",
    "shift_day",
    "relative_label",
]
