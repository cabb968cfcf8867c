from typing import Iterable, Optional
import numpy as np


class MathTools:
    """Small numeric helpers shared by the statistics code."""

    @staticmethod
    def volume(sets: int, reps: int, load: float) -> float:
        """Return training volume as sets times reps times load."""
        return sets * reps * load

    @staticmethod
    def delta(current: Optional[float], previous: Optional[float]) -> Optional[float]:
        """Difference between two optional values, ``None`` if either is absent."""
        if current is None or previous is None:
            return None
        return round(current - previous, 2)

    @staticmethod
    def percentage_change(
        current: Optional[float], previous: Optional[float]
    ) -> Optional[float]:
        """Relative change in percent, rounded to one decimal."""
        if current is None or previous is None or previous == 0:
            return None
        return round((current - previous) / previous * 100, 1)

    @staticmethod
    def describe(values: Iterable[float]) -> tuple[float, float, float, float]:
        """Return total, mean, max and min of ``values``."""
        arr = np.asarray(list(values), dtype=float)
        if arr.size == 0:
            raise ValueError("values must not be empty")
        total = float(arr.sum())
        return total, total / arr.size, float(arr.max()), float(arr.min())
