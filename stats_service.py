from __future__ import annotations
import datetime
from typing import Optional, Dict, List

from db import (
    CardioRepository,
    StrengthRepository,
    WeightEntryRepository,
    UserRepository,
    SettingsRepository,
)
from aggregator import (
    CardioRecord,
    StrengthRecord,
    WeightEntry,
    SeriesAggregator,
    SeriesPoint,
    NO_DATA,
)
from algorithms import DateRange, MathTools, DEFAULT_CONSTANTS, parse_day


class StatisticsService:
    """Compute activity statistics for one user over a date range."""

    CARDIO_METRICS = {
        "minutes": lambda r: r.minutes,
        "calories": lambda r: r.calories,
    }
    STRENGTH_METRICS = {
        "sets": lambda r: r.sets,
        "reps": lambda r: r.total_reps,
        "load": lambda r: r.load,
        "volume": lambda r: r.volume,
        "calories": lambda r: r.calories,
    }
    WEIGHT_METRICS = ("weight", "body_fat", "muscle_mass")

    def __init__(
        self,
        cardio_repo: CardioRepository,
        strength_repo: StrengthRepository,
        weight_repo: WeightEntryRepository,
        user_repo: UserRepository | None = None,
        settings_repo: SettingsRepository | None = None,
    ) -> None:
        self.cardio = cardio_repo
        self.strength = strength_repo
        self.weights = weight_repo
        self.users = user_repo
        self.settings = settings_repo

    @staticmethod
    def _range(start: str, end: str) -> DateRange:
        return DateRange.from_strings(start, end)

    def _cardio_records(self, user_id: int, start: str, end: str) -> List[CardioRecord]:
        return [
            CardioRecord(
                date=r["date"],
                exercise=r["exercise_name"],
                minutes=r["minutes"],
                intensity=r["intensity"],
                calories=r["calories"],
            )
            for r in self.cardio.fetch_history(user_id, start, end)
        ]

    def _strength_records(
        self, user_id: int, start: str, end: str
    ) -> List[StrengthRecord]:
        return [
            StrengthRecord(
                date=r["date"],
                exercise=r["exercise_name"],
                sets=r["sets"],
                reps=r["reps"],
                load=r["weight"],
                calories=r["calories"],
            )
            for r in self.strength.fetch_history(user_id, start, end)
        ]

    def _weight_entries(
        self, user_id: int, start: Optional[str], end: Optional[str]
    ) -> List[WeightEntry]:
        # repository returns newest first; the aggregator sorts by date itself
        rows = reversed(self.weights.fetch_history(user_id, start, end))
        return [
            WeightEntry(
                date=r["date"],
                weight=r["weight"],
                body_fat=r["body_fat"],
                muscle_mass=r["muscle_mass"],
            )
            for r in rows
        ]

    def _body_weight(self, user_id: int) -> float:
        """Current weight of the user or the configured default."""
        if self.users is not None:
            try:
                return self.users.fetch(user_id)["weight"]
            except ValueError:
                pass
        if self.settings is not None:
            return self.settings.get_float("default_body_weight", 70.0)
        return 70.0

    def _series(
        self,
        user_id: int,
        metric: str,
        start: str,
        end: str,
        exercise: Optional[str] = None,
    ) -> List[SeriesPoint]:
        date_range = self._range(start, end)
        if metric == "calories":
            return self._calorie_series(user_id, date_range)
        kind, _, field = metric.partition(".")
        if kind == "cardio" and field in self.CARDIO_METRICS:
            records = SeriesAggregator.filter_by_exercise(
                self._cardio_records(user_id, start, end), exercise
            )
            return SeriesAggregator.build_daily_series(
                records, date_range, self.CARDIO_METRICS[field], 0
            )
        if kind == "muscu" and field in self.STRENGTH_METRICS:
            records = SeriesAggregator.filter_by_exercise(
                self._strength_records(user_id, start, end), exercise
            )
            return SeriesAggregator.build_daily_series(
                records, date_range, self.STRENGTH_METRICS[field], 0
            )
        if kind == "weight" and (field or "weight") in self.WEIGHT_METRICS:
            return SeriesAggregator.weight_series(
                self._weight_entries(user_id, start, end), date_range, field or "weight"
            )
        raise ValueError(f"unknown metric: {metric}")

    def daily_series(
        self,
        user_id: int,
        metric: str,
        start: str,
        end: str,
        exercise: Optional[str] = None,
    ) -> List[Dict[str, object]]:
        """Gap-filled daily values of ``metric``.

        ``metric`` is ``cardio.minutes``, ``muscu.volume``, ``weight.body_fat``
        and so on; ``calories`` combines cardio and strength.
        """
        return [
            p.to_dict() for p in self._series(user_id, metric, start, end, exercise)
        ]

    def summary(
        self,
        user_id: int,
        metric: str,
        start: str,
        end: str,
        exercise: Optional[str] = None,
    ) -> Dict[str, object]:
        series = self._series(user_id, metric, start, end, exercise)
        return self._summary_dict(SeriesAggregator.summarize(series))

    @staticmethod
    def _summary_dict(result) -> Dict[str, object]:
        if result is NO_DATA:
            return result.to_dict()
        return {k: round(v, 2) for k, v in result.to_dict().items()}

    def _calorie_series(self, user_id: int, date_range: DateRange):
        start = date_range.start.isoformat()
        end = date_range.end.isoformat()
        constants = (
            self.settings.calorie_constants()
            if self.settings is not None
            else DEFAULT_CONSTANTS
        )
        return SeriesAggregator.compute_calories(
            self._cardio_records(user_id, start, end),
            self._strength_records(user_id, start, end),
            date_range,
            self._body_weight(user_id),
            constants,
        )

    def calories(self, user_id: int, start: str, end: str) -> Dict[str, object]:
        series = self._calorie_series(user_id, self._range(start, end))
        return {
            "series": [p.to_dict() for p in series],
            "summary": self._summary_dict(SeriesAggregator.summarize(series)),
        }

    def load_progression(
        self, user_id: int, exercise: str, start: str, end: str
    ) -> List[Dict[str, object]]:
        entries = SeriesAggregator.compute_load_progression(
            self._strength_records(user_id, start, end),
            self._range(start, end),
            exercise,
        )
        return [e.to_dict() for e in entries]

    def weight_comparison(
        self, user_id: int, start: Optional[str] = None, end: Optional[str] = None
    ) -> Dict[str, object]:
        date_range = self._range(start, end) if start and end else None
        comparison = SeriesAggregator.compare_weight_entries(
            self._weight_entries(user_id, start, end), date_range
        )
        return comparison.to_dict()

    def strength_totals(self, user_id: int, day: str) -> Dict[str, float]:
        """Sets, volume and calories logged on ``day``."""
        records = self._strength_records(user_id, day, day)
        return {
            "sets": sum(r.sets for r in records),
            "volume": round(sum(r.volume for r in records), 2),
            "calories": sum(r.calories or 0 for r in records),
        }

    @staticmethod
    def dashboard(
        day: str,
        cardio: List[dict],
        strength: List[dict],
        weight: Optional[dict],
    ) -> Dict[str, object]:
        """Shape the per-day dashboard from already fetched collections."""
        return {
            "date": parse_day(day).isoformat(),
            "cardio": cardio,
            "muscu": strength,
            "weight": weight,
            "totals": {
                "cardio_minutes": sum(c["minutes"] for c in cardio),
                "cardio_calories": sum(c["calories"] for c in cardio),
                "muscu_sets": sum(s["sets"] for s in strength),
                "muscu_volume": round(
                    sum(
                        MathTools.volume(s["sets"], s["reps"], s["weight"])
                        for s in strength
                    ),
                    2,
                ),
                "muscu_calories": sum(s["calories"] for s in strength),
            },
        }

    def period_overview(self, user_id: int, days: int, end: Optional[str] = None):
        """Calorie, minutes and sets summaries for the last ``days`` days."""
        end_day = parse_day(end) if end else datetime.date.today()
        date_range = DateRange.last_n_days(days, end_day)
        start_s, end_s = date_range.start.isoformat(), date_range.end.isoformat()
        return {
            "range": date_range.to_dict(),
            "calories": self.calories(user_id, start_s, end_s)["summary"],
            "cardio_minutes": self.summary(user_id, "cardio.minutes", start_s, end_s),
            "muscu_sets": self.summary(user_id, "muscu.sets", start_s, end_s),
        }
