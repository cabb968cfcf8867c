"""Pure aggregation of activity records into daily series and summaries.

Nothing in this module performs I/O. Callers fetch and authorize records,
then pass plain record objects and a :class:`DateRange` in.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, asdict
from typing import Callable, Iterable, Optional, Sequence, Union

from algorithms import (
    CalorieCalculator,
    CalorieConstants,
    DEFAULT_CONSTANTS,
    DateRange,
    MathTools,
    parse_day,
)

Number = Union[int, float]


@dataclass(frozen=True)
class CardioRecord:
    date: Union[str, datetime.date]
    exercise: str
    minutes: float
    intensity: str = "Moyenne"
    calories: Optional[int] = None


@dataclass(frozen=True)
class StrengthRecord:
    date: Union[str, datetime.date]
    exercise: str
    sets: int
    reps: int
    load: float = 0.0
    calories: Optional[int] = None

    @property
    def total_reps(self) -> int:
        return self.sets * self.reps

    @property
    def volume(self) -> float:
        return MathTools.volume(self.sets, self.reps, self.load)


@dataclass(frozen=True)
class WeightEntry:
    date: Union[str, datetime.date]
    weight: float
    body_fat: Optional[float] = None
    muscle_mass: Optional[float] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["date"] = parse_day(self.date).isoformat()
        return data


@dataclass(frozen=True)
class SeriesPoint:
    date: datetime.date
    value: Optional[Number]

    def to_dict(self) -> dict:
        return {"date": self.date.isoformat(), "value": self.value}


DailySeries = list[SeriesPoint]


@dataclass(frozen=True)
class SummaryStats:
    total: float
    mean: float
    max: float
    min: float

    def to_dict(self) -> dict:
        return asdict(self)


class NoData:
    """Result of summarizing a series without any numeric value."""

    _instance: "NoData | None" = None

    def __new__(cls) -> "NoData":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NO_DATA"

    def to_dict(self) -> dict:
        return {"no_data": True}


NO_DATA = NoData()


@dataclass(frozen=True)
class ProgressionEntry:
    load: float
    latest_date: datetime.date
    latest_total_reps: int
    delta_vs_previous: int
    delta_vs_first_in_period: int
    session_count: int

    def to_dict(self) -> dict:
        data = asdict(self)
        data["latest_date"] = self.latest_date.isoformat()
        return data


@dataclass(frozen=True)
class WeightComparison:
    latest: Optional[WeightEntry]
    previous: Optional[WeightEntry]
    first: Optional[WeightEntry]
    weight_delta: Optional[float]
    body_fat_delta: Optional[float]
    muscle_mass_delta: Optional[float]
    weight_delta_vs_first: Optional[float]
    weight_change_percent: Optional[float]

    def to_dict(self) -> dict:
        return {
            "latest": self.latest.to_dict() if self.latest else None,
            "previous": self.previous.to_dict() if self.previous else None,
            "first": self.first.to_dict() if self.first else None,
            "weight_delta": self.weight_delta,
            "body_fat_delta": self.body_fat_delta,
            "muscle_mass_delta": self.muscle_mass_delta,
            "weight_delta_vs_first": self.weight_delta_vs_first,
            "weight_change_percent": self.weight_change_percent,
        }


class SeriesAggregator:
    """Turn raw records into gap-filled daily series and summaries."""

    @staticmethod
    def filter_by_exercise(records: Iterable, exercise: str | None) -> list:
        if not exercise:
            return list(records)
        return [r for r in records if r.exercise == exercise]

    @staticmethod
    def build_daily_series(
        records: Iterable,
        date_range: DateRange,
        selector: Callable[[object], Optional[Number]],
        fill_value: Optional[Number] = 0,
    ) -> DailySeries:
        """Return one summed bucket per day of ``date_range``.

        Days without records hold ``fill_value``. A degenerate range yields
        an empty list.
        """
        if date_range.is_empty:
            return []
        buckets: dict[datetime.date, Optional[Number]] = {
            day: fill_value for day in date_range.days()
        }
        for record in records:
            day = parse_day(record.date)
            if day not in buckets:
                continue
            value = selector(record)
            if value is None:
                continue
            current = buckets[day]
            buckets[day] = value if current is None else current + value
        return [SeriesPoint(day, value) for day, value in buckets.items()]

    @staticmethod
    def summarize(series: Sequence[SeriesPoint]) -> SummaryStats | NoData:
        values = [p.value for p in series if p.value is not None]
        if not values:
            return NO_DATA
        total, mean, high, low = MathTools.describe(values)
        return SummaryStats(total=total, mean=mean, max=high, min=low)

    @staticmethod
    def compute_load_progression(
        records: Iterable[StrengthRecord],
        date_range: DateRange,
        exercise: str,
    ) -> list[ProgressionEntry]:
        """Compare sessions performed at the same load, heaviest load first.

        Loads are grouped by exact equality of the recorded value.
        """
        groups: dict[float, list[StrengthRecord]] = {}
        for record in records:
            if record.exercise != exercise:
                continue
            if date_range.is_empty or not date_range.contains(record.date):
                continue
            groups.setdefault(record.load, []).append(record)
        result: list[ProgressionEntry] = []
        for load, sessions in groups.items():
            sessions = sorted(sessions, key=lambda r: parse_day(r.date))
            latest = sessions[-1]
            delta_prev = 0
            if len(sessions) >= 2:
                delta_prev = latest.total_reps - sessions[-2].total_reps
            result.append(
                ProgressionEntry(
                    load=load,
                    latest_date=parse_day(latest.date),
                    latest_total_reps=latest.total_reps,
                    delta_vs_previous=delta_prev,
                    delta_vs_first_in_period=latest.total_reps
                    - sessions[0].total_reps,
                    session_count=len(sessions),
                )
            )
        result.sort(key=lambda e: e.load, reverse=True)
        return result

    @staticmethod
    def compute_calories(
        cardio: Iterable[CardioRecord],
        strength: Iterable[StrengthRecord],
        date_range: DateRange,
        body_weight: float,
        constants: CalorieConstants = DEFAULT_CONSTANTS,
    ) -> DailySeries:
        """Return cardio plus strength calories per day of ``date_range``.

        Records carrying a stored ``calories`` value keep it; others are
        derived from ``body_weight`` and ``constants``.
        """

        def cardio_value(record: CardioRecord) -> int:
            if record.calories is not None:
                return record.calories
            return CalorieCalculator.cardio_calories(
                record.intensity, body_weight, record.minutes, constants
            )

        def strength_value(record: StrengthRecord) -> int:
            if record.calories is not None:
                return record.calories
            return CalorieCalculator.strength_calories(record.sets, constants)

        cardio_series = SeriesAggregator.build_daily_series(
            cardio, date_range, cardio_value, 0
        )
        strength_series = SeriesAggregator.build_daily_series(
            strength, date_range, strength_value, 0
        )
        strength_by_day = {p.date: p.value for p in strength_series}
        return [
            SeriesPoint(p.date, p.value + strength_by_day.get(p.date, 0))
            for p in cardio_series
        ]

    @staticmethod
    def weight_series(
        entries: Iterable[WeightEntry],
        date_range: DateRange,
        field: str = "weight",
    ) -> DailySeries:
        """Gap-filled series of one weight field, ``None`` on empty days.

        When a day holds several entries the last one wins.
        """
        if date_range.is_empty:
            return []
        buckets: dict[datetime.date, Optional[float]] = {
            day: None for day in date_range.days()
        }
        for entry in sorted(entries, key=lambda e: parse_day(e.date)):
            day = parse_day(entry.date)
            if day in buckets:
                buckets[day] = getattr(entry, field)
        return [SeriesPoint(day, value) for day, value in buckets.items()]

    @staticmethod
    def compare_weight_entries(
        entries: Iterable[WeightEntry], date_range: DateRange | None = None
    ) -> WeightComparison:
        ordered = sorted(
            (
                e
                for e in entries
                if date_range is None or date_range.contains(e.date)
            ),
            key=lambda e: parse_day(e.date),
        )
        latest = ordered[-1] if ordered else None
        previous = ordered[-2] if len(ordered) >= 2 else None
        first = ordered[0] if ordered else None

        def delta(field: str, other: WeightEntry | None) -> Optional[float]:
            if latest is None or other is None:
                return None
            return MathTools.delta(getattr(latest, field), getattr(other, field))

        return WeightComparison(
            latest=latest,
            previous=previous,
            first=first,
            weight_delta=delta("weight", previous),
            body_fat_delta=delta("body_fat", previous),
            muscle_mass_delta=delta("muscle_mass", previous),
            weight_delta_vs_first=delta("weight", first),
            weight_change_percent=MathTools.percentage_change(
                latest.weight if latest else None, first.weight if first else None
            ),
        )
