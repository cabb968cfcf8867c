import datetime
from dataclasses import dataclass
from typing import Iterator, Union

DayLike = Union[str, datetime.date, datetime.datetime]


def parse_day(value: DayLike) -> datetime.date:
    """Return ``value`` as a calendar date without time component."""
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    text = str(value).strip()
    if "T" in text:
        text = text.split("T", 1)[0]
    return datetime.date.fromisoformat(text[:10])


def format_day(day: DayLike) -> str:
    return parse_day(day).isoformat()


def shift_day(day: DayLike, days: int) -> datetime.date:
    return parse_day(day) + datetime.timedelta(days=days)


def today() -> datetime.date:
    return datetime.date.today()


def relative_label(day: DayLike, reference: DayLike | None = None) -> str:
    """Return a short label for ``day`` relative to ``reference``."""
    ref = parse_day(reference) if reference is not None else today()
    diff = (parse_day(day) - ref).days
    if diff == 0:
        return "Today"
    if diff == -1:
        return "Yesterday"
    if diff == 1:
        return "Tomorrow"
    return format_day(day)


@dataclass(frozen=True)
class DateRange:
    """Inclusive range of calendar dates."""

    start: datetime.date
    end: datetime.date

    @classmethod
    def from_strings(cls, start: DayLike, end: DayLike) -> "DateRange":
        return cls(parse_day(start), parse_day(end))

    @classmethod
    def single(cls, day: DayLike) -> "DateRange":
        d = parse_day(day)
        return cls(d, d)

    @classmethod
    def last_n_days(cls, n: int, end: DayLike | None = None) -> "DateRange":
        """Return the ``n`` days ending at ``end`` (today by default)."""
        if n <= 0:
            raise ValueError("n must be positive")
        last = parse_day(end) if end is not None else today()
        return cls(shift_day(last, -(n - 1)), last)

    @property
    def is_empty(self) -> bool:
        return self.start > self.end

    def __len__(self) -> int:
        if self.is_empty:
            return 0
        return (self.end - self.start).days + 1

    def days(self) -> Iterator[datetime.date]:
        current = self.start
        while current <= self.end:
            yield current
            current += datetime.timedelta(days=1)

    def contains(self, day: DayLike) -> bool:
        d = parse_day(day)
        return self.start <= d <= self.end

    def to_dict(self) -> dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}
