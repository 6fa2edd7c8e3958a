# fleet_api/services/week_window.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time as _time, timedelta
from typing import Optional, Union

DateLike = Union[date, datetime]


def _as_date(d: DateLike) -> date:
    return d.date() if isinstance(d, datetime) else d


@dataclass(frozen=True)
class WeekWindow:
    """ISO week: Monday 00:00:00 through Sunday 23:59:59, local civil time."""
    start: date
    end: date

    @property
    def start_at(self) -> datetime:
        return datetime.combine(self.start, _time.min)

    @property
    def end_at(self) -> datetime:
        return datetime.combine(self.end, _time.max)

    @property
    def label(self) -> str:
        # "Jun 30 - Jul 6, 2025"
        return f"{self.start:%b} {self.start.day} - {self.end:%b} {self.end.day}, {self.end.year}"

    def contains(self, d: DateLike) -> bool:
        return self.start <= _as_date(d) <= self.end

    def next(self) -> "WeekWindow":
        return week_window(self.start + timedelta(days=7))

    def previous(self) -> "WeekWindow":
        return week_window(self.start - timedelta(days=7))

    def to_dict(self) -> dict:
        return {
            "week_start": self.start.isoformat(),
            "week_end": self.end.isoformat(),
            "label": self.label,
        }


def week_window(d: DateLike) -> WeekWindow:
    day = _as_date(d)
    monday = day - timedelta(days=day.weekday())
    return WeekWindow(start=monday, end=monday + timedelta(days=6))


def current_week(today: Optional[date] = None) -> WeekWindow:
    return week_window(today or date.today())
